"""
Archive Validator - structural checks on an unpacked archive

Runs before any store access. The metadata check must pass for the schema
check to run; schema problems are collected per record so a single pass
reports every broken record in every section.
"""

import logging
from typing import List, Optional, Dict, Any, Tuple

from pydantic import ValidationError

from .archive import (
    METADATA_FILE,
    SETTINGS_FILE,
    SECTION_FILES,
    photo_entries,
)
from .models import BACKUP_VERSION, ValidationResult
from .schemas import BackupMetadata, SettingsSchema, RECORD_SCHEMAS

logger = logging.getLogger(__name__)


SUPPORTED_VERSIONS = [BACKUP_VERSION]


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail.get("loc", ())) or "record"
        parts.append(f"{location}: {detail.get('msg')}")
    return "; ".join(parts)


class BackupValidator:
    """
    Validates an archive entry map.

    Example:
        result = BackupValidator().validate(codec.unpack(data))
        if not result.is_valid:
            print("\\n".join(result.errors))
    """

    def __init__(self, supported_versions: Optional[List[str]] = None):
        self.supported_versions = supported_versions or SUPPORTED_VERSIONS

    def validate(self, entries: Dict[str, Any]) -> ValidationResult:
        """
        Validate metadata, then every record of every present section.

        Returns:
            ValidationResult without conflicts; never raises for bad data
        """
        metadata, errors = self.check_metadata(entries)
        if errors:
            logger.info(f"Archive metadata rejected: {len(errors)} error(s)")
            return ValidationResult(is_valid=False, metadata=metadata, errors=errors)

        errors, warnings = self.check_records(entries, metadata)
        logger.info(f"Archive validated: {len(errors)} error(s), {len(warnings)} warning(s)")
        return ValidationResult(
            is_valid=not errors,
            metadata=metadata,
            errors=errors,
            warnings=warnings,
        )

    # ==================== Metadata check ====================

    def check_metadata(self, entries: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], List[str]]:
        """
        Check the metadata document against the archive contents.

        Returns:
            (metadata dict or None, list of errors)
        """
        if METADATA_FILE not in entries:
            return None, [f"Missing {METADATA_FILE} file"]

        raw = entries[METADATA_FILE]
        if not isinstance(raw, dict):
            return None, [f"Invalid metadata format in {METADATA_FILE}"]

        try:
            metadata = BackupMetadata.model_validate(raw)
        except ValidationError as e:
            return None, [f"Invalid metadata format: {_format_validation_error(e)}"]

        errors = []
        if metadata.version not in self.supported_versions:
            errors.append(
                f"Unsupported backup version: {metadata.version}. "
                f"Supported versions: {', '.join(self.supported_versions)}"
            )

        for data_file in metadata.data_files:
            if data_file not in entries:
                errors.append(f"Missing required data file: {data_file}")

        photos = photo_entries(entries)
        for directory in metadata.photo_directories:
            prefix = directory if directory.endswith("/") else directory + "/"
            if not any(path.startswith(prefix) for path in photos):
                errors.append(f"Declared photo directory has no files: {directory}")

        return raw, errors

    # ==================== Schema check ====================

    def check_records(self, entries: Dict[str, Any], metadata: Dict[str, Any]) -> Tuple[List[str], List[str]]:
        """
        Check every record of every present section.

        Returns:
            (errors, warnings)
        """
        errors: List[str] = []
        warnings: List[str] = []

        for kind, schema in RECORD_SCHEMAS.items():
            path = SECTION_FILES[kind]
            if path not in entries:
                continue
            errors.extend(self._check_section(path, entries[path], schema))

        if SETTINGS_FILE in entries:
            errors.extend(self._check_settings(entries[SETTINGS_FILE]))

        declared = metadata.get("statistics", {}).get("total_photos", 0)
        actual = len(photo_entries(entries))
        if declared != actual:
            warnings.append(f"Expected {declared} photos but found {actual} photo files")

        return errors, warnings

    def _check_section(self, path: str, records: Any, schema) -> List[str]:
        if not isinstance(records, list):
            return [f"{path} must be an array"]

        errors = []
        for index, record in enumerate(records):
            if not isinstance(record, dict):
                errors.append(f"{path}[{index}]: record must be an object")
                continue
            try:
                schema.model_validate(record)
            except ValidationError as e:
                errors.append(f"{path}[{index}]: {_format_validation_error(e)}")
        return errors

    def _check_settings(self, settings: Any) -> List[str]:
        if settings is None:
            return []
        if not isinstance(settings, dict):
            return ["Settings data must be an object"]
        try:
            SettingsSchema.model_validate(settings)
        except ValidationError as e:
            return [f"{SETTINGS_FILE}: {_format_validation_error(e)}"]
        return []

