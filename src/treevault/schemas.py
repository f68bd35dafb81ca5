"""
Pydantic schemas for archive validation and caller-supplied options.

The record schemas are deliberately minimal: they require identity and the
natural fields the importer depends on, check the types of optional fields,
and ignore anything else a newer exporter may have added.
"""

from datetime import datetime, date
from typing import Optional, List, Dict, Any, Literal

from pydantic import BaseModel, Field, field_validator

from .models import (
    ConflictResolutionStrategy,
    EntityType,
    parse_date,
)


class ExportOptions(BaseModel):
    """Options controlling what an export gathers."""
    include_photos: bool = Field(default=True, description="Include photo assets under photos/")
    include_audit_logs: bool = Field(default=True, description="Include data/audit-logs.json")
    audit_log_days: int = Field(default=90, ge=1, le=365, description="Audit retention window in days")


class ImportOptions(BaseModel):
    """Options controlling how an archive is committed."""
    strategy: ConflictResolutionStrategy = Field(
        default=ConflictResolutionStrategy.SKIP,
        description="Conflict resolution strategy: skip|replace|merge"
    )
    create_backup_before_import: bool = Field(default=True, description="Save a safety backup first")
    import_photos: bool = Field(default=True, description="Copy photo assets into the photo store")
    import_audit_logs: bool = Field(default=True, description="Import data/audit-logs.json if present")


class ExportedBy(BaseModel):
    id: str
    email: str
    name: Optional[str] = None


class BackupStatistics(BaseModel):
    total_people: int = Field(..., ge=0)
    total_relationships: int = Field(..., ge=0)
    total_users: int = Field(..., ge=0)
    total_suggestions: int = Field(..., ge=0)
    total_photos: int = Field(..., ge=0)
    audit_log_days: int = Field(..., ge=0)
    total_audit_logs: int = Field(..., ge=0)


class BackupMetadata(BaseModel):
    """Contents of metadata.json."""
    version: str
    exported_at: datetime
    exported_by: ExportedBy
    statistics: BackupStatistics
    data_files: List[str]
    photo_directories: List[str] = Field(default_factory=list)


class _DatedRecord(BaseModel):
    """Parses calendar-date fields leniently (plain dates or full timestamps)."""

    @field_validator(
        "date_of_birth", "date_of_passing", "marriage_date", "divorce_date",
        mode="before", check_fields=False
    )
    @classmethod
    def _coerce_date(cls, value: Any) -> Optional[date]:
        return parse_date(value)


class PersonSchema(_DatedRecord):
    id: str
    first_name: str
    last_name: str
    maiden_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    date_of_passing: Optional[date] = None
    birth_place: Optional[str] = None
    native_place: Optional[str] = None
    gender: Optional[Literal["MALE", "FEMALE", "OTHER", "PREFER_NOT_TO_SAY"]] = None
    photo_url: Optional[str] = None
    bio: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    current_address: Optional[Dict[str, Any]] = None
    work_address: Optional[Dict[str, Any]] = None
    profession: Optional[str] = None
    employer: Optional[str] = None
    social_links: Optional[Dict[str, Any]] = None
    is_living: bool
    created_at: datetime
    updated_at: datetime


class RelationshipSchema(_DatedRecord):
    id: str
    person_id: str
    related_person_id: str
    type: Literal["PARENT", "CHILD", "SPOUSE", "SIBLING"]
    marriage_date: Optional[date] = None
    divorce_date: Optional[date] = None
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


class AccountSchema(BaseModel):
    id: str
    email: str = Field(..., min_length=3)
    name: Optional[str] = None
    person_id: Optional[str] = None
    role: Literal["ADMIN", "MEMBER", "VIEWER"]
    is_active: bool = True
    must_change_password: bool = False
    invited_by_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    last_login_at: Optional[datetime] = None


class SuggestionSchema(BaseModel):
    id: str
    type: Literal["CREATE", "UPDATE", "DELETE", "ADD_RELATIONSHIP"]
    target_person_id: Optional[str] = None
    suggested_data: Any = None
    reason: Optional[str] = None
    status: Literal["PENDING", "APPROVED", "REJECTED"]
    submitted_by_id: str
    reviewed_by_id: Optional[str] = None
    review_note: Optional[str] = None
    submitted_at: datetime
    reviewed_at: Optional[datetime] = None


class SettingsSchema(BaseModel):
    id: Optional[str] = None
    family_name: Optional[str] = None
    description: Optional[str] = None
    locale: Optional[str] = None
    custom_labels: Optional[Dict[str, Any]] = None
    default_privacy: Optional[Literal["PUBLIC", "MEMBERS_ONLY", "ADMIN_ONLY"]] = None
    allow_self_registration: Optional[bool] = None
    require_approval_for_edits: Optional[bool] = None


class AuditRecordSchema(BaseModel):
    id: str
    user_id: str
    action: Literal["CREATE", "UPDATE", "DELETE", "LOGIN", "LOGOUT", "APPROVE", "REJECT"]
    entity_type: str
    entity_id: Optional[str] = None
    previous_data: Any = None
    new_data: Any = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime


RECORD_SCHEMAS = {
    EntityType.PERSON: PersonSchema,
    EntityType.RELATIONSHIP: RelationshipSchema,
    EntityType.ACCOUNT: AccountSchema,
    EntityType.SUGGESTION: SuggestionSchema,
    EntityType.AUDIT_LOG: AuditRecordSchema,
}
