"""
Photo Stores - where person photo assets live

A photo reference is the value kept in ``Person.photo_url``. The local
store uses ``<person_id>/<filename>`` references rooted at a photos
directory.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Union

logger = logging.getLogger(__name__)


class PhotoStoreError(Exception):
    """Raised when a photo cannot be read or written"""
    pass


class PhotoStore(ABC):
    """
    Abstract base class for photo storage

    Implementations must accept the references they hand out from save().
    """

    @abstractmethod
    def read(self, reference: str) -> bytes:
        """
        Read a photo by reference.

        Raises:
            FileNotFoundError: If no photo exists for the reference
            PhotoStoreError: If the reference is malformed
        """
        pass

    @abstractmethod
    def save(self, person_id: str, filename: str, data: bytes) -> str:
        """
        Store a photo for a person.

        Returns:
            Reference to record in the person's photo_url
        """
        pass


def _safe_parts(*parts: str) -> PurePosixPath:
    path = PurePosixPath(*parts)
    if path.is_absolute() or any(part in ("..", "") for part in path.parts):
        raise PhotoStoreError(f"Invalid photo path: {'/'.join(parts)}")
    return path


class LocalPhotoStore(PhotoStore):
    """Photos stored as files under a root directory."""

    URL_PREFIXES = ("/photos/", "photos/", "/")

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, reference: str) -> Path:
        relative = reference
        for prefix in self.URL_PREFIXES:
            if relative.startswith(prefix):
                relative = relative[len(prefix):]
                break
        return self.root.joinpath(*_safe_parts(relative).parts)

    def read(self, reference: str) -> bytes:
        path = self._resolve(reference)
        if not path.is_file():
            raise FileNotFoundError(f"Photo not found: {reference}")
        return path.read_bytes()

    def save(self, person_id: str, filename: str, data: bytes) -> str:
        relative = _safe_parts(person_id, filename)
        if len(relative.parts) != 2:
            raise PhotoStoreError(f"Invalid photo path: {relative}")

        path = self.root.joinpath(*relative.parts)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug(f"Saved photo {relative} ({len(data)} bytes)")
        return str(relative)
