"""
Data models for TreeVault backups.

This module contains the dataclasses that describe family-tree records as they
travel through an archive (people, relationships, accounts, suggestions,
settings, audit records), plus the transient objects produced by validation
and import runs (conflicts, statistics, results).

Records serialize to snake_case dictionaries. Timestamps are ISO 8601 strings,
calendar dates are YYYY-MM-DD strings.
"""

from datetime import date, datetime, timezone
from typing import List, Optional, Dict, Any
from dataclasses import dataclass, field, fields
from enum import Enum


BACKUP_VERSION = "1.0.0"


class EntityType(str, Enum):
    """Kinds of records held by the store and carried in an archive."""
    PERSON = "person"
    ACCOUNT = "account"
    RELATIONSHIP = "relationship"
    SUGGESTION = "suggestion"
    SETTINGS = "settings"
    AUDIT_LOG = "audit_log"

    def __str__(self) -> str:
        return self.value


class Severity(str, Enum):
    """How significant a detected conflict is."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    def __str__(self) -> str:
        return self.value


class ConflictAction(str, Enum):
    """What importing the incoming record would do to the store."""
    CREATE = "create"
    UPDATE = "update"

    def __str__(self) -> str:
        return self.value


class ConflictResolutionStrategy(str, Enum):
    """
    Operator policy for records that collide with existing data

    - SKIP: Never touch an existing record, never create a duplicate
    - REPLACE: Overwrite the colliding record wholesale
    - MERGE: Copy only the non-empty incoming fields onto the colliding record
    """
    SKIP = "skip"
    REPLACE = "replace"
    MERGE = "merge"

    @classmethod
    def from_string(cls, strategy: str) -> "ConflictResolutionStrategy":
        """
        Convert string to ConflictResolutionStrategy

        Args:
            strategy: Strategy string (case-insensitive)

        Returns:
            ConflictResolutionStrategy enum value

        Raises:
            ValueError: If strategy is invalid
        """
        try:
            return cls(strategy.lower())
        except ValueError:
            raise ValueError(
                f"Invalid conflict resolution strategy '{strategy}'. "
                "Must be one of: skip, replace, merge"
            )

    def __str__(self) -> str:
        return self.value


GENDERS = {"MALE", "FEMALE", "OTHER", "PREFER_NOT_TO_SAY"}
RELATIONSHIP_TYPES = {"PARENT", "CHILD", "SPOUSE", "SIBLING"}
USER_ROLES = {"ADMIN", "MEMBER", "VIEWER"}
SUGGESTION_TYPES = {"CREATE", "UPDATE", "DELETE", "ADD_RELATIONSHIP"}
SUGGESTION_STATUSES = {"PENDING", "APPROVED", "REJECTED"}
PRIVACY_LEVELS = {"PUBLIC", "MEMBERS_ONLY", "ADMIN_ONLY"}
AUDIT_ACTIONS = {"CREATE", "UPDATE", "DELETE", "LOGIN", "LOGOUT", "APPROVE", "REJECT"}


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp (``Z`` suffix allowed) into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_date(value: Any) -> Optional[date]:
    """Parse a calendar date, accepting full timestamps as well."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime with a fixed UTC layout so stored strings sort."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def format_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


class Record:
    """
    Mixin for archive records.

    Subclasses declare which fields are dates, timestamps and structured
    (JSON) values; serialization is driven from those declarations.
    """

    DATE_FIELDS: tuple = ()
    DATETIME_FIELDS: tuple = ()
    JSON_FIELDS: tuple = ()

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = {}
        for name in self.field_names():
            value = getattr(self, name)
            if name in self.DATETIME_FIELDS:
                value = format_datetime(value)
            elif name in self.DATE_FIELDS:
                value = format_date(value)
            data[name] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        """Create a record from a dictionary, ignoring unknown keys."""
        kwargs = {}
        for name in cls.field_names():
            if name not in data:
                continue
            value = data[name]
            if name in cls.DATETIME_FIELDS:
                value = parse_datetime(value)
            elif name in cls.DATE_FIELDS:
                value = parse_date(value)
            kwargs[name] = value
        return cls(**kwargs)

    def scalar_items(self) -> Dict[str, Any]:
        """Serialized fields whose values are not structured JSON."""
        return {
            key: value for key, value in self.to_dict().items()
            if key not in self.JSON_FIELDS
        }


@dataclass
class Person(Record):
    """A person in the family tree."""
    id: str
    first_name: str
    last_name: str
    maiden_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    date_of_passing: Optional[date] = None
    birth_place: Optional[str] = None
    native_place: Optional[str] = None
    gender: Optional[str] = None  # MALE | FEMALE | OTHER | PREFER_NOT_TO_SAY
    photo_url: Optional[str] = None
    bio: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    current_address: Optional[Dict[str, Any]] = None
    work_address: Optional[Dict[str, Any]] = None
    profession: Optional[str] = None
    employer: Optional[str] = None
    social_links: Optional[Dict[str, Any]] = None
    is_living: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    DATE_FIELDS = ("date_of_birth", "date_of_passing")
    DATETIME_FIELDS = ("created_at", "updated_at")
    JSON_FIELDS = ("current_address", "work_address", "social_links")

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass
class Relationship(Record):
    """A directed relationship edge between two people."""
    id: str
    person_id: str
    related_person_id: str
    type: str  # PARENT | CHILD | SPOUSE | SIBLING
    marriage_date: Optional[date] = None
    divorce_date: Optional[date] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    DATE_FIELDS = ("marriage_date", "divorce_date")
    DATETIME_FIELDS = ("created_at", "updated_at")


@dataclass
class Account(Record):
    """A login account. Credential secrets never appear here."""
    id: str
    email: str
    name: Optional[str] = None
    person_id: Optional[str] = None
    role: str = "VIEWER"  # ADMIN | MEMBER | VIEWER
    is_active: bool = True
    must_change_password: bool = False
    invited_by_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    DATETIME_FIELDS = ("created_at", "updated_at", "last_login_at")


@dataclass
class Suggestion(Record):
    """A proposed edit awaiting (or past) review."""
    id: str
    type: str  # CREATE | UPDATE | DELETE | ADD_RELATIONSHIP
    submitted_by_id: str
    target_person_id: Optional[str] = None
    suggested_data: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None
    status: str = "PENDING"  # PENDING | APPROVED | REJECTED
    reviewed_by_id: Optional[str] = None
    review_note: Optional[str] = None
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None

    DATETIME_FIELDS = ("submitted_at", "reviewed_at")
    JSON_FIELDS = ("suggested_data",)


@dataclass
class FamilySettings(Record):
    """The single settings row of an instance."""
    id: Optional[str] = None
    family_name: str = "Our Family"
    description: Optional[str] = None
    locale: str = "en"
    custom_labels: Optional[Dict[str, Any]] = None
    default_privacy: str = "MEMBERS_ONLY"  # PUBLIC | MEMBERS_ONLY | ADMIN_ONLY
    allow_self_registration: bool = True
    require_approval_for_edits: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    DATETIME_FIELDS = ("created_at", "updated_at")
    JSON_FIELDS = ("custom_labels",)


@dataclass
class AuditRecord(Record):
    """An audit trail entry for an action taken by an account."""
    id: str
    user_id: str
    action: str  # CREATE | UPDATE | DELETE | LOGIN | LOGOUT | APPROVE | REJECT
    entity_type: str
    entity_id: Optional[str] = None
    previous_data: Optional[Dict[str, Any]] = None
    new_data: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None

    DATETIME_FIELDS = ("created_at",)
    JSON_FIELDS = ("previous_data", "new_data")


RECORD_TYPES = {
    EntityType.PERSON: Person,
    EntityType.ACCOUNT: Account,
    EntityType.RELATIONSHIP: Relationship,
    EntityType.SUGGESTION: Suggestion,
    EntityType.SETTINGS: FamilySettings,
    EntityType.AUDIT_LOG: AuditRecord,
}


@dataclass
class Operator:
    """The account performing an export or import."""
    id: str
    email: str
    name: Optional[str] = None
    role: str = "ADMIN"

    @classmethod
    def from_account(cls, account: Account) -> "Operator":
        return cls(id=account.id, email=account.email, name=account.name, role=account.role)

    def identity(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email, "name": self.name}


@dataclass
class Conflict:
    """A collision between an incoming record and the live store."""
    type: EntityType
    action: ConflictAction
    new_data: Dict[str, Any]
    conflict_fields: List[str]
    severity: Severity
    description: str
    existing_id: Optional[str] = None
    existing_data: Optional[Dict[str, Any]] = None

    @property
    def incoming_id(self) -> Optional[str]:
        return self.new_data.get("id") or self.existing_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "type": self.type.value,
            "action": self.action.value,
            "existing_id": self.existing_id,
            "existing_data": self.existing_data,
            "new_data": self.new_data,
            "conflict_fields": self.conflict_fields,
            "severity": self.severity.value,
            "description": self.description,
        }


@dataclass
class ImportStatistics:
    """Counters accumulated during one import run."""
    people_imported: int = 0
    relationships_imported: int = 0
    accounts_imported: int = 0
    suggestions_imported: int = 0
    photos_imported: int = 0
    audit_logs_imported: int = 0
    settings_imported: int = 0
    conflicts_resolved: int = 0
    skipped_items: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class ConflictSummary:
    """Aggregate counts over a conflict list."""
    total_conflicts: int = 0
    conflicts_by_type: Dict[str, int] = field(default_factory=dict)
    conflicts_by_severity: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_conflicts(cls, conflicts: List[Conflict]) -> "ConflictSummary":
        summary = cls(total_conflicts=len(conflicts))
        for conflict in conflicts:
            type_key = conflict.type.value
            severity_key = conflict.severity.value
            summary.conflicts_by_type[type_key] = summary.conflicts_by_type.get(type_key, 0) + 1
            summary.conflicts_by_severity[severity_key] = summary.conflicts_by_severity.get(severity_key, 0) + 1
        return summary

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_conflicts": self.total_conflicts,
            "conflicts_by_type": dict(self.conflicts_by_type),
            "conflicts_by_severity": dict(self.conflicts_by_severity),
        }


@dataclass
class ValidationResult:
    """Outcome of checking a candidate archive before import."""
    is_valid: bool
    metadata: Optional[Dict[str, Any]]
    conflicts: List[Conflict] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def statistics(self) -> ConflictSummary:
        return ConflictSummary.from_conflicts(self.conflicts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "metadata": self.metadata,
            "conflicts": [c.to_dict() for c in self.conflicts],
            "statistics": self.statistics.to_dict(),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


@dataclass
class ResolutionResult:
    """What the resolver returns: statistics plus non-fatal problems."""
    statistics: ImportStatistics
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statistics": self.statistics.to_dict(),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


@dataclass
class ImportResult:
    """Full account of one import invocation."""
    success: bool
    imported_at: datetime
    imported_by: Dict[str, Any]
    strategy: ConflictResolutionStrategy
    statistics: ImportStatistics
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    backup_created: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "imported_at": format_datetime(self.imported_at),
            "imported_by": self.imported_by,
            "strategy": self.strategy.value,
            "statistics": self.statistics.to_dict(),
            "backup_created": self.backup_created,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }
