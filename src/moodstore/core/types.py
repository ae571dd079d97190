"""
Core type definitions for moodstore.

These types are the on-disk document model:
- Checkin (with nested DrugEntry and AutoNotifications)
- PanicEvent
- TenantConfig, GlobalConfig

plus the values exchanged with callers:
- Principal (from the identity provider)
- CheckinSubmission (raw user input for a new check-in)
- LedgerStatus, CommitInfo (version ledger reporting)

Documents ignore unknown fields on read so older code can load files written
by newer code.
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


MOOD_MIN, MOOD_MAX = -5, 5
INTENSITY_MIN, INTENSITY_MAX = 0, 10

DEFAULT_NOTIFY_THRESHOLD = 1


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Fresh opaque document identifier."""
    return str(uuid4())


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ============================================
# Enums
# ============================================

class UserRole(str, Enum):
    """Role of an authenticated principal."""
    USER = "user"
    ADMIN = "admin"


class SafetyAnswer(str, Enum):
    """Answer to the safety question on the check-in form."""
    OK = "ok"
    HIGH = "high"
    PANIC = "panic"

    @property
    def label(self) -> str:
        return {
            SafetyAnswer.OK: "I'm doing fine",
            SafetyAnswer.HIGH: "I'm very high, but I'm coping",
            SafetyAnswer.PANIC: "I think I need help",
        }[self]


# ============================================
# Base Model
# ============================================

class Document(BaseModel):
    """Base class for everything persisted as a JSON file."""

    model_config = ConfigDict(extra="ignore")


# ============================================
# Check-ins
# ============================================

class DrugEntry(BaseModel):
    """A substance taken around the time of a check-in."""

    model_config = ConfigDict(extra="ignore")

    substance: str
    dose: str
    route: str | None = None
    start_time: datetime | None = None
    notes: str | None = None

    @field_validator("start_time")
    @classmethod
    def normalize_start_time(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @property
    def route_text(self) -> str:
        return self.route or "n/a"


class AutoNotifications(BaseModel):
    """Outcome of automatic notifications sent for a check-in.

    The two trigger flags are independent: one check-in can trigger both a
    low-mood and a panic notification.
    """

    model_config = ConfigDict(extra="ignore")

    mood_threshold_triggered: bool = False
    panic_triggered: bool = False
    notified_contacts: list[str] = Field(default_factory=list)


class Checkin(Document):
    """A single mood check-in. Immutable once written."""

    id: str = Field(default_factory=new_id)
    """Unique within the tenant; also the file name stem."""

    tenant_id: str

    timestamp: datetime = Field(default_factory=utcnow)
    """When the check-in was submitted (UTC)."""

    mood: int = Field(default=0, ge=MOOD_MIN, le=MOOD_MAX)
    intensity: int = Field(default=0, ge=INTENSITY_MIN, le=INTENSITY_MAX)

    safety_answer: str | None = None
    """Human-readable answer to the safety question."""

    feels_safe: bool = True
    notes: str | None = None
    drug_entries: list[DrugEntry] = Field(default_factory=list)
    auto_notifications: AutoNotifications = Field(default_factory=AutoNotifications)
    status_tags: list[str] = Field(default_factory=list)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @property
    def safety_answer_text(self) -> str:
        return self.safety_answer or "No safety check given"


class PanicEvent(Document):
    """A press of the panic button. Stored in the shared, append-only log."""

    id: str = Field(default_factory=new_id)
    tenant_id: str
    timestamp: datetime = Field(default_factory=utcnow)
    mood_at_panic: int | None = None
    intensity_at_panic: int | None = None
    notified_contacts: list[str] = Field(default_factory=list)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return _as_utc(value)


# ============================================
# Configuration documents
# ============================================

class GlobalConfig(Document):
    """Process-wide defaults and message templates."""

    default_low_mood_threshold: int = DEFAULT_NOTIFY_THRESHOLD
    default_auto_notify_on_low_mood: bool = True

    low_mood_message_template: str = (
        "Hi, this is the mood tracker of {username}. Mood: {mood}, "
        "intensity: {intensity}/10 at {timestamp}. A short check-in might help."
    )
    panic_message_template: str = (
        "ALERT: {username} pressed 'I need help' in the app. "
        "Mood: {mood} / intensity: {intensity}/10. Please check on them."
    )


class TenantConfig(Document):
    """Per-tenant settings: display name, messaging credentials, contacts."""

    username: str = ""
    display_name: str = ""

    # Messaging endpoint credentials
    homeserver_url: str = "https://matrix.org"
    messaging_user_id: str = ""
    messaging_access_token: str = ""
    messaging_device_id: str | None = None

    # Contacts
    primary_contact: str | None = None
    emergency_contacts: list[str] = Field(default_factory=list)

    # Notification policy
    auto_notify_on_low_mood: bool = True
    notify_threshold: int = DEFAULT_NOTIFY_THRESHOLD
    """A check-in with mood strictly below this value triggers a notification."""

    @classmethod
    def for_new_tenant(cls, display_name: str, defaults: GlobalConfig | None = None) -> "TenantConfig":
        """Default configuration for a freshly scaffolded tenant."""
        defaults = defaults or GlobalConfig()
        return cls(
            username=display_name,
            display_name=display_name,
            auto_notify_on_low_mood=defaults.default_auto_notify_on_low_mood,
            notify_threshold=defaults.default_low_mood_threshold,
        )

    def contact_list(self) -> list[str]:
        """Primary contact first, then emergency contacts; trimmed and de-duplicated."""
        candidates = [self.primary_contact or "", *self.emergency_contacts]
        contacts: list[str] = []
        for contact in candidates:
            trimmed = contact.strip()
            if trimmed and trimmed not in contacts:
                contacts.append(trimmed)
        return contacts

    @property
    def messaging_enabled(self) -> bool:
        return bool(self.messaging_access_token.strip())


# ============================================
# Caller-facing values
# ============================================

class Principal(BaseModel):
    """Authenticated user as supplied by the identity provider. Never re-validated."""

    model_config = ConfigDict(use_enum_values=True)

    tenant_id: str
    username: str
    role: UserRole = UserRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class CheckinSubmission(BaseModel):
    """Raw check-in input. Out-of-range values are clamped, not rejected."""

    mood: int = 0
    intensity: int = 0
    safety_answer: SafetyAnswer = SafetyAnswer.OK
    notes: str | None = None
    drug_entries: list[DrugEntry] = Field(default_factory=list)
    status_tags: list[str] = Field(default_factory=list)

    def to_checkin(self, tenant_id: str) -> Checkin:
        """Build a new Checkin with a fresh id and timestamp."""
        notes = self.notes.strip() if self.notes else None
        return Checkin(
            tenant_id=tenant_id,
            mood=max(MOOD_MIN, min(MOOD_MAX, self.mood)),
            intensity=max(INTENSITY_MIN, min(INTENSITY_MAX, self.intensity)),
            safety_answer=self.safety_answer.label,
            feels_safe=self.safety_answer != SafetyAnswer.PANIC,
            notes=notes or None,
            drug_entries=list(self.drug_entries),
            status_tags=list(self.status_tags),
        )


class CommitInfo(BaseModel):
    """A single ledger commit."""

    hash: str
    message: str
    timestamp: datetime


class LedgerStatus(BaseModel):
    """Snapshot of the version ledger's state."""

    branch: str
    """Current branch name, or "detached"."""

    pending_changes: bool = False
    """Whether the tracked subtree has uncommitted or untracked changes."""

    last_commit: CommitInfo | None = None
