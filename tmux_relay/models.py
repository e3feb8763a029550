"""Data models for tmux relay."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

# Session lifetime is fixed at creation; there is no renewal.
SESSION_TTL = timedelta(hours=24)

# tmux_session value stored when no target could be resolved at creation time.
# A real tmux session named "default" therefore can never be a relay target.
NO_TARGET_SESSION = "default"

TOKEN_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
TOKEN_LENGTH = 8


class NotificationType(Enum):
    """Kinds of notification an agent hook can send."""
    COMPLETED = "completed"  # Task finished
    WAITING = "waiting"      # Waiting for input


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing Z and naive values (as UTC)."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Notification:
    """An outbound notification produced by an agent hook."""
    type: str
    project: Optional[str] = None
    message: str = ""
    metadata: Optional[dict] = None

    @property
    def is_completed(self) -> bool:
        return self.type == NotificationType.COMPLETED.value

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "project": self.project,
            "message": self.message,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Notification":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class SessionRecord:
    """
    Durable mapping from a relay token to a tmux session.

    Records are write-once: they are created when a notification goes out and
    are only ever deleted afterwards.
    """
    id: str
    token: str
    type: str  # Channel that created it (telegram, api)
    created: datetime
    expires: datetime
    tmux_session: str = NO_TARGET_SESSION
    project: Optional[str] = None
    notification: dict = field(default_factory=dict)

    @property
    def has_target(self) -> bool:
        return bool(self.tmux_session) and self.tmux_session != NO_TARGET_SESSION

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True once now is strictly past the expiry timestamp."""
        return (now or utcnow()) > self.expires

    def to_dict(self) -> dict:
        """Convert record to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "token": self.token,
            "type": self.type,
            "created": self.created.isoformat(),
            "expires": self.expires.isoformat(),
            "tmux_session": self.tmux_session,
            "project": self.project,
            "notification": self.notification,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionRecord":
        """Create record from dictionary."""
        return cls(
            id=data["id"],
            token=data["token"],
            type=data.get("type", "unknown"),
            created=parse_timestamp(data["created"]),
            expires=parse_timestamp(data["expires"]),
            tmux_session=data.get("tmux_session") or NO_TARGET_SESSION,
            project=data.get("project"),
            notification=data.get("notification") or {},
        )


@dataclass
class RelayResult:
    """Outcome of relaying one command; callers format it for display."""
    success: bool
    session: Optional[SessionRecord] = None
    message: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "session": self.session.to_dict() if self.session else None,
            "message": self.message,
        }
