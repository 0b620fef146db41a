"""Data models for the agent session core."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Any


class AgentStatus(Enum):
    """Coarse-grained phase of an agent session."""
    IDLE = "idle"
    STARTING = "starting"
    THINKING = "thinking"
    EDITING = "editing"
    RUNNING_COMMAND = "running-command"
    WAITING = "waiting"
    COMPLETED = "completed"
    ERROR = "error"
    STOPPED = "stopped"


TERMINAL_STATUSES = frozenset({
    AgentStatus.COMPLETED,
    AgentStatus.ERROR,
    AgentStatus.STOPPED,
})

WORKING_STATUSES = frozenset({
    AgentStatus.THINKING,
    AgentStatus.EDITING,
    AgentStatus.RUNNING_COMMAND,
    AgentStatus.WAITING,
})

# Allowed transitions. Working statuses may cycle among themselves freely.
ALLOWED_TRANSITIONS: dict[AgentStatus, frozenset] = {
    AgentStatus.IDLE: frozenset({AgentStatus.STARTING}),
    AgentStatus.STARTING: WORKING_STATUSES | TERMINAL_STATUSES,
    **{status: WORKING_STATUSES | TERMINAL_STATUSES for status in WORKING_STATUSES},
    **{status: frozenset() for status in TERMINAL_STATUSES},
}


def is_terminal(status: AgentStatus) -> bool:
    """Return True if no further transitions are possible from status."""
    return status in TERMINAL_STATUSES


def can_transition(current: AgentStatus, new: AgentStatus) -> bool:
    """Check a transition against the status table."""
    return new in ALLOWED_TRANSITIONS[current]


class PermissionMode(Enum):
    """Launch-time permission mode for the agent process."""
    ACCEPT_EDITS = "accept-edits"  # Mutate files without confirmation
    ASK_USER = "ask-user"          # Tool default (confirmation prompts)
    PLAN_ONLY = "plan-only"        # Propose changes, never apply them

    @classmethod
    def parse(cls, value: Any) -> "PermissionMode":
        """
        Parse a permission mode from its wire spelling.

        Accepts the hyphenated values as well as camelCase
        (``acceptEdits``) and snake_case (``accept_edits``) spellings.

        Raises:
            ValueError: If value is not a known permission mode
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Invalid permission mode: {value!r}")

        normalized = value.strip().replace("_", "-")
        # camelCase -> kebab-case
        normalized = "".join(
            f"-{ch.lower()}" if ch.isupper() else ch for ch in normalized
        ).lstrip("-")
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Invalid permission mode: {value!r}") from None


@dataclass(frozen=True)
class StatusEvent:
    """Status change published for a session."""
    session_id: str
    status: AgentStatus
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"session_id": self.session_id, "status": self.status.value}
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class ActivityLineEvent:
    """Human-readable progress line published for a session."""
    session_id: str
    line: str

    def to_dict(self) -> dict:
        return {"session_id": self.session_id, "line": self.line}


@dataclass(frozen=True)
class ClassifiedOutput:
    """Result of classifying one chunk of agent output."""
    status: AgentStatus
    line: Optional[str] = None


@dataclass(eq=False)
class AgentSession:
    """One in-flight run of the coding agent, owned by the SessionRegistry."""
    id: str
    work_dir: str
    instruction: str
    permission_mode: PermissionMode
    current_status: AgentStatus = AgentStatus.STARTING
    aborted: bool = False
    finished: bool = False  # Terminal status published
    process: Optional[Any] = None  # asyncio.subprocess.Process, real driver only
    created_at: datetime = field(default_factory=datetime.now)
    last_activity: datetime = field(default_factory=datetime.now)

    @property
    def accepting_events(self) -> bool:
        """True while events derived from this session may still be published."""
        return not (self.aborted or self.finished)

    def to_dict(self) -> dict:
        """Convert session to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "work_dir": self.work_dir,
            "instruction": self.instruction,
            "permission_mode": self.permission_mode.value,
            "status": self.current_status.value,
            "pid": getattr(self.process, "pid", None),
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
        }
