"""In-memory session and call entities owned by the coordinator."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def elapsed_seconds(start: datetime, end: datetime) -> int:
    """Whole seconds from ``start`` to ``end``, floored and never negative."""

    return max(0, int((end - start).total_seconds()))


class SessionMode(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"

    def __str__(self) -> str:
        return self.value


class AuthorizationState(str, Enum):
    UNCHECKED = "unchecked"
    AUTHORIZED = "authorized"
    DENIED = "denied"


class SessionStatus(str, Enum):
    """Operator-facing session status."""

    INITIALIZING = "initializing"
    UNAUTHORIZED = "unauthorized"
    BLOCKED = "blocked"
    INIT_FAILED = "init_failed"
    READY = "ready"
    INCOMING = "incoming"
    DIALING = "dialing"
    RINGING = "ringing"
    CONNECTED = "connected"
    ENDED = "ended"
    REJECTED = "rejected"
    FAILED = "failed"
    CLOSED = "closed"

    @property
    def is_fatal(self) -> bool:
        return self in {SessionStatus.UNAUTHORIZED, SessionStatus.INIT_FAILED, SessionStatus.CLOSED}


class CallState(str, Enum):
    IDLE = "idle"
    RINGING_IN = "ringing_in"
    DIALING_OUT = "dialing_out"
    ACTIVE = "active"
    ENDED = "ended"


class CallStatus(str, Enum):
    """Terminal status recorded in the call log."""

    ENDED = "ended"
    FAILED = "failed"
    REJECTED = "rejected"


@dataclass
class Call:
    """One signaling exchange, from ring to termination."""

    direction: SessionMode
    remote_number: str | None
    state: CallState = CallState.IDLE
    started_at: datetime | None = None
    ended_at: datetime | None = None
    status: CallStatus | None = None
    reason: str | None = None
    logged: bool = False
    handle: Any = None

    @property
    def is_terminal(self) -> bool:
        return self.state == CallState.ENDED

    @property
    def duration_seconds(self) -> int:
        if self.started_at is None or self.ended_at is None:
            return 0
        return elapsed_seconds(self.started_at, self.ended_at)


@dataclass
class Session:
    """Per-agent softphone state. Mutated only by the coordinator."""

    mode: SessionMode
    org_id: str | None = None
    customer_id: str | None = None
    destination: str | None = None
    access_key: str | None = field(default=None, repr=False)
    authorization: AuthorizationState = AuthorizationState.UNCHECKED
    audio_ready: bool = False
    status: SessionStatus = SessionStatus.INITIALIZING
    status_text: str = "Initializing…"
    muted: bool = False
    duration_seconds: int = 0

    def set_status(self, status: SessionStatus, text: str) -> None:
        self.status = status
        self.status_text = text
