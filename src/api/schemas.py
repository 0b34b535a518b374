"""API-facing Pydantic models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class CallSummary(BaseModel):
    direction: str
    remote_number: str | None = None
    status: str | None = None
    reason: str | None = None
    duration_seconds: int = 0
    logged: bool = False


class SessionSnapshot(BaseModel):
    mode: str
    status: str
    status_text: str = Field(description="Short human-readable status for the operator.")
    authorization: str
    audio_ready: bool
    org_id: str | None = None
    destination: str | None = None
    call_state: str
    remote_number: str | None = None
    duration_seconds: int = 0
    muted: bool = False
    last_call: CallSummary | None = None


class MuteRequest(BaseModel):
    muted: bool
