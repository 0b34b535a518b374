"""Pydantic schemas exchanged with the backend collaborators."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from session.models import Call, Session, SessionMode


def to_iso_millis(value: datetime) -> str:
    """Render a timestamp as ISO-8601 UTC with milliseconds, e.g. 2024-05-01T10:00:00.000Z."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class CallLogRecord(BaseModel):
    """Immutable audit record for one terminated call."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    to: str | None
    status: Literal["ended", "failed", "rejected"]
    reason: str | None = None
    direction: Literal["inbound", "outbound"]
    started_at: datetime | None = Field(default=None, alias="startedAt")
    ended_at: datetime | None = Field(default=None, alias="endedAt")
    duration_seconds: int = Field(default=0, ge=0, alias="durationSeconds")
    org_id: str | None = Field(default=None, alias="orgId")
    customer_id: str | None = Field(default=None, alias="customerId")

    @field_serializer("started_at", "ended_at")
    def serialize_timestamp(self, value: datetime | None) -> str | None:
        return to_iso_millis(value) if value is not None else None

    @classmethod
    def from_call(cls, call: Call, session: Session) -> CallLogRecord:
        if call.status is None:
            raise ValueError("Cannot build a log record for a call without terminal status.")
        return cls(
            to=call.remote_number,
            status=call.status.value,
            reason=call.reason,
            direction=call.direction.value,
            started_at=call.started_at,
            ended_at=call.ended_at,
            duration_seconds=call.duration_seconds,
            org_id=session.org_id,
            customer_id=session.customer_id if call.direction == SessionMode.OUTBOUND else None,
        )

    def to_payload(self) -> dict:
        payload = self.model_dump(by_alias=True, mode="json")
        if self.direction != SessionMode.OUTBOUND.value:
            payload.pop("customerId", None)
        return payload


class AccessVerification(BaseModel):
    org_id: str | None = Field(default=None, alias="orgId")


class IdentityToken(BaseModel):
    token: str = Field(min_length=1)
