"""Launch-context parsing and outbound number normalization."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping

from session.models import SessionMode

_DIAL_NOISE = re.compile(r"[\s()\-]")


def normalize_number(raw: str) -> str:
    """Strip whitespace, parentheses and dashes; ensure a leading '+'."""

    number = _DIAL_NOISE.sub("", raw)
    if not number.startswith("+"):
        number = "+" + number
    return number


@dataclass(frozen=True, slots=True)
class SessionContext:
    mode: SessionMode
    org_id: str | None = None
    customer_id: str | None = None
    destination: str | None = None
    access_key: str | None = None


def _param(params: Mapping[str, str], name: str) -> str | None:
    value = params.get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def resolve_mode(params: Mapping[str, str]) -> SessionMode:
    explicit = (_param(params, "mode") or "").lower()
    if explicit in {SessionMode.INBOUND.value, SessionMode.OUTBOUND.value}:
        return SessionMode(explicit)
    return SessionMode.OUTBOUND if _param(params, "to") else SessionMode.INBOUND


def resolve_context(params: Mapping[str, str]) -> SessionContext:
    """Read the launch parameters once. Missing values propagate as None."""

    destination = _param(params, "to")
    return SessionContext(
        mode=resolve_mode(params),
        org_id=_param(params, "orgId"),
        customer_id=_param(params, "customerId"),
        destination=normalize_number(destination) if destination else None,
        access_key=_param(params, "accessKey"),
    )
