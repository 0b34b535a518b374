"""Domain-specific exceptions for softphone session operations.

These exceptions are safe to import from API layers without pulling in the
telephony adapters.
"""

from __future__ import annotations


class SoftphoneError(Exception):
    status_code: int = 500
    default_detail: str = "Softphone error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class UnauthorizedError(SoftphoneError):
    status_code = 403
    default_detail = "Unauthorized"


class MicrophonePermissionError(SoftphoneError):
    status_code = 503
    default_detail = "Microphone access blocked"


class BootstrapError(SoftphoneError):
    status_code = 503
    default_detail = "Init failed"


class SessionStateError(SoftphoneError):
    status_code = 409
    default_detail = "Operation not allowed in the current session state"


class CollaboratorError(SoftphoneError):
    status_code = 502
    default_detail = "Backend collaborator returned an unusable response"
