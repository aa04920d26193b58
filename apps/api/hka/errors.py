from __future__ import annotations

from typing import Any, Dict, Optional


class HkaError(Exception):
    """Vendor, authentication, transport or credential failure talking to HKA.

    `status` is HTTP-like so callers can map it straight to a response code.
    """

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        body: Any = None,
        attempts: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.body = body
        self.attempts = attempts

    @property
    def is_auth_error(self) -> bool:
        return self.status in {401, 403}

    def body_message(self) -> str:
        if isinstance(self.body, dict) and self.body.get("message"):
            return str(self.body["message"])
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {"details": self.message, "status": self.status, "body": self.body}


class InvoicePayloadError(ValueError):
    """The invoice JSON cannot be turned into a fiscal document."""
