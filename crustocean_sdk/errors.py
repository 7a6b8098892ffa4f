"""
Exception types raised by the Crustocean SDK.

Every error carries a human-readable message. REST failures also carry the
HTTP status code and the parsed response body (``{}`` when it was not JSON).
"""

from __future__ import annotations

from typing import Any


class CrustoceanError(Exception):
    """Base exception for all SDK errors."""

    def __init__(self, message: str, status_code: int = 0, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class AuthError(CrustoceanError):
    """Credential rejected or expired (agent not verified, bad token, 401/403)."""


class NotFoundError(CrustoceanError):
    """Agency id or slug has no match in the directory."""


class PreconditionError(CrustoceanError):
    """Operation called before the session reached the required state."""


class TransportError(CrustoceanError):
    """Channel failed to open, the server rejected a join, or HTTP transport failed."""


class RemoteError(CrustoceanError):
    """REST call returned a non-success status."""


class PaymentError(CrustoceanError):
    """HTTP 402 challenge that the payment client cannot satisfy."""
