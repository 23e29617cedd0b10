"""
Stalker Error Taxonomy
=======================

Exceptions raised by the Stalker protocol client and credential tools.

Only faults are exceptions. A portal that answers correctly but says
"no" (no token, no profile, no stream) is reported through ordinary
return values (``False``, ``None``, ``[]``) so callers can retry with a
different credential without unwinding the stack.
"""

from __future__ import annotations

from typing import Optional

from shared.network import TransportError


class StalkerError(Exception):
    """Base class for every StalkerKit error."""


class ProtocolError(StalkerError):
    """The portal could not be reached or answered with garbage.

    Wraps :class:`shared.network.TransportError`; the original exception
    is kept as ``__cause__``.

    Attributes:
        action:      Portal action being performed (``handshake``...).
        status_code: HTTP status when the portal replied with an error.
        timed_out:   ``True`` when the request exceeded its timeout.
    """

    def __init__(
        self,
        message: str,
        *,
        action: str = "",
        status_code: Optional[int] = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message)
        self.action = action
        self.status_code = status_code
        self.timed_out = timed_out

    @classmethod
    def from_transport(cls, exc: TransportError, action: str) -> ProtocolError:
        return cls(
            f"Stalker API error during {action}: {exc}",
            action=action,
            status_code=exc.status_code,
            timed_out=exc.timed_out,
        )


class ValidationFault(StalkerError, ValueError):
    """Malformed input rejected before any network call."""


class SessionError(ValidationFault):
    """An operation that needs a session token was called before handshake."""


class CredentialNotFound(StalkerError):
    """Raised on demand when a discovery run ends without a working MAC."""

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts
