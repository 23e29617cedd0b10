"""
Stalker Core Module
====================

Engine facade, data models, and the error taxonomy.
"""

from stalker.core.errors import (
    CredentialNotFound,
    ProtocolError,
    SessionError,
    StalkerError,
    ValidationFault,
)

__all__ = [
    "StalkerError",
    "ProtocolError",
    "ValidationFault",
    "SessionError",
    "CredentialNotFound",
]
