"""
Stalker Protocol Module
========================

The ``portal.php`` client plus stream-link and subscription parsing.
"""

from stalker.protocol.client import StalkerClient, build_headers
from stalker.protocol.links import normalize_stream_url
from stalker.protocol.subscription import EXPIRY_FIELDS, map_subscription

__all__ = [
    "StalkerClient",
    "build_headers",
    "normalize_stream_url",
    "EXPIRY_FIELDS",
    "map_subscription",
]
