"""
Stalker Credentials Module
===========================

MAC address generation and validation, the discovery engine
(``stalker.credentials.discovery``) and the batch tester
(``stalker.credentials.batch``).
"""

from stalker.credentials.mac import (
    format_mac,
    generate_mac,
    generate_multiple_macs,
    validate_mac,
)

__all__ = ["generate_mac", "generate_multiple_macs", "validate_mac", "format_mac"]
