"""
MAC Credential Generator
=========================

Stalker portals authenticate a set-top box by its MAC address, so a MAC
here is a credential rather than a network interface identifier.

Generated addresses keep a vendor prefix (OUI) belonging to a set-top
box family that portals commonly whitelist, and randomise the remaining
octets uniformly.
"""

from __future__ import annotations

import random
import re
from typing import Optional

from stalker.core.errors import ValidationFault

MAC_PATTERN = re.compile(r"^([0-9A-Fa-f]{2}[:-]){5}([0-9A-Fa-f]{2})$")
_NON_HEX = re.compile(r"[^0-9A-Fa-f]")

# Infomir MAG boxes first: it is by far the most common prefix.
DEFAULT_PREFIX = "00:1A:79:"

VENDOR_PREFIXES: tuple[str, ...] = (
    "00:1A:79:",
    "00:2A:01:",
    "00:1B:79:",
    "10:27:BE:",
    "D4:CF:F9:",
)

_OCTETS = 6


def _random_octet(rng: random.Random) -> str:
    return f"{rng.randint(0, 255):02X}"


def _prefix_octets(prefix: str) -> list[str]:
    cleaned = _NON_HEX.sub("", prefix).upper()
    if len(cleaned) % 2 or len(cleaned) > _OCTETS * 2:
        raise ValidationFault(f"Invalid MAC prefix: {prefix!r}")
    return [cleaned[i:i + 2] for i in range(0, len(cleaned), 2)]


def generate_mac(prefix: Optional[str] = None, *, rng: Optional[random.Random] = None) -> str:
    """Generate one MAC address.

    Args:
        prefix: Leading octets in any common notation (``"00:1A:79:"``,
                ``"00-1A-79"``, ``"001A79"``). Defaults to
                :data:`DEFAULT_PREFIX`.
        rng:    Random source, injectable for deterministic tests.

    Returns:
        Uppercase, colon-separated MAC address.

    Raises:
        ValidationFault: If the prefix is not a whole number of octets
            or is longer than a MAC address.
    """
    rng = rng or random
    octets = _prefix_octets(DEFAULT_PREFIX if prefix is None else prefix)
    while len(octets) < _OCTETS:
        octets.append(_random_octet(rng))
    return ":".join(octets)


def generate_multiple_macs(
    count: int,
    prefix: Optional[str] = None,
    *,
    rng: Optional[random.Random] = None,
) -> list[str]:
    """Generate *count* distinct MAC addresses.

    Without an explicit *prefix* the vendor prefixes are used in
    round-robin order, so every built-in prefix is used once before any
    is repeated.
    """
    if count < 0:
        raise ValidationFault(f"MAC count must be non-negative, got {count}")

    macs: list[str] = []
    seen: set[str] = set()
    index = 0
    while len(macs) < count:
        chosen = prefix if prefix is not None else VENDOR_PREFIXES[len(macs) % len(VENDOR_PREFIXES)]
        mac = generate_mac(chosen, rng=rng)
        index += 1
        # A fully specified prefix can only ever produce one address.
        if mac in seen and index < count * 50:
            continue
        seen.add(mac)
        macs.append(mac)
    return macs


def validate_mac(mac: object) -> bool:
    """Strict syntax check: six hex octets separated by ``:`` or ``-``."""
    return isinstance(mac, str) and MAC_PATTERN.fullmatch(mac) is not None


def format_mac(mac: str) -> str:
    """Best-effort canonicalisation to ``XX:XX:XX:XX:XX:XX``.

    Strips every non-hex character; if exactly twelve hex digits remain
    they are re-joined as uppercase colon-separated octets. Anything else
    is returned unchanged, so callers needing strictness must still call
    :func:`validate_mac`.
    """
    if not isinstance(mac, str):
        return mac
    cleaned = _NON_HEX.sub("", mac)
    if len(cleaned) != _OCTETS * 2:
        return mac
    return ":".join(cleaned[i:i + 2] for i in range(0, len(cleaned), 2)).upper()


def normalize_mac(mac: str) -> str:
    """Format then strictly validate *mac*.

    Raises:
        ValidationFault: If the result is not a valid MAC address.
    """
    formatted = format_mac(mac.strip()) if isinstance(mac, str) else mac
    if not validate_mac(formatted):
        raise ValidationFault(f"Invalid MAC address: {mac!r}")
    return formatted
