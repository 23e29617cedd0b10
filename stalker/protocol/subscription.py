"""
Subscription Info Mapping
==========================

Portals report account expiry under several different field names and
formats. :data:`EXPIRY_FIELDS` is an ordered table of
``(field_name, parser)`` pairs; the first field whose parser yields a
value decides the result. Supporting a newly observed portal variant
means adding a row, not a branch.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional, Union

from stalker.core.models import SubscriptionInfo, SubscriptionStatus

UNLIMITED = "unlimited"

# A parser returns a date, the UNLIMITED marker, or None when it does not apply.
ParsedExpiry = Union[date, str, None]
ExpiryParser = Callable[[Any], ParsedExpiry]

_DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y",
    "%d/%m/%Y",
    "%B %d, %Y, %I:%M %p",
    "%B %d, %Y",
    "%b %d, %Y",
)

_ZERO_DATE = re.compile(r"^0{4}-0{2}-0{2}")


def parse_expiry(value: Any) -> ParsedExpiry:
    """Interpret one raw account-info value.

    Accepts the literal ``unlimited`` (any case), zero dates
    (``0000-00-00``, which portals use for "never expires"), unix
    timestamps, and the date formats in :data:`_DATE_FORMATS`.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _from_timestamp(value)

    text = str(value).strip()
    if not text:
        return None
    if text.lower() == UNLIMITED or _ZERO_DATE.match(text):
        return UNLIMITED
    # Short digit runs are ids or prices, not epoch seconds.
    if text.isdigit() and len(text) >= 9:
        return _from_timestamp(int(text))

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_expiry_text(value: Any) -> ParsedExpiry:
    """Like :func:`parse_expiry` but never reads numbers as timestamps.

    Used for free-text fields such as ``phone``, where a digit run is a
    phone number.
    """
    if isinstance(value, (int, float)) or str(value).strip().lstrip("+").isdigit():
        return None
    return parse_expiry(value)


def _from_timestamp(value: float) -> Optional[date]:
    if value <= 0:
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc).date()
    except (OverflowError, OSError, ValueError):
        return None


EXPIRY_FIELDS: tuple[tuple[str, ExpiryParser], ...] = (
    ("expire_date", parse_expiry),
    ("expiry_date", parse_expiry),
    ("account_expire", parse_expiry),
    ("end_date", parse_expiry),
    ("expire_billing_date", parse_expiry),
    # Some middleware builds put the expiry text in the phone field.
    ("phone", parse_expiry_text),
)


def map_subscription(
    account_info: dict[str, Any],
    *,
    today: Optional[date] = None,
    fields: tuple[tuple[str, ExpiryParser], ...] = EXPIRY_FIELDS,
) -> SubscriptionInfo:
    """Build :class:`SubscriptionInfo` from a raw account-info payload.

    Args:
        account_info: The ``js`` object of ``account_info/get_main_info``.
        today:        Reference day for ``days_remaining``; defaults to today.
        fields:       Ordered ``(field_name, parser)`` candidates.
    """
    today = today or date.today()

    for name, parser in fields:
        raw = account_info.get(name)
        parsed = parser(raw)
        if parsed is None:
            continue

        if parsed == UNLIMITED:
            return SubscriptionInfo(
                status=SubscriptionStatus.UNLIMITED,
                source_field=name,
                raw_value=str(raw),
            )

        days = (parsed - today).days
        return SubscriptionInfo(
            status=SubscriptionStatus.ACTIVE if days >= 0 else SubscriptionStatus.EXPIRED,
            expiry_date=parsed,
            days_remaining=days,
            source_field=name,
            raw_value=str(raw),
        )

    return SubscriptionInfo(status=SubscriptionStatus.UNKNOWN)
