"""
Stalker Core Data Models
=========================

Pydantic models for Stalker portal sessions, the descriptors a portal
returns (genres, channels, VOD items, EPG programmes), subscription
details, and the results of MAC discovery and batch credential tests.

Portal descriptors are read-only projections: unknown fields are kept
(``extra="allow"``) so a payload can be forwarded untouched, and numeric
identifiers are coerced to strings because portals are inconsistent
about quoting them.
"""

from __future__ import annotations

import enum
from datetime import date
from typing import Annotated, Any, Generic, Optional, TypeVar
from urllib.parse import urlparse

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from stalker.core.errors import CredentialNotFound, ValidationFault
from stalker.credentials.mac import normalize_mac

Profile = dict[str, Any]

T = TypeVar("T")


def normalize_portal_url(url: str) -> str:
    """Return the portal base URL without a trailing ``/`` or ``/portal.php``.

    Raises:
        ValidationFault: If *url* is not an absolute http(s) URL.
    """
    if not isinstance(url, str) or not url.strip():
        raise ValidationFault("Portal URL is required")
    cleaned = url.strip().rstrip("/")
    if cleaned.lower().endswith("/portal.php"):
        cleaned = cleaned[: -len("/portal.php")]
    parsed = urlparse(cleaned)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationFault(f"Invalid portal URL format: {url!r}")
    return cleaned


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class PortalSession(BaseModel):
    """Identity of one logical connection to a portal, before handshake.

    Instances are immutable; a successful handshake produces an
    :class:`AuthenticatedSession` via :meth:`authenticate`.
    """

    model_config = ConfigDict(frozen=True)

    portal_url: str
    mac_address: str
    timezone: str = "UTC"
    language: str = "en"

    @classmethod
    def create(
        cls,
        portal_url: str,
        mac_address: str,
        timezone: Optional[str] = None,
        language: str = "en",
    ) -> PortalSession:
        """Validate and normalise inputs, then build a session.

        Raises:
            ValidationFault: On a malformed portal URL or MAC address.
        """
        return cls(
            portal_url=normalize_portal_url(portal_url),
            mac_address=normalize_mac(mac_address),
            timezone=timezone or "UTC",
            language=language,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.portal_url}/portal.php"

    @property
    def is_authenticated(self) -> bool:
        return False

    def authenticate(self, token: str) -> AuthenticatedSession:
        """Return the post-handshake session carrying *token*."""
        return AuthenticatedSession(
            portal_url=self.portal_url,
            mac_address=self.mac_address,
            timezone=self.timezone,
            language=self.language,
            token=token,
        )


class AuthenticatedSession(PortalSession):
    """A session holding the token issued by ``stb/handshake``."""

    token: str
    profile: Optional[Profile] = None

    @property
    def is_authenticated(self) -> bool:
        return True

    def with_profile(self, profile: Optional[Profile]) -> AuthenticatedSession:
        return self.model_copy(update={"profile": profile})


# ---------------------------------------------------------------------------
# Portal descriptors
# ---------------------------------------------------------------------------


class PortalItem(BaseModel):
    """Common base for everything listed by a portal."""

    model_config = ConfigDict(
        extra="allow",
        frozen=True,
        coerce_numbers_to_str=True,
    )

    id: str


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


# Portals send "" for missing numbers.
OptionalInt = Annotated[Optional[int], BeforeValidator(_blank_to_none)]


class Genre(PortalItem):
    """Live TV genre (``itv/get_genres``)."""

    title: str = ""
    alias: Optional[str] = None


class VodCategory(PortalItem):
    """VOD or series category (``vod|series/get_categories``)."""

    title: str = ""
    alias: Optional[str] = None
    censored: OptionalInt = None


class Channel(PortalItem):
    """Live channel descriptor (``itv/get_ordered_list``, ``get_all_channels``)."""

    name: str = ""
    number: OptionalInt = None
    logo: Optional[str] = None
    cmd: str = ""
    tv_genre_id: Optional[str] = None
    use_http_tmp_link: OptionalInt = None
    use_load_balancing: OptionalInt = None


class VodItem(PortalItem):
    """Fields shared by movies and series."""

    name: str = ""
    o_name: Optional[str] = None
    description: Optional[str] = None
    screenshot_uri: Optional[str] = None
    cmd: str = ""
    year: Optional[str] = None
    director: Optional[str] = None
    actors: Optional[str] = None
    category_id: Optional[str] = None
    genres_str: Optional[str] = None
    rating_imdb: Optional[str] = None
    rating_kinopoisk: Optional[str] = None


class Movie(VodItem):
    """Movie descriptor (``vod/get_ordered_list``)."""

    time: Optional[str] = None


class Series(VodItem):
    """Series descriptor (``series/get_ordered_list``)."""

    series: list[Any] = Field(default_factory=list)


class Season(PortalItem):
    """One season of a series; ``series`` lists its episode numbers."""

    name: str = ""
    cmd: str = ""
    series: list[Any] = Field(default_factory=list)


class Program(PortalItem):
    """EPG programme entry (``itv/get_epg_info``)."""

    ch_id: Optional[str] = None
    name: str = ""
    descr: Optional[str] = None
    time: Optional[str] = None
    time_to: Optional[str] = None
    start_timestamp: OptionalInt = None
    stop_timestamp: OptionalInt = None
    duration: OptionalInt = None


class Page(BaseModel, Generic[T]):
    """One page of a paginated ``get_ordered_list`` response."""

    items: list[T] = Field(default_factory=list)
    page: int = 1
    total_items: int = 0
    max_page_items: int = 0

    @property
    def total_pages(self) -> int:
        if self.max_page_items <= 0:
            return 1 if self.items else 0
        return -(-self.total_items // self.max_page_items)


# ---------------------------------------------------------------------------
# Subscription
# ---------------------------------------------------------------------------


class SubscriptionStatus(str, enum.Enum):
    """Account state derived from account-info fields."""

    ACTIVE = "active"
    EXPIRED = "expired"
    UNLIMITED = "unlimited"
    UNKNOWN = "unknown"


class SubscriptionInfo(BaseModel):
    """Best-effort, normalised view of a portal account's expiry.

    Attributes:
        status:         Derived :class:`SubscriptionStatus`.
        expiry_date:    Calendar expiry date when one was found.
        days_remaining: Calendar days from today to expiry (negative once expired).
        source_field:   Account-info field the value came from.
        raw_value:      The field's original text.
    """

    status: SubscriptionStatus = SubscriptionStatus.UNKNOWN
    expiry_date: Optional[date] = None
    days_remaining: Optional[int] = None
    source_field: Optional[str] = None
    raw_value: Optional[str] = None


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class DiscoveryState(str, enum.Enum):
    """States of the MAC discovery state machine."""

    IDLE = "idle"
    PROBING = "probing"
    FOUND = "found"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


class AttemptOutcome(str, enum.Enum):
    """How a single discovery attempt ended."""

    SUCCESS = "success"
    TIMEOUT = "timeout"
    AUTH_FAILURE = "auth_failure"
    ERROR = "error"


class DiscoveryAttempt(BaseModel):
    """Ephemeral record of one probed candidate."""

    mac_address: str
    outcome: AttemptOutcome
    attempt_index: int
    detail: str = ""


class DiscoveryResult(BaseModel):
    """Outcome of :meth:`MACDiscoveryEngine.find_working_mac`.

    ``tested_sample`` holds at most the configured sample size of
    addresses, never the full list.
    """

    portal_url: str
    state: DiscoveryState
    attempts: int = 0
    mac_address: Optional[str] = None
    profile: Optional[Profile] = None
    tested_sample: list[str] = Field(default_factory=list)
    outcomes: dict[str, int] = Field(default_factory=dict)
    elapsed: float = 0.0

    @property
    def found(self) -> bool:
        return self.state is DiscoveryState.FOUND

    @property
    def message(self) -> str:
        if self.found:
            return f"Found working MAC address after {self.attempts} attempt(s)"
        if self.state is DiscoveryState.CANCELLED:
            return f"Search cancelled after {self.attempts} attempt(s)"
        return f"No working MAC address found after {self.attempts} attempts"

    def raise_for_state(self) -> DiscoveryResult:
        """Return ``self`` when found, otherwise raise :class:`CredentialNotFound`."""
        if not self.found:
            raise CredentialNotFound(self.message, self.attempts)
        return self


# ---------------------------------------------------------------------------
# Batch testing / connection checks
# ---------------------------------------------------------------------------


class WorkingCredential(BaseModel):
    """A MAC address that authenticated and returned a profile."""

    mac: str
    profile: Profile
    subscription: Optional[SubscriptionInfo] = None


class BatchTestResult(BaseModel):
    """Partition of tested MAC addresses into working and failed."""

    portal_url: str
    working: list[WorkingCredential] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.working) + len(self.failed)

    def summary(self) -> dict[str, int]:
        return {
            "total": self.total,
            "working": len(self.working),
            "failed": len(self.failed),
        }


class ConnectionResult(BaseModel):
    """Outcome of a known-credential connection check."""

    portal_url: str
    mac_address: str
    authenticated: bool = False
    token: Optional[str] = None
    profile: Optional[Profile] = None
    subscription: Optional[SubscriptionInfo] = None
