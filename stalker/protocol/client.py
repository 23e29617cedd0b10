"""
Stalker Protocol Client
========================

Async client for Stalker/Ministra middleware (``portal.php``), the
protocol spoken by MAG-series set-top boxes.

Every call is a GET with a ``type`` discriminator, an ``action`` and the
fixed ``JsHttpRequest=1-xml`` marker; payloads come back wrapped in a
``{"js": ...}`` envelope. The session token obtained from
``stb/handshake`` changes the request shape: before it exists the cookie
carries only the MAC; afterwards the cookie also carries language,
timezone and token, and a bearer ``Authorization`` header is added.

Failure semantics:
  - Transport faults (unreachable, timeout, non-2xx, undecodable or
    non-object body) raise :class:`ProtocolError`.
  - A well-formed envelope without the wanted field is a normal negative
    result: ``False`` / ``None`` / ``[]``.

Usage::

    async with StalkerClient("http://portal.example/c", "00:1A:79:12:34:56") as client:
        if await client.handshake():
            profile = await client.get_profile()
            channels = await client.get_all_channels()
"""

from __future__ import annotations

import logging
import time
from datetime import date
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from pydantic import BaseModel, ValidationError

from shared.config import PortalConfig
from shared.logger import mask_token
from shared.network import Envelope, EnvelopeKind, PortalHTTP, Transport, TransportError

from stalker.core.errors import ProtocolError, SessionError, ValidationFault
from stalker.core.models import (
    AuthenticatedSession,
    Channel,
    Genre,
    Movie,
    Page,
    PortalSession,
    Profile,
    Program,
    Season,
    Series,
    SubscriptionInfo,
    VodCategory,
)
from stalker.protocol.links import normalize_stream_url
from stalker.protocol.subscription import map_subscription

logger = logging.getLogger("stalkerkit.stalker.protocol")

ModelT = TypeVar("ModelT", bound=BaseModel)

JS_HTTP_REQUEST = "1-xml"

# Query values a real MAG box sends with get_profile.
_PROFILE_PARAMS: dict[str, str] = {
    "hd": "1",
    "num_banks": "2",
    "stb_type": "MAG250",
    "image_version": "218",
    "video_out": "hdmi",
    "auth_second_step": "1",
    "not_valid_token": "0",
}

_LINK_PARAMS: dict[str, str] = {
    "series": "",
    "forced_storage": "undefined",
    "disable_ad": "0",
    "download": "0",
}


def build_headers(
    session: PortalSession,
    *,
    user_agent: str,
    x_user_agent: str,
) -> dict[str, str]:
    """Request headers for *session*.

    Only the presence of a token (an :class:`AuthenticatedSession`)
    selects the post-handshake shape.
    """
    headers = {
        "User-Agent": user_agent,
        "X-User-Agent": x_user_agent,
    }
    if isinstance(session, AuthenticatedSession):
        headers["Cookie"] = (
            f"mac={session.mac_address}; stb_lang={session.language}; "
            f"timezone={session.timezone}; token={session.token}"
        )
        headers["Authorization"] = f"Bearer {session.token}"
    else:
        headers["Cookie"] = f"mac={session.mac_address}"
    return headers


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _entries(payload: Any) -> list[Any]:
    """List entries of a payload that is either a bare list or ``{"data": [...]}``."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("data"), list):
        return payload["data"]
    return []


def _parse_models(model: type[ModelT], entries: Sequence[Any]) -> list[ModelT]:
    parsed: list[ModelT] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        try:
            parsed.append(model.model_validate(entry))
        except ValidationError as exc:
            logger.debug("Skipping %s entry: %s", model.__name__, exc.errors()[:1])
    return parsed


class StalkerClient:
    """One portal session: URL, MAC credential, timezone and token.

    The client holds an immutable session value that moves from
    :class:`PortalSession` to :class:`AuthenticatedSession` on a
    successful :meth:`handshake`. Operations that need the token raise
    :class:`SessionError` before touching the network when called on an
    unauthenticated client.

    Args:
        portal_url:  Portal base URL (``.../portal.php`` is appended).
        mac_address: MAC credential; formatted then strictly validated.
        timezone:    Timezone sent in the post-handshake cookie.
        transport:   Shared :class:`shared.network.Transport`. When omitted
                     the client owns a :class:`PortalHTTP`, closed by
                     :meth:`close`.
        config:      Request-shaping settings (agents, timeout, language).

    Raises:
        ValidationFault: On a malformed portal URL or MAC address.
    """

    def __init__(
        self,
        portal_url: str,
        mac_address: str,
        timezone: Optional[str] = None,
        *,
        transport: Optional[Transport] = None,
        config: Optional[PortalConfig] = None,
    ) -> None:
        self._config = config or PortalConfig()
        self._base = PortalSession.create(
            portal_url,
            mac_address,
            timezone or self._config.timezone,
            self._config.language,
        )
        self._session: PortalSession = self._base

        self._owns_transport = transport is None
        self._transport: Transport = transport or PortalHTTP(
            timeout=self._config.request_timeout
        )

    # ------------------------------------------------------------------ #
    #  Lifecycle
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> StalkerClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the transport if this client created it."""
        if self._owns_transport and isinstance(self._transport, PortalHTTP):
            await self._transport.close()

    # ------------------------------------------------------------------ #
    #  Accessors
    # ------------------------------------------------------------------ #

    @property
    def session(self) -> PortalSession:
        return self._session

    @property
    def is_authenticated(self) -> bool:
        return isinstance(self._session, AuthenticatedSession)

    def get_token(self) -> Optional[str]:
        if isinstance(self._session, AuthenticatedSession):
            return self._session.token
        return None

    def get_mac_address(self) -> str:
        return self._session.mac_address

    def headers(self) -> dict[str, str]:
        """Headers the next request will carry."""
        return build_headers(
            self._session,
            user_agent=self._config.user_agent,
            x_user_agent=self._config.x_user_agent,
        )

    # ------------------------------------------------------------------ #
    #  Request plumbing
    # ------------------------------------------------------------------ #

    def _authenticated(self, action: str) -> AuthenticatedSession:
        if not isinstance(self._session, AuthenticatedSession):
            raise SessionError(f"Handshake required before {action}")
        return self._session

    async def _request(
        self,
        session: PortalSession,
        type_: str,
        action: str,
        **params: Any,
    ) -> Envelope:
        query: dict[str, Any] = {"type": type_, "action": action}
        query.update({k: v for k, v in params.items() if v is not None})
        query["JsHttpRequest"] = JS_HTTP_REQUEST

        headers = build_headers(
            session,
            user_agent=self._config.user_agent,
            x_user_agent=self._config.x_user_agent,
        )
        try:
            data = await self._transport.get_json(
                session.endpoint,
                params=query,
                headers=headers,
                timeout=self._config.request_timeout,
            )
        except TransportError as exc:
            logger.warning(
                "%s/%s failed for %s: %s", type_, action, session.mac_address, exc
            )
            raise ProtocolError.from_transport(exc, action) from exc

        envelope = Envelope.parse(data)
        if envelope.kind is EnvelopeKind.MALFORMED:
            raise ProtocolError(
                f"Malformed response to {action}: expected a JSON object",
                action=action,
            )
        if envelope.kind is EnvelopeKind.EMPTY:
            logger.debug("%s/%s returned no data", type_, action)
        return envelope

    async def _call(self, type_: str, action: str, **params: Any) -> Envelope:
        return await self._request(self._authenticated(action), type_, action, **params)

    async def _page(
        self,
        model: type[ModelT],
        type_: str,
        page: int,
        **params: Any,
    ) -> Page[ModelT]:
        if page < 1:
            raise ValidationFault(f"Page numbers start at 1, got {page}")
        envelope = await self._call(type_, "get_ordered_list", p=page, **params)
        payload = envelope.payload if envelope.ok else {}
        meta = payload if isinstance(payload, dict) else {}
        return Page[model](
            items=_parse_models(model, _entries(payload)),
            page=page,
            total_items=_to_int(meta.get("total_items")),
            max_page_items=_to_int(meta.get("max_page_items")),
        )

    @staticmethod
    async def _collect_pages(
        fetch: Callable[[int], Awaitable[Page[ModelT]]],
        max_pages: Optional[int] = None,
    ) -> list[ModelT]:
        """Walk pages until an empty page, a short page, or the reported last page."""
        items: list[ModelT] = []
        page = 1
        while True:
            result = await fetch(page)
            items.extend(result.items)
            if not result.items:
                break
            if page >= result.total_pages:
                break
            if result.max_page_items and len(result.items) < result.max_page_items:
                break
            if max_pages is not None and page >= max_pages:
                break
            page += 1
        return items

    # ================================================================== #
    #  Authentication
    # ================================================================== #

    async def handshake(self) -> bool:
        """Obtain a session token (``stb/handshake``).

        Sent with the current session, so a client that already holds a
        token re-handshakes with it. Returns ``False`` when the portal
        answers without a token, which is how a rejected credential
        normally looks; an existing token is kept in that case.

        Raises:
            ProtocolError: If the portal could not be reached.
        """
        envelope = await self._request(
            self._session,
            "stb",
            "handshake",
            prehash=str(int(time.time() * 1000)),
        )
        token = envelope.field("token")
        if not token:
            logger.debug("Handshake for %s returned no token", self._base.mac_address)
            return False

        self._session = self._base.authenticate(str(token))
        logger.debug(
            "Handshake for %s succeeded (token %s)",
            self._base.mac_address,
            mask_token(str(token)),
        )
        return True

    async def get_profile(self) -> Optional[Profile]:
        """Fetch the raw STB profile, or ``None`` when the portal sends none."""
        envelope = await self._call("stb", "get_profile", **_PROFILE_PARAMS)
        if not envelope.ok or not isinstance(envelope.payload, dict):
            return None
        profile: Profile = envelope.payload
        self._session = self._authenticated("get_profile").with_profile(profile)
        return profile

    async def test_connection(self) -> bool:
        """Handshake and confirm that a profile comes back."""
        if not await self.handshake():
            return False
        return await self.get_profile() is not None

    # ================================================================== #
    #  Live TV
    # ================================================================== #

    async def get_genres(self) -> list[Genre]:
        envelope = await self._call("itv", "get_genres")
        return _parse_models(Genre, _entries(envelope.payload))

    async def get_channels_page(self, genre: Optional[str] = None, page: int = 1) -> Page[Channel]:
        return await self._page(Channel, "itv", page, genre=genre or None)

    async def get_channels(self, genre: Optional[str] = None, page: int = 1) -> list[Channel]:
        """One page of channels, optionally filtered by genre id."""
        return (await self.get_channels_page(genre, page)).items

    async def get_all_channels(self) -> list[Channel]:
        envelope = await self._call("itv", "get_all_channels")
        return _parse_models(Channel, _entries(envelope.payload))

    async def get_epg(self, channel_id: str, period_days: int = 7) -> list[Program]:
        """Programme guide for one channel, *period_days* ahead."""
        if not channel_id:
            raise ValidationFault("channel_id is required")
        if period_days < 1:
            raise ValidationFault(f"period_days must be positive, got {period_days}")

        envelope = await self._call("itv", "get_epg_info", id=channel_id, period=period_days)
        data = envelope.payload.get("data") if isinstance(envelope.payload, dict) else envelope.payload
        if isinstance(data, dict):
            # Some portals key the guide by channel id.
            data = data.get(str(channel_id), [])
        return _parse_models(Program, data if isinstance(data, list) else [])

    async def get_short_epg(self, channel_ids: Sequence[str]) -> dict[str, list[Program]]:
        """Current/next programmes for several channels, keyed by channel id."""
        ids = [str(ch) for ch in channel_ids if ch]
        if not ids:
            raise ValidationFault("At least one channel id is required")

        envelope = await self._call("itv", "get_short_epg", ch_id=",".join(ids))
        data = envelope.payload.get("data") if isinstance(envelope.payload, dict) else envelope.payload

        guide: dict[str, list[Program]] = {}
        if isinstance(data, dict):
            for key, entries in data.items():
                guide[str(key)] = _parse_models(Program, entries if isinstance(entries, list) else [])
        elif isinstance(data, list):
            for program in _parse_models(Program, data):
                guide.setdefault(program.ch_id or "", []).append(program)
        return guide

    async def get_subtitles(self, channel_id: str) -> Optional[Any]:
        if not channel_id:
            raise ValidationFault("channel_id is required")
        envelope = await self._call("itv", "get_subtitles", id=channel_id)
        return envelope.payload if envelope.ok else None

    # ================================================================== #
    #  VOD
    # ================================================================== #

    async def get_vod_categories(self) -> list[VodCategory]:
        envelope = await self._call("vod", "get_categories")
        return _parse_models(VodCategory, _entries(envelope.payload))

    async def get_movies_page(self, category: Optional[str] = None, page: int = 1) -> Page[Movie]:
        return await self._page(Movie, "vod", page, category=category or None)

    async def get_movies(self, category: Optional[str] = None, page: int = 1) -> list[Movie]:
        return (await self.get_movies_page(category, page)).items

    async def get_all_movies(
        self,
        category: Optional[str] = None,
        max_pages: Optional[int] = None,
    ) -> list[Movie]:
        return await self._collect_pages(
            lambda page: self.get_movies_page(category, page), max_pages
        )

    async def get_series_categories(self) -> list[VodCategory]:
        envelope = await self._call("series", "get_categories")
        return _parse_models(VodCategory, _entries(envelope.payload))

    async def get_series_page(self, category: Optional[str] = None, page: int = 1) -> Page[Series]:
        return await self._page(Series, "series", page, category=category or None)

    async def get_series(self, category: Optional[str] = None, page: int = 1) -> list[Series]:
        return (await self.get_series_page(category, page)).items

    async def get_all_series(
        self,
        category: Optional[str] = None,
        max_pages: Optional[int] = None,
    ) -> list[Series]:
        return await self._collect_pages(
            lambda page: self.get_series_page(category, page), max_pages
        )

    async def get_seasons(self, series_id: str, max_pages: Optional[int] = None) -> list[Season]:
        if not series_id:
            raise ValidationFault("series_id is required")
        return await self._collect_pages(
            lambda page: self._page(
                Season, "series", page, movie_id=series_id, season_id=0, episode_id=0
            ),
            max_pages,
        )

    # ================================================================== #
    #  Stream resolution
    # ================================================================== #

    async def _create_link(self, type_: str, cmd: str, **params: Any) -> Optional[str]:
        if not cmd or not cmd.strip():
            raise ValidationFault("cmd is required to create a link")

        envelope = await self._call(type_, "create_link", cmd=cmd, **_LINK_PARAMS, **params)
        raw = envelope.field("cmd")
        url = normalize_stream_url(raw)
        if url is None:
            logger.info("Portal returned no playable URL for %s link", type_)
        return url

    async def create_link(self, cmd: str, channel_id: Optional[str] = None) -> Optional[str]:
        """Resolve a live channel ``cmd`` into a playable URL, or ``None``."""
        logger.debug("Creating live link for channel %s", channel_id)
        return await self._create_link("itv", cmd)

    async def create_vod_link(self, cmd: str, content_id: Optional[str] = None) -> Optional[str]:
        """Resolve a movie ``cmd`` into a playable URL, or ``None``."""
        logger.debug("Creating VOD link for content %s", content_id)
        return await self._create_link("vod", cmd)

    async def create_series_link(
        self,
        cmd: str,
        content_id: Optional[str] = None,
        season: Optional[str] = None,
        episode: Optional[str] = None,
    ) -> Optional[str]:
        """Resolve a series episode ``cmd`` into a playable URL, or ``None``."""
        logger.debug(
            "Creating series link for content %s (season %s, episode %s)",
            content_id, season, episode,
        )
        return await self._create_link("series", cmd, season=season, episode=episode)

    # ================================================================== #
    #  Account
    # ================================================================== #

    async def get_account_info(self) -> Optional[dict[str, Any]]:
        """Raw ``account_info/get_main_info`` payload, or ``None``."""
        envelope = await self._call("account_info", "get_main_info")
        if envelope.ok and isinstance(envelope.payload, dict):
            return envelope.payload
        return None

    async def get_subscription_info(self, today: Optional[date] = None) -> Optional[SubscriptionInfo]:
        """Normalised expiry details; ``None`` when the portal has no account info."""
        info = await self.get_account_info()
        if info is None:
            return None
        return map_subscription(info, today=today)
