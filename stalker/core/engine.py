"""
Stalker Engine
===============

Facade tying the protocol client, MAC discovery and batch testing to a
single configuration and one shared HTTP transport. The CLI talks only to
this class.

Known-credential path::

    engine.connect / list_channels / resolve_stream
        -> StalkerClient -> PortalHTTP -> portal

Unknown-credential path::

    engine.discover -> MACDiscoveryEngine -> StalkerClient (one per attempt)
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any, AsyncIterator, Optional, Sequence

from shared.config import StalkerKitConfig
from shared.network import PortalHTTP, Transport

from stalker.core.errors import CredentialNotFound, ValidationFault
from stalker.core.models import (
    BatchTestResult,
    Channel,
    ConnectionResult,
    DiscoveryResult,
    Genre,
    Movie,
    Program,
    Season,
    Series,
    VodCategory,
)
from stalker.credentials.batch import BatchCredentialTester
from stalker.credentials.discovery import AttemptCallback, MACDiscoveryEngine
from stalker.credentials.mac import format_mac, generate_multiple_macs, validate_mac
from stalker.protocol.client import StalkerClient

logger = logging.getLogger("stalkerkit.stalker.engine")

STREAM_KINDS = ("live", "movie", "series")


class StalkerEngine:
    """Entry point for every StalkerKit operation.

    Usage::

        async with StalkerEngine() as engine:
            result = await engine.connect("http://portal.example/c", "00:1A:79:00:00:01")
            print(result.authenticated, result.subscription)

    Args:
        config:    Loaded :class:`StalkerKitConfig`; defaults are used if ``None``.
        transport: Transport shared by all clients. A :class:`PortalHTTP`
                   owned by the engine is created when omitted.
    """

    def __init__(
        self,
        config: Optional[StalkerKitConfig] = None,
        *,
        transport: Optional[Transport] = None,
    ) -> None:
        self.config = config or StalkerKitConfig()
        self._owns_transport = transport is None
        self.transport: Transport = transport or PortalHTTP(
            timeout=self.config.portal.request_timeout
        )
        self.batch = BatchCredentialTester(
            self.config.batch,
            portal_config=self.config.portal,
            transport=self.transport,
        )

    async def __aenter__(self) -> StalkerEngine:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_transport and isinstance(self.transport, PortalHTTP):
            await self.transport.close()

    def _timezone(self, timezone: Optional[str]) -> str:
        return timezone or self.config.portal.timezone

    # ================================================================== #
    #  Credentials (offline)
    # ================================================================== #

    @staticmethod
    def generate_macs(count: int = 1, prefix: Optional[str] = None) -> list[str]:
        return generate_multiple_macs(count, prefix or None)

    @staticmethod
    def validate_macs(macs: Sequence[str]) -> list[dict[str, Any]]:
        """Format and validate each MAC; one ``{input, formatted, valid}`` row each."""
        rows = []
        for raw in macs:
            formatted = format_mac(raw.strip())
            rows.append({"input": raw, "formatted": formatted, "valid": validate_mac(formatted)})
        return rows

    # ================================================================== #
    #  Sessions
    # ================================================================== #

    def client(self, portal_url: str, mac_address: str, timezone: Optional[str] = None) -> StalkerClient:
        """A fresh client on the shared transport."""
        return StalkerClient(
            portal_url,
            mac_address,
            self._timezone(timezone),
            transport=self.transport,
            config=self.config.portal,
        )

    @asynccontextmanager
    async def session(
        self,
        portal_url: str,
        mac_address: str,
        timezone: Optional[str] = None,
    ) -> AsyncIterator[StalkerClient]:
        """Yield a client that has completed the handshake.

        Raises:
            CredentialNotFound: When the portal issues no token for the MAC.
        """
        async with self.client(portal_url, mac_address, timezone) as client:
            if not await client.handshake():
                raise CredentialNotFound(
                    f"Portal rejected MAC address {client.get_mac_address()}", attempts=1
                )
            yield client

    async def connect(
        self,
        portal_url: str,
        mac_address: str,
        timezone: Optional[str] = None,
    ) -> ConnectionResult:
        """Handshake, then fetch profile and subscription for a known MAC."""
        async with self.client(portal_url, mac_address, timezone) as client:
            result = ConnectionResult(
                portal_url=client.session.portal_url,
                mac_address=client.get_mac_address(),
            )
            if not await client.handshake():
                return result

            profile = await client.get_profile()
            subscription = await client.get_subscription_info() if profile is not None else None
            return result.model_copy(
                update={
                    "authenticated": profile is not None,
                    "token": client.get_token(),
                    "profile": profile,
                    "subscription": subscription,
                }
            )

    # ================================================================== #
    #  Discovery and auditing
    # ================================================================== #

    async def discover(
        self,
        portal_url: str,
        timezone: Optional[str] = None,
        *,
        max_attempts: Optional[int] = None,
        attempt_timeout: Optional[float] = None,
        attempt_delay: Optional[float] = None,
        prefix: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        on_attempt: Optional[AttemptCallback] = None,
    ) -> DiscoveryResult:
        """Run a MAC search; keyword overrides apply to this run only."""
        overrides = {
            key: value
            for key, value in (
                ("max_attempts", max_attempts),
                ("attempt_timeout", attempt_timeout),
                ("attempt_delay", attempt_delay),
            )
            if value is not None
        }
        discovery = MACDiscoveryEngine(
            replace(self.config.discovery, **overrides),
            portal_config=self.config.portal,
            transport=self.transport,
        )
        return await discovery.find_working_mac(
            portal_url,
            self._timezone(timezone),
            prefix=prefix,
            cancel_event=cancel_event,
            on_attempt=on_attempt,
        )

    async def test_macs(
        self,
        portal_url: str,
        macs: Optional[Sequence[str]] = None,
        *,
        timezone: Optional[str] = None,
        generate_count: Optional[int] = None,
        prefix: Optional[str] = None,
    ) -> BatchTestResult:
        return await self.batch.test_multiple_macs(
            portal_url,
            macs,
            timezone=self._timezone(timezone),
            generate_count=generate_count,
            prefix=prefix,
        )

    # ================================================================== #
    #  Content
    # ================================================================== #

    async def list_genres(self, portal_url: str, mac_address: str, timezone: Optional[str] = None) -> list[Genre]:
        async with self.session(portal_url, mac_address, timezone) as client:
            return await client.get_genres()

    async def list_channels(
        self,
        portal_url: str,
        mac_address: str,
        *,
        genre: Optional[str] = None,
        page: int = 1,
        all_channels: bool = False,
        timezone: Optional[str] = None,
    ) -> list[Channel]:
        async with self.session(portal_url, mac_address, timezone) as client:
            if all_channels:
                return await client.get_all_channels()
            return await client.get_channels(genre, page)

    async def get_epg(
        self,
        portal_url: str,
        mac_address: str,
        channel_id: str,
        *,
        period_days: int = 7,
        timezone: Optional[str] = None,
    ) -> list[Program]:
        async with self.session(portal_url, mac_address, timezone) as client:
            return await client.get_epg(channel_id, period_days)

    async def list_movies(
        self,
        portal_url: str,
        mac_address: str,
        *,
        category: Optional[str] = None,
        page: int = 1,
        max_pages: Optional[int] = None,
        all_pages: bool = False,
        timezone: Optional[str] = None,
    ) -> tuple[list[VodCategory], list[Movie]]:
        """Categories plus one page (or every page) of movies."""
        async with self.session(portal_url, mac_address, timezone) as client:
            categories = await client.get_vod_categories()
            if all_pages:
                return categories, await client.get_all_movies(category, max_pages)
            return categories, await client.get_movies(category, page)

    async def list_series(
        self,
        portal_url: str,
        mac_address: str,
        *,
        category: Optional[str] = None,
        page: int = 1,
        max_pages: Optional[int] = None,
        all_pages: bool = False,
        series_id: Optional[str] = None,
        timezone: Optional[str] = None,
    ) -> tuple[list[VodCategory], list[Series], list[Season]]:
        """Categories, series, and the seasons of *series_id* when given."""
        async with self.session(portal_url, mac_address, timezone) as client:
            categories = await client.get_series_categories()
            if all_pages:
                series = await client.get_all_series(category, max_pages)
            else:
                series = await client.get_series(category, page)
            seasons = await client.get_seasons(series_id) if series_id else []
            return categories, series, seasons

    async def resolve_stream(
        self,
        portal_url: str,
        mac_address: str,
        cmd: str,
        *,
        kind: str = "live",
        content_id: Optional[str] = None,
        season: Optional[str] = None,
        episode: Optional[str] = None,
        timezone: Optional[str] = None,
    ) -> Optional[str]:
        """Turn a ``cmd`` into a playable URL; ``None`` when the portal has none."""
        if kind not in STREAM_KINDS:
            raise ValidationFault(f"Unknown stream type {kind!r}; expected one of {STREAM_KINDS}")

        async with self.session(portal_url, mac_address, timezone) as client:
            if kind == "movie":
                return await client.create_vod_link(cmd, content_id)
            if kind == "series":
                return await client.create_series_link(cmd, content_id, season, episode)
            return await client.create_link(cmd, content_id)
