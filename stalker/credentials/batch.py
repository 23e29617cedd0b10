"""
Batch Credential Tester
========================

Audits a fixed set of MAC addresses against one portal: every candidate
goes through handshake, profile and subscription lookup, and ends up in
either the ``working`` or the ``failed`` list. Candidates are tested one
at a time and the run never stops early on a success.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from shared.config import BatchConfig, PortalConfig
from shared.network import Transport

from stalker.core.errors import ProtocolError, ValidationFault
from stalker.core.models import (
    BatchTestResult,
    SubscriptionInfo,
    WorkingCredential,
    normalize_portal_url,
)
from stalker.credentials.mac import format_mac, generate_multiple_macs, validate_mac
from stalker.protocol.client import StalkerClient

logger = logging.getLogger("stalkerkit.stalker.batch")

MAX_BATCH_SIZE = 20
DEFAULT_BATCH_SIZE = 5

ClientFactory = Callable[[str, str, str], StalkerClient]
ResultCallback = Callable[[str, bool], None]


class BatchCredentialTester:
    """Sequential handshake/profile/subscription check over many MACs.

    Args:
        config:         Batch cap and default generated count.
        portal_config:  Request settings handed to every client.
        transport:      Shared transport for the per-candidate clients.
        client_factory: ``(portal_url, mac, timezone) -> StalkerClient``.
    """

    def __init__(
        self,
        config: Optional[BatchConfig] = None,
        *,
        portal_config: Optional[PortalConfig] = None,
        transport: Optional[Transport] = None,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.config = config or BatchConfig(
            max_batch_size=MAX_BATCH_SIZE, default_count=DEFAULT_BATCH_SIZE
        )
        self._portal_config = portal_config or PortalConfig()
        self._transport = transport
        self._client_factory = client_factory or self._default_client

    def _default_client(self, portal_url: str, mac: str, timezone: str) -> StalkerClient:
        return StalkerClient(
            portal_url,
            mac,
            timezone,
            transport=self._transport,
            config=self._portal_config,
        )

    @property
    def max_batch_size(self) -> int:
        return max(1, self.config.max_batch_size)

    # ------------------------------------------------------------------ #
    #  Candidate selection
    # ------------------------------------------------------------------ #

    def prepare_candidates(
        self,
        macs: Optional[Sequence[str]] = None,
        generate_count: Optional[int] = None,
        prefix: Optional[str] = None,
    ) -> list[str]:
        """Validate explicit MACs or generate a batch, capped at the maximum.

        Raises:
            ValidationFault: If any explicit MAC is malformed or the
                requested count is not positive.
        """
        cap = self.max_batch_size

        if macs:
            formatted = [format_mac(m.strip()) for m in macs]
            invalid = [raw for raw, mac in zip(macs, formatted) if not validate_mac(mac)]
            if invalid:
                raise ValidationFault(f"Invalid MAC address(es): {', '.join(invalid)}")
            if len(formatted) > cap:
                logger.warning(
                    "Testing only the first %d of %d MAC addresses", cap, len(formatted)
                )
                formatted = formatted[:cap]
            return formatted

        count = self.config.default_count if generate_count is None else generate_count
        if count < 1:
            raise ValidationFault(f"MAC count must be positive, got {count}")
        if count > cap:
            logger.warning("Generated batch capped at %d (requested %d)", cap, count)
            count = cap
        return generate_multiple_macs(count, prefix)

    # ------------------------------------------------------------------ #
    #  Testing
    # ------------------------------------------------------------------ #

    async def test_mac(
        self,
        portal_url: str,
        mac: str,
        timezone: str = "UTC",
    ) -> Optional[WorkingCredential]:
        """Check one MAC. ``None`` when the portal rejects it or is unreachable."""
        try:
            async with self._client_factory(portal_url, mac, timezone) as client:
                if not await client.handshake():
                    logger.debug("%s: handshake returned no token", mac)
                    return None
                profile = await client.get_profile()
                if profile is None:
                    logger.debug("%s: no profile", mac)
                    return None

                subscription: Optional[SubscriptionInfo] = None
                try:
                    subscription = await client.get_subscription_info()
                except ProtocolError as exc:
                    logger.warning("%s: subscription lookup failed: %s", mac, exc)

                return WorkingCredential(mac=mac, profile=profile, subscription=subscription)
        except ProtocolError as exc:
            logger.warning("%s: %s", mac, exc)
            return None

    async def test_multiple_macs(
        self,
        portal_url: str,
        macs: Optional[Sequence[str]] = None,
        *,
        timezone: str = "UTC",
        generate_count: Optional[int] = None,
        prefix: Optional[str] = None,
        on_result: Optional[ResultCallback] = None,
    ) -> BatchTestResult:
        """Test every candidate and partition them into working and failed.

        Args:
            portal_url:     Portal base URL.
            macs:           Explicit MAC addresses; generated when empty.
            timezone:       Timezone sent by every candidate session.
            generate_count: How many MACs to generate without explicit ones.
            prefix:         Vendor prefix for generated MACs.
            on_result:      Called with ``(mac, working)`` after each candidate.

        Raises:
            ValidationFault: On a malformed URL or MAC, before any request.
        """
        portal_url = normalize_portal_url(portal_url)
        candidates = self.prepare_candidates(macs, generate_count, prefix)
        result = BatchTestResult(portal_url=portal_url)

        logger.info("Testing %d MAC address(es) against %s", len(candidates), portal_url)
        for index, mac in enumerate(candidates, start=1):
            credential = await self.test_mac(portal_url, mac, timezone)
            if credential is not None:
                result.working.append(credential)
            else:
                result.failed.append(mac)
            logger.debug(
                "[%d/%d] %s %s", index, len(candidates), mac,
                "working" if credential else "failed",
            )
            if on_result is not None:
                on_result(mac, credential is not None)

        logger.info(
            "Batch complete: %d working, %d failed",
            len(result.working), len(result.failed),
        )
        return result
