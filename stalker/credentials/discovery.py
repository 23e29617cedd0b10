"""
MAC Discovery Engine
=====================

Bounded brute-force search for a MAC address a portal will accept.

Portals whitelist the MAC addresses of purchased boxes and offer no way
to enumerate them, so recovering a credential means probing plausible
addresses one at a time. The search is a small state machine::

    IDLE -> PROBING(attempt = 1..max_attempts) -> FOUND | EXHAUSTED | CANCELLED

Each attempt builds its own :class:`StalkerClient`, races the handshake
against ``attempt_timeout`` (and the optional cancel event), and only
counts as a hit when the follow-up ``get_profile`` returns data.
Attempts run strictly one after another with ``attempt_delay`` seconds
between them.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from collections import Counter
from typing import Any, Awaitable, Callable, Optional

from shared.config import DiscoveryConfig, PortalConfig
from shared.network import Transport

from stalker.core.errors import ProtocolError, ValidationFault
from stalker.core.models import (
    AttemptOutcome,
    DiscoveryAttempt,
    DiscoveryResult,
    DiscoveryState,
    Profile,
    normalize_portal_url,
)
from stalker.credentials.mac import generate_mac
from stalker.protocol.client import StalkerClient

logger = logging.getLogger("stalkerkit.stalker.discovery")

ClientFactory = Callable[[str, str, str], StalkerClient]
MacSource = Callable[[], str]
AttemptCallback = Callable[[DiscoveryAttempt], None]


class _Race(enum.Enum):
    DONE = "done"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


async def _race(
    awaitable: Awaitable[Any],
    timeout: float,
    cancel_event: Optional[asyncio.Event],
) -> tuple[_Race, Any]:
    """Run *awaitable* against a timer and an optional cancel event.

    The losing side is cancelled. Exceptions raised by *awaitable* when it
    wins propagate to the caller.
    """
    task = asyncio.ensure_future(awaitable)
    waiters: set[asyncio.Future[Any]] = {task}
    cancel_waiter: Optional[asyncio.Future[Any]] = None
    if cancel_event is not None:
        cancel_waiter = asyncio.ensure_future(cancel_event.wait())
        waiters.add(cancel_waiter)

    try:
        done, pending = await asyncio.wait(
            waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        for waiter in waiters:
            waiter.cancel()
        raise

    for waiter in pending:
        waiter.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)

    if task in done:
        return _Race.DONE, task.result()
    if cancel_waiter is not None and cancel_waiter in done:
        return _Race.CANCELLED, None
    return _Race.TIMEOUT, None


class MACDiscoveryEngine:
    """Find a working MAC address for a portal by sequential probing.

    Usage::

        engine = MACDiscoveryEngine(DiscoveryConfig(max_attempts=50))
        result = await engine.find_working_mac("http://portal.example/c")
        if result.found:
            print(result.mac_address, result.attempts)

    Args:
        config:         Attempt ceiling, timeouts, delay, sample size.
        portal_config:  Request settings handed to every client.
        transport:      Shared transport for the per-attempt clients.
        client_factory: ``(portal_url, mac, timezone) -> StalkerClient``.
        mac_source:     Zero-argument candidate generator; defaults to
                        :func:`generate_mac` with the configured prefix.
    """

    def __init__(
        self,
        config: Optional[DiscoveryConfig] = None,
        *,
        portal_config: Optional[PortalConfig] = None,
        transport: Optional[Transport] = None,
        client_factory: Optional[ClientFactory] = None,
        mac_source: Optional[MacSource] = None,
    ) -> None:
        self.config = config or DiscoveryConfig()
        self._portal_config = portal_config or PortalConfig()
        self._transport = transport
        self._client_factory = client_factory or self._default_client
        self._mac_source = mac_source
        self.state = DiscoveryState.IDLE

    def _default_client(self, portal_url: str, mac: str, timezone: str) -> StalkerClient:
        return StalkerClient(
            portal_url,
            mac,
            timezone,
            transport=self._transport,
            config=self._portal_config,
        )

    def _candidate_source(self, prefix: Optional[str]) -> MacSource:
        if self._mac_source is not None:
            return self._mac_source
        chosen = prefix or self.config.prefix or None
        # Fail on a bad prefix before the first attempt.
        generate_mac(chosen)
        return lambda: generate_mac(chosen)

    # ------------------------------------------------------------------ #
    #  Single attempt
    # ------------------------------------------------------------------ #

    async def _attempt(
        self,
        portal_url: str,
        mac: str,
        timezone: str,
        index: int,
        cancel_event: Optional[asyncio.Event],
    ) -> tuple[Optional[DiscoveryAttempt], Optional[Profile]]:
        """Probe one candidate. A ``None`` record means the search was cancelled."""
        profile: Optional[Profile] = None
        try:
            async with self._client_factory(portal_url, mac, timezone) as client:
                status, accepted = await _race(
                    client.handshake(), self.config.attempt_timeout, cancel_event
                )
                if status is _Race.CANCELLED:
                    return None, None
                if status is _Race.TIMEOUT:
                    outcome, detail = AttemptOutcome.TIMEOUT, (
                        f"handshake exceeded {self.config.attempt_timeout:g}s"
                    )
                elif not accepted:
                    outcome, detail = AttemptOutcome.AUTH_FAILURE, "no token"
                else:
                    profile = await client.get_profile()
                    if profile is None:
                        outcome, detail = AttemptOutcome.AUTH_FAILURE, "token without profile"
                    else:
                        outcome, detail = AttemptOutcome.SUCCESS, ""
        except ProtocolError as exc:
            outcome = AttemptOutcome.TIMEOUT if exc.timed_out else AttemptOutcome.ERROR
            detail = str(exc)
        except ValidationFault as exc:
            outcome, detail = AttemptOutcome.ERROR, str(exc)
        except Exception as exc:
            # Any fault ends this candidate only; the search moves on.
            logger.debug("Attempt %d with %s raised", index, mac, exc_info=True)
            outcome, detail = AttemptOutcome.ERROR, f"{type(exc).__name__}: {exc}"

        return DiscoveryAttempt(
            mac_address=mac,
            outcome=outcome,
            attempt_index=index,
            detail=detail,
        ), profile

    @staticmethod
    async def _pause(delay: float, cancel_event: Optional[asyncio.Event]) -> None:
        if delay <= 0:
            return
        if cancel_event is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    # ------------------------------------------------------------------ #
    #  Search loop
    # ------------------------------------------------------------------ #

    async def find_working_mac(
        self,
        portal_url: str,
        timezone: str = "UTC",
        *,
        prefix: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        on_attempt: Optional[AttemptCallback] = None,
    ) -> DiscoveryResult:
        """Probe generated MAC addresses until one authenticates.

        Args:
            portal_url:   Portal base URL.
            timezone:     Timezone sent by every candidate session.
            prefix:       Vendor prefix overriding the configured one.
            cancel_event: Setting it stops the search at the next
                          suspension point with state ``CANCELLED``.
            on_attempt:   Called with each finished :class:`DiscoveryAttempt`.

        Returns:
            A :class:`DiscoveryResult`; exhaustion and cancellation are
            results, not exceptions.

        Raises:
            ValidationFault: On a malformed portal URL, prefix, or a
                non-positive attempt ceiling.
        """
        portal_url = normalize_portal_url(portal_url)
        max_attempts = self.config.max_attempts
        if max_attempts < 1:
            raise ValidationFault(f"max_attempts must be positive, got {max_attempts}")
        next_mac = self._candidate_source(prefix)

        started = time.monotonic()
        outcomes: Counter[str] = Counter()
        sample: list[str] = []
        attempts = 0

        self.state = DiscoveryState.PROBING
        logger.info(
            "Searching %s for a working MAC (max %d attempts, %.1fs timeout)",
            portal_url, max_attempts, self.config.attempt_timeout,
        )

        def finish(state: DiscoveryState, **found: Any) -> DiscoveryResult:
            self.state = state
            result = DiscoveryResult(
                portal_url=portal_url,
                state=state,
                attempts=attempts,
                tested_sample=sample,
                outcomes=dict(outcomes),
                elapsed=round(time.monotonic() - started, 3),
                **found,
            )
            logger.info(result.message)
            return result

        while attempts < max_attempts:
            if cancel_event is not None and cancel_event.is_set():
                return finish(DiscoveryState.CANCELLED)

            mac = next_mac()
            record, profile = await self._attempt(
                portal_url, mac, timezone, attempts + 1, cancel_event
            )
            if record is None:
                return finish(DiscoveryState.CANCELLED)

            attempts += 1
            outcomes[record.outcome.value] += 1
            if len(sample) < self.config.sample_size:
                sample.append(mac)
            logger.debug(
                "Attempt %d/%d %s -> %s %s",
                attempts, max_attempts, mac, record.outcome.value, record.detail,
            )
            if on_attempt is not None:
                on_attempt(record)

            if record.outcome is AttemptOutcome.SUCCESS:
                return finish(DiscoveryState.FOUND, mac_address=mac, profile=profile)

            if attempts < max_attempts:
                await self._pause(self.config.attempt_delay, cancel_event)

        return finish(DiscoveryState.EXHAUSTED)
