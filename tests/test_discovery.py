"""MAC discovery: termination, per-attempt timeout and cancellation."""

from __future__ import annotations

import asyncio
import itertools

import httpx
import pytest

from shared.config import DiscoveryConfig
from shared.network import PortalHTTP
from stalker.core.errors import CredentialNotFound, ProtocolError, ValidationFault
from stalker.core.models import AttemptOutcome, DiscoveryState
from stalker.credentials.discovery import MACDiscoveryEngine
from stalker.credentials.mac import validate_mac

from tests.conftest import PORTAL, PROFILE, TOKEN, PortalStub

CANDIDATES = [f"00:1A:79:00:00:{i:02X}" for i in range(1, 256)]


class FakeClient:
    """Stand-in for StalkerClient driven by per-MAC behaviour."""

    def __init__(self, mac, behaviour):
        self.mac = mac
        self.behaviour = behaviour
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.closed = True

    async def handshake(self):
        action = self.behaviour.get(self.mac, "reject")
        if action == "hang":
            await asyncio.Event().wait()
        if action == "boom":
            raise ProtocolError("Stalker API error during handshake: refused", action="handshake")
        if action == "crash":
            raise RuntimeError("unexpected")
        return action in ("accept", "no-profile")

    async def get_profile(self):
        if self.behaviour.get(self.mac) == "no-profile":
            return None
        return dict(PROFILE)


def make_engine(behaviour=None, **config):
    config.setdefault("attempt_delay", 0)
    config.setdefault("attempt_timeout", 1.0)
    created: list[FakeClient] = []

    def factory(portal_url, mac, timezone):
        fake = FakeClient(mac, behaviour or {})
        created.append(fake)
        return fake

    source = iter(CANDIDATES)
    engine = MACDiscoveryEngine(
        DiscoveryConfig(**config),
        client_factory=factory,
        mac_source=lambda: next(source),
    )
    return engine, created


async def test_always_rejecting_portal_exhausts_at_ceiling():
    engine, created = make_engine(max_attempts=7)

    result = await engine.find_working_mac(PORTAL)

    assert result.state is DiscoveryState.EXHAUSTED
    assert not result.found
    assert result.attempts == 7
    assert result.outcomes == {"auth_failure": 7}
    assert result.mac_address is None
    assert len(created) == 7
    assert all(c.closed for c in created)
    assert result.message == "No working MAC address found after 7 attempts"
    assert engine.state is DiscoveryState.EXHAUSTED


async def test_accepts_third_candidate():
    engine, _ = make_engine({CANDIDATES[2]: "accept"}, max_attempts=10)

    result = await engine.find_working_mac(PORTAL)

    assert result.found
    assert result.attempts == 3
    assert result.mac_address == CANDIDATES[2]
    assert result.profile == PROFILE
    assert result.outcomes == {"auth_failure": 2, "success": 1}
    assert result.raise_for_state() is result


async def test_token_without_profile_is_a_failed_attempt():
    engine, _ = make_engine({CANDIDATES[0]: "no-profile", CANDIDATES[1]: "accept"})

    result = await engine.find_working_mac(PORTAL)

    assert result.attempts == 2
    assert result.mac_address == CANDIDATES[1]


async def test_hung_handshake_times_out_and_search_continues():
    engine, _ = make_engine(
        {CANDIDATES[0]: "hang", CANDIDATES[1]: "accept"},
        attempt_timeout=0.05,
    )
    records = []

    result = await asyncio.wait_for(
        engine.find_working_mac(PORTAL, on_attempt=records.append), timeout=2
    )

    assert result.found
    assert result.attempts == 2
    assert records[0].outcome is AttemptOutcome.TIMEOUT
    assert records[1].outcome is AttemptOutcome.SUCCESS
    assert [r.attempt_index for r in records] == [1, 2]


async def test_errors_do_not_stop_the_search():
    engine, _ = make_engine(
        {CANDIDATES[0]: "boom", CANDIDATES[1]: "crash", CANDIDATES[2]: "accept"}
    )

    result = await engine.find_working_mac(PORTAL)

    assert result.found
    assert result.outcomes == {"error": 2, "success": 1}


async def test_sample_is_bounded():
    engine, _ = make_engine(max_attempts=15, sample_size=4)

    result = await engine.find_working_mac(PORTAL)

    assert result.attempts == 15
    assert result.tested_sample == CANDIDATES[:4]
    with pytest.raises(CredentialNotFound) as info:
        result.raise_for_state()
    assert info.value.attempts == 15


async def test_cancel_before_start():
    engine, created = make_engine()
    event = asyncio.Event()
    event.set()

    result = await engine.find_working_mac(PORTAL, cancel_event=event)

    assert result.state is DiscoveryState.CANCELLED
    assert result.attempts == 0
    assert created == []


async def test_cancel_interrupts_hung_handshake():
    engine, _ = make_engine({c: "hang" for c in CANDIDATES}, attempt_timeout=30)
    event = asyncio.Event()
    asyncio.get_running_loop().call_later(0.05, event.set)

    result = await asyncio.wait_for(
        engine.find_working_mac(PORTAL, cancel_event=event), timeout=2
    )

    assert result.state is DiscoveryState.CANCELLED
    assert result.attempts == 0
    assert result.message.startswith("Search cancelled")


async def test_cancel_interrupts_delay():
    engine, _ = make_engine(attempt_delay=30, max_attempts=5)
    event = asyncio.Event()
    asyncio.get_running_loop().call_later(0.05, event.set)

    result = await asyncio.wait_for(
        engine.find_working_mac(PORTAL, cancel_event=event), timeout=2
    )

    assert result.state is DiscoveryState.CANCELLED
    assert result.attempts == 1


async def test_invalid_input_rejected_before_probing():
    engine, created = make_engine()
    with pytest.raises(ValidationFault):
        await engine.find_working_mac("not a url")

    engine = MACDiscoveryEngine(DiscoveryConfig(max_attempts=0))
    with pytest.raises(ValidationFault):
        await engine.find_working_mac(PORTAL)

    engine = MACDiscoveryEngine(DiscoveryConfig())
    with pytest.raises(ValidationFault):
        await engine.find_working_mac(PORTAL, prefix="ABC")
    assert created == []


async def test_end_to_end_over_http():
    winner = CANDIDATES[1]

    def handshake(request):
        if f"mac={winner}" == request.headers["cookie"]:
            return {"js": {"token": TOKEN}}
        return {"js": {"token": ""}}

    stub = PortalStub({("stb", "handshake"): handshake})
    source = itertools.cycle(CANDIDATES[:3])
    async with PortalHTTP(transport=httpx.MockTransport(stub.handler)) as http:
        engine = MACDiscoveryEngine(
            DiscoveryConfig(max_attempts=5, attempt_delay=0),
            transport=http,
            mac_source=lambda: next(source),
        )
        result = await engine.find_working_mac(PORTAL, "Europe/Berlin")

    assert result.mac_address == winner
    assert result.attempts == 2
    profile_request = stub.calls("get_profile")[0]
    assert "timezone=Europe/Berlin" in profile_request.headers["cookie"]


async def test_default_source_generates_valid_prefixed_macs():
    stub = PortalStub({("stb", "handshake"): {"js": {}}})
    async with PortalHTTP(transport=httpx.MockTransport(stub.handler)) as http:
        engine = MACDiscoveryEngine(
            DiscoveryConfig(max_attempts=3, attempt_delay=0, prefix="00:2A:01"),
            transport=http,
        )
        result = await engine.find_working_mac(PORTAL)

    assert result.attempts == 3
    for mac in result.tested_sample:
        assert validate_mac(mac)
        assert mac.startswith("00:2A:01:")
