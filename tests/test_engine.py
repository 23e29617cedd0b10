"""Engine facade and CLI wiring."""

from __future__ import annotations

import httpx
import pytest
from click.testing import CliRunner

from shared.config import StalkerKitConfig
from shared.network import PortalHTTP
from stalker.cli import EXIT_INVALID, stalkerkit
from stalker.core.engine import StalkerEngine
from stalker.core.errors import CredentialNotFound, ValidationFault
from stalker.core.models import DiscoveryState, SubscriptionStatus

from tests.conftest import MAC, PORTAL, PROFILE, TOKEN, PortalStub


@pytest.fixture
async def stub_engine():
    stub = PortalStub({
        ("account_info", "get_main_info"): {"js": {"account_expire": "unlimited"}},
        ("itv", "get_genres"): {"js": [{"id": "1", "title": "News"}]},
        ("itv", "create_link"): {"js": {"cmd": "ffmpeg http://cdn.test/1.ts"}},
        ("series", "create_link"): {"js": {"cmd": "http://cdn.test/s.mp4"}},
    })
    http = PortalHTTP(transport=httpx.MockTransport(stub.handler))
    config = StalkerKitConfig()
    config.portal.timezone = "Europe/Madrid"
    async with StalkerEngine(config, transport=http) as engine:
        yield stub, engine
    await http.close()


async def test_connect(stub_engine):
    stub, engine = stub_engine

    result = await engine.connect(PORTAL, MAC)

    assert result.authenticated
    assert result.token == TOKEN
    assert result.profile == PROFILE
    assert result.subscription.status is SubscriptionStatus.UNLIMITED
    assert "timezone=Europe/Madrid" in stub.calls("get_profile")[0].headers["cookie"]


async def test_connect_rejected(stub_engine):
    stub, engine = stub_engine
    stub.routes[("stb", "handshake")] = {"js": {}}

    result = await engine.connect(PORTAL, MAC)

    assert not result.authenticated
    assert result.token is None
    assert stub.calls("get_profile") == []


async def test_session_operations(stub_engine):
    stub, engine = stub_engine

    genres = await engine.list_genres(PORTAL, MAC)
    live = await engine.resolve_stream(PORTAL, MAC, "ffrt http://local/1")
    episode = await engine.resolve_stream(
        PORTAL, MAC, "/media/s.mpg", kind="series", season="2", episode="5"
    )

    assert [g.title for g in genres] == ["News"]
    assert live == "http://cdn.test/1.ts"
    assert episode == "http://cdn.test/s.mp4"

    with pytest.raises(ValidationFault):
        await engine.resolve_stream(PORTAL, MAC, "x", kind="radio")


async def test_session_requires_accepted_mac(stub_engine):
    stub, engine = stub_engine
    stub.routes[("stb", "handshake")] = {"js": None}

    with pytest.raises(CredentialNotFound):
        await engine.list_channels(PORTAL, MAC)


async def test_discover_applies_overrides(stub_engine):
    stub, engine = stub_engine
    stub.routes[("stb", "handshake")] = {"js": {}}

    result = await engine.discover(PORTAL, max_attempts=3, attempt_delay=0)

    assert result.state is DiscoveryState.EXHAUSTED
    assert result.attempts == 3
    assert len(stub.calls("handshake")) == 3
    assert engine.config.discovery.max_attempts == 100


async def test_test_macs(stub_engine):
    _, engine = stub_engine

    result = await engine.test_macs(PORTAL, [MAC, "00:1A:79:00:00:01"])

    assert result.total == 2
    assert len(result.working) == 2


def test_validate_macs_rows():
    rows = StalkerEngine.validate_macs(["001a79123456", "bad"])
    assert rows == [
        {"input": "001a79123456", "formatted": MAC, "valid": True},
        {"input": "bad", "formatted": "bad", "valid": False},
    ]


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def test_cli_generate_writes_report(tmp_path):
    out = tmp_path / "macs.json"
    result = CliRunner().invoke(stalkerkit, ["-o", str(out), "generate", "-n", "3"], obj={})

    assert result.exit_code == 0, result.output
    assert out.exists()


def test_cli_validate_exit_codes():
    runner = CliRunner()
    assert runner.invoke(stalkerkit, ["validate", "00:1A:79:12:34:56"], obj={}).exit_code == 0
    assert runner.invoke(stalkerkit, ["validate", "nope"], obj={}).exit_code == EXIT_INVALID


def test_cli_rejects_bad_mac_before_network():
    result = CliRunner().invoke(stalkerkit, ["connect", PORTAL, "zz"], obj={})
    assert result.exit_code == EXIT_INVALID


def test_cli_bad_prefix():
    result = CliRunner().invoke(stalkerkit, ["generate", "--prefix", "ABC"], obj={})
    assert result.exit_code == EXIT_INVALID
