"""Shared fixtures: an in-memory portal served through ``httpx.MockTransport``."""

from __future__ import annotations

from typing import Any, Callable, Union

import httpx
import pytest

from shared.network import PortalHTTP
from stalker.protocol.client import StalkerClient

PORTAL = "http://portal.test/c"
MAC = "00:1A:79:12:34:56"
TOKEN = "0123456789ABCDEF0123456789ABCDEF"
PROFILE = {"id": "42", "name": "living-room", "stb_type": "MAG250"}

Route = Union[dict, list, httpx.Response, Callable[[httpx.Request], Any]]


class PortalStub:
    """Routes ``(type, action)`` pairs to canned JSON and records every request."""

    def __init__(self, routes: dict[tuple[str, str], Route] | None = None) -> None:
        self.routes: dict[tuple[str, str], Route] = {
            ("stb", "handshake"): {"js": {"token": TOKEN}},
            ("stb", "get_profile"): {"js": PROFILE},
        }
        self.routes.update(routes or {})
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.url.params.get("type"), request.url.params.get("action"))
        route = self.routes.get(key, {"js": []})
        if callable(route):
            route = route(request)
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route)

    def calls(self, action: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.params.get("action") == action]


@pytest.fixture
def portal() -> PortalStub:
    return PortalStub()


@pytest.fixture
async def http(portal: PortalStub):
    transport = PortalHTTP(transport=httpx.MockTransport(portal.handler))
    yield transport
    await transport.close()


@pytest.fixture
def client(http: PortalHTTP) -> StalkerClient:
    return StalkerClient(PORTAL, MAC, "Europe/Paris", transport=http)


@pytest.fixture
async def authed(client: StalkerClient) -> StalkerClient:
    assert await client.handshake()
    return client
