"""Protocol client: request shape, session evolution and failure semantics."""

from __future__ import annotations

from datetime import date

import httpx
import pytest

from shared.network import PortalHTTP
from stalker.core.errors import ProtocolError, SessionError, ValidationFault
from stalker.core.models import AuthenticatedSession, Channel, PortalSession, SubscriptionStatus
from stalker.protocol.client import StalkerClient, build_headers

from tests.conftest import MAC, PORTAL, PROFILE, TOKEN, PortalStub


def _stub_client(routes) -> tuple[PortalStub, PortalHTTP, StalkerClient]:
    stub = PortalStub(routes)
    http = PortalHTTP(transport=httpx.MockTransport(stub.handler))
    return stub, http, StalkerClient(PORTAL, MAC, transport=http)


# ---------------------------------------------------------------------------
# Request shape
# ---------------------------------------------------------------------------


async def test_handshake_request_shape(client, portal):
    assert await client.handshake() is True

    request = portal.calls("handshake")[0]
    assert request.url.path == "/c/portal.php"
    params = request.url.params
    assert params["type"] == "stb"
    assert params["JsHttpRequest"] == "1-xml"
    assert params["prehash"].isdigit()
    assert request.headers["X-User-Agent"] == "Model: MAG250; Link: WiFi"
    assert "MAG200" in request.headers["User-Agent"]


async def test_headers_before_and_after_handshake(client, portal):
    await client.handshake()
    await client.get_genres()

    pre = portal.calls("handshake")[0]
    assert "authorization" not in pre.headers
    assert pre.headers["cookie"] == f"mac={MAC}"

    post = portal.calls("get_genres")[0]
    assert post.headers["authorization"] == f"Bearer {TOKEN}"
    cookie = post.headers["cookie"]
    assert f"mac={MAC}" in cookie
    assert "stb_lang=en" in cookie
    assert "timezone=Europe/Paris" in cookie
    assert f"token={TOKEN}" in cookie


async def test_second_handshake_carries_existing_token(authed, portal):
    await authed.handshake()
    second = portal.calls("handshake")[1]
    assert second.headers["authorization"] == f"Bearer {TOKEN}"
    assert f"token={TOKEN}" in second.headers["cookie"]


async def test_rejected_rehandshake_keeps_token(authed, portal):
    portal.routes[("stb", "handshake")] = {"js": {"token": ""}}

    assert await authed.handshake() is False
    assert authed.get_token() == TOKEN
    assert authed.is_authenticated


def test_build_headers_depends_only_on_token_presence():
    base = PortalSession.create(PORTAL, MAC, "UTC")
    pre = build_headers(base, user_agent="ua", x_user_agent="xua")
    post = build_headers(base.authenticate("tok"), user_agent="ua", x_user_agent="xua")

    assert pre == {"User-Agent": "ua", "X-User-Agent": "xua", "Cookie": f"mac={MAC}"}
    assert post["Cookie"] == f"mac={MAC}; stb_lang=en; timezone=UTC; token=tok"
    assert post["Authorization"] == "Bearer tok"


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


async def test_handshake_produces_new_authenticated_session(client):
    before = client.session
    assert not client.is_authenticated
    assert client.get_token() is None

    await client.handshake()

    assert isinstance(client.session, AuthenticatedSession)
    assert client.get_token() == TOKEN
    assert not isinstance(before, AuthenticatedSession)
    assert client.get_mac_address() == MAC


async def test_handshake_without_token_is_negative_result(portal, client):
    portal.routes[("stb", "handshake")] = {"js": {"random": "x"}}
    assert await client.handshake() is False
    assert client.get_token() is None


async def test_token_operations_require_handshake(client, portal):
    with pytest.raises(SessionError):
        await client.get_profile()
    with pytest.raises(SessionError):
        await client.get_channels()
    assert portal.requests == []


def test_constructor_rejects_bad_input():
    with pytest.raises(ValidationFault):
        StalkerClient(PORTAL, "not-a-mac")
    with pytest.raises(ValidationFault):
        StalkerClient("ftp://portal.test", MAC)


def test_portal_url_normalised():
    client = StalkerClient("http://portal.test/c/portal.php", "001a79123456")
    assert client.session.portal_url == "http://portal.test/c"
    assert client.get_mac_address() == MAC


# ---------------------------------------------------------------------------
# Failure semantics
# ---------------------------------------------------------------------------


async def test_http_error_raises_protocol_error():
    stub, http, client = _stub_client({("stb", "handshake"): httpx.Response(503)})
    async with http:
        with pytest.raises(ProtocolError) as info:
            await client.handshake()
    assert info.value.status_code == 503
    assert info.value.action == "handshake"
    assert len(stub.requests) == 1


async def test_timeout_raises_protocol_error():
    def hang(request):
        raise httpx.ReadTimeout("timed out", request=request)

    _, http, client = _stub_client({("stb", "handshake"): hang})
    async with http:
        with pytest.raises(ProtocolError) as info:
            await client.handshake()
    assert info.value.timed_out


async def test_redirect_loop_raises_protocol_error():
    def loop(request):
        return httpx.Response(302, headers={"Location": str(request.url)})

    _, http, client = _stub_client({("stb", "handshake"): loop})
    async with http:
        with pytest.raises(ProtocolError) as info:
            await client.handshake()
    assert info.value.action == "handshake"


async def test_non_object_body_is_protocol_error():
    _, http, client = _stub_client({("stb", "handshake"): ["not", "an", "object"]})
    async with http:
        with pytest.raises(ProtocolError):
            await client.handshake()


async def test_invalid_json_is_protocol_error():
    _, http, client = _stub_client(
        {("stb", "handshake"): httpx.Response(200, text="<html>oops</html>")}
    )
    async with http:
        with pytest.raises(ProtocolError):
            await client.handshake()


async def test_profile_absent_returns_none(portal, authed):
    portal.routes[("stb", "get_profile")] = {"js": None}
    assert await authed.get_profile() is None


async def test_profile_is_attached_to_session(authed, portal):
    assert await authed.get_profile() == PROFILE
    assert authed.session.profile == PROFILE
    params = portal.calls("get_profile")[0].url.params
    assert params["stb_type"] == "MAG250"


async def test_test_connection(client):
    assert await client.test_connection() is True


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


async def test_genres_and_empty_lists(portal, authed):
    portal.routes[("itv", "get_genres")] = {"js": [{"id": 1, "title": "News"}, {"title": "no id"}]}
    genres = await authed.get_genres()
    assert [(g.id, g.title) for g in genres] == [("1", "News")]

    portal.routes[("itv", "get_genres")] = {"js": None}
    assert await authed.get_genres() == []


async def test_channel_page(portal, authed):
    portal.routes[("itv", "get_ordered_list")] = {
        "js": {
            "total_items": "3",
            "max_page_items": 14,
            "data": [
                {"id": 10, "name": "One", "number": "1", "cmd": "ffrt http://x/1", "extra": "kept"},
                {"id": 11, "name": "Two", "number": "", "cmd": ""},
            ],
        }
    }
    channels = await authed.get_channels(genre="5", page=2)
    assert [c.id for c in channels] == ["10", "11"]
    assert isinstance(channels[0], Channel)
    assert channels[0].number == 1
    assert channels[1].number is None
    assert channels[0].model_extra == {"extra": "kept"}

    params = portal.calls("get_ordered_list")[0].url.params
    assert params["genre"] == "5"
    assert params["p"] == "2"


async def test_all_channels(portal, authed):
    portal.routes[("itv", "get_all_channels")] = {"js": {"data": [{"id": "1", "name": "A"}]}}
    assert [c.name for c in await authed.get_all_channels()] == ["A"]


async def test_invalid_page_rejected(authed):
    with pytest.raises(ValidationFault):
        await authed.get_channels(page=0)


async def test_all_movies_walks_pages(portal, authed):
    pages = {
        "1": [{"id": "1", "name": "A"}, {"id": "2", "name": "B"}],
        "2": [{"id": "3", "name": "C"}],
    }

    def ordered_list(request):
        page = request.url.params["p"]
        return {"js": {"total_items": 3, "max_page_items": 2, "data": pages.get(page, [])}}

    portal.routes[("vod", "get_ordered_list")] = ordered_list
    movies = await authed.get_all_movies()
    assert [m.name for m in movies] == ["A", "B", "C"]
    assert [r.url.params["p"] for r in portal.calls("get_ordered_list")] == ["1", "2"]


async def test_seasons_query(portal, authed):
    portal.routes[("series", "get_ordered_list")] = {
        "js": {"total_items": 1, "max_page_items": 10,
               "data": [{"id": "7:1", "name": "Season 1", "series": [1, 2, 3]}]}
    }
    seasons = await authed.get_seasons("7")
    assert seasons[0].series == [1, 2, 3]
    params = portal.calls("get_ordered_list")[0].url.params
    assert (params["movie_id"], params["season_id"], params["episode_id"]) == ("7", "0", "0")


async def test_epg_keyed_by_channel(portal, authed):
    portal.routes[("itv", "get_epg_info")] = {
        "js": {"data": {"9": [{"id": "p1", "name": "Morning", "start_timestamp": "1700000000"}]}}
    }
    programs = await authed.get_epg("9", period_days=3)
    assert programs[0].name == "Morning"
    assert programs[0].start_timestamp == 1700000000
    assert portal.calls("get_epg_info")[0].url.params["period"] == "3"


async def test_short_epg_groups_by_channel(portal, authed):
    portal.routes[("itv", "get_short_epg")] = {
        "js": [
            {"id": "a", "ch_id": "1", "name": "x"},
            {"id": "b", "ch_id": "2", "name": "y"},
            {"id": "c", "ch_id": "1", "name": "z"},
        ]
    }
    guide = await authed.get_short_epg(["1", "2"])
    assert [p.name for p in guide["1"]] == ["x", "z"]
    assert portal.calls("get_short_epg")[0].url.params["ch_id"] == "1,2"


async def test_epg_requires_channel(authed):
    with pytest.raises(ValidationFault):
        await authed.get_epg("")
    with pytest.raises(ValidationFault):
        await authed.get_short_epg([])


# ---------------------------------------------------------------------------
# Stream links
# ---------------------------------------------------------------------------


async def test_create_link_normalises_cmd(portal, authed):
    portal.routes[("itv", "create_link")] = {"js": {"cmd": "ffmpeg http://cdn.test/live/1.m3u8"}}
    url = await authed.create_link("ffrt http://localhost/ch/1", "1")
    assert url == "http://cdn.test/live/1.m3u8"

    params = portal.calls("create_link")[0].url.params
    assert params["cmd"] == "ffrt http://localhost/ch/1"
    assert params["series"] == ""
    assert params["forced_storage"] == "undefined"
    assert params["disable_ad"] == "0"
    assert params["download"] == "0"


async def test_create_link_without_url_returns_none(portal, authed):
    portal.routes[("vod", "create_link")] = {"js": {"cmd": "rtmp://nope"}}
    assert await authed.create_vod_link("/media/1.mpg", "1") is None

    portal.routes[("vod", "create_link")] = {"js": {}}
    assert await authed.create_vod_link("/media/1.mpg", "1") is None


async def test_series_link_sends_season_and_episode(portal, authed):
    portal.routes[("series", "create_link")] = {"js": {"cmd": "https://cdn.test/s1e2.mp4"}}
    url = await authed.create_series_link("/media/s.mpg", "7", season="1", episode="2")
    assert url == "https://cdn.test/s1e2.mp4"
    params = portal.calls("create_link")[0].url.params
    assert (params["type"], params["season"], params["episode"]) == ("series", "1", "2")


async def test_create_link_requires_cmd(authed, portal):
    with pytest.raises(ValidationFault):
        await authed.create_link("  ")
    assert portal.calls("create_link") == []


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


async def test_subscription_info(portal, authed):
    portal.routes[("account_info", "get_main_info")] = {
        "js": {"fname": "x", "account_expire": "unlimited"}
    }
    info = await authed.get_subscription_info(today=date(2024, 1, 1))
    assert info.status is SubscriptionStatus.UNLIMITED
    assert info.days_remaining is None
    assert info.source_field == "account_expire"


async def test_subscription_info_absent(portal, authed):
    portal.routes[("account_info", "get_main_info")] = {"js": []}
    assert await authed.get_subscription_info() is None
