"""Tests for AddonClient."""

from __future__ import annotations

import asyncio
import json
from urllib.parse import parse_qs

import httpx
import pytest

from chataddon.client import AddonClient, member_identity
from chataddon.exceptions import ApiCallFailed, AuthenticationFailed, MissingRoomId, MissingUserIdentity
from chataddon.models import CredentialRecord

TOKEN_PATH = "/v2/oauth/token"


def _credential(room_id: int | None = None, group_id: int | None = 1) -> CredentialRecord:
    return CredentialRecord(
        installation_id="inst-1",
        client_id="inst-1",
        client_secret="s3cret",
        authorization_url="https://api.example.com/users/authorize",
        token_url="https://api.example.com/v2/oauth/token",
        api_base_url="https://api.example.com/v2",
        room_id=room_id,
        group_id=group_id,
    )


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakePlatform:
    """Scripted token endpoint plus API routes keyed by (method, path)."""

    def __init__(self, expires_in: int = 3600) -> None:
        self.expires_in = expires_in
        self.token_requests: list[httpx.Request] = []
        self.api_requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], httpx.Response] = {}
        self.token_response: httpx.Response | None = None
        self.api_error: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == TOKEN_PATH:
            self.token_requests.append(request)
            if self.token_response is not None:
                return self.token_response
            return httpx.Response(
                200,
                json={"access_token": f"tok-{len(self.token_requests)}", "expires_in": self.expires_in},
            )
        self.api_requests.append(request)
        if self.api_error is not None:
            raise self.api_error
        return self.routes.get((request.method, request.url.path), httpx.Response(204))

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def _client(platform: FakePlatform, credential: CredentialRecord | None = None, clock: FakeClock | None = None):
    return AddonClient(
        credential or _credential(),
        transport=platform.transport(),
        clock=clock or FakeClock(),
    )


@pytest.mark.asyncio
async def test_send_notification_on_global_credential_requires_room_id():
    platform = FakePlatform()
    client = _client(platform)

    with pytest.raises(MissingRoomId):
        await client.send_notification("hello")

    assert platform.token_requests == []
    assert platform.api_requests == []


@pytest.mark.asyncio
async def test_send_notification_uses_bound_room_for_room_credential():
    platform = FakePlatform()
    client = _client(platform, _credential(room_id=42))

    await client.send_notification("hello", color="green", notify=True)

    request = platform.api_requests[0]
    assert request.method == "POST"
    assert request.url.path == "/v2/room/42/notification"
    assert json.loads(request.content) == {"message": "hello", "color": "green", "notify": True}
    assert request.headers["content-type"] == "application/json; charset=UTF-8"
    assert request.headers["content-length"] == str(len(request.content))


@pytest.mark.asyncio
async def test_bound_room_wins_over_explicit_room_id():
    platform = FakePlatform()
    client = _client(platform, _credential(room_id=42))

    await client.send_notification("hello", room_id=7)

    assert platform.api_requests[0].url.path == "/v2/room/42/notification"


@pytest.mark.asyncio
async def test_global_credential_uses_explicit_room_id():
    platform = FakePlatform()
    client = _client(platform)

    await client.reply_message("pong", parent_message_id="abc", room_id=7)

    request = platform.api_requests[0]
    assert request.url.path == "/v2/room/7/reply"
    assert json.loads(request.content) == {"message": "pong", "parentMessageId": "abc"}


@pytest.mark.asyncio
async def test_token_reused_until_expiry_then_refetched_once():
    platform = FakePlatform(expires_in=60)
    clock = FakeClock()
    client = _client(platform, clock=clock)

    await client.send_notification("one", room_id=1)
    await client.send_notification("two", room_id=1)
    assert len(platform.token_requests) == 1
    assert [r.url.params["auth_token"] for r in platform.api_requests] == ["tok-1", "tok-1"]

    clock.now += 61
    await client.send_notification("three", room_id=1)

    assert len(platform.token_requests) == 2
    assert platform.api_requests[-1].url.params["auth_token"] == "tok-2"


@pytest.mark.asyncio
async def test_zero_expires_in_is_not_cached():
    platform = FakePlatform(expires_in=0)
    client = _client(platform)

    await client.list_rooms()
    await client.list_rooms()

    assert len(platform.token_requests) == 2
    assert [r.url.params["auth_token"] for r in platform.api_requests] == ["tok-1", "tok-2"]


@pytest.mark.asyncio
async def test_missing_expires_in_defaults_to_one_hour():
    platform = FakePlatform()
    platform.token_response = httpx.Response(200, json={"access_token": "tok"})
    clock = FakeClock()
    client = _client(platform, clock=clock)

    await client.list_rooms()
    clock.now += 3599
    await client.list_rooms()
    assert len(platform.token_requests) == 1

    clock.now += 1
    await client.list_rooms()
    assert len(platform.token_requests) == 2


@pytest.mark.asyncio
async def test_concurrent_calls_share_one_token_request():
    platform = FakePlatform()
    client = _client(platform)

    await asyncio.gather(*(client.list_rooms() for _ in range(5)))

    assert len(platform.token_requests) == 1
    assert len(platform.api_requests) == 5


@pytest.mark.asyncio
async def test_concurrent_calls_after_expiry_refresh_once():
    platform = FakePlatform(expires_in=60)
    clock = FakeClock()
    client = _client(platform, clock=clock)
    await client.list_rooms()

    clock.now += 61
    await asyncio.gather(*(client.list_rooms() for _ in range(5)))

    assert len(platform.token_requests) == 2
    assert {r.url.params["auth_token"] for r in platform.api_requests[1:]} == {"tok-2"}


@pytest.mark.asyncio
async def test_token_request_uses_client_credentials_grant():
    platform = FakePlatform()
    client = _client(platform)

    await client.list_rooms()

    request = platform.token_requests[0]
    form = parse_qs(request.content.decode())
    assert request.method == "POST"
    assert form["grant_type"] == ["client_credentials"]
    assert form["scope"] == ["send_notification send_message admin_room view_group"]
    assert request.headers["authorization"].startswith("Basic ")


@pytest.mark.asyncio
async def test_token_failure_raises_authentication_failed_without_api_call():
    platform = FakePlatform()
    platform.token_response = httpx.Response(401, text="invalid_client")
    client = _client(platform)

    with pytest.raises(AuthenticationFailed) as excinfo:
        await client.send_notification("hello", room_id=1)

    assert excinfo.value.status_code == 401
    assert excinfo.value.body == "invalid_client"
    assert len(platform.token_requests) == 1
    assert platform.api_requests == []


@pytest.mark.asyncio
async def test_token_response_without_access_token_is_rejected():
    platform = FakePlatform()
    platform.token_response = httpx.Response(200, json={"expires_in": 10})
    client = _client(platform)

    with pytest.raises(AuthenticationFailed):
        await client.list_rooms()


@pytest.mark.asyncio
async def test_query_merge_caller_values_win_without_duplicates():
    platform = FakePlatform()
    client = _client(platform)

    await client._call("GET", "room?expand=items&max-results=5", query={"max-results": 10})

    params = platform.api_requests[0].url.params
    assert params.get_list("max-results") == ["10"]
    assert params["expand"] == "items"
    assert params.get_list("auth_token") == ["tok-1"]


@pytest.mark.asyncio
async def test_get_request_sends_no_body():
    platform = FakePlatform()
    client = _client(platform)

    await client.list_rooms({"max-results": 2})

    request = platform.api_requests[0]
    assert request.content == b""
    assert "content-type" not in request.headers


@pytest.mark.asyncio
async def test_list_rooms_returns_page():
    platform = FakePlatform()
    platform.routes[("GET", "/v2/room")] = httpx.Response(
        200,
        json={
            "items": [{"id": 1, "name": "General"}, {"id": 2, "name": "Ops"}],
            "startIndex": 0,
            "maxResults": 100,
        },
    )
    client = _client(platform)

    page = await client.list_rooms()

    assert [room.name for room in page.items] == ["General", "Ops"]
    assert page.start_index == 0
    assert page.max_results == 100


@pytest.mark.asyncio
async def test_get_room_returns_detail():
    platform = FakePlatform()
    platform.routes[("GET", "/v2/room/5")] = httpx.Response(
        200,
        json={
            "id": 5,
            "name": "Ops",
            "privacy": "public",
            "is_archived": False,
            "owner": {"id": 9, "mention_name": "ann", "name": "Ann"},
            "participants": [{"id": 10, "mention_name": "bob", "name": "Bob"}],
            "topic": "Deploys",
            "created": "2015-01-20T22:45:06+00:00",
        },
    )
    client = _client(platform)

    room = await client.get_room(5)

    assert room.detailed
    assert room.is_public
    assert not room.is_archived
    assert room.owner.mention_name == "ann"
    assert [p.name for p in room.participants] == ["Bob"]
    assert room.topic == "Deploys"
    assert room.created.year == 2015


@pytest.mark.asyncio
async def test_list_members_and_participants_paths():
    platform = FakePlatform()
    platform.routes[("GET", "/v2/room/3/member")] = httpx.Response(
        200, json={"items": [{"id": 1, "mention_name": "bob", "name": "Bob"}], "startIndex": 0, "maxResults": 1}
    )
    client = _client(platform)

    members = await client.list_members(3)
    await client.list_participants(3)

    assert members.items[0].mention_name == "bob"
    assert [r.url.path for r in platform.api_requests] == ["/v2/room/3/member", "/v2/room/3/participant"]


@pytest.mark.asyncio
async def test_add_and_remove_member_paths():
    platform = FakePlatform()
    client = _client(platform, _credential(room_id=8))

    await client.add_member(user_mention="bob")
    await client.add_member(user_id="123")
    await client.remove_member(user_email="bob@example.com")

    requests = platform.api_requests
    assert [(r.method, r.url.path) for r in requests] == [
        ("PUT", "/v2/room/8/member/@bob"),
        ("PUT", "/v2/room/8/member/123"),
        ("DELETE", "/v2/room/8/member/bob@example.com"),
    ]


@pytest.mark.asyncio
async def test_add_member_without_identity_fails():
    platform = FakePlatform()
    client = _client(platform, _credential(room_id=8))

    with pytest.raises(MissingUserIdentity):
        await client.add_member()

    assert platform.api_requests == []


def test_member_identity_precedence():
    assert member_identity(user_id=5, user_mention="bob") == "5"
    assert member_identity(user_mention="bob", user_email="b@x.io") == "@bob"
    assert member_identity(user_email="b@x.io") == "b@x.io"


@pytest.mark.asyncio
async def test_empty_body_decodes_to_empty_dict():
    platform = FakePlatform()
    client = _client(platform)

    result = await client.send_notification("hello", room_id=1)

    assert result == {}


@pytest.mark.asyncio
async def test_non_json_response_decodes_to_empty_dict():
    platform = FakePlatform()
    platform.routes[("POST", "/v2/room/1/notification")] = httpx.Response(
        200, text="ok", headers={"content-type": "text/plain"}
    )
    client = _client(platform)

    assert await client.send_notification("hello", room_id=1) == {}


@pytest.mark.asyncio
async def test_error_status_raises_api_call_failed():
    platform = FakePlatform()
    platform.routes[("GET", "/v2/room/99")] = httpx.Response(404, text="Room not found")
    client = _client(platform)

    with pytest.raises(ApiCallFailed) as excinfo:
        await client.get_room(99)

    assert excinfo.value.status_code == 404
    assert excinfo.value.body == "Room not found"


@pytest.mark.asyncio
async def test_transport_error_raises_api_call_failed():
    platform = FakePlatform()
    platform.api_error = httpx.ConnectError("connection refused")
    client = _client(platform)

    with pytest.raises(ApiCallFailed) as excinfo:
        await client.list_rooms()

    assert excinfo.value.status_code is None
    assert len(platform.api_requests) == 1
