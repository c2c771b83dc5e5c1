"""Authenticated client for the chat platform's REST API."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Callable, Mapping
from urllib.parse import quote, urljoin

import httpx

from chataddon.atoms import Page, Person, Room, RoomDetail
from chataddon.exceptions import ApiCallFailed, AuthenticationFailed, MissingRoomId, MissingUserIdentity
from chataddon.models import CachedToken, CredentialRecord

LOGGER = logging.getLogger(__name__)

API_SCOPES = ("send_notification", "send_message", "admin_room", "view_group")

_DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


class AddonClient:
    """Issues API calls on behalf of one installation.

    The client obtains an access token with the OAuth2 client-credentials
    grant, caches it until the expiry the token endpoint reports, and attaches
    it to every request as the ``auth_token`` query parameter. Nothing is
    retried; failures surface as ApiCallFailed or AuthenticationFailed.

    Usage:
        client = AddonClient(credential)
        await client.send_notification("Build passed", room_id=42, color="green")
        rooms = await client.list_rooms({"max-results": 10})
    """

    def __init__(
        self,
        credential: CredentialRecord,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.credential = credential
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport
        self._clock = clock
        self._token: CachedToken | None = None
        self._token_lock = asyncio.Lock()

    @property
    def installation_id(self) -> str:
        return self.credential.installation_id

    # ========== Messaging ==========

    async def send_notification(self, message: str, room_id: int | None = None, **params: Any) -> dict[str, Any]:
        """Post a notification to a room.

        Extra keyword arguments (color, notify, message_format, ...) are sent
        in the JSON body.
        """

        room = self._resolve_room_id(room_id)
        return await self._call("POST", f"room/{room}/notification", body={"message": message, **params})

    async def reply_message(
        self,
        message: str,
        parent_message_id: str | None = None,
        room_id: int | None = None,
        **params: Any,
    ) -> dict[str, Any]:
        room = self._resolve_room_id(room_id)
        body: dict[str, Any] = {"message": message, **params}
        if parent_message_id is not None:
            body["parentMessageId"] = parent_message_id
        return await self._call("POST", f"room/{room}/reply", body=body)

    # ========== Rooms ==========

    async def list_rooms(self, query: Mapping[str, Any] | None = None) -> Page[Room]:
        data = await self._call("GET", "room", query=query)
        return Page.from_response(data, Room)

    async def get_room(self, room_id: int | None = None, query: Mapping[str, Any] | None = None) -> RoomDetail:
        room = self._resolve_room_id(room_id)
        data = await self._call("GET", f"room/{room}", query=query)
        return RoomDetail(data)

    # ========== Membership ==========

    async def list_members(
        self, room_id: int | None = None, query: Mapping[str, Any] | None = None
    ) -> Page[Person]:
        room = self._resolve_room_id(room_id)
        data = await self._call("GET", f"room/{room}/member", query=query)
        return Page.from_response(data, Person)

    async def list_participants(
        self, room_id: int | None = None, query: Mapping[str, Any] | None = None
    ) -> Page[Person]:
        room = self._resolve_room_id(room_id)
        data = await self._call("GET", f"room/{room}/participant", query=query)
        return Page.from_response(data, Person)

    async def add_member(
        self,
        room_id: int | None = None,
        *,
        user_id: int | str | None = None,
        user_mention: str | None = None,
        user_email: str | None = None,
        **params: Any,
    ) -> dict[str, Any]:
        room = self._resolve_room_id(room_id)
        identity = member_identity(user_id=user_id, user_mention=user_mention, user_email=user_email)
        return await self._call("PUT", f"room/{room}/member/{identity}", body=params)

    async def remove_member(
        self,
        room_id: int | None = None,
        *,
        user_id: int | str | None = None,
        user_mention: str | None = None,
        user_email: str | None = None,
        **params: Any,
    ) -> dict[str, Any]:
        room = self._resolve_room_id(room_id)
        identity = member_identity(user_id=user_id, user_mention=user_mention, user_email=user_email)
        return await self._call("DELETE", f"room/{room}/member/{identity}", body=params)

    # ========== Internals ==========

    def _resolve_room_id(self, room_id: int | None) -> int:
        # A room-scoped installation can only act on its own room.
        if self.credential.room_id is not None:
            return self.credential.room_id
        if room_id is None:
            raise MissingRoomId("room_id is required for a global installation")
        return room_id

    async def _call(
        self,
        method: str,
        path: str,
        query: Mapping[str, Any] | None = None,
        body: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = httpx.URL(urljoin(self.credential.api_base_url, path))
        params: dict[str, Any] = dict(url.params)
        params.update(query or {})
        params["auth_token"] = await self._access_token()
        url = url.copy_with(params=params)

        headers: dict[str, str] = {}
        content: bytes | None = None
        if body is not None:
            content = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json; charset=UTF-8"
            headers["Content-Length"] = str(len(content))

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.request(method, url, content=content, headers=headers)
        except httpx.HTTPError as exc:
            LOGGER.warning("%s %s failed for installation %s: %s", method, path, self.installation_id, exc)
            raise ApiCallFailed(f"{method} {path} failed: {exc}") from exc

        if not response.is_success:
            LOGGER.warning(
                "%s %s returned HTTP %d for installation %s",
                method,
                path,
                response.status_code,
                self.installation_id,
            )
            raise ApiCallFailed(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        if not response.headers.get("content-type", "").startswith("application/json"):
            return {}
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    async def _access_token(self) -> str:
        async with self._token_lock:
            if self._token is None or self._token.expired(self._clock()):
                self._token = await self._fetch_token()
            return self._token.token

    async def _fetch_token(self) -> CachedToken:
        data = {"grant_type": "client_credentials", "scope": " ".join(API_SCOPES)}
        auth = (self.credential.client_id, self.credential.client_secret)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self.credential.token_url, data=data, auth=auth)
        except httpx.HTTPError as exc:
            LOGGER.warning("Token request failed for installation %s: %s", self.installation_id, exc)
            raise AuthenticationFailed(f"Token request failed: {exc}") from exc

        if not response.is_success:
            LOGGER.warning(
                "Token endpoint returned HTTP %d for installation %s", response.status_code, self.installation_id
            )
            raise AuthenticationFailed(
                f"Token endpoint returned HTTP {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            payload = response.json()
            token = str(payload["access_token"])
            raw_expires_in = payload.get("expires_in")
            expires_in = float(_DEFAULT_TOKEN_LIFETIME_SECONDS if raw_expires_in is None else raw_expires_in)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise AuthenticationFailed(
                "Token endpoint returned an unusable response",
                status_code=response.status_code,
                body=response.text,
            ) from exc

        LOGGER.info("Acquired access token for installation %s (expires in %ds)", self.installation_id, expires_in)
        return CachedToken(token=token, expires_at=self._clock() + expires_in)


def member_identity(
    user_id: int | str | None = None,
    user_mention: str | None = None,
    user_email: str | None = None,
) -> str:
    """Path segment naming a user: id, then @mention, then email."""

    if user_id is not None:
        identity = str(user_id)
    elif user_mention:
        identity = "@" + user_mention
    elif user_email:
        identity = user_email
    else:
        raise MissingUserIdentity("user_id, user_mention or user_email is required")
    return quote(identity, safe="@")
