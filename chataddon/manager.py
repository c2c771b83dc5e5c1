"""Entry points for install, uninstall and event webhooks."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Mapping

import httpx
from pydantic import ValidationError

from chataddon.client import AddonClient
from chataddon.events import Event, parse_event
from chataddon.exceptions import InstallationSetupFailed
from chataddon.hooks import Handler, HookCategory, HookRegistry, categories_for
from chataddon.models import CapabilityDocument, CredentialRecord, InstallPayload
from chataddon.store import CredentialStore

LOGGER = logging.getLogger(__name__)


class AddonManager:
    """Turns inbound webhooks into credential changes and hook calls.

    Handlers are called with two positional arguments:

    - install: the new installation's AddonClient and its CredentialRecord
    - uninstall: the AddonClient (None if nothing was stored) and the id
    - events: the AddonClient (None if the installation is unknown) and the Event

    Cached clients hold an asyncio.Lock for token refresh, so every entry
    point of one manager must run on the same event loop.
    """

    def __init__(
        self,
        store: CredentialStore,
        hooks: HookRegistry | None = None,
        request_timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.hooks = hooks or HookRegistry()
        self._request_timeout_seconds = request_timeout_seconds
        self._transport = transport
        self._clock = clock
        self._clients: dict[str, AddonClient] = {}
        self._clients_lock = threading.Lock()

    def on(self, category: HookCategory | str, priority: int | None = None) -> Callable[[Handler], Handler]:
        """Decorator form of HookRegistry.register."""

        def decorator(handler: Handler) -> Handler:
            self.hooks.register(category, handler, priority=priority)
            return handler

        return decorator

    def client(self, installation_id: str | None) -> AddonClient | None:
        """Return the client for a stored installation, or None if unknown.

        Clients are cached so their access token outlives a single webhook.
        """

        if installation_id is None:
            return None
        record = self.store.get(installation_id)
        with self._clients_lock:
            if record is None:
                self._clients.pop(installation_id, None)
                return None
            cached = self._clients.get(installation_id)
            if cached is not None and cached.credential == record:
                return cached
            client = self._build_client(record)
            self._clients[installation_id] = client
            return client

    async def handle_install(self, payload: Mapping[str, Any]) -> AddonClient:
        """Fetch the platform's capabilities, store credentials, run install hooks."""

        try:
            install = InstallPayload.model_validate(payload)
        except ValidationError as exc:
            raise InstallationSetupFailed(f"Invalid install payload: {exc}") from exc

        capabilities = await self._fetch_capabilities(install.capabilities_url)
        try:
            record = CredentialRecord(
                installation_id=install.installation_id,
                client_id=install.client_id,
                client_secret=install.client_secret,
                authorization_url=capabilities.authorization_url,
                token_url=capabilities.token_url,
                api_base_url=capabilities.api_base_url,
                room_id=install.room_id,
                group_id=install.group_id,
            )
        except ValidationError as exc:
            raise InstallationSetupFailed(f"Cannot build credentials: {exc}") from exc

        self.store.put(record.installation_id, record)
        client = self._build_client(record)
        with self._clients_lock:
            self._clients[record.installation_id] = client
        LOGGER.info(
            "Installed %s (%s scope)",
            record.installation_id,
            "room" if record.is_room else "global",
        )

        await self.hooks.dispatch(HookCategory.INSTALL, client, record)
        return client

    async def handle_uninstall(self, installation_id: str) -> None:
        """Run uninstall hooks, then forget the installation.

        The platform revokes the credentials before calling back, so hooks must
        not expect API calls to succeed. Repeated calls are harmless.
        """

        client = self.client(installation_id)
        await self.hooks.dispatch(HookCategory.UNINSTALL, client, installation_id)
        self.store.delete(installation_id)
        with self._clients_lock:
            self._clients.pop(installation_id, None)
        LOGGER.info("Uninstalled %s", installation_id)

    async def handle_event(self, payload: Mapping[str, Any]) -> Event:
        """Parse a webhook payload and deliver it, broadest category first."""

        event = parse_event(payload)
        client = self.client(event.installation_id)
        if client is None:
            LOGGER.debug("Event %s for unknown installation %s", event.type, event.installation_id)
        for category in categories_for(event.kind):
            await self.hooks.dispatch(category, client, event)
        return event

    def _build_client(self, record: CredentialRecord) -> AddonClient:
        return AddonClient(
            record,
            timeout_seconds=self._request_timeout_seconds,
            transport=self._transport,
            clock=self._clock,
        )

    async def _fetch_capabilities(self, url: str) -> CapabilityDocument:
        timeout = httpx.Timeout(self._request_timeout_seconds)
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.get(url)
                response.raise_for_status()
            return CapabilityDocument.model_validate(response.json())
        except (httpx.HTTPError, ValueError) as exc:
            LOGGER.warning("Could not read capability document %s: %s", url, exc)
            raise InstallationSetupFailed(f"Could not read capability document {url}: {exc}") from exc
