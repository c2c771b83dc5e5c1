"""Application wiring and entrypoint."""

from __future__ import annotations

import json
import logging
from typing import Any

from chataddon.config import Settings, addon_url, load_settings
from chataddon.descriptor import build_descriptor
from chataddon.manager import AddonManager
from chataddon.store import CredentialStore, MemoryCredentialStore, SQLiteCredentialStore

LOGGER = logging.getLogger(__name__)


def build_store(settings: Settings) -> CredentialStore:
    if settings.database_path is None:
        LOGGER.warning("DATABASE_PATH not set; installations are kept in memory only")
        return MemoryCredentialStore()
    store = SQLiteCredentialStore(settings.database_path)
    store.initialize()
    return store


def build_manager(settings: Settings) -> AddonManager:
    """Create the manager an HTTP front door hands its webhooks to."""

    return AddonManager(
        store=build_store(settings),
        request_timeout_seconds=settings.request_timeout_seconds,
    )


def descriptor_for(settings: Settings) -> dict[str, Any]:
    return build_descriptor(
        key=settings.addon_key,
        name=settings.addon_name,
        base_url=settings.base_url,
        capability_url=addon_url(settings, settings.capability_path),
        webhook_url=addon_url(settings, settings.webhook_path),
        installed_url=addon_url(settings, settings.installed_path),
        description=settings.description,
        vendor_name=settings.vendor_name,
        vendor_url=settings.vendor_url,
        sender_name=settings.sender_name,
        allow_global=settings.allow_global,
        allow_room=settings.allow_room,
        message_filter=settings.message_filter,
    )


def main() -> None:
    """Print the capability descriptor for the configured add-on."""

    logging.basicConfig(level=logging.INFO)
    settings = load_settings()
    print(json.dumps(descriptor_for(settings), indent=2))


if __name__ == "__main__":
    main()
