"""Capability descriptor the platform reads when installing the add-on."""

from __future__ import annotations

from typing import Any

from chataddon.client import API_SCOPES
from chataddon.events import EventKind

_REQUIRED = ("key", "name", "base_url", "capability_url", "webhook_url", "installed_url")

_WEBHOOK_EVENTS = (
    EventKind.ROOM_NOTIFICATION,
    EventKind.ROOM_TOPIC_CHANGE,
    EventKind.ROOM_ENTER,
    EventKind.ROOM_EXIT,
)


def build_descriptor(
    key: str,
    name: str,
    base_url: str,
    capability_url: str,
    webhook_url: str,
    installed_url: str,
    description: str | None = None,
    vendor_name: str | None = None,
    vendor_url: str | None = None,
    homepage_url: str | None = None,
    sender_name: str | None = None,
    allow_global: bool = True,
    allow_room: bool = True,
    message_filter: str | None = None,
) -> dict[str, Any]:
    """Return the JSON-ready capability descriptor.

    Every room webhook points at webhook_url. When message_filter is set, the
    platform only forwards room messages matching that regular expression.
    """

    given = {
        "key": key,
        "name": name,
        "base_url": base_url,
        "capability_url": capability_url,
        "webhook_url": webhook_url,
        "installed_url": installed_url,
    }
    missing = [field for field in _REQUIRED if not given[field]]
    if missing:
        raise ValueError(f"missing parameters: {', '.join(missing)}")

    webhooks: list[dict[str, str]] = [
        {"name": kind.value, "event": kind.value, "url": webhook_url} for kind in _WEBHOOK_EVENTS
    ]
    message_webhook = {
        "name": EventKind.ROOM_MESSAGE.value,
        "event": EventKind.ROOM_MESSAGE.value,
        "url": webhook_url,
    }
    if message_filter:
        message_webhook["pattern"] = message_filter
    webhooks.append(message_webhook)

    return {
        "key": key,
        "name": name,
        "description": description or name,
        "vendor": {
            "name": vendor_name or name,
            "url": vendor_url or base_url,
        },
        "links": {
            "self": capability_url,
            "homepage": homepage_url or base_url,
        },
        "capabilities": {
            "webhook": webhooks,
            "hipchatApiConsumer": {
                "scopes": list(API_SCOPES),
                "fromName": sender_name or name,
            },
            "installable": {
                "allowGlobal": allow_global,
                "allowRoom": allow_room,
                "callbackUrl": installed_url,
            },
        },
    }
