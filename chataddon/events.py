"""Typed room events parsed from inbound webhook payloads."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from functools import cached_property
from typing import Any, Mapping

from chataddon.atoms import Message, Room, User


class EventGroup(str, Enum):
    """Super-categories shared by several event kinds."""

    ROOM_MESSAGING = "room_messaging"
    ROOM_VISITING = "room_visiting"


class EventKind(str, Enum):
    """Discriminator values understood by the add-on.

    Anything the platform sends that is not listed here parses as GENERIC.
    """

    GENERIC = "generic"
    ROOM_MESSAGE = "room_message"
    ROOM_NOTIFICATION = "room_notification"
    ROOM_ENTER = "room_enter"
    ROOM_EXIT = "room_exit"
    ROOM_TOPIC_CHANGE = "room_topic_change"

    @property
    def group(self) -> EventGroup | None:
        return _GROUPS.get(self)


_GROUPS: dict[EventKind, EventGroup] = {
    EventKind.ROOM_MESSAGE: EventGroup.ROOM_MESSAGING,
    EventKind.ROOM_NOTIFICATION: EventGroup.ROOM_MESSAGING,
    EventKind.ROOM_ENTER: EventGroup.ROOM_VISITING,
    EventKind.ROOM_EXIT: EventGroup.ROOM_VISITING,
}


class Event:
    """A webhook event of any kind."""

    def __init__(self, raw: Mapping[str, Any], kind: EventKind = EventKind.GENERIC) -> None:
        self.raw = dict(raw)
        self.kind = kind

    @property
    def type(self) -> str | None:
        """Discriminator exactly as sent, even when unrecognised."""

        return self.raw.get("event")

    @property
    def installation_id(self) -> str | None:
        return self.raw.get("oauth_client_id")

    @property
    def webhook_id(self) -> Any:
        return self.raw.get("webhook_id")

    @property
    def group(self) -> EventGroup | None:
        return self.kind.group

    @cached_property
    def _item(self) -> dict[str, Any]:
        item = self.raw.get("item")
        return item if isinstance(item, dict) else {}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind.value!r}, "
            f"installation_id={self.installation_id!r})"
        )


class RoomMessagingEvent(Event):
    """room_message or room_notification."""

    @cached_property
    def message(self) -> Message:
        return Message(self._item.get("message") or {})

    @cached_property
    def room(self) -> Room:
        return Room(self._item.get("room") or {})

    @property
    def message_id(self) -> str | None:
        return self.message.id

    @property
    def timestamp(self) -> datetime | None:
        return self.message.date

    @property
    def body(self) -> str:
        return self.message.body

    @property
    def message_format(self) -> str | None:
        return self.message.message_format

    @property
    def sender(self) -> User | None:
        return self.message.sender

    @property
    def mentions(self) -> list[User]:
        return self.message.mentions


class RoomVisitingEvent(Event):
    """room_enter or room_exit."""

    @cached_property
    def sender(self) -> User | None:
        sender = self._item.get("sender")
        return User.from_payload(sender) if sender is not None else None

    @cached_property
    def room(self) -> Room:
        return Room(self._item.get("room") or {})


class RoomTopicChangeEvent(Event):
    """room_topic_change: who changed the topic of which room, and to what."""

    @cached_property
    def sender(self) -> User | None:
        sender = self._item.get("sender")
        return User.from_payload(sender) if sender is not None else None

    @cached_property
    def room(self) -> Room:
        return Room(self._item.get("room") or {})

    @property
    def topic(self) -> str | None:
        return self._item.get("topic")


_VARIANTS: dict[EventKind, type[Event]] = {
    EventKind.ROOM_MESSAGE: RoomMessagingEvent,
    EventKind.ROOM_NOTIFICATION: RoomMessagingEvent,
    EventKind.ROOM_ENTER: RoomVisitingEvent,
    EventKind.ROOM_EXIT: RoomVisitingEvent,
    EventKind.ROOM_TOPIC_CHANGE: RoomTopicChangeEvent,
}


def parse_event(payload: Mapping[str, Any]) -> Event:
    """Build the typed event for a webhook payload.

    Unknown or missing discriminators yield a plain GENERIC event so that new
    webhook types from the platform are still delivered to catch-all hooks.
    """

    try:
        kind = EventKind(payload.get("event"))
    except ValueError:
        kind = EventKind.GENERIC
    cls = _VARIANTS.get(kind, Event)
    return cls(payload, kind)
