"""Read-only wrappers over the platform's user, message and room JSON.

Nested values are parsed on first access and cached on the instance. The raw
payload is copied at construction and never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from functools import cached_property
from typing import Any, Callable, Generic, TypeVar

T = TypeVar("T")


class User:
    """Base shape shared by both kinds of user."""

    def __init__(self, raw: dict[str, Any]) -> None:
        self.raw = dict(raw)

    @property
    def name(self) -> str | None:
        return self.raw.get("name")

    @staticmethod
    def from_payload(payload: str | dict[str, Any]) -> User:
        """Notifications carry the sender as a bare string; people are objects."""

        if isinstance(payload, str):
            return NotifySender({"name": payload})
        return Person(payload)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class NotifySender(User):
    """Sender of a notification, known only by its display name."""


class Person(User):
    """A platform user with an id and mention name."""

    @property
    def id(self) -> int | None:
        return self.raw.get("id")

    @property
    def mention_name(self) -> str | None:
        return self.raw.get("mention_name")


class Message:
    def __init__(self, raw: dict[str, Any]) -> None:
        self.raw = dict(raw)

    @property
    def id(self) -> str | None:
        return self.raw.get("id")

    @cached_property
    def date(self) -> datetime | None:
        return _parse_time(self.raw.get("date"))

    @property
    def body(self) -> str:
        return self.raw.get("message") or ""

    @property
    def message_format(self) -> str | None:
        return self.raw.get("message_format")

    @property
    def color(self) -> str | None:
        return self.raw.get("color")

    @cached_property
    def sender(self) -> User | None:
        sender = self.raw.get("from")
        return User.from_payload(sender) if sender is not None else None

    @cached_property
    def mentions(self) -> list[User]:
        return [User.from_payload(item) for item in self.raw.get("mentions") or []]


class Room:
    """Room identity as it appears in webhooks and room listings."""

    detailed = False

    def __init__(self, raw: dict[str, Any]) -> None:
        self.raw = dict(raw)

    @property
    def id(self) -> int | None:
        return self.raw.get("id")

    @property
    def name(self) -> str | None:
        return self.raw.get("name")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, name={self.name!r})"


class RoomDetail(Room):
    """Full room record returned by the get-room API call."""

    detailed = True

    @cached_property
    def created(self) -> datetime | None:
        return _parse_time(self.raw.get("created"))

    @cached_property
    def last_active(self) -> datetime | None:
        return _parse_time(self.raw.get("last_active"))

    @property
    def privacy(self) -> str | None:
        return self.raw.get("privacy")

    @property
    def is_public(self) -> bool:
        return self.privacy == "public"

    @property
    def is_private(self) -> bool:
        return self.privacy == "private"

    @property
    def is_archived(self) -> bool:
        return bool(self.raw.get("is_archived"))

    @property
    def is_guest_accessible(self) -> bool:
        return bool(self.raw.get("is_guest_accessible"))

    @property
    def guest_access_url(self) -> str | None:
        return self.raw.get("guest_access_url")

    @cached_property
    def owner(self) -> Person | None:
        owner = self.raw.get("owner")
        return Person(owner) if owner else None

    @cached_property
    def participants(self) -> list[Person]:
        return [Person(item) for item in self.raw.get("participants") or []]

    @property
    def topic(self) -> str | None:
        return self.raw.get("topic")

    @property
    def xmpp_jid(self) -> str | None:
        return self.raw.get("xmpp_jid")


@dataclass
class Page(Generic[T]):
    """One page of a paginated API listing."""

    items: list[T]
    start_index: int | None = None
    max_results: int | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, data: dict[str, Any], item_factory: Callable[[dict[str, Any]], T]) -> Page[T]:
        return cls(
            items=[item_factory(item) for item in data.get("items") or []],
            start_index=data.get("startIndex"),
            max_results=data.get("maxResults"),
            raw=dict(data),
        )


def _parse_time(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None
