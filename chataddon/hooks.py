"""Registry of lifecycle and event hooks."""

from __future__ import annotations

import inspect
import itertools
import logging
import threading
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from chataddon.events import EventGroup, EventKind

LOGGER = logging.getLogger(__name__)

DEFAULT_PRIORITY = 100


class HookCategory(str, Enum):
    INSTALL = "install"
    UNINSTALL = "uninstall"
    EVENT = "event"
    ROOM_MESSAGING = "room_messaging"
    ROOM_MESSAGE = "room_message"
    ROOM_NOTIFICATION = "room_notification"
    ROOM_TOPIC_CHANGE = "room_topic_change"
    ROOM_VISITING = "room_visiting"
    ROOM_ENTER = "room_enter"
    ROOM_EXIT = "room_exit"


class HookResult(Enum):
    """Return HookResult.STOP from a handler to skip the rest of its category."""

    CONTINUE = "continue"
    STOP = "stop"


Handler = Callable[[Any, Any], Any]


@dataclass(frozen=True, slots=True)
class _Hook:
    hook_id: str
    handler: Handler
    priority: int
    seq: int


def categories_for(kind: EventKind) -> list[HookCategory]:
    """Categories an event of this kind is delivered to, broadest first."""

    chain = [HookCategory.EVENT]
    group: EventGroup | None = kind.group
    if group is not None:
        chain.append(HookCategory(group.value))
    if kind is not EventKind.GENERIC:
        chain.append(HookCategory(kind.value))
    return chain


class HookRegistry:
    """Ordered handler lists per category.

    Each category holds an immutable tuple sorted by (priority, registration
    order). Writers build a new tuple under the lock and swap it in; dispatch
    iterates whatever tuple was current when it started.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._seq = itertools.count()
        self._hooks: dict[HookCategory, tuple[_Hook, ...]] = {category: () for category in HookCategory}

    def register(
        self,
        category: HookCategory | str,
        handler: Handler,
        priority: int | None = None,
        hook_id: str | None = None,
    ) -> str:
        """Add a handler and return its id.

        Lower priority values run first; equal priorities run in registration
        order. Registering an existing hook_id in the same category replaces it.
        """

        category = HookCategory(category)
        hook_id = hook_id or uuid.uuid4().hex
        with self._lock:
            hook = _Hook(
                hook_id=hook_id,
                handler=handler,
                priority=DEFAULT_PRIORITY if priority is None else priority,
                seq=next(self._seq),
            )
            current = [h for h in self._hooks[category] if h.hook_id != hook_id]
            current.append(hook)
            self._hooks[category] = tuple(sorted(current, key=lambda h: (h.priority, h.seq)))
        return hook_id

    def unregister(self, category: HookCategory | str, hook_id: str) -> None:
        category = HookCategory(category)
        with self._lock:
            self._hooks[category] = tuple(h for h in self._hooks[category] if h.hook_id != hook_id)

    def handlers(self, category: HookCategory | str) -> list[Handler]:
        return [hook.handler for hook in self._hooks[HookCategory(category)]]

    async def dispatch(self, category: HookCategory | str, *args: Any) -> None:
        """Call every handler of one category in order.

        A handler returning None or HookResult.CONTINUE lets the next one run;
        HookResult.STOP ends this category. Exceptions raised by a handler propagate to the caller and end the
        dispatch.
        """

        category = HookCategory(category)
        for hook in self._hooks[category]:
            LOGGER.debug("Dispatching %s hook %s", category.value, hook.hook_id)
            result = hook.handler(*args)
            if inspect.isawaitable(result):
                result = await result
            if result is HookResult.STOP:
                LOGGER.debug("Hook %s stopped %s dispatch", hook.hook_id, category.value)
                break
