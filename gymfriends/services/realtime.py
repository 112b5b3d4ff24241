"""Realtime change-feed subscriptions and debounced invalidation.

The transport that receives row-change notifications from the backend pushes
them into a ``ChangeFeedHub``; screens subscribe through the narrow
``ChangeFeed.on_change`` interface so invalidation policy stays testable
without a live connection.
"""
from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Mapping, Protocol

from ..schemas.friends import ChangeEvent
from .debounce import Debouncer
from .friendship_service import FRIEND_REQUESTS_TABLE, FRIENDS_TABLE

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[ChangeEvent], "Awaitable[None] | None"]


class Subscription(Protocol):
    def unsubscribe(self) -> None:
        ...


class ChangeFeed(Protocol):
    def on_change(
        self,
        table: str,
        handler: ChangeHandler,
        *,
        filters: Mapping[str, Any] | None = None,
    ) -> Subscription:
        """Call ``handler`` for every change on ``table`` whose row matches ``filters``."""
        ...


@dataclass(eq=False)
class _HubSubscription:
    hub: "ChangeFeedHub"
    key: int
    table: str
    handler: ChangeHandler
    filters: dict[str, str] = field(default_factory=dict)

    def matches(self, event: ChangeEvent) -> bool:
        if not self.filters:
            return True
        for row in (event.record, event.old_record):
            if row and all(str(row.get(column)) == value for column, value in self.filters.items()):
                return True
        return False

    def unsubscribe(self) -> None:
        self.hub._remove(self)


class ChangeFeedHub(ChangeFeed):
    """Tracks per-table subscriptions and fans out change events."""

    def __init__(self) -> None:
        self._channels: dict[str, dict[int, _HubSubscription]] = {}
        self._ids = itertools.count(1)

    def on_change(
        self,
        table: str,
        handler: ChangeHandler,
        *,
        filters: Mapping[str, Any] | None = None,
    ) -> _HubSubscription:
        subscription = _HubSubscription(
            hub=self,
            key=next(self._ids),
            table=table,
            handler=handler,
            filters={column: str(value) for column, value in (filters or {}).items()},
        )
        self._channels.setdefault(table, {})[subscription.key] = subscription
        return subscription

    def _remove(self, subscription: _HubSubscription) -> None:
        group = self._channels.get(subscription.table)
        if group is None:
            return
        group.pop(subscription.key, None)
        if not group:
            self._channels.pop(subscription.table, None)

    def subscriber_count(self, table: str | None = None) -> int:
        if table is not None:
            return len(self._channels.get(table, ()))
        return sum(len(group) for group in self._channels.values())

    async def publish(self, event: ChangeEvent) -> None:
        targets = [sub for sub in list(self._channels.get(event.table, {}).values()) if sub.matches(event)]
        for subscription in targets:
            try:
                result = subscription.handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Change handler failed for table %s", event.table)


class RealtimeInvalidator:
    """Schedules a debounced refresh whenever the request or friendship relation changes.

    One debouncer per feed: a burst of events on the same relation collapses
    into a single refresh fired ``delay_ms`` after the last event.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        on_refresh: Callable[[str], Awaitable[None] | None],
        *,
        delay_ms: int = 300,
        tables: Iterable[str] = (FRIEND_REQUESTS_TABLE, FRIENDS_TABLE),
        filters: Mapping[str, Iterable[Mapping[str, Any] | None]] | None = None,
    ) -> None:
        self._feed = feed
        self._on_refresh = on_refresh
        self._subscriptions: list[Subscription] = []
        self._debouncers: dict[str, Debouncer] = {}
        for table in tables:
            debouncer = Debouncer(delay_ms, self._make_refresh(table), name=f"refresh:{table}")
            self._debouncers[table] = debouncer
            scopes = list((filters or {}).get(table) or [None])
            for scope in scopes:
                self._subscriptions.append(feed.on_change(table, self._make_handler(table), filters=scope))

    def _make_refresh(self, table: str) -> Callable[[], Awaitable[None] | None]:
        def _refresh() -> Awaitable[None] | None:
            logger.debug("Realtime refresh firing for %s", table)
            return self._on_refresh(table)

        return _refresh

    def _make_handler(self, table: str) -> ChangeHandler:
        def _handle(event: ChangeEvent) -> None:
            logger.info("Change on %s detected (%s), refresh scheduled", table, event.event_type)
            self._debouncers[table].schedule()

        return _handle

    def debouncer(self, table: str) -> Debouncer:
        return self._debouncers[table]

    @property
    def pending(self) -> bool:
        return any(debouncer.pending for debouncer in self._debouncers.values())

    async def flush(self) -> None:
        for debouncer in self._debouncers.values():
            await debouncer.flush()

    async def drain(self) -> None:
        await asyncio.gather(*(debouncer.drain() for debouncer in self._debouncers.values()))

    def close(self) -> None:
        for debouncer in self._debouncers.values():
            debouncer.cancel()
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()


__all__ = [
    "ChangeFeed",
    "ChangeFeedHub",
    "ChangeHandler",
    "RealtimeInvalidator",
    "Subscription",
]
