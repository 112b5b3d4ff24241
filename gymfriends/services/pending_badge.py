"""Pending friend request counter shown on the friends tab icon."""
from __future__ import annotations

import logging

from ..clients.backend import BackendClient, BackendError
from . import friendship_service
from .friendship_service import FRIEND_REQUESTS_TABLE
from .realtime import ChangeFeed, RealtimeInvalidator

logger = logging.getLogger(__name__)


class PendingRequestBadge:
    """Keeps ``count`` in step with the backend's pending-request list."""

    def __init__(self, client: BackendClient, feed: ChangeFeed | None = None, *, delay_ms: int = 300) -> None:
        self.client = client
        self.count = 0
        self._feed = feed
        self._delay_ms = delay_ms
        self._invalidator: RealtimeInvalidator | None = None

    @property
    def visible(self) -> bool:
        return self.count > 0

    async def start(self) -> None:
        await self.refresh()
        if self._feed is not None and self._invalidator is None:
            self._invalidator = RealtimeInvalidator(
                self._feed,
                lambda _table: self.refresh(),
                delay_ms=self._delay_ms,
                tables=(FRIEND_REQUESTS_TABLE,),
            )

    async def refresh(self) -> int:
        try:
            requests = await friendship_service.list_pending_requests(self.client)
        except BackendError:
            logger.exception("Error fetching pending requests")
            return self.count
        self.count = len(requests)
        return self.count

    @property
    def invalidator(self) -> RealtimeInvalidator | None:
        return self._invalidator

    def stop(self) -> None:
        if self._invalidator is not None:
            self._invalidator.close()
            self._invalidator = None


__all__ = ["PendingRequestBadge"]
