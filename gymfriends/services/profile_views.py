"""Profile detail views: the limited view for non-friends and the full friend view."""
from __future__ import annotations

import inspect
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from ..clients.backend import BackendClient, BackendError
from ..schemas.friends import FriendshipState, FullProfile, RecentActivity, TrainingCycle, UserProfileSnapshot
from . import friendship_service
from .action_dispatcher import FriendActionDispatcher, StatusCallback
from .friendship_service import FRIENDS_TABLE, TRAINING_CYCLES_TABLE, WORKOUT_LOGS_TABLE
from .i18n_service import translate
from .notifier import Notifier
from .realtime import ChangeFeed, RealtimeInvalidator

logger = logging.getLogger(__name__)

CloseCallback = Callable[[], "Awaitable[None] | None"]


class ProfileViewKind(str, Enum):
    LIMITED = "limited"
    FULL = "full"


def view_kind_for(status: FriendshipState) -> ProfileViewKind:
    """Only a resolved ``friend`` relation unlocks the full profile."""

    return ProfileViewKind.FULL if status is FriendshipState.FRIEND else ProfileViewKind.LIMITED


async def _call(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class LimitedProfileView:
    kind = ProfileViewKind.LIMITED

    def __init__(
        self,
        client: BackendClient,
        profile: UserProfileSnapshot,
        *,
        notifier: Notifier,
        viewer_id: str | None = None,
        on_close: CloseCallback | None = None,
        on_status_change: StatusCallback | None = None,
        locale: str | None = None,
    ) -> None:
        self.profile = profile
        self._on_close = on_close
        self._on_status_change = on_status_change
        initial = profile.status if profile.status is not FriendshipState.UNKNOWN else None
        self.button = FriendActionDispatcher(
            client,
            profile.user_id,
            notifier=notifier,
            viewer_id=viewer_id,
            initial_status=initial,
            on_status_change=on_status_change,
            target_name=profile.full_name,
            locale=locale,
        )

    @property
    def status(self) -> FriendshipState:
        return self.button.status

    async def open(self) -> FriendshipState:
        if self.button.status is FriendshipState.UNKNOWN:
            status = await self.button.refresh()
            if status is FriendshipState.FRIEND:
                await _call(self._on_status_change, self.profile.user_id, status)
        return self.button.status

    async def handle_request(self) -> FriendshipState:
        return await self.button.handle_request()

    async def attach(self, feed: ChangeFeed) -> None:
        await self.button.attach(feed)

    def detach(self) -> None:
        self.button.detach()

    async def close(self) -> None:
        self.detach()
        await _call(self._on_close)


class FriendProfileView:
    kind = ProfileViewKind.FULL

    def __init__(
        self,
        client: BackendClient,
        profile: UserProfileSnapshot,
        *,
        notifier: Notifier,
        viewer_id: str | None = None,
        on_close: CloseCallback | None = None,
        on_status_change: StatusCallback | None = None,
        locale: str | None = None,
        realtime_delay_ms: int = 300,
    ) -> None:
        self.client = client
        self.profile = profile
        self.status = FriendshipState.FRIEND
        self.full_profile: FullProfile | None = None
        self.active_cycle: TrainingCycle | None = None
        self.recent_activity: list[RecentActivity] = []
        self.friend_since: datetime | None = None
        self.loading = False
        self._notifier = notifier
        self._viewer_id = viewer_id
        self._on_close = on_close
        self._on_status_change = on_status_change
        self._locale = locale
        self._realtime_delay_ms = realtime_delay_ms
        self._invalidator: RealtimeInvalidator | None = None

    async def _viewer(self) -> str | None:
        if not self._viewer_id:
            try:
                self._viewer_id = await self.client.current_user_id()
            except BackendError:
                logger.exception("Could not determine the signed-in user")
        return self._viewer_id

    def _clear_friend_data(self) -> None:
        self.full_profile = None
        self.active_cycle = None
        self.recent_activity = []
        self.friend_since = None

    async def open(self) -> FriendshipState:
        """Re-check the relation; friend-only data is loaded only while it is ``friend``."""

        viewer_id = await self._viewer()
        self.status = await friendship_service.resolve_friendship_status(self.client, viewer_id, self.profile.user_id)
        if self.status is not FriendshipState.FRIEND:
            logger.info("No longer friends with %s; notifying parent", self.profile.user_id)
            self._clear_friend_data()
            await _call(self._on_status_change, self.profile.user_id, self.status)
            return self.status

        try:
            self.full_profile = await friendship_service.fetch_full_profile(self.client, self.profile.user_id)
        except BackendError:
            logger.exception("Error fetching full profile for %s", self.profile.user_id)
        await self.load_friend_data()
        return self.status

    async def load_friend_data(self) -> None:
        """Load the active training cycle, recent workouts and the friendship date."""

        if self.status is not FriendshipState.FRIEND:
            return
        user_id = self.profile.user_id
        self.loading = True
        try:
            try:
                self.active_cycle = await friendship_service.fetch_active_cycle(self.client, user_id)
            except BackendError:
                logger.exception("Error fetching training cycle for %s", user_id)

            try:
                self.recent_activity = await friendship_service.fetch_recent_activity(
                    self.client, user_id, locale=self._locale
                )
            except BackendError:
                logger.exception("Error fetching workouts for %s", user_id)

            viewer_id = await self._viewer()
            if viewer_id:
                try:
                    self.friend_since = await friendship_service.fetch_friend_since(
                        self.client, viewer_id=viewer_id, friend_id=user_id
                    )
                except BackendError:
                    logger.warning("Could not fetch friendship date for %s", user_id)
        finally:
            self.loading = False

    async def remove_friend(self) -> bool:
        name = self.profile.full_name
        confirmed = await self._notifier.confirm(
            translate("friend.remove.title", self._locale),
            translate("friend.remove.body_named", self._locale, name=name),
            confirm_label=translate("dialog.confirm_remove", self._locale),
            cancel_label=translate("dialog.cancel", self._locale),
        )
        if not confirmed:
            return False

        try:
            result = await friendship_service.remove_friend(self.client, self.profile.user_id)
        except BackendError:
            logger.exception("Error removing friend %s", self.profile.user_id)
            await self._notifier.alert(
                translate("error.title", self._locale),
                translate("friend.remove.error", self._locale),
            )
            return False
        if not result.success:
            logger.error("Backend declined removing friend %s", self.profile.user_id)
            return False

        self.status = FriendshipState.NONE
        self._clear_friend_data()
        await self.close()
        await _call(self._on_status_change, self.profile.user_id, FriendshipState.NONE)
        return True

    def _on_refresh(self, table: str) -> Awaitable[Any]:
        if table == FRIENDS_TABLE:
            return self.open()
        return self.load_friend_data()

    async def attach(self, feed: ChangeFeed) -> None:
        """Re-check the pair on friendship changes; reload friend data on the friend's workouts and cycles."""

        viewer_id = await self._viewer()
        if not viewer_id:
            return
        self.detach()
        target = self.profile.user_id
        self._invalidator = RealtimeInvalidator(
            feed,
            self._on_refresh,
            delay_ms=self._realtime_delay_ms,
            tables=(FRIENDS_TABLE, WORKOUT_LOGS_TABLE, TRAINING_CYCLES_TABLE),
            filters={
                FRIENDS_TABLE: [
                    {"user_id": viewer_id, "friend_id": target},
                    {"user_id": target, "friend_id": viewer_id},
                ],
                WORKOUT_LOGS_TABLE: [{"user_id": target}],
                TRAINING_CYCLES_TABLE: [{"user_id": target}],
            },
        )

    @property
    def invalidator(self) -> RealtimeInvalidator | None:
        return self._invalidator

    def detach(self) -> None:
        if self._invalidator is not None:
            self._invalidator.close()
            self._invalidator = None

    async def close(self) -> None:
        self.detach()
        await _call(self._on_close)


__all__ = ["ProfileViewKind", "view_kind_for", "LimitedProfileView", "FriendProfileView"]
