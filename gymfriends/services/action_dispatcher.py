"""State-driven friend action button: send, cancel, accept or remove.

Each mutation is applied in two phases: the tentative state is shown
immediately, the remote call is awaited, and the result is either committed
(and reported to the parent) or rolled back to the state shown before the tap.
"""
from __future__ import annotations

import inspect
import logging
from enum import Enum
from typing import Awaitable, Callable

from ..clients.backend import BackendClient, BackendError, BackendNotFoundError
from ..schemas.friends import FriendshipState
from . import friendship_service
from .friendship_service import FRIEND_REQUESTS_TABLE, FRIENDS_TABLE
from .i18n_service import translate
from .notifier import Notifier
from .realtime import ChangeFeed, RealtimeInvalidator

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str, FriendshipState], "Awaitable[None] | None"]


class FriendAction(str, Enum):
    SEND = "send"
    CANCEL = "cancel"
    ACCEPT = "accept"
    REMOVE = "remove"


_ACTION_FOR_STATE: dict[FriendshipState, FriendAction] = {
    FriendshipState.NONE: FriendAction.SEND,
    FriendshipState.REQUESTED: FriendAction.CANCEL,
    FriendshipState.INCOMING: FriendAction.ACCEPT,
    FriendshipState.FRIEND: FriendAction.REMOVE,
}

_LABEL_KEYS: dict[FriendAction, str] = {
    FriendAction.SEND: "action.add",
    FriendAction.CANCEL: "action.cancel",
    FriendAction.ACCEPT: "action.accept",
    FriendAction.REMOVE: "action.remove",
}


def action_for(status: FriendshipState) -> FriendAction | None:
    return _ACTION_FOR_STATE.get(status)


class FriendActionDispatcher:
    def __init__(
        self,
        client: BackendClient,
        target_id: str,
        *,
        notifier: Notifier,
        viewer_id: str | None = None,
        initial_status: FriendshipState | None = None,
        on_status_change: StatusCallback | None = None,
        target_name: str | None = None,
        locale: str | None = None,
        realtime_delay_ms: int = 300,
    ) -> None:
        self.client = client
        self.target_id = target_id
        self.target_name = target_name
        self._notifier = notifier
        self._viewer_id = viewer_id
        self._status = initial_status or FriendshipState.UNKNOWN
        self._on_status_change = on_status_change
        self._locale = locale
        self._realtime_delay_ms = realtime_delay_ms
        self._busy = False
        self._refreshing = False
        self._invalidator: RealtimeInvalidator | None = None

    @property
    def status(self) -> FriendshipState:
        return self._status

    @property
    def loading(self) -> bool:
        return self._busy or self._refreshing

    @property
    def action(self) -> FriendAction | None:
        return action_for(self._status)

    @property
    def action_label(self) -> str:
        action = self.action or FriendAction.SEND
        return translate(_LABEL_KEYS[action], self._locale)

    def sync_status(self, status: FriendshipState) -> None:
        """Adopt a state resolved elsewhere; ignored while an action is in flight."""

        if not self._busy:
            self._status = status

    async def _viewer(self) -> str | None:
        if self._viewer_id:
            return self._viewer_id
        try:
            self._viewer_id = await self.client.current_user_id()
        except BackendError:
            logger.exception("Could not determine the signed-in user")
            return None
        return self._viewer_id

    async def _notify(self, status: FriendshipState) -> None:
        if self._on_status_change is None:
            return
        try:
            result = self._on_status_change(self.target_id, status)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Status change callback failed for %s", self.target_id)

    async def _commit(self, status: FriendshipState) -> None:
        self._status = status
        logger.info("Friendship with %s is now %s", self.target_id, status.value)
        await self._notify(status)

    async def _alert_error(self) -> None:
        await self._notifier.alert(translate("error.title", self._locale), translate("error.generic", self._locale))

    async def refresh(self) -> FriendshipState:
        """Re-resolve the displayed state from the backend."""

        self._refreshing = True
        try:
            viewer_id = await self._viewer()
            previous = self._status
            self._status = await friendship_service.resolve_friendship_status(self.client, viewer_id, self.target_id)
        finally:
            self._refreshing = False
        # The first resolution is not a transition the parent needs to hear about.
        if previous is not FriendshipState.UNKNOWN and self._status is not previous:
            await self._notify(self._status)
        return self._status

    async def handle_request(self) -> FriendshipState:
        """Perform the action matching the currently displayed state."""

        if self._busy:
            logger.debug("Friend action for %s already in flight; ignoring tap", self.target_id)
            return self._status

        self._busy = True
        try:
            viewer_id = await self._viewer()
            if not viewer_id:
                logger.info("No authenticated user found")
                return self._status

            status = self._status
            if status is FriendshipState.UNKNOWN:
                return await self.refresh()
            if status is FriendshipState.NONE:
                await self._send()
            elif status is FriendshipState.REQUESTED:
                await self._cancel(viewer_id)
            elif status is FriendshipState.INCOMING:
                await self._accept(viewer_id)
            elif status is FriendshipState.FRIEND:
                await self._remove()
            return self._status
        finally:
            self._busy = False

    async def _send(self) -> None:
        previous = self._status
        self._status = FriendshipState.REQUESTED
        try:
            result = await friendship_service.send_friend_request(self.client, self.target_id)
        except BackendError:
            logger.exception("Error sending friend request to %s", self.target_id)
            self._status = previous
            await self._alert_error()
            return
        if not result.success:
            logger.error("Failed to send request: %s", result.message)
            self._status = previous
            return
        await self._commit(FriendshipState.REQUESTED)

    async def _cancel(self, viewer_id: str) -> None:
        previous = self._status
        self._status = FriendshipState.NONE
        try:
            await friendship_service.cancel_friend_request(self.client, viewer_id=viewer_id, target_id=self.target_id)
        except BackendNotFoundError:
            logger.error("Friend request to %s not found", self.target_id)
            self._status = previous
            return
        except BackendError:
            logger.exception("Error cancelling friend request to %s", self.target_id)
            self._status = previous
            return
        await self._commit(FriendshipState.NONE)

    async def _accept(self, viewer_id: str) -> None:
        try:
            request_id = await friendship_service.find_pending_request_id(
                self.client, sender_id=self.target_id, receiver_id=viewer_id
            )
        except BackendError:
            logger.exception("Error finding friend request from %s", self.target_id)
            return
        if request_id is None:
            logger.error("Friend request from %s not found", self.target_id)
            return

        previous = self._status
        self._status = FriendshipState.FRIEND
        try:
            result = await friendship_service.respond_to_request(self.client, request_id=request_id, accept=True)
        except BackendError:
            logger.exception("Error accepting friend request %s", request_id)
            self._status = previous
            await self._alert_error()
            return
        if not result.success:
            logger.error("Backend declined accepting friend request %s", request_id)
            self._status = previous
            return

        name = result.sender_name or self.target_name or ""
        await self._notifier.alert(
            translate("friend_request.accepted.title", self._locale),
            translate("friend_request.accepted.body", self._locale, name=name),
        )
        # Confirm against the backend instead of trusting the optimistic value.
        viewer = self._viewer_id
        confirmed = await friendship_service.resolve_friendship_status(self.client, viewer, self.target_id)
        await self._commit(confirmed)

    async def _remove(self) -> None:
        confirmed = await self._notifier.confirm(
            translate("friend.remove.title", self._locale),
            translate("friend.remove.body", self._locale),
            confirm_label=translate("dialog.confirm_remove", self._locale),
            cancel_label=translate("dialog.cancel", self._locale),
        )
        if not confirmed:
            return

        previous = self._status
        self._status = FriendshipState.NONE
        try:
            result = await friendship_service.remove_friend(self.client, self.target_id)
        except BackendError:
            logger.exception("Error removing friend %s", self.target_id)
            self._status = previous
            return
        if not result.success:
            logger.error("Backend declined removing friend %s", self.target_id)
            self._status = previous
            return
        await self._commit(FriendshipState.NONE)

    async def attach(self, feed: ChangeFeed) -> None:
        """Re-resolve whenever a request or friendship row between the pair changes."""

        viewer_id = await self._viewer()
        if not viewer_id:
            return
        self.detach()
        target = self.target_id
        self._invalidator = RealtimeInvalidator(
            feed,
            lambda _table: self.refresh(),
            delay_ms=self._realtime_delay_ms,
            filters={
                FRIEND_REQUESTS_TABLE: [
                    {"sender_id": viewer_id, "receiver_id": target},
                    {"sender_id": target, "receiver_id": viewer_id},
                ],
                FRIENDS_TABLE: [
                    {"user_id": viewer_id, "friend_id": target},
                    {"user_id": target, "friend_id": viewer_id},
                ],
            },
        )

    @property
    def invalidator(self) -> RealtimeInvalidator | None:
        return self._invalidator

    def detach(self) -> None:
        if self._invalidator is not None:
            self._invalidator.close()
            self._invalidator = None


__all__ = ["FriendAction", "FriendActionDispatcher", "StatusCallback", "action_for"]
