"""Friends screen controller: search, pending inbox, profile cache and realtime refresh.

One instance per screen visit. It owns its ``ProfileCache`` and pending list
outright, is mounted on entry and unmounted on exit; after unmount no await
continuation writes state back.
"""
from __future__ import annotations

import logging
from typing import Callable

from ..clients.backend import BackendClient, BackendError
from ..config import Settings, get_settings
from ..schemas.friends import FriendshipState, FriendSummary, PendingFriendRequest, UserProfileSnapshot
from . import friendship_service
from .debounce import Debouncer
from .friendship_service import FRIENDS_TABLE
from .i18n_service import translate
from .notifier import Notifier
from .profile_cache import ProfileCache
from .profile_views import FriendProfileView, LimitedProfileView, ProfileViewKind, view_kind_for
from .realtime import ChangeFeed, RealtimeInvalidator

logger = logging.getLogger(__name__)


class FriendsScreen:
    def __init__(
        self,
        client: BackendClient,
        *,
        notifier: Notifier,
        feed: ChangeFeed | None = None,
        settings: Settings | None = None,
        clock: Callable[[], float] | None = None,
        locale: str | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.client = client
        self.cache = ProfileCache(ttl_ms=settings.profile_cache_ttl_ms, clock=clock)
        self._notifier = notifier
        self._feed = feed
        self._locale = locale
        self._realtime_delay_ms = settings.realtime_debounce_ms
        self._search_debouncer = Debouncer(settings.search_debounce_ms, self.perform_search, name="search")
        self._invalidator: RealtimeInvalidator | None = None

        self.mounted = False
        self.current_user_id: str | None = None

        self.pending_requests: list[PendingFriendRequest] = []
        self.friends: list[FriendSummary] = []

        self.search_query = ""
        self.search_results: list[UserProfileSnapshot] = []
        self.friend_statuses: dict[str, FriendshipState] = {}
        self.statuses_loaded = False
        self.empty_results = False
        self.loading = False
        self.error: str | None = None

        self.selected_profile: UserProfileSnapshot | None = None
        self.friend_status = FriendshipState.UNKNOWN
        self.loading_friend_status = False
        self.active_view: LimitedProfileView | FriendProfileView | None = None

    # lifecycle

    async def mount(self) -> None:
        self.mounted = True
        try:
            self.current_user_id = await self.client.current_user_id()
        except BackendError:
            logger.exception("Error getting current user")
        await self.fetch_pending_requests()
        if self._feed is not None and self.mounted:
            self._invalidator = RealtimeInvalidator(self._feed, self.refresh, delay_ms=self._realtime_delay_ms)

    def unmount(self) -> None:
        self.mounted = False
        self._search_debouncer.cancel()
        if self._invalidator is not None:
            self._invalidator.close()
            self._invalidator = None
        if self.active_view is not None:
            self.active_view.detach()
            self.active_view = None

    @property
    def invalidator(self) -> RealtimeInvalidator | None:
        return self._invalidator

    @property
    def search_debouncer(self) -> Debouncer:
        return self._search_debouncer

    # pending inbox

    @property
    def pending_count(self) -> int:
        return len(self.pending_requests)

    async def fetch_pending_requests(self) -> None:
        if not self.mounted:
            return
        try:
            requests = await friendship_service.list_pending_requests(self.client)
        except BackendError:
            logger.exception("Error fetching pending requests")
            return
        if self.mounted:
            self.pending_requests = requests

    async def accept_request(self, request_id: str) -> bool:
        return await self._respond(request_id, accept=True)

    async def reject_request(self, request_id: str) -> bool:
        return await self._respond(request_id, accept=False)

    async def _respond(self, request_id: str, *, accept: bool) -> bool:
        index = next((i for i, item in enumerate(self.pending_requests) if item.id == request_id), None)
        if index is None:
            logger.error("Friend request %s not found in pending list", request_id)
            return False
        request = self.pending_requests.pop(index)
        self.cache.invalidate(request.sender_id)

        try:
            result = await friendship_service.respond_to_request(self.client, request_id=request_id, accept=accept)
        except BackendError:
            logger.exception("Error %s friend request %s", "accepting" if accept else "rejecting", request_id)
            self._restore_pending(index, request)
            await self._notifier.alert(translate("error.title", self._locale), translate("error.generic", self._locale))
            return False
        if not result.success:
            logger.error("Backend declined responding to friend request %s", request_id)
            self._restore_pending(index, request)
            return False

        name = result.sender_name or request.profile.full_name
        if accept:
            await self._notifier.alert(
                translate("friend_request.accepted.title", self._locale),
                translate("friend_request.accepted.body", self._locale, name=name),
            )
            if self.search_query and self.mounted:
                await self.perform_search(self.search_query)
        else:
            await self._notifier.alert(
                translate("friend_request.rejected.title", self._locale),
                translate("friend_request.rejected.body", self._locale, name=name),
            )
        return True

    def _restore_pending(self, index: int, request: PendingFriendRequest) -> None:
        if not self.mounted:
            return
        if any(item.id == request.id for item in self.pending_requests):
            return
        self.pending_requests.insert(min(index, len(self.pending_requests)), request)

    async def load_friends(self, *, include_pending: bool = False) -> list[FriendSummary]:
        try:
            friends = await friendship_service.list_friends(self.client, include_pending=include_pending)
        except BackendError:
            logger.exception("Error fetching friends")
            return self.friends
        if self.mounted:
            self.friends = friends
        return friends

    # search

    def search(self, text: str) -> None:
        """Handle a keystroke in the search box."""

        self.search_query = text
        if not text:
            self._search_debouncer.cancel()
            self.search_results = []
            self.friend_statuses = {}
            self.empty_results = False
            self.statuses_loaded = False
            return
        self._search_debouncer.schedule(text)

    async def perform_search(self, query: str) -> None:
        if not query or not self.mounted:
            return
        if not self.current_user_id:
            self.error = translate("search.not_authenticated", self._locale)
            return

        self.loading = True
        self.error = None
        self.empty_results = False
        self.statuses_loaded = False
        try:
            results = await friendship_service.search_users(self.client, viewer_id=self.current_user_id, text=query)
            # Rows become visible only once every status has settled.
            statuses = await friendship_service.resolve_many(
                self.client, self.current_user_id, [row.user_id for row in results]
            )
            if not self.mounted:
                return
            self.search_results = results
            self.friend_statuses = statuses
            self.empty_results = not results
            self.statuses_loaded = True
            self._reconcile_cache(results, statuses)
        except BackendError as exc:
            logger.exception("Search error")
            if self.mounted:
                reason = str(exc) or translate("error.unknown", self._locale)
                self.error = translate("search.error", self._locale, reason=reason)
                self.search_results = []
                self.friend_statuses = {}
                self.statuses_loaded = True
        finally:
            if self.mounted:
                self.loading = False

    def _reconcile_cache(
        self, results: list[UserProfileSnapshot], statuses: dict[str, FriendshipState]
    ) -> None:
        # A cached entry must never outlive a newer resolution that disagrees with it.
        for row in results:
            status = statuses.get(row.user_id)
            entry = self.cache.get(row.user_id)
            if status is None or entry is None or entry.status is status:
                continue
            logger.debug("Cached status for %s superseded by search: %s", row.user_id, status.value)
            self.cache.put(row.user_id, entry.profile, status)

    @property
    def visible_results(self) -> list[UserProfileSnapshot]:
        if not self.statuses_loaded:
            return []
        return [
            row.model_copy(update={"status": self.friend_statuses.get(row.user_id, FriendshipState.NONE)})
            for row in self.search_results
        ]

    # profile detail

    async def _resolve(self, user_id: str) -> FriendshipState:
        if self.current_user_id:
            return await friendship_service.resolve_friendship_status(self.client, self.current_user_id, user_id)
        return await friendship_service.resolve_for_current_user(self.client, user_id)

    @property
    def view_kind(self) -> ProfileViewKind | None:
        if self.selected_profile is None or self.loading_friend_status:
            return None
        return view_kind_for(self.friend_status)

    async def open_profile(self, profile: UserProfileSnapshot) -> LimitedProfileView | FriendProfileView | None:
        entry = self.cache.get(profile.user_id)
        if entry is not None:
            logger.debug("Using cached profile data for %s", profile.full_name)
            self.selected_profile = entry.profile
            self.friend_status = entry.status
            return self._sync_view()

        self.selected_profile = profile
        self.loading_friend_status = True
        status = await self._resolve(profile.user_id)
        if not self.mounted:
            return None
        self.cache.put(profile.user_id, profile, status)
        self.friend_status = status
        self.loading_friend_status = False
        logger.info("Profile %s selected with status %s", profile.user_id, status.value)
        return self._sync_view()

    def close_profile(self) -> None:
        view, self.active_view = self.active_view, None
        if view is not None:
            view.detach()
        self.selected_profile = None
        self.friend_status = FriendshipState.UNKNOWN
        self.loading_friend_status = False

    def _sync_view(self) -> LimitedProfileView | FriendProfileView | None:
        kind = self.view_kind
        profile = self.selected_profile
        if kind is None or profile is None:
            return None
        view = self.active_view
        if view is not None and view.kind is kind and view.profile.user_id == profile.user_id:
            if isinstance(view, LimitedProfileView):
                view.button.sync_status(self.friend_status)
            return view

        if view is not None:
            view.detach()
        snapshot = profile.model_copy(update={"status": self.friend_status})
        view_cls = FriendProfileView if kind is ProfileViewKind.FULL else LimitedProfileView
        self.active_view = view_cls(
            self.client,
            snapshot,
            notifier=self._notifier,
            viewer_id=self.current_user_id,
            on_close=self.close_profile,
            on_status_change=self.handle_status_change,
            locale=self._locale,
        )
        return self.active_view

    async def _refresh_selected(self) -> None:
        profile = self.selected_profile
        if profile is None:
            return
        status = await self._resolve(profile.user_id)
        if not self.mounted or self.selected_profile is None or self.selected_profile.user_id != profile.user_id:
            return
        self.cache.put(profile.user_id, profile, status)
        self.friend_status = status
        self._sync_view()

    async def handle_status_change(self, user_id: str, status: FriendshipState) -> None:
        """Callback for detail views after a transition on ``user_id``."""

        logger.info("Status change for %s reported: %s", user_id, status.value)
        self.cache.invalidate(user_id)
        if not self.mounted:
            return
        if self.search_query:
            await self.perform_search(self.search_query)
        await self.fetch_pending_requests()
        await self._refresh_selected()

    async def refresh(self, table: str | None = None) -> None:
        """Debounced realtime refresh target."""

        if not self.mounted:
            return
        await self.fetch_pending_requests()
        if table == FRIENDS_TABLE and self.search_query:
            await self.perform_search(self.search_query)
        await self._refresh_selected()


__all__ = ["FriendsScreen"]
