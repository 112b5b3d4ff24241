"""Convenience exports for service layer."""
from .action_dispatcher import FriendAction, FriendActionDispatcher, action_for
from .debounce import Debouncer
from .friends_screen import FriendsScreen
from .friendship_service import (
    cancel_friend_request,
    fetch_active_cycle,
    fetch_friend_since,
    fetch_full_profile,
    fetch_recent_activity,
    find_pending_request_id,
    list_friends,
    list_pending_requests,
    remove_friend,
    resolve_for_current_user,
    resolve_friendship_status,
    resolve_many,
    respond_to_request,
    search_users,
    send_friend_request,
)
from .i18n_service import translate
from .notifier import LoggingNotifier, Notifier
from .pending_badge import PendingRequestBadge
from .profile_cache import ProfileCache
from .profile_views import FriendProfileView, LimitedProfileView, ProfileViewKind, view_kind_for
from .realtime import ChangeFeed, ChangeFeedHub, RealtimeInvalidator

__all__ = [
    "FriendAction",
    "FriendActionDispatcher",
    "action_for",
    "Debouncer",
    "FriendsScreen",
    "cancel_friend_request",
    "fetch_active_cycle",
    "fetch_friend_since",
    "fetch_full_profile",
    "fetch_recent_activity",
    "find_pending_request_id",
    "list_friends",
    "list_pending_requests",
    "remove_friend",
    "resolve_for_current_user",
    "resolve_friendship_status",
    "resolve_many",
    "respond_to_request",
    "search_users",
    "send_friend_request",
    "translate",
    "LoggingNotifier",
    "Notifier",
    "PendingRequestBadge",
    "ProfileCache",
    "FriendProfileView",
    "LimitedProfileView",
    "ProfileViewKind",
    "view_kind_for",
    "ChangeFeed",
    "ChangeFeedHub",
    "RealtimeInvalidator",
]
