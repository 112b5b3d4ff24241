"""Remote friendship contracts: status resolution, requests and friend lists.

Every relationship decision is made by the backend's stored procedures; this
module only marshals arguments, validates answers and applies the fail-safe
defaults the screens rely on.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Iterable, TypeVar

from pydantic import BaseModel, ValidationError

from ..clients.backend import BackendClient, BackendError, BackendNotFoundError
from ..schemas.friends import (
    FriendshipRow,
    FriendshipState,
    FriendSummary,
    FullProfile,
    PendingFriendRequest,
    RecentActivity,
    RemoveResult,
    RespondResult,
    SendRequestResult,
    TrainingCycle,
    UserProfileSnapshot,
    WorkoutLog,
)
from .i18n_service import translate

logger = logging.getLogger(__name__)

FRIEND_REQUESTS_TABLE = "friend_requests"
FRIENDS_TABLE = "friends"
TRAINING_PROFILES_TABLE = "training_profiles"
TRAINING_CYCLES_TABLE = "training_cycles"
WORKOUT_LOGS_TABLE = "workout_logs"

RECENT_ACTIVITY_LIMIT = 3

_ModelT = TypeVar("_ModelT", bound=BaseModel)


def _validate_rows(model: type[_ModelT], data: Any, *, label: str) -> list[_ModelT]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise BackendError(f"Invalid {label} response format")
    rows: list[_ModelT] = []
    for item in data:
        try:
            rows.append(model.model_validate(item))
        except ValidationError:
            logger.warning("Skipping malformed %s row: %r", label, item)
    return rows


def _validate_result(model: type[_ModelT], data: Any, *, label: str) -> _ModelT:
    if not isinstance(data, dict):
        raise BackendError(f"Invalid {label} response format")
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise BackendError(f"Invalid {label} response format") from exc


async def resolve_friendship_status(client: BackendClient, viewer_id: str | None, target_id: str) -> FriendshipState:
    """Ask the backend how ``viewer_id`` relates to ``target_id``.

    Never raises: a missing viewer, a failed call or a ``null`` answer all
    resolve to ``none``, the least-privileged state.
    """

    if not viewer_id:
        logger.info("No authenticated viewer; friendship status defaults to none")
        return FriendshipState.NONE
    if not target_id:
        return FriendshipState.NONE

    try:
        data = await client.rpc(
            "check_friendship_status",
            {"auth_user_id": viewer_id, "other_user_id": target_id},
        )
    except BackendError:
        logger.exception("Error checking friendship status for %s", target_id)
        return FriendshipState.NONE

    status = FriendshipState.parse(data)
    logger.debug("Friendship status %s -> %s: %s", viewer_id, target_id, status.value)
    return status


async def resolve_for_current_user(client: BackendClient, target_id: str) -> FriendshipState:
    try:
        viewer_id = await client.current_user_id()
    except BackendError:
        logger.exception("Could not determine the signed-in user")
        viewer_id = None
    return await resolve_friendship_status(client, viewer_id, target_id)


async def resolve_many(
    client: BackendClient,
    viewer_id: str | None,
    target_ids: Iterable[str],
) -> dict[str, FriendshipState]:
    """Resolve every target concurrently; returns only once all calls settled."""

    ids = list(dict.fromkeys(target_ids))
    statuses = await asyncio.gather(*(resolve_friendship_status(client, viewer_id, target) for target in ids))
    return dict(zip(ids, statuses))


async def send_friend_request(client: BackendClient, receiver_id: str) -> SendRequestResult:
    data = await client.rpc("send_friend_request", {"p_receiver_id": receiver_id})
    return _validate_result(SendRequestResult, data, label="send_friend_request")


async def find_pending_request_id(client: BackendClient, *, sender_id: str, receiver_id: str) -> str | None:
    rows = await client.select(
        FRIEND_REQUESTS_TABLE,
        columns="id",
        filters={"sender_id": sender_id, "receiver_id": receiver_id, "status": "pending"},
    )
    for row in rows:
        request_id = row.get("id")
        if request_id:
            return str(request_id)
    return None


async def cancel_friend_request(client: BackendClient, *, viewer_id: str, target_id: str) -> None:
    """Delete the viewer's pending outgoing request to ``target_id``."""

    request_id = await find_pending_request_id(client, sender_id=viewer_id, receiver_id=target_id)
    if request_id is None:
        raise BackendNotFoundError("Friend request not found")
    await client.delete(FRIEND_REQUESTS_TABLE, filters={"id": request_id})


async def respond_to_request(client: BackendClient, *, request_id: str, accept: bool) -> RespondResult:
    data = await client.rpc(
        "respond_to_friend_request",
        {"p_request_id": request_id, "p_accept": bool(accept)},
    )
    return _validate_result(RespondResult, data, label="respond_to_friend_request")


async def remove_friend(client: BackendClient, other_user_id: str) -> RemoveResult:
    data = await client.rpc("remove_friend", {"p_other_user_id": other_user_id})
    return _validate_result(RemoveResult, data, label="remove_friend")


async def list_pending_requests(client: BackendClient) -> list[PendingFriendRequest]:
    data = await client.rpc("get_pending_friend_requests")
    return _validate_rows(PendingFriendRequest, data, label="pending request")


async def search_users(client: BackendClient, *, viewer_id: str, text: str) -> list[UserProfileSnapshot]:
    data = await client.rpc(
        "search_users_with_status",
        {"auth_user_id": viewer_id, "search_text": text},
    )
    return _validate_rows(UserProfileSnapshot, data, label="search result")


async def list_friends(client: BackendClient, *, include_pending: bool = False) -> list[FriendSummary]:
    data = await client.rpc("get_friends_with_profiles", {"include_pending": include_pending})
    return _validate_rows(FriendSummary, data, label="friend")


async def fetch_full_profile(client: BackendClient, user_id: str) -> FullProfile | None:
    rows = await client.select(
        TRAINING_PROFILES_TABLE,
        columns="user_id,full_name,username,profile_image_url,banner_image_url,training_goal,instagram_url,tiktok_url",
        filters={"user_id": user_id},
    )
    if not rows:
        return None
    try:
        return FullProfile.model_validate(rows[0])
    except ValidationError as exc:
        raise BackendError("Invalid training profile row") from exc


async def fetch_active_cycle(client: BackendClient, user_id: str) -> TrainingCycle | None:
    rows = await client.select(
        TRAINING_CYCLES_TABLE,
        filters={"user_id": user_id, "active": "true"},
        limit=1,
    )
    if not rows:
        return None
    try:
        return TrainingCycle.model_validate(rows[0])
    except ValidationError as exc:
        raise BackendError("Invalid training cycle row") from exc


async def fetch_recent_activity(
    client: BackendClient,
    user_id: str,
    *,
    limit: int = RECENT_ACTIVITY_LIMIT,
    locale: str | None = None,
) -> list[RecentActivity]:
    """Latest workouts of ``user_id`` as activity items, newest first."""

    rows = await client.select(
        WORKOUT_LOGS_TABLE,
        columns="id,date,name,exercise_logs(id,exercise_id,ovningar(name,category))",
        filters={"user_id": user_id},
        order="date.desc",
        limit=limit,
    )
    activities: list[RecentActivity] = []
    for workout in _validate_rows(WorkoutLog, rows, label="workout log"):
        categories = ", ".join(workout.categories()) or translate("activity.default_category", locale)
        activities.append(
            RecentActivity(
                type="workout",
                date=workout.date,
                title=workout.name or translate("activity.default_title", locale),
                description=translate("activity.workout_description", locale, categories=categories),
            )
        )
    return activities


async def fetch_friend_since(client: BackendClient, *, viewer_id: str, friend_id: str) -> datetime | None:
    rows = await client.select(
        FRIENDS_TABLE,
        columns="created_at",
        filters={"user_id": viewer_id, "friend_id": friend_id},
        limit=1,
    )
    if not rows:
        return None
    try:
        return FriendshipRow.model_validate(rows[0]).created_at
    except ValidationError as exc:
        raise BackendError("Invalid friendship row") from exc


__all__ = [
    "FRIEND_REQUESTS_TABLE",
    "FRIENDS_TABLE",
    "TRAINING_PROFILES_TABLE",
    "TRAINING_CYCLES_TABLE",
    "WORKOUT_LOGS_TABLE",
    "RECENT_ACTIVITY_LIMIT",
    "resolve_friendship_status",
    "resolve_for_current_user",
    "resolve_many",
    "send_friend_request",
    "find_pending_request_id",
    "cancel_friend_request",
    "respond_to_request",
    "remove_friend",
    "list_pending_requests",
    "search_users",
    "list_friends",
    "fetch_full_profile",
    "fetch_active_cycle",
    "fetch_recent_activity",
    "fetch_friend_since",
]
