"""Convenience exports for schema layer."""
from .friends import (
    ChangeEvent,
    ExerciseInfo,
    ExerciseLog,
    FriendshipRow,
    FriendshipState,
    FriendSummary,
    FullProfile,
    PendingFriendRequest,
    ProfileCacheEntry,
    RecentActivity,
    RemoveResult,
    RespondResult,
    SendRequestResult,
    SenderProfile,
    TrainingCycle,
    UserProfileSnapshot,
    WorkoutLog,
)

__all__ = [
    "ChangeEvent",
    "ExerciseInfo",
    "ExerciseLog",
    "FriendshipRow",
    "FriendshipState",
    "FriendSummary",
    "FullProfile",
    "PendingFriendRequest",
    "ProfileCacheEntry",
    "RecentActivity",
    "RemoveResult",
    "RespondResult",
    "SendRequestResult",
    "SenderProfile",
    "TrainingCycle",
    "UserProfileSnapshot",
    "WorkoutLog",
]
