"""Schemas for friendship state, friend requests and realtime change events."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FriendshipState(str, Enum):
    """Relationship between the viewer and another user, as last resolved by the backend."""

    UNKNOWN = "unknown"
    NONE = "none"
    REQUESTED = "requested"
    INCOMING = "incoming"
    FRIEND = "friend"

    @classmethod
    def parse(cls, value: Any) -> "FriendshipState":
        """Map a remote answer onto a state; anything unrecognised is ``none``."""

        if isinstance(value, cls):
            return value
        if not isinstance(value, str) or not value:
            return cls.NONE
        try:
            state = cls(value.strip().lower())
        except ValueError:
            return cls.NONE
        return cls.NONE if state is cls.UNKNOWN else state


class UserProfileSnapshot(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: str
    full_name: str = ""
    username: str | None = None
    profile_image_url: str | None = None
    status: FriendshipState = FriendshipState.UNKNOWN

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> FriendshipState:
        if value is None:
            return FriendshipState.UNKNOWN
        return FriendshipState.parse(value)


class SenderProfile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    full_name: str = ""
    username: str | None = None
    profile_image_url: str | None = None


class PendingFriendRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    sender_id: str
    created_at: datetime
    profile: SenderProfile = Field(default_factory=SenderProfile)


class SendRequestResult(BaseModel):
    success: bool = False
    message: str | None = None


class RespondResult(BaseModel):
    success: bool = False
    sender_name: str | None = None


class RemoveResult(BaseModel):
    success: bool = False


class FullProfile(BaseModel):
    """Profile fields only shown to confirmed friends."""

    model_config = ConfigDict(extra="ignore")

    user_id: str
    full_name: str = ""
    username: str | None = None
    profile_image_url: str | None = None
    banner_image_url: str | None = None
    training_goal: str | None = None
    instagram_url: str | None = None
    tiktok_url: str | None = None


class TrainingCycle(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    goal: str = ""
    start_date: str | None = None
    end_date: str | None = None
    active: bool = False


class ExerciseInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    category: str | None = None


class ExerciseLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    exercise_id: str | None = None
    ovningar: ExerciseInfo | None = None


class WorkoutLog(BaseModel):
    """A ``workout_logs`` row with its embedded exercise logs."""

    model_config = ConfigDict(extra="ignore")

    id: str
    date: str
    name: str | None = None
    exercise_logs: list[ExerciseLog] = Field(default_factory=list)

    def categories(self) -> list[str]:
        seen: list[str] = []
        for log in self.exercise_logs:
            category = log.ovningar.category if log.ovningar else None
            if category and category not in seen:
                seen.append(category)
        return seen


class RecentActivity(BaseModel):
    type: Literal["workout", "achievement"] = "workout"
    date: str
    title: str
    description: str


class FriendshipRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    created_at: datetime


class FriendSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")

    friend_id: str
    full_name: str = ""
    username: str | None = None
    profile_image_url: str | None = None
    status: Literal["accepted", "pending"] = "accepted"
    created_at: datetime | None = None


class ChangeEvent(BaseModel):
    """A row-level change notification pushed by the backend change feed."""

    table: str
    event_type: Literal["INSERT", "UPDATE", "DELETE"] = "INSERT"
    record: dict[str, Any] = Field(default_factory=dict)
    old_record: dict[str, Any] = Field(default_factory=dict)


@dataclass(slots=True)
class ProfileCacheEntry:
    profile: UserProfileSnapshot
    status: FriendshipState
    timestamp: float


__all__ = [
    "FriendshipState",
    "UserProfileSnapshot",
    "SenderProfile",
    "PendingFriendRequest",
    "SendRequestResult",
    "RespondResult",
    "RemoveResult",
    "FullProfile",
    "TrainingCycle",
    "ExerciseInfo",
    "ExerciseLog",
    "WorkoutLog",
    "RecentActivity",
    "FriendshipRow",
    "FriendSummary",
    "ChangeEvent",
    "ProfileCacheEntry",
]
