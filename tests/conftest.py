"""Shared fixtures: an in-memory backend served through ``httpx.MockTransport``."""
from __future__ import annotations

import itertools
import json
import os
from datetime import datetime, timezone
from typing import Any, AsyncIterator
from urllib.parse import urlparse

os.environ.setdefault("SUPABASE_URL", "http://backend.test")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from gymfriends.clients.backend import BackendClient  # noqa: E402
from gymfriends.config import Settings  # noqa: E402

VIEWER_ID = "viewer"
VIEWER_TOKEN = "token-viewer"


class FakeBackend:
    """Minimal stand-in for the hosted backend's RPCs, tables and auth endpoint."""

    def __init__(self) -> None:
        self.users: dict[str, dict[str, Any]] = {}
        self.requests: list[dict[str, Any]] = []
        self.friendships: set[frozenset[str]] = set()
        self.training_profiles: dict[str, dict[str, Any]] = {}
        self.training_cycles: list[dict[str, Any]] = []
        self.workout_logs: list[dict[str, Any]] = []
        self.friend_since: dict[frozenset[str], str] = {}
        self.tokens: dict[str, str] = {VIEWER_TOKEN: VIEWER_ID}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.failures: dict[str, int] = {}
        self.status_overrides: dict[str, Any] = {}
        self._ids = itertools.count(1)
        self.add_user(VIEWER_ID, "Viewer Person", "viewer")

    # seeding helpers

    def add_user(self, user_id: str, full_name: str, username: str | None = None) -> None:
        self.users[user_id] = {
            "user_id": user_id,
            "full_name": full_name,
            "username": username,
            "profile_image_url": None,
        }

    def add_request(self, sender_id: str, receiver_id: str) -> str:
        request_id = f"req-{next(self._ids)}"
        self.requests.append(
            {
                "id": request_id,
                "sender_id": sender_id,
                "receiver_id": receiver_id,
                "status": "pending",
                "created_at": datetime(2024, 5, 1, tzinfo=timezone.utc).isoformat(),
            }
        )
        return request_id

    def make_friends(self, a: str, b: str, since: str = "2024-03-01T10:00:00+00:00") -> None:
        self.friendships.add(frozenset((a, b)))
        self.friend_since[frozenset((a, b))] = since

    def add_workout(self, user_id: str, workout_id: str, date: str, name: str | None, categories: list[str]) -> None:
        self.workout_logs.append(
            {
                "id": workout_id,
                "user_id": user_id,
                "date": date,
                "name": name,
                "exercise_logs": [
                    {"id": f"{workout_id}-{i}", "exercise_id": f"ex-{i}", "ovningar": {"name": f"Ex {i}", "category": c}}
                    for i, c in enumerate(categories)
                ],
            }
        )

    def calls_to(self, name: str) -> list[dict[str, Any]]:
        return [params for called, params in self.calls if called == name]

    # relationship truth

    def _pending(self, sender: str, receiver: str) -> dict[str, Any] | None:
        for row in self.requests:
            if row["sender_id"] == sender and row["receiver_id"] == receiver and row["status"] == "pending":
                return row
        return None

    def status_between(self, viewer: str, other: str) -> str:
        if frozenset((viewer, other)) in self.friendships:
            return "friend"
        if self._pending(viewer, other):
            return "requested"
        if self._pending(other, viewer):
            return "incoming"
        return "none"

    # transport

    def _viewer(self, request: httpx.Request) -> str | None:
        header = request.headers.get("Authorization", "")
        token = header.removeprefix("Bearer ").strip()
        return self.tokens.get(token)

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = urlparse(str(request.url)).path
        if path == "/auth/v1/user":
            viewer = self._viewer(request)
            if viewer is None:
                return httpx.Response(401, json={"message": "invalid token"})
            return httpx.Response(200, json={"id": viewer})

        if path.startswith("/rest/v1/rpc/"):
            name = path.rsplit("/", 1)[-1]
            params = json.loads(request.content or b"{}")
            self.calls.append((name, params))
            if name in self.failures:
                return httpx.Response(self.failures[name], json={"message": "boom"})
            return httpx.Response(200, json=self._rpc(name, params, self._viewer(request)))

        table = path.removeprefix("/rest/v1/")
        params = dict(request.url.params)
        filters = {
            key: value.removeprefix("eq.")
            for key, value in params.items()
            if key not in ("select", "order", "limit")
        }
        self.calls.append((f"{request.method} {table}", filters))
        if f"{request.method} {table}" in self.failures:
            return httpx.Response(self.failures[f"{request.method} {table}"], json={"message": "boom"})
        if table == "friend_requests":
            rows = [row for row in self.requests if _matches(row, filters)]
            if request.method == "DELETE":
                for row in rows:
                    self.requests.remove(row)
                return httpx.Response(204)
            return httpx.Response(200, json=[{"id": row["id"]} for row in rows])
        if table == "training_profiles":
            profile = self.training_profiles.get(filters.get("user_id", ""))
            return httpx.Response(200, json=[profile] if profile else [])
        if table == "friends":
            pair = frozenset((filters.get("user_id"), filters.get("friend_id")))
            since = self.friend_since.get(pair) if pair in self.friendships else None
            return httpx.Response(200, json=[{"created_at": since}] if since else [])
        if table == "training_cycles":
            return httpx.Response(200, json=[row for row in self.training_cycles if _matches(row, filters)])
        if table == "workout_logs":
            rows = [row for row in self.workout_logs if _matches(row, filters)]
            if params.get("order") == "date.desc":
                rows.sort(key=lambda row: row["date"], reverse=True)
            if "limit" in params:
                rows = rows[: int(params["limit"])]
            return httpx.Response(200, json=[{k: v for k, v in row.items() if k != "user_id"} for row in rows])
        return httpx.Response(404, json={"message": "unknown table"})

    def _rpc(self, name: str, params: dict[str, Any], viewer: str | None) -> Any:
        if name == "check_friendship_status":
            other = params["other_user_id"]
            if other in self.status_overrides:
                return self.status_overrides[other]
            return self.status_between(params["auth_user_id"], other)
        if name == "send_friend_request":
            receiver = params["p_receiver_id"]
            assert viewer is not None
            self.add_request(viewer, receiver)
            return {"success": True, "message": "Request sent"}
        if name == "respond_to_friend_request":
            row = next((r for r in self.requests if r["id"] == params["p_request_id"]), None)
            if row is None or row["status"] != "pending":
                return {"success": False}
            row["status"] = "accepted" if params["p_accept"] else "rejected"
            if params["p_accept"]:
                self.make_friends(row["sender_id"], row["receiver_id"])
            return {"success": True, "sender_name": self.users[row["sender_id"]]["full_name"]}
        if name == "remove_friend":
            assert viewer is not None
            self.friendships.discard(frozenset((viewer, params["p_other_user_id"])))
            return {"success": True}
        if name == "get_pending_friend_requests":
            return [
                {
                    "id": row["id"],
                    "sender_id": row["sender_id"],
                    "created_at": row["created_at"],
                    "profile": {
                        key: self.users[row["sender_id"]][key]
                        for key in ("full_name", "username", "profile_image_url")
                    },
                }
                for row in self.requests
                if row["receiver_id"] == viewer and row["status"] == "pending"
            ]
        if name == "search_users_with_status":
            text = params["search_text"].lower()
            me = params["auth_user_id"]
            return [
                {**user, "status": self.status_between(me, user_id)}
                for user_id, user in self.users.items()
                if user_id != me and (text in user["full_name"].lower() or text in (user["username"] or "").lower())
            ]
        if name == "get_friends_with_profiles":
            friends = []
            for pair in self.friendships:
                if viewer in pair:
                    (other,) = pair - {viewer}
                    user = self.users[other]
                    friends.append({"friend_id": other, "full_name": user["full_name"], "username": user["username"]})
            return friends
        raise AssertionError(f"unexpected rpc {name}")


def _matches(row: dict[str, Any], filters: dict[str, str]) -> bool:
    return all(str(row.get(key)).lower() == value.lower() for key, value in filters.items())


class RecordingNotifier:
    def __init__(self, confirm_answer: bool = True) -> None:
        self.confirm_answer = confirm_answer
        self.alerts: list[tuple[str, str]] = []
        self.confirms: list[tuple[str, str]] = []

    async def alert(self, title: str, message: str) -> None:
        self.alerts.append((title, message))

    async def confirm(self, title: str, message: str, *, confirm_label: str, cancel_label: str) -> bool:
        self.confirms.append((title, message))
        return self.confirm_answer


class FakeClock:
    def __init__(self, start_ms: float = 1_000_000.0) -> None:
        self.now = start_ms

    def __call__(self) -> float:
        return self.now

    def advance(self, minutes: float = 0, ms: float = 0) -> None:
        self.now += minutes * 60_000 + ms


@pytest.fixture
def settings() -> Settings:
    return Settings(
        SUPABASE_URL="http://backend.test",
        SUPABASE_ANON_KEY="test-anon-key",
        REALTIME_DEBOUNCE_MS=300,
        SEARCH_DEBOUNCE_MS=50,
        UI_LOCALE="sv",
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def client(backend: FakeBackend, settings: Settings) -> AsyncIterator[BackendClient]:
    async with BackendClient(
        settings=settings,
        access_token=VIEWER_TOKEN,
        transport=httpx.MockTransport(backend.handle),
    ) as backend_client:
        yield backend_client


@pytest_asyncio.fixture
async def anonymous_client(backend: FakeBackend, settings: Settings) -> AsyncIterator[BackendClient]:
    async with BackendClient(settings=settings, transport=httpx.MockTransport(backend.handle)) as backend_client:
        yield backend_client
