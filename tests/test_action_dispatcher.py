import asyncio

import httpx
import pytest

from gymfriends.clients.backend import BackendClient
from gymfriends.schemas.friends import ChangeEvent, FriendshipState
from gymfriends.services.action_dispatcher import FriendAction, FriendActionDispatcher
from gymfriends.services.realtime import ChangeFeedHub


def _dispatcher(client, notifier, status=None, **kwargs):
    return FriendActionDispatcher(
        client,
        "u1",
        notifier=notifier,
        viewer_id="viewer",
        initial_status=status,
        locale="sv",
        **kwargs,
    )


@pytest.mark.parametrize(
    "status, action, label",
    [
        (FriendshipState.NONE, FriendAction.SEND, "Lägg till vän"),
        (FriendshipState.REQUESTED, FriendAction.CANCEL, "Avbryt förfrågan"),
        (FriendshipState.INCOMING, FriendAction.ACCEPT, "Acceptera"),
        (FriendshipState.FRIEND, FriendAction.REMOVE, "Ta bort vän"),
    ],
)
def test_action_and_label_follow_status(status, action, label, notifier):
    dispatcher = FriendActionDispatcher(None, "u1", notifier=notifier, initial_status=status, locale="sv")

    assert dispatcher.action is action
    assert dispatcher.action_label == label


@pytest.mark.asyncio
async def test_send_request_moves_to_requested(client, backend, notifier):
    backend.add_user("u1", "Anna Berg")
    changes = []
    dispatcher = _dispatcher(
        client, notifier, FriendshipState.NONE, on_status_change=lambda uid, st: changes.append((uid, st))
    )

    status = await dispatcher.handle_request()

    assert status is FriendshipState.REQUESTED
    assert backend.calls_to("send_friend_request") == [{"p_receiver_id": "u1"}]
    assert changes == [("u1", FriendshipState.REQUESTED)]
    assert dispatcher.action_label == "Avbryt förfrågan"
    assert notifier.alerts == []


@pytest.mark.asyncio
async def test_send_failure_rolls_back_and_alerts(client, backend, notifier):
    backend.failures["send_friend_request"] = 500
    changes = []
    dispatcher = _dispatcher(
        client, notifier, FriendshipState.NONE, on_status_change=lambda uid, st: changes.append(st)
    )

    status = await dispatcher.handle_request()

    assert status is FriendshipState.NONE
    assert changes == []
    assert notifier.alerts == [("Fel", "Ett fel uppstod. Försök igen senare.")]


@pytest.mark.asyncio
async def test_cancel_deletes_outgoing_request(client, backend, notifier):
    backend.add_user("u1", "Anna Berg")
    backend.add_request("viewer", "u1")
    dispatcher = _dispatcher(client, notifier, FriendshipState.REQUESTED)

    status = await dispatcher.handle_request()

    assert status is FriendshipState.NONE
    assert backend.status_between("viewer", "u1") == "none"


@pytest.mark.asyncio
async def test_cancel_missing_request_rolls_back_silently(client, backend, notifier):
    dispatcher = _dispatcher(client, notifier, FriendshipState.REQUESTED)

    status = await dispatcher.handle_request()

    assert status is FriendshipState.REQUESTED
    assert notifier.alerts == []
    assert not any(name.startswith("DELETE") for name, _ in backend.calls)


@pytest.mark.asyncio
async def test_accept_alerts_and_confirms_against_backend(client, backend, notifier):
    backend.add_user("u1", "Anna Berg")
    backend.add_request("u1", "viewer")
    changes = []
    dispatcher = _dispatcher(
        client, notifier, FriendshipState.INCOMING, on_status_change=lambda uid, st: changes.append(st)
    )

    status = await dispatcher.handle_request()

    assert status is FriendshipState.FRIEND
    assert notifier.alerts == [("Vänförfrågan accepterad", "Du och Anna Berg är nu vänner!")]
    assert len(backend.calls_to("check_friendship_status")) == 1
    assert changes == [FriendshipState.FRIEND]


@pytest.mark.asyncio
async def test_accept_failure_rolls_back(client, backend, notifier):
    backend.add_user("u1", "Anna Berg")
    backend.add_request("u1", "viewer")
    backend.failures["respond_to_friend_request"] = 500
    dispatcher = _dispatcher(client, notifier, FriendshipState.INCOMING)

    status = await dispatcher.handle_request()

    assert status is FriendshipState.INCOMING
    assert notifier.alerts == [("Fel", "Ett fel uppstod. Försök igen senare.")]


@pytest.mark.asyncio
async def test_remove_requires_confirmation(client, backend, notifier):
    backend.add_user("u1", "Anna Berg")
    backend.make_friends("viewer", "u1")
    notifier.confirm_answer = False
    dispatcher = _dispatcher(client, notifier, FriendshipState.FRIEND)

    status = await dispatcher.handle_request()

    assert status is FriendshipState.FRIEND
    assert len(notifier.confirms) == 1
    assert backend.calls_to("remove_friend") == []


@pytest.mark.asyncio
async def test_remove_confirmed_clears_friendship(client, backend, notifier):
    backend.add_user("u1", "Anna Berg")
    backend.make_friends("viewer", "u1")
    dispatcher = _dispatcher(client, notifier, FriendshipState.FRIEND)

    status = await dispatcher.handle_request()

    assert status is FriendshipState.NONE
    assert backend.calls_to("remove_friend") == [{"p_other_user_id": "u1"}]
    assert backend.status_between("viewer", "u1") == "none"


@pytest.mark.asyncio
async def test_remove_failure_rolls_back_without_alert(client, backend, notifier):
    backend.make_friends("viewer", "u1")
    backend.failures["remove_friend"] = 500
    dispatcher = _dispatcher(client, notifier, FriendshipState.FRIEND)

    status = await dispatcher.handle_request()

    assert status is FriendshipState.FRIEND
    assert notifier.alerts == []


@pytest.mark.asyncio
async def test_unknown_status_resolves_before_acting(client, backend, notifier):
    backend.add_user("u1", "Anna Berg")
    backend.add_request("u1", "viewer")
    dispatcher = _dispatcher(client, notifier)

    status = await dispatcher.handle_request()

    assert status is FriendshipState.INCOMING
    assert backend.calls_to("respond_to_friend_request") == []


@pytest.mark.asyncio
async def test_signed_out_viewer_does_nothing(anonymous_client, backend, notifier):
    dispatcher = FriendActionDispatcher(
        anonymous_client, "u1", notifier=notifier, initial_status=FriendshipState.NONE
    )

    status = await dispatcher.handle_request()

    assert status is FriendshipState.NONE
    assert backend.calls_to("send_friend_request") == []


@pytest.mark.asyncio
async def test_second_tap_while_in_flight_is_ignored(backend, notifier, settings):
    gate = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/send_friend_request"):
            await gate.wait()
        return backend.handle(request)

    async with BackendClient(
        settings=settings, access_token="token-viewer", transport=httpx.MockTransport(handler)
    ) as gated_client:
        dispatcher = _dispatcher(gated_client, notifier, FriendshipState.NONE)
        first = asyncio.create_task(dispatcher.handle_request())
        for _ in range(20):
            await asyncio.sleep(0)

        assert dispatcher.loading
        assert dispatcher.status is FriendshipState.REQUESTED
        assert await dispatcher.handle_request() is FriendshipState.REQUESTED

        gate.set()
        assert await first is FriendshipState.REQUESTED

    assert len(backend.calls_to("send_friend_request")) == 1


@pytest.mark.asyncio
async def test_sync_status_ignored_while_busy(client, notifier):
    dispatcher = _dispatcher(client, notifier, FriendshipState.NONE)
    dispatcher.sync_status(FriendshipState.INCOMING)
    assert dispatcher.status is FriendshipState.INCOMING

    dispatcher._busy = True
    dispatcher.sync_status(FriendshipState.FRIEND)
    assert dispatcher.status is FriendshipState.INCOMING


@pytest.mark.asyncio
async def test_realtime_change_for_pair_re_resolves(client, backend, notifier):
    backend.add_user("u1", "Anna Berg")
    hub = ChangeFeedHub()
    changes = []
    dispatcher = _dispatcher(
        client, notifier, FriendshipState.NONE, on_status_change=lambda uid, st: changes.append(st)
    )
    await dispatcher.attach(hub)

    await hub.publish(ChangeEvent(table="friend_requests", record={"sender_id": "u2", "receiver_id": "viewer"}))
    assert not dispatcher.invalidator.pending

    backend.add_request("u1", "viewer")
    await hub.publish(ChangeEvent(table="friend_requests", record={"sender_id": "u1", "receiver_id": "viewer"}))
    assert dispatcher.invalidator.pending

    await dispatcher.invalidator.flush()

    assert dispatcher.status is FriendshipState.INCOMING
    assert changes == [FriendshipState.INCOMING]

    dispatcher.detach()
    assert hub.subscriber_count() == 0
