"""
Unit tests for the event dispatcher.

Tests send_to and the broadcast operations of the Dispatcher class, with the
in-memory transport standing in for sockets.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from realtime_hub.events.event_types import OrderCreated, OrderUpdated, SystemMaintenance
from realtime_hub.exceptions import MalformedEvent
from realtime_hub.realtime.dispatcher import Dispatcher
from realtime_hub.realtime.envelope import RealtimeEvent, build_event

# pylint: disable=redefined-outer-name  # Reason: pytest fixtures are used as function parameters, which triggers this warning


@pytest.fixture
def order_event():
    return build_event(OrderUpdated(order_id="o-1", status="shipped"))


class SlowTransport:
    """Transport whose sends take a fixed time."""

    def __init__(self, delay: float) -> None:
        self.delay = delay
        self.calls: list[str] = []

    async def send(self, connection_id: str, message: str) -> bool:
        self.calls.append(connection_id)
        await asyncio.sleep(self.delay)
        return True


@pytest.mark.asyncio
async def test_send_to_delivers_serialized_event(registry, transport, dispatcher, order_event):
    """Test send_to hands the JSON wire form to the transport."""
    registry.register("c1", "u1", "customer")

    assert await dispatcher.send_to("c1", order_event) is True

    [message] = transport.messages_for("c1")
    wire = json.loads(message)
    assert wire["id"] == order_event.id
    assert wire["type"] == "order.updated"
    assert wire["payload"]["order_id"] == "o-1"
    assert wire["payload"]["status"] == "shipped"


@pytest.mark.asyncio
async def test_send_to_touches_connection_on_success(registry, clock, dispatcher, order_event):
    """Test a successful send refreshes last_activity."""
    registry.register("c1", "u1", "customer")
    clock.advance(25)

    await dispatcher.send_to("c1", order_event)

    assert registry.get("c1").last_activity == clock.now


@pytest.mark.asyncio
async def test_send_to_unregistered_connection_skips_transport(dispatcher, transport, order_event):
    """Test sending to an id that is not registered makes no transport call."""
    assert await dispatcher.send_to("ghost", order_event) is False
    assert transport.sent == []
    assert dispatcher.get_delivery_stats()["skipped_unregistered"] == 1


@pytest.mark.asyncio
async def test_send_to_failing_transport_returns_normally(registry, transport, dispatcher, order_event):
    """Test a raising transport is recorded as a failure and the connection stays registered."""
    registry.register("c1", "u1", "customer")
    transport.fail_for("c1", ConnectionResetError("socket closed"))

    assert await dispatcher.send_to("c1", order_event) is False

    assert "c1" in registry
    stats = dispatcher.get_delivery_stats()
    assert stats["attempted"] == 1
    assert stats["failed"] == 1
    assert stats["delivered"] == 0


@pytest.mark.asyncio
async def test_send_to_transport_reporting_false_counts_failure(registry, transport, dispatcher, order_event):
    """Test a False return from the transport is a failed delivery."""
    registry.register("c1", "u1", "customer")
    transport.fail_for("c1")

    assert await dispatcher.send_to("c1", order_event) is False
    assert dispatcher.get_delivery_stats()["failed"] == 1


@pytest.mark.asyncio
async def test_send_to_does_not_touch_on_failure(registry, clock, transport, dispatcher, order_event):
    """Test a failed send leaves last_activity alone."""
    connection = registry.register("c1", "u1", "customer")
    transport.fail_for("c1", RuntimeError("boom"))
    clock.advance(25)

    await dispatcher.send_to("c1", order_event)

    assert registry.get("c1").last_activity == connection.last_activity


@pytest.mark.asyncio
async def test_send_to_timeout_counts_failure(registry, order_event):
    """Test a send slower than send_timeout is abandoned and counted."""
    registry.register("c1", "u1", "customer")
    dispatcher = Dispatcher(registry, SlowTransport(delay=1.0), send_timeout=0.01)

    assert await dispatcher.send_to("c1", order_event) is False

    stats = dispatcher.get_delivery_stats()
    assert stats["timeouts"] == 1
    assert stats["failed"] == 1
    assert "c1" in registry


@pytest.mark.asyncio
async def test_send_to_accepts_sync_transport(registry, order_event):
    """Test a transport with a plain synchronous send works."""
    registry.register("c1", "u1", "customer")
    transport = MagicMock()
    transport.send.return_value = True
    dispatcher = Dispatcher(registry, transport)

    assert await dispatcher.send_to("c1", order_event) is True
    transport.send.assert_called_once()
    assert transport.send.call_args.args[0] == "c1"


@pytest.mark.asyncio
async def test_send_to_malformed_event_raises_before_io(registry, order_event):
    """Test an event without a type is rejected and nothing is sent."""
    registry.register("c1", "u1", "customer")
    transport = MagicMock()
    transport.send = AsyncMock(return_value=True)
    dispatcher = Dispatcher(registry, transport)
    malformed = RealtimeEvent(type="", payload=order_event.payload)

    with pytest.raises(MalformedEvent):
        await dispatcher.send_to("c1", malformed)

    transport.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_send_to_preserves_order_per_connection(registry):
    """Test concurrent sends to one connection arrive in dispatch order."""
    registry.register("c1", "u1", "customer")
    received: list[str] = []
    delays = iter([0.03, 0.02, 0.01, 0.0])

    class VariableDelayTransport:
        async def send(self, connection_id: str, message: str) -> bool:
            await asyncio.sleep(next(delays))
            received.append(json.loads(message)["payload"]["status"])
            return True

    dispatcher = Dispatcher(registry, VariableDelayTransport())
    statuses = ["placed", "paid", "packed", "shipped"]
    events = [build_event(OrderUpdated(order_id="o-1", status=s)) for s in statuses]

    await asyncio.gather(*[dispatcher.send_to("c1", event) for event in events])

    assert received == statuses


@pytest.mark.asyncio
async def test_send_to_records_event_in_diagnostic_cache(registry, dispatcher, order_event):
    """Test a dispatched event can be looked up right after dispatch."""
    registry.register("c1", "u1", "customer")

    await dispatcher.send_to("c1", order_event)

    cached = dispatcher.get_cached_event(order_event.id)
    assert cached is not None
    assert cached["type"] == "order.updated"


@pytest.mark.asyncio
async def test_broadcast_to_room_reaches_every_member(registry, transport, dispatcher, order_event):
    """Test each room member gets exactly one delivery."""
    for cid in ("c1", "c2", "c3"):
        registry.register(cid, f"user-{cid}", "customer")
        registry.join_room("orders", cid)
    registry.register("outsider", "u9", "customer")

    stats = await dispatcher.broadcast_to_room("orders", order_event)

    assert stats["room"] == "orders"
    assert stats["total_targets"] == 3
    assert stats["successful_deliveries"] == 3
    assert stats["failed_deliveries"] == 0
    assert sorted(cid for cid, _ in transport.sent) == ["c1", "c2", "c3"]


@pytest.mark.asyncio
async def test_broadcast_to_room_resolves_membership_once(registry, rooms, order_event):
    """Test joins and leaves during a broadcast do not change its recipients."""
    for cid in ("c1", "c2", "c3"):
        registry.register(cid, f"user-{cid}", "customer")
        registry.join_room("orders", cid)
    registry.register("late", "u9", "customer")
    attempts: list[str] = []

    class MutatingTransport:
        async def send(self, connection_id: str, message: str) -> bool:
            attempts.append(connection_id)
            registry.join_room("orders", "late")
            rooms.remove_from_room("orders", "c3")
            await asyncio.sleep(0)
            return True

    dispatcher = Dispatcher(registry, MutatingTransport())

    stats = await dispatcher.broadcast_to_room("orders", order_event)

    assert stats["total_targets"] == 3
    assert sorted(attempts) == ["c1", "c2", "c3"]
    assert rooms.members_of("orders") == frozenset({"c1", "c2", "late"})


@pytest.mark.asyncio
async def test_broadcast_to_unknown_room_has_no_targets(dispatcher, transport, order_event):
    """Test a never-created room resolves to zero deliveries, not an error."""
    stats = await dispatcher.broadcast_to_room("never-created", order_event)

    assert stats["total_targets"] == 0
    assert stats["successful_deliveries"] == 0
    assert transport.sent == []


@pytest.mark.asyncio
async def test_broadcast_counts_partial_failures(registry, transport, dispatcher, order_event):
    """Test one broken recipient does not stop the others."""
    for cid in ("c1", "c2", "c3"):
        registry.register(cid, f"user-{cid}", "customer")
        registry.join_room("orders", cid)
    transport.fail_for("c2", RuntimeError("broken pipe"))

    stats = await dispatcher.broadcast_to_room("orders", order_event)

    assert stats["successful_deliveries"] == 2
    assert stats["failed_deliveries"] == 1
    assert stats["skipped_deliveries"] == 0
    assert "c2" in registry


@pytest.mark.asyncio
async def test_broadcast_counts_recipients_removed_mid_broadcast_as_skipped(registry, order_event):
    """Test a member unregistered after membership was resolved is skipped, not failed."""
    for cid in ("c1", "c2", "c3"):
        registry.register(cid, f"user-{cid}", "customer")
        registry.join_room("orders", cid)
    attempts: list[str] = []

    class DisconnectingTransport:
        async def send(self, connection_id: str, message: str) -> bool:
            attempts.append(connection_id)
            registry.unregister("c3")
            return True

    dispatcher = Dispatcher(registry, DisconnectingTransport())

    stats = await dispatcher.broadcast_to_room("orders", order_event)

    assert stats["total_targets"] == 3
    assert stats["successful_deliveries"] == 2
    assert stats["failed_deliveries"] == 0
    assert stats["skipped_deliveries"] == 1
    assert attempts == ["c1", "c2"]
    assert dispatcher.get_delivery_stats()["skipped_unregistered"] == 1


@pytest.mark.asyncio
async def test_broadcast_to_connection_reaches_every_tab(registry, transport, dispatcher, order_event):
    """Test a user's event goes to all of that user's connections."""
    registry.register("tab1", "u1", "customer")
    registry.register("tab2", "u1", "customer")
    registry.register("other", "u2", "customer")

    stats = await dispatcher.broadcast_to_connection("u1", order_event)

    assert stats["user_id"] == "u1"
    assert stats["total_targets"] == 2
    assert sorted(cid for cid, _ in transport.sent) == ["tab1", "tab2"]


@pytest.mark.asyncio
async def test_broadcast_to_connection_unknown_user(dispatcher, order_event):
    """Test a user without connections resolves to zero deliveries."""
    stats = await dispatcher.broadcast_to_connection("offline", order_event)
    assert stats["total_targets"] == 0


@pytest.mark.asyncio
async def test_broadcast_to_role(registry, transport, dispatcher, order_event):
    """Test role broadcasts ignore other roles."""
    registry.register("a1", "u1", "admin")
    registry.register("c1", "u2", "customer")

    stats = await dispatcher.broadcast_to_role("admin", order_event)

    assert stats["total_targets"] == 1
    assert [cid for cid, _ in transport.sent] == ["a1"]


@pytest.mark.asyncio
async def test_broadcast_to_all(registry, transport, dispatcher):
    """Test broadcast_to_all reaches every registered connection."""
    for cid in ("a1", "m1", "c1"):
        registry.register(cid, f"user-{cid}", "customer")
    event = build_event(SystemMaintenance(message="Back soon"))

    stats = await dispatcher.broadcast_to_all(event)

    assert stats["total_targets"] == 3
    assert stats["successful_deliveries"] == 3
    assert len(transport.sent) == 3


@pytest.mark.asyncio
async def test_dispatch_routes_by_target(registry, transport, dispatcher):
    """Test dispatch honours target_user_id, then target_room, then everyone."""
    registry.register("c1", "u1", "customer")
    registry.register("c2", "u2", "customer")
    registry.join_room("orders", "c2")
    payload = OrderCreated(order_id="o-1", customer_id="u1", total_amount=10.0)

    by_user = await dispatcher.dispatch(build_event(payload, target_user_id="u1"))
    by_room = await dispatcher.dispatch(build_event(payload, target_room="orders"))
    to_all = await dispatcher.dispatch(build_event(payload))

    assert by_user["total_targets"] == 1
    assert by_room["total_targets"] == 1
    assert to_all["total_targets"] == 2
    assert transport.messages_for("c1")[0] != transport.messages_for("c2")[0]


@pytest.mark.asyncio
async def test_unregister_drops_per_connection_state(registry, dispatcher, order_event):
    """Test the dispatcher forgets a connection once it is unregistered."""
    registry.register("c1", "u1", "customer")
    await dispatcher.send_to("c1", order_event)
    assert dispatcher.get_delivery_stats()["tracked_connections"] == 1

    registry.unregister("c1")

    assert dispatcher.get_delivery_stats()["tracked_connections"] == 0


@pytest.mark.asyncio
async def test_delivery_stats_accumulate(registry, transport, dispatcher, order_event):
    """Test cumulative counters across several sends."""
    registry.register("c1", "u1", "customer")
    registry.register("c2", "u2", "customer")
    transport.fail_for("c2")

    await dispatcher.send_to("c1", order_event)
    await dispatcher.send_to("c2", order_event)
    await dispatcher.broadcast_to_all(order_event)

    stats = dispatcher.get_delivery_stats()
    assert stats["events_dispatched"] == 3
    assert stats["attempted"] == 4
    assert stats["delivered"] == 2
    assert stats["failed"] == 2
    assert stats["cached_events"] == 1
