"""Tests for the payment notification broker and its SSE rendering."""
import asyncio

import pytest

from app.didweb.broker import SSE_KEEPALIVE, PaymentBroker, payment_events


DID = "did:web:example.com:alice"


@pytest.fixture
async def broker():
    broker = PaymentBroker(queue_size=2)
    broker.start()
    yield broker
    await broker.stop()


async def _drain(broker: PaymentBroker) -> None:
    # Let the fan-out task process everything queued so far
    for _ in range(5):
        await asyncio.sleep(0)


class TestSubscribe:
    @pytest.mark.asyncio
    async def test_unsubscribe_removes_exactly_one(self, broker):
        _, unsubscribe_a = broker.subscribe(DID)
        _, unsubscribe_b = broker.subscribe(DID)
        assert broker.subscriber_count(DID) == 2

        unsubscribe_a()
        assert broker.subscriber_count(DID) == 1
        unsubscribe_b()
        assert broker.subscriber_count(DID) == 0
        assert broker.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_unsubscribe_is_idempotent(self, broker):
        _, unsubscribe_a = broker.subscribe(DID)
        _, unsubscribe_b = broker.subscribe(DID)
        unsubscribe_a()
        unsubscribe_a()
        assert broker.subscriber_count(DID) == 1
        unsubscribe_b()


class TestPublish:
    @pytest.mark.asyncio
    async def test_fan_out_to_all_subscribers(self, broker):
        queues = [broker.subscribe(DID)[0] for _ in range(5)]

        broker.publish(DID, "paid")

        results = await asyncio.wait_for(asyncio.gather(*(q.get() for q in queues)), timeout=1)
        assert results == ["paid"] * 5

    @pytest.mark.asyncio
    async def test_other_identifiers_not_delivered(self, broker):
        mine, _ = broker.subscribe(DID)
        other, _ = broker.subscribe("did:web:example.com:bob")

        broker.broadcast_payment(DID)
        assert await asyncio.wait_for(mine.get(), timeout=1) == "paid"
        await _drain(broker)
        assert other.empty()

    @pytest.mark.asyncio
    async def test_unsubscribed_before_publish_not_delivered(self, broker):
        gone, unsubscribe = broker.subscribe(DID)
        stays, _ = broker.subscribe(DID)
        unsubscribe()

        broker.publish(DID, "paid")
        assert await asyncio.wait_for(stays.get(), timeout=1) == "paid"
        await _drain(broker)
        assert gone.empty()
        assert broker.subscriber_count(DID) == 1

    @pytest.mark.asyncio
    async def test_full_subscriber_does_not_block_others(self, broker):
        slow, _ = broker.subscribe(DID)
        fast, _ = broker.subscribe(DID)

        for i in range(3):
            broker.publish(DID, f"m{i}")
            assert await asyncio.wait_for(fast.get(), timeout=1) == f"m{i}"

        # queue_size=2: the third message was dropped for the slow subscriber
        assert slow.qsize() == 2
        assert [slow.get_nowait(), slow.get_nowait()] == ["m0", "m1"]

    @pytest.mark.asyncio
    async def test_publish_without_start(self):
        with pytest.raises(RuntimeError):
            PaymentBroker().publish(DID, "paid")

    @pytest.mark.asyncio
    async def test_stop_then_restart(self):
        broker = PaymentBroker()
        broker.start()
        await broker.stop()
        assert not broker.running
        broker.start()
        queue, _ = broker.subscribe(DID)
        broker.publish(DID, "paid")
        assert await asyncio.wait_for(queue.get(), timeout=1) == "paid"
        await broker.stop()


class TestPaymentEvents:
    @pytest.mark.asyncio
    async def test_stream_ends_after_paid(self, broker):
        queue, unsubscribe = broker.subscribe(DID)
        broker.publish(DID, "paid")

        events = [event async for event in payment_events(queue, unsubscribe, keepalive=1.0)]

        assert events == ["data: paid\n\n"]
        assert broker.subscriber_count(DID) == 0

    @pytest.mark.asyncio
    async def test_keepalive_while_waiting(self, broker):
        queue, unsubscribe = broker.subscribe(DID)
        stream = payment_events(queue, unsubscribe, keepalive=0.01)

        assert await stream.__anext__() == SSE_KEEPALIVE
        broker.publish(DID, "paid")
        events = [event async for event in stream]
        assert events[-1] == "data: paid\n\n"
        assert broker.subscriber_count(DID) == 0

    @pytest.mark.asyncio
    async def test_disconnect_unsubscribes(self, broker):
        queue, unsubscribe = broker.subscribe(DID)

        async def consume():
            async for _ in payment_events(queue, unsubscribe, keepalive=10.0):
                pass

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.01)
        assert broker.subscriber_count(DID) == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert broker.subscriber_count(DID) == 0
