"""
Tests for the in-memory outbox storage.
"""

from datetime import UTC, datetime, timedelta

import pytest

from txmsg.exceptions import OutboxStorageError
from txmsg.state_machine import InvalidStateTransitionError
from txmsg.storage.memory import InMemoryOutboxStorage
from txmsg.types import OutboxMessage, SendState

NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


def _message(message_id, state=SendState.PREPARING, **kwargs):
    values = {
        "id": message_id,
        "target": "orders",
        "routing_key": "order.created",
        "payload": b"{}",
        "state": state,
        "max_retry_times": 3,
        "backoff_init_interval": 1000,
        "backoff_multiplier": 2.0,
        "backoff_max_interval": 5000,
        "next_retry_time": NOW,
        "create_time": NOW,
    }
    values.update(kwargs)
    return OutboxMessage(**values)


@pytest.fixture
def storage():
    return InMemoryOutboxStorage()


class TestInsert:
    @pytest.mark.asyncio
    async def test_insert_and_get(self, storage):
        await storage.insert(_message("m1"))

        stored = await storage.get_by_id("m1")
        assert stored.id == "m1"
        assert stored.state == SendState.PREPARING

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, storage):
        await storage.insert(_message("m1"))

        with pytest.raises(OutboxStorageError, match="already exists"):
            await storage.insert(_message("m1"))

    @pytest.mark.asyncio
    async def test_records_are_copied(self, storage):
        message = _message("m1")
        await storage.insert(message)

        message.state = SendState.OVER
        fetched = await storage.get_by_id("m1")
        fetched.cause = "changed"

        stored = await storage.get_by_id("m1")
        assert stored.state == SendState.PREPARING
        assert stored.cause is None

    @pytest.mark.asyncio
    async def test_get_missing(self, storage):
        assert await storage.get_by_id("nope") is None


class TestConditionalUpdate:
    @pytest.mark.asyncio
    async def test_applies_when_state_matches(self, storage):
        await storage.insert(_message("m1"))

        updated = await storage.conditional_update(
            "m1", SendState.PREPARING, state=SendState.FAIL, cause="boom"
        )

        assert updated is True
        stored = await storage.get_by_id("m1")
        assert stored.state == SendState.FAIL
        assert stored.cause == "boom"

    @pytest.mark.asyncio
    async def test_noop_when_state_differs(self, storage):
        await storage.insert(_message("m1", state=SendState.OVER))

        updated = await storage.conditional_update(
            "m1", SendState.PREPARING, state=SendState.FAIL
        )

        assert updated is False
        assert (await storage.get_by_id("m1")).state == SendState.OVER

    @pytest.mark.asyncio
    async def test_noop_when_missing(self, storage):
        assert await storage.conditional_update("nope", SendState.PREPARING, state=SendState.OVER) is False

    @pytest.mark.asyncio
    async def test_second_of_two_identical_updates_loses(self, storage):
        await storage.insert(_message("m1"))

        first = await storage.conditional_update("m1", SendState.PREPARING, state=SendState.OVER)
        second = await storage.conditional_update("m1", SendState.PREPARING, state=SendState.OVER)

        assert (first, second) == (True, False)

    @pytest.mark.asyncio
    async def test_invalid_transition_raises(self, storage):
        await storage.insert(_message("m1", state=SendState.FAIL))

        with pytest.raises(InvalidStateTransitionError):
            await storage.conditional_update("m1", SendState.FAIL, state=SendState.OVER)

    @pytest.mark.asyncio
    async def test_retry_count_never_decreases(self, storage):
        await storage.insert(_message("m1", state=SendState.FAIL, curr_retry_times=2))

        assert await storage.conditional_update("m1", SendState.FAIL, curr_retry_times=1) is False
        assert await storage.update("m1", curr_retry_times=0, cause="reset") is False

        stored = await storage.get_by_id("m1")
        assert stored.curr_retry_times == 2
        assert stored.cause is None

    @pytest.mark.asyncio
    async def test_unknown_fields_rejected(self, storage):
        await storage.insert(_message("m1"))

        with pytest.raises(OutboxStorageError, match="not updatable"):
            await storage.conditional_update("m1", SendState.PREPARING, payload=b"x")

    @pytest.mark.asyncio
    async def test_empty_update_rejected(self, storage):
        await storage.insert(_message("m1"))

        with pytest.raises(OutboxStorageError, match="No fields"):
            await storage.conditional_update("m1", SendState.PREPARING)


class TestUpdate:
    @pytest.mark.asyncio
    async def test_updates_regardless_of_state(self, storage):
        await storage.insert(_message("m1", state=SendState.OVER))

        assert await storage.update("m1", state=SendState.FAIL, cause="returned") is True
        assert (await storage.get_by_id("m1")).state == SendState.FAIL

    @pytest.mark.asyncio
    async def test_missing(self, storage):
        assert await storage.update("nope", cause="x") is False


class TestQueries:
    @pytest.mark.asyncio
    async def test_query_fail_due(self, storage):
        await storage.insert(_message("late", state=SendState.FAIL, next_retry_time=NOW - timedelta(seconds=1)))
        await storage.insert(_message("early", state=SendState.FAIL, next_retry_time=NOW - timedelta(seconds=5)))
        await storage.insert(_message("boundary", state=SendState.FAIL, next_retry_time=NOW))
        await storage.insert(_message("future", state=SendState.FAIL, next_retry_time=NOW + timedelta(seconds=1)))
        await storage.insert(
            _message("exhausted", state=SendState.FAIL, curr_retry_times=3, next_retry_time=NOW - timedelta(hours=1))
        )
        await storage.insert(_message("preparing", next_retry_time=NOW - timedelta(hours=1)))

        due = await storage.query_fail_due(NOW)

        assert [m.id for m in due] == ["early", "late", "boundary"]

    @pytest.mark.asyncio
    async def test_query_fail_due_limit(self, storage):
        for i in range(5):
            await storage.insert(_message(f"m{i}", state=SendState.FAIL, next_retry_time=NOW - timedelta(seconds=i)))

        assert len(await storage.query_fail_due(NOW, limit=2)) == 2

    @pytest.mark.asyncio
    async def test_query_stale_preparing(self, storage):
        await storage.insert(_message("stale", next_retry_time=NOW - timedelta(minutes=10)))
        await storage.insert(_message("fresh", next_retry_time=NOW + timedelta(seconds=1)))
        await storage.insert(_message("failed", state=SendState.FAIL, next_retry_time=NOW - timedelta(minutes=10)))

        stale = await storage.query_stale_preparing(NOW - timedelta(minutes=5))

        assert [m.id for m in stale] == ["stale"]

    @pytest.mark.asyncio
    async def test_query_over_older_than(self, storage):
        cutoff = NOW - timedelta(days=7)
        await storage.insert(_message("old", state=SendState.OVER, create_time=cutoff - timedelta(seconds=1)))
        await storage.insert(_message("recent", state=SendState.OVER, create_time=cutoff + timedelta(seconds=1)))
        await storage.insert(_message("old-fail", state=SendState.FAIL, create_time=cutoff - timedelta(days=1)))

        assert await storage.query_over_older_than(cutoff) == ["old"]

    @pytest.mark.asyncio
    async def test_count_by_state(self, storage):
        await storage.insert(_message("a"))
        await storage.insert(_message("b", state=SendState.FAIL))
        await storage.insert(_message("c", state=SendState.FAIL))

        counts = await storage.count_by_state()

        assert counts == {SendState.PREPARING: 1, SendState.FAIL: 2, SendState.OVER: 0}


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_batch(self, storage):
        await storage.insert(_message("a", state=SendState.OVER))
        await storage.insert(_message("b", state=SendState.OVER))

        assert await storage.delete_batch(["a", "missing"]) is True
        assert await storage.get_by_id("a") is None
        assert await storage.get_by_id("b") is not None

    @pytest.mark.asyncio
    async def test_delete_nothing(self, storage):
        assert await storage.delete_batch(["missing"]) is False

    @pytest.mark.asyncio
    async def test_clear(self, storage):
        await storage.insert(_message("a"))
        storage.clear()

        assert await storage.get_by_id("a") is None
