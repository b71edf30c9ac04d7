"""Tests for the durable offline action queue."""

import asyncio
from unittest.mock import Mock

import aiohttp
import pytest

from quotesync.services.cache import QueryKeys
from quotesync.services.offline_queue import ActionType, OfflineAction, OfflineQueue
from quotesync.services.storage import MemoryStorage
from quotesync.shared.errors import (
    BusinessLogicError,
    DomainError,
    ErrorCode,
    InfrastructureError,
    NetworkError,
)
from tests.helpers import FakeResponse, RecordedRequest, envelope, error_envelope

QUEUE_KEY = "offline-queue"


def _offline() -> aiohttp.ClientConnectionError:
    return aiohttp.ClientConnectionError("connection refused")


@pytest.fixture
def queue(storage, transport, dispatcher) -> OfflineQueue:
    """Queue without automatic draining."""
    return OfflineQueue(storage, transport, dispatcher)


class TestEnqueue:
    """Test accepting actions."""

    def test_action_is_persisted_before_it_is_queued(self, queue, storage) -> None:
        action = queue.enqueue("create", "orders", {"total": 10})

        assert action.type is ActionType.CREATE
        assert action.retry_count == 0
        assert action.max_retries == 3
        assert storage.get(QUEUE_KEY) == [action.model_dump(mode="json")]
        assert queue.actions == (action,)

    def test_unknown_type(self, queue) -> None:
        with pytest.raises(DomainError) as exc_info:
            queue.enqueue("UPSERT", "orders", {})

        assert exc_info.value.code is ErrorCode.UNKNOWN_ACTION_TYPE
        assert len(queue) == 0

    @pytest.mark.parametrize("action_type", [ActionType.UPDATE, ActionType.DELETE])
    def test_update_and_delete_need_an_id(self, queue, action_type) -> None:
        with pytest.raises(DomainError) as exc_info:
            queue.enqueue(action_type, "orders", {"status": "PAID"})

        assert exc_info.value.code is ErrorCode.MISSING_RESOURCE_ID

    def test_storage_failure_queues_nothing(self, transport, dispatcher) -> None:
        storage = Mock(spec=MemoryStorage)
        storage.set.side_effect = InfrastructureError(ErrorCode.STORAGE_WRITE_FAILED, "disk full")
        queue = OfflineQueue(storage, transport, dispatcher)

        with pytest.raises(InfrastructureError):
            queue.enqueue(ActionType.CREATE, "orders", {})

        assert len(queue) == 0


class TestLoad:
    """Test restoring the persisted queue."""

    def test_load_restores_order(self, queue, storage, transport, dispatcher) -> None:
        first = queue.enqueue(ActionType.CREATE, "orders", {"total": 1})
        second = queue.enqueue(ActionType.DELETE, "customers", {"id": "C1"})

        restored = OfflineQueue(storage, transport, dispatcher)

        assert restored.load() == 2
        assert [a.id for a in restored.actions] == [first.id, second.id]

    def test_invalid_entries_are_skipped(self, transport, dispatcher) -> None:
        valid = OfflineAction(type=ActionType.CREATE, resource="orders").model_dump(mode="json")
        storage = MemoryStorage({QUEUE_KEY: [{"type": "BOGUS"}, valid]})
        queue = OfflineQueue(storage, transport, dispatcher)

        assert queue.load() == 1
        assert queue.actions[0].id == valid["id"]

    def test_non_list_value_is_reset(self, transport, dispatcher) -> None:
        queue = OfflineQueue(MemoryStorage({QUEUE_KEY: {"oops": 1}}), transport, dispatcher)

        assert queue.load() == 0

    def test_clear_removes_storage_key(self, queue, storage) -> None:
        queue.enqueue(ActionType.CREATE, "orders", {})

        queue.clear()

        assert storage.get(QUEUE_KEY) is None
        assert len(queue) == 0


class TestDrain:
    """Test replay, retry accounting and failure reporting."""

    @pytest.mark.asyncio
    async def test_actions_replay_in_order(self, queue, session) -> None:
        queue.enqueue(ActionType.CREATE, "orders", {"total": 10})
        queue.enqueue(ActionType.UPDATE, "customers", {"id": "C1", "name": "Acme"})
        queue.enqueue(ActionType.DELETE, "products", {"id": "P1"})
        session.add(
            FakeResponse(201, envelope({"id": "O1"})),
            FakeResponse(200, envelope({"id": "C1"})),
            FakeResponse(204),
        )

        report = await queue.drain()

        assert [(r.method, r.path) for r in session.requests] == [
            ("POST", "/orders"),
            ("PUT", "/customers/C1"),
            ("DELETE", "/products/P1"),
        ]
        assert session.requests[0].json == {"total": 10}
        assert session.requests[1].json == {"id": "C1", "name": "Acme"}
        assert len(report.succeeded) == 3
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_three_failures_drop_and_report(self, queue, session, storage) -> None:
        listener = Mock()
        queue.on_permanent_failure(listener)
        action = queue.enqueue(ActionType.CREATE, "orders", {"total": 10})
        session.add(_offline(), _offline(), _offline())

        first = await queue.drain()
        second = await queue.drain()
        assert first.retrying == [action.id]
        assert second.retrying == [action.id]
        assert queue.actions[0].retry_count == 2
        assert storage.get(QUEUE_KEY)[0]["retry_count"] == 2
        listener.assert_not_called()

        third = await queue.drain()

        assert len(queue) == 0
        assert [a.id for a in third.failed] == [action.id]
        listener.assert_called_once()
        dropped, error = listener.call_args.args
        assert dropped.id == action.id
        assert dropped.retry_count == 3
        assert isinstance(error, NetworkError)
        assert storage.get(QUEUE_KEY) is None

    @pytest.mark.asyncio
    async def test_success_after_two_failures(self, queue, session) -> None:
        listener = Mock()
        queue.on_permanent_failure(listener)
        queue.enqueue(ActionType.CREATE, "orders", {"total": 10})
        session.add(_offline(), _offline(), FakeResponse(201, envelope({"id": "O1"})))

        await queue.drain()
        await queue.drain()
        report = await queue.drain()

        assert len(report.succeeded) == 1
        assert len(queue) == 0
        listener.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_holds_later_actions_of_same_resource(self, queue, session) -> None:
        first = queue.enqueue(ActionType.CREATE, "orders", {"total": 1})
        second = queue.enqueue(ActionType.UPDATE, "orders", {"id": "O1", "total": 2})
        other = queue.enqueue(ActionType.CREATE, "customers", {"name": "Acme"})
        session.add(_offline(), FakeResponse(201, envelope({"id": "C9"})))

        report = await queue.drain()

        assert report.retrying == [first.id]
        assert report.held == [second.id]
        assert report.succeeded == [other.id]
        assert [a.id for a in queue.actions] == [first.id, second.id]
        assert queue.actions[1].retry_count == 0

    @pytest.mark.asyncio
    async def test_server_rejection_drops_immediately(self, queue, session) -> None:
        listener = Mock()
        queue.on_permanent_failure(listener)
        queue.enqueue(ActionType.CREATE, "orders", {"total": -1})
        session.add(FakeResponse(422, error_envelope("BUSINESS_LOGIC_ERROR", "total must be positive")))

        report = await queue.drain()

        assert len(queue) == 0
        assert report.failed[0].retry_count == report.failed[0].max_retries
        assert isinstance(listener.call_args.args[1], BusinessLogicError)
        assert len(session.requests) == 1

    @pytest.mark.asyncio
    async def test_success_invalidates_related_cache(self, queue, session, cache) -> None:
        cache.set(QueryKeys.orders.list(), [])
        queue.enqueue(ActionType.CREATE, "orders", {"total": 10})
        session.add(FakeResponse(201, envelope({"id": "O1"})))

        await queue.drain()

        assert cache.is_stale(QueryKeys.orders.list())

    @pytest.mark.asyncio
    async def test_replayed_order_marks_its_quotation_stale(self, queue, session, cache) -> None:
        cache.set(QueryKeys.quotations.detail("Q1"), {"id": "Q1", "status": "APPROVED"})
        cache.set(QueryKeys.quotations.detail("Q2"), {"id": "Q2", "status": "APPROVED"})
        queue.enqueue(ActionType.CREATE, "orders", {"quotationId": "Q1"})
        session.add(FakeResponse(201, envelope({"id": "O1", "quotationId": "Q1"})))

        await queue.drain()

        assert cache.is_stale(QueryKeys.quotations.detail("Q1"))
        assert not cache.is_stale(QueryKeys.quotations.detail("Q2"))

    @pytest.mark.asyncio
    async def test_concurrent_drain_is_skipped(self, queue, session) -> None:
        release = asyncio.Event()

        async def handler(request: RecordedRequest) -> FakeResponse:
            await release.wait()
            return FakeResponse(201, envelope({"id": "O1"}))

        session.handler = handler
        queue.enqueue(ActionType.CREATE, "orders", {"total": 10})

        running = asyncio.create_task(queue.drain())
        await asyncio.sleep(0)
        assert queue.is_draining

        skipped = await queue.drain()
        release.set()
        report = await running

        assert skipped.skipped
        assert len(report.succeeded) == 1
        assert len(session.requests) == 1


class TestAutoDrain:
    """Test draining when connectivity returns."""

    @pytest.mark.asyncio
    async def test_reconnect_triggers_drain(self, storage, transport, dispatcher, connectivity, session) -> None:
        queue = OfflineQueue(storage, transport, dispatcher, connectivity)
        connectivity.report_offline()
        queue.enqueue(ActionType.CREATE, "orders", {"total": 10})
        session.add(FakeResponse(201, envelope({"id": "O1"})))

        connectivity.report_online()
        report = await queue.drain_task

        assert len(report.succeeded) == 1
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_closed_queue_ignores_reconnect(self, storage, transport, dispatcher, connectivity) -> None:
        queue = OfflineQueue(storage, transport, dispatcher, connectivity)
        connectivity.report_offline()
        queue.enqueue(ActionType.CREATE, "orders", {})

        queue.close()
        connectivity.report_online()

        assert queue.drain_task is None
