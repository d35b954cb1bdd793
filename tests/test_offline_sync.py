"""
Tests for the durable offline queue, queue replay, connectivity probes and
the remote retry helper.
"""

import asyncio
import json
import socket

import pytest

from lift_scheduler.core.errors import (
    PermanentRemoteError,
    TransientRemoteError,
)
from lift_scheduler.core.models import (
    OperationState,
    OperationType,
    PlannedSet,
    TrainingSession,
    TrainingSessionItem,
)
from lift_scheduler.core.retry import call_with_retry
from lift_scheduler.io.connectivity import StaticProbe, TcpProbe
from lift_scheduler.io.offline_queue import OfflineQueue
from lift_scheduler.io.remote import FileRemoteStore, InMemoryRemoteStore
from lift_scheduler.io.serializers import ValidationError
from lift_scheduler.io.sync import ConnectivityMonitor, apply_operation, sync_offline_queue
from lift_scheduler.io.telemetry import MemoryEventLog


# ===========================================================================
# Helpers
# ===========================================================================

async def _remote_with_item(remote=None):
    remote = remote if remote is not None else InMemoryRemoteStore()
    await remote.create_training_session(
        TrainingSession(id="s1", user_id="u1", mode="manual", goals={}, started_at="2026-03-02T18:00:00+00:00")
    )
    await remote.create_training_session_items(
        [
            TrainingSessionItem(
                id="s1-1",
                session_id="s1",
                exercise_id="bench_press",
                order_index=1,
                planned_sets=(
                    PlannedSet(index=1, target_reps=5, suggested_weight_kg=80, rest_seconds=180),
                    PlannedSet(index=2, target_reps=5, suggested_weight_kg=80, rest_seconds=180),
                ),
            )
        ]
    )
    return remote


def _enqueue_set(queue: OfflineQueue, index: int, weight: float = 80, reps: int = 5, item_id: str = "s1-1"):
    return queue.enqueue(
        OperationType.INSERT_SET_LOG,
        item_id,
        {"item_id": item_id, "set": {"index": index, "weight_kg": weight, "reps": reps, "rpe": None}},
        str(index),
    )


def _enqueue_finalize(queue: OfflineQueue, session_id: str = "s1"):
    return queue.enqueue(
        OperationType.FINALIZE_SESSION,
        session_id,
        {"session_id": session_id, "changes": {"ended_at": "2026-03-02T19:00:00+00:00"}},
    )


# ===========================================================================
# Queue
# ===========================================================================

class TestOfflineQueue:
    def test_fifo_and_keys(self, tmp_path):
        queue = OfflineQueue(tmp_path / "q.jsonl")
        first = _enqueue_set(queue, 1)
        _enqueue_set(queue, 2)
        _enqueue_finalize(queue)

        assert queue.size() == 3
        assert queue.peek().id == first.id
        assert queue.pending_keys() == [
            "insert_set_log:s1-1:1",
            "insert_set_log:s1-1:2",
            "finalize_session:s1",
        ]

    def test_survives_reopen(self, tmp_path):
        path = tmp_path / "q.jsonl"
        _enqueue_set(OfflineQueue(path), 1)
        reopened = OfflineQueue(path)
        op = reopened.peek()
        assert op.type == OperationType.INSERT_SET_LOG
        assert op.payload["set"]["weight_kg"] == 80
        assert op.state == OperationState.QUEUED

    def test_mark_counts_attempts(self, tmp_path):
        queue = OfflineQueue(tmp_path / "q.jsonl")
        op = _enqueue_set(queue, 1)
        queue.mark(op.id, OperationState.APPLYING)
        queue.mark(op.id, OperationState.FAILED_RETRYABLE, error="timeout")
        queue.mark(op.id, OperationState.APPLYING)

        stored = queue.peek()
        assert stored.attempts == 2
        assert stored.last_error == "timeout"
        assert stored.state == OperationState.APPLYING

    def test_unknown_ids(self, tmp_path):
        queue = OfflineQueue(tmp_path / "q.jsonl")
        with pytest.raises(KeyError):
            queue.mark("missing", OperationState.APPLYING)
        with pytest.raises(KeyError):
            queue.remove("missing")

    def test_remove_keeps_order(self, tmp_path):
        queue = OfflineQueue(tmp_path / "q.jsonl")
        a = _enqueue_set(queue, 1)
        b = _enqueue_set(queue, 2)
        c = _enqueue_finalize(queue)
        queue.remove(b.id)
        assert [op.id for op in queue.list_operations()] == [a.id, c.id]

    def test_corrupt_line_reports_location(self, tmp_path):
        path = tmp_path / "q.jsonl"
        _enqueue_set(OfflineQueue(path), 1)
        with open(path, "a") as f:
            f.write("{not json\n")
        with pytest.raises(ValidationError, match=r"q\.jsonl:2"):
            OfflineQueue(path).size()

    def test_missing_file_is_empty(self, tmp_path):
        queue = OfflineQueue(tmp_path / "nested" / "q.jsonl")
        assert queue.size() == 0
        assert queue.peek() is None


# ===========================================================================
# Replay
# ===========================================================================

class TestSync:
    @pytest.mark.asyncio
    async def test_two_queued_sets_reach_remote(self, tmp_path):
        # Offline: 2 x (80 kg x 5) logged, then the network returns
        remote = await _remote_with_item()
        queue = OfflineQueue(tmp_path / "q.jsonl")
        _enqueue_set(queue, 1)
        _enqueue_set(queue, 2)
        events = MemoryEventLog()

        result = await sync_offline_queue(queue, remote, StaticProbe(True), events)

        assert (result.applied, result.failed, result.remaining) == (2, 0, 0)
        assert [(s.index, s.weight_kg, s.reps) for s in remote.items["s1-1"].performed_sets] == [
            (1, 80, 5),
            (2, 80, 5),
        ]
        assert events.events == [("training_sync_completed", {"applied": 2, "failed": 0, "remaining": 0})]

    @pytest.mark.asyncio
    async def test_offline_is_a_no_op(self, tmp_path):
        remote = await _remote_with_item()
        queue = OfflineQueue(tmp_path / "q.jsonl")
        _enqueue_set(queue, 1)
        calls_before = len(remote.calls)

        result = await sync_offline_queue(queue, remote, StaticProbe(False))

        assert result.offline
        assert result.remaining == 1
        assert len(remote.calls) == calls_before
        assert queue.peek().state == OperationState.QUEUED

    @pytest.mark.asyncio
    async def test_replay_is_idempotent(self, tmp_path):
        remote = await _remote_with_item()
        first = OfflineQueue(tmp_path / "a.jsonl")
        second = OfflineQueue(tmp_path / "b.jsonl")
        for queue in (first, second):
            _enqueue_set(queue, 1)
            _enqueue_finalize(queue)

        await sync_offline_queue(first, remote, StaticProbe(True))
        result = await sync_offline_queue(second, remote, StaticProbe(True))

        # The repeated finalize is reported as already applied and dropped
        assert result.applied == 2
        assert second.size() == 0
        assert len(remote.items["s1-1"].performed_sets) == 1
        assert remote.sessions["s1"].ended_at == "2026-03-02T19:00:00+00:00"

    @pytest.mark.asyncio
    async def test_transient_failure_halts_and_keeps_order(self, tmp_path):
        remote = await _remote_with_item()
        queue = OfflineQueue(tmp_path / "q.jsonl")
        _enqueue_set(queue, 1)
        failing = _enqueue_set(queue, 2)
        _enqueue_finalize(queue)

        original_insert = remote.insert_set_log
        calls = {"n": 0}

        async def flaky_insert(item_id, performed):
            calls["n"] += 1
            if calls["n"] == 2:
                raise TransientRemoteError("503")
            await original_insert(item_id, performed)

        remote.insert_set_log = flaky_insert
        result = await sync_offline_queue(queue, remote, StaticProbe(True))

        assert (result.applied, result.failed, result.remaining) == (1, 1, 2)
        assert result.halted
        head = queue.peek()
        assert head.id == failing.id
        assert head.state == OperationState.FAILED_RETRYABLE
        assert head.attempts == 1
        assert queue.pending_keys()[-1] == "finalize_session:s1"
        assert remote.sessions["s1"].ended_at is None

        # Next drain picks up where the last one stopped
        result = await sync_offline_queue(queue, remote, StaticProbe(True))
        assert result.applied == 2
        assert queue.size() == 0
        assert remote.sessions["s1"].ended_at is not None

    @pytest.mark.asyncio
    async def test_permanent_failure_marks_failed(self, tmp_path):
        remote = await _remote_with_item()
        queue = OfflineQueue(tmp_path / "q.jsonl")
        _enqueue_set(queue, 1, item_id="unknown-item")
        _enqueue_set(queue, 1)

        result = await sync_offline_queue(queue, remote, StaticProbe(True))

        assert result.failed == 1
        assert result.remaining == 2
        assert queue.peek().state == OperationState.FAILED
        assert "unknown-item" in result.errors[0]

    @pytest.mark.asyncio
    async def test_malformed_payload(self, tmp_path):
        remote = await _remote_with_item()
        queue = OfflineQueue(tmp_path / "q.jsonl")
        queue.enqueue(OperationType.UPSERT_ITEM, "s1-1", {"item_id": "s1-1"})

        result = await sync_offline_queue(queue, remote, StaticProbe(True))

        assert result.failed == 1
        assert queue.peek().state == OperationState.FAILED
        assert "changes" in queue.peek().last_error

    @pytest.mark.asyncio
    async def test_apply_upsert_item(self, tmp_path):
        remote = await _remote_with_item()
        queue = OfflineQueue(tmp_path / "q.jsonl")
        op = queue.enqueue(
            OperationType.UPSERT_ITEM, "s1-1", {"item_id": "s1-1", "changes": {"skipped": True}}, "skipped"
        )
        await apply_operation(remote, op)
        assert remote.items["s1-1"].skipped

    @pytest.mark.asyncio
    async def test_file_remote_persists_replayed_state(self, tmp_path):
        path = tmp_path / "remote.json"
        remote = await _remote_with_item(FileRemoteStore(path))
        queue = OfflineQueue(tmp_path / "q.jsonl")
        _enqueue_set(queue, 1)
        await sync_offline_queue(queue, remote, StaticProbe(True))

        reloaded = FileRemoteStore(path)
        assert reloaded.items["s1-1"].performed_sets[0].reps == 5
        assert json.loads(path.read_text())["sessions"][0]["id"] == "s1"


# ===========================================================================
# Connectivity
# ===========================================================================

class TestConnectivityMonitor:
    @pytest.mark.asyncio
    async def test_triggers_on_each_reconnect(self):
        probe = StaticProbe(False)
        fired = []

        async def on_available():
            fired.append(probe.available)

        monitor = ConnectivityMonitor(probe, on_available, interval=0.01)
        monitor.start()
        await asyncio.sleep(0.03)
        assert fired == []

        probe.available = True
        await asyncio.sleep(0.03)
        assert monitor.triggers == 1

        probe.available = False
        await asyncio.sleep(0.03)
        probe.available = True
        await asyncio.sleep(0.03)
        await monitor.stop()

        assert monitor.triggers == 2
        assert fired == [True, True]
        assert not monitor.running

    @pytest.mark.asyncio
    async def test_handler_failure_keeps_monitor_alive(self):
        probe = StaticProbe(True)

        async def boom():
            raise RuntimeError("sync blew up")

        monitor = ConnectivityMonitor(probe, boom, interval=0.01)
        monitor.start()
        await asyncio.sleep(0.03)
        assert monitor.running
        await monitor.stop()
        assert monitor.triggers == 1

    @pytest.mark.asyncio
    async def test_reconnect_drains_queue(self, tmp_path):
        remote = await _remote_with_item()
        queue = OfflineQueue(tmp_path / "q.jsonl")
        _enqueue_set(queue, 1)
        probe = StaticProbe(True)

        async def drain():
            await sync_offline_queue(queue, remote, probe)

        monitor = ConnectivityMonitor(probe, drain, interval=0.01)
        monitor.start()
        await asyncio.sleep(0.05)
        await monitor.stop()
        assert queue.size() == 0


class TestTcpProbe:
    def test_open_port(self):
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        try:
            port = server.getsockname()[1]
            assert TcpProbe("127.0.0.1", port, timeout=1.0).is_network_available()
        finally:
            server.close()

    def test_closed_port(self):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
        sock.close()
        assert not TcpProbe("127.0.0.1", port, timeout=0.5).is_network_available()


# ===========================================================================
# Retry
# ===========================================================================

class TestCallWithRetry:
    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self):
        attempts = []

        async def flaky(value):
            attempts.append(value)
            if len(attempts) < 3:
                raise TransientRemoteError("timeout")
            return value * 2

        assert await call_with_retry(flaky, 21, max_attempts=3, min_wait=0, max_wait=0) == 42
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        async def down():
            raise TransientRemoteError("still down")

        with pytest.raises(TransientRemoteError):
            await call_with_retry(down, max_attempts=2, min_wait=0, max_wait=0)

    @pytest.mark.asyncio
    async def test_permanent_not_retried(self):
        attempts = []

        async def rejected():
            attempts.append(1)
            raise PermanentRemoteError("bad payload")

        with pytest.raises(PermanentRemoteError):
            await call_with_retry(rejected, max_attempts=5, min_wait=0, max_wait=0)
        assert attempts == [1]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_attempts": 0},
            {"min_wait": -1},
            {"min_wait": 5, "max_wait": 1},
        ],
    )
    async def test_invalid_parameters(self, kwargs):
        async def ok():
            return 1

        with pytest.raises(ValueError):
            await call_with_retry(ok, **kwargs)
