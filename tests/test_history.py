"""Tests for the bounded sync history ledger"""

import dataclasses
import json

import pytest

from netclock.time.history import Delta, ErrorRecord, HistoryLedger
from netclock.time.rotation import Server


SERVER = Server("a.example")


def _error(n: int) -> ErrorRecord:
    return ErrorRecord(kind="ExchangeTimeoutError", message=f"timeout {n}", server=SERVER, timestamp_ms=n)


class TestDeltas:
    """Test the successful delta buffer."""

    def test_keeps_last_capacity_in_order(self):
        """Test eviction keeps the newest deltas in order"""
        ledger = HistoryLedger(3, SERVER)
        for i in range(7):
            ledger.record_success(i, 1000 + i, 2000 + i)

        history = ledger.snapshot()
        assert [d.offset_ms for d in history.deltas] == [4, 5, 6]
        assert history.deltas[-1] == Delta(offset_ms=6, server_time_ms=1006)
        assert history.last_sync_time_ms == 2006
        assert history.last_server_time_ms == 1006

    def test_estimate_is_mean(self):
        """Test the estimate is the mean offset"""
        ledger = HistoryLedger(10, SERVER)
        for offset in (100, 200, 300):
            ledger.record_success(offset, 0, 0)
        assert ledger.estimated_offset_ms() == 200

    def test_estimate_empty_is_zero(self):
        """Test the estimate is zero with no deltas"""
        assert HistoryLedger(10, SERVER).estimated_offset_ms() == 0

    @pytest.mark.parametrize(
        "offsets, expected",
        [
            ([1, 2], 2),
            ([-1, -2], -1),
            ([10, 11, 11], 11),
            ([-5], -5),
        ],
    )
    def test_estimate_rounds_half_up(self, offsets, expected):
        """Test rounding of fractional means"""
        ledger = HistoryLedger(10, SERVER)
        for offset in offsets:
            ledger.record_success(offset, 0, 0)
        assert ledger.estimated_offset_ms() == expected

    def test_estimate_only_uses_retained(self):
        """Test evicted deltas no longer count"""
        ledger = HistoryLedger(2, SERVER)
        for offset in (1000, 10, 20):
            ledger.record_success(offset, 0, 0)
        assert ledger.estimated_offset_ms() == 15


class TestErrors:
    """Test error recording and counters."""

    def test_failure_counters(self):
        """Test counters after consecutive failures"""
        ledger = HistoryLedger(10, SERVER)
        ledger.record_failure(_error(1))
        ledger.record_failure(_error(2))

        history = ledger.snapshot()
        assert history.is_in_error_state
        assert history.current_consecutive_error_count == 2
        assert history.max_consecutive_error_count == 2
        assert history.lifetime_error_count == 2
        assert history.last_error == _error(2)

    def test_success_resets_current_but_not_max(self):
        """Test success resets the current run but not the max"""
        ledger = HistoryLedger(10, SERVER)
        for i in range(3):
            ledger.record_failure(_error(i))
        ledger.record_success(5, 0, 0)

        history = ledger.snapshot()
        assert not history.is_in_error_state
        assert history.current_consecutive_error_count == 0
        assert history.max_consecutive_error_count == 3
        assert history.lifetime_error_count == 3

        ledger.record_failure(_error(9))
        history = ledger.snapshot()
        assert history.current_consecutive_error_count == 1
        assert history.max_consecutive_error_count == 3
        assert history.lifetime_error_count == 4

    def test_errors_are_bounded(self):
        """Test the error buffer evicts oldest first"""
        ledger = HistoryLedger(2, SERVER)
        for i in range(5):
            ledger.record_failure(_error(i))
        history = ledger.snapshot()
        assert [e.timestamp_ms for e in history.errors] == [3, 4]
        assert history.lifetime_error_count == 5


class TestSnapshot:
    """Test history snapshots."""

    def test_initial_state(self):
        """Test snapshot of a fresh ledger"""
        history = HistoryLedger(10, SERVER).snapshot()
        assert history.current_server == SERVER
        assert history.deltas == ()
        assert history.errors == ()
        assert history.last_sync_time_ms is None
        assert history.last_server_time_ms is None
        assert history.last_error is None
        assert not history.is_in_error_state

    def test_snapshot_is_independent(self):
        """Test later records do not change an earlier snapshot"""
        ledger = HistoryLedger(10, SERVER)
        ledger.record_success(1, 2, 3)
        before = ledger.snapshot()

        ledger.record_success(4, 5, 6)
        ledger.record_failure(_error(7))

        assert len(before.deltas) == 1
        assert before.errors == ()
        assert before.lifetime_error_count == 0

    def test_snapshot_cannot_be_mutated(self):
        """Test snapshots are read-only"""
        ledger = HistoryLedger(10, SERVER)
        ledger.record_success(1, 2, 3)
        history = ledger.snapshot()

        with pytest.raises(dataclasses.FrozenInstanceError):
            history.lifetime_error_count = 99
        with pytest.raises(AttributeError):
            history.deltas.append(Delta(0, 0))

    def test_as_dict_is_json_ready(self):
        """Test as_dict output is JSON serializable and detached"""
        ledger = HistoryLedger(10, SERVER)
        ledger.record_success(1, 2, 3)
        ledger.record_failure(_error(4))

        data = ledger.snapshot().as_dict()
        data["deltas"].clear()
        assert len(ledger.snapshot().deltas) == 1

        decoded = json.loads(json.dumps(data))
        assert decoded["current_server"] == {"host": "a.example", "port": 123}
        assert decoded["last_error"]["kind"] == "ExchangeTimeoutError"


def test_capacity_must_be_positive():
    """Test zero capacity is rejected"""
    with pytest.raises(ValueError):
        HistoryLedger(0, SERVER)
