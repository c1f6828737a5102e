"""Tests for the audit log and recency index."""

import json
import multiprocessing
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from pydantic import ValidationError
from structlog.testing import capture_logs

from oken.exceptions import AuditError
from oken.history import AuditStore, ConnectionRecord, RecencyIndex

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def record(alias, minutes=0, exit_code=0, duration=1.5):
    return ConnectionRecord(
        alias=alias,
        target=f"{alias}.example",
        started_at=T0 + timedelta(minutes=minutes),
        duration=duration,
        exit_code=exit_code,
    )


def append_many(log_path, index_path, alias, count):
    store = AuditStore(log_path, index_path)
    for i in range(count):
        store.append(record(alias, minutes=i))


@pytest.fixture
def store(paths):
    return AuditStore.from_paths(paths)


class TestConnectionRecord:
    """Record model"""

    def test_negative_duration_rejected(self):
        with pytest.raises(ValidationError):
            record("web", duration=-0.1)

    def test_connection_failure_is_not_connected(self):
        assert record("web", exit_code=0).connected
        assert record("web", exit_code=1).connected
        assert not record("web", exit_code=255).connected

    def test_started_at_defaults_to_now(self):
        rec = ConnectionRecord(alias="a", target="a", duration=0, exit_code=0)
        assert rec.started_at.tzinfo is not None


class TestRecencyIndex:
    """In-memory folding"""

    def test_fold_keeps_latest(self):
        index = RecencyIndex()
        index.fold(record("web", minutes=5))
        index.fold(record("web", minutes=1))

        assert index.latest["web"] == T0 + timedelta(minutes=5)

    def test_fold_skips_connection_failures(self):
        index = RecencyIndex()
        index.fold(record("web", exit_code=255))

        assert index.latest == {}


class TestAuditStoreAppend:
    """Appending records"""

    def test_records_are_kept_in_append_order(self, store):
        """N appends should yield exactly N records in the same order"""
        outcomes = [0, 255, 1, 0, 130]
        for i, code in enumerate(outcomes):
            store.append(record(f"host{i}", minutes=i, exit_code=code))

        records = list(store.records())

        assert [r.exit_code for r in records] == outcomes
        assert [r.alias for r in records] == [f"host{i}" for i in range(5)]
        assert all(r.duration >= 0 for r in records)

    def test_log_is_json_lines(self, store, paths):
        store.append(record("web"))

        lines = paths.audit_log.read_text().splitlines()

        assert len(lines) == 1
        assert json.loads(lines[0])["alias"] == "web"

    def test_append_failure_raises_audit_error(self, store):
        with patch("oken.history.os.fsync", side_effect=OSError("disk full")):
            with pytest.raises(AuditError, match="disk full"):
                store.append(record("web"))

    def test_separate_stores_share_history(self, paths):
        """Independent invocations appending to the same files see each other"""
        first = AuditStore.from_paths(paths)
        second = AuditStore.from_paths(paths)

        first.append(record("a", minutes=1))
        second.append(record("b", minutes=2))
        first.append(record("c", minutes=3))

        assert [r.alias for r in second.records()] == ["a", "b", "c"]
        assert set(first.recency_table()) == {"a", "b", "c"}

    def test_concurrent_processes_append_every_record(self, paths):
        """Appends racing from several processes are neither lost nor torn"""
        aliases = [f"host{i}" for i in range(6)]
        context = multiprocessing.get_context("fork")
        workers = [
            context.Process(
                target=append_many,
                args=(paths.audit_log, paths.recency_index, alias, 25),
            )
            for alias in aliases
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=60)

        assert [w.exitcode for w in workers] == [0] * len(aliases)
        store = AuditStore.from_paths(paths)
        records = list(store.records())
        assert len(records) == 25 * len(aliases)
        assert sorted({r.alias for r in records}) == aliases
        assert set(store.recency_table()) == set(aliases)


class TestRecency:
    """Per-alias recency derived from the log"""

    def test_recency_is_latest_successful_connection(self, store):
        store.append(record("web", minutes=1))
        store.append(record("web", minutes=9, exit_code=255))
        store.append(record("web", minutes=5, exit_code=1))

        assert store.recency("web") == T0 + timedelta(minutes=5)
        assert store.recency("db") is None

    def test_empty_history(self, store):
        assert store.recency_table() == {}
        assert list(store.records()) == []
        assert store.recent(5) == []

    def test_index_is_rebuilt_when_missing(self, store, paths):
        store.append(record("web", minutes=1))
        store.append(record("db", minutes=2))
        paths.recency_index.unlink()

        assert store.recency_table() == {
            "web": T0 + timedelta(minutes=1),
            "db": T0 + timedelta(minutes=2),
        }
        assert paths.recency_index.exists()

    def test_index_is_rebuilt_when_corrupt(self, store, paths):
        store.append(record("web", minutes=1))
        paths.recency_index.write_text("{not json")

        assert store.recency("web") == T0 + timedelta(minutes=1)

    def test_index_is_rebuilt_when_log_shrinks(self, store, paths):
        """A truncated log invalidates the stored offset"""
        store.append(record("web", minutes=1))
        store.append(record("db", minutes=2))
        paths.audit_log.write_text(record("dev").model_dump_json() + "\n")

        assert set(store.recency_table()) == {"dev"}

    def test_unindexed_appends_are_folded_lazily(self, store, paths):
        """Lines written behind the index's back are picked up on read"""
        store.append(record("web", minutes=1))
        with open(paths.audit_log, "a") as f:
            f.write(record("db", minutes=2).model_dump_json() + "\n")

        assert store.recency("db") == T0 + timedelta(minutes=2)
        index = json.loads(paths.recency_index.read_text())
        assert index["offset"] == paths.audit_log.stat().st_size

    def test_partial_trailing_line_is_not_consumed(self, store, paths):
        """An in-progress write must be folded once it is complete"""
        store.append(record("web", minutes=1))
        partial = record("db", minutes=2).model_dump_json()
        with open(paths.audit_log, "a") as f:
            f.write(partial[:10])

        assert "db" not in store.recency_table()

        with open(paths.audit_log, "a") as f:
            f.write(partial[10:] + "\n")

        assert store.recency("db") == T0 + timedelta(minutes=2)

    def test_malformed_lines_are_skipped(self, store, paths):
        paths.data_dir.mkdir(parents=True)
        paths.audit_log.write_text(
            "garbage\n" + record("web", minutes=1).model_dump_json() + "\n"
        )

        with capture_logs() as cap_logs:
            assert store.recency("web") == T0 + timedelta(minutes=1)

        assert any(
            log["event"] == "Skipping malformed audit record" for log in cap_logs
        )


class TestRecent:
    """Newest-first listing"""

    def test_recent_returns_newest_first(self, store):
        for i in range(5):
            store.append(record(f"host{i}", minutes=i))

        assert [r.alias for r in store.recent(3)] == ["host4", "host3", "host2"]

    def test_recent_with_non_positive_count(self, store):
        store.append(record("web"))

        assert store.recent(0) == []
        assert store.recent(-1) == []
