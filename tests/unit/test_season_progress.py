"""
Unit Tests for Season Progress

Tests the countdown tracker and the Supabase/file/memory progress store.
"""

import pytest
import sys
import os
import json

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "shadowing_tutor", "src"))

from shadowing_tutor.collaborators import ProgressStore
from shadowing_tutor.progress_store import PROGRESS_TABLE, SeasonProgressStore
from shadowing_tutor.season_progress import SeasonProgressTracker
from shadowing_tutor.tutor_state import ProgressSnapshot


class FakeQuery:
    """Chainable stand-in for a Supabase table query."""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.action = None
        self.payload = None
        self.filters = {}

    def upsert(self, data, on_conflict=None):
        self.action = "upsert"
        self.payload = data
        self.db.conflict_keys.append(on_conflict)
        return self

    def select(self, columns):
        self.action = "select"
        return self

    def delete(self):
        self.action = "delete"
        return self

    def eq(self, column, value):
        self.filters[column] = value
        return self

    def execute(self):
        if self.db.fail:
            raise RuntimeError("connection refused")
        rows = self.db.rows.setdefault(self.table, {})
        if self.action == "upsert":
            rows[self.payload["learner_id"]] = dict(self.payload)
            return type("Result", (), {"data": [self.payload]})()
        if self.action == "select":
            row = rows.get(self.filters.get("learner_id"))
            return type("Result", (), {"data": [row] if row else []})()
        if self.action == "delete":
            rows.pop(self.filters.get("learner_id"), None)
            return type("Result", (), {"data": []})()
        raise AssertionError(f"unexpected action {self.action}")


class FakeSupabase:
    def __init__(self, fail=False):
        self.fail = fail
        self.rows = {}
        self.conflict_keys = []

    def table(self, name):
        return FakeQuery(self, name)


class TestSeasonProgressTracker:
    """Test suite for SeasonProgressTracker."""

    @pytest.fixture
    def tracker(self):
        return SeasonProgressTracker(SeasonProgressStore(), max_retries=3)

    def test_initialize(self, tracker):
        tracker.initialize(1, 5)
        assert tracker.season_index == 1
        assert tracker.announced_total == 5
        assert tracker.remaining == 5
        assert tracker.retry_count == 0
        assert tracker.can_start_new_expression()

    def test_complete_expression_counts_down(self, tracker):
        tracker.initialize(0, 2)
        assert tracker.complete_expression() is True
        assert tracker.remaining == 1
        assert tracker.complete_expression() is False
        assert tracker.remaining == 0
        assert not tracker.can_start_new_expression()

    def test_complete_expression_floors_at_zero(self, tracker):
        tracker.initialize(0, 0)
        assert tracker.complete_expression() is False
        assert tracker.remaining == 0

    def test_retry_cap(self, tracker):
        tracker.initialize(0, 3)
        assert tracker.increment_retry() is False
        assert tracker.increment_retry() is False
        assert tracker.increment_retry() is True
        tracker.complete_expression()
        assert tracker.retry_count == 0

    def test_reset_retry(self, tracker):
        tracker.initialize(0, 3)
        tracker.increment_retry()
        tracker.reset_retry()
        assert tracker.retry_count == 0

    def test_every_change_is_persisted(self, tracker):
        tracker.initialize(2, 4)
        tracker.complete_expression()
        tracker.mark_expression(1)

        snapshot = tracker.store.load()
        assert snapshot.season_id == 2
        assert snapshot.remaining == 3
        assert snapshot.expression_index == 1

    def test_try_restore_only_half_finished_seasons(self, tracker):
        tracker.initialize(0, 3)
        assert tracker.try_restore() is None  # Nothing done yet

        tracker.complete_expression()
        snapshot = tracker.try_restore()
        assert snapshot is not None
        assert snapshot.remaining == 2

        tracker.complete_expression()
        tracker.complete_expression()
        assert tracker.try_restore() is None  # Season finished

    def test_initialize_keeps_order(self, tracker):
        tracker.initialize(0, 2, ["감사합니다", "안녕하세요"])
        tracker.complete_expression()

        snapshot = tracker.try_restore()
        assert snapshot.expression_order == ["감사합니다", "안녕하세요"]
        assert tracker.progress.completed == 1

    def test_resume(self, tracker):
        tracker.resume(ProgressSnapshot(season_id=1, announced_total=5, remaining=2, expression_index=3))
        assert tracker.season_index == 1
        assert tracker.remaining == 2
        assert tracker.progress.expression_index == 3
        assert tracker.progress.completed == 3

    def test_clear(self, tracker):
        tracker.initialize(0, 3)
        tracker.complete_expression()
        tracker.clear()
        assert tracker.remaining == 0
        assert tracker.store.load() is None


class TestSeasonProgressStore:
    """Test suite for SeasonProgressStore backends."""

    def test_satisfies_progress_store_protocol(self, tmp_path):
        assert isinstance(SeasonProgressStore(), ProgressStore)
        assert isinstance(SeasonProgressStore(file_path=tmp_path / "p.json"), ProgressStore)

    def test_tracker_accepts_any_progress_store(self):
        class ListStore:
            def __init__(self):
                self.saved = []

            def save(self, snapshot):
                self.saved.append(snapshot)
                return True

            def load(self):
                return self.saved[-1] if self.saved else None

            def clear(self):
                self.saved.clear()
                return True

        store = ListStore()
        tracker = SeasonProgressTracker(store)
        tracker.initialize(0, 2, ["네", "아니요"])
        tracker.complete_expression()

        assert isinstance(store, ProgressStore)
        assert store.saved[-1].remaining == 1
        assert tracker.try_restore().expression_order == ["네", "아니요"]

    def test_memory_store(self):
        store = SeasonProgressStore()
        assert store.load() is None
        assert store.save(ProgressSnapshot(season_id=0, announced_total=5, remaining=4))
        assert store.load().remaining == 4
        store.clear()
        assert store.load() is None

    def test_file_store_round_trip(self, tmp_path):
        path = tmp_path / "progress" / "season.json"
        store = SeasonProgressStore(file_path=path, learner_id="minji")

        assert store.load() is None
        assert store.save(ProgressSnapshot(
            season_id=1, announced_total=5, remaining=3, expression_index=2, expression_order=["네", "아니요"],
        ))

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["learner_id"] == "minji"
        assert data["remaining"] == 3

        reloaded = SeasonProgressStore(file_path=path, learner_id="minji").load()
        assert reloaded.season_id == 1
        assert reloaded.expression_index == 2
        assert reloaded.expression_order == ["네", "아니요"]

        assert store.clear()
        assert not path.exists()

    def test_unreadable_file(self, tmp_path):
        path = tmp_path / "season.json"
        path.write_text("{not json", encoding="utf-8")
        assert SeasonProgressStore(file_path=path).load() is None

    def test_supabase_store(self):
        client = FakeSupabase()
        store = SeasonProgressStore(supabase_client=client, learner_id="minji")

        assert store.save(ProgressSnapshot(season_id=0, announced_total=5, remaining=4))
        assert client.conflict_keys == ["learner_id"]
        assert client.rows[PROGRESS_TABLE]["minji"]["remaining"] == 4

        snapshot = store.load()
        assert snapshot.remaining == 4
        assert snapshot.learner_id == "minji"

        assert store.clear()
        assert store.load() is None

    def test_supabase_errors_fall_back_to_memory(self):
        store = SeasonProgressStore(supabase_client=FakeSupabase(fail=True))

        assert store.save(ProgressSnapshot(season_id=0, announced_total=5, remaining=2)) is False
        assert store.load().remaining == 2
        assert store.clear() is False
        assert store.load() is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
