"""Tests for the contiguous-prefix checkpoint store."""

import itertools
import json
import os

import pytest

from utils.checkpoint import CheckpointStore
from utils.errors import CheckpointError


@pytest.fixture
def progress_path(tmp_path):
    return tmp_path / "reports.csv.progress"


def stored_frontier(path) -> int:
    return json.loads(path.read_text())["last_completed_page"]


class TestLoad:
    def test_fresh_store_starts_at_zero(self, progress_path, events) -> None:
        store = CheckpointStore(progress_path, events)

        assert store.load() == 0
        assert store.next_page() == 1
        assert not progress_path.exists()

    def test_loads_persisted_frontier(self, progress_path, events) -> None:
        progress_path.write_text('{"last_completed_page": 7, "updated_at": "2025-01-01T00:00:00Z"}')
        store = CheckpointStore(progress_path, events)

        assert store.load() == 7
        assert store.next_page() == 8
        assert events.of("checkpoint_loaded") == [{"frontier": 7, "resume_from": 8}]

    def test_corrupt_file_raises(self, progress_path, events) -> None:
        progress_path.write_text("{not json")

        with pytest.raises(CheckpointError):
            CheckpointStore(progress_path, events).load()

    def test_negative_frontier_rejected(self, progress_path, events) -> None:
        progress_path.write_text('{"last_completed_page": -1}')

        with pytest.raises(CheckpointError):
            CheckpointStore(progress_path, events).load()

    def test_load_resets_in_memory_completions(self, progress_path, events) -> None:
        store = CheckpointStore(progress_path, events)
        store.load()
        store.mark_complete(3)

        store.load()

        assert store.completed == frozenset()


class TestMarkComplete:
    def test_out_of_order_completion_waits_for_gap(self, progress_path, events) -> None:
        store = CheckpointStore(progress_path, events)
        store.load()

        assert store.mark_complete(2) == 0
        assert not progress_path.exists()

        assert store.mark_complete(1) == 2
        assert stored_frontier(progress_path) == 2

        assert store.mark_complete(3) == 3
        assert stored_frontier(progress_path) == 3

    @pytest.mark.parametrize("order", list(itertools.permutations([1, 2, 3, 4])))
    def test_final_frontier_independent_of_order(self, progress_path, events, order) -> None:
        store = CheckpointStore(progress_path, events)
        store.load()

        for page in order:
            store.mark_complete(page)

        assert store.current_frontier() == 4
        assert stored_frontier(progress_path) == 4

    def test_frontier_stops_before_missing_page(self, progress_path, events) -> None:
        store = CheckpointStore(progress_path, events)
        store.load()

        for page in (1, 2, 4, 5, 6):
            store.mark_complete(page)

        assert store.current_frontier() == 2
        assert stored_frontier(progress_path) == 2
        assert store.completed == {1, 2, 4, 5, 6}

    def test_persists_only_when_frontier_moves(self, progress_path, events) -> None:
        store = CheckpointStore(progress_path, events)
        store.load()

        store.mark_complete(3)
        store.mark_complete(2)
        store.mark_complete(1)

        assert events.of("checkpoint_advanced") == [{"previous": 0, "frontier": 3}]

    def test_resumed_store_continues_from_loaded_frontier(self, progress_path, events) -> None:
        progress_path.write_text('{"last_completed_page": 5}')
        store = CheckpointStore(progress_path, events)
        store.load()

        assert store.mark_complete(7) == 5
        assert store.mark_complete(6) == 7
        assert stored_frontier(progress_path) == 7

    def test_rejects_non_positive_pages(self, progress_path, events) -> None:
        store = CheckpointStore(progress_path, events)

        with pytest.raises(ValueError):
            store.mark_complete(0)

    def test_no_temp_file_left_behind(self, progress_path, events) -> None:
        store = CheckpointStore(progress_path, events)
        store.load()
        store.mark_complete(1)

        assert sorted(os.listdir(progress_path.parent)) == [progress_path.name]

    def test_write_failure_raises_and_keeps_old_frontier(self, progress_path, events, monkeypatch) -> None:
        store = CheckpointStore(progress_path, events)
        store.load()
        store.mark_complete(1)

        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", broken_replace)

        with pytest.raises(CheckpointError):
            store.mark_complete(2)

        assert store.current_frontier() == 1
        assert stored_frontier(progress_path) == 1

