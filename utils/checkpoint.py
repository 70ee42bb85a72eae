"""
Checkpoint Store - Crash-Consistent Resume Frontier

Tracks which pages of a run are complete and persists the contiguous prefix
of completed pages (the frontier) next to the output file.

Pages can finish in any order. Completions beyond a gap are buffered in
memory and only become durable once every page before them is complete, so
after a crash every page <= the stored frontier is done and every page above
it is fetched again.

The progress file is replaced atomically (write temp, fsync, os.replace):
a reader after a crash sees either the old or the new frontier.

Usage:
    store = CheckpointStore(job.progress_file, events)
    frontier = store.load()
    store.mark_complete(2)
"""

import os
import threading
from pathlib import Path

from pydantic import ValidationError

from utils.errors import CheckpointError
from utils.events import EventSink
from utils.schemas import ProgressState


class CheckpointStore:
    """Contiguous-prefix progress tracker backed by a JSON file."""

    def __init__(self, path: str | Path, events: EventSink) -> None:
        self.path = Path(path)
        self.events = events
        self._lock = threading.Lock()
        self._completed: set[int] = set()
        self._frontier = 0

    def load(self) -> int:
        """
        Read the persisted frontier and reset in-memory completions.

        Returns:
            Last contiguous completed page (0 when no progress file exists)

        Raises:
            CheckpointError: If the file exists but can't be read or parsed
        """
        with self._lock:
            self._completed = set()
            self._frontier = 0
            if self.path.exists():
                try:
                    state = ProgressState.model_validate_json(self.path.read_bytes())
                except (OSError, ValidationError) as e:
                    raise CheckpointError(f"Unreadable progress file {self.path}: {e}") from e
                self._frontier = state.last_completed_page

        if self._frontier:
            self.events.emit(
                "checkpoint_loaded",
                frontier=self._frontier,
                resume_from=self._frontier + 1,
            )
        return self._frontier

    def next_page(self) -> int:
        """First page not covered by the frontier (1 on a fresh run)."""
        return self.current_frontier() + 1

    def current_frontier(self) -> int:
        with self._lock:
            return self._frontier

    @property
    def completed(self) -> frozenset[int]:
        """Pages completed during this run, including ones beyond a gap."""
        with self._lock:
            return frozenset(self._completed)

    def mark_complete(self, page: int) -> int:
        """
        Record a finished page and advance the frontier over any closed gap.

        Persists only when the frontier actually moves.

        Args:
            page: 1-based page index whose rows are durably written

        Returns:
            Frontier after this completion

        Raises:
            CheckpointError: If the new frontier can't be persisted
        """
        if page < 1:
            raise ValueError(f"Page index must be >= 1, got {page}")

        with self._lock:
            self._completed.add(page)
            previous = self._frontier
            frontier = previous
            while frontier + 1 in self._completed:
                frontier += 1
            if frontier == previous:
                return frontier
            self._persist(frontier)
            self._frontier = frontier

        self.events.emit("checkpoint_advanced", previous=previous, frontier=frontier)
        return frontier

    def _persist(self, frontier: int) -> None:
        state = ProgressState(last_completed_page=frontier)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "wb") as f:
                f.write(state.model_dump_json().encode("utf-8"))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise CheckpointError(f"Failed to persist frontier {frontier} to {self.path}: {e}") from e
