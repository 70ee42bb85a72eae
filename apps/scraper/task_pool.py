"""
Task Pool - Bounded-Parallelism Executor with Pause/Resume

Runs at most ``concurrency`` coroutines at once on the current event loop,
drawing from a backlog filled by submit().

- pause() stops dispatching new tasks; running tasks are never cancelled
- resume() re-enables dispatch
- cancel() drops the backlog; running tasks still finish
- await_drained() waits until every queued task has been dispatched
- await_idle() waits until the backlog is empty and nothing is running

A failing task is reported through ``on_error`` and does not affect its
siblings or the pool. Queue transitions are emitted to the event sink for
telemetry only; control flow never depends on them.
"""

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Optional

from utils.events import EventSink

TaskFactory = Callable[[], Awaitable[object]]
ErrorHandler = Callable[[str, BaseException], None]


class TaskPool:
    """Backlog plus a fixed number of execution slots."""

    def __init__(
        self,
        concurrency: int,
        events: EventSink,
        on_error: Optional[ErrorHandler] = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self.concurrency = concurrency
        self.events = events
        self.on_error = on_error
        self._backlog: deque[tuple[str, TaskFactory]] = deque()
        self._running: set[asyncio.Task] = set()
        self._paused = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._drained = asyncio.Event()
        self._drained.set()

    @property
    def size(self) -> int:
        """Tasks waiting in the backlog."""
        return len(self._backlog)

    @property
    def active(self) -> int:
        """Tasks currently running."""
        return len(self._running)

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_idle(self) -> bool:
        return not self._backlog and not self._running

    def submit(self, factory: TaskFactory, label: str = "") -> None:
        """Queue a coroutine factory; it starts as soon as a slot is free."""
        self._backlog.append((label, factory))
        self._idle.clear()
        self._drained.clear()
        self.events.emit(
            "task_added", level=logging.DEBUG, task=label, size=self.size, pending=self.active
        )
        self._dispatch()

    def pause(self) -> None:
        if self._paused:
            return
        self._paused = True
        self.events.emit("scraping_paused", size=self.size, pending=self.active)

    def resume(self) -> None:
        if not self._paused:
            return
        self._paused = False
        self.events.emit("scraping_resumed", size=self.size, pending=self.active)
        self._dispatch()

    def cancel(self) -> int:
        """Drop every queued task. Returns how many were dropped."""
        dropped = len(self._backlog)
        self._backlog.clear()
        self._drained.set()
        if dropped:
            self.events.emit(
                "queue_cancelled", level=logging.WARNING, dropped=dropped, pending=self.active
            )
        self._check_idle()
        return dropped

    async def await_drained(self) -> None:
        """Return once the backlog is empty; tasks may still be running."""
        if not self._backlog:
            return
        await self._drained.wait()

    async def await_idle(self) -> None:
        """Return once the backlog is empty and no task is running."""
        if self.is_idle:
            return
        await self._idle.wait()

    def _dispatch(self) -> None:
        started = False
        while not self._paused and self._backlog and len(self._running) < self.concurrency:
            label, factory = self._backlog.popleft()
            task = asyncio.get_running_loop().create_task(self._run(label, factory))
            self._running.add(task)
            started = True
            self.events.emit(
                "task_active", level=logging.DEBUG, task=label, size=self.size, pending=self.active
            )
        if not self._backlog:
            self._drained.set()
            if started:
                self.events.emit("queue_empty", level=logging.DEBUG)
        self._check_idle()

    async def _run(self, label: str, factory: TaskFactory) -> None:
        try:
            await factory()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            level = logging.DEBUG if self.on_error is not None else logging.ERROR
            self.events.emit("task_error", level=level, task=label, error=str(e))
            if self.on_error is not None:
                self.on_error(label, e)
        else:
            self.events.emit(
                "task_completed",
                level=logging.DEBUG,
                task=label,
                size=self.size,
                pending=self.active - 1,
            )
        finally:
            self._running.discard(asyncio.current_task())
            self._dispatch()

    def _check_idle(self) -> None:
        if self.is_idle and not self._idle.is_set():
            self._idle.set()
            self.events.emit("queue_idle")
