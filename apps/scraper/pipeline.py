"""
Scrape Pipeline - One Job's Resumable Run

State machine:
    INIT -> DISCOVERING -> SCHEDULING -> RUNNING -> DRAINING -> CLOSED
                                                        (FAILED on run errors)

- DISCOVERING: fetch the seed page and read the total page count
- SCHEDULING: load the checkpoint frontier and build one PageTask per page
  above it; pages at or below the frontier are never fetched again
- RUNNING: tasks fetch -> extract -> write -> flush -> mark complete while
  the backlog still holds pages (including while paused)
- DRAINING: every page has been dispatched; wait for the last ones to finish
- CLOSED: the CSV sink is closed

Page-level failures leave that page incomplete for the next run and do not
stop sibling pages (unless fail_fast is set). Run-level failures (discovery,
checkpoint, sink) stop dispatch, let running pages finish, and propagate.
A stop() requested before scheduling means no page is submitted at all.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Optional

from apps.scraper.discovery import discover_page_count
from apps.scraper.extractor import extract_records
from apps.scraper.fetcher import RetryingFetcher
from apps.scraper.task_pool import TaskPool
from utils.checkpoint import CheckpointStore
from utils.csv_sink import CsvSink
from utils.errors import PageError, RunError, ScraperError
from utils.events import EventSink
from utils.schemas import Job


class PipelineState(str, Enum):
    INIT = "init"
    DISCOVERING = "discovering"
    SCHEDULING = "scheduling"
    RUNNING = "running"
    DRAINING = "draining"
    CLOSED = "closed"
    FAILED = "failed"


@dataclass(frozen=True)
class PageTask:
    page: int
    url: str


@dataclass
class RunSummary:
    job: str
    total_pages: int = 0
    frontier: int = 0
    records: int = 0
    scheduled: list[int] = field(default_factory=list)
    completed: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    state: PipelineState = PipelineState.INIT


def build_page_tasks(job: Job, total_pages: int, frontier: int) -> list[PageTask]:
    """One task per page in (frontier, total_pages], in page order."""
    return [PageTask(page=page, url=job.page_url(page)) for page in range(frontier + 1, total_pages + 1)]


class ScrapePipeline:
    """Discover, schedule, fetch/extract/write every page, checkpoint, close."""

    def __init__(
        self,
        job: Job,
        *,
        fetcher: RetryingFetcher,
        sink: CsvSink,
        checkpoint: CheckpointStore,
        events: EventSink,
        fail_fast: bool = False,
    ) -> None:
        self.job = job
        self.fetcher = fetcher
        self.sink = sink
        self.checkpoint = checkpoint
        self.events = events
        self.fail_fast = fail_fast
        self.pool = TaskPool(job.concurrency, events, on_error=self._on_task_error)
        self.summary = RunSummary(job=job.name)
        self._abort: Optional[ScraperError] = None
        self._stopped = False
        self._pages: dict[str, int] = {}

    @property
    def state(self) -> PipelineState:
        return self.summary.state

    def pause(self) -> None:
        self.pool.pause()

    def resume(self) -> None:
        self.pool.resume()

    def stop(self) -> None:
        """Stop scheduling; pages already running finish normally."""
        self._stopped = True
        dropped = self.pool.cancel()
        self.events.emit("run_stopping", level=logging.WARNING, dropped=dropped)

    async def run(self) -> RunSummary:
        """
        Execute the job once.

        Returns:
            RunSummary of the run

        Raises:
            RunError: On discovery, checkpoint or sink failure
            PageError: On the first page failure when fail_fast is set
        """
        self.events.emit("run_started", url=self.job.base_url, output=self.job.output_file)
        try:
            await self._execute()
            if self._abort is not None:
                raise self._abort
        except ScraperError as e:
            self.summary.state = PipelineState.FAILED
            self.summary.frontier = self.checkpoint.current_frontier()
            self.events.emit("run_failed", level=logging.ERROR, error=str(e))
            raise
        finally:
            self.sink.close()

        self.summary.state = PipelineState.CLOSED
        self.summary.frontier = self.checkpoint.current_frontier()
        self.events.emit(
            "run_finished",
            total_pages=self.summary.total_pages,
            completed=len(self.summary.completed),
            failed=len(self.summary.failed),
            skipped=len(self.summary.skipped),
            records=self.summary.records,
            frontier=self.summary.frontier,
        )
        return self.summary

    async def _execute(self) -> None:
        if self._stopped:
            return

        self.summary.state = PipelineState.DISCOVERING
        total_pages = await discover_page_count(self.fetcher, self.job.base_url, self.events)
        self.summary.total_pages = total_pages
        if self._stopped:
            return

        self.summary.state = PipelineState.SCHEDULING
        frontier = self.checkpoint.load()
        tasks = build_page_tasks(self.job, total_pages, frontier)
        self.summary.scheduled = [task.page for task in tasks]
        if frontier:
            self.events.emit(
                "resuming",
                frontier=frontier,
                resume_from=self.checkpoint.next_page(),
                remaining=len(tasks),
                total_pages=total_pages,
            )
        self.sink.open()

        self.summary.state = PipelineState.RUNNING
        for task in tasks:
            label = f"page {task.page}"
            self._pages[label] = task.page
            self.pool.submit(partial(self._scrape_page, task), label=label)
        await self.pool.await_drained()

        self.summary.state = PipelineState.DRAINING
        await self.pool.await_idle()

    async def _scrape_page(self, task: PageTask) -> None:
        result = await self.fetcher.fetch(task.url)
        if not result.ok:
            self.summary.skipped.append(task.page)
            self.events.emit(
                "page_skipped",
                level=logging.WARNING,
                page=task.page,
                url=task.url,
                status=result.status,
            )
            return

        count = 0
        for record in extract_records(result.body, self.job):
            self.sink.write_record(record)
            count += 1
        # rows must be on disk before the frontier can cover this page
        await asyncio.to_thread(self._commit_page, task.page)

        self.summary.completed.append(task.page)
        self.summary.records += count
        self.events.emit("page_succeeded", page=task.page, records=count)

    def _commit_page(self, page: int) -> None:
        self.sink.flush()
        self.checkpoint.mark_complete(page)

    def _on_task_error(self, label: str, error: BaseException) -> None:
        if isinstance(error, RunError):
            self._fail(error)
            return

        page = self._pages[label]
        self.summary.failed.append(page)
        self.events.emit(
            "page_failed",
            level=logging.ERROR,
            page=page,
            error=str(error),
            error_type=type(error).__name__,
        )
        if self.fail_fast and isinstance(error, PageError):
            self._fail(error)

    def _fail(self, error: ScraperError) -> None:
        if self._abort is None:
            self._abort = error
            self.pool.cancel()
