"""
Scrape Scheduler - Cron and On-Demand Execution

Runs every configured job in sequence, either once or on a cron schedule
using APScheduler.

Features:
- Cron-based scheduling (configurable via EXTRACT_SCHEDULE_CRON)
- RUN_ONCE mode for immediate execution
- Redis event publishing after each finished job (PUBLISH_EVENTS)
- Graceful shutdown: SIGINT/SIGTERM stop scheduling new pages, pages in
  flight finish and are checkpointed

Usage:
    # Scheduled mode (default)
    python -m apps.scraper

    # Run once and exit
    RUN_ONCE=true python -m apps.scraper
"""

import asyncio
import logging
import os
import signal
import sys
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from apps.scraper.pipeline import RunSummary, ScrapePipeline
from apps.scraper.publisher import publish_scrape_event
from apps.scraper.scrape_job import run_scrape
from utils.config import Settings, load_jobs, settings
from utils.errors import ScraperError
from utils.logging import setup_logging
from utils.schemas import Job

logger = logging.getLogger(__name__)


class ScrapeScheduler:
    """
    Scheduler for periodic or on-demand scrape runs.

    Jobs run one after another on each trigger; a signal stops the job in
    progress at a page boundary and prevents the remaining jobs from starting.
    """

    def __init__(self, jobs: list[Job], run_once: bool = False, config: Optional[Settings] = None) -> None:
        """
        Args:
            jobs: Jobs to run on every trigger, in order
            run_once: If True, run all jobs once and exit
            config: Settings, defaults to the global settings
        """
        self.jobs = jobs
        self.run_once = run_once
        self.config = config or settings
        self.scheduler: AsyncIOScheduler | None = None
        self.shutdown_event = asyncio.Event()
        self.current_pipeline: ScrapePipeline | None = None

        logger.info(
            "ScrapeScheduler initialized",
            extra={
                "run_once": run_once,
                "cron_schedule": self.config.EXTRACT_SCHEDULE_CRON,
                "jobs": [job.name for job in jobs],
            },
        )

    def _track(self, pipeline: ScrapePipeline) -> None:
        self.current_pipeline = pipeline

    async def execute_scrapes(self) -> dict[str, RunSummary]:
        """
        Run every job once, publishing an event after each success.

        A failing job is logged and the remaining jobs still run.

        Returns:
            Summaries of the jobs that finished, keyed by job name

        Raises:
            RuntimeError: If any job failed
        """
        logger.info("Starting scrape execution")
        summaries: dict[str, RunSummary] = {}
        failed: list[str] = []

        for job in self.jobs:
            if self.shutdown_event.is_set():
                logger.info("Shutdown requested, skipping remaining jobs")
                break

            try:
                summary = await run_scrape(job, self.config, on_start=self._track)
                summaries[job.name] = summary

                if self.config.PUBLISH_EVENTS:
                    await publish_scrape_event(job, summary)

            except ScraperError as e:
                failed.append(job.name)
                logger.error(
                    "Scrape job failed",
                    extra={"job": job.name, "error": str(e)},
                    exc_info=True,
                )
            finally:
                self.current_pipeline = None

        # Signal shutdown if run_once mode
        if self.run_once:
            logger.info("RUN_ONCE mode: signaling shutdown")
            self.shutdown_event.set()

        if failed:
            raise RuntimeError(f"Scrape jobs failed: {', '.join(failed)}")

        logger.info("Scrape execution completed successfully", extra={"jobs": list(summaries)})
        return summaries

    def request_shutdown(self) -> None:
        """Stop scheduling new pages and wake the main loop."""
        if self.current_pipeline is not None:
            self.current_pipeline.stop()
        self.shutdown_event.set()

    def setup_signal_handlers(self) -> None:
        """Setup handlers for graceful shutdown on SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum: int, frame: object) -> None:
            logger.info(f"Received signal {signum}, initiating graceful shutdown")
            loop.call_soon_threadsafe(self.request_shutdown)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def start(self) -> None:
        """
        Run all jobs now (RUN_ONCE) or on the cron schedule until a shutdown
        signal arrives.
        """
        self.setup_signal_handlers()

        if self.run_once:
            logger.info("Running in RUN_ONCE mode")
            await self.execute_scrapes()
            return

        logger.info("Running in scheduled mode")

        self.scheduler = AsyncIOScheduler()

        trigger = CronTrigger.from_crontab(self.config.EXTRACT_SCHEDULE_CRON)
        self.scheduler.add_job(
            self.execute_scrapes,
            trigger=trigger,
            id="scrape_job",
            name="Periodic Table Scrape",
            replace_existing=True,
            max_instances=1,
        )

        # Start scheduler first to get next_run_time
        self.scheduler.start()
        job = self.scheduler.get_job("scrape_job")
        next_run = getattr(job, "next_run_time", None)

        logger.info(
            "Scheduled scrape job",
            extra={
                "schedule": self.config.EXTRACT_SCHEDULE_CRON,
                "next_run": str(next_run) if next_run is not None else None,
            },
        )

        await self.shutdown_event.wait()

        logger.info("Shutting down scheduler")
        self.scheduler.shutdown(wait=True)
        logger.info("Scheduler shutdown complete")


async def main() -> None:
    """Main entry point for scheduler."""
    setup_logging(
        level=settings.LOG_LEVEL,
        format_type=settings.LOG_FORMAT,
        output=settings.LOG_OUTPUT,
        log_file=settings.LOG_FILE,
    )
    run_once = os.getenv("RUN_ONCE", "false").lower() in ("true", "1", "yes")

    try:
        jobs = load_jobs(settings.SCRAPE_CONFIG_PATH)
        scheduler = ScrapeScheduler(jobs, run_once=run_once)
        await scheduler.start()
    except Exception as e:
        logger.error("Scheduler failed", extra={"error": str(e)}, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
