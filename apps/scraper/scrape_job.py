"""
Scrape Job - Component Wiring for One Run

Builds the fetcher, CSV sink, checkpoint store and pipeline for a job from
settings, runs it, and releases the HTTP client afterwards.

Usage:
    from apps.scraper.scrape_job import run_scrape

    summary = await run_scrape(job)
"""

import logging
from typing import Callable, Optional

from apps.scraper.fetcher import RetryPolicy, RetryingFetcher, build_tls_verify
from apps.scraper.pipeline import RunSummary, ScrapePipeline
from utils.checkpoint import CheckpointStore
from utils.config import Settings, settings as default_settings
from utils.csv_sink import CsvSink
from utils.events import EventSink, LoggingEventSink
from utils.schemas import Job

logger = logging.getLogger(__name__)


def build_fetcher(events: EventSink, config: Settings) -> RetryingFetcher:
    return RetryingFetcher(
        events,
        user_agent=config.USER_AGENT,
        verify=build_tls_verify(config.TLS_VERIFY, config.CA_BUNDLE),
        timeout=config.HTTP_TIMEOUT,
        policy=RetryPolicy(max_retries=config.FETCH_MAX_RETRIES),
    )


def build_pipeline(
    job: Job,
    fetcher: RetryingFetcher,
    events: EventSink,
    fail_fast: bool = False,
) -> ScrapePipeline:
    return ScrapePipeline(
        job,
        fetcher=fetcher,
        sink=CsvSink(job.output_file, job.csv_headers),
        checkpoint=CheckpointStore(job.progress_file, events),
        events=events,
        fail_fast=fail_fast,
    )


async def run_scrape(
    job: Job,
    config: Optional[Settings] = None,
    events: Optional[EventSink] = None,
    on_start: Optional[Callable[[ScrapePipeline], None]] = None,
) -> RunSummary:
    """
    Run one job to completion.

    Args:
        job: Job definition
        config: Settings to build components from, defaults to global settings
        events: Event sink, defaults to a logger scoped to the job
        on_start: Called with the pipeline before it runs (e.g. to keep a
            handle for pause/stop from a signal handler)

    Returns:
        RunSummary of the run

    Raises:
        RunError: If discovery, checkpointing or the sink fails
    """
    config = config or default_settings
    events = events or LoggingEventSink(logging.getLogger(f"scraper.{job.name}"), job=job.name)

    async with build_fetcher(events, config) as fetcher:
        pipeline = build_pipeline(job, fetcher, events, fail_fast=config.FAIL_FAST)
        if on_start is not None:
            on_start(pipeline)
        summary = await pipeline.run()

    logger.info(
        "Scrape job completed",
        extra={
            "job": job.name,
            "output_file": job.output_file,
            "records": summary.records,
            "frontier": summary.frontier,
            "failed_pages": summary.failed,
        },
    )
    return summary
