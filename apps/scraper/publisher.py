"""
Event Publisher for Scraper Service

Publishes scrape completion events to Redis Pub/Sub after a job run has
written its CSV output.

Usage:
    from apps.scraper.publisher import publish_scrape_event

    await publish_scrape_event(job, summary)
"""

import logging

from apps.scraper.pipeline import RunSummary
from utils.config import settings
from utils.mq import RedisPublisher
from utils.schemas import Job, ScrapeEvent

logger = logging.getLogger(__name__)


async def publish_scrape_event(job: Job, summary: RunSummary) -> ScrapeEvent:
    """
    Publish a scrape_completed event for a finished run.

    Args:
        job: Job that produced the output
        summary: Result of the run

    Returns:
        The event that was published

    Raises:
        redis.RedisError: If publishing fails
    """
    event = ScrapeEvent(
        path=job.output_file,
        job=job.name,
        pages=len(summary.completed),
        records=summary.records,
        frontier=summary.frontier,
        failed_pages=sorted(summary.failed + summary.skipped),
    )

    try:
        async with RedisPublisher() as publisher:
            await publisher.publish_event(settings.REDIS_CHANNEL_SCRAPED, event)

        logger.info(
            "Published scrape event",
            extra={
                "channel": settings.REDIS_CHANNEL_SCRAPED,
                "file_path": job.output_file,
                "message_type": event.type,
            },
        )
    except Exception as e:
        logger.error(
            "Failed to publish event",
            extra={
                "channel": settings.REDIS_CHANNEL_SCRAPED,
                "file_path": job.output_file,
                "error": str(e),
            },
        )
        raise

    return event
