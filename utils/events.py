"""
Event Sink - Structured Run Telemetry

Components receive an EventSink at construction instead of reaching for a
module-level logger. One sink instance is created per run.

Usage:
    from utils.events import LoggingEventSink

    events = LoggingEventSink(get_logger("scraper.reports"), job="reports")
    events.emit("page_succeeded", page=3, records=20)
"""

import logging
from typing import Any, Protocol


class EventSink(Protocol):
    """Anything that accepts named events with structured fields."""

    def emit(self, event: str, level: int = logging.INFO, **fields: Any) -> None:
        ...


class LoggingEventSink:
    """Forward events to a logger, fields attached through ``extra``.

    ``context`` fields (e.g. the job name) are merged into every event.
    """

    def __init__(self, logger: logging.Logger, **context: Any) -> None:
        self.logger = logger
        self.context = context

    def emit(self, event: str, level: int = logging.INFO, **fields: Any) -> None:
        extra = {**self.context, **fields, "event": event}
        if fields:
            details = ", ".join(f"{key}={value}" for key, value in fields.items())
            message = f"{event}: {details}"
        else:
            message = event
        self.logger.log(level, message, extra=extra)
