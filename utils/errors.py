"""
Scraper exception hierarchy.

PageError subclasses are isolated to one page task: the page is left
incomplete and the run continues. RunError subclasses stop the run.
"""

from typing import Optional


class ScraperError(Exception):
    """Base class for all scraper failures."""


class PageError(ScraperError):
    """Failure confined to a single page."""


class RunError(ScraperError):
    """Failure that makes the rest of the run unsafe."""


class FetchError(PageError):
    """A fetch that exhausted its retries or hit a terminal transport error."""

    def __init__(self, url: str, message: str, status: Optional[int] = None) -> None:
        super().__init__(f"{message} (url={url})")
        self.url = url
        self.status = status


class ExtractionError(PageError):
    """Markup the tag scanner could not tokenize."""


class DiscoveryError(RunError):
    """Total page count could not be determined."""


class CheckpointError(RunError):
    """Progress could not be read or durably written."""


class SinkError(RunError):
    """Output rows could not be written."""
