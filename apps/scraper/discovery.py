"""Page-count discovery: scan the seed page's pagination links."""

import re

from bs4 import BeautifulSoup

from apps.scraper.fetcher import RetryingFetcher
from utils.errors import DiscoveryError, FetchError
from utils.events import EventSink

PAGE_PARAM_RE = re.compile(r"page=(\d+)")


def count_pages(markup: str) -> int:
    """Highest ``page=N`` linked from ``markup``; 1 when there is no pagination."""
    soup = BeautifulSoup(markup, "html.parser")
    highest = 1
    for anchor in soup.find_all("a", href=True):
        match = PAGE_PARAM_RE.search(anchor["href"])
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


async def discover_page_count(fetcher: RetryingFetcher, url: str, events: EventSink) -> int:
    """
    Fetch the unpaginated listing and return its total page count.

    Raises:
        DiscoveryError: If the seed page can't be fetched, returns a non-2xx
            status, or can't be parsed
    """
    try:
        result = await fetcher.fetch(url)
    except FetchError as e:
        raise DiscoveryError(f"Could not fetch seed page {url}: {e}") from e

    if not result.ok:
        raise DiscoveryError(f"Seed page {url} returned HTTP {result.status}")

    try:
        total = count_pages(result.body)
    except Exception as e:
        raise DiscoveryError(f"Could not parse seed page {url}: {e}") from e

    events.emit("page_count_discovered", url=url, total_pages=total)
    return total
