"""
Record Extractor - Streaming Table Row Parser

Turns one page of markup into records by driving a single forward pass of
tag events (start tag, text, end tag) over the document. Records are yielded
as soon as their row closes; the markup is fed to the scanner in chunks.

Rules:
- <tr> opens a new record unless its class contains "table-striped"
- <td> opens a text accumulator; </td> assigns the text to the first schema
  column the record doesn't have yet (dropped once the schema is exhausted)
- <a href> starting with the job's view/download path writes the absolute
  link into the reserved column, inside or outside a cell
- </tr> yields the record if it is non-empty

Usage:
    for record in extract_records(html, job):
        sink.write_record(record)
"""

from html.parser import HTMLParser
from typing import Iterator

from bs4 import BeautifulSoup

from utils.errors import ExtractionError
from utils.schemas import Job

Record = dict[str, str]

CHUNK_SIZE = 64 * 1024
STRIPED_ROW_CLASS = "table-striped"
# Content of these elements is never cell text
SKIPPED_TAGS = frozenset({"script", "style"})


def sanitize_text(text: str) -> str:
    """Strip markup (and script/style bodies) that survived entity decoding."""
    if "<" not in text:
        return text
    soup = BeautifulSoup(text, "html.parser")
    for tag in soup(list(SKIPPED_TAGS)):
        tag.decompose()
    return soup.get_text().strip()


class _RowScanner(HTMLParser):
    def __init__(self, job: Job) -> None:
        super().__init__(convert_charrefs=True)
        self.job = job
        self.columns = job.csv_headers
        self._ready: list[Record] = []
        self._row: Record = {}
        self._cell: str | None = None
        self._text_run = ""
        self._skip_depth = 0

    def drain(self) -> list[Record]:
        ready, self._ready = self._ready, []
        return ready

    def handle_starttag(self, tag, attrs):
        self._end_text_run()
        attributes = dict(attrs)
        if tag == "tr":
            if STRIPED_ROW_CLASS not in (attributes.get("class") or ""):
                self._row = {}
        elif tag == "td":
            self._cell = ""
        elif tag in SKIPPED_TAGS:
            self._skip_depth += 1

        if tag == "a" and attributes.get("href"):
            self._assign_link(attributes["href"])

    def handle_endtag(self, tag):
        self._end_text_run()
        if tag == "td":
            self._close_cell()
        elif tag == "tr":
            if self._row:
                self._ready.append(self._row)
                self._row = {}
        elif tag in SKIPPED_TAGS and self._skip_depth:
            self._skip_depth -= 1

    def handle_data(self, data):
        if self._cell is None or self._skip_depth:
            return
        self._text_run += data

    def close(self):
        super().close()
        self._end_text_run()

    def _end_text_run(self) -> None:
        # one text run between two tags, however the feed chunks split it
        text, self._text_run = self._text_run.strip(), ""
        if text and self._cell is not None:
            self._cell += sanitize_text(text)

    def _assign_link(self, href: str) -> None:
        if href.startswith(self.job.view_url_path):
            self._row[self.job.view_url_header] = self.job.resolve_link(href)
        elif href.startswith(self.job.download_url_path):
            self._row[self.job.download_url_header] = self.job.resolve_link(href)

    def _close_cell(self) -> None:
        text, self._cell = self._cell, None
        if text is None:
            return
        column = next((name for name in self.columns if name not in self._row), None)
        if column is not None:
            self._row[column] = text


def _chunks(markup: str, size: int) -> Iterator[str]:
    for start in range(0, len(markup), size):
        yield markup[start:start + size]


def extract_records(markup: str, job: Job, chunk_size: int = CHUNK_SIZE) -> Iterator[Record]:
    """
    Lazily yield the records of one page, in document order.

    Raises:
        ExtractionError: If the scanner fails to tokenize the markup. Records
            yielded before the failure are not retracted.
    """
    scanner = _RowScanner(job)
    for chunk in _chunks(markup, chunk_size):
        try:
            scanner.feed(chunk)
        except Exception as e:
            raise ExtractionError(f"Failed to parse markup: {e}") from e
        yield from scanner.drain()

    try:
        scanner.close()
    except Exception as e:
        raise ExtractionError(f"Failed to parse markup: {e}") from e
    yield from scanner.drain()
