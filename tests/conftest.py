"""Shared pytest fixtures.

Fixture Categories:
1. Job definitions: job, make_job
2. Telemetry: events (records every emitted event)
3. Timing: fake_sleep (records backoff delays instead of sleeping)
4. Markup builders: table_page, listing_page
"""

import logging
from typing import Any

import pytest

from utils.schemas import Job

BASE_URL = "https://ex.com/reports"
COLUMNS = ("name", "age", "view_url", "download_url")


class RecordingEventSink:
    """EventSink that keeps every event for assertions."""

    def __init__(self) -> None:
        self.events: list[tuple[str, int, dict[str, Any]]] = []

    def emit(self, event: str, level: int = logging.INFO, **fields: Any) -> None:
        self.events.append((event, level, fields))

    def names(self) -> list[str]:
        return [name for name, _, _ in self.events]

    def of(self, event: str) -> list[dict[str, Any]]:
        return [fields for name, _, fields in self.events if name == event]


class FakeSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def make_job(tmp_path):
    def _make(**overrides: Any) -> Job:
        values: dict[str, Any] = {
            "name": "reports",
            "base_url": BASE_URL,
            "output_file": str(tmp_path / "reports.csv"),
            "csv_headers": COLUMNS,
            "concurrency": 2,
            "view_url_path": "/view/",
            "download_url_path": "/download/",
            "view_url_header": "view_url",
            "download_url_header": "download_url",
            "link_base_url": "https://ex.com",
        }
        values.update(overrides)
        return Job(**values)

    return _make


@pytest.fixture
def job(make_job) -> Job:
    return make_job()


def table_page(rows: list[tuple[str, str]], page: int = 1) -> str:
    """A listing page with a header row and one data row per (name, age)."""
    body = "".join(
        f'<tr><td>{name}</td><td>{age}</td>'
        f'<td><a href="/view/{page}-{i}">view</a></td>'
        f'<td><a href="/download/{page}-{i}">get</a></td></tr>'
        for i, (name, age) in enumerate(rows)
    )
    return (
        "<html><body><table>"
        "<tr><th>Name</th><th>Age</th><th>View</th><th>Download</th></tr>"
        f"{body}</table></body></html>"
    )


def listing_page(last_page: int) -> str:
    links = "".join(f'<a href="?page={n}">{n}</a>' for n in range(1, last_page + 1))
    return f'<html><body><table></table><nav class="pagination">{links}</nav></body></html>'
