"""
Pydantic Schemas - Data Validation Models

Defines the schemas shared across the scraper:
- Job definitions loaded from the job file
- Persisted progress (resume frontier)
- Redis Pub/Sub completion events

Usage:
    from utils.schemas import Job

    job = Job(**raw_job)
    print(job.page_url(3))
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Job(BaseModel):
    """One scrape: a paginated table and where its rows go.

    Validates:
    - csv_headers: non-empty, unique, containing both reserved link columns
    - concurrency: positive integer
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Job name used in logs and events")
    base_url: str = Field(..., min_length=1, description="Unpaginated listing URL")
    output_file: str = Field(..., min_length=1, description="CSV output path")
    csv_headers: tuple[str, ...] = Field(..., description="Ordered column schema")
    concurrency: int = Field(default=5, ge=1, description="Pages in flight")
    view_url_path: str = Field(default="/view/", min_length=1)
    download_url_path: str = Field(default="/download/", min_length=1)
    view_url_header: str = Field(default="view_url")
    download_url_header: str = Field(default="download_url")
    link_base_url: str = Field(..., min_length=1, description="Prefix for relative links")

    @field_validator("csv_headers")
    def validate_headers(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Validate the column list is non-empty and free of duplicates."""
        if not v:
            raise ValueError("csv_headers must not be empty")
        if len(set(v)) != len(v):
            raise ValueError("csv_headers must be unique")
        return v

    @model_validator(mode="after")
    def validate_reserved_columns(self) -> "Job":
        for header in (self.view_url_header, self.download_url_header):
            if header not in self.csv_headers:
                raise ValueError(f"reserved column {header!r} missing from csv_headers")
        return self

    @property
    def progress_file(self) -> str:
        """Checkpoint path kept next to the output file."""
        return f"{self.output_file}.progress"

    def page_url(self, page: int) -> str:
        separator = "&" if "?" in self.base_url else "?"
        return f"{self.base_url}{separator}page={page}"

    def resolve_link(self, href: str) -> str:
        if href.startswith("/"):
            return f"{self.link_base_url.rstrip('/')}{href}"
        return f"{self.link_base_url}{href}"


class ProgressState(BaseModel):
    """Persisted resume frontier.

    last_completed_page is the largest N such that pages 1..N are all written.
    """

    last_completed_page: int = Field(default=0, ge=0)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ScrapeEvent(BaseModel):
    """Redis Pub/Sub event payload.

    Standard format for completed scrape runs:
    {
        "type": "scrape_completed",
        "path": "/data/reports.csv",
        "ts": "2025-01-15T03:15:02Z",
        "job": "reports",
        "pages": 12,
        "records": 240,
        "frontier": 12
    }
    """

    type: str = Field(default="scrape_completed", description="Event type")
    path: str = Field(..., description="Output CSV path")
    ts: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    job: str = Field(..., description="Job name")
    pages: int = Field(default=0, ge=0)
    records: int = Field(default=0, ge=0)
    frontier: int = Field(default=0, ge=0)
    failed_pages: list[int] = Field(default_factory=list)

    def to_message(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
