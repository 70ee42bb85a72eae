"""
Configuration Utility - Environment Variables and Job Definitions

Centralized configuration loading from .env files using pydantic-settings,
plus the JSON job file that describes which paginated tables to scrape.

Usage:
    from utils.config import settings, load_jobs

    jobs = load_jobs(settings.SCRAPE_CONFIG_PATH)
    timeout = settings.HTTP_TIMEOUT

Job file format:
    {
        "defaults": {"concurrency": 5, "csv_headers": ["name", "size", ...]},
        "jobs": [
            {"name": "reports", "base_url": "https://ex.com/reports",
             "output_file": "reports.csv"}
        ]
    }
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

import orjson
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

from utils.schemas import Job


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Job definitions
    SCRAPE_CONFIG_PATH: str = Field(default="scrape_jobs.json")
    DATA_DIR: str = Field(default="data")

    # HTTP Configuration
    USER_AGENT: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
        )
    )
    HTTP_TIMEOUT: float = Field(default=30.0, gt=0)
    TLS_VERIFY: bool = Field(default=True)
    CA_BUNDLE: str | None = Field(default=None)
    FETCH_MAX_RETRIES: int = Field(default=3, ge=0)

    # Pipeline behaviour
    FAIL_FAST: bool = Field(default=False)

    # Scheduler Configuration
    EXTRACT_SCHEDULE_CRON: str = Field(default="0 3 * * *")

    # Redis Configuration
    PUBLISH_EVENTS: bool = Field(default=False)
    REDIS_URL: str = Field(default="redis://redis:6379/0")
    REDIS_MAX_CONNECTIONS: int = Field(default=10)
    REDIS_CHANNEL_SCRAPED: str = Field(default="files.scraped_pages")

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="text")
    LOG_OUTPUT: str = Field(default="both")
    LOG_FILE: str = Field(default="scraper.log")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance
    """
    return Settings()


def load_jobs(path: str | Path, data_dir: str | Path | None = None) -> list[Job]:
    """
    Load and validate job definitions from a JSON file.

    Each entry of ``jobs`` is layered over ``defaults``. A relative
    ``output_file`` is resolved against ``data_dir`` (or settings.DATA_DIR).

    Args:
        path: Path to the JSON job file
        data_dir: Directory for relative output files

    Returns:
        Validated jobs in file order

    Raises:
        FileNotFoundError: If the job file doesn't exist
        ValueError: If the file is not valid JSON or a job fails validation
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise FileNotFoundError(f"Job config not found: {config_path}")

    try:
        payload = orjson.loads(config_path.read_bytes())
    except orjson.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in job config {config_path}: {e}") from e

    if isinstance(payload, list):
        payload = {"jobs": payload}
    if not isinstance(payload, dict) or not isinstance(payload.get("jobs"), list):
        raise ValueError(f"Job config {config_path} must contain a 'jobs' list")

    defaults: dict[str, Any] = payload.get("defaults") or {}
    base_dir = Path(data_dir if data_dir is not None else get_settings().DATA_DIR)

    jobs = []
    for index, entry in enumerate(payload["jobs"]):
        merged = {**defaults, **entry}
        merged.setdefault("name", f"job{index + 1}")
        output = merged.get("output_file")
        if output and not Path(output).is_absolute():
            merged["output_file"] = str(base_dir / output)
        try:
            jobs.append(Job(**merged))
        except ValidationError as e:
            raise ValueError(f"Invalid job #{index + 1} in {config_path}: {e}") from e

    if not jobs:
        raise ValueError(f"No jobs defined in {config_path}")
    return jobs


# Global settings instance
settings = get_settings()
