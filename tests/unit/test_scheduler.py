"""Tests for sequential job execution and shutdown handling."""

from unittest.mock import AsyncMock, Mock

import pytest

from apps.scraper import scheduler as scheduler_module
from apps.scraper.pipeline import PipelineState, RunSummary
from apps.scraper.scheduler import ScrapeScheduler
from utils.config import Settings
from utils.errors import DiscoveryError


@pytest.fixture
def jobs(make_job):
    return [make_job(name="first"), make_job(name="second")]


@pytest.fixture
def fake_run_scrape(monkeypatch) -> AsyncMock:
    async def run(job, config=None, events=None, on_start=None):
        return RunSummary(job=job.name, frontier=1, completed=[1], state=PipelineState.CLOSED)

    mock = AsyncMock(side_effect=run)
    monkeypatch.setattr(scheduler_module, "run_scrape", mock)
    return mock


@pytest.fixture
def fake_publish(monkeypatch) -> AsyncMock:
    mock = AsyncMock()
    monkeypatch.setattr(scheduler_module, "publish_scrape_event", mock)
    return mock


class TestExecuteScrapes:
    @pytest.mark.asyncio
    async def test_runs_every_job_in_order(self, jobs, fake_run_scrape, fake_publish) -> None:
        scheduler = ScrapeScheduler(jobs, config=Settings(_env_file=None, PUBLISH_EVENTS=False))

        summaries = await scheduler.execute_scrapes()

        assert list(summaries) == ["first", "second"]
        assert [call.args[0].name for call in fake_run_scrape.await_args_list] == ["first", "second"]
        fake_publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_publishes_when_enabled(self, jobs, fake_run_scrape, fake_publish) -> None:
        scheduler = ScrapeScheduler(jobs, config=Settings(_env_file=None, PUBLISH_EVENTS=True))

        await scheduler.execute_scrapes()

        assert fake_publish.await_count == 2
        job, summary = fake_publish.await_args.args
        assert job.name == "second"
        assert summary.job == "second"

    @pytest.mark.asyncio
    async def test_failed_job_does_not_stop_the_rest(self, jobs, fake_run_scrape, fake_publish) -> None:
        async def run(job, config=None, events=None, on_start=None):
            if job.name == "first":
                raise DiscoveryError("seed page returned HTTP 500")
            return RunSummary(job=job.name)

        fake_run_scrape.side_effect = run
        scheduler = ScrapeScheduler(jobs, config=Settings(_env_file=None))

        with pytest.raises(RuntimeError, match="first"):
            await scheduler.execute_scrapes()

        assert fake_run_scrape.await_count == 2

    @pytest.mark.asyncio
    async def test_run_once_signals_shutdown(self, jobs, fake_run_scrape, fake_publish) -> None:
        scheduler = ScrapeScheduler(jobs, run_once=True, config=Settings(_env_file=None))

        await scheduler.execute_scrapes()

        assert scheduler.shutdown_event.is_set()

    @pytest.mark.asyncio
    async def test_shutdown_skips_remaining_jobs(self, jobs, fake_run_scrape, fake_publish) -> None:
        scheduler = ScrapeScheduler(jobs, config=Settings(_env_file=None))
        scheduler.shutdown_event.set()

        assert await scheduler.execute_scrapes() == {}
        fake_run_scrape.assert_not_awaited()


class TestShutdown:
    def test_request_shutdown_stops_running_pipeline(self, jobs) -> None:
        scheduler = ScrapeScheduler(jobs, config=Settings(_env_file=None))
        pipeline = Mock()
        scheduler.current_pipeline = pipeline

        scheduler.request_shutdown()

        pipeline.stop.assert_called_once_with()
        assert scheduler.shutdown_event.is_set()

    @pytest.mark.asyncio
    async def test_pipeline_tracked_while_running(self, jobs, fake_publish, monkeypatch) -> None:
        seen = []
        pipeline = Mock()

        async def run(job, config=None, events=None, on_start=None):
            on_start(pipeline)
            seen.append(scheduler.current_pipeline)
            return RunSummary(job=job.name)

        monkeypatch.setattr(scheduler_module, "run_scrape", run)
        scheduler = ScrapeScheduler(jobs[:1], config=Settings(_env_file=None))

        await scheduler.execute_scrapes()

        assert seen == [pipeline]
        assert scheduler.current_pipeline is None

    @pytest.mark.asyncio
    async def test_start_in_run_once_mode(self, jobs, fake_run_scrape, fake_publish, monkeypatch) -> None:
        monkeypatch.setattr(ScrapeScheduler, "setup_signal_handlers", lambda self: None)
        scheduler = ScrapeScheduler(jobs, run_once=True, config=Settings(_env_file=None))

        await scheduler.start()

        assert fake_run_scrape.await_count == 2
        assert scheduler.scheduler is None
