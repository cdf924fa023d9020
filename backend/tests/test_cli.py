from __future__ import annotations

import pytest
from typer.testing import CliRunner

from jobpipe import cli
from jobpipe.core.errors import AdapterFetchError
from jobpipe.crawlers.base import PaginationStrategy, RawListing
from jobpipe.models.deleted_job import DeletedJob
from jobpipe.pipeline.orchestrator import PipelineOrchestrator
from jobpipe.services.announcer import AnnounceResult
from jobpipe.services.notifier import LoggingNotifier
from jobpipe.services.store import Classification

runner = CliRunner()


class _Adapter:
    adapter_name = "fake"
    strategy = PaginationStrategy.PARAM

    def __init__(self, fail: bool = False):
        self.fail = fail

    def fetch_listings(self, config):
        yield RawListing(
            title="Registered Nurse - Telemetry",
            external_id="T1",
            source_url="https://careers.test-health.org/jobs/T1",
            location_text="Boston, MA",
        )
        if self.fail:
            raise AdapterFetchError("boom")


class _Classifier:
    cost_per_call = 0.001

    def classify(self, request):
        return Classification(specialty="Telemetry")


class _Announcer:
    def announce(self, urls):
        return AnnounceResult(submitted=len(urls), batches=1)


@pytest.fixture()
def wired(monkeypatch, session_factory, employer, tmp_path):
    state = {"fail": False}

    def orchestrator(db):
        return PipelineOrchestrator(
            db,
            classifier=_Classifier(),
            announcer=_Announcer(),
            notifier=LoggingNotifier(),
            adapters={"fake": lambda: _Adapter(state["fail"])},
            log_dir=str(tmp_path),
        )

    monkeypatch.setattr(cli, "init_db", lambda: None)
    monkeypatch.setattr(cli, "SessionLocal", session_factory)
    monkeypatch.setattr(cli, "_orchestrator", orchestrator)
    monkeypatch.setattr(cli, "_install_cancel_handler", lambda event: None)
    monkeypatch.setattr(cli.settings, "log_dir", str(tmp_path))
    return state


def test_run_exits_zero_on_success(wired):
    result = runner.invoke(cli.app, ["run", "test-health", "--max-pages", "1"])

    assert result.exit_code == 0
    assert "test-health: Done" in result.output
    assert "activated=1" in result.output


def test_run_exit_code_for_scrape_failure(wired):
    wired["fail"] = True
    result = runner.invoke(cli.app, ["run", "test-health"])
    assert result.exit_code == 2


def test_run_unknown_employer_is_a_usage_error(wired):
    result = runner.invoke(cli.app, ["run", "nobody"])
    assert result.exit_code == 1


def test_run_rejects_non_positive_limits(wired):
    result = runner.invoke(cli.app, ["run", "test-health", "--max-items", "0"])
    assert result.exit_code != 0


def test_tombstone_command(wired, db):
    result = runner.invoke(cli.app, ["tombstone", "rn-icu-boston-ma-1", "--reason", "filled"])

    assert result.exit_code == 0
    assert db.query(DeletedJob).filter(DeletedJob.slug == "rn-icu-boston-ma-1").one().reason == "filled"


def test_employers_command_lists_slugs(wired):
    result = runner.invoke(cli.app, ["employers"])
    assert result.exit_code == 0
    assert "test-health\tfake\tTest Health" in result.output
