"""Command-line entry point.

    jobpipe run EMPLOYER_SLUG [--max-pages N] [--max-items N]
    jobpipe classify EMPLOYER_SLUG
    jobpipe tombstone JOB_SLUG --reason TEXT
    jobpipe employers

``run`` exits 0 on success, 1 on usage errors or an unknown employer,
2 when scraping failed and 3 when classification failed.
"""
from __future__ import annotations

import logging
import signal
import threading
from typing import Optional

import typer

from jobpipe.core.config import settings
from jobpipe.core.errors import UnknownEmployer
from jobpipe.core.logging import setup_logging, stage_log
from jobpipe.db.database import SessionLocal
from jobpipe.db.init_db import init_db
from jobpipe.pipeline.orchestrator import ANNOUNCE_STAGE, CLASSIFY_STAGE, PipelineOrchestrator
from jobpipe.services.announcer import IndexNowAnnouncer
from jobpipe.services.classifier import OpenAIClassificationService
from jobpipe.services.notifier import build_notifier
from jobpipe.services.store import ActivationStore

logger = logging.getLogger(__name__)

app = typer.Typer(help="Nursing job ingestion, classification and activation pipeline")

EXIT_USAGE = 1


def _orchestrator(db) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        db,
        classifier=OpenAIClassificationService(),
        announcer=IndexNowAnnouncer(),
        notifier=build_notifier(),
    )


def _install_cancel_handler(cancel_event: threading.Event) -> None:
    def _handler(signum, _frame):
        logger.warning("received signal %s, cancelling run", signum)
        cancel_event.set()

    signal.signal(signal.SIGTERM, _handler)
    signal.signal(signal.SIGINT, _handler)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")):
    setup_logging("DEBUG" if verbose else settings.log_level)


@app.command()
def run(
    employer: str = typer.Argument(..., help="Employer slug, e.g. cleveland-clinic"),
    max_pages: Optional[int] = typer.Option(None, "--max-pages", min=1, help="Stop after N listing pages"),
    max_items: Optional[int] = typer.Option(None, "--max-items", min=1, help="Stop after N listings"),
):
    """Scrape, classify and announce one employer."""
    init_db()
    cancel_event = threading.Event()
    _install_cancel_handler(cancel_event)
    db = SessionLocal()
    try:
        try:
            record = _orchestrator(db).run(employer, max_pages=max_pages, max_items=max_items, cancel_event=cancel_event)
        except UnknownEmployer as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=EXIT_USAGE)
    finally:
        db.close()

    c = record.counters
    typer.echo(
        f"{record.employer}: {record.state} "
        f"(seen={c.seen} inserted={c.inserted} updated={c.updated} rejected={c.rejected} "
        f"activated={c.activated} failed={c.classify_failed} cost=${c.cost:.4f} announced={c.announced})"
    )
    raise typer.Exit(code=record.exit_code)


@app.command()
def classify(employer: str = typer.Argument(..., help="Employer slug")):
    """Retry classification of pending jobs without scraping."""
    init_db()
    db = SessionLocal()
    try:
        orchestrator = _orchestrator(db)
        try:
            ctx = orchestrator.new_context(employer)
        except UnknownEmployer as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=EXIT_USAGE)
        with stage_log(settings.log_dir, ctx.employer_slug, CLASSIFY_STAGE, ctx.run_id, ctx.started_at):
            result = orchestrator.classify_pending(ctx)
        if ctx.changed_urls:
            with stage_log(settings.log_dir, ctx.employer_slug, ANNOUNCE_STAGE, ctx.run_id, ctx.started_at):
                orchestrator.announce_changes(ctx)
    finally:
        db.close()
    typer.echo(
        f"Successful: {result.successful}  Failed: {result.failed}  "
        f"Activated: {len(result.activated_ids)}  Total Cost: ${result.cost:.4f}"
    )


@app.command()
def tombstone(
    slug: str = typer.Argument(..., help="Job slug"),
    reason: str = typer.Option("removed by source", "--reason", help="Why the job was removed"),
):
    """Delete a job permanently; its URL answers 410 Gone afterwards."""
    init_db()
    db = SessionLocal()
    try:
        row = ActivationStore(db).create_tombstone(slug, reason)
        typer.echo(f"tombstoned {row.slug} ({row.reason})")
    finally:
        db.close()


@app.command()
def employers():
    """List configured employers."""
    init_db()
    db = SessionLocal()
    try:
        for employer in ActivationStore(db).list_employers():
            typer.echo(f"{employer.slug}\t{employer.adapter}\t{employer.name}")
    finally:
        db.close()


if __name__ == "__main__":
    app()
