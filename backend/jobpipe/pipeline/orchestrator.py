from __future__ import annotations

import logging
import socket
import threading
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jobpipe.core.config import settings
from jobpipe.core.errors import AdapterFetchError, NormalizationRejection, UnknownEmployer
from jobpipe.core.logging import append_summary, purge_old_logs, stage_log
from jobpipe.crawlers.base import AdapterConfig
from jobpipe.crawlers.registry import ADAPTERS
from jobpipe.models.employer import Employer
from jobpipe.models.job import LifecycleState
from jobpipe.pipeline.context import RunContext, RunRecord
from jobpipe.pipeline.state import RunEvent, RunState
from jobpipe.services.announcer import IndexNowAnnouncer, public_job_url
from jobpipe.services.classifier import ClassificationGate, ClassificationService, GateResult
from jobpipe.services.normalizer import normalize
from jobpipe.services.notifier import Notifier, build_failure_alert, build_summary_alert, safe_send
from jobpipe.services.store import ActivationStore, UpsertOutcome

logger = logging.getLogger(__name__)

SCRAPE_STAGE = "scraper"
CLASSIFY_STAGE = "classifier"
ANNOUNCE_STAGE = "indexnow"


class PipelineOrchestrator:
    """Runs scrape, classify and announce for one employer.

    A failed scrape ends the run before any classification call is made.
    A failed classification stage ends the run without touching what the
    scrape already persisted. Announcing happens only when a visible job
    changed.
    """

    def __init__(
        self,
        db: Session,
        classifier: ClassificationService,
        announcer: IndexNowAnnouncer | None = None,
        notifier: Notifier | None = None,
        adapters: dict | None = None,
        log_dir: str | None = None,
        hostname: str | None = None,
    ):
        self.store = ActivationStore(db)
        self.classifier = classifier
        self.announcer = announcer or IndexNowAnnouncer()
        self.notifier = notifier
        self.adapters = ADAPTERS if adapters is None else adapters
        self.log_dir = log_dir or settings.log_dir
        self.hostname = hostname or socket.gethostname()

    def _employer(self, slug: str) -> Employer:
        employer = self.store.get_employer(slug)
        if employer is None:
            raise UnknownEmployer(f"unknown employer {slug!r}")
        if employer.adapter not in self.adapters:
            raise UnknownEmployer(f"employer {slug!r} is bound to missing adapter {employer.adapter!r}")
        return employer

    def new_context(
        self,
        employer_slug: str,
        max_pages: int | None = None,
        max_items: int | None = None,
        cancel_event: threading.Event | None = None,
    ) -> RunContext:
        employer = self._employer(employer_slug)
        ctx = RunContext(
            employer_id=employer.id,
            employer_slug=employer.slug,
            employer_name=employer.name,
            log_dir=self.log_dir,
            max_pages=max_pages,
            max_items=max_items,
        )
        if cancel_event is not None:
            ctx.cancel_event = cancel_event
        return ctx

    def run(
        self,
        employer_slug: str,
        max_pages: int | None = None,
        max_items: int | None = None,
        cancel_event: threading.Event | None = None,
    ) -> RunRecord:
        ctx = self.new_context(employer_slug, max_pages, max_items, cancel_event)
        return self.execute(ctx)

    def execute(self, ctx: RunContext) -> RunRecord:
        employer = self._employer(ctx.employer_slug)
        append_summary(self.log_dir, f"{ctx.employer_slug} run={ctx.run_id} started")

        ctx.machine.fire(RunEvent.START)
        with stage_log(self.log_dir, ctx.employer_slug, SCRAPE_STAGE, ctx.run_id, ctx.started_at, settings.log_tail_lines) as sink:
            ctx.stage_logs[SCRAPE_STAGE] = sink
            scraped = self._scrape(ctx, employer)
        if not scraped:
            ctx.machine.fire(RunEvent.SCRAPE_FAILED)
            return self._finish(ctx, failed_stage=SCRAPE_STAGE)
        ctx.machine.fire(RunEvent.SCRAPE_OK)

        ctx.machine.fire(RunEvent.CLASSIFY)
        with stage_log(self.log_dir, ctx.employer_slug, CLASSIFY_STAGE, ctx.run_id, ctx.started_at, settings.log_tail_lines) as sink:
            ctx.stage_logs[CLASSIFY_STAGE] = sink
            classified = self._classify(ctx, employer)
        if not classified:
            ctx.machine.fire(RunEvent.CLASSIFY_FAILED)
            return self._finish(ctx, failed_stage=CLASSIFY_STAGE)
        ctx.machine.fire(RunEvent.CLASSIFY_OK)

        if not ctx.changed_urls:
            logger.info("%s: no visible job changed, nothing to announce", ctx.employer_slug)
            ctx.machine.fire(RunEvent.NOTHING_CHANGED)
            return self._finish(ctx)

        ctx.machine.fire(RunEvent.ANNOUNCE)
        with stage_log(self.log_dir, ctx.employer_slug, ANNOUNCE_STAGE, ctx.run_id, ctx.started_at, settings.log_tail_lines) as sink:
            ctx.stage_logs[ANNOUNCE_STAGE] = sink
            self.announce_changes(ctx)
        ctx.machine.fire(RunEvent.ANNOUNCE_DONE)
        return self._finish(ctx)

    def _scrape(self, ctx: RunContext, employer: Employer) -> bool:
        adapter = self.adapters[employer.adapter]()
        config = AdapterConfig(
            employer_slug=employer.slug,
            options=dict(employer.adapter_config or {}),
            max_pages=ctx.max_pages,
            max_items=ctx.max_items,
            cancel_event=ctx.cancel_event,
        )
        counters = ctx.counters
        logger.info("scraping %s with %s (%s pagination)", employer.slug, adapter.adapter_name, adapter.strategy.value)
        try:
            for listing in adapter.fetch_listings(config):
                counters.seen += 1
                listing.employer_slug = listing.employer_slug or employer.slug
                try:
                    normalized = normalize(listing)
                except NormalizationRejection as exc:
                    counters.rejected += 1
                    logger.warning("rejected listing %s (%r): %s", exc.external_id, listing.title[:80], exc.reason)
                    continue

                result = self.store.upsert(employer.id, normalized)
                if result.outcome == UpsertOutcome.INSERTED:
                    counters.inserted += 1
                elif result.outcome == UpsertOutcome.UPDATED:
                    counters.updated += 1
                    if result.lifecycle_state == LifecycleState.ACTIVE.value:
                        ctx.changed_urls.append(public_job_url(result.slug))
                else:
                    counters.unchanged += 1
        except AdapterFetchError as exc:
            ctx.error = str(exc)
            logger.error("scrape failed for %s: %s", employer.slug, exc)
            return False
        except SQLAlchemyError as exc:
            self.store.db.rollback()
            ctx.error = f"storage error: {exc}"
            logger.error("scrape failed for %s: storage error: %s", employer.slug, exc)
            return False
        except Exception as exc:  # noqa: BLE001
            self.store.db.rollback()
            ctx.error = f"unexpected adapter error: {exc!r}"
            logger.exception("scrape failed for %s: unexpected adapter error", employer.slug)
            return False

        logger.info(
            "scrape done: seen=%s inserted=%s updated=%s unchanged=%s rejected=%s",
            counters.seen,
            counters.inserted,
            counters.updated,
            counters.unchanged,
            counters.rejected,
        )
        return True

    def _classify(self, ctx: RunContext, employer: Employer) -> bool:
        try:
            result = self.classify_pending(ctx, employer)
        except Exception as exc:  # noqa: BLE001
            ctx.error = f"classification stage error: {exc}"
            logger.exception("classification stage failed for %s", employer.slug)
            return False

        if ctx.cancelled:
            ctx.error = "run cancelled during classification"
            logger.warning("%s: %s", employer.slug, ctx.error)
            return False
        if result.attempted and not result.successful:
            ctx.error = f"all {result.attempted} classification calls failed"
            logger.error("%s: %s", employer.slug, ctx.error)
            return False
        return True

    def classify_pending(self, ctx: RunContext, employer: Employer | None = None) -> GateResult:
        employer = employer or self._employer(ctx.employer_slug)
        pending = self.store.list_pending(employer.id)
        logger.info("%s: %s jobs pending classification", employer.slug, len(pending))
        gate = ClassificationGate(self.store, self.classifier)
        result = gate.classify(pending, employer_name=employer.name, cancel_event=ctx.cancel_event)

        counters = ctx.counters
        counters.classified += result.successful
        counters.classify_failed += result.failed
        counters.ineligible += len(result.ineligible_ids)
        counters.activated += len(result.activated_ids)
        counters.calls += result.calls
        counters.cost += result.cost
        ctx.changed_urls.extend(public_job_url(slug) for slug in result.activated_slugs)
        return result

    def announce_changes(self, ctx: RunContext) -> None:
        urls = list(dict.fromkeys(ctx.changed_urls))
        logger.info("announcing %s changed urls", len(urls))
        try:
            result = self.announcer.announce(urls)
        except Exception as exc:  # noqa: BLE001
            logger.warning("announcement failed, continuing: %s", exc)
            return
        ctx.counters.announced = result.submitted
        if result.failed_batches:
            logger.warning("%s of %s announcement batches failed", result.failed_batches, result.batches)

    def _finish(self, ctx: RunContext, failed_stage: str | None = None) -> RunRecord:
        state = ctx.machine.state
        record = RunRecord(
            run_id=ctx.run_id,
            employer=ctx.employer_slug,
            state=state.value,
            exit_code=ctx.machine.exit_code,
            started_at=ctx.started_at,
            finished_at=datetime.now(),
            counters=ctx.counters,
            history=[s.value for s in ctx.machine.history],
            error=ctx.error,
            log_paths={stage: str(sink.path) for stage, sink in ctx.stage_logs.items()},
        )
        c = ctx.counters
        append_summary(
            self.log_dir,
            f"{ctx.employer_slug} run={ctx.run_id} state={state.value} exit={record.exit_code} "
            f"seen={c.seen} inserted={c.inserted} updated={c.updated} rejected={c.rejected} "
            f"classified={c.classified} failed={c.classify_failed} activated={c.activated} "
            f"cost=${c.cost:.4f} announced={c.announced}",
        )

        alert = {
            **record.as_dict(),
            "employer": ctx.employer_name,
            "timestamp": record.finished_at.strftime("%Y-%m-%d %H:%M:%S"),
            "host": self.hostname,
        }
        if failed_stage is not None:
            sink = ctx.stage_logs.get(failed_stage)
            alert["log_tail"] = sink.tail() if sink else []
            alert["log_path"] = str(sink.path) if sink else ""
            if self.notifier is not None:
                safe_send(self.notifier, *build_failure_alert(alert))
            return record

        if state == RunState.DONE:
            if self.notifier is not None:
                safe_send(self.notifier, *build_summary_alert(alert))
            removed = purge_old_logs(self.log_dir, settings.log_retention_days)
            if removed:
                logger.info("purged %s log files older than %s days", removed, settings.log_retention_days)
        return record
