from __future__ import annotations

import contextvars
import json
import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Protocol

from openai import OpenAI, OpenAIError
from pydantic import BaseModel, ValidationError, field_validator

from jobpipe.core.config import settings
from jobpipe.core.errors import ClassificationFailure, RunCancelled
from jobpipe.models.job import Job
from jobpipe.services.store import ActivationStore, Classification
from jobpipe.services.vocabulary import (
    SPECIALTIES,
    match_experience_level,
    match_job_type,
    match_shift_type,
    match_specialty,
)

logger = logging.getLogger(__name__)

DESCRIPTION_PREVIEW_CHARS = 1300

SYSTEM_PROMPT = f"""You classify registered nurse (RN) job postings.
Return ONLY valid JSON with keys:
- is_staff_rn: boolean, true only for direct-care or charge RN roles (not LPN, CNA, NP, educator, or non-nursing roles)
- specialty: one of {", ".join(SPECIALTIES)}
- job_type: one of Full Time, Part Time, PRN, Per Diem, Contract, Travel, or null
- shift_type: one of days, nights, evenings, variable, rotating, or null
- experience_level: one of Entry Level, New Grad, Experienced, Senior, Leadership, or null
- confidence: number between 0 and 1
No extra text, JSON only."""


@dataclass
class ClassificationRequest:
    job_id: int
    title: str
    employer_name: str
    location: str
    department: str = ""
    description: str = ""
    specialty_hint: str | None = None
    slug: str = ""

    @classmethod
    def from_job(cls, job: Job, employer_name: str = "") -> "ClassificationRequest":
        return cls(
            job_id=job.id,
            title=job.title,
            employer_name=employer_name,
            location=f"{job.city}, {job.state}",
            department=job.department or "",
            description=(job.description or "")[:DESCRIPTION_PREVIEW_CHARS],
            specialty_hint=job.specialty,
            slug=job.slug,
        )

    def prompt(self) -> str:
        return json.dumps(
            {
                "title": self.title,
                "employer": self.employer_name,
                "location": self.location,
                "department": self.department,
                "description_preview": self.description,
            },
            ensure_ascii=False,
        )


class ClassificationPayload(BaseModel):
    is_staff_rn: bool
    specialty: str
    job_type: str | None = None
    shift_type: str | None = None
    experience_level: str | None = None
    confidence: float | None = None

    @field_validator("specialty")
    @classmethod
    def _specialty_in_vocabulary(cls, value: str) -> str:
        matched = match_specialty(value)
        if matched is None:
            raise ValueError(f"unknown specialty {value!r}")
        return matched

    @field_validator("job_type")
    @classmethod
    def _job_type(cls, value: str | None) -> str | None:
        return match_job_type(value)

    @field_validator("shift_type")
    @classmethod
    def _shift_type(cls, value: str | None) -> str | None:
        return match_shift_type(value)

    @field_validator("experience_level")
    @classmethod
    def _experience(cls, value: str | None) -> str | None:
        return match_experience_level(value)

    def to_classification(self) -> Classification:
        return Classification(
            specialty=self.specialty,
            job_type=self.job_type,
            shift_type=self.shift_type,
            experience_level=self.experience_level,
            is_eligible=self.is_staff_rn,
            confidence=self.confidence,
        )


def parse_classification(text: str, job_id: int | None = None) -> Classification:
    raw = (text or "").strip()
    if raw.startswith("```"):
        raw = raw.strip("`")
        if raw[:4].lower() == "json":
            raw = raw[4:].strip()
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise ClassificationFailure(f"malformed response: {exc}", job_id) from exc
    try:
        return ClassificationPayload.model_validate(data).to_classification()
    except ValidationError as exc:
        raise ClassificationFailure(f"invalid classification: {exc.errors()[0]['msg']}", job_id) from exc


class ClassificationService(Protocol):
    cost_per_call: float

    def classify(self, request: ClassificationRequest) -> Classification: ...


class OpenAIClassificationService:
    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        cost_per_call: float | None = None,
        client: OpenAI | None = None,
    ):
        self.model = model or settings.classifier_model
        self.cost_per_call = settings.classifier_cost_per_call if cost_per_call is None else cost_per_call
        self.client = client or OpenAI(
            api_key=api_key or settings.openai_api_key or None,
            timeout=timeout or settings.classify_timeout_seconds,
            max_retries=0,
        )

    def classify(self, request: ClassificationRequest) -> Classification:
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": request.prompt()},
                ],
                response_format={"type": "json_object"},
                max_completion_tokens=settings.classifier_max_completion_tokens,
            )
        except OpenAIError as exc:
            raise ClassificationFailure(f"upstream error: {exc}", request.job_id) from exc
        if not resp.choices:
            raise ClassificationFailure("empty response", request.job_id)
        return parse_classification(resp.choices[0].message.content or "", request.job_id)


@dataclass
class GateResult:
    outcomes: dict[int, Classification | ClassificationFailure] = field(default_factory=dict)
    activated_ids: list[int] = field(default_factory=list)
    activated_slugs: list[str] = field(default_factory=list)
    ineligible_ids: list[int] = field(default_factory=list)
    calls: int = 0
    cost: float = 0.0

    @property
    def successful(self) -> int:
        return sum(1 for o in self.outcomes.values() if isinstance(o, Classification))

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes.values() if isinstance(o, ClassificationFailure))

    @property
    def attempted(self) -> int:
        return len(self.outcomes)


class ClassificationGate:
    """Classifies pending jobs and activates only the ones that classified cleanly."""

    def __init__(
        self,
        store: ActivationStore,
        service: ClassificationService,
        batch_size: int | None = None,
        max_workers: int | None = None,
        timeout: float | None = None,
    ):
        self.store = store
        self.service = service
        self.batch_size = batch_size or settings.classify_batch_size
        self.max_workers = max_workers or settings.classify_max_workers
        self.timeout = timeout or settings.classify_timeout_seconds

    def classify(
        self,
        jobs: list[Job],
        employer_name: str = "",
        cancel_event: threading.Event | None = None,
    ) -> GateResult:
        result = GateResult()
        requests = [ClassificationRequest.from_job(job, employer_name) for job in jobs]
        # one pool for the whole call, so a timed-out call still holds its worker
        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="classify")
        try:
            for start in range(0, len(requests), self.batch_size):
                if cancel_event is not None and cancel_event.is_set():
                    logger.warning("run cancelled, %s jobs left pending", len(requests) - start)
                    break
                batch = requests[start : start + self.batch_size]
                outcomes, calls = self._run_batch(executor, batch, cancel_event)
                result.calls += calls
                self._persist(batch, outcomes, result)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        result.cost = result.calls * self.service.cost_per_call
        logger.info(
            "classification done: successful=%s failed=%s activated=%s ineligible=%s cost=$%.4f",
            result.successful,
            result.failed,
            len(result.activated_ids),
            len(result.ineligible_ids),
            result.cost,
        )
        return result

    def _run_batch(
        self,
        executor: ThreadPoolExecutor,
        batch: list[ClassificationRequest],
        cancel_event: threading.Event | None,
    ) -> tuple[dict[int, Classification | ClassificationFailure], int]:
        started: dict[int, float] = {}

        def call(request: ClassificationRequest) -> Classification:
            if cancel_event is not None and cancel_event.is_set():
                raise RunCancelled("run cancelled before classification call")
            started[request.job_id] = time.monotonic()
            return self.service.classify(request)

        outcomes: dict[int, Classification | ClassificationFailure] = {}
        pending: dict[Future, ClassificationRequest] = {}
        for request in batch:
            ctx = contextvars.copy_context()
            pending[executor.submit(ctx.run, call, request)] = request
        submitted_at = time.monotonic()
        # a request still queued after this long is stuck behind hung workers
        queue_limit = self.timeout * (len(batch) // self.max_workers + 2)

        while pending:
            now = time.monotonic()
            deadlines = [started[r.job_id] + self.timeout for r in pending.values() if r.job_id in started]
            if any(r.job_id not in started for r in pending.values()):
                deadlines.append(submitted_at + queue_limit)
            wait_for = max(0.0, min(deadlines) - now) if deadlines else self.timeout
            done, _ = wait(list(pending), timeout=wait_for, return_when=FIRST_COMPLETED)
            for future in done:
                request = pending.pop(future)
                outcome = self._outcome(future, request)
                if outcome is not None:
                    outcomes[request.job_id] = outcome

            now = time.monotonic()
            for future, request in list(pending.items()):
                begun = started.get(request.job_id)
                if begun is not None and now - begun >= self.timeout:
                    reason = f"timed out after {self.timeout}s"
                elif begun is None and now - submitted_at >= queue_limit and future.cancel():
                    reason = "no free classification worker"
                else:
                    continue
                future.cancel()
                pending.pop(future)
                logger.warning("job %s: classification %s", request.job_id, reason)
                outcomes[request.job_id] = ClassificationFailure(reason, request.job_id)
        return outcomes, len(started)

    @staticmethod
    def _outcome(future: Future, request: ClassificationRequest) -> Classification | ClassificationFailure | None:
        try:
            classification = future.result()
        except RunCancelled:
            return None
        except ClassificationFailure as exc:
            exc.job_id = exc.job_id or request.job_id
            return exc
        except Exception as exc:  # noqa: BLE001
            return ClassificationFailure(f"unexpected error: {exc}", request.job_id)
        if not isinstance(classification, Classification):
            return ClassificationFailure("service returned no classification", request.job_id)
        return classification

    def _persist(
        self,
        batch: list[ClassificationRequest],
        outcomes: dict[int, Classification | ClassificationFailure],
        result: GateResult,
    ) -> None:
        for request in batch:
            outcome = outcomes.get(request.job_id)
            if outcome is None:
                continue
            result.outcomes[request.job_id] = outcome
            if isinstance(outcome, ClassificationFailure):
                logger.warning("job %s (%s): left pending: %s", request.job_id, request.title, outcome.reason)
            elif outcome.is_eligible:
                self.store.mark_active([request.job_id], outcome)
                result.activated_ids.append(request.job_id)
                result.activated_slugs.append(request.slug)
                logger.info("job %s (%s): active as %s", request.job_id, request.title, outcome.specialty)
            else:
                self.store.mark_ineligible([request.job_id], outcome)
                result.ineligible_ids.append(request.job_id)
                logger.info("job %s (%s): not a staff RN role, kept inactive", request.job_id, request.title)
