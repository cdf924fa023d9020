from __future__ import annotations
import threading
import time
from types import SimpleNamespace

import httpx
import pytest
from openai import APIConnectionError

from jobpipe.core.errors import ClassificationFailure
from jobpipe.models.job import Job, LifecycleState
from jobpipe.services.classifier import (
    ClassificationGate,
    ClassificationRequest,
    OpenAIClassificationService,
    parse_classification,
)
from jobpipe.services.store import ActivationStore, Classification


class FakeService:
    cost_per_call = 0.01

    def __init__(self, by_title: dict | None = None, default=None):
        self.by_title = by_title or {}
        self.default = default or Classification(specialty="Med-Surg", job_type="full-time")
        self.requests: list[ClassificationRequest] = []
        self._lock = threading.Lock()

    def classify(self, request: ClassificationRequest) -> Classification:
        with self._lock:
            self.requests.append(request)
        outcome = self.by_title.get(request.title, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(request)
        return outcome


def _pending(store: ActivationStore, employer, make_job, titles: list[str]) -> list[Job]:
    for n, title in enumerate(titles):
        store.upsert(employer.id, make_job(f"R{n}", title=title, slug=f"job-{n}", specialty=None))
    return store.list_pending(employer.id)


def test_parse_classification_accepts_fenced_json():
    text = '```json\n{"is_staff_rn": true, "specialty": "icu", "job_type": "Full Time", "shift_type": "Nights", "experience_level": "New Grad", "confidence": 0.9}\n```'

    result = parse_classification(text, job_id=7)

    assert result == Classification(
        specialty="ICU",
        job_type="full-time",
        shift_type="nights",
        experience_level="new-grad",
        is_eligible=True,
        confidence=0.9,
    )


@pytest.mark.parametrize(
    "text",
    [
        "not json at all",
        '{"is_staff_rn": true}',
        '{"is_staff_rn": true, "specialty": "Dermatology"}',
        "",
    ],
)
def test_parse_classification_rejects_bad_output(text):
    with pytest.raises(ClassificationFailure) as exc_info:
        parse_classification(text, job_id=3)
    assert exc_info.value.job_id == 3


def test_gate_activates_only_successful_jobs(db, employer, make_job):
    store = ActivationStore(db)
    jobs = _pending(store, employer, make_job, ["RN - Oncology", "RN - Broken", "RN - ICU"])
    service = FakeService(
        by_title={
            "RN - Oncology": Classification(specialty="Oncology"),
            "RN - Broken": ClassificationFailure("malformed response"),
            "RN - ICU": Classification(specialty="ICU", shift_type="nights"),
        }
    )

    result = ClassificationGate(store, service, batch_size=10, max_workers=3, timeout=5).classify(jobs, "Test Health")

    assert result.successful == 2
    assert result.failed == 1
    assert result.calls == 3
    assert result.cost == pytest.approx(0.03)
    assert sorted(result.activated_slugs) == ["job-0", "job-2"]
    states = {job.title: job.lifecycle_state for job in db.query(Job).all()}
    assert states == {
        "RN - Oncology": LifecycleState.ACTIVE.value,
        "RN - Broken": LifecycleState.PENDING.value,
        "RN - ICU": LifecycleState.ACTIVE.value,
    }
    assert {r.employer_name for r in service.requests} == {"Test Health"}


def test_gate_turns_unexpected_errors_into_failures(db, employer, make_job):
    store = ActivationStore(db)
    jobs = _pending(store, employer, make_job, ["RN - A"])
    service = FakeService(by_title={"RN - A": RuntimeError("socket closed")})

    result = ClassificationGate(store, service, batch_size=10, max_workers=1, timeout=5).classify(jobs)

    failure = result.outcomes[jobs[0].id]
    assert isinstance(failure, ClassificationFailure)
    assert "socket closed" in failure.reason
    assert result.activated_ids == []


def test_gate_marks_non_staff_roles_inactive(db, employer, make_job):
    store = ActivationStore(db)
    jobs = _pending(store, employer, make_job, ["Nurse Practitioner"])
    service = FakeService(default=Classification(specialty="Ambulatory", is_eligible=False))

    result = ClassificationGate(store, service, batch_size=10, max_workers=1, timeout=5).classify(jobs)

    assert result.ineligible_ids == [jobs[0].id]
    assert result.activated_ids == []
    assert db.get(Job, jobs[0].id).lifecycle_state == LifecycleState.INACTIVE.value


def test_gate_times_out_slow_calls(db, employer, make_job):
    store = ActivationStore(db)
    jobs = _pending(store, employer, make_job, ["RN - Slow", "RN - Fast"])
    release = threading.Event()

    def slow(request):
        release.wait(5)
        return Classification(specialty="ICU")

    service = FakeService(by_title={"RN - Slow": slow})
    try:
        result = ClassificationGate(store, service, batch_size=10, max_workers=2, timeout=0.2).classify(jobs)
    finally:
        release.set()

    slow_job, fast_job = jobs
    assert isinstance(result.outcomes[slow_job.id], ClassificationFailure)
    assert "timed out" in result.outcomes[slow_job.id].reason
    assert result.activated_ids == [fast_job.id]
    assert result.calls == 2
    assert db.get(Job, slow_job.id).lifecycle_state == LifecycleState.PENDING.value


def test_timed_out_calls_keep_their_worker_across_batches(db, employer, make_job):
    store = ActivationStore(db)
    jobs = _pending(store, employer, make_job, ["RN - Hung", "RN - Next"])
    lock = threading.Lock()
    running = {"now": 0, "max": 0}

    def tracked(delay):
        def run(request):
            with lock:
                running["now"] += 1
                running["max"] = max(running["max"], running["now"])
            try:
                time.sleep(delay)
                return Classification(specialty="ICU")
            finally:
                with lock:
                    running["now"] -= 1

        return run

    service = FakeService(by_title={"RN - Hung": tracked(0.4), "RN - Next": tracked(0)})

    result = ClassificationGate(store, service, batch_size=1, max_workers=1, timeout=0.2).classify(jobs)

    hung, following = jobs
    assert "timed out" in result.outcomes[hung.id].reason
    assert result.activated_ids == [following.id]
    assert running["max"] == 1


def test_gate_processes_in_batches_and_stops_when_cancelled(db, employer, make_job):
    store = ActivationStore(db)
    jobs = _pending(store, employer, make_job, [f"RN {n}" for n in range(5)])
    cancel = threading.Event()

    def cancel_after_first(request):
        cancel.set()
        return Classification(specialty="Telemetry")

    service = FakeService(default=Classification(specialty="Telemetry"), by_title={"RN 0": cancel_after_first})

    result = ClassificationGate(store, service, batch_size=1, max_workers=1, timeout=5).classify(jobs, cancel_event=cancel)

    assert result.calls == 1
    assert result.activated_ids == [jobs[0].id]
    assert len(store.list_pending(employer.id)) == 4


def test_request_carries_truncated_description_and_hint(db, employer, make_job):
    store = ActivationStore(db)
    store.upsert(employer.id, make_job("R1", description="x" * 5000, specialty="ICU"))
    job = store.list_pending(employer.id)[0]

    request = ClassificationRequest.from_job(job, "Test Health")

    assert len(request.description) == 1300
    assert request.specialty_hint == "ICU"
    assert request.location == "Boston, MA"
    assert '"employer": "Test Health"' in request.prompt()


class _FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _fake_client(completions: _FakeCompletions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def test_openai_service_requests_json_and_parses_reply():
    completions = _FakeCompletions(content='{"is_staff_rn": true, "specialty": "PACU", "confidence": 0.8}')
    service = OpenAIClassificationService(model="test-model", cost_per_call=0.002, client=_fake_client(completions))

    result = service.classify(ClassificationRequest(job_id=1, title="RN - PACU", employer_name="X", location="Boston, MA"))

    assert result.specialty == "PACU"
    assert service.cost_per_call == 0.002
    assert completions.kwargs["model"] == "test-model"
    assert completions.kwargs["response_format"] == {"type": "json_object"}
    assert completions.kwargs["messages"][0]["role"] == "system"


def test_openai_service_wraps_upstream_errors():
    error = APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
    service = OpenAIClassificationService(client=_fake_client(_FakeCompletions(error=error)))

    with pytest.raises(ClassificationFailure) as exc_info:
        service.classify(ClassificationRequest(job_id=9, title="RN", employer_name="X", location="Boston, MA"))
    assert exc_info.value.job_id == 9