from __future__ import annotations

import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime

from jobpipe.core.logging import StageLog
from jobpipe.pipeline.state import RunStateMachine


@dataclass
class RunCounters:
    seen: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    rejected: int = 0
    classified: int = 0
    classify_failed: int = 0
    ineligible: int = 0
    activated: int = 0
    calls: int = 0
    cost: float = 0.0
    announced: int = 0


@dataclass
class RunContext:
    """Everything one run carries between stages. Nothing here is shared across runs."""

    employer_id: int
    employer_slug: str
    employer_name: str
    log_dir: str
    max_pages: int | None = None
    max_items: int | None = None
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: datetime = field(default_factory=datetime.now)
    cancel_event: threading.Event = field(default_factory=threading.Event)
    counters: RunCounters = field(default_factory=RunCounters)
    machine: RunStateMachine = field(default_factory=RunStateMachine)
    stage_logs: dict[str, StageLog] = field(default_factory=dict)
    changed_urls: list[str] = field(default_factory=list)
    error: str | None = None

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


@dataclass
class RunRecord:
    run_id: str
    employer: str
    state: str
    exit_code: int
    started_at: datetime
    finished_at: datetime
    counters: RunCounters
    history: list[str]
    error: str | None = None
    log_paths: dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> dict:
        data = asdict(self)
        data.update(data.pop("counters"))
        data["started_at"] = self.started_at.isoformat(timespec="seconds")
        data["finished_at"] = self.finished_at.isoformat(timespec="seconds")
        return data
