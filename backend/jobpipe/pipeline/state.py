from __future__ import annotations

import enum

from jobpipe.core.errors import InvalidTransition


class RunState(str, enum.Enum):
    SCRAPE_PENDING = "ScrapePending"
    SCRAPING = "Scraping"
    SCRAPE_SUCCEEDED = "ScrapeSucceeded"
    SCRAPE_FAILED = "ScrapeFailed"
    CLASSIFYING = "Classifying"
    CLASSIFY_SUCCEEDED = "ClassifySucceeded"
    CLASSIFY_FAILED = "ClassifyFailed"
    ANNOUNCING = "Announcing"
    DONE = "Done"


class RunEvent(str, enum.Enum):
    START = "start"
    SCRAPE_OK = "scrape_ok"
    SCRAPE_FAILED = "scrape_failed"
    CLASSIFY = "classify"
    CLASSIFY_OK = "classify_ok"
    CLASSIFY_FAILED = "classify_failed"
    ANNOUNCE = "announce"
    NOTHING_CHANGED = "nothing_changed"
    ANNOUNCE_DONE = "announce_done"


TRANSITIONS: dict[tuple[RunState, RunEvent], RunState] = {
    (RunState.SCRAPE_PENDING, RunEvent.START): RunState.SCRAPING,
    (RunState.SCRAPING, RunEvent.SCRAPE_OK): RunState.SCRAPE_SUCCEEDED,
    (RunState.SCRAPING, RunEvent.SCRAPE_FAILED): RunState.SCRAPE_FAILED,
    (RunState.SCRAPE_SUCCEEDED, RunEvent.CLASSIFY): RunState.CLASSIFYING,
    (RunState.CLASSIFYING, RunEvent.CLASSIFY_OK): RunState.CLASSIFY_SUCCEEDED,
    (RunState.CLASSIFYING, RunEvent.CLASSIFY_FAILED): RunState.CLASSIFY_FAILED,
    (RunState.CLASSIFY_SUCCEEDED, RunEvent.ANNOUNCE): RunState.ANNOUNCING,
    (RunState.CLASSIFY_SUCCEEDED, RunEvent.NOTHING_CHANGED): RunState.DONE,
    (RunState.ANNOUNCING, RunEvent.ANNOUNCE_DONE): RunState.DONE,
}

TERMINAL_STATES = frozenset({RunState.SCRAPE_FAILED, RunState.CLASSIFY_FAILED, RunState.DONE})

EXIT_CODES = {
    RunState.DONE: 0,
    RunState.SCRAPE_FAILED: 2,
    RunState.CLASSIFY_FAILED: 3,
}


def next_state(state: RunState, event: RunEvent) -> RunState:
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(state, event) from None


class RunStateMachine:
    def __init__(self, state: RunState = RunState.SCRAPE_PENDING):
        self.state = state
        self.history: list[RunState] = [state]

    def fire(self, event: RunEvent) -> RunState:
        self.state = next_state(self.state, event)
        self.history.append(self.state)
        return self.state

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def exit_code(self) -> int | None:
        return EXIT_CODES.get(self.state)
