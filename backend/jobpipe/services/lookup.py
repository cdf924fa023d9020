from __future__ import annotations

import enum
import threading
import time
from dataclasses import dataclass
from typing import Callable

from jobpipe.core.config import settings
from jobpipe.models.job import Job
from jobpipe.services.store import ActivationStore


class LookupStatus(str, enum.Enum):
    FOUND = "found"
    GONE = "gone"
    NOT_FOUND = "not_found"


@dataclass
class LookupResult:
    status: LookupStatus
    job: Job | None = None
    reason: str = ""


class NotFoundCache:
    """Remembers slugs that resolved to nothing, for ``ttl`` seconds."""

    def __init__(self, ttl: float | None = None, clock: Callable[[], float] = time.monotonic):
        self.ttl = settings.lookup_negative_cache_seconds if ttl is None else ttl
        self.clock = clock
        self._entries: dict[str, float] = {}
        self._lock = threading.Lock()

    def hit(self, slug: str) -> bool:
        with self._lock:
            expires = self._entries.get(slug)
            if expires is None:
                return False
            if expires <= self.clock():
                del self._entries[slug]
                return False
            return True

    def add(self, slug: str) -> None:
        with self._lock:
            self._entries[slug] = self.clock() + self.ttl

    def discard(self, slug: str) -> None:
        with self._lock:
            self._entries.pop(slug, None)


not_found_cache = NotFoundCache()


def lookup_job(store: ActivationStore, slug: str, cache: NotFoundCache | None = None) -> LookupResult:
    cache = not_found_cache if cache is None else cache

    # Tombstones are checked first so a cached miss never hides a deletion.
    tombstone = store.find_tombstone(slug)
    if tombstone is not None:
        cache.discard(slug)
        return LookupResult(LookupStatus.GONE, reason=tombstone.reason)

    if cache.hit(slug):
        return LookupResult(LookupStatus.NOT_FOUND)

    job = store.find_visible(slug)
    if job is None:
        cache.add(slug)
        return LookupResult(LookupStatus.NOT_FOUND)
    return LookupResult(LookupStatus.FOUND, job=job)
