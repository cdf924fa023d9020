from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable
from urllib.parse import urlparse

import httpx

from jobpipe.core.config import settings
from jobpipe.core.errors import AnnouncementFailure

logger = logging.getLogger(__name__)

ACCEPTED_STATUSES = (200, 202)


def public_job_url(slug: str, site_url: str | None = None, path_prefix: str | None = None) -> str:
    base = (site_url or settings.site_url).rstrip("/")
    prefix = "/" + (path_prefix or settings.job_path_prefix).strip("/")
    return f"{base}{prefix}/{slug}"


@dataclass
class AnnounceResult:
    submitted: int = 0
    batches: int = 0
    failed_batches: int = 0
    errors: list[str] = field(default_factory=list)


class IndexNowAnnouncer:
    """Submits changed public URLs to IndexNow-compatible endpoints. Best effort."""

    def __init__(
        self,
        key: str | None = None,
        endpoints: list[str] | None = None,
        site_url: str | None = None,
        batch_size: int | None = None,
        batch_delay: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
        timeout: float = 30.0,
    ):
        self.key = key if key is not None else settings.indexnow_key
        self.endpoints = endpoints if endpoints is not None else list(settings.indexnow_endpoints)
        self.site_url = (site_url or settings.site_url).rstrip("/")
        self.batch_size = batch_size or settings.announce_batch_size
        self.batch_delay = settings.announce_batch_delay_seconds if batch_delay is None else batch_delay
        self.sleep = sleep
        self.timeout = timeout

    def build_payload(self, urls: list[str]) -> dict:
        return {
            "host": urlparse(self.site_url).netloc,
            "key": self.key,
            "keyLocation": f"{self.site_url}/{self.key}.txt",
            "urlList": urls,
        }

    def _submit(self, client: httpx.Client, endpoint: str, urls: list[str]) -> None:
        try:
            resp = client.post(endpoint, json=self.build_payload(urls))
        except httpx.HTTPError as exc:
            raise AnnouncementFailure(f"{endpoint}: {exc}") from exc
        if resp.status_code not in ACCEPTED_STATUSES:
            raise AnnouncementFailure(f"{endpoint}: status={resp.status_code} body={resp.text[:300]}")

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, headers={"Content-Type": "application/json; charset=utf-8"})

    def announce(self, urls: list[str]) -> AnnounceResult:
        result = AnnounceResult()
        unique = list(dict.fromkeys(urls))
        if not unique:
            return result
        if not self.key or not self.endpoints:
            logger.warning("indexnow key or endpoints not configured, skipping %s urls", len(unique))
            return result

        batches = [unique[i : i + self.batch_size] for i in range(0, len(unique), self.batch_size)]
        with self._client() as client:
            for index, batch in enumerate(batches):
                if index > 0 and self.batch_delay > 0:
                    logger.info("waiting %ss before batch %s/%s", self.batch_delay, index + 1, len(batches))
                    self.sleep(self.batch_delay)
                result.batches += 1
                batch_ok = True
                for endpoint in self.endpoints:
                    try:
                        self._submit(client, endpoint, batch)
                    except AnnouncementFailure as exc:
                        batch_ok = False
                        result.errors.append(str(exc))
                        logger.warning("indexnow batch %s failed: %s", index + 1, exc)
                if batch_ok:
                    result.submitted += len(batch)
                    logger.info("indexnow batch %s/%s accepted (%s urls)", index + 1, len(batches), len(batch))
                else:
                    result.failed_batches += 1
        return result
