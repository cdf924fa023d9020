from __future__ import annotations

import logging

import httpx
from bs4 import BeautifulSoup
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from jobpipe.core.config import settings
from jobpipe.core.errors import AdapterFetchError

logger = logging.getLogger(__name__)


def default_headers() -> dict[str, str]:
    return {
        "User-Agent": settings.user_agent,
        "Accept": "text/html,application/json;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
    }


def _client() -> httpx.Client:
    return httpx.Client(
        timeout=settings.request_timeout_seconds,
        follow_redirects=True,
        headers=default_headers(),
    )


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


def _log_retry(retry_state) -> None:
    exc = retry_state.outcome.exception()
    logger.warning("request attempt %s failed: %s", retry_state.attempt_number, exc)


@retry(
    reraise=True,
    stop=stop_after_attempt(settings.request_retries),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    retry=retry_if_exception(_is_retryable),
    after=_log_retry,
)
def _request(method: str, url: str, **kwargs) -> httpx.Response:
    with _client() as client:
        resp = client.request(method, url, **kwargs)
        resp.raise_for_status()
        return resp


def _send(method: str, url: str, **kwargs) -> httpx.Response:
    try:
        return _request(method, url, **kwargs)
    except httpx.HTTPError as exc:
        raise AdapterFetchError(f"{method} {url} failed: {exc}", url) from exc


def fetch_html(url: str, params: dict | None = None) -> str:
    return _send("GET", url, params=params).text


def fetch_json(url: str, params: dict | None = None):
    resp = _send("GET", url, params=params)
    try:
        return resp.json()
    except ValueError as exc:
        raise AdapterFetchError(f"GET {url} returned invalid JSON", url) from exc


def post_json(url: str, payload: dict):
    resp = _send("POST", url, json=payload, headers={"Content-Type": "application/json"})
    try:
        return resp.json()
    except ValueError as exc:
        raise AdapterFetchError(f"POST {url} returned invalid JSON", url) from exc


def soup_links(html: str):
    soup = BeautifulSoup(html, "html.parser")
    return soup, soup.find_all("a")
