from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field
from typing import Iterator
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from jobpipe.core.errors import AdapterFetchError, RunCancelled

logger = logging.getLogger(__name__)


@dataclass
class RawListing:
    title: str
    external_id: str | None
    source_url: str
    employer_slug: str = ""
    location_text: str = ""
    city: str = ""
    state: str = ""
    department: str = ""
    job_type: str = ""
    description: str = ""
    salary_text: str = ""
    posted_date: str | None = None
    raw_payload: dict = field(default_factory=dict)


@dataclass
class AdapterConfig:
    employer_slug: str
    options: dict = field(default_factory=dict)
    max_pages: int | None = None
    max_items: int | None = None
    cancel_event: threading.Event | None = None

    def check_cancelled(self, url: str | None = None) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise RunCancelled(f"run cancelled before request for {self.employer_slug}", url)

    def pages_exhausted(self, pages_fetched: int) -> bool:
        return self.max_pages is not None and pages_fetched >= self.max_pages

    def items_exhausted(self, items_yielded: int) -> bool:
        return self.max_items is not None and items_yielded >= self.max_items


class PaginationStrategy(str, enum.Enum):
    PARAM = "param"
    NEXT = "next"
    INDEXED = "indexed"


class SourceAdapter:
    adapter_name: str
    strategy: PaginationStrategy

    def fetch_listings(self, config: AdapterConfig) -> Iterator[RawListing]:
        raise NotImplementedError

    @staticmethod
    def require_container(soup: BeautifulSoup, selector: str, url: str):
        node = soup.select_one(selector)
        if node is None:
            raise AdapterFetchError(f"listing container {selector!r} not found; page layout changed?", url)
        return node

    @staticmethod
    def _tag(listings: list[RawListing], config: AdapterConfig) -> list[RawListing]:
        for listing in listings:
            listing.employer_slug = listing.employer_slug or config.employer_slug
        return listings


class ParamPaginatedAdapter(SourceAdapter):
    """Page index (or offset) travels as a request parameter."""

    strategy = PaginationStrategy.PARAM
    first_page = 1
    page_size: int | None = None

    def page_limit(self, config: AdapterConfig) -> int | None:
        size = config.options.get("page_size", self.page_size)
        return int(size) if size else None

    def fetch_page(self, config: AdapterConfig, page: int) -> list[RawListing]:
        raise NotImplementedError

    def fetch_listings(self, config: AdapterConfig) -> Iterator[RawListing]:
        page = self.first_page
        limit = self.page_limit(config)
        pages_fetched = 0
        yielded = 0
        seen_pages: set[tuple] = set()

        while not config.pages_exhausted(pages_fetched):
            config.check_cancelled()
            listings = self._tag(self.fetch_page(config, page), config)
            pages_fetched += 1
            logger.info("%s page=%s listings=%s", self.adapter_name, page, len(listings))

            if not listings:
                return
            signature = tuple(item.external_id or item.source_url for item in listings)
            if signature in seen_pages:
                logger.warning("%s page=%s repeats an earlier page, stopping", self.adapter_name, page)
                return
            seen_pages.add(signature)

            for listing in listings:
                yield listing
                yielded += 1
                if config.items_exhausted(yielded):
                    return

            if limit is not None and len(listings) < limit:
                return
            page += 1


class NextLinkAdapter(SourceAdapter):
    """Each page links to the next one."""

    strategy = PaginationStrategy.NEXT

    def start_url(self, config: AdapterConfig) -> str:
        raise NotImplementedError

    def fetch_page(self, config: AdapterConfig, url: str) -> tuple[list[RawListing], str | None]:
        raise NotImplementedError

    @staticmethod
    def find_next_link(soup: BeautifulSoup, base_url: str) -> str | None:
        link = soup.select_one('a[rel="next"]')
        if link is None:
            return None
        classes = " ".join(link.get("class") or []).lower()
        if link.get("aria-disabled") == "true" or "disabled" in classes:
            return None
        href = (link.get("href") or "").strip()
        if not href or href.startswith("#") or href.lower().startswith("javascript:"):
            return None
        return urljoin(base_url, href)

    def fetch_listings(self, config: AdapterConfig) -> Iterator[RawListing]:
        url: str | None = self.start_url(config)
        visited: set[str] = set()
        yielded = 0

        while url and not config.pages_exhausted(len(visited)):
            if url in visited:
                logger.warning("%s next link loops back to %s, stopping", self.adapter_name, url)
                return
            config.check_cancelled(url)
            visited.add(url)
            listings, next_url = self.fetch_page(config, url)
            listings = self._tag(listings, config)
            logger.info("%s page=%s listings=%s", self.adapter_name, len(visited), len(listings))

            for listing in listings:
                yield listing
                yielded += 1
                if config.items_exhausted(yielded):
                    return
            url = next_url


class IndexedPageAdapter(SourceAdapter):
    """Numbered page links are enumerated and each page is visited once."""

    strategy = PaginationStrategy.INDEXED

    def page_url(self, config: AdapterConfig, number: int) -> str:
        raise NotImplementedError

    def fetch_page(self, config: AdapterConfig, url: str) -> tuple[list[RawListing], set[int]]:
        raise NotImplementedError

    @staticmethod
    def page_numbers(soup: BeautifulSoup) -> set[int]:
        numbers: set[int] = set()
        for a in soup.find_all("a"):
            text = a.get_text(strip=True)
            if text.isdigit():
                numbers.add(int(text))
        return numbers

    def fetch_listings(self, config: AdapterConfig) -> Iterator[RawListing]:
        number = 1
        highest = 1
        yielded = 0

        while number <= highest and not config.pages_exhausted(number - 1):
            url = self.page_url(config, number)
            config.check_cancelled(url)
            listings, discovered = self.fetch_page(config, url)
            listings = self._tag(listings, config)
            if discovered:
                highest = max(highest, max(discovered))
            logger.info("%s page=%s/%s listings=%s", self.adapter_name, number, highest, len(listings))

            for listing in listings:
                yield listing
                yielded += 1
                if config.items_exhausted(yielded):
                    return
            number += 1
