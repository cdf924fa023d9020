from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

from jobpipe.crawlers.base import AdapterConfig, IndexedPageAdapter, RawListing
from jobpipe.crawlers.http_helpers import fetch_html, soup_links

_JOB_ID = re.compile(r"jobid-(\d+)")
_CITY_STATE = re.compile(r"[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*,\s+[A-Z]{2}\b")
_JOB_TYPE = re.compile(r"^(full\s+time|part\s+time|prn|contract|per\s+diem)$", re.IGNORECASE)


class ClevelandClinicAdapter(IndexedPageAdapter):
    """Search results with numbered page links; page N lives at ``?pg=N``."""

    adapter_name = "cleveland_clinic"
    results_selector = "#job-search-results"

    def page_url(self, config: AdapterConfig, number: int) -> str:
        search_url = config.options["search_url"]
        if number == 1:
            return search_url
        parts = urlparse(search_url)
        query = dict(parse_qsl(parts.query))
        query["pg"] = str(number)
        return urlunparse(parts._replace(query=urlencode(query)))

    def fetch_page(self, config: AdapterConfig, url: str) -> tuple[list[RawListing], set[int]]:
        html = fetch_html(url)
        soup, _ = soup_links(html)
        container = self.require_container(soup, config.options.get("results_selector", self.results_selector), url)

        listings: list[RawListing] = []
        for card in container.select(".job.clearfix"):
            title_el = card.select_one(".jobTitle")
            link = card.select_one("a[href]")
            if title_el is None or link is None:
                continue
            class_text = " ".join(card.get("class") or [])
            job_id = _JOB_ID.search(class_text)
            lines = [line.strip() for line in card.get_text("\n").split("\n") if line.strip()]

            listings.append(
                RawListing(
                    title=title_el.get_text(" ", strip=True),
                    external_id=job_id.group(1) if job_id else None,
                    source_url=urljoin(url, link["href"]),
                    location_text=self._location(card, lines),
                    job_type=next((line for line in lines if _JOB_TYPE.match(line)), ""),
                    department=self._field(card, ".jobDepartment, .department"),
                    posted_date=self._field(card, ".jobDate, .date") or None,
                )
            )
        return listings, self.page_numbers(soup)

    @staticmethod
    def _field(card, selector: str) -> str:
        node = card.select_one(selector)
        return node.get_text(" ", strip=True) if node is not None else ""

    @staticmethod
    def _location(card, lines: list[str]) -> str:
        for node in card.select('[class*="location"]'):
            match = _CITY_STATE.search(node.get_text(" ", strip=True))
            if match:
                return match.group(0)
        for line in lines:
            match = _CITY_STATE.search(line)
            if match:
                return match.group(0)
        return ""
