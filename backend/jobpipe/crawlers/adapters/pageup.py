from __future__ import annotations

import re
from urllib.parse import urljoin

from jobpipe.crawlers.base import AdapterConfig, NextLinkAdapter, RawListing
from jobpipe.crawlers.http_helpers import fetch_html, soup_links

_JOB_UUID = re.compile(r"[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}")


def _text(node) -> str:
    return " ".join(node.get_text(" ", strip=True).split()) if node is not None else ""


class PageUpAdapter(NextLinkAdapter):
    """PageUp search results, paged through ``a[rel=next]``."""

    adapter_name = "pageup"
    results_selector = "#search-results"

    def start_url(self, config: AdapterConfig) -> str:
        return config.options["search_url"]

    def fetch_page(self, config: AdapterConfig, url: str) -> tuple[list[RawListing], str | None]:
        html = fetch_html(url)
        soup, _ = soup_links(html)
        container = self.require_container(soup, config.options.get("results_selector", self.results_selector), url)

        listings: list[RawListing] = []
        seen: set[str] = set()
        for a in container.select('a[href*="/jobs/"]'):
            href = urljoin(url, (a.get("href") or "").strip())
            if "/jobs/search" in href or "#" in href:
                continue
            match = _JOB_UUID.search(href)
            if not match or match.group(0) in seen:
                continue
            seen.add(match.group(0))

            row = a.find_parent(["li", "tr", "article"]) or a.parent
            listings.append(
                RawListing(
                    title=_text(a),
                    external_id=match.group(0),
                    source_url=href,
                    location_text=_text(row.select_one('.location, .job-location, [class*="location"]')),
                    department=_text(row.select_one('.department, .category, [class*="department"]')),
                    job_type=_text(row.select_one('.work-type, [class*="work-type"]')),
                    salary_text=_text(row.select_one('.salary, [class*="salary"]')),
                    posted_date=_text(row.select_one("time")) or None,
                )
            )
        return listings, self.find_next_link(soup, url)
