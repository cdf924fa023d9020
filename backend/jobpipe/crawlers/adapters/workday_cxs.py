from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta

from jobpipe.core.errors import AdapterFetchError
from jobpipe.crawlers.base import AdapterConfig, ParamPaginatedAdapter, RawListing
from jobpipe.crawlers.http_helpers import fetch_json, post_json
from jobpipe.utils.clock import utcnow

logger = logging.getLogger(__name__)

_DAYS_AGO = re.compile(r"(\d+)\+?\s+days?\s+ago", re.IGNORECASE)


def parse_posted_on(text: str, today: datetime | None = None) -> str | None:
    """Turn Workday's ``Posted 3 Days Ago`` into an ISO date."""
    lower = (text or "").lower()
    base = (today or utcnow()).replace(hour=0, minute=0, second=0, microsecond=0)
    if "today" in lower:
        return base.date().isoformat()
    if "yesterday" in lower:
        return (base - timedelta(days=1)).date().isoformat()
    match = _DAYS_AGO.search(lower)
    if match:
        return (base - timedelta(days=int(match.group(1)))).date().isoformat()
    return None


def facility_location(text: str, opts: dict) -> str:
    """Map a Workday facility name to ``City, ST`` when the employer configures one.

    Some tenants report facility names or street addresses instead of a city.
    """
    facilities = opts.get("facility_locations") or {}
    if not facilities:
        return text
    mapped = facilities.get(text.strip())
    if mapped:
        return mapped
    if "," in text:
        return text
    return opts.get("default_location") or text


class WorkdayCxsAdapter(ParamPaginatedAdapter):
    """Workday's CXS search API, paged by ``offset`` in a POST body."""

    adapter_name = "workday_cxs"
    page_size = 20

    @staticmethod
    def _api_base(opts: dict) -> str:
        return (
            f"https://{opts['tenant']}.{opts.get('subdomain', 'wd1')}.myworkdayjobs.com"
            f"/wday/cxs/{opts['tenant']}/{opts['site']}"
        )

    def fetch_page(self, config: AdapterConfig, page: int) -> list[RawListing]:
        opts = config.options
        limit = self.page_limit(config)
        url = f"{self._api_base(opts)}/jobs"
        payload = {
            "appliedFacets": {opts.get("facet", "jobFamily"): list(opts.get("job_families") or [])},
            "limit": limit,
            "offset": (page - 1) * limit,
            "searchText": opts.get("search_text", ""),
        }
        data = post_json(url, payload)
        if not isinstance(data, dict) or not isinstance(data.get("jobPostings"), list):
            raise AdapterFetchError("workday response has no 'jobPostings' list", url)

        listings = []
        for posting in data["jobPostings"]:
            if not isinstance(posting, dict) or not posting.get("externalPath"):
                continue
            listing = self._to_listing(posting, opts)
            if opts.get("fetch_details", True):
                config.check_cancelled()
                self._apply_details(listing, opts)
            listings.append(listing)
        return listings

    @staticmethod
    def _to_listing(posting: dict, opts: dict) -> RawListing:
        path = posting["externalPath"]
        bullets = posting.get("bulletFields") or []
        external_id = str(bullets[0]) if bullets else path.rstrip("/").split("/")[-1]
        career_url = opts.get("career_page_url", "").rstrip("/")
        return RawListing(
            title=str(posting.get("title") or "").strip(),
            external_id=external_id,
            source_url=f"{career_url}{path}",
            location_text=facility_location(str(posting.get("locationsText") or ""), opts),
            posted_date=parse_posted_on(str(posting.get("postedOn") or "")),
            raw_payload={"external_path": path},
        )

    def _apply_details(self, listing: RawListing, opts: dict) -> None:
        url = f"{self._api_base(opts)}{listing.raw_payload['external_path']}"
        detail = fetch_json(url)
        info = detail.get("jobPostingInfo") if isinstance(detail, dict) else None
        if not isinstance(info, dict):
            logger.warning("workday detail for %s has no jobPostingInfo", listing.external_id)
            return
        listing.description = str(info.get("jobDescription") or "")
        listing.salary_text = listing.description
        listing.job_type = str(info.get("timeType") or "")
        if info.get("location"):
            listing.location_text = facility_location(str(info["location"]), opts)
        if info.get("jobReqId"):
            listing.external_id = str(info["jobReqId"])
        if info.get("startDate"):
            listing.posted_date = str(info["startDate"])
