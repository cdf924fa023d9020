from __future__ import annotations

from jobpipe.core.errors import AdapterFetchError
from jobpipe.crawlers.base import AdapterConfig, ParamPaginatedAdapter, RawListing
from jobpipe.crawlers.http_helpers import fetch_json


class JibeAdapter(ParamPaginatedAdapter):
    """Jibe career sites expose ``/api/jobs?page=N&limit=M`` as JSON."""

    adapter_name = "jibe"
    page_size = 50

    def fetch_page(self, config: AdapterConfig, page: int) -> list[RawListing]:
        opts = config.options
        api_url = opts["api_url"]
        limit = self.page_limit(config)
        params = {"page": page, "limit": limit}
        if opts.get("categories"):
            params["categories"] = "|".join(opts["categories"])

        data = fetch_json(api_url, params=params)
        if not isinstance(data, dict) or not isinstance(data.get("jobs"), list):
            raise AdapterFetchError("jibe response has no 'jobs' list", api_url)

        listings: list[RawListing] = []
        for item in data["jobs"]:
            job = item.get("data") if isinstance(item, dict) else None
            if not isinstance(job, dict):
                continue
            listings.append(self._to_listing(job, opts))
        return listings

    @staticmethod
    def _to_listing(job: dict, opts: dict) -> RawListing:
        slug = str(job.get("slug") or "").strip()
        external_id = slug or str(job.get("req_id") or "").strip() or None
        meta = job.get("meta_data") or {}
        source_url = meta.get("canonical_url") or ""
        if not source_url and slug and opts.get("job_page_base_url"):
            source_url = f"{opts['job_page_base_url'].rstrip('/')}/{slug}?lang=en-us"

        categories = job.get("categories") or []
        department = ""
        if categories and isinstance(categories[0], dict):
            department = str(categories[0].get("name") or "")

        return RawListing(
            title=str(job.get("title") or "").strip(),
            external_id=external_id,
            source_url=source_url,
            city=str(job.get("city") or "").strip(),
            state=str(job.get("state") or "").strip(),
            location_text=str(job.get("location_name") or job.get("full_location") or ""),
            department=department,
            job_type=str(job.get("employment_type") or ""),
            description=str(job.get("description") or ""),
            salary_text=str(job.get("salary") or job.get("pay_range") or ""),
            posted_date=job.get("posted_date"),
            raw_payload={"req_id": job.get("req_id"), "slug": slug},
        )
