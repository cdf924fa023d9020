from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import NamedTuple

from bs4 import BeautifulSoup

from jobpipe.core.config import settings
from jobpipe.core.errors import NormalizationRejection
from jobpipe.crawlers.base import RawListing
from jobpipe.services.vocabulary import match_job_type, match_specialty
from jobpipe.utils.hash import identity_key

logger = logging.getLogger(__name__)

STATE_CODES = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR", "california": "CA",
    "colorado": "CO", "connecticut": "CT", "delaware": "DE", "florida": "FL", "georgia": "GA",
    "hawaii": "HI", "idaho": "ID", "illinois": "IL", "indiana": "IN", "iowa": "IA",
    "kansas": "KS", "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN", "mississippi": "MS",
    "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV", "new hampshire": "NH",
    "new jersey": "NJ", "new mexico": "NM", "new york": "NY", "north carolina": "NC",
    "north dakota": "ND", "ohio": "OH", "oklahoma": "OK", "oregon": "OR", "pennsylvania": "PA",
    "rhode island": "RI", "south carolina": "SC", "south dakota": "SD", "tennessee": "TN",
    "texas": "TX", "utah": "UT", "vermont": "VT", "virginia": "VA", "washington": "WA",
    "west virginia": "WV", "wisconsin": "WI", "wyoming": "WY", "district of columbia": "DC",
    "calif": "CA", "conn": "CT", "fla": "FL", "mass": "MA", "mich": "MI", "minn": "MN",
    "tenn": "TN", "tex": "TX", "wash": "WA", "wisc": "WI",
}
_VALID_CODES = set(STATE_CODES.values())
_COUNTRY_TOKENS = {"us", "usa", "united states", "united states of america"}

_AMOUNT = r"\s?(\d{1,3}(?:,\d{3})+|\d+)(?:\.(\d{1,2}))?\s*(k)?"
_SALARY_RANGE = re.compile(r"\$" + _AMOUNT + r"\s*(?:-|–|—|to)\s*\$?" + _AMOUNT, re.IGNORECASE)
_SALARY_SINGLE = re.compile(r"\$" + _AMOUNT, re.IGNORECASE)
_HOURLY_MARKERS = ("per hour", "/hour", "/hr", "hourly", "an hour", "per hr")
_ANNUAL_MARKERS = ("annual", "per year", "/year", "/yr", "yearly", "a year", "per annum")

# (specialty, keywords) checked against the title, most specific first
_SPECIALTY_KEYWORDS = (
    ("Float Pool", ("float", "floating", "all specialties", "multi-specialty", "multiple specialties", "various specialties")),
    ("Labor & Delivery", ("labor and delivery", "labor & delivery", "l&d", "l & d")),
    ("Maternity", ("maternity", "postpartum", "mother baby", "newborn nursery")),
    ("NICU", ("nicu", "neonatal intensive care")),
    ("PACU", ("pacu", "post-anesthesia", "post anesthesia", "recovery room")),
    ("OR", ("operating room", "perioperative", "or nurse", "or rn")),
    ("Progressive Care", ("progressive care", "stepdown", "step down", "step-down", "pcu")),
    ("ICU", ("intensive care", "icu", "critical care")),
    ("ER", ("emergency", "er nurse", "er rn")),
    ("Radiology", ("radiology",)),
    ("Oncology", ("oncology", "cancer")),
    ("Cardiac", ("cardiac", "cardiology")),
    ("Telemetry", ("telemetry",)),
    ("Med-Surg", ("med-surg", "med/surg", "medical surgical", "med surg", "medsurg")),
    ("Pediatrics", ("pediatric", "pediatrics", "peds", "pedi")),
    ("Geriatrics", ("geriatric", "geriatrics")),
    ("Mental Health", ("mental health", "psychiatric", "psych", "psychiatry", "behavioral health")),
    ("Rehabilitation", ("rehab", "rehabilitation")),
    ("Ambulatory", ("ambulatory", "amb/clinics")),
    ("Home Care", ("home care", "homecare")),
    ("Home Health", ("home health",)),
    ("Hospice", ("hospice", "palliative")),
    ("Travel", ("travel",)),
)
_SPECIALTY_RULES = tuple(
    (specialty, re.compile("|".join(rf"(?<![a-z]){re.escape(k)}(?![a-z])" for k in keywords)))
    for specialty, keywords in _SPECIALTY_KEYWORDS
)


class Salary(NamedTuple):
    minimum: float | None
    maximum: float | None
    kind: str


@dataclass
class NormalizedJob:
    employer_slug: str
    identity_key: str
    external_id: str | None
    slug: str
    title: str
    city: str
    state: str
    source_url: str = ""
    department: str | None = None
    description: str = ""
    posted_date: datetime | None = None
    job_type: str | None = None
    specialty: str | None = None
    salary_min: float | None = None
    salary_max: float | None = None
    salary_type: str | None = None


def normalize_state(value: str | None) -> str | None:
    key = " ".join((value or "").replace(".", "").split()).lower()
    if not key:
        return None
    if len(key) == 2 and key.upper() in _VALID_CODES:
        return key.upper()
    return STATE_CODES.get(key)


def normalize_city(value: str | None) -> str:
    words = (value or "").split()
    out = []
    for word in words:
        lower = word.lower().rstrip(".")
        if lower in ("st", "ft", "mt"):
            out.append(f"{lower.capitalize()}.")
        else:
            out.append("-".join(part.capitalize() for part in word.split("-")))
    return " ".join(out)


def split_location(text: str) -> tuple[str, str | None]:
    """``"Boston, MA"``, ``"New Haven, Connecticut, US"``, ``"US-MA-Boston"`` or ``"Boston-MA"``."""
    text = " ".join((text or "").split())
    if not text:
        return "", None

    workday = re.match(r"^(?:US|USA)-([A-Z]{2})-(.+)$", text)
    if workday:
        return workday.group(2).strip(), normalize_state(workday.group(1))

    parts = [p.strip() for p in text.split(",") if p.strip()]
    while parts and parts[-1].lower() in _COUNTRY_TOKENS:
        parts.pop()
    if len(parts) >= 2:
        state_part = re.sub(r"\s*\d{5}(?:-\d{4})?$", "", parts[-1])
        return parts[-2], normalize_state(state_part)

    dashed = re.match(r"^(.+?)\s*-\s*([A-Z]{2})\b", text)
    if dashed:
        return dashed.group(1).strip(), normalize_state(dashed.group(2))
    return "", None


def _money(whole: str, cents: str | None, thousands: str | None) -> float:
    value = float(whole.replace(",", ""))
    if cents:
        value += float(f"0.{cents}")
    if thousands:
        value *= 1000
    return value


def parse_salary(
    text: str | None,
    hourly_ceiling: float | None = None,
    annual_floor: float | None = None,
) -> Salary | None:
    if not text:
        return None
    hourly_ceiling = settings.salary_hourly_ceiling if hourly_ceiling is None else hourly_ceiling
    annual_floor = settings.salary_annual_floor if annual_floor is None else annual_floor

    match = _SALARY_RANGE.search(text)
    if match:
        low = _money(match.group(1), match.group(2), match.group(3))
        high = _money(match.group(4), match.group(5), match.group(6))
        if low > high:
            low, high = high, low
    else:
        single = _SALARY_SINGLE.search(text)
        if not single:
            return None
        low = high = _money(single.group(1), single.group(2), single.group(3))

    lower = text.lower()
    if any(marker in lower for marker in _HOURLY_MARKERS):
        kind = "hourly"
    elif any(marker in lower for marker in _ANNUAL_MARKERS):
        kind = "annual"
    else:
        kind = "annual" if high > 1000 else "hourly"

    if kind == "hourly" and high > hourly_ceiling:
        logger.warning("dropping implausible hourly salary %s-%s from %r", low, high, text[:80])
        return None
    if kind == "annual" and low < annual_floor:
        logger.warning("dropping implausible annual salary %s-%s from %r", low, high, text[:80])
        return None
    return Salary(low, high, kind)


def detect_specialty(title: str, department: str | None = None) -> str | None:
    for source in (title, department):
        lower = (source or "").lower()
        if not lower:
            continue
        direct = match_specialty(source)
        if direct:
            return direct
        for specialty, pattern in _SPECIALTY_RULES:
            if pattern.search(lower):
                return specialty
    return None


def parse_posted_date(value) -> datetime | None:
    if isinstance(value, datetime):
        return value
    raw = str(value or "").strip()
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        return parsed.replace(tzinfo=None)
    except ValueError:
        pass
    for fmt in ("%m/%d/%Y", "%B %d, %Y", "%b %d, %Y", "%Y-%m-%d"):
        try:
            return datetime.strptime(raw, fmt)
        except ValueError:
            continue
    return None


def clean_description(value: str | None) -> str:
    raw = value or ""
    if "<" in raw and ">" in raw:
        raw = BeautifulSoup(raw, "html.parser").get_text("\n")
    lines = [" ".join(line.split()) for line in raw.splitlines()]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


def job_slug(title: str, city: str, state: str, job_id: str) -> str:
    def _slugify(value: str) -> str:
        return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")

    clean_title = _slugify(re.sub(r"\[[^\]]*\]", "", title))[:50].strip("-")
    clean_id = re.sub(r"[^a-z0-9]", "", str(job_id).lower())
    parts = [p for p in (clean_title, _slugify(city), state.lower(), clean_id) if p]
    return re.sub(r"-+", "-", "-".join(parts))[:100].strip("-")


def normalize(listing: RawListing) -> NormalizedJob:
    title = " ".join((listing.title or "").split())
    if not title:
        raise NormalizationRejection("missing title", listing.external_id)
    if not listing.employer_slug:
        raise NormalizationRejection("missing employer", listing.external_id)

    city, state = listing.city, normalize_state(listing.state)
    if not (city and state):
        parsed_city, parsed_state = split_location(listing.location_text)
        city, state = city or parsed_city, state or parsed_state
    city = normalize_city(city)
    if not city or not state:
        raise NormalizationRejection(
            f"missing location (location_text={listing.location_text!r})", listing.external_id
        )

    posted = parse_posted_date(listing.posted_date)
    key = identity_key(
        listing.employer_slug,
        listing.external_id,
        title=title,
        location=f"{city}, {state}",
        posted_date=posted.date().isoformat() if posted else "",
    )
    salary = parse_salary(listing.salary_text)
    department = " ".join(listing.department.split()) or None

    return NormalizedJob(
        employer_slug=listing.employer_slug,
        identity_key=key,
        external_id=listing.external_id,
        slug=job_slug(title, city, state, listing.external_id or key[:10]),
        title=title[:512],
        city=city,
        state=state,
        source_url=listing.source_url,
        department=department,
        description=clean_description(listing.description),
        posted_date=posted,
        job_type=match_job_type(listing.job_type),
        specialty=detect_specialty(title, department),
        salary_min=salary.minimum if salary else None,
        salary_max=salary.maximum if salary else None,
        salary_type=salary.kind if salary else None,
    )
