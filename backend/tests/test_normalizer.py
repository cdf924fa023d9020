from __future__ import annotations
from datetime import datetime

import pytest

from jobpipe.core.errors import NormalizationRejection
from jobpipe.crawlers.base import RawListing
from jobpipe.services.normalizer import (
    clean_description,
    detect_specialty,
    job_slug,
    normalize,
    normalize_city,
    normalize_state,
    parse_posted_date,
    parse_salary,
    split_location,
)


def _listing(**overrides) -> RawListing:
    fields = {
        "title": "Registered Nurse - Medical ICU",
        "external_id": "REQ-001",
        "source_url": "https://jobs.example.org/jobs/REQ-001",
        "employer_slug": "example-health",
        "location_text": "Boston, MA",
    }
    fields.update(overrides)
    return RawListing(**fields)


def test_normalize_state_accepts_codes_and_names():
    assert normalize_state("ma") == "MA"
    assert normalize_state("Massachusetts") == "MA"
    assert normalize_state("New  York") == "NY"
    assert normalize_state("Mass.") == "MA"
    assert normalize_state("Ontario") is None
    assert normalize_state("") is None


def test_normalize_city_handles_abbreviations_and_hyphens():
    assert normalize_city("st. louis") == "St. Louis"
    assert normalize_city("FT WORTH") == "Ft. Worth"
    assert normalize_city("wilkes-barre") == "Wilkes-Barre"


@pytest.mark.parametrize(
    "text,expected",
    [
        ("Boston, MA", ("Boston", "MA")),
        ("New Haven, Connecticut, US", ("New Haven", "CT")),
        ("Syracuse, NY 13210", ("Syracuse", "NY")),
        ("US-MA-Boston", ("Boston", "MA")),
        ("Cleveland - OH", ("Cleveland", "OH")),
        ("Remote", ("", None)),
        ("", ("", None)),
    ],
)
def test_split_location(text, expected):
    assert split_location(text) == expected


def test_parse_salary_hourly_range():
    salary = parse_salary("$45.50 - $62.25 per hour")
    assert salary.minimum == 45.5
    assert salary.maximum == 62.25
    assert salary.kind == "hourly"


def test_parse_salary_annual_with_k_suffix():
    salary = parse_salary("Pay range: $85k to $110k")
    assert (salary.minimum, salary.maximum, salary.kind) == (85000, 110000, "annual")


def test_parse_salary_without_marker_uses_magnitude():
    assert parse_salary("$38").kind == "hourly"
    assert parse_salary("$92,000").kind == "annual"


def test_parse_salary_drops_implausible_values():
    assert parse_salary("$450 per hour") is None
    assert parse_salary("$9,000 per year") is None


def test_parse_salary_ignores_text_without_dollar_amounts():
    assert parse_salary("3-5 years of experience required") is None
    assert parse_salary("") is None


def test_detect_specialty_uses_title_then_department():
    assert detect_specialty("RN - Neonatal Intensive Care") == "NICU"
    assert detect_specialty("Staff Nurse", "NURSING-STAFF - ONCOLOGY") == "Oncology"
    assert detect_specialty("Registered Nurse Med/Surg Nights") == "Med-Surg"
    assert detect_specialty("Nurse Coordinator RN") is None


def test_parse_posted_date_formats():
    assert parse_posted_date("2025-03-04T10:00:00Z") == datetime(2025, 3, 4, 10, 0)
    assert parse_posted_date("03/04/2025") == datetime(2025, 3, 4)
    assert parse_posted_date("March 4, 2025") == datetime(2025, 3, 4)
    assert parse_posted_date("last week") is None


def test_clean_description_strips_markup():
    text = clean_description("<p>Provide <b>direct</b> care.</p>\n\n\n\n<ul><li>BLS</li></ul>")
    assert "<" not in text
    assert "direct" in text
    assert "\n\n\n" not in text


def test_job_slug_is_url_safe_and_bounded():
    slug = job_slug("Registered Nurse [Nights] - ICU/Step Down " * 4, "St. Louis", "MO", "R-123")
    assert slug.startswith("registered-nurse-icu-step-down")
    assert slug.endswith("st-louis-mo-r123")
    assert len(slug) <= 100
    assert "--" not in slug


def test_normalize_builds_canonical_record():
    job = normalize(
        _listing(
            job_type="Full Time",
            department="Critical Care",
            salary_text="$48 - $70 hourly",
            posted_date="2025-02-01",
        )
    )

    assert job.city == "Boston"
    assert job.state == "MA"
    assert job.job_type == "full-time"
    assert job.specialty == "ICU"
    assert job.salary_type == "hourly"
    assert job.posted_date == datetime(2025, 2, 1)
    assert job.slug == "registered-nurse-medical-icu-boston-ma-req001"
    assert len(job.identity_key) == 64


def test_normalize_prefers_structured_city_and_state():
    job = normalize(_listing(city="new haven", state="Connecticut", location_text="somewhere else"))
    assert (job.city, job.state) == ("New Haven", "CT")


def test_normalize_is_deterministic():
    assert normalize(_listing()) == normalize(_listing())


@pytest.mark.parametrize(
    "overrides,reason",
    [
        ({"title": "   "}, "missing title"),
        ({"employer_slug": ""}, "missing employer"),
        ({"location_text": "Remote"}, "missing location"),
    ],
)
def test_normalize_rejects_incomplete_listings(overrides, reason):
    with pytest.raises(NormalizationRejection) as exc_info:
        normalize(_listing(**overrides))
    assert exc_info.value.reason.startswith(reason)
    assert exc_info.value.external_id == "REQ-001"
