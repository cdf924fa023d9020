from __future__ import annotations

SPECIALTIES = (
    "Ambulatory",
    "Cardiac",
    "ER",
    "Float Pool",
    "General Nursing",
    "Geriatrics",
    "Home Care",
    "Home Health",
    "Hospice",
    "ICU",
    "Labor & Delivery",
    "Maternity",
    "Med-Surg",
    "Mental Health",
    "NICU",
    "Oncology",
    "OR",
    "PACU",
    "Pediatrics",
    "Progressive Care",
    "Radiology",
    "Rehabilitation",
    "Telemetry",
    "Travel",
)

JOB_TYPES = ("full-time", "part-time", "per-diem", "contract", "travel")
SHIFT_TYPES = ("days", "nights", "evenings", "variable", "rotating")
EXPERIENCE_LEVELS = ("entry-level", "new-grad", "experienced", "senior", "leadership")

_JOB_TYPE_ALIASES = {
    "full-time": "full-time",
    "fulltime": "full-time",
    "full time": "full-time",
    "ft": "full-time",
    "f/t": "full-time",
    "part-time": "part-time",
    "parttime": "part-time",
    "part time": "part-time",
    "pt": "part-time",
    "p/t": "part-time",
    "prn": "per-diem",
    "per diem": "per-diem",
    "per-diem": "per-diem",
    "perdiem": "per-diem",
    "contract": "contract",
    "temporary": "contract",
    "temp": "contract",
    "seasonal": "contract",
    "travel": "travel",
}


def _key(value: str) -> str:
    return " ".join(value.replace("_", " ").split()).lower()


def match_job_type(value: str | None) -> str | None:
    if not value:
        return None
    key = _key(value)
    if key in _JOB_TYPE_ALIASES:
        return _JOB_TYPE_ALIASES[key]
    for needle, canonical in (
        ("full", "full-time"),
        ("part", "part-time"),
        ("prn", "per-diem"),
        ("per diem", "per-diem"),
        ("contract", "contract"),
        ("travel", "travel"),
    ):
        if needle in key:
            return canonical
    return None


def match_specialty(value: str | None) -> str | None:
    if not value:
        return None
    key = _key(value)
    for specialty in SPECIALTIES:
        if _key(specialty) == key:
            return specialty
    return None


def match_shift_type(value: str | None) -> str | None:
    if not value:
        return None
    key = _key(value)
    return key if key in SHIFT_TYPES else None


def match_experience_level(value: str | None) -> str | None:
    if not value:
        return None
    key = _key(value).replace(" ", "-")
    return key if key in EXPERIENCE_LEVELS else None
