from __future__ import annotations
import hashlib


def _clean(value: str | None) -> str:
    return " ".join((value or "").split()).lower()


def identity_key(
    employer_slug: str,
    external_id: str | None = None,
    title: str = "",
    location: str = "",
    posted_date: str = "",
) -> str:
    if external_id and external_id.strip():
        raw = f"{_clean(employer_slug)}|id|{external_id.strip()}"
    else:
        raw = f"{_clean(employer_slug)}|{_clean(title)}|{_clean(location)}|{_clean(posted_date)}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
