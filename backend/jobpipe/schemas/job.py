from __future__ import annotations
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class JobOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    slug: str
    title: str
    city: str
    state: str
    department: str | None
    specialty: str | None
    job_type: str | None
    shift_type: str | None
    experience_level: str | None
    salary_min: float | None
    salary_max: float | None
    salary_type: str | None
    posted_date: datetime | None
    source_url: str
    url: str = ""


class JobDetailOut(JobOut):
    description: str


class GoneOut(BaseModel):
    detail: str
    slug: str
    reason: str = ""
