from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from jobpipe.db.database import Base
from jobpipe.utils.clock import utcnow


class LifecycleState(str, enum.Enum):
    PENDING = "pending-classification"
    ACTIVE = "active"
    INACTIVE = "inactive"
    DELETED = "deleted"


class Job(Base):
    __tablename__ = "jobs"
    __table_args__ = (
        UniqueConstraint("employer_id", "identity_key", name="uq_jobs_employer_identity"),
        CheckConstraint(
            "lifecycle_state != 'active' OR specialty IS NOT NULL",
            name="ck_jobs_active_has_specialty",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    employer_id: Mapped[int] = mapped_column(ForeignKey("employers.id", ondelete="RESTRICT"), nullable=False)
    identity_key: Mapped[str] = mapped_column(String(64), nullable=False)
    external_id: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    slug: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)

    title: Mapped[str] = mapped_column(String(512), nullable=False)
    city: Mapped[str] = mapped_column(String(128), nullable=False)
    state: Mapped[str] = mapped_column(String(8), nullable=False)
    department: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    source_url: Mapped[str] = mapped_column(String(1024), default="", nullable=False)
    posted_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    specialty: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    job_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    shift_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    experience_level: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    salary_min: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    salary_max: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    salary_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    lifecycle_state: Mapped[str] = mapped_column(
        String(32), default=LifecycleState.PENDING.value, nullable=False, index=True
    )
    classified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    first_seen_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    @property
    def is_visible(self) -> bool:
        return self.lifecycle_state == LifecycleState.ACTIVE.value
