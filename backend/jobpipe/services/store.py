from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from jobpipe.core.errors import IdentityConflictError
from jobpipe.models.deleted_job import DeletedJob
from jobpipe.models.employer import Employer
from jobpipe.models.job import Job, LifecycleState
from jobpipe.services.normalizer import NormalizedJob
from jobpipe.utils.clock import utcnow

logger = logging.getLogger(__name__)

# Fields owned by the source. Classification-owned fields are never overwritten by re-ingestion.
TRACKED_FIELDS = (
    "external_id",
    "title",
    "city",
    "state",
    "department",
    "description",
    "source_url",
    "posted_date",
    "salary_min",
    "salary_max",
    "salary_type",
)


class UpsertOutcome(str, enum.Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass
class UpsertResult:
    outcome: UpsertOutcome
    job_id: int
    lifecycle_state: str
    slug: str
    changed_fields: list[str] = field(default_factory=list)


@dataclass
class Classification:
    specialty: str
    job_type: str | None = None
    shift_type: str | None = None
    experience_level: str | None = None
    is_eligible: bool = True
    confidence: float | None = None


class ActivationStore:
    def __init__(self, db: Session):
        self.db = db

    def get_employer(self, slug: str) -> Employer | None:
        return self.db.query(Employer).filter(Employer.slug == slug).first()

    def list_employers(self) -> list[Employer]:
        return self.db.query(Employer).order_by(Employer.slug).all()

    def find_by_identity_key(self, employer_id: int, identity_key: str) -> Job | None:
        return (
            self.db.query(Job)
            .filter(Job.employer_id == employer_id, Job.identity_key == identity_key)
            .first()
        )

    def upsert(self, employer_id: int, job: NormalizedJob) -> UpsertResult:
        now = utcnow()
        existing = (
            self.db.query(Job)
            .filter(Job.employer_id == employer_id, Job.identity_key == job.identity_key)
            .with_for_update()
            .first()
        )
        if existing is not None:
            return self._update(existing, job, now)

        record = self._new_record(employer_id, job, job.slug, now)
        self.db.add(record)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.find_by_identity_key(employer_id, job.identity_key)
            if existing is not None:
                conflict = IdentityConflictError(f"concurrent insert for identity_key={job.identity_key}")
                logger.warning("data integrity: %s; applying as update", conflict)
                return self._update(existing, job, now)

            # slug taken by a different identity
            record = self._new_record(employer_id, job, f"{job.slug[:90]}-{job.identity_key[:8]}", now)
            self.db.add(record)
            self.db.commit()

        self.db.refresh(record)
        return UpsertResult(UpsertOutcome.INSERTED, record.id, record.lifecycle_state, record.slug)

    @staticmethod
    def _new_record(employer_id: int, job: NormalizedJob, slug: str, now: datetime) -> Job:
        return Job(
            employer_id=employer_id,
            identity_key=job.identity_key,
            external_id=job.external_id,
            slug=slug,
            title=job.title,
            city=job.city,
            state=job.state,
            department=job.department,
            description=job.description,
            source_url=job.source_url,
            posted_date=job.posted_date,
            job_type=job.job_type,
            specialty=job.specialty,
            salary_min=job.salary_min,
            salary_max=job.salary_max,
            salary_type=job.salary_type,
            lifecycle_state=LifecycleState.PENDING.value,
            first_seen_at=now,
            last_seen_at=now,
            updated_at=now,
        )

    def _update(self, existing: Job, job: NormalizedJob, now: datetime) -> UpsertResult:
        changed = [name for name in TRACKED_FIELDS if getattr(existing, name) != getattr(job, name)]
        for name in changed:
            setattr(existing, name, getattr(job, name))
        existing.last_seen_at = now
        if changed:
            existing.updated_at = now
        self.db.add(existing)
        self.db.commit()
        outcome = UpsertOutcome.UPDATED if changed else UpsertOutcome.UNCHANGED
        return UpsertResult(outcome, existing.id, existing.lifecycle_state, existing.slug, changed)

    def list_pending(self, employer_id: int | None = None, limit: int | None = None) -> list[Job]:
        query = self.db.query(Job).filter(Job.lifecycle_state == LifecycleState.PENDING.value)
        if employer_id is not None:
            query = query.filter(Job.employer_id == employer_id)
        query = query.order_by(Job.id)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def _apply_classification(self, job_ids: Iterable[int], classification: Classification, state: LifecycleState) -> list[Job]:
        ids = list(job_ids)
        if not ids:
            return []
        rows = (
            self.db.query(Job)
            .filter(Job.id.in_(ids), Job.lifecycle_state == LifecycleState.PENDING.value)
            .all()
        )
        now = utcnow()
        for row in rows:
            row.specialty = classification.specialty or row.specialty
            row.job_type = classification.job_type or row.job_type
            row.shift_type = classification.shift_type
            row.experience_level = classification.experience_level
            row.lifecycle_state = state.value
            row.classified_at = now
            row.updated_at = now
            self.db.add(row)
        self.db.commit()
        return rows

    def mark_active(self, job_ids: Iterable[int], classification: Classification) -> list[Job]:
        if not classification.specialty:
            raise ValueError("refusing to activate a job without a specialty")
        return self._apply_classification(job_ids, classification, LifecycleState.ACTIVE)

    def mark_ineligible(self, job_ids: Iterable[int], classification: Classification) -> list[Job]:
        return self._apply_classification(job_ids, classification, LifecycleState.INACTIVE)

    def create_tombstone(self, slug: str, reason: str = "") -> DeletedJob:
        tombstone = self.find_tombstone(slug)
        if tombstone is None:
            tombstone = DeletedJob(slug=slug, reason=reason, created_at=utcnow())
            self.db.add(tombstone)
        job = self.db.query(Job).filter(Job.slug == slug).first()
        if job is not None and job.lifecycle_state != LifecycleState.DELETED.value:
            job.lifecycle_state = LifecycleState.DELETED.value
            job.updated_at = utcnow()
            self.db.add(job)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return self.find_tombstone(slug)
        self.db.refresh(tombstone)
        return tombstone

    def find_tombstone(self, slug: str) -> DeletedJob | None:
        return self.db.query(DeletedJob).filter(DeletedJob.slug == slug).first()

    def find_visible(self, slug: str) -> Job | None:
        return (
            self.db.query(Job)
            .filter(Job.slug == slug, Job.lifecycle_state == LifecycleState.ACTIVE.value)
            .first()
        )

    def list_active(
        self,
        employer_slug: str | None = None,
        specialty: str | None = None,
        state: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Job]:
        query = self.db.query(Job).filter(Job.lifecycle_state == LifecycleState.ACTIVE.value)
        if employer_slug:
            query = query.join(Employer, Employer.id == Job.employer_id).filter(Employer.slug == employer_slug)
        if specialty:
            query = query.filter(Job.specialty == specialty)
        if state:
            query = query.filter(Job.state == state.upper())
        return query.order_by(Job.posted_date.desc(), Job.id.desc()).offset(offset).limit(limit).all()
