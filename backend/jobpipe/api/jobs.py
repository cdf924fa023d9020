from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from jobpipe.db.database import get_db
from jobpipe.schemas.job import GoneOut, JobDetailOut, JobOut
from jobpipe.services.announcer import public_job_url
from jobpipe.services.lookup import LookupStatus, lookup_job
from jobpipe.services.store import ActivationStore

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("", response_model=list[JobOut])
def list_jobs(
    employer: str | None = None,
    specialty: str | None = None,
    state: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    rows = ActivationStore(db).list_active(employer, specialty, state, limit=limit, offset=offset)
    return [JobOut.model_validate(row).model_copy(update={"url": public_job_url(row.slug)}) for row in rows]


@router.get("/{slug}", response_model=JobDetailOut, responses={410: {"model": GoneOut}})
def get_job(slug: str, db: Session = Depends(get_db)):
    result = lookup_job(ActivationStore(db), slug)
    if result.status == LookupStatus.GONE:
        return JSONResponse(
            status_code=410,
            content=GoneOut(detail="job removed", slug=slug, reason=result.reason).model_dump(),
        )
    if result.status == LookupStatus.NOT_FOUND:
        raise HTTPException(status_code=404, detail="job not found")
    job = result.job
    return JobDetailOut.model_validate(job).model_copy(update={"url": public_job_url(job.slug)})
