from __future__ import annotations
from jobpipe.models.deleted_job import DeletedJob
from jobpipe.models.employer import Employer
from jobpipe.models.job import Job, LifecycleState

__all__ = ["DeletedJob", "Employer", "Job", "LifecycleState"]
