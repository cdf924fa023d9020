from __future__ import annotations
from jobpipe.schemas.job import GoneOut, JobDetailOut, JobOut

__all__ = ["GoneOut", "JobDetailOut", "JobOut"]
