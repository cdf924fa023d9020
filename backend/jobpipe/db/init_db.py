from __future__ import annotations
from jobpipe.db.database import Base, engine
from jobpipe.models import deleted_job, employer, job  # noqa: F401
from jobpipe.services.seed import seed_employers_if_needed


def init_db() -> None:
    Base.metadata.create_all(bind=engine)
    seed_employers_if_needed()
