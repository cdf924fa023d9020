from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from jobpipe.db.database import Base
from jobpipe.models import DeletedJob, Employer, Job  # noqa: F401
from jobpipe.services.normalizer import NormalizedJob
from jobpipe.utils.hash import identity_key


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    yield factory
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def employer(db):
    row = Employer(
        slug="test-health",
        name="Test Health",
        adapter="fake",
        adapter_config={},
        career_page_url="https://careers.test-health.org",
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _make_job(external_id: str = "R100", title: str = "Registered Nurse - ICU", **overrides) -> NormalizedJob:
    fields = {
        "employer_slug": "test-health",
        "identity_key": identity_key("test-health", external_id),
        "external_id": external_id,
        "slug": f"registered-nurse-icu-boston-ma-{external_id.lower()}",
        "title": title,
        "city": "Boston",
        "state": "MA",
        "source_url": f"https://careers.test-health.org/jobs/{external_id}",
        "department": "Critical Care",
        "description": "Provide bedside care.",
        "specialty": "ICU",
    }
    fields.update(overrides)
    return NormalizedJob(**fields)


@pytest.fixture()
def make_job():
    return _make_job
