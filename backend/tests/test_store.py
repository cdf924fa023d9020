from __future__ import annotations

import logging
import warnings
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from jobpipe.db.database import Base
from jobpipe.models.deleted_job import DeletedJob
from jobpipe.models.employer import Employer
from jobpipe.models.job import Job, LifecycleState
from jobpipe.services.store import ActivationStore, Classification, UpsertOutcome


def test_upsert_inserts_pending_then_is_idempotent(db, employer, make_job):
    store = ActivationStore(db)

    first = store.upsert(employer.id, make_job("R1"))
    again = store.upsert(employer.id, make_job("R1"))

    assert first.outcome == UpsertOutcome.INSERTED
    assert first.lifecycle_state == LifecycleState.PENDING.value
    assert again.outcome == UpsertOutcome.UNCHANGED
    assert again.job_id == first.job_id
    assert again.changed_fields == []
    assert db.query(Job).count() == 1


def test_upsert_updates_changed_fields_and_keeps_lifecycle_state(db, employer, make_job):
    store = ActivationStore(db)
    inserted = store.upsert(employer.id, make_job("R1"))
    store.mark_active([inserted.job_id], Classification(specialty="ICU", job_type="full-time", shift_type="nights"))

    result = store.upsert(employer.id, make_job("R1", title="Registered Nurse - ICU (Sign-on Bonus)", specialty="Float Pool"))

    assert result.outcome == UpsertOutcome.UPDATED
    assert result.changed_fields == ["title"]
    assert result.lifecycle_state == LifecycleState.ACTIVE.value
    row = db.get(Job, inserted.job_id)
    assert row.title == "Registered Nurse - ICU (Sign-on Bonus)"
    # classification-owned fields survive re-ingestion
    assert row.specialty == "ICU"
    assert row.shift_type == "nights"


def test_slug_collision_gets_identity_suffix(db, employer, make_job):
    store = ActivationStore(db)
    a = store.upsert(employer.id, make_job("R1", slug="registered-nurse-boston-ma"))
    b = store.upsert(employer.id, make_job("R2", slug="registered-nurse-boston-ma"))

    assert a.slug == "registered-nurse-boston-ma"
    assert b.outcome == UpsertOutcome.INSERTED
    assert b.slug.startswith("registered-nurse-boston-ma-")
    assert b.slug != a.slug


def test_identity_key_is_unique_per_employer(db, employer):
    db.add_all(
        [
            Job(employer_id=employer.id, identity_key="k", slug="a", title="RN", city="Boston", state="MA"),
            Job(employer_id=employer.id, identity_key="k", slug="b", title="RN", city="Boston", state="MA"),
        ]
    )
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_database_refuses_active_job_without_specialty(db, employer):
    db.add(
        Job(
            employer_id=employer.id,
            identity_key="k",
            slug="a",
            title="RN",
            city="Boston",
            state="MA",
            lifecycle_state=LifecycleState.ACTIVE.value,
        )
    )
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_mark_active_requires_specialty(db, employer, make_job):
    store = ActivationStore(db)
    inserted = store.upsert(employer.id, make_job("R1"))

    with pytest.raises(ValueError):
        store.mark_active([inserted.job_id], Classification(specialty=""))
    assert db.get(Job, inserted.job_id).lifecycle_state == LifecycleState.PENDING.value


def test_mark_active_only_moves_pending_jobs(db, employer, make_job):
    store = ActivationStore(db)
    pending = store.upsert(employer.id, make_job("R1"))
    inactive = store.upsert(employer.id, make_job("R2"))
    store.mark_ineligible([inactive.job_id], Classification(specialty="ICU", is_eligible=False))

    rows = store.mark_active([pending.job_id, inactive.job_id], Classification(specialty="Oncology"))

    assert [row.id for row in rows] == [pending.job_id]
    assert db.get(Job, pending.job_id).lifecycle_state == LifecycleState.ACTIVE.value
    assert db.get(Job, pending.job_id).specialty == "Oncology"
    assert db.get(Job, pending.job_id).classified_at is not None
    assert db.get(Job, inactive.job_id).lifecycle_state == LifecycleState.INACTIVE.value
    assert [job.id for job in store.list_pending(employer.id)] == []


def test_tombstone_hides_job_and_is_idempotent(db, employer, make_job):
    store = ActivationStore(db)
    inserted = store.upsert(employer.id, make_job("R1"))
    store.mark_active([inserted.job_id], Classification(specialty="ICU"))

    first = store.create_tombstone(inserted.slug, "filled")
    second = store.create_tombstone(inserted.slug, "duplicate call")

    assert first.id == second.id
    assert second.reason == "filled"
    assert db.query(DeletedJob).count() == 1
    assert db.get(Job, inserted.job_id).lifecycle_state == LifecycleState.DELETED.value
    assert store.find_visible(inserted.slug) is None


def test_tombstone_for_unknown_slug_is_recorded(db):
    store = ActivationStore(db)
    row = store.create_tombstone("never-existed-ny-1", "removed by source")
    assert store.find_tombstone("never-existed-ny-1").id == row.id


def test_list_active_filters(db, employer, make_job):
    store = ActivationStore(db)
    boston = store.upsert(employer.id, make_job("R1"))
    albany = store.upsert(employer.id, make_job("R2", city="Albany", state="NY", slug="rn-albany-ny-r2"))
    store.upsert(employer.id, make_job("R3", slug="rn-boston-ma-r3"))
    store.mark_active([boston.job_id], Classification(specialty="ICU"))
    store.mark_active([albany.job_id], Classification(specialty="Oncology"))

    assert {job.id for job in store.list_active()} == {boston.job_id, albany.job_id}
    assert [job.id for job in store.list_active(state="ny")] == [albany.job_id]
    assert [job.id for job in store.list_active(specialty="ICU")] == [boston.job_id]
    assert len(store.list_active(employer_slug="test-health")) == 2
    assert store.list_active(employer_slug="other") == []


def test_concurrent_insert_of_same_identity_becomes_an_update(tmp_path, make_job, caplog):
    # two sessions on separate connections, as two workers would have
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'race.db'}", future=True)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    ours, theirs = factory(), factory()
    try:
        row = Employer(slug="test-health", name="Test Health", adapter="fake", adapter_config={})
        theirs.add(row)
        theirs.commit()
        employer_id = row.id
        job = make_job("R1", title="Registered Nurse - ICU (Nights)")
        raced = {"done": False}

        @event.listens_for(ours, "before_flush")
        def insert_from_other_worker(session, flush_context, instances):
            if raced["done"]:
                return
            raced["done"] = True
            ActivationStore(theirs).upsert(employer_id, make_job("R1"))

        with caplog.at_level(logging.WARNING, logger="jobpipe.services.store"):
            result = ActivationStore(ours).upsert(employer_id, job)

        assert raced["done"]
        assert result.outcome == UpsertOutcome.UPDATED
        assert result.changed_fields == ["title"]
        assert result.lifecycle_state == LifecycleState.PENDING.value
        assert ours.query(Job).count() == 1
        assert ours.query(Job).one().title == "Registered Nurse - ICU (Nights)"
        assert "concurrent insert for identity_key" in caplog.text
    finally:
        ours.close()
        theirs.close()
        engine.dispose()


def test_timestamps_are_naive_utc(db, employer, make_job):
    with warnings.catch_warnings():
        warnings.filterwarnings("error", message=r".*utcnow", category=DeprecationWarning)
        result = ActivationStore(db).upsert(employer.id, make_job("R1"))
        tombstone = ActivationStore(db).create_tombstone(result.slug, "filled")

    row = db.get(Job, result.job_id)
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    assert row.first_seen_at.tzinfo is None
    assert abs(now - row.first_seen_at) < timedelta(minutes=1)
    assert abs(now - tombstone.created_at) < timedelta(minutes=1)
