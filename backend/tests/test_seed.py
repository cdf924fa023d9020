from __future__ import annotations

from jobpipe.crawlers.registry import ADAPTERS, EMPLOYERS
from jobpipe.models.employer import Employer
from jobpipe.services.seed import seed_employers


def test_every_seeded_employer_has_a_registered_adapter():
    assert EMPLOYERS
    assert {item["adapter"] for item in EMPLOYERS} <= set(ADAPTERS)
    assert len({item["slug"] for item in EMPLOYERS}) == len(EMPLOYERS)


def test_seed_is_idempotent_and_refreshes_config(db):
    seed_employers(db)
    seed_employers(db)
    assert db.query(Employer).count() == len(EMPLOYERS)

    changed = [dict(item) for item in EMPLOYERS]
    changed[0] = {**changed[0], "name": "Renamed", "adapter_config": {"api_url": "https://new.example.org/api/jobs"}}
    seed_employers(db, changed)

    row = db.query(Employer).filter(Employer.slug == changed[0]["slug"]).one()
    assert row.adapter_config == {"api_url": "https://new.example.org/api/jobs"}
    assert row.name == EMPLOYERS[0]["name"]


def test_each_strategy_is_represented():
    strategies = {ADAPTERS[item["adapter"]].strategy.value for item in EMPLOYERS}
    assert strategies == {"param", "next", "indexed"}


def test_workday_employers_share_one_adapter():
    workday = {item["slug"] for item in EMPLOYERS if item["adapter"] == "workday_cxs"}
    assert workday == {"mass-general-brigham", "uhs", "adventist-healthcare", "strong-memorial-hospital"}
    for item in EMPLOYERS:
        if item["adapter"] == "workday_cxs":
            assert {"tenant", "site", "job_families"} <= set(item["adapter_config"])
