from __future__ import annotations

from sqlalchemy.orm import Session

from jobpipe.crawlers.registry import EMPLOYERS
from jobpipe.db.database import SessionLocal
from jobpipe.models.employer import Employer


def seed_employers(db: Session, employers: list[dict] | None = None) -> None:
    desired = EMPLOYERS if employers is None else employers
    existing = {e.slug: e for e in db.query(Employer).all()}
    for item in desired:
        row = existing.get(item["slug"])
        if row is None:
            db.add(
                Employer(
                    slug=item["slug"],
                    name=item["name"],
                    adapter=item["adapter"],
                    adapter_config=item.get("adapter_config", {}),
                    career_page_url=item.get("career_page_url", ""),
                )
            )
        else:
            # slug, name and adapter binding stay as first created
            row.adapter_config = item.get("adapter_config", {})
            row.career_page_url = item.get("career_page_url", "")
            db.add(row)
    db.commit()


def seed_employers_if_needed() -> None:
    db = SessionLocal()
    try:
        seed_employers(db)
    finally:
        db.close()
