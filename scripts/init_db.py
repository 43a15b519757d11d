import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy import select

from app.menfem.models import Category
from app.menfem.modules.content.service import create_category
from scripts._db_utils import script_session


DEFAULT_CATEGORIES: tuple[dict, ...] = (
    {"name": "Style", "slug": "style", "color": "#1f2937", "order": 1},
    {"name": "Grooming", "slug": "grooming", "color": "#0f766e", "order": 2},
    {"name": "Health", "slug": "health", "color": "#b91c1c", "order": 3},
    {"name": "Culture", "slug": "culture", "color": "#7c3aed", "order": 4},
    {"name": "Relationships", "slug": "relationships", "color": "#db2777", "order": 5},
    {"name": "Money", "slug": "money", "color": "#a16207", "order": 6},
)


def seed_only(*, database_url: str | None = None) -> int:
    """
    Seed the default categories in an idempotent way.
    Existing categories (matched by slug) are left untouched.
    Returns the number of categories created.
    """
    db_url = (database_url or os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL is required to seed the database.")

    created = 0
    with script_session(db_url) as s:
        existing = set(s.scalars(select(Category.slug)))
        for payload in DEFAULT_CATEGORIES:
            if payload["slug"] in existing:
                continue
            create_category(s, payload)
            created += 1

    print(f"Initialized database (seed_only): {created} categories created.")
    return created


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
