"""Challenge seed loader.

Reads a JSON array of challenge records, normalizes multiple-choice options
and inserts the records whose id is not present yet. Safe to run repeatedly::

    python -m culturebridge.challenges.seed challenges.json
"""

from __future__ import annotations

import asyncio
import json
import random
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from culturebridge.challenges.matching import CHOICE_TYPES
from culturebridge.db.models import Challenge

logger = structlog.get_logger()

MAX_CHOICES = 4
MIN_CHOICES = 2

GENERIC_DISTRACTORS = ["Option A", "Option B", "Option C", "Option D", "None of the above"]

REQUIRED_FIELDS = ("id", "title", "description", "type", "country", "flag", "points", "difficulty")


def normalize_choices(
    choices: list[str] | None,
    correct_answer: str | None,
    rng: random.Random | None = None,
) -> list[str]:
    """Unique choices, correct answer first, between 2 and 4 entries.

    Short lists are padded from ``GENERIC_DISTRACTORS``.
    """
    out: list[str] = []
    if correct_answer:
        out.append(correct_answer)
    for choice in choices or []:
        if isinstance(choice, str) and choice.strip() and choice not in out:
            out.append(choice)
    out = out[:MAX_CHOICES]

    if len(out) < MIN_CHOICES:
        rng = rng or random.Random()
        spare = [d for d in GENERIC_DISTRACTORS if d not in out]
        rng.shuffle(spare)
        out.extend(spare[: MIN_CHOICES - len(out)])
    return out


def normalize_record(record: dict[str, Any], rng: random.Random | None = None) -> dict[str, Any]:
    """Validate one seed record and normalize its options.

    Raises:
        ValueError: If a required field is missing or points are not positive.
    """
    missing = [f for f in REQUIRED_FIELDS if record.get(f) in (None, "")]
    if missing:
        msg = f"Challenge record {record.get('id')!r} is missing {', '.join(missing)}"
        raise ValueError(msg)
    if int(record["points"]) <= 0:
        msg = f"Challenge record {record['id']!r} must award positive points"
        raise ValueError(msg)

    copy = dict(record)
    options = copy.get("options") if isinstance(copy.get("options"), dict) else None
    existing = options.get("choices") if options else None
    if copy["type"] in CHOICE_TYPES or isinstance(existing, list):
        copy["options"] = {
            **(options or {}),
            "choices": normalize_choices(existing, copy.get("correct_answer"), rng),
        }
    else:
        copy["options"] = options
    return copy


async def seed_challenges(
    db: AsyncSession,
    records: list[dict[str, Any]],
    rng: random.Random | None = None,
) -> int:
    """Insert records whose id is not already present. Returns the number inserted."""
    normalized = [normalize_record(r, rng) for r in records]
    ids = [r["id"] for r in normalized]

    result = await db.execute(select(Challenge.id).where(Challenge.id.in_(ids)))
    existing = set(result.scalars())

    inserted = 0
    now = datetime.now(timezone.utc)
    for rec in normalized:
        if rec["id"] in existing:
            continue
        db.add(Challenge(
            id=rec["id"],
            title=rec["title"],
            description=rec["description"],
            type=rec["type"],
            country=rec["country"],
            flag=rec["flag"],
            points=int(rec["points"]),
            difficulty=rec["difficulty"],
            options=rec["options"],
            correct_answer=rec.get("correct_answer"),
            media_url=rec.get("media_url"),
            is_daily=bool(rec.get("is_daily", False)),
            created_at=now,
        ))
        existing.add(rec["id"])
        inserted += 1

    await db.commit()
    logger.info("challenges_seeded", inserted=inserted, skipped=len(normalized) - inserted)
    return inserted


def load_seed_file(path: str | Path) -> list[dict[str, Any]]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        msg = "Seed file must contain a JSON array of challenge records"
        raise ValueError(msg)
    return data


async def _main(path: str) -> None:
    from culturebridge.config import get_settings
    from culturebridge.database import close_db, create_tables, get_session, init_db

    settings = get_settings()
    await init_db(settings.database_url)
    if settings.auto_create_tables:
        await create_tables()
    try:
        async for db in get_session():
            await seed_challenges(db, load_seed_file(path))
    finally:
        await close_db()


if __name__ == "__main__":
    if len(sys.argv) != 2:
        sys.exit("usage: python -m culturebridge.challenges.seed <challenges.json>")
    asyncio.run(_main(sys.argv[1]))
