#!/usr/bin/env python3
"""Record knowledge-check attempts for statements already in the store.

RUN:  python scripts/backfill_kc_attempts.py [--dry-run] [--limit N]

Ingestion records attempts as statements arrive.  Statements stored before
attempts were tracked, or before their course was added to the directory,
have none; this replays them through the same detection.  Attempts are
keyed by statement id, so re-running is harmless.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.repos import stores
from app.services.activity_resolver import resolve_course
from app.services.course_directory import course_directory
from app.services.knowledge_checks import attempt_from_statement, is_knowledge_check
from app.services.verb_classifier import load_classifier

logger = logging.getLogger("backfill_kc_attempts")


async def run(dry_run: bool, limit: int | None) -> int:
    courses = await course_directory.list_courses()
    classifier = await load_classifier(stores.verb_config_repo)

    scanned = found = 0
    async for batch in stores.statement_repo.iter_all():
        for statement in batch:
            scanned += 1
            course = resolve_course(statement.activity_id, courses)
            if course is None:
                continue
            if not is_knowledge_check(statement, classifier.classify(statement.verb_id)):
                continue
            found += 1
            attempt = attempt_from_statement(statement, course)
            if dry_run:
                print(f"{attempt.actor_key}\t{attempt.course_id}\t{attempt.assessment_id}")
            else:
                await stores.kc_attempt_repo.upsert(attempt)
            if limit is not None and found >= limit:
                break
        if limit is not None and found >= limit:
            break

    logger.info(
        "Scanned %d statements, %s %d attempts",
        scanned,
        "found" if dry_run else "recorded",
        found,
    )
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="list the attempts that would be recorded and exit",
    )
    parser.add_argument("--limit", type=int, default=None, help="stop after N attempts")
    args = parser.parse_args()

    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    sys.exit(asyncio.run(run(args.dry_run, args.limit)))


if __name__ == "__main__":
    main()
