#!/usr/bin/env python3
"""Rebuild every Progress row from the statement store.

RUN:  python scripts/rematerialize_progress.py [--dry-run]

Scans all stored statements, resolves each activity against the current
course directory, and re-materializes every (actor, course) pair found.
Use after a course directory change (new or corrected activity ids) or a
verb configuration change, when existing rows were computed under the old
rules.

Runs against whatever DATABASE_URL points at; with no database configured
it only sees this process's (empty) in-memory store.
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
from app.services.materializer import progress_materializer

logger = logging.getLogger("rematerialize")


async def collect_pairs() -> set[tuple[str, str]]:
    courses = await course_directory.list_courses()
    pairs: set[tuple[str, str]] = set()
    scanned = 0
    async for batch in stores.statement_repo.iter_all():
        for statement in batch:
            course = resolve_course(statement.activity_id, courses)
            if course is not None:
                pairs.add((statement.actor_key, course.course_id))
        scanned += len(batch)
    logger.info("Scanned %d statements, %d (actor, course) pairs", scanned, len(pairs))
    return pairs


async def run(dry_run: bool) -> int:
    pairs = await collect_pairs()
    if dry_run:
        for actor_key, course_id in sorted(pairs):
            print(f"{actor_key}\t{course_id}")
        return 0

    written = 0
    for actor_key, course_id in sorted(pairs):
        if await progress_materializer.materialize(actor_key, course_id) is not None:
            written += 1
    logger.info("Rewrote %d of %d progress rows", written, len(pairs))
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="list the pairs that would be rematerialized and exit",
    )
    args = parser.parse_args()

    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    sys.exit(asyncio.run(run(args.dry_run)))


if __name__ == "__main__":
    main()
