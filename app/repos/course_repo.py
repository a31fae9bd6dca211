from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from app.models.course import Course

logger = logging.getLogger(__name__)


class CourseRepo(Protocol):
    async def list_all(self) -> list[Course]: ...


class InMemoryCourseRepo:
    """Course directory held in process memory.

    The catalog owns courses; this copy is seeded at startup (from
    COURSE_DIRECTORY_FILE, or a sample course in dev) and by tests.
    """

    def __init__(self, courses: list[Course] | None = None) -> None:
        self._by_id: dict[str, Course] = {}
        for course in courses or ():
            self.add(course)

    def add(self, course: Course) -> None:
        self._by_id[course.course_id] = course

    def clear(self) -> None:
        self._by_id.clear()

    async def list_all(self) -> list[Course]:
        return sorted(self._by_id.values(), key=lambda c: c.course_id)


def load_courses_file(path: str) -> list[Course]:
    """Read a JSON list of course objects.

    Each entry needs `course_id` and `activity_id`; `title` and
    `expected_interactions` are optional.  Raises ValueError on a malformed
    file.
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"COURSE_DIRECTORY_FILE {path!r} could not be read: {exc}") from exc

    if not isinstance(raw, list):
        raise ValueError(f"COURSE_DIRECTORY_FILE {path!r} must contain a JSON list")

    courses: list[Course] = []
    for i, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValueError(f"course entry #{i} must be an object")
        if not entry.get("course_id") or not entry.get("activity_id"):
            raise ValueError(f"course entry #{i} needs course_id and activity_id")
        expected = entry.get("expected_interactions")
        if expected is not None and (not isinstance(expected, int) or expected < 1):
            raise ValueError(f"course entry #{i}: expected_interactions must be a positive integer")
        courses.append(
            Course(
                course_id=str(entry["course_id"]),
                activity_id=str(entry["activity_id"]),
                title=str(entry.get("title", "")),
                expected_interactions=expected,
            )
        )
    logger.info("Loaded %d courses from %s", len(courses), path)
    return courses
