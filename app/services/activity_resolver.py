"""Map an xAPI activity id to the course it belongs to.

Course content emits statements against sub-activities
(`<course activity id>/<module>/<slide>`), but progress is tracked per
course.  Rules, first match wins:

  (a) the activity id equals a course's activity id
  (b) the activity id's base (text before the first "/") equals a course's
      activity id
  (c) the activity id starts with `<course activity id>/`

If (c) matches more than one course the directory is inconsistent; the
statement is left unresolved rather than attributed to a guess.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from app.core.metrics import UNRESOLVED_STATEMENTS
from app.models.course import Course

logger = logging.getLogger(__name__)

UnresolvedReason = Literal["no_match", "ambiguous"]


@dataclass(frozen=True, slots=True)
class Resolution:
    course: Course | None
    reason: UnresolvedReason | None = None


def base_activity_id(activity_id: str) -> str:
    """Everything before the first '/', or the whole id when there is none.

    A leading '/' does not count: "/x/y" is its own base.
    """
    slash = activity_id.find("/")
    return activity_id[:slash] if slash > 0 else activity_id


def resolve(activity_id: str, courses: Sequence[Course]) -> Resolution:
    """Pure resolution; reports why nothing matched."""
    if not activity_id:
        return Resolution(None, "no_match")

    for course in courses:
        if course.activity_id == activity_id:
            return Resolution(course)

    base = base_activity_id(activity_id)
    for course in courses:
        if course.activity_id == base:
            return Resolution(course)

    prefixed = [c for c in courses if activity_id.startswith(c.activity_id + "/")]
    if len(prefixed) == 1:
        return Resolution(prefixed[0])
    if len(prefixed) > 1:
        return Resolution(None, "ambiguous")
    return Resolution(None, "no_match")


def resolve_course(
    activity_id: str,
    courses: Sequence[Course],
    *,
    record_unresolved: bool = False,
) -> Course | None:
    """Resolve to a single course or None.

    Ambiguous matches are always logged at WARNING.  With
    record_unresolved=True (ingestion path, once per stored statement) the
    outcome is also counted in xapi_unresolved_statements_total.
    """
    resolution = resolve(activity_id, courses)
    if resolution.reason == "ambiguous":
        logger.warning(
            "Activity %s matches several courses by prefix; not attributing it",
            activity_id,
        )
    if resolution.reason is not None and record_unresolved:
        UNRESOLVED_STATEMENTS.labels(reason=resolution.reason).inc()
    return resolution.course
