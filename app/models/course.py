from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Course:
    """Read-only view of a catalog course, as far as progress tracking cares.

    `activity_id` is the xAPI object id the course content launches with;
    sub-activities live under it as `<activity_id>/<...>`.
    """

    course_id: str
    activity_id: str
    title: str = ""
    expected_interactions: int | None = None  # None -> EXPECTED_INTERACTIONS
