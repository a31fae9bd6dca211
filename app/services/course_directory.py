"""Read-through cached view of the course directory.

Every ingested statement has to be resolved against the full course list,
so the list is cached for COURSE_CACHE_TTL_SECONDS.  Courses are owned by
the catalog and never written here, so there is no explicit invalidation:
the TTL bounds how long a newly published course can go unresolved.

A cache outage degrades to reading the repository directly.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict

from app.core.config import SETTINGS
from app.core.retry import StoreUnavailableError, with_retries
from app.models.course import Course
from app.repos import stores
from app.repos.course_repo import CourseRepo
from app.services.cache import CacheService, cache_service

logger = logging.getLogger(__name__)

_CACHE_KEY = "courses:all"


def find_course(courses: list[Course], course_id: str) -> Course | None:
    return next((c for c in courses if c.course_id == course_id), None)


class CourseDirectory:
    def __init__(self, repo: CourseRepo, cache: CacheService, ttl_seconds: int) -> None:
        self._repo = repo
        self._cache = cache
        self._ttl = ttl_seconds

    async def list_courses(self) -> list[Course]:
        if self._ttl > 0:
            try:
                cached = await self._cache.get(_CACHE_KEY)
            except StoreUnavailableError:
                logger.warning("Course cache unavailable, reading directory directly")
                cached = None
            if cached is not None:
                return [Course(**c) for c in json.loads(cached)]

        courses = await with_retries(self._repo.list_all, name="courses.list")

        if self._ttl > 0:
            try:
                await self._cache.set(
                    _CACHE_KEY, json.dumps([asdict(c) for c in courses]), self._ttl
                )
            except StoreUnavailableError:
                logger.warning("Course cache unavailable, result not cached")
        return courses

    async def get(self, course_id: str) -> Course | None:
        return find_course(await self.list_courses(), course_id)


course_directory = CourseDirectory(
    stores.course_repo, cache_service, SETTINGS.course_cache_ttl_seconds
)
