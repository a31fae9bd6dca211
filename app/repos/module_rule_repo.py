from __future__ import annotations

from typing import Protocol

from app.models.module_rule import ModuleRule


class ModuleRuleRepo(Protocol):
    async def get(self, course_id: str) -> list[ModuleRule]:
        """The course's rules in their saved order; empty when none are set."""
        ...

    async def put(self, course_id: str, rules: list[ModuleRule]) -> None:
        """Replace the course's whole rule list."""
        ...

    async def delete(self, course_id: str) -> bool:
        """Remove the course's rules; False when there were none."""
        ...


class InMemoryModuleRuleRepo:
    def __init__(self) -> None:
        self._by_course: dict[str, list[ModuleRule]] = {}

    async def get(self, course_id: str) -> list[ModuleRule]:
        return list(self._by_course.get(course_id, []))

    async def put(self, course_id: str, rules: list[ModuleRule]) -> None:
        self._by_course[course_id] = list(rules)

    async def delete(self, course_id: str) -> bool:
        return self._by_course.pop(course_id, None) is not None
