from __future__ import annotations

from typing import Protocol

from app.models.progress import Progress


class ProgressRepo(Protocol):
    async def get(self, actor_key: str, course_id: str) -> Progress | None: ...
    async def list_for_actor(self, actor_key: str) -> list[Progress]: ...
    async def put(self, progress: Progress) -> None:
        """Overwrite the whole record for (actor_key, course_id)."""
        ...


class InMemoryProgressRepo:
    def __init__(self) -> None:
        self._rows: dict[tuple[str, str], Progress] = {}

    async def get(self, actor_key: str, course_id: str) -> Progress | None:
        return self._rows.get((actor_key, course_id))

    async def list_for_actor(self, actor_key: str) -> list[Progress]:
        return sorted(
            (p for (actor, _), p in self._rows.items() if actor == actor_key),
            key=lambda p: p.course_id,
        )

    async def put(self, progress: Progress) -> None:
        self._rows[(progress.actor_key, progress.course_id)] = progress
