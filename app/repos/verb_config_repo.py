from __future__ import annotations

from typing import Protocol

from app.models.verb import VerbConfig


class VerbConfigExistsError(Exception):
    pass


class VerbConfigNotFoundError(Exception):
    pass


class VerbConfigRepo(Protocol):
    async def list_all(self) -> list[VerbConfig]: ...
    async def get(self, verb_id: str) -> VerbConfig | None: ...
    async def create(self, config: VerbConfig) -> None: ...
    async def update(self, config: VerbConfig) -> None: ...
    async def delete(self, verb_id: str) -> None: ...


class InMemoryVerbConfigRepo:
    def __init__(self) -> None:
        self._by_verb: dict[str, VerbConfig] = {}

    async def list_all(self) -> list[VerbConfig]:
        return sorted(self._by_verb.values(), key=lambda c: c.verb_id)

    async def get(self, verb_id: str) -> VerbConfig | None:
        return self._by_verb.get(verb_id)

    async def create(self, config: VerbConfig) -> None:
        if config.verb_id in self._by_verb:
            raise VerbConfigExistsError(config.verb_id)
        self._by_verb[config.verb_id] = config

    async def update(self, config: VerbConfig) -> None:
        if config.verb_id not in self._by_verb:
            raise VerbConfigNotFoundError(config.verb_id)
        self._by_verb[config.verb_id] = config

    async def delete(self, verb_id: str) -> None:
        if self._by_verb.pop(verb_id, None) is None:
            raise VerbConfigNotFoundError(verb_id)
