"""Verb classification: verb IRI -> (category, action).

Rules, first match wins:

  1. Built-in table of well-known ADL verbs.
  2. Admin overrides (verb_configurations); the only way to register a
     wholly custom verb, and they win over the heuristics below.
  3. Keyword heuristic on the identifier's words.
  4. unknown / none.

A VerbClassifier is an immutable value holding the built-in table and an
override snapshot.  Callers build one per unit of work (one ingestion
request, one materialization) with load_classifier(), so an admin edit
takes effect on the next unit of work and never half-way through one.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from app.models.verb import VerbAction, VerbCategory, VerbClassification, VerbConfig
from app.repos.verb_config_repo import VerbConfigRepo

ADL_VERB_PREFIX = "http://adlnet.gov/expapi/verbs/"


def _adl(name: str, category: VerbCategory, action: VerbAction, description: str) -> VerbConfig:
    return VerbConfig(
        verb_id=ADL_VERB_PREFIX + name,
        category=category,
        action=action,
        description=description,
    )


BUILTIN_VERBS: Mapping[str, VerbConfig] = MappingProxyType(
    {
        c.verb_id: c
        for c in (
            # start
            _adl("initialized", "start", "mark_started", "Learner started the activity"),
            _adl("launched", "start", "mark_started", "Activity was launched"),
            # completion
            _adl("completed", "completion", "mark_completed", "Learner completed the activity"),
            _adl("passed", "completion", "mark_passed", "Learner passed the activity"),
            _adl("failed", "completion", "mark_failed", "Learner failed the activity"),
            # interaction
            _adl("answered", "interaction", "track_answer", "Learner answered a question"),
            _adl("attempted", "interaction", "track_attempt", "Learner attempted the activity"),
            _adl("interacted", "interaction", "track_interaction", "Learner interacted"),
            _adl("experienced", "interaction", "track_interaction", "Learner viewed content"),
            _adl("progressed", "interaction", "track_interaction", "Learner made progress"),
            _adl("terminated", "interaction", "track_interaction", "Session ended"),
            _adl("accessed", "interaction", "track_access", "Learner accessed a resource"),
            _adl("downloaded", "interaction", "track_download", "Learner downloaded a file"),
            _adl("shared", "interaction", "track_share", "Learner shared the activity"),
            _adl("bookmarked", "interaction", "track_bookmark", "Learner bookmarked the activity"),
        )
    }
)

# (word prefixes, category, action), checked in order
_HEURISTICS: tuple[tuple[tuple[str, ...], VerbCategory, VerbAction], ...] = (
    (("complet",), "completion", "mark_completed"),
    (("pass",), "completion", "mark_passed"),
    (("fail",), "completion", "mark_failed"),
    (("init", "launch", "start"), "start", "mark_started"),
    (("download",), "interaction", "track_download"),
)

_NON_ALNUM = re.compile(r"[^0-9A-Za-z]+")
# Splits "completedModule" / "XMLUpload" / "step2" into words
_CAMEL_WORD = re.compile(r"[A-Z]+(?![a-z])|[A-Z]?[a-z]+|\d+")

_UNKNOWN = VerbClassification(category="unknown", action="none", source="default")


def verb_words(verb_id: str) -> list[str]:
    """Lower-cased words of an identifier, split on punctuation and camelCase."""
    words: list[str] = []
    for part in _NON_ALNUM.split(verb_id):
        words.extend(w.lower() for w in _CAMEL_WORD.findall(part))
    return words


def classify_by_keywords(verb_id: str) -> VerbClassification | None:
    words = verb_words(verb_id)
    for prefixes, category, action in _HEURISTICS:
        if any(w.startswith(prefixes) for w in words):
            return VerbClassification(category=category, action=action, source="heuristic")
    return None


class VerbClassifier:
    """Immutable built-in table + override snapshot."""

    __slots__ = ("_builtins", "_overrides")

    def __init__(
        self,
        builtins: Mapping[str, VerbConfig] | None = None,
        overrides: Iterable[VerbConfig] = (),
    ) -> None:
        self._builtins: Mapping[str, VerbConfig] = MappingProxyType(
            dict(BUILTIN_VERBS if builtins is None else builtins)
        )
        self._overrides: Mapping[str, VerbConfig] = MappingProxyType(
            {c.verb_id: c for c in overrides}
        )

    def is_builtin(self, verb_id: str) -> bool:
        return verb_id in self._builtins

    def classify(self, verb_id: str) -> VerbClassification:
        if not verb_id:
            return _UNKNOWN

        builtin = self._builtins.get(verb_id)
        if builtin is not None:
            return VerbClassification(builtin.category, builtin.action, "builtin")

        override = self._overrides.get(verb_id)
        if override is not None:
            return VerbClassification(override.category, override.action, "override")

        return classify_by_keywords(verb_id) or _UNKNOWN


async def load_classifier(repo: VerbConfigRepo) -> VerbClassifier:
    """Snapshot the current overrides into a fresh classifier."""
    return VerbClassifier(overrides=await repo.list_all())
