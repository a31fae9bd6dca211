"""Module completion within a course, derived from module rules.

Each course can carry an ordered list of ModuleRule.  A module is
completed by the earliest statement (by timestamp, then id) that matches
one of its rules, so the answer depends only on the statement set and not
on arrival order.  Modules with no matching statement are reported as not
started.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from app.models.knowledge_check import score_percent_of
from app.models.module_rule import ModuleCompletion, ModuleRule
from app.models.statement import Statement
from app.repos.statement_repo import sort_key


@dataclass(frozen=True, slots=True)
class ModuleStatus:
    module_id: str
    completion: ModuleCompletion | None = None

    @property
    def status(self) -> str:
        return "not_started" if self.completion is None else "completed"


def statement_matches_rule(statement: Statement, rule: ModuleRule) -> bool:
    if not statement.activity_id or not rule.match_value:
        return False
    if rule.match_type == "contains":
        return rule.match_value in statement.activity_id
    return statement.activity_id.startswith(rule.match_value)


def _statement_score_percent(statement: Statement) -> float | None:
    score = statement.score
    if score is None:
        return None
    return score_percent_of(score.scaled, score.raw, score.max)


def completes(statement: Statement, rule: ModuleRule) -> bool:
    if not statement_matches_rule(statement, rule):
        return False
    if rule.completion_verbs and statement.verb_id not in rule.completion_verbs:
        return False
    if rule.score_threshold is not None:
        percent = _statement_score_percent(statement)
        if percent is None or percent < rule.score_threshold:
            return False
    return True


def compute_module_progress(
    statements: Iterable[Statement], rules: list[ModuleRule]
) -> list[ModuleStatus]:
    """One status per distinct module id, in the order rules first name them."""
    ordered = sorted(statements, key=sort_key)
    hits: dict[str, Statement | None] = {}
    for rule in rules:
        hit = next((s for s in ordered if completes(s, rule)), None)
        current = hits.get(rule.module_id)
        if current is None or (hit is not None and sort_key(hit) < sort_key(current)):
            hits[rule.module_id] = hit

    statuses: list[ModuleStatus] = []
    for module_id, hit in hits.items():
        if hit is None:
            statuses.append(ModuleStatus(module_id))
            continue
        completion = ModuleCompletion(
            module_id=module_id,
            completed_at=hit.timestamp,
            verb_id=hit.verb_id,
            statement_id=hit.id,
            score_percent=_statement_score_percent(hit),
        )
        statuses.append(ModuleStatus(module_id, completion))
    return statuses
