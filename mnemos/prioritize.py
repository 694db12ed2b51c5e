"""Content-based importance scoring that writes priorities back to the store."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Tuple

from .storage import MemoryItem

if TYPE_CHECKING:
    from .manager import MemoryManager

DEFAULT_THRESHOLD = 0.6

# Checked in order; the first hit sets the base score
CONTENT_RULES: Tuple[Tuple[Tuple[str, ...], float, str], ...] = (
    (("error", "Error"), 0.9, "error info"),
    (("decision", "Decision"), 0.8, "decision"),
    (("code", "function"), 0.7, "code-related"),
)
CATEGORY_RULES = {"context": (0.6, "context"), "project": (0.7, "project")}
BASE_SCORE = (0.5, "general")

TASK_BOOST = 0.2
DECISION_BOOST = 0.15
CHANGE_BOOST = 0.1
BLOCKER_BOOST = 0.25


@dataclass
class PrioritizedMemory:
    memory: MemoryItem
    score: float
    reason: str

    @property
    def priority(self) -> int:
        return math.floor(self.score * 100)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "memory": self.memory.to_dict(),
            "score": self.score,
            "priority": self.priority,
            "reason": self.reason,
        }


def _base_score(item: MemoryItem) -> Tuple[float, str]:
    for needles, score, reason in CONTENT_RULES:
        if any(n in item.value for n in needles):
            return score, reason
    return CATEGORY_RULES.get(item.category, BASE_SCORE)


def _matches_any(value: str, phrases: Iterable[str]) -> bool:
    return any(phrase.lower() in value for phrase in phrases)


def score_memory(
    item: MemoryItem,
    current_task: str,
    critical_decisions: Iterable[str] = (),
    code_changes: Iterable[str] = (),
    blockers: Iterable[str] = (),
) -> PrioritizedMemory:
    """Score one memory against the current working context, capped at 1.0.

    Phrases are plain substring checks, so an empty *current_task* or an
    empty phrase in a list matches every memory.
    """
    score, reason = _base_score(item)
    value = item.value.lower()

    if current_task.lower() in value:
        score += TASK_BOOST
        reason += " +task"
    if _matches_any(value, critical_decisions):
        score += DECISION_BOOST
        reason += " +critical"
    if _matches_any(value, code_changes):
        score += CHANGE_BOOST
        reason += " +change"
    if _matches_any(value, blockers):
        score += BLOCKER_BOOST
        reason += " +blocker"

    return PrioritizedMemory(item, min(1.0, score), reason)


def prioritize_memories(
    manager: "MemoryManager",
    current_task: str,
    critical_decisions: Iterable[str] = (),
    code_changes: Iterable[str] = (),
    blockers: Iterable[str] = (),
    threshold: float = DEFAULT_THRESHOLD,
    top: int = 20,
) -> List[PrioritizedMemory]:
    """Re-score every memory and persist priorities for the important ones.

    Memories scoring at least *threshold* get ``floor(score * 100)`` written
    as their priority. Returns the *top* highest scoring of those.
    """
    critical_decisions = list(critical_decisions)
    code_changes = list(code_changes)
    blockers = list(blockers)

    selected: List[PrioritizedMemory] = []
    for item in manager.list():
        scored = score_memory(item, current_task, critical_decisions, code_changes, blockers)
        if scored.score >= threshold:
            manager.set_priority(item.key, scored.priority)
            selected.append(scored)

    selected.sort(key=lambda s: s.score, reverse=True)
    return selected[:top]
