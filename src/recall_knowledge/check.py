"""
Recall Knowledge roll resolution.

Provides the check state machine states and the CheckResolver, which rolls
(or applies a fixed Assurance result), grades the result against the DC and
records the attempt once the roll is complete. Randomness comes from an
injected ``random.Random`` so tests can force results.
"""

from __future__ import annotations

import logging
import random
from enum import Enum
from typing import Optional

from .difficulty import degree_of_success
from .ledger import AttemptCounter
from .models import Actor, CheckResult, Creature, KnowledgeSkill

logger = logging.getLogger("recall-knowledge.check")


class CheckState(str, Enum):
    """Lifecycle of a single Recall Knowledge invocation."""
    IDLE = "idle"
    AWAITING_APPROVAL = "awaiting_approval"
    SKILL_SELECTED = "skill_selected"
    ROLL_PENDING = "roll_pending"
    RESOLVED = "resolved"
    ABORTED = "aborted"


# Allowed forward transitions; ABORTED is reachable from any non-terminal state
_TRANSITIONS: dict[CheckState, set[CheckState]] = {
    CheckState.IDLE: {CheckState.AWAITING_APPROVAL, CheckState.SKILL_SELECTED},
    CheckState.AWAITING_APPROVAL: {CheckState.SKILL_SELECTED},
    CheckState.SKILL_SELECTED: {CheckState.ROLL_PENDING},
    CheckState.ROLL_PENDING: {CheckState.RESOLVED},
    CheckState.RESOLVED: set(),
    CheckState.ABORTED: set(),
}


def can_transition(current: CheckState, new: CheckState) -> bool:
    if new == CheckState.ABORTED:
        return current not in (CheckState.RESOLVED, CheckState.ABORTED)
    return new in _TRANSITIONS[current]


def _roll_d20(rng: random.Random) -> int:
    return rng.randint(1, 20)


class CheckResolver:
    """
    Rolls Recall Knowledge checks and records attempts.

    Attributes:
        attempts: Counter incremented after each completed roll
        rng: Random source for the d20
    """

    def __init__(self, attempts: AttemptCounter, rng: Optional[random.Random] = None) -> None:
        self.attempts = attempts
        self.rng = rng or random.Random()

    def roll(
        self,
        skill: KnowledgeSkill,
        dc: int,
        fixed_value: Optional[int] = None,
        situational_bonus: int = 0,
    ) -> CheckResult:
        """
        Roll (or take Assurance) and grade the result.

        Assurance ignores the die and every bonus, situational ones included.

        Args:
            skill: Skill being rolled
            dc: Difficulty class
            fixed_value: Assurance result; no randomness when given
            situational_bonus: Extra bonus such as Thorough Reports

        Returns:
            CheckResult with total and degree of success
        """
        if fixed_value is not None:
            total = fixed_value
            result = CheckResult(
                total=total,
                die=None,
                modifier=0,
                situational_bonus=0,
                dc=dc,
                degree=degree_of_success(total, dc),
                skill_key=skill.key,
                used_assurance=True,
            )
        else:
            die = _roll_d20(self.rng)
            total = die + skill.modifier + situational_bonus
            result = CheckResult(
                total=total,
                die=die,
                modifier=skill.modifier,
                situational_bonus=situational_bonus,
                dc=dc,
                degree=degree_of_success(total, dc),
                skill_key=skill.key,
            )

        logger.debug(
            f"{skill.name} check: total {result.total} vs DC {dc} -> {result.degree.value}"
            + (" (Assurance)" if result.used_assurance else "")
        )
        return result

    async def resolve(
        self,
        user_id: str,
        actor: Actor,
        target: Creature,
        skill: KnowledgeSkill,
        dc: int,
        fixed_value: Optional[int] = None,
        situational_bonus: int = 0,
    ) -> CheckResult:
        """
        Roll the check, then record the attempt.

        The attempt is only counted once the roll exists, so an abandoned
        flow never escalates the next DC.

        Raises:
            PersistenceFailure: If the attempt could not be recorded
        """
        result = self.roll(skill, dc, fixed_value=fixed_value, situational_bonus=situational_bonus)
        await self.attempts.increment(user_id, actor.id, target.id)
        logger.info(
            f"{actor.name} rolled {result.total} ({result.degree.value}) "
            f"to recall knowledge about {target.name}"
        )
        return result


__all__ = [
    "CheckState",
    "can_transition",
    "CheckResolver",
]
