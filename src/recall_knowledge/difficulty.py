"""
DC and degree-of-success rules.
"""

from .models import Creature, DegreeOfSuccess

DEFAULT_DC = 15

# Each previous attempt against the same creature raises the DC by this much
ATTEMPT_DC_STEP = 2


def base_dc(target: Creature, auto_calculate: bool) -> int:
    """DC before attempt escalation: 10 + level, or a flat 15."""
    return 10 + target.level if auto_calculate else DEFAULT_DC


def compute_dc(target: Creature, prior_attempts: int, auto_calculate: bool = True) -> int:
    """
    Compute the Recall Knowledge DC.

    Args:
        target: The creature being investigated
        prior_attempts: Previous checks by this user against the pair
        auto_calculate: Derive the base DC from creature level

    Returns:
        Base DC plus 2 per prior attempt
    """
    return base_dc(target, auto_calculate) + ATTEMPT_DC_STEP * max(0, prior_attempts)


def escalate_dc(base: int, attempts: int) -> int:
    """DC for a given base and attempt count (used for GM previews)."""
    return base + ATTEMPT_DC_STEP * max(0, attempts)


def degree_of_success(total: int, dc: int) -> DegreeOfSuccess:
    """
    Degree of success from the roll margin.

    Beating the DC by 10 or more is a critical success; missing it by 10 or
    more is a critical failure.
    """
    margin = total - dc
    if margin >= 10:
        return DegreeOfSuccess.CRITICAL_SUCCESS
    if margin >= 0:
        return DegreeOfSuccess.SUCCESS
    if margin <= -10:
        return DegreeOfSuccess.CRITICAL_FAILURE
    return DegreeOfSuccess.FAILURE


__all__ = [
    "DEFAULT_DC",
    "ATTEMPT_DC_STEP",
    "base_dc",
    "compute_dc",
    "escalate_dc",
    "degree_of_success",
]
