"""
Feat-driven modifiers to Recall Knowledge.

Functions:
    compute_information_bonus: Extra facts granted by feats and effects.
    compute_thorough_reports_bonus: Circumstance bonus for known creature types.
    check_assurance: Whether a fixed Assurance result is available.
    infer_creature_type: First creature-type trait of a target.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from .models import Actor, Creature, Feature, ProficiencyRank

logger = logging.getLogger("recall-knowledge")

# Substrings of feat names or slugs granting +1 piece of information
BONUS_INFORMATION_FEATS = (
    "know-it-all",
    "know it all",
    "thorough research",
    "font of knowledge",
    "fountain of secrets",
)

BONUS_INFORMATION_EFFECT = "pocket library"

CREATURE_TYPES = (
    "aberration", "animal", "astral", "beast", "celestial", "construct",
    "dragon", "elemental", "ethereal", "fey", "fiend", "fungus",
    "giant", "humanoid", "monitor", "ooze", "plant", "undead",
)

THOROUGH_REPORTS_BONUS = 2
SCROLLMASTER_THOROUGH_REPORTS_BONUS = 4

_FEAT_TYPES = ("feat", "feature")


class InformationBonus(BaseModel):
    """Additional facts granted by feats/effects, with one source line each."""
    bonus: int = 0
    sources: list[str] = Field(default_factory=list)


class AssuranceCheck(BaseModel):
    available: bool = False
    fixed_value: int = 0


# ---------------------------------------------------------------------------
# Feature predicates
# ---------------------------------------------------------------------------

def _has_feat(actor: Actor, name: str, slug: str) -> bool:
    return any(
        feature.type == "feat"
        and (name in feature.name.lower() or feature.slug == slug)
        for feature in actor.features
    )


def has_thorough_reports(actor: Actor) -> bool:
    return _has_feat(actor, "thorough reports", "thorough-reports")


def has_scrollmaster_dedication(actor: Actor) -> bool:
    return _has_feat(actor, "scrollmaster dedication", "scrollmaster-dedication")


def has_diverse_recognition(actor: Actor) -> bool:
    return _has_feat(actor, "diverse recognition", "diverse-recognition")


# ---------------------------------------------------------------------------
# Bonuses
# ---------------------------------------------------------------------------

def _grants_information(feature: Feature) -> bool:
    name = feature.name.lower()
    slug = feature.slug.lower()
    return any(pattern in name or pattern in slug for pattern in BONUS_INFORMATION_FEATS)


def compute_information_bonus(actor: Actor) -> InformationBonus:
    """
    Count feats and effects that grant an extra piece of information.

    Each matching feature counts once, however many patterns it matches.
    Pocket Library style effects stack independently.

    Args:
        actor: The acting character

    Returns:
        Total bonus and a human-readable line per source
    """
    result = InformationBonus()

    for feature in actor.features:
        if feature.type in _FEAT_TYPES and _grants_information(feature):
            result.bonus += 1
            result.sources.append(f"{feature.name}: +1 piece")
            logger.debug(f"Found bonus feat: {feature.name}")

    for effect in actor.effects:
        if BONUS_INFORMATION_EFFECT in effect.name.lower() or BONUS_INFORMATION_EFFECT in effect.label.lower():
            label = effect.name or effect.label
            result.bonus += 1
            result.sources.append(f"{label}: +1 piece")
            logger.debug(f"Found bonus effect: {label}")

    return result


def infer_creature_type(target: Creature) -> Optional[str]:
    """
    First trait of the target that is a creature type.

    Traits are scanned in the target's own order, so a creature tagged
    ``["undead", "humanoid"]`` is undead.
    """
    for trait in target.traits:
        trait_lower = trait.lower()
        if trait_lower in CREATURE_TYPES:
            return trait_lower
    return None


def compute_thorough_reports_bonus(
    actor: Actor,
    target: Creature,
    skill_key: str,
    tracked_types: Iterable[str],
) -> int:
    """
    Circumstance bonus from Thorough Reports.

    Applies only when the actor has previously identified a creature of the
    target's type. Scrollmaster Dedication raises the bonus when the actor is
    at least an expert in the skill being rolled.

    Args:
        actor: The acting character
        target: The creature being investigated
        skill_key: Skill the check uses
        tracked_types: Creature types this actor has identified before

    Returns:
        0, 2 or 4
    """
    if not has_thorough_reports(actor):
        return 0

    creature_type = infer_creature_type(target)
    if creature_type is None or creature_type not in set(tracked_types):
        return 0

    if has_scrollmaster_dedication(actor) and actor.skill_rank(skill_key) >= ProficiencyRank.EXPERT:
        logger.debug("Scrollmaster Dedication increases Thorough Reports bonus to +4")
        return SCROLLMASTER_THOROUGH_REPORTS_BONUS
    return THOROUGH_REPORTS_BONUS


def check_assurance(actor: Actor, skill_key: str) -> AssuranceCheck:
    """
    Look up Assurance for a skill.

    The fixed result is 10 + proficiency bonus (2 x rank + level).
    """
    label = actor.skill_label(skill_key).lower()
    slug = f"assurance-{skill_key}"
    name = f"assurance ({label})"

    for feature in actor.features:
        if feature.type == "feat" and (feature.slug == slug or feature.name.lower() == name):
            fixed = 10 + 2 * actor.skill_rank(skill_key) + actor.level
            return AssuranceCheck(available=True, fixed_value=fixed)
    return AssuranceCheck()


__all__ = [
    "BONUS_INFORMATION_FEATS",
    "CREATURE_TYPES",
    "InformationBonus",
    "AssuranceCheck",
    "has_thorough_reports",
    "has_scrollmaster_dedication",
    "has_diverse_recognition",
    "compute_information_bonus",
    "infer_creature_type",
    "compute_thorough_reports_bonus",
    "check_assurance",
]
