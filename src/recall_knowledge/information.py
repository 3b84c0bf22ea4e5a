"""
Information budget and fact disclosure.

Turns a degree of success into a number of facts the player may learn,
projects those facts out of a creature statblock, builds the selection
options offered to the player, and fabricates plausible false facts for
critical failures when that house rule is enabled.
"""

from __future__ import annotations

import logging
import random
from typing import Iterable, Optional, Sequence

from .feats import compute_information_bonus
from .models import (
    Actor,
    BudgetSource,
    Creature,
    DefenseEntry,
    DegreeOfSuccess,
    DisclosedFact,
    FactId,
    FactOption,
    InformationBudget,
)

logger = logging.getLogger("recall-knowledge")

BACKGROUND_LIMIT = 100
MAX_LISTED_ENTRIES = 5
NO_BACKGROUND = "No background information available."

_SPECIAL_ABILITY_TRAITS = {"reaction", "free-action"}

_false_rng = random.Random()


# ---------------------------------------------------------------------------
# Budget
# ---------------------------------------------------------------------------

def budget(
    degree: DegreeOfSuccess,
    actor: Actor,
    false_info_on_crit_fail: bool = False,
) -> InformationBudget:
    """
    Number of facts a check lets the player learn.

    Critical success grants 2, success 1, failure 0. Feat and effect bonuses
    only apply to successes. With the false-information house rule, a
    critical failure presents as one (fabricated) fact.

    Args:
        degree: Degree of success of the check
        actor: The acting character, scanned for bonus feats
        false_info_on_crit_fail: Whether the false-information rule is on

    Returns:
        InformationBudget with total and per-source breakdown
    """
    if degree == DegreeOfSuccess.CRITICAL_SUCCESS:
        result = InformationBudget(total=2, sources=[BudgetSource(label="Critical Success: 2 pieces", count=2)])
    elif degree == DegreeOfSuccess.SUCCESS:
        result = InformationBudget(total=1, sources=[BudgetSource(label="Success: 1 piece", count=1)])
    elif degree == DegreeOfSuccess.CRITICAL_FAILURE and false_info_on_crit_fail:
        return InformationBudget(total=1, is_false=True)
    else:
        return InformationBudget()

    bonus = compute_information_bonus(actor)
    if bonus.bonus > 0:
        result.total += bonus.bonus
        result.sources.extend(BudgetSource(label=line, count=1) for line in bonus.sources)
        logger.debug(f"{actor.name} has +{bonus.bonus} bonus information from feats/abilities")

    return result


# ---------------------------------------------------------------------------
# Fact extraction
# ---------------------------------------------------------------------------

def _format_defense(entry: DefenseEntry) -> str:
    text = entry.type if entry.value is None else f"{entry.type} {entry.value}"
    if entry.exceptions:
        text += f" (except {', '.join(entry.exceptions)})"
    return text


def _defenses(entries: Sequence[DefenseEntry]) -> str:
    return ", ".join(_format_defense(e) for e in entries) if entries else "None"


def _save(target: Creature, highest: bool) -> str:
    if not target.saves:
        return "Unknown"
    saves = list(target.saves.values())
    pick = max(saves, key=lambda s: s.modifier) if highest else min(saves, key=lambda s: s.modifier)
    return f"{pick.label} ({pick.modifier:+d})"


def _attacks(target: Creature) -> str:
    entries = []
    for attack in target.attacks[:MAX_LISTED_ENTRIES]:
        bonus = f"{attack.bonus:+d}" if attack.bonus is not None else "?"
        damage = " plus ".join(attack.damage) if attack.damage else "?"
        entries.append(f"{attack.name} {bonus} ({damage})")
    return "; ".join(entries) if entries else "No attacks found"


def _skills(target: Creature) -> str:
    entries = [
        f"{skill.label} {skill.modifier:+d}"
        for skill in target.skills.values()
        if skill.base > 0 or skill.rank > 0
    ]
    return ", ".join(entries) if entries else "No trained skills"


def _background(target: Creature) -> str:
    text = target.public_notes or target.biography or NO_BACKGROUND
    return text[:BACKGROUND_LIMIT] + "..." if len(text) > BACKGROUND_LIMIT else text


def _special_attacks(target: Creature) -> str:
    names = [
        f.name for f in target.features
        if f.type == "action" and f.action_type == "attack" and any("special" in t for t in f.traits)
    ]
    return ", ".join(names) if names else "None known"


def _special_abilities(target: Creature) -> str:
    names = [
        f.name for f in target.features
        if f.type in ("action", "feat") and _SPECIAL_ABILITY_TRAITS & set(f.traits)
    ]
    return ", ".join(names[:MAX_LISTED_ENTRIES]) if names else "None known"


def extract_fact(target: Creature, fact_id: FactId | str) -> str:
    """
    Display value of one fact about a creature.

    Never raises: missing statblock data produces a fallback such as
    "None", "Unknown" or "No attacks found".
    """
    try:
        fact_id = FactId(fact_id)
    except ValueError:
        return "Unknown"

    if fact_id == FactId.HIGHEST_SAVE:
        return _save(target, highest=True)
    if fact_id == FactId.LOWEST_SAVE:
        return _save(target, highest=False)
    if fact_id == FactId.RESISTANCES:
        return _defenses(target.resistances)
    if fact_id == FactId.WEAKNESSES:
        return _defenses(target.weaknesses)
    if fact_id == FactId.IMMUNITIES:
        return ", ".join(e.type for e in target.immunities) if target.immunities else "None"
    if fact_id == FactId.ATTACKS:
        return _attacks(target)
    if fact_id == FactId.SKILLS:
        return _skills(target)
    if fact_id == FactId.BACKGROUND:
        return _background(target)
    if fact_id == FactId.SPECIAL_ATTACKS:
        return _special_attacks(target)
    if fact_id == FactId.SPECIAL_ABILITIES:
        return _special_abilities(target)
    return "Unknown"


# ---------------------------------------------------------------------------
# False information
# ---------------------------------------------------------------------------

_SAVES = ["Fortitude", "Reflex", "Will"]
_DAMAGE_TYPES = [
    "fire", "cold", "electricity", "acid", "poison", "sonic", "force",
    "negative", "positive", "mental", "slashing", "piercing", "bludgeoning",
]
_SKILL_NAMES = [
    "Acrobatics", "Arcana", "Athletics", "Crafting", "Deception", "Diplomacy",
    "Intimidation", "Medicine", "Nature", "Occultism", "Performance", "Religion",
    "Society", "Stealth", "Survival", "Thievery",
]
_ATTACK_NAMES = ["claw", "bite", "fist", "tail", "horn", "slam", "tentacle", "longbow", "crossbow"]
_FALSE_BACKGROUNDS = [
    "This creature is known to be peaceful and rarely attacks.",
    "Legends say this creature can speak Common fluently.",
    "This creature is said to be vulnerable during the day.",
    "Stories tell of this creature's ability to turn invisible at will.",
    "This creature is believed to be attracted to shiny objects.",
    "Ancient texts claim this creature fears running water.",
    "This creature is rumored to have exceptional hearing.",
    "Scholars believe this creature can regenerate lost limbs.",
]
_FALSE_SPECIAL_ATTACKS = [
    "breath weapon (3d6 fire, DC 20 Reflex)",
    "paralyzing touch (Fort DC 18)",
    "death gaze (Will DC 22)",
    "poison (1d6 poison per round)",
    "web attack (Reflex DC 16)",
]
_FALSE_SPECIAL_ABILITIES = [
    "darkvision 60 ft., low-light vision",
    "regeneration 5 (acid or fire)",
    "spell resistance 15",
    "telepathy 100 ft.",
    "tremorsense 30 ft.",
]


def _damage_types(rng: random.Random) -> str:
    return ", ".join(rng.sample(_DAMAGE_TYPES, rng.randint(1, 3)))


def generate_false_payload(fact_id: FactId | str, rng: Optional[random.Random] = None) -> DisclosedFact:
    """
    Fabricate a plausible value for a fact.

    Results are deliberately random on every call; only the label/value
    shape is stable.
    """
    rng = rng or _false_rng
    try:
        fact_id = FactId(fact_id)
    except ValueError:
        return DisclosedFact(
            label=str(fact_id),
            value="You recall something, but you're not quite sure what...",
        )

    if fact_id == FactId.HIGHEST_SAVE:
        value = f"{rng.choice(_SAVES)} (+{rng.randint(5, 25)})"
    elif fact_id == FactId.LOWEST_SAVE:
        value = f"{rng.choice(_SAVES)} ({rng.randint(-2, 15):+d})"
    elif fact_id == FactId.RESISTANCES:
        value = f"{_damage_types(rng)} {rng.randint(5, 15)}" if rng.random() > 0.5 else "None"
    elif fact_id == FactId.WEAKNESSES:
        value = f"{_damage_types(rng)} {rng.randint(5, 15)}" if rng.random() > 0.3 else "None"
    elif fact_id == FactId.IMMUNITIES:
        value = _damage_types(rng) if rng.random() > 0.6 else "None"
    elif fact_id == FactId.ATTACKS:
        attacks = []
        for _ in range(rng.randint(1, 3)):
            damage = f"{rng.randint(1, 3)}d{rng.choice([4, 6, 8, 10, 12])}+{rng.randint(0, 10)}"
            attacks.append(
                f"{rng.choice(_ATTACK_NAMES)} ({rng.choice(['melee', 'ranged'])} "
                f"+{rng.randint(5, 25)}, {damage} {rng.choice(_DAMAGE_TYPES[:5])})"
            )
        value = ", ".join(attacks)
    elif fact_id == FactId.SKILLS:
        picked = rng.sample(_SKILL_NAMES, rng.randint(2, 5))
        value = ", ".join(f"{name} +{rng.randint(5, 25)}" for name in picked)
    elif fact_id == FactId.BACKGROUND:
        value = rng.choice(_FALSE_BACKGROUNDS)
    elif fact_id == FactId.SPECIAL_ATTACKS:
        value = rng.choice(_FALSE_SPECIAL_ATTACKS)
    else:
        value = rng.choice(_FALSE_SPECIAL_ABILITIES)

    return DisclosedFact(fact_id=fact_id, label=fact_id.label, value=value)


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def disclose(
    target: Creature,
    fact_ids: Iterable[FactId],
    is_false: bool = False,
) -> list[DisclosedFact]:
    """Label/value pairs for the chosen facts, genuine or fabricated."""
    if is_false:
        return [generate_false_payload(fact_id) for fact_id in fact_ids]
    return [
        DisclosedFact(fact_id=fact_id, label=fact_id.label, value=extract_fact(target, fact_id))
        for fact_id in fact_ids
    ]


def selection_options(
    fact_ids: Iterable[FactId],
    learned: set[FactId],
    target: Creature,
) -> list[FactOption]:
    """
    Build the fact-selection prompt.

    Facts already learned are listed with their value but are not
    selectable, so they neither cost nor consume budget.
    """
    options = []
    for fact_id in dict.fromkeys(fact_ids):
        known = fact_id in learned
        options.append(FactOption(
            fact_id=fact_id,
            label=fact_id.label,
            known=known,
            value=extract_fact(target, fact_id) if known else None,
        ))
    return options


def clamp_selection(
    selection: Iterable[FactId | str],
    options: Sequence[FactOption],
    max_count: int,
) -> list[FactId]:
    """
    Keep only selectable, distinct facts, at most ``max_count`` of them.
    """
    selectable = {option.fact_id for option in options if option.selectable}
    chosen: list[FactId] = []
    for raw in selection:
        try:
            fact_id = FactId(raw)
        except ValueError:
            logger.warning(f"Ignoring unknown fact selection {raw!r}")
            continue
        if fact_id not in selectable or fact_id in chosen:
            continue
        if len(chosen) >= max_count:
            logger.warning(f"Selection exceeds budget of {max_count}, extra facts ignored")
            break
        chosen.append(fact_id)
    return chosen


__all__ = [
    "budget",
    "extract_fact",
    "generate_false_payload",
    "disclose",
    "selection_options",
    "clamp_selection",
]
