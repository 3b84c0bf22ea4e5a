"""
Knowledge skill catalog.

Decides which of an actor's skills can be used for Recall Knowledge and
which of them are thematically appropriate for a given creature. Skill
appropriateness is advisory: any usable skill may be rolled.
"""

import logging
from typing import Literal

from .models import Actor, Creature, KnowledgeSkill

logger = logging.getLogger("recall-knowledge")

CORE_KNOWLEDGE_SKILLS = ("arcana", "crafting", "occultism", "nature", "religion", "society")

# Lore skills usable for every Recall Knowledge check
UNIVERSAL_LORES = ("bardic-lore", "esoteric-lore", "gossip-lore", "loremaster-lore")

# Core skills whose appropriateness unlocks the Bestiary Scholar substitution.
# Society is deliberately absent.
BESTIARY_SCHOLAR_GATE = frozenset({"nature", "religion", "occultism", "arcana"})

TRAIT_SKILLS: dict[str, tuple[str, ...]] = {
    "aberration": ("occultism",),
    "animal": ("nature",),
    "astral": ("occultism",),
    "beast": ("arcana", "nature"),
    "celestial": ("religion",),
    "construct": ("arcana", "crafting"),
    "dragon": ("arcana",),
    "elemental": ("arcana", "nature"),
    "ethereal": ("occultism",),
    "fey": ("nature",),
    "fiend": ("religion",),
    "fungus": ("nature",),
    "giant": ("society",),
    "humanoid": ("society",),
    "monitor": ("religion",),
    "ooze": ("occultism",),
    "plant": ("nature",),
    "undead": ("religion",),
}

SkillHighlight = Literal["appropriate", "lore", "other"]


def is_lore_key(skill_key: str) -> bool:
    return "lore" in skill_key.lower()


def get_usable_skills(actor: Actor) -> list[KnowledgeSkill]:
    """
    Collect the actor's knowledge skills, best modifier first.

    Core knowledge skills are taken in a fixed order, followed by every lore
    skill in the actor's own order. The sort is stable, so ties keep that
    insertion order.

    Args:
        actor: The acting character

    Returns:
        Usable knowledge skills sorted by descending modifier
    """
    skills: list[KnowledgeSkill] = []

    for key in CORE_KNOWLEDGE_SKILLS:
        entry = actor.skills.get(key)
        if entry is not None:
            skills.append(KnowledgeSkill(key=key, name=entry.label, modifier=entry.modifier))

    for key, entry in actor.skills.items():
        if is_lore_key(key) and key not in CORE_KNOWLEDGE_SKILLS:
            skills.append(KnowledgeSkill(
                key=key,
                name=entry.label or "Lore",
                modifier=entry.modifier,
                is_lore=True,
            ))

    skills.sort(key=lambda s: -s.modifier)
    return skills


def get_appropriate_skills(target: Creature, bonus_skill: str = "") -> set[str]:
    """
    Skills thematically suited to identifying a creature.

    Args:
        target: The creature being investigated
        bonus_skill: Bestiary Scholar skill; added only when a core knowledge
            skill other than Society is already appropriate

    Returns:
        Set of appropriate skill keys, always including the universal lores
    """
    appropriate: set[str] = set(UNIVERSAL_LORES)

    for trait in target.traits:
        appropriate.update(TRAIT_SKILLS.get(trait.lower(), ()))

    if bonus_skill and appropriate & BESTIARY_SCHOLAR_GATE:
        appropriate.add(bonus_skill)

    logger.debug(f"Appropriate skills for {target.name}: {sorted(appropriate)}")
    return appropriate


def classify_skill(skill_key: str, appropriate: set[str]) -> SkillHighlight:
    """Highlight category shown next to a skill in the selection prompt."""
    if skill_key in appropriate:
        return "appropriate"
    if is_lore_key(skill_key):
        return "lore"
    return "other"


__all__ = [
    "CORE_KNOWLEDGE_SKILLS",
    "UNIVERSAL_LORES",
    "BESTIARY_SCHOLAR_GATE",
    "TRAIT_SKILLS",
    "is_lore_key",
    "get_usable_skills",
    "get_appropriate_skills",
    "classify_skill",
]
