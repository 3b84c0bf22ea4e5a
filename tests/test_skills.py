"""
Tests for the knowledge skill catalog.
"""

from helpers import make_actor, make_creature

from recall_knowledge.skills import (
    UNIVERSAL_LORES,
    classify_skill,
    get_appropriate_skills,
    get_usable_skills,
)


class TestAppropriateSkills:
    """Trait-to-skill mapping and universal lores."""

    def test_universal_lores_always_present(self):
        target = make_creature(traits=("ooze",))
        appropriate = get_appropriate_skills(target)
        assert set(UNIVERSAL_LORES) <= appropriate
        assert {"bardic-lore", "esoteric-lore", "gossip-lore", "loremaster-lore", "occultism"} <= appropriate

    def test_creature_without_traits_gets_only_lores(self):
        target = make_creature(traits=())
        assert get_appropriate_skills(target) == set(UNIVERSAL_LORES)

    def test_multiple_traits_union(self):
        target = make_creature(traits=("construct", "undead"))
        appropriate = get_appropriate_skills(target)
        assert {"arcana", "crafting", "religion"} <= appropriate

    def test_traits_are_case_insensitive(self):
        target = make_creature(traits=("Dragon",))
        assert "arcana" in get_appropriate_skills(target)


class TestBestiaryScholar:
    """Bonus skill injection."""

    def test_bonus_skill_added_when_core_skill_appropriate(self):
        target = make_creature(traits=("dragon",))
        appropriate = get_appropriate_skills(target, bonus_skill="nature")
        assert "arcana" in appropriate
        assert "nature" in appropriate

    def test_society_alone_does_not_unlock_bonus_skill(self):
        target = make_creature(traits=("humanoid",))
        appropriate = get_appropriate_skills(target, bonus_skill="occultism")
        assert "society" in appropriate
        assert "occultism" not in appropriate

    def test_crafting_alone_does_not_unlock_bonus_skill(self):
        target = make_creature(traits=("giant",))
        appropriate = get_appropriate_skills(target, bonus_skill="religion")
        assert "religion" not in appropriate

    def test_empty_bonus_skill_adds_nothing(self):
        target = make_creature(traits=("dragon",))
        assert get_appropriate_skills(target, bonus_skill="") == set(UNIVERSAL_LORES) | {"arcana"}


class TestUsableSkills:
    """Skill collection and ordering."""

    def test_sorted_by_modifier_descending(self):
        actor = make_actor(skills={"arcana": (1, 5), "religion": (2, 9), "nature": (1, 7)})
        assert [s.key for s in get_usable_skills(actor)] == ["religion", "nature", "arcana"]

    def test_ties_keep_catalog_order(self):
        actor = make_actor(skills={"society": (1, 6), "arcana": (1, 6), "occultism": (1, 6)})
        assert [s.key for s in get_usable_skills(actor)] == ["arcana", "occultism", "society"]

    def test_lore_skills_included(self):
        actor = make_actor(skills={"arcana": (1, 5), "dragon-lore": (2, 10), "athletics": (3, 15)})
        skills = get_usable_skills(actor)
        assert [s.key for s in skills] == ["dragon-lore", "arcana"]
        assert skills[0].is_lore

    def test_no_knowledge_skills(self):
        actor = make_actor(skills={"athletics": (2, 10)})
        assert get_usable_skills(actor) == []


class TestClassifySkill:
    def test_categories(self):
        appropriate = {"arcana", "bardic-lore"}
        assert classify_skill("arcana", appropriate) == "appropriate"
        assert classify_skill("bardic-lore", appropriate) == "appropriate"
        assert classify_skill("dragon-lore", appropriate) == "lore"
        assert classify_skill("society", appropriate) == "other"
