"""
Tests for host document normalization.
"""

import pytest

from recall_knowledge.information import extract_fact
from recall_knowledge.models import Actor, Creature, FactId


ACTOR_DOC = {
    "id": "pc1",
    "name": "Ezren",
    "system": {
        "details": {"level": {"value": 7}},
        "skills": {
            "arcana": {"label": "Arcana", "rank": 3, "totalModifier": 16},
            "nature": {"rank": 1, "mod": 9, "totalModifier": 99},
            "society": {"value": 4},
            "broken": "not a dict",
        },
    },
    "items": [
        {"name": "Diverse Recognition", "type": "feat", "system": {"slug": "diverse-recognition"}},
        {"name": "Staff", "type": "weapon"},
    ],
    "effects": [{"name": "Effect: Pocket Library"}],
}

CREATURE_DOC = {
    "id": "ogre1",
    "name": "Ogre Warrior",
    "system": {
        "details": {
            "level": {"value": 3},
            "publicNotes": "",
            "biography": {"value": "Large and hungry."},
        },
        "traits": {
            "value": ["giant", "humanoid"],
            "dr": [{"type": "physical", "value": 3, "exceptions": ["adamantine"]}],
            "di": ["sleep"],
        },
        "attributes": {"weaknesses": [{"type": "fire", "value": 5}]},
        "saves": {
            "fortitude": {"label": "Fortitude", "totalModifier": 13},
            "will": {"value": 4},
        },
    },
    "items": [
        {
            "name": "Ogre Hook",
            "type": "melee",
            "system": {
                "bonus": {"value": 12},
                "damageRolls": {"a": {"damage": "1d10+7"}, "b": {"damage": ""}},
            },
        },
        {
            "name": "Ferocity",
            "type": "action",
            "system": {"traits": {"value": ["reaction"]}, "actionType": {"value": "reaction"}},
        },
    ],
}


class TestActorDocument:
    def test_skills_modifier_fallback_order(self):
        actor = Actor.from_document(ACTOR_DOC)
        assert actor.skills["arcana"].modifier == 16
        assert actor.skills["nature"].modifier == 9
        assert actor.skills["society"].modifier == 4
        assert "broken" not in actor.skills

    def test_skill_label_fallback(self):
        actor = Actor.from_document(ACTOR_DOC)
        assert actor.skills["nature"].label == "Nature"
        assert actor.skill_label("occultism") == "Occultism"
        assert actor.skill_rank("occultism") == 0

    def test_level_features_effects(self):
        actor = Actor.from_document(ACTOR_DOC)
        assert actor.level == 7
        assert actor.features[0].slug == "diverse-recognition"
        assert actor.features[1].type == "weapon"
        assert actor.effects[0].name == "Effect: Pocket Library"

    def test_empty_document(self):
        actor = Actor.from_document({})
        assert actor.name == "Unknown"
        assert actor.level == 0
        assert actor.skills == {}
        assert actor.features == []


class TestCreatureDocument:
    def test_traits_and_defenses(self):
        creature = Creature.from_document(CREATURE_DOC)
        assert creature.traits == ["giant", "humanoid"]
        assert creature.resistances[0].exceptions == ["adamantine"]
        assert creature.immunities[0].type == "sleep"
        assert creature.immunities[0].value is None
        assert creature.weaknesses[0].value == 5

    def test_saves(self):
        creature = Creature.from_document(CREATURE_DOC)
        assert creature.saves["fortitude"].modifier == 13
        assert creature.saves["will"].label == "Will"
        assert creature.saves["will"].modifier == 4

    def test_attacks(self):
        creature = Creature.from_document(CREATURE_DOC)
        assert len(creature.attacks) == 1
        assert creature.attacks[0].bonus == 12
        assert creature.attacks[0].damage == ["1d10+7"]

    def test_biography_used_when_no_public_notes(self):
        creature = Creature.from_document(CREATURE_DOC)
        assert creature.public_notes == ""
        assert creature.biography == "Large and hungry."

    def test_action_traits(self):
        creature = Creature.from_document(CREATURE_DOC)
        ferocity = next(f for f in creature.features if f.name == "Ferocity")
        assert ferocity.traits == ["reaction"]
        assert ferocity.action_type == "reaction"

    def test_bare_number_level(self):
        creature = Creature.from_document({"id": "c1", "system": {"details": {"level": 5}}})
        assert creature.level == 5

    def test_trait_list_without_wrapper(self):
        creature = Creature.from_document({"id": "c1", "system": {"traits": ["undead", "zombie"]}})
        assert creature.traits == ["undead", "zombie"]
        assert creature.resistances == []

    def test_non_numeric_defense_value(self):
        doc = {"id": "c1", "system": {"attributes": {"resistances": [{"type": "physical", "value": "half"}]}}}
        creature = Creature.from_document(doc)
        assert creature.resistances[0].type == "physical"
        assert creature.resistances[0].value is None
        assert extract_fact(creature, FactId.RESISTANCES) == "physical"

    def test_float_attack_bonus(self):
        doc = {
            "id": "c1",
            "items": [{"name": "Claw", "type": "melee", "system": {"bonus": {"value": 9.0}}}],
        }
        creature = Creature.from_document(doc)
        assert creature.attacks[0].bonus == 9
        assert creature.attacks[0].damage == []

    def test_object_shaped_exceptions(self):
        doc = {
            "id": "c1",
            "system": {"traits": {"dr": [
                {"type": "physical", "value": 5, "exceptions": [{"label": "silver"}, "cold-iron", {}]},
            ]}},
        }
        creature = Creature.from_document(doc)
        assert creature.resistances[0].exceptions == ["silver", "cold-iron"]
        assert extract_fact(creature, FactId.RESISTANCES) == "physical 5 (except silver, cold-iron)"

    @pytest.mark.parametrize("system", [
        {"details": "level 4", "saves": [], "attributes": 7},
        {"traits": "fiend", "skills": ["arcana"]},
        {"details": {"biography": "plain text", "publicNotes": None}},
    ])
    def test_unexpected_shapes_fall_back(self, system):
        doc = {"id": "c1", "system": system, "items": ["not an item", {"type": "melee", "system": {"damageRolls": ["1d6"]}}]}
        creature = Creature.from_document(doc)
        assert creature.level == 0
        assert creature.traits == []
        assert creature.biography == ""
        for fact_id in FactId:
            assert isinstance(extract_fact(creature, fact_id), str)


def test_fact_labels():
    assert FactId.HIGHEST_SAVE.label == "Highest Save"
    assert FactId.SPECIAL_ABILITIES.label == "Special Abilities"
    assert FactId("background").label == "Background"
