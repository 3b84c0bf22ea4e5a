"""
Data models for the Recall Knowledge engine.

Actor and creature records are read-only views of host documents. All
fallback handling for missing host data lives in the ``from_document``
constructors so that the rules code can rely on fully populated records.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class FactId(str, Enum):
    """Discrete pieces of information a Recall Knowledge check can reveal."""
    HIGHEST_SAVE = "highest-save"
    LOWEST_SAVE = "lowest-save"
    RESISTANCES = "resistances"
    WEAKNESSES = "weaknesses"
    IMMUNITIES = "immunities"
    ATTACKS = "attacks"
    SKILLS = "skills"
    BACKGROUND = "background"
    SPECIAL_ATTACKS = "special-attacks"
    SPECIAL_ABILITIES = "special-abilities"

    @property
    def label(self) -> str:
        return FACT_LABELS[self]


FACT_LABELS: dict[FactId, str] = {
    FactId.HIGHEST_SAVE: "Highest Save",
    FactId.LOWEST_SAVE: "Lowest Save",
    FactId.RESISTANCES: "Resistances",
    FactId.WEAKNESSES: "Weaknesses",
    FactId.IMMUNITIES: "Immunities",
    FactId.ATTACKS: "Attacks",
    FactId.SKILLS: "Skills",
    FactId.BACKGROUND: "Background",
    FactId.SPECIAL_ATTACKS: "Special Attacks",
    FactId.SPECIAL_ABILITIES: "Special Abilities",
}


class DegreeOfSuccess(str, Enum):
    """Outcome tiers of a check, ordered worst to best."""
    CRITICAL_FAILURE = "criticalFailure"
    FAILURE = "failure"
    SUCCESS = "success"
    CRITICAL_SUCCESS = "criticalSuccess"

    @property
    def is_success(self) -> bool:
        return self in (DegreeOfSuccess.SUCCESS, DegreeOfSuccess.CRITICAL_SUCCESS)


class ProficiencyRank(int, Enum):
    UNTRAINED = 0
    TRAINED = 1
    EXPERT = 2
    MASTER = 3
    LEGENDARY = 4


# ---------------------------------------------------------------------------
# Document helpers
# ---------------------------------------------------------------------------

def _to_int(value: Any) -> Optional[int]:
    """Coerce a host number to int, None when it is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _first_number(data: Any, *keys: str) -> int:
    """
    Return the first numeric value among ``keys`` as an int, else 0.

    Hosts sometimes store a bare number where an object is expected, so a
    numeric ``data`` is returned as is.
    """
    if not isinstance(data, dict):
        return _to_int(data) or 0
    for key in keys:
        value = _to_int(data.get(key))
        if value is not None:
            return value
    return 0


def _dig(data: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _capitalize(key: str) -> str:
    return key[:1].upper() + key[1:]


# ---------------------------------------------------------------------------
# Actor records
# ---------------------------------------------------------------------------

class SkillEntry(BaseModel):
    """A single skill statistic on an actor."""
    label: str
    rank: int = Field(default=0, ge=0, le=4)
    modifier: int = 0
    base: int = 0


class Feature(BaseModel):
    """An owned item relevant to the rules: feat, class feature or action."""
    name: str = ""
    slug: str = ""
    type: str = "feat"
    traits: list[str] = Field(default_factory=list)
    action_type: Optional[str] = None


class ActiveEffect(BaseModel):
    name: str = ""
    label: str = ""


class Actor(BaseModel):
    """A character attempting a check. Owned by the host; only read here."""
    id: str
    name: str = "Unknown"
    level: int = 0
    skills: dict[str, SkillEntry] = Field(default_factory=dict)
    features: list[Feature] = Field(default_factory=list)
    effects: list[ActiveEffect] = Field(default_factory=list)

    def skill_rank(self, skill_key: str) -> int:
        skill = self.skills.get(skill_key)
        return skill.rank if skill else 0

    def skill_label(self, skill_key: str) -> str:
        skill = self.skills.get(skill_key)
        return skill.label if skill else _capitalize(skill_key)

    @classmethod
    def _document_fields(cls, doc: dict[str, Any]) -> dict[str, Any]:
        system = _as_dict(doc.get("system"))

        skills: dict[str, SkillEntry] = {}
        for key, raw in _as_dict(system.get("skills")).items():
            if not isinstance(raw, dict):
                continue
            skills[key] = SkillEntry(
                label=_text(raw.get("label")) or _capitalize(key),
                rank=max(0, min(4, _first_number(raw, "rank"))),
                modifier=_first_number(raw, "mod", "totalModifier", "value"),
                base=_first_number(raw, "base"),
            )

        features = []
        for item in _as_list(doc.get("items")):
            if not isinstance(item, dict):
                continue
            item_system = _as_dict(item.get("system"))
            action_type = _dig(item_system, "actionType", "value")
            features.append(Feature(
                name=_text(item.get("name")),
                slug=_text(item.get("slug")) or _text(item_system.get("slug")),
                type=_text(item.get("type")),
                traits=[str(t) for t in _as_list(_dig(item_system, "traits", "value"))],
                action_type=action_type if isinstance(action_type, str) else None,
            ))

        effects = [
            ActiveEffect(name=_text(e.get("name")), label=_text(e.get("label")))
            for e in _as_list(doc.get("effects"))
            if isinstance(e, dict)
        ]

        return {
            "id": str(doc.get("id") or doc.get("uuid") or ""),
            "name": _text(doc.get("name")) or "Unknown",
            "level": _first_number(_dig(system, "details", "level"), "value"),
            "skills": skills,
            "features": features,
            "effects": effects,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Actor":
        """Build an Actor from a host actor document."""
        return cls(**cls._document_fields(doc))


class DefenseEntry(BaseModel):
    """A resistance, weakness or immunity entry."""
    type: str
    value: Optional[int] = None
    exceptions: list[str] = Field(default_factory=list)


class Save(BaseModel):
    label: str
    modifier: int = 0


class Attack(BaseModel):
    """A strike from a creature statblock."""
    name: str
    bonus: Optional[int] = None
    damage: list[str] = Field(default_factory=list)


class Creature(Actor):
    """The creature under investigation."""
    traits: list[str] = Field(default_factory=list)
    resistances: list[DefenseEntry] = Field(default_factory=list)
    weaknesses: list[DefenseEntry] = Field(default_factory=list)
    immunities: list[DefenseEntry] = Field(default_factory=list)
    saves: dict[str, Save] = Field(default_factory=dict)
    attacks: list[Attack] = Field(default_factory=list)
    public_notes: str = ""
    biography: str = ""

    @staticmethod
    def _defenses(raw: Any) -> list[DefenseEntry]:
        entries = []
        for entry in _as_list(raw):
            if isinstance(entry, str):
                entries.append(DefenseEntry(type=entry))
            elif isinstance(entry, dict) and entry.get("type"):
                exceptions = []
                for exception in _as_list(entry.get("exceptions")):
                    if isinstance(exception, dict):
                        exception = exception.get("label") or exception.get("type")
                    if exception:
                        exceptions.append(str(exception))
                entries.append(DefenseEntry(
                    type=str(entry["type"]),
                    value=_to_int(entry.get("value")),
                    exceptions=exceptions,
                ))
        return entries

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Creature":
        """Build a Creature from a host actor document."""
        fields = cls._document_fields(doc)
        system = _as_dict(doc.get("system"))
        attributes = _as_dict(system.get("attributes"))

        # Some exports store the trait list directly under system.traits
        raw_traits = system.get("traits")
        if isinstance(raw_traits, list):
            traits: dict[str, Any] = {"value": raw_traits}
        else:
            traits = _as_dict(raw_traits)

        saves = {
            key: Save(
                label=_text(raw.get("label")) or _capitalize(key),
                modifier=_first_number(raw, "totalModifier", "mod", "value"),
            )
            for key, raw in _as_dict(system.get("saves")).items()
            if isinstance(raw, dict)
        }

        attacks = []
        for item in _as_list(doc.get("items")):
            if not isinstance(item, dict) or item.get("type") != "melee":
                continue
            item_system = _as_dict(item.get("system"))
            damage_rolls = _as_dict(item_system.get("damageRolls"))
            attacks.append(Attack(
                name=_text(item.get("name")) or "Attack",
                bonus=_to_int(_dig(item_system, "bonus", "value")),
                damage=[
                    str(r["damage"]) for r in damage_rolls.values()
                    if isinstance(r, dict) and r.get("damage")
                ],
            ))

        details = _as_dict(system.get("details"))
        return cls(
            **fields,
            traits=[str(t) for t in _as_list(traits.get("value"))],
            resistances=cls._defenses(traits.get("dr") or attributes.get("resistances")),
            weaknesses=cls._defenses(traits.get("dv") or attributes.get("weaknesses")),
            immunities=cls._defenses(traits.get("di") or attributes.get("immunities")),
            saves=saves,
            attacks=attacks,
            public_notes=_text(details.get("publicNotes")),
            biography=_text(_dig(details, "biography", "value")),
        )


# ---------------------------------------------------------------------------
# Check records
# ---------------------------------------------------------------------------

class KnowledgeSkill(BaseModel):
    """A knowledge skill an actor can use for this check."""
    key: str
    name: str
    modifier: int = 0
    is_lore: bool = False


class CheckResult(BaseModel):
    """Structured result of a resolved Recall Knowledge roll."""
    total: int
    die: Optional[int] = Field(default=None, description="d20 result, None when Assurance was used")
    modifier: int = 0
    situational_bonus: int = 0
    dc: int
    degree: DegreeOfSuccess
    skill_key: str
    used_assurance: bool = False

    @property
    def margin(self) -> int:
        return self.total - self.dc


class BudgetSource(BaseModel):
    label: str
    count: int


class InformationBudget(BaseModel):
    """How many facts the check lets the player learn, and why."""
    total: int = Field(default=0, ge=0)
    sources: list[BudgetSource] = Field(default_factory=list)
    is_false: bool = False


class DisclosedFact(BaseModel):
    """A label/value pair handed to the disclosure sink."""
    fact_id: Optional[FactId] = None
    label: str
    value: str


class FactOption(BaseModel):
    """One entry of the fact-selection prompt."""
    fact_id: FactId
    label: str
    known: bool = False
    value: Optional[str] = Field(default=None, description="Shown for already-known facts")

    @property
    def selectable(self) -> bool:
        return not self.known


class PendingApprovalRequest(BaseModel):
    """A Recall Knowledge request awaiting a GM decision."""
    request_id: str
    player_id: str
    player_name: str = ""
    actor_id: str
    actor_name: str = ""
    target_id: str
    target_name: str = ""
    available_skills: list[str] = Field(default_factory=list)
    current_attempts: int = 0
    current_dc: int = 15
    created_at: datetime = Field(default_factory=datetime.now)


class ApprovalDecision(BaseModel):
    approved: bool
    adjusted_attempts: Optional[int] = Field(default=None, ge=0)
    reason: str = ""


__all__ = [
    "FactId",
    "FACT_LABELS",
    "DegreeOfSuccess",
    "ProficiencyRank",
    "SkillEntry",
    "Feature",
    "ActiveEffect",
    "Actor",
    "DefenseEntry",
    "Save",
    "Attack",
    "Creature",
    "KnowledgeSkill",
    "CheckResult",
    "BudgetSource",
    "InformationBudget",
    "DisclosedFact",
    "FactOption",
    "PendingApprovalRequest",
    "ApprovalDecision",
]
