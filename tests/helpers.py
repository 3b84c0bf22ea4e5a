"""
Test doubles for the Recall Knowledge host boundaries.

Provides in-memory game data, a user directory, recording sinks and
scripted prompts so orchestrator flows can run without a virtual tabletop.
"""

from __future__ import annotations

import asyncio
import random
from typing import Any, Callable, Optional, Union

from recall_knowledge.config import RecallKnowledgeSettings
from recall_knowledge.feats import AssuranceCheck
from recall_knowledge.host import Cancelled, LocalMessageChannel, SkillChoice
from recall_knowledge.models import (
    Actor,
    ApprovalDecision,
    Attack,
    CheckResult,
    Creature,
    DefenseEntry,
    DisclosedFact,
    FactId,
    FactOption,
    Feature,
    InformationBudget,
    KnowledgeSkill,
    PendingApprovalRequest,
    Save,
    SkillEntry,
)
from recall_knowledge.orchestrator import RecallKnowledgeOrchestrator
from recall_knowledge.store import InMemoryKeyValueStore


# -- Records ---------------------------------------------------------------


def make_actor(
    actor_id: str = "pc1",
    name: str = "Ezren",
    level: int = 5,
    skills: Optional[dict[str, tuple[int, int]]] = None,
    feats: tuple[str, ...] = (),
) -> Actor:
    """Build an actor; ``skills`` maps key -> (rank, modifier)."""
    skills = skills if skills is not None else {"arcana": (2, 8)}
    return Actor(
        id=actor_id,
        name=name,
        level=level,
        skills={
            key: SkillEntry(label=key.replace("-", " ").title(), rank=rank, modifier=mod, base=rank)
            for key, (rank, mod) in skills.items()
        },
        features=[Feature(name=feat, slug=feat.lower().replace(" ", "-"), type="feat") for feat in feats],
    )


def make_creature(
    creature_id: str = "goblin1",
    name: str = "Goblin Warrior",
    level: int = 10,
    traits: tuple[str, ...] = ("humanoid", "goblin"),
) -> Creature:
    return Creature(
        id=creature_id,
        name=name,
        level=level,
        traits=list(traits),
        resistances=[DefenseEntry(type="fire", value=5)],
        weaknesses=[DefenseEntry(type="cold iron", value=3)],
        saves={
            "fortitude": Save(label="Fortitude", modifier=7),
            "reflex": Save(label="Reflex", modifier=12),
            "will": Save(label="Will", modifier=3),
        },
        attacks=[Attack(name="Dogslicer", bonus=9, damage=["1d6+2 slashing"])],
        skills={"stealth": SkillEntry(label="Stealth", rank=1, modifier=8, base=8)},
        public_notes="Small and vicious.",
    )


class ForcedDie(random.Random):
    """Random source whose d20 results are scripted."""

    def __init__(self, *rolls: int) -> None:
        super().__init__(0)
        self.rolls = list(rolls)

    def randint(self, a: int, b: int) -> int:
        return self.rolls.pop(0) if self.rolls else 10


# -- Host doubles ----------------------------------------------------------


class FakeActors:
    def __init__(self, *records: Actor, party: tuple[str, ...] = (), scene: tuple[str, ...] = ()) -> None:
        self.records = {record.id: record for record in records}
        self.party = list(party)
        self.scene = list(scene)

    def get_actor(self, actor_id: str) -> Optional[Actor]:
        return self.records.get(actor_id)

    def get_creature(self, target_id: str) -> Optional[Creature]:
        record = self.records.get(target_id)
        return record if isinstance(record, Creature) else None

    def party_member_ids(self) -> list[str]:
        return list(self.party)

    def scene_creature_ids(self) -> list[str]:
        return list(self.scene)


class FakeUsers:
    def __init__(self, players: tuple[str, ...] = ("player1", "player2"), gms: tuple[str, ...] = ("gm",)) -> None:
        self.players = list(players)
        self.gms = list(gms)

    def user_ids(self) -> list[str]:
        return [*self.gms, *self.players]

    def gm_ids(self) -> list[str]:
        return list(self.gms)

    def is_gm(self, user_id: str) -> bool:
        return user_id in self.gms

    def user_name(self, user_id: str) -> str:
        return user_id.title()


class RecordingSink:
    def __init__(self) -> None:
        self.rolls: list[tuple[CheckResult, InformationBudget, list[str]]] = []
        self.disclosures: list[tuple[str, list[DisclosedFact], list[str]]] = []

    async def announce_roll(self, actor, target, check, budget, recipients) -> None:
        self.rolls.append((check, budget, recipients))

    async def disclose(self, target, facts, recipients) -> None:
        self.disclosures.append((target.id, facts, recipients))


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str, str]] = []

    def info(self, user_id: str, message: str) -> None:
        self.messages.append(("info", user_id, message))

    def warn(self, user_id: str, message: str) -> None:
        self.messages.append(("warn", user_id, message))

    def error(self, user_id: str, message: str) -> None:
        self.messages.append(("error", user_id, message))

    def texts(self, level: Optional[str] = None) -> list[str]:
        return [m for lvl, _, m in self.messages if level is None or lvl == level]


FactPicker = Callable[[list[FactOption], InformationBudget], Union[list[Any], Cancelled]]


def pick_first(options: list[FactOption], budget: InformationBudget) -> list[FactId]:
    """Select as many selectable facts as the budget allows, in order."""
    return [o.fact_id for o in options if o.selectable][: budget.total]


class ScriptedInteraction:
    """
    Prompts answered from a script.

    ``skill`` may be a SkillChoice, a Cancelled, or None to never answer.
    """

    def __init__(
        self,
        skill: Union[SkillChoice, Cancelled, None] = SkillChoice(skill_key="arcana"),
        facts: FactPicker = pick_first,
        diverse: Union[str, Cancelled] = Cancelled(),
    ) -> None:
        self.skill = skill
        self.facts = facts
        self.diverse = diverse
        self.skill_prompts: list[dict[str, Any]] = []
        self.fact_prompts: list[list[FactOption]] = []
        self.diverse_prompts: list[list[str]] = []

    async def choose_skill(
        self, user_id, actor, target, skills: list[KnowledgeSkill], appropriate, dc, assurance: dict[str, AssuranceCheck],
    ):
        self.skill_prompts.append({"skills": skills, "appropriate": appropriate, "dc": dc, "assurance": assurance})
        if self.skill is None:
            await asyncio.Event().wait()
        return self.skill

    async def choose_facts(self, user_id, target, options, budget):
        self.fact_prompts.append(options)
        return self.facts(options, budget)

    async def choose_diverse_target(self, user_id, actor, candidates):
        self.diverse_prompts.append([c.id for c in candidates])
        return self.diverse


class ScriptedReviewer:
    """GM dialog returning a fixed answer; None never answers."""

    def __init__(self, answer: Union[ApprovalDecision, Cancelled, None]) -> None:
        self.answer = answer
        self.requests: list[PendingApprovalRequest] = []

    async def review(self, request: PendingApprovalRequest):
        self.requests.append(request)
        if self.answer is None:
            await asyncio.Event().wait()
        return self.answer


def build_orchestrator(
    actors: FakeActors,
    settings: Optional[RecallKnowledgeSettings] = None,
    interaction: Optional[ScriptedInteraction] = None,
    rng: Optional[random.Random] = None,
    store=None,
    users: Optional[FakeUsers] = None,
    channel: Optional[LocalMessageChannel] = None,
    local_user_id: str = "player1",
    reviewer=None,
) -> RecallKnowledgeOrchestrator:
    return RecallKnowledgeOrchestrator(
        settings=settings or RecallKnowledgeSettings(require_gm_approval=False),
        actors=actors,
        users=users or FakeUsers(),
        store=store if store is not None else InMemoryKeyValueStore(),
        channel=channel or LocalMessageChannel(),
        sink=RecordingSink(),
        notifier=RecordingNotifier(),
        interaction=interaction or ScriptedInteraction(),
        local_user_id=local_user_id,
        reviewer=reviewer,
        rng=rng,
    )
