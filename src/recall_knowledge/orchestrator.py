"""
Recall Knowledge orchestrator.

Drives a complete Recall Knowledge invocation for one user:

    validate -> guard -> approval -> skill prompt -> roll -> budget
    -> fact prompt -> record -> disclose -> Diverse Recognition follow-up

The orchestrator owns no global state. A host composition root builds one
with its collaborators (game data, users, store, channel, sink, prompts) and
calls ``recall_knowledge`` per request. Prompts that go unanswered are
bounded by ``prompt_timeout`` and treated as cancellations.
"""

from __future__ import annotations

import asyncio
import logging
import random
from enum import Enum
from typing import Any, Awaitable, Optional, TypeVar, Union

from pydantic import BaseModel, Field

from .approval import ApprovalCoordinator, ApprovalState
from .check import CheckResolver, CheckState, can_transition
from .config import RecallKnowledgeSettings
from .difficulty import compute_dc
from .exceptions import ApprovalDenied, ConcurrentInvocation, PersistenceFailure, UserInputMissing
from .feats import (
    check_assurance,
    compute_thorough_reports_bonus,
    has_diverse_recognition,
    has_thorough_reports,
)
from .host import (
    ActorProvider,
    ApprovalReviewer,
    Cancelled,
    DisclosureSink,
    GameEventBus,
    Interaction,
    MessageChannel,
    Notifier,
    SkillChoice,
    UserDirectory,
    disclosure_recipients,
    roll_recipients,
)
from .information import budget as compute_budget
from .information import clamp_selection, disclose, extract_fact, selection_options
from .ledger import AttemptCounter, CreatureTypeTracker, DiverseRecognitionTracker, KnowledgeLedger
from .models import (
    Actor,
    CheckResult,
    Creature,
    DisclosedFact,
    FactId,
    InformationBudget,
    KnowledgeSkill,
    ProficiencyRank,
)
from .skills import get_appropriate_skills, get_usable_skills
from .store import KeyValueStore

logger = logging.getLogger("recall-knowledge.orchestrator")

T = TypeVar("T")

ROUND_START_EVENT = "round_start"
BUSY_MESSAGE = "A Recall Knowledge request is already pending"


class RecallStatus(str, Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"
    DENIED = "denied"
    CANCELLED = "cancelled"
    BUSY = "busy"


class RecallOutcome(BaseModel):
    """
    Result of one Recall Knowledge invocation.

    Attributes:
        status: How the invocation ended
        message: Notice shown to the user, if any
        check: The resolved roll, when one happened
        budget: Facts the roll allowed
        selected_facts: Facts the player picked (after clamping)
        disclosed: Label/value pairs sent to the disclosure sink
        follow_up: Diverse Recognition check against a second creature
    """
    status: RecallStatus
    message: str = ""
    target_id: Optional[str] = None
    check: Optional[CheckResult] = None
    budget: Optional[InformationBudget] = None
    selected_facts: list[FactId] = Field(default_factory=list)
    disclosed: list[DisclosedFact] = Field(default_factory=list)
    follow_up: Optional["RecallOutcome"] = None


RecallOutcome.model_rebuild()


class LearnedInformationView(BaseModel):
    """What an actor (or the party) knows about a creature."""
    actor_id: str
    target_id: str
    target_name: str
    shared: bool = False
    facts: list[DisclosedFact] = Field(default_factory=list)
    provenance: dict[FactId, list[str]] = Field(default_factory=dict)


class RecallKnowledgeOrchestrator:
    """
    Runs Recall Knowledge checks end to end.

    Attributes:
        settings: Active settings
        ledger: Learned facts per user/actor/target
        attempts: Attempt counter driving DC escalation
        creature_types: Thorough Reports tracked types
        diverse_recognition: Once-per-round Diverse Recognition usage
        approval: GM approval coordinator
        resolver: Roll resolution
    """

    def __init__(
        self,
        settings: RecallKnowledgeSettings,
        actors: ActorProvider,
        users: UserDirectory,
        store: KeyValueStore,
        channel: MessageChannel,
        sink: DisclosureSink,
        notifier: Notifier,
        interaction: Interaction,
        local_user_id: str,
        reviewer: Optional[ApprovalReviewer] = None,
        rng: Optional[random.Random] = None,
        event_bus: Optional[GameEventBus] = None,
    ) -> None:
        self.settings = settings
        self.actors = actors
        self.users = users
        self.sink = sink
        self.notifier = notifier
        self.interaction = interaction

        self.ledger = KnowledgeLedger(store)
        self.attempts = AttemptCounter(store)
        self.creature_types = CreatureTypeTracker(store)
        self.diverse_recognition = DiverseRecognitionTracker(store)
        self.resolver = CheckResolver(self.attempts, rng=rng)
        self.approval = ApprovalCoordinator(
            settings, channel, users, self.attempts, local_user_id, reviewer=reviewer,
        )

        self._pending: set[tuple[str, str, str]] = set()
        self._states: dict[tuple[str, str, str], CheckState] = {}

        if event_bus is not None:
            self.attach(event_bus)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def attach(self, bus: GameEventBus) -> None:
        """Subscribe to host lifecycle events."""
        bus.subscribe(ROUND_START_EVENT, self.on_round_start)

    async def on_round_start(self, **payload: Any) -> None:
        await self.diverse_recognition.reset_all()

    # ------------------------------------------------------------------
    # State tracking
    # ------------------------------------------------------------------

    def state_of(self, user_id: str, actor_id: str, target_id: str) -> CheckState:
        """Step reached by an in-flight check; IDLE when none is running."""
        return self._states.get((user_id, actor_id, target_id), CheckState.IDLE)

    def _advance(self, key: tuple[str, str, str], new: CheckState) -> None:
        current = self._states.get(key, CheckState.IDLE)
        if not can_transition(current, new):
            logger.warning(f"Unexpected check transition {current.value} -> {new.value}")
        self._states[key] = new

    async def _prompt(self, awaitable: Awaitable[T]) -> Union[T, Cancelled]:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.settings.prompt_timeout)
        except asyncio.TimeoutError:
            return Cancelled(reason="timed out")

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def _load(self, actor_id: str, target_id: str) -> tuple[Actor, Creature, list[KnowledgeSkill]]:
        actor = self.actors.get_actor(actor_id) if actor_id else None
        if actor is None:
            raise UserInputMissing("Please select a character to use Recall Knowledge", {"actor_id": actor_id})

        target = self.actors.get_creature(target_id) if target_id else None
        if target is None:
            raise UserInputMissing("Please target a creature to use Recall Knowledge", {"target_id": target_id})

        skills = get_usable_skills(actor)
        if not skills:
            raise UserInputMissing(f"{actor.name} has no skills usable for Recall Knowledge", {"actor_id": actor_id})

        return actor, target, skills

    async def recall_knowledge(self, user_id: str, actor_id: str, target_id: str) -> RecallOutcome:
        """
        Run a Recall Knowledge check for a user's actor against a creature.

        Args:
            user_id: Requesting user
            actor_id: Acting character
            target_id: Creature to investigate

        Returns:
            RecallOutcome describing how the invocation ended

        Raises:
            PersistenceFailure: If an attempt or learned fact could not be
                stored; the user is notified first
        """
        try:
            actor, target, skills = self._load(actor_id, target_id)
        except UserInputMissing as e:
            self.notifier.warn(user_id, e.message)
            return RecallOutcome(status=RecallStatus.ABORTED, message=e.message, target_id=target_id)

        return await self._guarded(user_id, actor, target, skills)

    async def _guarded(
        self,
        user_id: str,
        actor: Actor,
        target: Creature,
        skills: list[KnowledgeSkill],
        choice: Optional[SkillChoice] = None,
    ) -> RecallOutcome:
        key = (user_id, actor.id, target.id)
        if key in self._pending:
            error = ConcurrentInvocation(*key)
            logger.warning(f"{error.message}: {error.details}")
            self.notifier.warn(user_id, BUSY_MESSAGE)
            return RecallOutcome(status=RecallStatus.BUSY, message=BUSY_MESSAGE, target_id=target.id)

        self._pending.add(key)
        self._states[key] = CheckState.IDLE
        try:
            return await self._run(user_id, actor, target, skills, choice)
        except PersistenceFailure as e:
            # A Diverse Recognition follow-up has already told the user
            if not e.details.get("notified"):
                logger.error(f"Recall Knowledge aborted, could not persist {e.namespace}: {e.message}")
                self.notifier.error(user_id, "Recall Knowledge could not save your progress")
                e.details["notified"] = True
            raise
        finally:
            self._pending.discard(key)
            self._states.pop(key, None)

    async def _approve(
        self,
        user_id: str,
        actor: Actor,
        target: Creature,
        skills: list[KnowledgeSkill],
        attempts: int,
        dc: int,
    ) -> None:
        result = await self.approval.request_approval(user_id, actor, target, skills, attempts, dc)
        if result.state == ApprovalState.DENIED:
            raise ApprovalDenied(result.reason or "GM denied the request")

    async def _run(
        self,
        user_id: str,
        actor: Actor,
        target: Creature,
        skills: list[KnowledgeSkill],
        choice: Optional[SkillChoice] = None,
    ) -> RecallOutcome:
        key = (user_id, actor.id, target.id)
        appropriate = get_appropriate_skills(target, self.settings.bonus_skill_for(user_id))

        attempts = self.attempts.get(user_id, actor.id, target.id)
        dc = compute_dc(target, attempts, self.settings.auto_calculate_dc)

        if self.approval.requires_approval(user_id):
            self._advance(key, CheckState.AWAITING_APPROVAL)
            try:
                await self._approve(user_id, actor, target, skills, attempts, dc)
            except ApprovalDenied as e:
                self._advance(key, CheckState.ABORTED)
                self.notifier.warn(user_id, e.message)
                return RecallOutcome(status=RecallStatus.DENIED, message=e.message, target_id=target.id)

            # The GM may have overridden the attempt count
            attempts = self.attempts.get(user_id, actor.id, target.id)
            dc = compute_dc(target, attempts, self.settings.auto_calculate_dc)

        assurance = {skill.key: check_assurance(actor, skill.key) for skill in skills}

        if choice is None:
            answer = await self._prompt(self.interaction.choose_skill(
                user_id, actor, target, skills, appropriate, dc, assurance,
            ))
            if isinstance(answer, Cancelled):
                self._advance(key, CheckState.ABORTED)
                return RecallOutcome(status=RecallStatus.CANCELLED, message="Recall Knowledge cancelled", target_id=target.id)
            choice = answer

        skill = next((s for s in skills if s.key == choice.skill_key), None)
        if skill is None:
            message = f"{actor.name} cannot use {choice.skill_key} for Recall Knowledge"
            self._advance(key, CheckState.ABORTED)
            self.notifier.warn(user_id, message)
            return RecallOutcome(status=RecallStatus.ABORTED, message=message, target_id=target.id)
        self._advance(key, CheckState.SKILL_SELECTED)

        fixed_value = None
        if choice.use_assurance:
            available = assurance.get(skill.key)
            if available is not None and available.available:
                fixed_value = available.fixed_value
            else:
                self.notifier.warn(user_id, f"{actor.name} does not have Assurance in {skill.name}; rolling normally")

        situational_bonus = 0
        if fixed_value is None:
            situational_bonus = compute_thorough_reports_bonus(
                actor, target, skill.key, self.creature_types.tracked(user_id, actor.id),
            )

        self._advance(key, CheckState.ROLL_PENDING)
        check = await self.resolver.resolve(
            user_id, actor, target, skill, dc,
            fixed_value=fixed_value, situational_bonus=situational_bonus,
        )
        self._advance(key, CheckState.RESOLVED)

        if check.degree.is_success and has_thorough_reports(actor):
            await self.creature_types.track(user_id, actor.id, target)

        budget = compute_budget(check.degree, actor, self.settings.false_info_on_crit_fail)
        await self.sink.announce_roll(
            actor, target, check, budget,
            roll_recipients(user_id, self.users, self.settings.hide_roll_from_player),
        )

        outcome = RecallOutcome(status=RecallStatus.COMPLETED, target_id=target.id, check=check, budget=budget)

        if budget.total == 0:
            outcome.message = f"You failed to recall any information about {target.name}"
            self.notifier.info(user_id, outcome.message)
            return outcome

        known = self.ledger.known_facts(
            user_id, actor.id, target.id,
            share_with_party=self.settings.share_with_party,
            party_member_ids=self._party_with(actor.id),
        )
        options = selection_options(self.settings.revealable_facts, known, target)
        if not any(option.selectable for option in options):
            outcome.message = f"You already know everything about {target.name}"
            self.notifier.info(user_id, outcome.message)
            return outcome

        answer = await self._prompt(self.interaction.choose_facts(user_id, target, options, budget))
        if isinstance(answer, Cancelled):
            outcome.status = RecallStatus.CANCELLED
            outcome.message = "No information selected"
            return outcome

        outcome.selected_facts = clamp_selection(answer, options, budget.total)
        outcome.disclosed = disclose(target, outcome.selected_facts, is_false=budget.is_false)

        if budget.is_false:
            logger.info(f"False information given to {actor.name} about {target.name}; not recorded")
        elif outcome.selected_facts:
            await self.ledger.record(user_id, actor.id, target.id, outcome.selected_facts)

        if outcome.disclosed:
            await self.sink.disclose(
                target, outcome.disclosed,
                disclosure_recipients(user_id, self.users, self.settings.share_with_party),
            )

        if not self.diverse_recognition.is_used(user_id, actor.id):
            outcome.follow_up = await self._diverse_recognition(user_id, actor, target, skills, skill, choice)

        return outcome

    async def _diverse_recognition(
        self,
        user_id: str,
        actor: Actor,
        previous: Creature,
        skills: list[KnowledgeSkill],
        skill: KnowledgeSkill,
        choice: SkillChoice,
    ) -> Optional[RecallOutcome]:
        if not has_diverse_recognition(actor):
            return None
        if actor.skill_rank(skill.key) < ProficiencyRank.MASTER:
            return None

        candidates = [
            creature
            for creature_id in self.actors.scene_creature_ids()
            if creature_id not in (previous.id, actor.id)
            for creature in [self.actors.get_creature(creature_id)]
            if creature is not None
        ]
        if not candidates:
            self.notifier.warn(user_id, "No other creatures available for Diverse Recognition.")
            return None

        answer = await self._prompt(self.interaction.choose_diverse_target(user_id, actor, candidates))
        if isinstance(answer, Cancelled):
            return None

        target = next((c for c in candidates if c.id == answer), None)
        if target is None:
            logger.warning(f"Diverse Recognition target {answer!r} is not on the scene")
            return None

        await self.diverse_recognition.mark_used(user_id, actor.id)
        logger.info(f"{actor.name} uses Diverse Recognition on {target.name} with {skill.name}")
        return await self._guarded(user_id, actor, target, skills, choice)

    def _party_with(self, actor_id: str) -> list[str]:
        members = list(self.actors.party_member_ids())
        if actor_id not in members:
            members.append(actor_id)
        return members

    async def view_learned_information(self, user_id: str, actor_id: str, target_id: str) -> LearnedInformationView:
        """
        Everything learned about a creature, with current values.

        With party sharing on, every party member's knowledge is included and
        each fact lists who learned it.

        Raises:
            UserInputMissing: If the actor or creature cannot be found
        """
        actor = self.actors.get_actor(actor_id) if actor_id else None
        target = self.actors.get_creature(target_id) if target_id else None
        if actor is None or target is None:
            message = "Please select a character and target a creature"
            self.notifier.warn(user_id, message)
            raise UserInputMissing(message, {"actor_id": actor_id, "target_id": target_id})

        view = LearnedInformationView(
            actor_id=actor.id,
            target_id=target.id,
            target_name=target.name,
            shared=self.settings.share_with_party,
        )

        if self.settings.share_with_party:
            members = self._party_with(actor.id)
            names = {}
            for member_id in members:
                member = self.actors.get_actor(member_id)
                if member is not None:
                    names[member_id] = member.name
            party = self.ledger.aggregate_for_party(members, target.id, names)
            facts = party.facts
            view.provenance = party.provenance
        else:
            facts = self.ledger.learned(user_id, actor.id, target.id)

        view.facts = [
            DisclosedFact(fact_id=fact_id, label=fact_id.label, value=extract_fact(target, fact_id))
            for fact_id in FactId
            if fact_id in facts
        ]

        if not view.facts:
            self.notifier.info(user_id, f"You haven't learned anything about {target.name} yet")
        return view

    async def configure_thorough_reports(self, user_id: str, actor_id: str, creature_types: list[str]) -> list[str]:
        """Replace the creature types an actor has identified for Thorough Reports."""
        return await self.creature_types.replace(user_id, actor_id, creature_types)


__all__ = [
    "ROUND_START_EVENT",
    "BUSY_MESSAGE",
    "RecallStatus",
    "RecallOutcome",
    "LearnedInformationView",
    "RecallKnowledgeOrchestrator",
]
