"""
Persistent per-user knowledge tracking.

Everything here is stored per user in a KeyValueStore as two-level maps
keyed by actor id then target id. Knowledge is never broadcast on write:
party sharing is a read-time union over every user's records.

Key components:
- KnowledgeLedger: Which facts each actor has learned about each creature
- PartyKnowledgeView: Read-time union of party members' knowledge
- AttemptCounter: Previous Recall Knowledge attempts per actor/creature
- CreatureTypeTracker: Creature types identified, for Thorough Reports
- DiverseRecognitionTracker: Once-per-round Diverse Recognition usage
"""

import logging
from typing import Iterable, Mapping, Optional

from pydantic import BaseModel, Field

from .feats import CREATURE_TYPES, infer_creature_type
from .models import Creature, FactId
from .store import KeyValueStore, nested_get, nested_set

logger = logging.getLogger("recall-knowledge")

LEARNED_INFO_NAMESPACE = "learned_info"
ATTEMPTS_NAMESPACE = "recall_attempts"
THOROUGH_REPORTS_NAMESPACE = "thorough_reports"
DIVERSE_RECOGNITION_NAMESPACE = "diverse_recognition"


def _to_fact_ids(values: Iterable[str]) -> list[FactId]:
    facts = []
    for value in values:
        try:
            facts.append(FactId(value))
        except ValueError:
            logger.warning(f"Ignoring unknown fact id {value!r} in ledger")
    return facts


class PartyKnowledgeView(BaseModel):
    """
    Union of what every party member has learned about one creature.

    Attributes:
        target_id: The creature the view describes
        facts: Every fact known by at least one member
        provenance: Fact id -> names of the members who learned it
    """
    target_id: str
    facts: set[FactId] = Field(default_factory=set)
    provenance: dict[FactId, list[str]] = Field(default_factory=dict)


class KnowledgeLedger:
    """
    Deduplicated record of facts learned per (user, actor, target).

    Recording is a union: a fact already present is never added twice, and
    facts are never removed by the engine.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def learned(self, user_id: str, actor_id: str, target_id: str) -> set[FactId]:
        """Facts this user's actor has learned about the target."""
        stored = nested_get(self._store, user_id, LEARNED_INFO_NAMESPACE, actor_id, target_id, [])
        return set(_to_fact_ids(stored))

    async def record(
        self,
        user_id: str,
        actor_id: str,
        target_id: str,
        new_facts: Iterable[FactId | str],
    ) -> set[FactId]:
        """
        Merge newly learned facts into the stored set and persist it.

        Args:
            user_id: Owner of the record
            actor_id: Actor who learned the facts
            target_id: Creature the facts are about
            new_facts: Fact ids to add

        Returns:
            The stored set after the merge

        Raises:
            PersistenceFailure: If the store rejects the write
        """
        stored = nested_get(self._store, user_id, LEARNED_INFO_NAMESPACE, actor_id, target_id, [])
        existing = _to_fact_ids(stored)
        combined = list(dict.fromkeys([*existing, *_to_fact_ids(new_facts)]))

        if combined == existing:
            logger.debug(f"No new facts for actor {actor_id} about {target_id}")
            return set(combined)

        await nested_set(
            self._store, user_id, LEARNED_INFO_NAMESPACE, actor_id, target_id,
            [fact.value for fact in combined],
        )
        logger.info(
            f"Stored learned info for actor {actor_id}, target {target_id}: "
            f"{[fact.value for fact in combined]}"
        )
        return set(combined)

    def aggregate_for_party(
        self,
        member_ids: Iterable[str],
        target_id: str,
        names: Optional[Mapping[str, str]] = None,
    ) -> PartyKnowledgeView:
        """
        Union every party member's knowledge about a creature.

        Knowledge is stored per user, so each member is looked up in every
        user's store. Several members can share credit for the same fact.

        Args:
            member_ids: Actor ids of the party members
            target_id: The creature
            names: Optional actor id -> display name for provenance

        Returns:
            PartyKnowledgeView with facts and provenance
        """
        names = names or {}
        view = PartyKnowledgeView(target_id=target_id)

        for member_id in member_ids:
            member_name = names.get(member_id, member_id)
            for user_id in self._store.user_ids():
                for fact in self.learned(user_id, member_id, target_id):
                    view.facts.add(fact)
                    learners = view.provenance.setdefault(fact, [])
                    if member_name not in learners:
                        learners.append(member_name)

        logger.debug(f"Party knowledge for {target_id}: {sorted(f.value for f in view.facts)}")
        return view

    def known_facts(
        self,
        user_id: str,
        actor_id: str,
        target_id: str,
        share_with_party: bool = False,
        party_member_ids: Iterable[str] = (),
    ) -> set[FactId]:
        """Facts treated as already known when offering a new selection."""
        known = self.learned(user_id, actor_id, target_id)
        if share_with_party:
            known |= self.aggregate_for_party(party_member_ids, target_id).facts
        return known


class AttemptCounter:
    """Number of previous Recall Knowledge checks per (user, actor, target)."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def get(self, user_id: str, actor_id: str, target_id: str) -> int:
        value = nested_get(self._store, user_id, ATTEMPTS_NAMESPACE, actor_id, target_id, 0)
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            return 0

    async def set(self, user_id: str, actor_id: str, target_id: str, count: int) -> int:
        """Set the count directly (GM override). Negative counts clamp to 0."""
        count = max(0, int(count))
        await nested_set(self._store, user_id, ATTEMPTS_NAMESPACE, actor_id, target_id, count)
        logger.info(f"Recall attempts for actor {actor_id} vs {target_id} set to {count}")
        return count

    async def increment(self, user_id: str, actor_id: str, target_id: str) -> int:
        count = self.get(user_id, actor_id, target_id) + 1
        await nested_set(self._store, user_id, ATTEMPTS_NAMESPACE, actor_id, target_id, count)
        logger.debug(f"Recall attempts for actor {actor_id} vs {target_id}: {count}")
        return count


class CreatureTypeTracker:
    """Creature types an actor has successfully identified (Thorough Reports)."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def tracked(self, user_id: str, actor_id: str) -> list[str]:
        return list(self._store.get(user_id, THOROUGH_REPORTS_NAMESPACE, actor_id, []) or [])

    async def track(self, user_id: str, actor_id: str, target: Creature) -> Optional[str]:
        """
        Remember the target's creature type.

        Returns:
            The newly tracked type, or None if the target has no creature
            type or it was already tracked
        """
        creature_type = infer_creature_type(target)
        if creature_type is None:
            return None

        tracked = self.tracked(user_id, actor_id)
        if creature_type in tracked:
            return None

        tracked.append(creature_type)
        await self._store.set(user_id, THOROUGH_REPORTS_NAMESPACE, actor_id, tracked)
        logger.info(f"Tracked new creature type for Thorough Reports: {creature_type}")
        return creature_type

    async def replace(self, user_id: str, actor_id: str, creature_types: Iterable[str]) -> list[str]:
        """
        Overwrite the tracked types, e.g. from a configuration screen.

        Unknown types are dropped; order follows the canonical type list.
        """
        wanted = {t.lower() for t in creature_types}
        dropped = wanted - set(CREATURE_TYPES)
        if dropped:
            logger.warning(f"Ignoring unknown creature types: {sorted(dropped)}")
        tracked = [t for t in CREATURE_TYPES if t in wanted]
        await self._store.set(user_id, THOROUGH_REPORTS_NAMESPACE, actor_id, tracked)
        return tracked


class DiverseRecognitionTracker:
    """Once-per-round usage of Diverse Recognition, per user and actor."""

    _KEY = "used_by"

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def _used_by(self, user_id: str) -> list[str]:
        return list(self._store.get(user_id, DIVERSE_RECOGNITION_NAMESPACE, self._KEY, []) or [])

    def is_used(self, user_id: str, actor_id: str) -> bool:
        return actor_id in self._used_by(user_id)

    async def mark_used(self, user_id: str, actor_id: str) -> None:
        used_by = self._used_by(user_id)
        if actor_id not in used_by:
            used_by.append(actor_id)
            await self._store.set(user_id, DIVERSE_RECOGNITION_NAMESPACE, self._KEY, used_by)

    async def reset(self, user_id: str, actor_id: str) -> None:
        used_by = self._used_by(user_id)
        if actor_id in used_by:
            used_by.remove(actor_id)
            await self._store.set(user_id, DIVERSE_RECOGNITION_NAMESPACE, self._KEY, used_by)

    async def reset_all(self) -> int:
        """Clear usage for every user; returns how many actors were reset."""
        cleared = 0
        for user_id in list(self._store.user_ids()):
            used_by = self._used_by(user_id)
            if used_by:
                await self._store.set(user_id, DIVERSE_RECOGNITION_NAMESPACE, self._KEY, [])
                cleared += len(used_by)
        if cleared:
            logger.info(f"New round: reset Diverse Recognition for {cleared} actor(s)")
        return cleared


__all__ = [
    "LEARNED_INFO_NAMESPACE",
    "ATTEMPTS_NAMESPACE",
    "THOROUGH_REPORTS_NAMESPACE",
    "DIVERSE_RECOGNITION_NAMESPACE",
    "PartyKnowledgeView",
    "KnowledgeLedger",
    "AttemptCounter",
    "CreatureTypeTracker",
    "DiverseRecognitionTracker",
]
