"""
Host collaborator boundaries.

The engine never talks to a concrete virtual tabletop. Everything it needs
from the host (game data, users, messaging, prompts, rendering) is described
here as a narrow Protocol so hosts and tests can plug in their own adapters.
Two in-process implementations are provided: LocalMessageChannel and
EventBus.

Interaction prompts never raise for "no answer": a closed dialog or an
expired prompt is reported as a Cancelled value.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol, Union

from pydantic import BaseModel, Field

from .feats import AssuranceCheck
from .models import (
    Actor,
    ApprovalDecision,
    CheckResult,
    Creature,
    DisclosedFact,
    FactId,
    FactOption,
    InformationBudget,
    KnowledgeSkill,
    PendingApprovalRequest,
)

logger = logging.getLogger("recall-knowledge.host")

MessageHandler = Callable[[str, dict[str, Any]], Awaitable[None]]
EventHandler = Callable[..., Awaitable[None]]


@dataclass(frozen=True)
class Cancelled:
    """A prompt ended without an answer (dismissed or timed out)."""
    reason: str = "cancelled"


class SkillChoice(BaseModel):
    """The player's answer to the skill prompt."""
    skill_key: str
    use_assurance: bool = Field(default=False, description="Take the Assurance result instead of rolling")


# ---------------------------------------------------------------------------
# Game data and users
# ---------------------------------------------------------------------------


class ActorProvider(Protocol):
    """Read-only access to game documents."""

    def get_actor(self, actor_id: str) -> Optional[Actor]:
        ...

    def get_creature(self, target_id: str) -> Optional[Creature]:
        ...

    def party_member_ids(self) -> list[str]:
        """Actor ids of the player characters."""
        ...

    def scene_creature_ids(self) -> list[str]:
        """Actor ids of every creature on the current scene."""
        ...


class UserDirectory(Protocol):
    """Connected users and their roles."""

    def user_ids(self) -> list[str]:
        ...

    def gm_ids(self) -> list[str]:
        ...

    def is_gm(self, user_id: str) -> bool:
        ...

    def user_name(self, user_id: str) -> str:
        ...


# ---------------------------------------------------------------------------
# Messaging and rendering
# ---------------------------------------------------------------------------


class MessageChannel(Protocol):
    """Fire-and-forget message transport between user processes.

    Delivery is at most once. Receivers filter messages themselves; the
    recipient list is advisory.
    """

    def send(self, message_type: str, payload: dict[str, Any], recipients: Optional[list[str]] = None) -> None:
        ...

    def subscribe(self, handler: MessageHandler) -> None:
        ...


class DisclosureSink(Protocol):
    """Renders check results and learned facts to a set of users."""

    async def announce_roll(
        self,
        actor: Actor,
        target: Creature,
        check: CheckResult,
        budget: InformationBudget,
        recipients: list[str],
    ) -> None:
        ...

    async def disclose(
        self,
        target: Creature,
        facts: list[DisclosedFact],
        recipients: list[str],
    ) -> None:
        ...


class Notifier(Protocol):
    """Short user-facing notices."""

    def info(self, user_id: str, message: str) -> None:
        ...

    def warn(self, user_id: str, message: str) -> None:
        ...

    def error(self, user_id: str, message: str) -> None:
        ...


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


class Interaction(Protocol):
    """Prompts shown to the requesting player."""

    async def choose_skill(
        self,
        user_id: str,
        actor: Actor,
        target: Creature,
        skills: list[KnowledgeSkill],
        appropriate: set[str],
        dc: int,
        assurance: dict[str, AssuranceCheck],
    ) -> Union[SkillChoice, Cancelled]:
        """Ask which skill to roll.

        Args:
            user_id: The requesting player
            actor: The acting character
            target: The creature being investigated
            skills: Usable skills, best modifier first
            appropriate: Skill keys to highlight as appropriate
            dc: DC shown to the player
            assurance: Assurance availability per skill key

        Returns:
            The chosen skill, or Cancelled
        """
        ...

    async def choose_facts(
        self,
        user_id: str,
        target: Creature,
        options: list[FactOption],
        budget: InformationBudget,
    ) -> Union[list[FactId], Cancelled]:
        ...

    async def choose_diverse_target(
        self,
        user_id: str,
        actor: Actor,
        candidates: list[Creature],
    ) -> Union[str, Cancelled]:
        """Offer a second creature for Diverse Recognition; returns its id."""
        ...


class ApprovalReviewer(Protocol):
    """GM-side approval dialog."""

    async def review(self, request: PendingApprovalRequest) -> Union[ApprovalDecision, Cancelled]:
        ...


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class GameEventBus(Protocol):
    """Host lifecycle events such as ``round_start``."""

    def subscribe(self, event: str, handler: EventHandler) -> None:
        ...

    async def emit(self, event: str, **payload: Any) -> None:
        ...


class EventBus:
    """In-process GameEventBus; handlers run in subscription order."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event: str, handler: EventHandler) -> None:
        self._handlers[event].append(handler)

    async def emit(self, event: str, **payload: Any) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                await handler(**payload)
            except Exception as e:
                logger.error(f"Handler for event '{event}' failed: {e}")
                raise


@dataclass
class SentMessage:
    message_type: str
    payload: dict[str, Any]
    recipients: Optional[list[str]]


class LocalMessageChannel:
    """
    Loopback MessageChannel for a single process.

    Every subscriber receives every message, like a socket broadcast; each
    delivery runs as its own task so ``send`` never blocks the sender.

    Attributes:
        sent: Log of every message sent through the channel
    """

    def __init__(self) -> None:
        self._handlers: list[MessageHandler] = []
        self._tasks: set[asyncio.Task] = set()
        self.sent: list[SentMessage] = []

    def subscribe(self, handler: MessageHandler) -> None:
        self._handlers.append(handler)

    def send(self, message_type: str, payload: dict[str, Any], recipients: Optional[list[str]] = None) -> None:
        self.sent.append(SentMessage(message_type, dict(payload), list(recipients) if recipients is not None else None))
        loop = asyncio.get_running_loop()
        for handler in list(self._handlers):
            task = loop.create_task(self._deliver(handler, message_type, dict(payload)))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _deliver(self, handler: MessageHandler, message_type: str, payload: dict[str, Any]) -> None:
        try:
            await handler(message_type, payload)
        except Exception as e:
            logger.error(f"Message handler failed for {message_type}: {e}")

    async def drain(self) -> None:
        """Wait until every in-flight delivery has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


# ---------------------------------------------------------------------------
# Recipient scopes
# ---------------------------------------------------------------------------


def _unique(ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(ids))


def roll_recipients(user_id: str, users: UserDirectory, hide_roll_from_player: bool) -> list[str]:
    """
    Who sees the roll.

    Hidden rolls go to GMs only. Otherwise the requester and the GMs see it,
    and a roll made by a GM is public.
    """
    if hide_roll_from_player:
        return _unique(users.gm_ids())
    if users.is_gm(user_id):
        return _unique(users.user_ids())
    return _unique([user_id, *users.gm_ids()])


def disclosure_recipients(user_id: str, users: UserDirectory, share_with_party: bool) -> list[str]:
    """Who sees disclosed facts: everyone when shared, else requester and GMs."""
    if share_with_party:
        return _unique(users.user_ids())
    return _unique([user_id, *users.gm_ids()])


__all__ = [
    "Cancelled",
    "SkillChoice",
    "ActorProvider",
    "UserDirectory",
    "MessageChannel",
    "DisclosureSink",
    "Notifier",
    "Interaction",
    "ApprovalReviewer",
    "GameEventBus",
    "EventBus",
    "SentMessage",
    "LocalMessageChannel",
    "roll_recipients",
    "disclosure_recipients",
]
