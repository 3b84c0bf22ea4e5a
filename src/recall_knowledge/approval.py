"""
GM approval round trip for Recall Knowledge requests.

When approval is required, the requesting process sends a
``GM_APPROVAL_REQUEST`` to every GM and waits for the matching
``GM_APPROVAL_RESPONSE``. The same coordinator class runs on GM processes,
where it hands incoming requests to the local reviewer dialog and sends the
decision back. Requests and responses are matched by request id.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ValidationError
from shortuuid import random

from .config import RecallKnowledgeSettings
from .difficulty import ATTEMPT_DC_STEP, escalate_dc
from .host import ApprovalReviewer, Cancelled, MessageChannel, UserDirectory
from .ledger import AttemptCounter
from .models import Actor, ApprovalDecision, Creature, KnowledgeSkill, PendingApprovalRequest

logger = logging.getLogger("recall-knowledge.approval")

GM_APPROVAL_REQUEST = "GM_APPROVAL_REQUEST"
GM_APPROVAL_RESPONSE = "GM_APPROVAL_RESPONSE"

DISMISSED_REASON = "GM closed dialog without decision"
TIMEOUT_REASON = "GM did not respond in time"
NO_GM_REASON = "No GM is available to approve the request"


class ApprovalState(str, Enum):
    NO_APPROVAL_NEEDED = "no_approval_needed"
    PENDING_GM = "pending_gm"
    APPROVED = "approved"
    DENIED = "denied"


class ApprovalResult(BaseModel):
    """Outcome of an approval request as seen by the requester."""
    state: ApprovalState
    reason: str = ""
    adjusted_attempts: Optional[int] = None


def preview_dc(base_dc: int, attempts: int) -> int:
    """DC the player would face after the GM sets the attempt count."""
    return escalate_dc(base_dc, attempts)


def request_base_dc(request: PendingApprovalRequest) -> int:
    """Base DC of a request, before attempt escalation."""
    return request.current_dc - ATTEMPT_DC_STEP * request.current_attempts


class ApprovalCoordinator:
    """
    Sends, reviews and resolves GM approval requests.

    Attributes:
        settings: Active settings (approval switch and timeout)
        local_user_id: User this process acts for
        reviewer: GM dialog, set only on GM processes
    """

    def __init__(
        self,
        settings: RecallKnowledgeSettings,
        channel: MessageChannel,
        users: UserDirectory,
        attempts: AttemptCounter,
        local_user_id: str,
        reviewer: Optional[ApprovalReviewer] = None,
    ) -> None:
        self.settings = settings
        self.channel = channel
        self.users = users
        self.attempts = attempts
        self.local_user_id = local_user_id
        self.reviewer = reviewer
        self._pending: dict[str, asyncio.Future] = {}

        channel.subscribe(self.handle_message)

    def requires_approval(self, user_id: str) -> bool:
        return self.settings.require_gm_approval and not self.users.is_gm(user_id)

    @property
    def pending_request_ids(self) -> list[str]:
        return list(self._pending)

    async def request_approval(
        self,
        user_id: str,
        actor: Actor,
        target: Creature,
        skills: list[KnowledgeSkill],
        current_attempts: int,
        current_dc: int,
    ) -> ApprovalResult:
        """
        Ask the GMs to approve a Recall Knowledge check.

        A timeout counts as a denial. When the GM approves with an adjusted
        attempt count, the counter is overwritten before returning so the
        caller's DC reflects the override.

        Args:
            user_id: Requesting player
            actor: The acting character
            target: The creature being investigated
            skills: Skills the player could use
            current_attempts: Attempts recorded so far
            current_dc: DC at the current attempt count

        Returns:
            ApprovalResult; never raises for a denial

        Raises:
            PersistenceFailure: If the attempt override could not be stored
        """
        if not self.requires_approval(user_id):
            return ApprovalResult(state=ApprovalState.NO_APPROVAL_NEEDED)

        gm_ids = self.users.gm_ids()
        if not gm_ids:
            logger.warning("Approval required but no GM is connected")
            return ApprovalResult(state=ApprovalState.DENIED, reason=NO_GM_REASON)

        request = PendingApprovalRequest(
            request_id=random(length=12),
            player_id=user_id,
            player_name=self.users.user_name(user_id),
            actor_id=actor.id,
            actor_name=actor.name,
            target_id=target.id,
            target_name=target.name,
            available_skills=[skill.name for skill in skills],
            current_attempts=current_attempts,
            current_dc=current_dc,
        )

        future = asyncio.get_running_loop().create_future()
        self._pending[request.request_id] = future

        try:
            self.channel.send(GM_APPROVAL_REQUEST, request.model_dump(mode="json"), recipients=gm_ids)
            logger.info(f"Sent approval request {request.request_id} for {actor.name} -> {target.name}")
            decision: ApprovalDecision = await asyncio.wait_for(future, timeout=self.settings.approval_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Approval request {request.request_id} timed out")
            return ApprovalResult(state=ApprovalState.DENIED, reason=TIMEOUT_REASON)
        finally:
            self._pending.pop(request.request_id, None)

        if not decision.approved:
            logger.info(f"Approval request {request.request_id} denied: {decision.reason}")
            return ApprovalResult(state=ApprovalState.DENIED, reason=decision.reason)

        if decision.adjusted_attempts is not None:
            await self.attempts.set(user_id, actor.id, target.id, decision.adjusted_attempts)

        logger.info(f"Approval request {request.request_id} approved")
        return ApprovalResult(
            state=ApprovalState.APPROVED,
            reason=decision.reason,
            adjusted_attempts=decision.adjusted_attempts,
        )

    async def handle_message(self, message_type: str, payload: dict[str, Any]) -> None:
        """Inbound channel handler for both sides of the round trip."""
        if message_type == GM_APPROVAL_REQUEST:
            await self._review_request(payload)
        elif message_type == GM_APPROVAL_RESPONSE:
            self._resolve_response(payload)

    async def _review_request(self, payload: dict[str, Any]) -> None:
        if self.reviewer is None or not self.users.is_gm(self.local_user_id):
            return

        try:
            request = PendingApprovalRequest.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Discarding malformed approval request: {e}")
            return

        try:
            answer = await asyncio.wait_for(
                self.reviewer.review(request),
                timeout=self.settings.approval_timeout,
            )
        except asyncio.TimeoutError:
            answer = Cancelled(reason="timed out")

        if isinstance(answer, Cancelled):
            decision = ApprovalDecision(approved=False, reason=DISMISSED_REASON)
        else:
            decision = answer

        response = {
            "request_id": request.request_id,
            "player_id": request.player_id,
            "gm_id": self.local_user_id,
            **decision.model_dump(mode="json"),
        }
        self.channel.send(GM_APPROVAL_RESPONSE, response, recipients=[request.player_id])
        logger.info(
            f"GM {self.local_user_id} {'approved' if decision.approved else 'denied'} "
            f"request {request.request_id}"
        )

    def _resolve_response(self, payload: dict[str, Any]) -> None:
        future = self._pending.get(payload.get("request_id", ""))
        if future is None or future.done():
            return

        try:
            decision = ApprovalDecision.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Malformed approval response treated as denial: {e}")
            decision = ApprovalDecision(approved=False, reason="Malformed GM response")
        future.set_result(decision)


__all__ = [
    "GM_APPROVAL_REQUEST",
    "GM_APPROVAL_RESPONSE",
    "DISMISSED_REASON",
    "TIMEOUT_REASON",
    "ApprovalState",
    "ApprovalResult",
    "ApprovalCoordinator",
    "preview_dc",
    "request_base_dc",
]
