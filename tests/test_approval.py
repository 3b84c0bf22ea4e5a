"""
Tests for the GM approval round trip.

A player-side and a GM-side ApprovalCoordinator share one
LocalMessageChannel, mirroring two connected clients.
"""

import pytest

from helpers import FakeUsers, ScriptedReviewer, make_actor, make_creature

from recall_knowledge.approval import (
    DISMISSED_REASON,
    GM_APPROVAL_REQUEST,
    GM_APPROVAL_RESPONSE,
    TIMEOUT_REASON,
    ApprovalCoordinator,
    ApprovalState,
    preview_dc,
    request_base_dc,
)
from recall_knowledge.config import RecallKnowledgeSettings
from recall_knowledge.host import Cancelled, LocalMessageChannel
from recall_knowledge.ledger import AttemptCounter
from recall_knowledge.models import ApprovalDecision, KnowledgeSkill
from recall_knowledge.store import InMemoryKeyValueStore

pytestmark = pytest.mark.anyio

SKILLS = [KnowledgeSkill(key="arcana", name="Arcana", modifier=8)]


def make_pair(answer, settings=None, users=None):
    """Player and GM coordinators on one channel."""
    settings = settings or RecallKnowledgeSettings()
    users = users or FakeUsers()
    channel = LocalMessageChannel()
    attempts = AttemptCounter(InMemoryKeyValueStore())
    reviewer = ScriptedReviewer(answer)
    player = ApprovalCoordinator(settings, channel, users, attempts, local_user_id="player1")
    ApprovalCoordinator(
        settings, channel, users, AttemptCounter(InMemoryKeyValueStore()),
        local_user_id="gm", reviewer=reviewer,
    )
    return player, reviewer, channel, attempts


class TestRequiresApproval:
    def test_players_need_approval(self):
        player, *_ = make_pair(ApprovalDecision(approved=True))
        assert player.requires_approval("player1")
        assert not player.requires_approval("gm")

    def test_setting_off(self):
        player, *_ = make_pair(ApprovalDecision(approved=True), settings=RecallKnowledgeSettings(require_gm_approval=False))
        assert not player.requires_approval("player1")


class TestRoundTrip:
    """Request, review and response."""

    async def test_approved(self):
        player, reviewer, channel, _ = make_pair(ApprovalDecision(approved=True))
        result = await player.request_approval("player1", make_actor(), make_creature(), SKILLS, 1, 22)

        assert result.state == ApprovalState.APPROVED
        assert result.adjusted_attempts is None
        assert reviewer.requests[0].current_attempts == 1
        assert reviewer.requests[0].current_dc == 22
        assert reviewer.requests[0].available_skills == ["Arcana"]

        request, response = channel.sent[0], channel.sent[1]
        assert request.message_type == GM_APPROVAL_REQUEST
        assert request.recipients == ["gm"]
        assert response.message_type == GM_APPROVAL_RESPONSE
        assert response.recipients == ["player1"]
        assert player.pending_request_ids == []

    async def test_denied_with_reason(self):
        player, *_ = make_pair(ApprovalDecision(approved=False, reason="Not now"))
        result = await player.request_approval("player1", make_actor(), make_creature(), SKILLS, 0, 20)
        assert result.state == ApprovalState.DENIED
        assert result.reason == "Not now"

    async def test_dismissed_dialog_is_denial(self):
        player, *_ = make_pair(Cancelled())
        result = await player.request_approval("player1", make_actor(), make_creature(), SKILLS, 0, 20)
        assert result.state == ApprovalState.DENIED
        assert result.reason == DISMISSED_REASON

    async def test_timeout_is_denial(self):
        settings = RecallKnowledgeSettings(approval_timeout=0.05)
        player, *_ = make_pair(None, settings=settings)
        result = await player.request_approval("player1", make_actor(), make_creature(), SKILLS, 0, 20)
        assert result.state == ApprovalState.DENIED
        assert result.reason == TIMEOUT_REASON
        assert player.pending_request_ids == []

    async def test_no_gm_connected(self):
        player, *_ = make_pair(ApprovalDecision(approved=True), users=FakeUsers(gms=()))
        result = await player.request_approval("player1", make_actor(), make_creature(), SKILLS, 0, 20)
        assert result.state == ApprovalState.DENIED

    async def test_attempt_override_applied(self):
        player, _, _, attempts = make_pair(ApprovalDecision(approved=True, adjusted_attempts=0))
        actor, target = make_actor(), make_creature()
        await attempts.set("player1", actor.id, target.id, 3)

        result = await player.request_approval("player1", actor, target, SKILLS, 3, 26)

        assert result.adjusted_attempts == 0
        assert attempts.get("player1", actor.id, target.id) == 0

    async def test_gm_does_not_need_approval(self):
        player, reviewer, channel, _ = make_pair(ApprovalDecision(approved=False))
        result = await player.request_approval("gm", make_actor(), make_creature(), SKILLS, 0, 20)
        assert result.state == ApprovalState.NO_APPROVAL_NEEDED
        assert channel.sent == []


class TestInboundFiltering:
    async def test_unknown_response_ignored(self):
        player, *_ = make_pair(ApprovalDecision(approved=True))
        await player.handle_message(GM_APPROVAL_RESPONSE, {"request_id": "nope", "approved": True})
        assert player.pending_request_ids == []

    async def test_non_gm_ignores_requests(self):
        reviewer = ScriptedReviewer(ApprovalDecision(approved=True))
        channel = LocalMessageChannel()
        coordinator = ApprovalCoordinator(
            RecallKnowledgeSettings(), channel, FakeUsers(), AttemptCounter(InMemoryKeyValueStore()),
            local_user_id="player2", reviewer=reviewer,
        )
        await coordinator.handle_message(GM_APPROVAL_REQUEST, {"request_id": "r1"})
        assert reviewer.requests == []
        assert channel.sent == []


class TestPreview:
    def test_preview_dc(self):
        assert preview_dc(20, 0) == 20
        assert preview_dc(20, 2) == 24

    async def test_base_dc_from_request(self):
        player, reviewer, *_ = make_pair(ApprovalDecision(approved=True))
        await player.request_approval("player1", make_actor(), make_creature(), SKILLS, 2, 24)
        assert request_base_dc(reviewer.requests[0]) == 20
