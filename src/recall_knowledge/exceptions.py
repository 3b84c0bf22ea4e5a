"""
Exception hierarchy for the Recall Knowledge engine.

Missing host data is never an error (records fall back to safe defaults), so
the hierarchy only covers conditions that end an invocation.
"""

from __future__ import annotations

from typing import Any


class RecallKnowledgeError(Exception):
    """Base exception for all Recall Knowledge errors.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary of additional error context
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class UserInputMissing(RecallKnowledgeError):
    """No target, no acting character, or no usable knowledge skill.

    Recovered locally: the invocation is abandoned and the user notified.
    """
    pass


class ApprovalDenied(RecallKnowledgeError):
    """The GM denied the request, dismissed the dialog, or never answered.

    Attributes:
        reason: Reason reported back to the requesting player
    """

    def __init__(self, reason: str, details: dict[str, Any] | None = None):
        super().__init__(f"Recall Knowledge denied: {reason}", details)
        self.reason = reason


class PersistenceFailure(RecallKnowledgeError):
    """A write to the per-user store was rejected.

    Fatal for the current invocation but not for the process.

    Attributes:
        namespace: Store namespace that failed to persist
        user_id: Owner of the store
    """

    def __init__(
        self,
        message: str,
        namespace: str,
        user_id: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.namespace = namespace
        self.user_id = user_id


class ConcurrentInvocation(RecallKnowledgeError):
    """A Recall Knowledge request for the same user/actor/target is in flight."""

    def __init__(self, user_id: str, actor_id: str, target_id: str):
        super().__init__(
            "A Recall Knowledge request is already pending for this target",
            {"user_id": user_id, "actor_id": actor_id, "target_id": target_id},
        )
        self.user_id = user_id
        self.actor_id = actor_id
        self.target_id = target_id


class SettingsError(RecallKnowledgeError):
    """The settings file or environment overrides could not be parsed."""
    pass


__all__ = [
    "RecallKnowledgeError",
    "UserInputMissing",
    "ApprovalDenied",
    "PersistenceFailure",
    "ConcurrentInvocation",
    "SettingsError",
]
