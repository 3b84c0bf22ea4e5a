"""
Configuration model for the Recall Knowledge engine.
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import SettingsError
from .models import FactId

logger = logging.getLogger("recall-knowledge")

# Skills the Bestiary Scholar feat can substitute for any core knowledge skill
BONUS_SKILL_CHOICES = ("", "arcana", "nature", "occultism", "religion")

DEFAULT_REVEALABLE_FACTS = [
    FactId.HIGHEST_SAVE,
    FactId.LOWEST_SAVE,
    FactId.RESISTANCES,
    FactId.WEAKNESSES,
    FactId.IMMUNITIES,
    FactId.ATTACKS,
    FactId.SKILLS,
    FactId.BACKGROUND,
]

ENV_PREFIX = "RECALL_KNOWLEDGE_"


class RecallKnowledgeSettings(BaseModel):
    """World and per-user options read by the Recall Knowledge engine."""

    # Approval
    require_gm_approval: bool = Field(
        default=True,
        description="Players need GM approval before every Recall Knowledge check"
    )
    approval_timeout: float = Field(
        default=300.0,
        gt=0.0,
        description="Seconds to wait for a GM decision before treating the request as denied"
    )

    # Rolls
    auto_calculate_dc: bool = Field(
        default=True,
        description="Derive the DC from creature level instead of using a flat 15"
    )
    hide_roll_from_player: bool = Field(
        default=False,
        description="Only GMs see the roll result"
    )
    false_info_on_crit_fail: bool = Field(
        default=False,
        description="Critical failures receive one piece of false information"
    )

    # Knowledge
    share_with_party: bool = Field(
        default=False,
        description="Party members see everything any member has learned"
    )
    bonus_skill: str = Field(
        default="",
        description="Bestiary Scholar skill (empty for none)"
    )
    bonus_skill_by_user: dict[str, str] = Field(
        default_factory=dict,
        description="Per-user Bestiary Scholar skill, overriding bonus_skill"
    )
    revealable_facts: list[FactId] = Field(
        default_factory=lambda: list(DEFAULT_REVEALABLE_FACTS),
        description="Facts offered in the selection prompt, in display order"
    )

    # Interaction
    prompt_timeout: float = Field(
        default=300.0,
        gt=0.0,
        description="Seconds to wait for a player prompt before treating it as cancelled"
    )

    @field_validator("bonus_skill", mode="before")
    @classmethod
    def validate_bonus_skill(cls, v: Optional[str]) -> str:
        v = (v or "").strip().lower()
        if v not in BONUS_SKILL_CHOICES:
            raise ValueError(
                f"bonus_skill must be one of: {', '.join(c or repr('') for c in BONUS_SKILL_CHOICES)}"
            )
        return v

    @field_validator("bonus_skill_by_user")
    @classmethod
    def validate_bonus_skill_by_user(cls, v: dict[str, str]) -> dict[str, str]:
        cleaned = {}
        for user_id, skill in v.items():
            skill = (skill or "").strip().lower()
            if skill not in BONUS_SKILL_CHOICES:
                raise ValueError(f"Invalid bonus skill {skill!r} for user {user_id!r}")
            cleaned[user_id] = skill
        return cleaned

    @field_validator("revealable_facts")
    @classmethod
    def dedupe_revealable_facts(cls, v: list[FactId]) -> list[FactId]:
        return list(dict.fromkeys(v))

    def bonus_skill_for(self, user_id: str) -> str:
        """Bestiary Scholar skill configured for a user."""
        return self.bonus_skill_by_user.get(user_id, self.bonus_skill)


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for name in RecallKnowledgeSettings.model_fields:
        raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
        if raw is None:
            continue
        if name == "revealable_facts":
            overrides[name] = [part.strip() for part in raw.split(",") if part.strip()]
        elif name == "bonus_skill_by_user":
            overrides[name] = yaml.safe_load(raw) or {}
        else:
            overrides[name] = raw
    return overrides


def load_settings(path: Optional[Path] = None) -> RecallKnowledgeSettings:
    """
    Load settings from an optional YAML file plus environment overrides.

    Environment variables use the ``RECALL_KNOWLEDGE_`` prefix followed by the
    upper-cased field name (e.g. ``RECALL_KNOWLEDGE_SHARE_WITH_PARTY=true``).
    A ``.env`` file is read first if present.

    Args:
        path: YAML settings file; missing files fall back to defaults

    Returns:
        Validated settings

    Raises:
        SettingsError: If the file is malformed or a value is invalid
    """
    load_dotenv()

    data: dict[str, Any] = {}
    if path is not None:
        path = Path(path)
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as f:
                    loaded = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise SettingsError(f"Malformed settings file {path}: {e}") from e
            if loaded is not None and not isinstance(loaded, dict):
                raise SettingsError(f"Settings file {path} must contain a mapping")
            data.update(loaded or {})
            logger.debug(f"Loaded settings from {path}")
        else:
            logger.warning(f"Settings file {path} not found, using defaults")

    data.update(_env_overrides())

    try:
        return RecallKnowledgeSettings(**data)
    except ValidationError as e:
        raise SettingsError(f"Invalid Recall Knowledge settings: {e}") from e


__all__ = [
    "BONUS_SKILL_CHOICES",
    "DEFAULT_REVEALABLE_FACTS",
    "RecallKnowledgeSettings",
    "load_settings",
]
