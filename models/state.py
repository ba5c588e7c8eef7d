"""Persisted controller state and runtime options."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from config.settings import Settings


class AutopilotConfig(BaseModel):
    """Timer-driven re-triggering after the other party finishes a turn."""
    enabled: bool = False
    delay_seconds: float = Field(default=3.0, ge=0)


class ControllerState(BaseModel):
    """Source of truth for whether interception is active.

    Acting requires both enabled and active_novel_id.
    """
    enabled: bool = False
    active_novel_id: Optional[str] = None
    autopilot: AutopilotConfig = Field(default_factory=AutopilotConfig)

    @property
    def can_act(self) -> bool:
        return self.enabled and self.active_novel_id is not None


class InjectionOptions(BaseModel):
    """User-adjustable chunking and formatting options."""
    target_word_count: int = 500
    min_target_word_count: int = 50
    prefix_template: str = "{chapter} (段落 {start_para}-{end_para})"
    collapse_content: bool = False

    @field_validator("min_target_word_count")
    @classmethod
    def validate_minimum(cls, v: int) -> int:
        if v < 1:
            raise ValueError("min_target_word_count must be >= 1")
        return v

    @property
    def effective_word_count(self) -> int:
        """Budget clamped up to the configured minimum."""
        return max(self.target_word_count, self.min_target_word_count)

    @classmethod
    def from_settings(cls, settings: Settings) -> "InjectionOptions":
        return cls(
            target_word_count=settings.target_word_count,
            min_target_word_count=settings.min_target_word_count,
            prefix_template=settings.prefix_template,
            collapse_content=settings.collapse_content,
        )


class ControllerStatus(BaseModel):
    """Read-only snapshot of the controller for presentation layers."""
    enabled: bool
    active_novel_id: Optional[str] = None
    active_novel_title: Optional[str] = None
    current_progress: Optional[str] = None
    autopilot_enabled: bool = False
    autopilot_delay: float = 3.0
    autopilot_armed: bool = False
