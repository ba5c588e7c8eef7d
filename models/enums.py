"""Enumerations for controller and delivery status tracking."""

from enum import Enum


class ControllerMode(str, Enum):
    DISABLED = "disabled"
    ENABLED = "enabled"


class AutopilotPhase(str, Enum):
    IDLE = "idle"
    ARMED = "armed"


class InjectionOutcome(str, Enum):
    """Result of one act-path run."""
    INJECTED = "injected"          # a chunk was delivered in place of the input
    PASSED_THROUGH = "passed"      # input delivered unchanged, no interception
    EXHAUSTED = "exhausted"        # novel finished; controller disabled, input delivered
    FAILED = "failed"              # chunk production failed; input delivered
    QUEUED = "queued"              # re-entrant trigger, processed after the current one
    SKIPPED = "skipped"            # manual injection while disabled, nothing delivered
