"""Injection package: intercepts outbound messages and substitutes novel chunks."""

from injection.callbacks import InjectionCallback, LoggingCallback, RichConsoleCallback
from injection.controller import InjectionController
from injection.formatter import (
    INJECTION_MARKER,
    ChunkFormatter,
    extract_folded_content,
    is_injected,
)
from injection.scheduler import AsyncioScheduler, Scheduler, TimerHandle
from injection.signals import PollingTurnSignal, TurnSignal

__all__ = [
    "InjectionController",
    "ChunkFormatter",
    "INJECTION_MARKER",
    "is_injected",
    "extract_folded_content",
    "Scheduler",
    "TimerHandle",
    "AsyncioScheduler",
    "TurnSignal",
    "PollingTurnSignal",
    "InjectionCallback",
    "LoggingCallback",
    "RichConsoleCallback",
]
