"""Models package — data classes, persisted state, enums and storage."""

from models.database import Database, Storage
from models.novel import Novel
from models.chunk import Chunk
from models.state import AutopilotConfig, ControllerState, ControllerStatus, InjectionOptions
from models.enums import ControllerMode, AutopilotPhase, InjectionOutcome

__all__ = [
    "Database",
    "Storage",
    "Novel",
    "Chunk",
    "AutopilotConfig",
    "ControllerState",
    "ControllerStatus",
    "InjectionOptions",
    "ControllerMode",
    "AutopilotPhase",
    "InjectionOutcome",
]
