"""Injection lifecycle callbacks for logging and real-time reporting."""

import logging
from typing import Protocol, runtime_checkable

from rich.markup import escape

from config.exceptions import InterceptionFailure
from models.chunk import Chunk
from models.novel import Novel
from models.state import ControllerStatus

logger = logging.getLogger(__name__)


@runtime_checkable
class InjectionCallback(Protocol):
    """Protocol for injection callbacks.

    Implement this protocol to observe what the controller delivers.
    """

    def on_chunk_injected(self, novel: Novel, chunk: Chunk) -> None:
        """Called after a chunk has been delivered and the cursor advanced."""
        ...

    def on_exhausted(self, novel_id: str) -> None:
        """Called when the active novel has been fully delivered."""
        ...

    def on_failure(self, error: InterceptionFailure) -> None:
        """Called when chunk production failed and the input was passed through."""
        ...

    def on_state_changed(self, status: ControllerStatus) -> None:
        """Called after enable, disable or autopilot changes."""
        ...


class LoggingCallback:
    """Lightweight callback that logs delivery to the standard logger."""

    def on_chunk_injected(self, novel: Novel, chunk: Chunk) -> None:
        logger.info(
            "Injected %s paragraphs %d-%d (%d words, %s)",
            novel.title, chunk.start_paragraph + 1, chunk.end_paragraph,
            chunk.word_count, novel.progress_label,
        )

    def on_exhausted(self, novel_id: str) -> None:
        logger.info("Novel %s finished, back to normal mode", novel_id)

    def on_failure(self, error: InterceptionFailure) -> None:
        logger.error("Injection failed: %s", error)

    def on_state_changed(self, status: ControllerStatus) -> None:
        logger.debug("Controller state: enabled=%s novel=%s", status.enabled, status.active_novel_id)


class RichConsoleCallback:
    """Callback that reports delivery on a Rich console."""

    def __init__(self, console=None):
        """
        Args:
            console: Rich Console instance. Creates one if not provided.
        """
        if console is None:
            from rich.console import Console
            console = Console()
        self._console = console

    def on_chunk_injected(self, novel: Novel, chunk: Chunk) -> None:
        self._console.print(
            f"[green]✓[/] [bold]{escape(novel.title)}[/] {escape(chunk.chapter)} "
            f"[dim]段落 {chunk.start_paragraph + 1}-{chunk.end_paragraph} · "
            f"{chunk.word_count} 字 · 进度 {novel.progress_label}[/]"
        )

    def on_exhausted(self, novel_id: str) -> None:
        self._console.print("[yellow]小说已读完，已切换回正常模式[/]")

    def on_failure(self, error: InterceptionFailure) -> None:
        self._console.print(f"[red]注入失败: {escape(error.message)}[/]")

    def on_state_changed(self, status: ControllerStatus) -> None:
        label = "已启用" if status.enabled else "已禁用"
        self._console.print(f"[blue]小说注入器{label}[/]")
