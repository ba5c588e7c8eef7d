"""Injection controller: decides, per outbound message, whether to deliver a novel chunk.

States are Disabled and Enabled(active novel), with an orthogonal autopilot
sub-state (Idle / Armed). Every collaborator is injected: the library and
storage, the dispatch boundary `deliver`, and the timer scheduler.
"""

import logging
from collections import deque
from typing import Callable, Iterable, Optional

from pydantic import ValidationError as PydanticValidationError

from config.exceptions import InterceptionFailure, InvalidConfigError
from config.settings import Settings, get_settings
from injection.callbacks import InjectionCallback
from injection.formatter import ChunkFormatter, is_injected
from injection.scheduler import Scheduler, TimerHandle
from injection.signals import TurnSignal
from models.chunk import Chunk
from models.database import Storage
from models.enums import AutopilotPhase, ControllerMode, InjectionOutcome
from models.library import NovelLibrary
from models.novel import Novel
from models.state import AutopilotConfig, ControllerState, ControllerStatus, InjectionOptions
from tools.chunker import Chunker, ChunkPolicy

logger = logging.getLogger(__name__)

STATE_KEY = "controller_state"
OPTIONS_KEY = "injection_options"


class InjectionController:
    """Intercepts outbound text and substitutes the next chunk of the active novel."""

    def __init__(
        self,
        library: NovelLibrary,
        storage: Storage,
        deliver: Callable[[str], None],
        scheduler: Scheduler,
        chunker: Optional[Chunker] = None,
        formatter: Optional[ChunkFormatter] = None,
        callbacks: Optional[Iterable[InjectionCallback]] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Args:
            library: Novel store holding paragraphs and cursors.
            storage: Persistence for controller state and options.
            deliver: Dispatch boundary; receives either a formatted chunk or
                the original text.
            scheduler: Timer capability for autopilot.
            chunker: Defaults to a Chunker built from settings.
            formatter: Defaults to a ChunkFormatter built from settings; a supplied
                formatter's options become the controller's options.
            callbacks: Observers notified of injections, exhaustion and failures.
            settings: Defaults to the cached application settings.
        """
        self.settings = settings or get_settings()
        self.library = library
        self.storage = storage
        self.scheduler = scheduler
        self._deliver = deliver

        self.chunker = chunker or Chunker(ChunkPolicy.from_settings(self.settings))
        if formatter is None:
            self.options = InjectionOptions.from_settings(self.settings)
            self.formatter = ChunkFormatter(self.options, preview_length=self.settings.preview_length)
        else:
            # A supplied formatter brings its own options
            self.options = formatter.options
            self.formatter = formatter
        self.callbacks: list[InjectionCallback] = list(callbacks or [])

        self.state = ControllerState(
            autopilot=AutopilotConfig(delay_seconds=self.settings.autopilot_delay),
        )
        self._timer: Optional[TimerHandle] = None
        self._in_flight = False
        self._pending: deque[str] = deque()
        self._unsubscribers: list[Callable[[], None]] = []

    # ---- State properties ----

    @property
    def mode(self) -> ControllerMode:
        return ControllerMode.ENABLED if self.state.enabled else ControllerMode.DISABLED

    @property
    def autopilot_phase(self) -> AutopilotPhase:
        return AutopilotPhase.ARMED if self._timer is not None else AutopilotPhase.IDLE

    @property
    def is_enabled(self) -> bool:
        return self.state.enabled

    @property
    def active_novel_id(self) -> Optional[str]:
        return self.state.active_novel_id

    # ---- Persistence ----

    def load_state(self) -> ControllerState:
        """Restore persisted state and options. Call once at startup."""
        raw_state = self.storage.get(STATE_KEY)
        if raw_state:
            try:
                self.state = ControllerState.model_validate(raw_state)
            except PydanticValidationError as e:
                logger.warning("Ignoring invalid persisted controller state: %s", e)

        raw_options = self.storage.get(OPTIONS_KEY)
        if raw_options:
            try:
                self._apply_options(InjectionOptions.model_validate({**self.options.model_dump(), **raw_options}))
            except PydanticValidationError as e:
                logger.warning("Ignoring invalid persisted injection options: %s", e)

        novel_id = self.state.active_novel_id
        if novel_id is not None and novel_id not in self.library:
            logger.warning("Active novel %s no longer exists; disabling", novel_id)
            self.state.enabled = False
            self.state.active_novel_id = None
            self._save_state()

        logger.info(
            "Controller state loaded: enabled=%s novel=%s autopilot=%s",
            self.state.enabled, self.state.active_novel_id, self.state.autopilot.enabled,
        )
        return self.state

    def _save_state(self) -> bool:
        ok = self.storage.set(STATE_KEY, self.state.model_dump())
        if not ok:
            logger.error("Failed to persist controller state; in-memory state kept")
        return ok

    def _apply_options(self, options: InjectionOptions) -> None:
        self.options = options
        self.formatter.options = options

    # ---- Transitions ----

    def enable(self, novel_id: str) -> Novel:
        """Disabled -> Enabled(novel_id), or re-target an enabled controller.

        Raises:
            NovelNotFoundError: unknown novel id.
        """
        novel = self.library.require(novel_id)
        self.state.enabled = True
        self.state.active_novel_id = novel_id
        self._save_state()

        if novel.is_finished:
            logger.warning("Novel %s is already fully delivered; reset it to read again", novel_id)
        logger.info("Engine enabled with novel: %s (%s)", novel.title, novel.progress_label)
        self._notify("on_state_changed", self.status())
        return novel

    def disable(self) -> None:
        """Enabled -> Disabled. Cancels an armed autopilot timer."""
        self._cancel_timer()
        self.state.enabled = False
        self.state.active_novel_id = None
        self._save_state()
        logger.info("Engine disabled")
        self._notify("on_state_changed", self.status())

    def set_autopilot(self, enabled: bool, delay_seconds: Optional[float] = None) -> None:
        """Update autopilot config. Never arms a timer by itself."""
        delay = self.state.autopilot.delay_seconds if delay_seconds is None else delay_seconds
        if delay < 0:
            raise InvalidConfigError("Autopilot delay must be >= 0", {"delay_seconds": delay})
        self.state.autopilot = AutopilotConfig(enabled=enabled, delay_seconds=delay)
        if not enabled:
            self._cancel_timer()
        self._save_state()
        logger.info("Autopilot %s (delay=%.1fs)", "enabled" if enabled else "disabled", delay)
        self._notify("on_state_changed", self.status())

    def update_options(self, **changes) -> InjectionOptions:
        """Change chunking/formatting options and persist them.

        Raises:
            InvalidConfigError: unknown option name or invalid value.
        """
        unknown = set(changes) - set(InjectionOptions.model_fields)
        if unknown:
            raise InvalidConfigError("Unknown injection option", {"options": ",".join(sorted(unknown))})
        try:
            options = InjectionOptions.model_validate({**self.options.model_dump(), **changes})
        except PydanticValidationError as e:
            raise InvalidConfigError(f"Invalid injection options: {e}") from e

        self._apply_options(options)
        if not self.storage.set(OPTIONS_KEY, options.model_dump()):
            logger.error("Failed to persist injection options; in-memory options kept")
        return options

    # ---- Autopilot ----

    def on_turn_complete(self) -> bool:
        """Handle the other party finishing a turn. Returns True if a timer was armed.

        Only the latest completion counts: an already armed timer is
        cancelled and a fresh one armed.
        """
        if not (self.state.can_act and self.state.autopilot.enabled):
            return False

        self._cancel_timer()
        delay = self.state.autopilot.delay_seconds
        self._timer = self.scheduler.after(delay, self._on_timer)
        logger.info("AutoPilot scheduled in %.1fs", delay)
        return True

    def _on_timer(self) -> None:
        self._timer = None
        if not (self.state.can_act and self.state.autopilot.enabled):
            return
        logger.debug("AutoPilot timer fired")
        self.inject_next("")

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            logger.debug("AutoPilot timer cancelled")

    def subscribe(self, signal: TurnSignal) -> Callable[[], None]:
        """Listen to a turn-completion source. Returns the unsubscribe function."""
        unsubscribe = signal.subscribe(self.on_turn_complete)
        self._unsubscribers.append(unsubscribe)
        return unsubscribe

    def close(self) -> None:
        """Cancel timers and detach from all signals."""
        self._cancel_timer()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    # ---- Act-path ----

    def send(self, text: str = "") -> InjectionOutcome:
        """Deliver text, substituting the next chunk when interception is active.

        Triggers are serialised: a call made while another is in flight
        (for example from inside `deliver`) is queued and handled after it.
        """
        if self._in_flight:
            self._pending.append(text)
            logger.debug("Trigger queued behind in-flight injection (%d pending)", len(self._pending))
            return InjectionOutcome.QUEUED

        self._in_flight = True
        try:
            outcome = self._act(text)
            while self._pending:
                self._act(self._pending.popleft())
        finally:
            self._in_flight = False
        return outcome

    def inject_next(self, user_input: str = "") -> InjectionOutcome:
        """Manually deliver the next chunk, keeping user_input inside it."""
        if not self.state.can_act:
            logger.warning("Manual injection ignored: enable the injector and select a novel first")
            return InjectionOutcome.SKIPPED
        return self.send(user_input)

    def wrap(self, fallback: Callable[[str], None]) -> Callable[[str], InjectionOutcome]:
        """Route delivery through the host's own send function.

        Returns the replacement the host installs in its place.
        """
        self._deliver = fallback
        return self.send

    def should_intercept(self, text: str) -> bool:
        if not self.state.can_act:
            return False
        return not is_injected(text)

    def _act(self, text: str) -> InjectionOutcome:
        if not self.state.can_act:
            self._deliver(text)
            return InjectionOutcome.PASSED_THROUGH
        if is_injected(text):
            logger.debug("Injected content echoed back; passing through")
            self._deliver(text)
            return InjectionOutcome.PASSED_THROUGH

        novel_id = self.state.active_novel_id
        try:
            novel, chunk, formatted = self._produce(novel_id, text)
        except Exception as e:
            failure = InterceptionFailure(f"Injection failed: {e}", novel_id=novel_id, cause=e)
            logger.error("%s", failure, exc_info=True)
            self._notify("on_failure", failure)
            self._deliver(text)
            return InjectionOutcome.FAILED

        if chunk is None:
            logger.info("Novel %s fully delivered; switching back to normal mode", novel_id)
            self.disable()
            self._notify("on_exhausted", novel_id)
            self._deliver(text)
            return InjectionOutcome.EXHAUSTED

        try:
            self._deliver(formatted)
        except Exception as e:
            # Hand the chunk back so the next send retries it
            self.library.update_progress(novel_id, chunk.start_paragraph)
            failure = InterceptionFailure(f"Delivering chunk failed: {e}", novel_id=novel_id, cause=e)
            logger.error("%s", failure, exc_info=True)
            self._notify("on_failure", failure)
            self._deliver(text)
            return InjectionOutcome.FAILED

        logger.info(
            "Injected novel=%s paragraphs=[%d, %d) words=%d progress=%s",
            novel_id, chunk.start_paragraph, chunk.end_paragraph, chunk.word_count, novel.progress_label,
        )
        self._notify("on_chunk_injected", novel, chunk)
        return InjectionOutcome.INJECTED

    def _produce(self, novel_id: str, text: str) -> tuple[Novel, Optional[Chunk], Optional[str]]:
        """Cut, format and commit the next chunk. Returns (novel, None, None) at the end."""
        # A failed cursor write must land before the cursor is read again
        if not self.library.flush():
            logger.warning("Metadata write still pending; continuing with in-memory cursor")

        novel = self.library.require(novel_id)
        if novel.is_finished:
            return novel, None, None

        paragraphs = self.library.reload_content(novel_id)
        chunk = self.chunker.next_chunk(paragraphs, novel.current_paragraph, self.options.effective_word_count)
        if chunk is None:
            return novel, None, None

        formatted = self.formatter.format(chunk, novel.title, novel.total_paragraphs, text)

        if not self.library.update_progress(novel_id, chunk.end_paragraph):
            logger.error("Cursor for %s advanced to %d in memory only; write will be retried", novel_id, chunk.end_paragraph)
        return novel, chunk, formatted

    # ---- Library helpers ----

    def remove_novel(self, novel_id: str) -> None:
        """Delete a novel, disabling first if it is the active one."""
        if self.state.active_novel_id == novel_id:
            self.disable()
        self.library.delete_novel(novel_id)

    def reset_progress(self, novel_id: str) -> None:
        self.library.reset_progress(novel_id)
        logger.info("Progress reset for novel %s", novel_id)

    def status(self) -> ControllerStatus:
        novel_id = self.state.active_novel_id
        novel = self.library.get_novel(novel_id) if novel_id else None
        return ControllerStatus(
            enabled=self.state.enabled,
            active_novel_id=novel_id,
            active_novel_title=novel.title if novel else None,
            current_progress=novel.progress_label if novel else None,
            autopilot_enabled=self.state.autopilot.enabled,
            autopilot_delay=self.state.autopilot.delay_seconds,
            autopilot_armed=self._timer is not None,
        )

    def _notify(self, method: str, *args) -> None:
        for callback in self.callbacks:
            handler = getattr(callback, method, None)
            if handler is None:
                continue
            try:
                handler(*args)
            except Exception:
                logger.exception("Callback %s.%s failed", type(callback).__name__, method)
