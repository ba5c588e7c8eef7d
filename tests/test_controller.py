"""Tests for the injection controller act-path and state transitions."""

import pytest
from unittest.mock import MagicMock

from config.exceptions import InterceptionFailure, InvalidConfigError, NovelNotFoundError
from injection.formatter import INJECTION_MARKER, is_injected
from models.enums import AutopilotPhase, ControllerMode, InjectionOutcome


class TestPassThrough:
    def test_disabled_passes_text_unchanged(self, controller, sample_novel, delivered):
        outcome = controller.send("你好")
        assert outcome == InjectionOutcome.PASSED_THROUGH
        assert delivered == ["你好"]
        assert sample_novel.current_paragraph == 0

    def test_disabled_with_finished_novel(self, controller, library, sample_novel, delivered):
        library.update_progress(sample_novel.id, sample_novel.total_paragraphs)
        assert controller.send("你好") == InjectionOutcome.PASSED_THROUGH
        assert delivered == ["你好"]

    def test_injected_text_not_intercepted_again(self, controller, sample_novel, delivered):
        controller.enable(sample_novel.id)
        echoed = f"旧内容\n\n{INJECTION_MARKER}"
        assert controller.send(echoed) == InjectionOutcome.PASSED_THROUGH
        assert delivered == [echoed]
        assert sample_novel.current_paragraph == 0

    def test_should_intercept(self, controller, sample_novel):
        assert not controller.should_intercept("你好")
        controller.enable(sample_novel.id)
        assert controller.should_intercept("你好")
        assert not controller.should_intercept(f"x {INJECTION_MARKER}")


class TestInjection:
    def test_enabled_delivers_first_chunk(self, controller, sample_novel, delivered):
        controller.enable(sample_novel.id)
        outcome = controller.send("继续")

        assert outcome == InjectionOutcome.INJECTED
        assert len(delivered) == 1
        text = delivered[0]
        assert text.startswith("第一章 开端 (段落 1-2)")
        assert "他走进了房间。" in text
        assert "用户原始输入: 继续" in text
        assert is_injected(text)
        assert sample_novel.current_paragraph == 2

    def test_successive_sends_walk_the_novel(self, controller, sample_novel, delivered):
        controller.enable(sample_novel.id)
        outcomes = [controller.send("") for _ in range(3)]

        assert outcomes == [InjectionOutcome.INJECTED] * 3
        assert sample_novel.current_paragraph == 6
        assert "第二章 雨夜" in delivered[2]
        assert "电话响了三声" in delivered[2]

    def test_cursor_persisted(self, controller, db, sample_novel):
        controller.enable(sample_novel.id)
        controller.send("")
        saved = db.get("novels")
        assert saved[sample_novel.id]["current_paragraph"] == 2

    def test_options_change_budget(self, controller, sample_novel, delivered):
        controller.update_options(target_word_count=500)
        controller.enable(sample_novel.id)
        controller.send("")
        assert sample_novel.current_paragraph == 6

    def test_budget_clamped_to_minimum(self, controller, sample_novel):
        controller.update_options(target_word_count=1, min_target_word_count=12)
        controller.enable(sample_novel.id)
        controller.send("")
        assert sample_novel.current_paragraph == 2

    def test_content_reloaded_after_unload(self, controller, library, sample_novel, delivered):
        library.unload_content(sample_novel.id)
        controller.enable(sample_novel.id)
        assert controller.send("") == InjectionOutcome.INJECTED
        assert "他走进了房间。" in delivered[0]

    def test_callbacks_notified(self, library, db, settings, scheduler, sample_novel, recording_callback):
        from injection.controller import InjectionController
        ctl = InjectionController(
            library, db, lambda text: None, scheduler,
            callbacks=[recording_callback], settings=settings,
        )
        ctl.enable(sample_novel.id)
        ctl.send("")

        recording_callback.on_state_changed.assert_called()
        novel, chunk = recording_callback.on_chunk_injected.call_args.args
        assert novel.id == sample_novel.id
        assert chunk.end_paragraph == 2


    def test_supplied_formatter_keeps_its_options(self, library, db, settings, scheduler,
                                                  sample_novel, delivered):
        from injection.controller import InjectionController
        from injection.formatter import ChunkFormatter
        from models.state import InjectionOptions
        formatter = ChunkFormatter(InjectionOptions(collapse_content=True))
        ctl = InjectionController(
            library, db, delivered.append, scheduler, formatter=formatter, settings=settings,
        )
        assert ctl.options.collapse_content

        ctl.enable(sample_novel.id)
        ctl.send("")
        assert "[NJ_START]" in delivered[0]
        assert "<details>" in delivered[0]


class TestExhaustion:
    def test_end_of_novel_disables_and_delivers_original(self, controller, sample_novel, delivered):
        controller.enable(sample_novel.id)
        for _ in range(3):
            controller.send("")

        outcome = controller.send("还有吗")
        assert outcome == InjectionOutcome.EXHAUSTED
        assert delivered[-1] == "还有吗"
        assert controller.mode == ControllerMode.DISABLED
        assert controller.active_novel_id is None

    def test_reenable_without_reset_is_exhausted_again(self, controller, sample_novel, delivered):
        controller.enable(sample_novel.id)
        for _ in range(4):
            controller.send("")
        assert not controller.is_enabled

        controller.enable(sample_novel.id)
        assert controller.send("再来") == InjectionOutcome.EXHAUSTED
        assert delivered[-1] == "再来"
        assert sample_novel.current_paragraph == 6

    def test_reset_starts_over(self, controller, sample_novel, delivered):
        controller.enable(sample_novel.id)
        for _ in range(4):
            controller.send("")

        controller.reset_progress(sample_novel.id)
        controller.enable(sample_novel.id)
        assert controller.send("") == InjectionOutcome.INJECTED
        assert sample_novel.current_paragraph == 2

    def test_exhaustion_callback(self, library, db, settings, scheduler, sample_novel, recording_callback):
        from injection.controller import InjectionController
        ctl = InjectionController(
            library, db, lambda text: None, scheduler,
            callbacks=[recording_callback], settings=settings,
        )
        library.update_progress(sample_novel.id, sample_novel.total_paragraphs)
        ctl.enable(sample_novel.id)
        ctl.send("")
        recording_callback.on_exhausted.assert_called_once_with(sample_novel.id)


class TestFailure:
    def test_chunker_error_delivers_original(self, library, db, settings, scheduler, sample_novel,
                                             delivered, recording_callback):
        from injection.controller import InjectionController
        chunker = MagicMock()
        chunker.next_chunk.side_effect = RuntimeError("boom")
        ctl = InjectionController(
            library, db, delivered.append, scheduler,
            chunker=chunker, callbacks=[recording_callback], settings=settings,
        )
        ctl.enable(sample_novel.id)

        assert ctl.send("原话") == InjectionOutcome.FAILED
        assert delivered == ["原话"]
        assert sample_novel.current_paragraph == 0
        assert ctl.is_enabled

        error = recording_callback.on_failure.call_args.args[0]
        assert isinstance(error, InterceptionFailure)
        assert error.novel_id == sample_novel.id
        assert isinstance(error.cause, RuntimeError)

    def test_formatter_error_does_not_skip_chunk(self, controller, sample_novel, delivered):
        controller.enable(sample_novel.id)
        original_format = controller.formatter.format
        controller.formatter.format = MagicMock(side_effect=ValueError("bad template"))

        assert controller.send("原话") == InjectionOutcome.FAILED
        assert sample_novel.current_paragraph == 0

        controller.formatter.format = original_format
        assert controller.send("") == InjectionOutcome.INJECTED
        assert sample_novel.current_paragraph == 2

    def test_failing_callback_does_not_break_delivery(self, library, db, settings, scheduler,
                                                      sample_novel, delivered):
        from injection.controller import InjectionController
        bad = MagicMock()
        bad.on_chunk_injected.side_effect = RuntimeError("observer crashed")
        ctl = InjectionController(
            library, db, delivered.append, scheduler, callbacks=[bad], settings=settings,
        )
        ctl.enable(sample_novel.id)
        assert ctl.send("") == InjectionOutcome.INJECTED
        assert len(delivered) == 1


    def test_delivery_error_hands_chunk_back(self, library, db, settings, scheduler, sample_novel,
                                             recording_callback):
        from injection.controller import InjectionController
        calls = []

        def deliver(text):
            calls.append(text)
            if len(calls) == 1:
                raise RuntimeError("host send failed")

        ctl = InjectionController(
            library, db, deliver, scheduler, callbacks=[recording_callback], settings=settings,
        )
        ctl.enable(sample_novel.id)

        assert ctl.send("原话") == InjectionOutcome.FAILED
        assert len(calls) == 2
        assert calls[1] == "原话"
        assert sample_novel.current_paragraph == 0
        assert db.get("novels")[sample_novel.id]["current_paragraph"] == 0
        assert ctl.is_enabled

        error = recording_callback.on_failure.call_args.args[0]
        assert isinstance(error, InterceptionFailure)
        assert isinstance(error.cause, RuntimeError)
        recording_callback.on_chunk_injected.assert_not_called()

        # The same chunk goes out on the next send
        assert ctl.send("") == InjectionOutcome.INJECTED
        assert sample_novel.current_paragraph == 2


class TestPersistenceFailure:
    def test_failed_write_keeps_memory_and_retries(self, controller, library, db, sample_novel,
                                                   delivered, monkeypatch):
        controller.enable(sample_novel.id)
        real_set = db.set
        monkeypatch.setattr(db, "set", MagicMock(return_value=False))

        assert controller.send("") == InjectionOutcome.INJECTED
        assert sample_novel.current_paragraph == 2
        assert library.is_dirty

        monkeypatch.setattr(db, "set", real_set)
        assert controller.send("") == InjectionOutcome.INJECTED
        assert not library.is_dirty
        assert db.get("novels")[sample_novel.id]["current_paragraph"] == 3

    def test_flush_retries_before_next_read(self, controller, library, db, sample_novel, monkeypatch):
        controller.enable(sample_novel.id)
        monkeypatch.setattr(db, "set", MagicMock(return_value=False))
        controller.send("")

        spy = MagicMock(wraps=library.flush)
        monkeypatch.setattr(library, "flush", spy)
        controller.send("")
        spy.assert_called()


class TestReentrancy:
    def test_trigger_from_deliver_is_queued(self, library, db, settings, scheduler, sample_novel):
        from injection.controller import InjectionController
        delivered = []
        outcomes = []

        def deliver(text):
            delivered.append(text)
            if len(delivered) == 1:
                outcomes.append(ctl.send("第二次"))

        ctl = InjectionController(library, db, deliver, scheduler, settings=settings)
        ctl.enable(sample_novel.id)

        assert ctl.send("第一次") == InjectionOutcome.INJECTED
        assert outcomes == [InjectionOutcome.QUEUED]
        assert len(delivered) == 2
        assert "用户原始输入: 第一次" in delivered[0]
        assert "用户原始输入: 第二次" in delivered[1]
        assert sample_novel.current_paragraph == 3


class TestTransitions:
    def test_enable_unknown_novel(self, controller):
        with pytest.raises(NovelNotFoundError):
            controller.enable("missing")
        assert controller.mode == ControllerMode.DISABLED

    def test_enable_retargets(self, controller, library, sample_novel, sample_text):
        other = library.ingest_text(sample_text, "另一本.txt")
        controller.enable(sample_novel.id)
        controller.enable(other.id)
        assert controller.active_novel_id == other.id

    def test_inject_next_skipped_when_disabled(self, controller, sample_novel, delivered):
        assert controller.inject_next("你好") == InjectionOutcome.SKIPPED
        assert delivered == []

    def test_inject_next_when_enabled(self, controller, sample_novel, delivered):
        controller.enable(sample_novel.id)
        assert controller.inject_next("") == InjectionOutcome.INJECTED
        assert "用户原始输入" not in delivered[0]

    def test_remove_active_novel_disables(self, controller, library, sample_novel):
        controller.enable(sample_novel.id)
        controller.remove_novel(sample_novel.id)
        assert not controller.is_enabled
        assert sample_novel.id not in library

    def test_remove_other_novel_keeps_state(self, controller, library, sample_novel, sample_text):
        other = library.ingest_text(sample_text, "另一本.txt")
        controller.enable(sample_novel.id)
        controller.remove_novel(other.id)
        assert controller.is_enabled
        assert controller.active_novel_id == sample_novel.id

    def test_update_options_unknown_key(self, controller):
        with pytest.raises(InvalidConfigError):
            controller.update_options(colour="red")

    def test_update_options_invalid_value(self, controller):
        with pytest.raises(InvalidConfigError):
            controller.update_options(min_target_word_count=0)

    def test_status_snapshot(self, controller, sample_novel):
        controller.enable(sample_novel.id)
        controller.send("")
        status = controller.status()
        assert status.enabled
        assert status.active_novel_title == "雨夜"
        assert status.current_progress == "2/6"
        assert not status.autopilot_armed

    def test_wrap_routes_delivery_to_fallback(self, controller, sample_novel):
        sent = []
        send = controller.wrap(sent.append)
        assert send("你好") == InjectionOutcome.PASSED_THROUGH
        controller.enable(sample_novel.id)
        assert send("继续") == InjectionOutcome.INJECTED
        assert sent[0] == "你好"
        assert is_injected(sent[1])


class TestLoadState:
    def test_state_and_options_restored(self, library, db, settings, scheduler, sample_novel):
        from injection.controller import InjectionController
        first = InjectionController(library, db, lambda t: None, scheduler, settings=settings)
        first.enable(sample_novel.id)
        first.set_autopilot(True, 1.5)
        first.update_options(collapse_content=True)

        second = InjectionController(library, db, lambda t: None, scheduler, settings=settings)
        second.load_state()
        assert second.is_enabled
        assert second.active_novel_id == sample_novel.id
        assert second.state.autopilot.enabled
        assert second.state.autopilot.delay_seconds == 1.5
        assert second.options.collapse_content
        assert second.formatter.options.collapse_content
        assert second.autopilot_phase == AutopilotPhase.IDLE

    def test_missing_active_novel_disabled_on_load(self, library, db, settings, scheduler):
        from injection.controller import InjectionController
        db.set("controller_state", {"enabled": True, "active_novel_id": "gone"})
        ctl = InjectionController(library, db, lambda t: None, scheduler, settings=settings)
        ctl.load_state()
        assert not ctl.is_enabled
        assert ctl.active_novel_id is None

    def test_invalid_persisted_state_ignored(self, library, db, settings, scheduler):
        from injection.controller import InjectionController
        db.set("controller_state", {"enabled": "sometimes", "autopilot": {"delay_seconds": -1}})
        ctl = InjectionController(library, db, lambda t: None, scheduler, settings=settings)
        ctl.load_state()
        assert not ctl.is_enabled
