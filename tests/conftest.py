"""Shared pytest fixtures for the novel-injector test suite."""

import pytest
from unittest.mock import MagicMock


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite database path."""
    return tmp_path / "test_injector.db"


@pytest.fixture
def db(tmp_db_path):
    """Return an initialized Database instance backed by a temp file."""
    from models.database import Database
    return Database(tmp_db_path)


# ---------------------------------------------------------------------------
# Settings fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path):
    """Return a Settings instance with all paths pointing to tmp_path."""
    from config.settings import Settings
    return Settings(
        _env_file=None,
        sqlite_db_path=tmp_path / "injector.db",
        novels_dir=tmp_path / "novels",
        log_dir=tmp_path / "logs",
        target_word_count=20,
        min_target_word_count=5,
        autopilot_delay=3.0,
    )


@pytest.fixture
def library(db, settings):
    """Return an empty NovelLibrary backed by the temp database."""
    from models.library import NovelLibrary
    return NovelLibrary(db, settings)


# ---------------------------------------------------------------------------
# Controller collaborators
# ---------------------------------------------------------------------------

class FakeTimer:
    def __init__(self, scheduler, due, callback):
        self.scheduler = scheduler
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Manual clock: timers only fire when advance() moves past their due time."""

    def __init__(self):
        self.now = 0.0
        self.timers: list[FakeTimer] = []

    def after(self, delay_seconds, callback):
        timer = FakeTimer(self, self.now + delay_seconds, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due timers in order. Returns how many fired."""
        target = self.now + seconds
        fired = 0
        while True:
            due = sorted((t for t in self.pending if t.due <= target), key=lambda t: t.due)
            if not due:
                break
            timer = due[0]
            timer.cancelled = True
            self.now = timer.due
            timer.callback()
            fired += 1
        self.now = target
        return fired


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def delivered():
    """List collecting everything passed to the controller's deliver sink."""
    return []


@pytest.fixture
def controller(library, db, settings, scheduler, delivered):
    from injection.controller import InjectionController
    return InjectionController(
        library=library,
        storage=db,
        deliver=delivered.append,
        scheduler=scheduler,
        settings=settings,
    )


@pytest.fixture
def recording_callback():
    """MagicMock standing in for an InjectionCallback."""
    return MagicMock()


# ---------------------------------------------------------------------------
# Sample data fixtures
# ---------------------------------------------------------------------------

SAMPLE_TEXT = (
    "第一章 开端\n\n"
    "他走进了房间。\n\n"
    "他看了看四周，房间很小。\n\n"
    "窗外下着雨，街上没有一个行人。\n\n"
    "第二章 雨夜\n\n"
    "电话响了三声，他才接起来。"
)


@pytest.fixture
def sample_text():
    return SAMPLE_TEXT


@pytest.fixture
def sample_novel(library):
    """Ingest and return a short six-paragraph novel."""
    return library.ingest_text(SAMPLE_TEXT, "雨夜.txt")


@pytest.fixture
def sample_file(tmp_path):
    """Write the sample novel to disk and return its path."""
    path = tmp_path / "雨夜.txt"
    path.write_text(SAMPLE_TEXT, encoding="utf-8")
    return path
