"""Configuration settings loaded from .env file."""

from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings, loaded from .env file.

    Values here are the defaults; the chunk budget, prefix template and
    collapse mode can be overridden at runtime and are then persisted in
    storage (see models.state.InjectionOptions).
    """

    # Storage
    sqlite_db_path: Path = Path("./data/novel_injector.db")
    novels_dir: Path = Path("./data/novels")

    # Ingestion
    max_file_size_mb: int = 50
    allowed_extensions: list[str] = [".txt"]

    # Chunking
    target_word_count: int = 500
    min_target_word_count: int = 50
    short_paragraph_threshold: int = 100
    chapter_fallback_span: int = 50       # paragraphs per synthetic chapter
    chapter_label_max_length: int = 50

    # Formatting
    prefix_template: str = "{chapter} (段落 {start_para}-{end_para})"
    collapse_content: bool = False
    preview_length: int = 100

    # Autopilot
    autopilot_delay: float = 3.0  # seconds

    # Logging
    log_dir: Path = Path("./data/logs")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @field_validator(
        "max_file_size_mb",
        "target_word_count",
        "min_target_word_count",
        "short_paragraph_threshold",
        "chapter_fallback_span",
        "chapter_label_max_length",
        "preview_length",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Count must be >= 1")
        return v

    @field_validator("autopilot_delay")
    @classmethod
    def validate_autopilot_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("autopilot_delay must be >= 0")
        return v

    @field_validator("allowed_extensions")
    @classmethod
    def normalize_extensions(cls, v: list[str]) -> list[str]:
        normalized = []
        for ext in v:
            ext = ext.strip().lower()
            if not ext:
                continue
            normalized.append(ext if ext.startswith(".") else f".{ext}")
        if not normalized:
            raise ValueError("allowed_extensions must not be empty")
        return normalized

    @field_validator("sqlite_db_path", "log_dir", "novels_dir")
    @classmethod
    def ensure_parent_dirs(cls, v: Path) -> Path:
        v.parent.mkdir(parents=True, exist_ok=True)
        return v

    @model_validator(mode="after")
    def validate_word_budget(self) -> "Settings":
        if self.target_word_count < self.min_target_word_count:
            raise ValueError(
                f"target_word_count ({self.target_word_count}) must be >= "
                f"min_target_word_count ({self.min_target_word_count})"
            )
        return self

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
