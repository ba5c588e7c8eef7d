"""Configuration package — settings, logging, and exceptions."""

from config.exceptions import (
    NovelInjectorError,
    ValidationError,
    InvalidFileTypeError,
    FileTooLargeError,
    InvalidConfigError,
    NotFoundError,
    NovelNotFoundError,
    TransportError,
    IngestionError,
    InjectionError,
    InterceptionFailure,
)
from config.logging_config import setup_logging
from config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "setup_logging",
    "NovelInjectorError",
    "ValidationError",
    "InvalidFileTypeError",
    "FileTooLargeError",
    "InvalidConfigError",
    "NotFoundError",
    "NovelNotFoundError",
    "TransportError",
    "IngestionError",
    "InjectionError",
    "InterceptionFailure",
]
