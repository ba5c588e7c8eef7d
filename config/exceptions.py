"""Custom exception hierarchy for the novel injector."""

from typing import Optional


class NovelInjectorError(Exception):
    """Base exception for all novel injector errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# ---- Validation Errors ----

class ValidationError(NovelInjectorError):
    """Input validation failed."""


class InvalidFileTypeError(ValidationError):
    """Uploaded file does not have an accepted extension."""

    def __init__(self, filename: str, allowed: list[str]):
        super().__init__(
            f"Unsupported file type: {filename}",
            {"filename": filename, "allowed": ",".join(allowed)},
        )
        self.filename = filename


class FileTooLargeError(ValidationError):
    """Uploaded file exceeds the configured size limit."""

    def __init__(self, size: int, limit: int):
        super().__init__(
            f"File size {size} bytes exceeds limit of {limit} bytes",
            {"size": size, "limit": limit},
        )
        self.size = size
        self.limit = limit


class InvalidConfigError(ValidationError):
    """Configuration value is invalid."""


# ---- Lookup Errors ----

class NotFoundError(NovelInjectorError):
    """Requested entity does not exist."""


class NovelNotFoundError(NotFoundError):
    """No novel is registered under the given id."""

    def __init__(self, novel_id: str):
        super().__init__(f"Novel not found: {novel_id}", {"novel_id": novel_id})
        self.novel_id = novel_id


# ---- Transport Errors ----

class TransportError(NovelInjectorError):
    """I/O failure while moving novel data or state."""


class IngestionError(TransportError):
    """Reading or storing a novel's source text failed."""



# ---- Injection Errors ----

class InjectionError(NovelInjectorError):
    """Base exception for interception errors."""


class InterceptionFailure(InjectionError):
    """Producing or formatting a chunk failed; the original input is delivered instead."""

    def __init__(self, message: str, novel_id: Optional[str] = None, cause: Optional[BaseException] = None):
        details = {}
        if novel_id is not None:
            details["novel_id"] = novel_id
        if cause is not None:
            details["cause"] = type(cause).__name__
        super().__init__(message, details)
        self.novel_id = novel_id
        self.cause = cause
