"""Novel data model."""

from dataclasses import asdict, dataclass, field
from typing import Optional


@dataclass
class Novel:
    """A parsed novel plus its reading position.

    current_paragraph is the index of the next undelivered paragraph, so
    0 <= current_paragraph <= total_paragraphs. paragraphs may be None when
    the content has been dropped from memory; it is re-derivable from the
    stored source file.
    """
    id: str = ""
    title: str = ""
    filename: str = ""
    original_name: str = ""
    total_paragraphs: int = 0
    current_paragraph: int = 0
    upload_date: str = ""
    file_size: int = 0
    paragraphs: Optional[list[str]] = field(default=None, repr=False, compare=False)

    @property
    def is_loaded(self) -> bool:
        return self.paragraphs is not None

    @property
    def is_finished(self) -> bool:
        return self.current_paragraph >= self.total_paragraphs

    @property
    def remaining_paragraphs(self) -> int:
        return max(0, self.total_paragraphs - self.current_paragraph)

    @property
    def progress_ratio(self) -> float:
        if self.total_paragraphs == 0:
            return 1.0
        return self.current_paragraph / self.total_paragraphs

    @property
    def progress_label(self) -> str:
        return f"{self.current_paragraph}/{self.total_paragraphs}"

    def to_metadata(self) -> dict:
        """Serialisable metadata, excluding cached paragraph content."""
        data = asdict(self)
        data.pop("paragraphs", None)
        return data

    @classmethod
    def from_metadata(cls, data: dict) -> "Novel":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__ and k != "paragraphs"}
        return cls(**known)
