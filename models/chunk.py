"""Chunk data model."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Chunk:
    """One delivery unit: paragraphs [start_paragraph, end_paragraph) of a novel."""
    content: str
    start_paragraph: int
    end_paragraph: int
    paragraph_count: int
    word_count: int
    chapter: str
