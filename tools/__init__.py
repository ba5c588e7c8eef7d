"""Tools package — text utilities and the paragraph chunker."""

from tools.text_utils import (
    count_words,
    parse_paragraphs,
    extract_title,
    is_good_break_point,
    extract_chapter,
    get_preview,
    estimate_reading_time,
    format_reading_time,
    normalize_content,
    analyze_text,
)
from tools.chunker import Chunker, ChunkPolicy

__all__ = [
    "count_words",
    "parse_paragraphs",
    "extract_title",
    "is_good_break_point",
    "extract_chapter",
    "get_preview",
    "estimate_reading_time",
    "format_reading_time",
    "normalize_content",
    "analyze_text",
    "Chunker",
    "ChunkPolicy",
]
