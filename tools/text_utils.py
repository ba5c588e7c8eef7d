"""Mixed CJK/Latin text utilities: word counting, paragraphs, chapter labels, previews."""

import math
import re
from pathlib import PurePath
from typing import Iterable

# CJK ideographs, CJK symbols & punctuation, full-width forms.
# Each character in these ranges counts as one word.
_CJK_UNIT_RE = re.compile(r"[\u4e00-\u9fff\u3000-\u303f\uff01-\uff5e]")

_CJK_NUMERALS = "一二三四五六七八九十百千万零〇两"

CHAPTER_PATTERNS = [
    re.compile(rf"^第[{_CJK_NUMERALS}\d]+章.*"),
    re.compile(rf"^第[{_CJK_NUMERALS}\d]+节.*"),
    re.compile(rf"^第?[{_CJK_NUMERALS}\d]+[、.].*"),
    re.compile(r"^Chapter\s+\d+.*", re.IGNORECASE),
    re.compile(r"^Ch\.\s*\d+.*", re.IGNORECASE),
]

_CHAPTER_COUNT_RE = re.compile(
    rf"^(?:第[{_CJK_NUMERALS}\d]+章|Chapter\s+\d+)", re.IGNORECASE | re.MULTILINE
)

# Sentence-final marks (CJK and Latin), closing quotes and brackets, ellipsis
DEFAULT_BREAK_MARKS = frozenset(
    "。！？…" ".!?" "\"'”’" ")）」』"
)


def count_words(text: str) -> int:
    """Count words in mixed CJK/Latin text.

    CJK characters are not whitespace-delimited, so each one (including
    CJK punctuation) counts as a unit; the remaining text is counted by
    whitespace-separated tokens.
    """
    if not text:
        return 0
    clean = text.strip()
    if not clean:
        return 0
    cjk_units = len(_CJK_UNIT_RE.findall(clean))
    latin_words = len(_CJK_UNIT_RE.sub(" ", clean).split())
    return cjk_units + latin_words


def parse_paragraphs(text: str) -> list[str]:
    """Split raw novel text into paragraphs on blank-line boundaries.

    Line endings are normalised first; paragraphs are trimmed and empty
    ones dropped. Single newlines stay inside a paragraph.
    """
    if not text:
        return []
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    paragraphs = re.split(r"\n\s*\n", normalized)
    return [p.strip() for p in paragraphs if p.strip()]


def extract_title(filename: str) -> str:
    """Derive a display title from a file name by dropping the extension."""
    name = PurePath(filename).name
    return re.sub(r"\.[^/.]+$", "", name) or name


def is_good_break_point(paragraph: str, marks: Iterable[str] = DEFAULT_BREAK_MARKS) -> bool:
    """Return True if the paragraph ends on a sentence-final mark."""
    if not paragraph:
        return False
    stripped = paragraph.rstrip()
    if not stripped:
        return False
    return stripped[-1] in marks


def extract_chapter(
    content: str,
    paragraph_index: int,
    span: int = 50,
    max_length: int = 50,
) -> str:
    """Find a chapter heading in content, or synthesize one from the position.

    The first line matching a known heading pattern wins. Without a match
    every `span` paragraphs are grouped into one synthetic chapter; the
    label is a display aid only.
    """
    if content:
        for line in content.split("\n"):
            line = line.strip()
            for pattern in CHAPTER_PATTERNS:
                if pattern.match(line):
                    if len(line) > max_length:
                        return line[:max_length] + "..."
                    return line
    return f"第{paragraph_index // span + 1}章"


def get_preview(content: str, max_length: int = 100) -> str:
    """Return a short preview, cut at a sentence end when one is close to the limit."""
    if not content or len(content) <= max_length:
        return content or ""

    preview = content[:max_length]
    last_punct = max(preview.rfind(mark) for mark in ("。", "！", "？", "\n"))
    if last_punct > max_length * 0.7:
        return preview[: last_punct + 1]
    return preview + "..."


def format_reading_time(minutes: float) -> str:
    """Format a duration in minutes as a Chinese reading-time string."""
    if minutes < 1:
        return "不到1分钟"
    if minutes < 60:
        return f"{math.ceil(minutes)}分钟"
    hours = int(minutes // 60)
    remaining = math.ceil(minutes % 60)
    return f"{hours}小时{remaining}分钟"


def estimate_reading_time(content: str, words_per_minute: int = 300) -> dict:
    """Estimate reading time for content.

    Returns:
        Dict with word_count, minutes (rounded up) and formatted_time.
    """
    word_count = count_words(content)
    minutes = word_count / words_per_minute
    return {
        "word_count": word_count,
        "minutes": math.ceil(minutes),
        "formatted_time": format_reading_time(minutes),
    }


def normalize_content(content: str, add_indent: bool = False) -> str:
    """Normalise line endings and collapse runs of blank lines.

    With add_indent, paragraphs that are not already indented and do not
    start with a heading-like character get a full-width indent.
    """
    if not content:
        return ""
    formatted = content.replace("\r\n", "\n").replace("\r", "\n")
    formatted = re.sub(r"\n{3,}", "\n\n", formatted)

    if add_indent:
        paragraphs = []
        for paragraph in formatted.split("\n\n"):
            if paragraph.strip() and not re.match(r"^[\s　]", paragraph) and not re.match(r"^[第\d]", paragraph):
                paragraph = "　　" + paragraph
            paragraphs.append(paragraph)
        formatted = "\n\n".join(paragraphs)
    return formatted


def analyze_text(content: str, chapter_span: int = 50) -> dict:
    """Compute word, paragraph, line and chapter counts for a whole text."""
    if not content:
        return {
            "word_count": 0,
            "paragraph_count": 0,
            "line_count": 0,
            "chapter_count": 0,
            "reading_time": estimate_reading_time(""),
        }

    paragraphs = parse_paragraphs(content)
    lines = [line for line in content.splitlines() if line.strip()]
    headings = _CHAPTER_COUNT_RE.findall(content)
    chapter_count = len(headings) if headings else math.ceil(len(paragraphs) / chapter_span)

    return {
        "word_count": count_words(content),
        "paragraph_count": len(paragraphs),
        "line_count": len(lines),
        "chapter_count": chapter_count,
        "reading_time": estimate_reading_time(content),
    }
