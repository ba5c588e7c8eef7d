"""Word-budgeted chunking of a paragraph sequence."""

import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional, Sequence

from config.settings import Settings
from models.chunk import Chunk
from tools.text_utils import (
    DEFAULT_BREAK_MARKS,
    count_words,
    extract_chapter,
    is_good_break_point,
)

logger = logging.getLogger(__name__)

PARAGRAPH_SEPARATOR = "\n\n"


@dataclass
class ChunkPolicy:
    """Tunable heuristics for where a chunk may end."""
    target_word_count: int = 500
    short_paragraph_threshold: int = 100  # trailing paragraphs below this are absorbed
    break_marks: frozenset[str] = field(default_factory=lambda: DEFAULT_BREAK_MARKS)
    chapter_fallback_span: int = 50
    chapter_label_max_length: int = 50

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChunkPolicy":
        return cls(
            target_word_count=settings.target_word_count,
            short_paragraph_threshold=settings.short_paragraph_threshold,
            chapter_fallback_span=settings.chapter_fallback_span,
            chapter_label_max_length=settings.chapter_label_max_length,
        )


class Chunker:
    """Cuts the next deliverable chunk out of a paragraph sequence.

    Pure with respect to its inputs: the caller owns the cursor.
    """

    def __init__(self, policy: Optional[ChunkPolicy] = None):
        self.policy = policy or ChunkPolicy()

    def next_chunk(
        self,
        paragraphs: Sequence[str],
        start: int,
        target_word_count: Optional[int] = None,
    ) -> Optional[Chunk]:
        """Return the chunk beginning at paragraph `start`, or None at the end.

        Paragraphs are accumulated until the word budget is reached. A
        paragraph that would push a non-empty chunk over budget is left for
        the next chunk, while the first paragraph is always taken however
        large it is. Once the budget is met, a chunk that does not end on a
        sentence-final mark keeps absorbing short following paragraphs until
        it does, or until the next paragraph is too long to absorb.

        Raises:
            ValueError: non-positive budget or negative start.
        """
        budget = self.policy.target_word_count if target_word_count is None else target_word_count
        if budget <= 0:
            raise ValueError(f"target_word_count must be positive, got {budget}")
        if start < 0:
            raise ValueError(f"start must be non-negative, got {start}")

        total = len(paragraphs)
        if start >= total:
            return None

        collected: list[str] = []
        word_count = 0
        end = start

        while end < total:
            paragraph = paragraphs[end]
            words = count_words(paragraph)
            if word_count > 0 and word_count + words > budget:
                break

            collected.append(paragraph)
            word_count += words
            end += 1

            if word_count >= budget:
                while end < total and not is_good_break_point(collected[-1], self.policy.break_marks):
                    next_words = count_words(paragraphs[end])
                    if next_words >= self.policy.short_paragraph_threshold:
                        break
                    collected.append(paragraphs[end])
                    word_count += next_words
                    end += 1
                break

        content = PARAGRAPH_SEPARATOR.join(collected)
        chapter = extract_chapter(
            content,
            start,
            span=self.policy.chapter_fallback_span,
            max_length=self.policy.chapter_label_max_length,
        )
        logger.debug("Chunk [%d, %d): %d words, chapter=%s", start, end, word_count, chapter)

        return Chunk(
            content=content,
            start_paragraph=start,
            end_paragraph=end,
            paragraph_count=len(collected),
            word_count=word_count,
            chapter=chapter,
        )

    def iter_chunks(
        self,
        paragraphs: Sequence[str],
        start: int = 0,
        target_word_count: Optional[int] = None,
    ) -> Iterator[Chunk]:
        """Yield consecutive chunks from `start` until the paragraphs run out."""
        cursor = start
        while True:
            chunk = self.next_chunk(paragraphs, cursor, target_word_count)
            if chunk is None:
                return
            yield chunk
            cursor = chunk.end_paragraph
