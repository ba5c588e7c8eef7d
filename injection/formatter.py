"""Formatting of chunks into the text that is actually delivered."""

import re
from typing import Optional

from models.chunk import Chunk
from models.state import InjectionOptions
from tools.text_utils import get_preview

# Appended to every injected message; its presence stops re-interception
INJECTION_MARKER = "[小说注入器 - 自动注入]"
LEGACY_MARKERS = ("[小说注入器]", "[Novel Injector]")

# Bracket the raw chunk in collapse mode so a renderer can fold exactly that span
FOLD_START = "[NJ_START]"
FOLD_END = "[NJ_END]"

ORIGINAL_INPUT_LABEL = "用户原始输入: "

_FOLD_RE = re.compile(re.escape(FOLD_START) + r"(.*?)" + re.escape(FOLD_END), re.DOTALL)


def is_injected(text: Optional[str]) -> bool:
    """Return True if text is a previously injected chunk."""
    if not text:
        return False
    return INJECTION_MARKER in text or any(marker in text for marker in LEGACY_MARKERS)


def extract_folded_content(text: str) -> Optional[str]:
    """Return the raw chunk bracketed by the fold sentinels, or None."""
    match = _FOLD_RE.search(text or "")
    return match.group(1) if match else None


class ChunkFormatter:
    """Builds the delivered message: prefix, content (plain or folded), original input, marker."""

    def __init__(self, options: Optional[InjectionOptions] = None, preview_length: int = 100):
        self.options = options or InjectionOptions()
        self.preview_length = preview_length

    def render_prefix(self, chunk: Chunk, title: str, total_paragraphs: int) -> str:
        """Substitute every placeholder occurrence in the prefix template."""
        template = self.options.prefix_template
        if not template:
            return ""
        replacements = {
            "{title}": title or "未知小说",
            "{chapter}": chunk.chapter or "第1章",
            "{start_para}": str(chunk.start_paragraph + 1),
            "{end_para}": str(chunk.end_paragraph),
            "{progress}": f"{chunk.end_paragraph}/{total_paragraphs}",
        }
        prefix = template
        for placeholder, value in replacements.items():
            prefix = prefix.replace(placeholder, value)
        return prefix

    def collapse(self, content: str) -> str:
        """Wrap content in a fold, keeping a one-line preview outside it."""
        preview = " ".join(get_preview(content, self.preview_length).split())
        return (
            '<details class="novel-injector-collapsible">\n'
            f"<summary>📖 小说内容 (点击展开/折叠) {preview}</summary>\n\n"
            f"{FOLD_START}{content}{FOLD_END}\n\n"
            "</details>"
        )

    def format(self, chunk: Chunk, title: str, total_paragraphs: int, original_text: str = "") -> str:
        parts = []
        prefix = self.render_prefix(chunk, title, total_paragraphs)
        if prefix:
            parts.append(prefix)

        if self.options.collapse_content:
            parts.append(self.collapse(chunk.content))
        else:
            parts.append(chunk.content)

        if original_text:
            parts.append(f"{ORIGINAL_INPUT_LABEL}{original_text}")

        parts.append(INJECTION_MARKER)
        return "\n\n".join(parts)
