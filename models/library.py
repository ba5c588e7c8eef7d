"""Novel library: ingestion, metadata persistence and reading progress."""

import logging
import uuid
from datetime import datetime
from pathlib import Path, PurePath
from typing import Optional

from config.exceptions import (
    FileTooLargeError,
    IngestionError,
    InvalidFileTypeError,
    NovelNotFoundError,
    ValidationError,
)
from config.settings import Settings
from models.database import Storage
from models.novel import Novel
from tools.text_utils import extract_title, parse_paragraphs

logger = logging.getLogger(__name__)

STORAGE_KEY = "novels"

# Legacy Chinese text files are often GB-encoded
_FALLBACK_ENCODINGS = ("utf-8-sig", "gb18030")


def _generate_id() -> str:
    return uuid.uuid4().hex[:12]


class NovelLibrary:
    """Holds every ingested novel and its cursor.

    Metadata (never paragraph content) is persisted under the "novels"
    storage key. Source text is kept in novels_dir so paragraphs can be
    dropped from memory and re-derived later.
    """

    def __init__(self, storage: Storage, settings: Settings):
        self.storage = storage
        self.settings = settings
        self.novels_dir = Path(settings.novels_dir)
        self._novels: dict[str, Novel] = {}
        self._dirty = False

    def __contains__(self, novel_id: str) -> bool:
        return novel_id in self._novels

    def __len__(self) -> int:
        return len(self._novels)

    @property
    def is_dirty(self) -> bool:
        """True when the last metadata write failed and has not been retried."""
        return self._dirty

    def load(self) -> int:
        """Load persisted metadata into memory. Returns the number of novels."""
        saved = self.storage.get(STORAGE_KEY, {}) or {}
        self._novels.clear()
        for novel_id, data in saved.items():
            novel = Novel.from_metadata(data)
            novel.id = novel.id or novel_id
            novel.current_paragraph = max(0, min(novel.current_paragraph, novel.total_paragraphs))
            self._novels[novel.id] = novel
        logger.info("Library loaded with %d novels", len(self._novels))
        return len(self._novels)

    # ---- Ingestion ----

    def validate_upload(self, filename: str, size: int) -> None:
        """Raise a ValidationError for a wrong extension or an oversized file."""
        suffix = PurePath(filename).suffix.lower()
        if suffix not in self.settings.allowed_extensions:
            raise InvalidFileTypeError(filename, self.settings.allowed_extensions)
        limit = self.settings.max_file_size_bytes
        if size > limit:
            raise FileTooLargeError(size, limit)

    def ingest_text(self, raw_text: str, display_name: str, file_size: Optional[int] = None) -> Novel:
        """Parse raw text into a new novel and register it.

        Args:
            raw_text: Full text of the novel.
            display_name: Original file name; its extension is validated and
                its stem becomes the title.
            file_size: Size in bytes of the original upload. Defaults to the
                utf-8 size of raw_text.

        Raises:
            ValidationError: bad extension, oversize, or no paragraphs.
            IngestionError: the source copy or metadata could not be written.
        """
        original_name = PurePath(display_name).name
        size = file_size if file_size is not None else len(raw_text.encode("utf-8"))
        self.validate_upload(original_name, size)

        paragraphs = parse_paragraphs(raw_text)
        if not paragraphs:
            raise ValidationError("Novel contains no text", {"filename": original_name})

        novel_id = _generate_id()
        filename = f"{novel_id}_{original_name}"
        source_path = self.novels_dir / filename
        try:
            self.novels_dir.mkdir(parents=True, exist_ok=True)
            source_path.write_text(raw_text, encoding="utf-8")
        except OSError as e:
            raise IngestionError(f"Failed to store novel source: {e}", {"filename": original_name}) from e

        novel = Novel(
            id=novel_id,
            title=extract_title(original_name),
            filename=filename,
            original_name=original_name,
            total_paragraphs=len(paragraphs),
            current_paragraph=0,
            upload_date=datetime.now().isoformat(timespec="seconds"),
            file_size=size,
            paragraphs=paragraphs,
        )
        self._novels[novel_id] = novel

        if not self._persist():
            # Leave no partially registered novel behind
            del self._novels[novel_id]
            source_path.unlink(missing_ok=True)
            raise IngestionError("Failed to persist novel metadata", {"filename": original_name})

        logger.info(
            "Novel ingested: %s (id=%s, %d paragraphs, %d bytes)",
            novel.title, novel_id, novel.total_paragraphs, size,
        )
        return novel

    def ingest_file(self, path: str | Path) -> Novel:
        """Read a text file from disk and ingest it."""
        path = Path(path)
        try:
            size = path.stat().st_size
        except OSError as e:
            raise IngestionError(f"Cannot read file: {e}", {"path": str(path)}) from e
        self.validate_upload(path.name, size)

        try:
            data = path.read_bytes()
        except OSError as e:
            raise IngestionError(f"Cannot read file: {e}", {"path": str(path)}) from e

        for encoding in _FALLBACK_ENCODINGS:
            try:
                text = data.decode(encoding)
                break
            except UnicodeDecodeError:
                logger.debug("Decoding %s as %s failed", path.name, encoding)
        else:
            raise IngestionError("Unsupported text encoding", {"path": str(path)})

        return self.ingest_text(text, path.name, file_size=size)

    # ---- Lookup ----

    def get_novel(self, novel_id: str) -> Optional[Novel]:
        return self._novels.get(novel_id)

    def require(self, novel_id: str) -> Novel:
        novel = self._novels.get(novel_id)
        if novel is None:
            raise NovelNotFoundError(novel_id)
        return novel

    def list_novels(self) -> list[Novel]:
        """Metadata-only copies of all novels, oldest upload first."""
        novels = [Novel.from_metadata(n.to_metadata()) for n in self._novels.values()]
        return sorted(novels, key=lambda n: (n.upload_date, n.id))

    def get_paragraphs(self, novel_id: str, start: int, end: int) -> list[str]:
        novel = self._novels.get(novel_id)
        if novel is None or novel.paragraphs is None:
            return []
        return novel.paragraphs[start:end]

    # ---- Mutation ----

    def delete_novel(self, novel_id: str) -> None:
        novel = self.require(novel_id)
        source_path = self.novels_dir / novel.filename
        try:
            source_path.unlink()
        except FileNotFoundError:
            logger.warning("Source file already gone for novel %s: %s", novel_id, source_path)
        except OSError as e:
            logger.warning("Failed to delete source file %s, removing from library anyway: %s", source_path, e)

        del self._novels[novel_id]
        self._persist()
        logger.info("Novel deleted: %s (id=%s)", novel.title, novel_id)

    def update_progress(self, novel_id: str, paragraph: int) -> bool:
        """Move the cursor, clamped to [0, total_paragraphs], and persist.

        Returns False when the write failed; the in-memory cursor keeps the
        new value and the write is retried by flush().
        """
        novel = self.require(novel_id)
        novel.current_paragraph = max(0, min(paragraph, novel.total_paragraphs))
        return self._persist()

    def reset_progress(self, novel_id: str) -> bool:
        return self.update_progress(novel_id, 0)

    def reload_content(self, novel_id: str) -> list[str]:
        """Make sure paragraphs are in memory, re-parsing the stored source if needed."""
        novel = self.require(novel_id)
        if novel.paragraphs is not None:
            return novel.paragraphs

        source_path = self.novels_dir / novel.filename
        try:
            text = source_path.read_text(encoding="utf-8")
        except OSError as e:
            raise IngestionError(f"Failed to reload novel content: {e}", {"novel_id": novel_id}) from e

        paragraphs = parse_paragraphs(text)
        if len(paragraphs) != novel.total_paragraphs:
            logger.warning(
                "Paragraph count changed for %s: %d -> %d",
                novel_id, novel.total_paragraphs, len(paragraphs),
            )
            novel.total_paragraphs = len(paragraphs)
            novel.current_paragraph = min(novel.current_paragraph, novel.total_paragraphs)
            self._persist()
        novel.paragraphs = paragraphs
        logger.debug("Reloaded content for novel: %s", novel.title)
        return paragraphs

    def unload_content(self, novel_id: str) -> None:
        """Drop cached paragraphs; reload_content() brings them back."""
        self.require(novel_id).paragraphs = None

    def flush(self) -> bool:
        """Retry a failed metadata write. Returns True when storage is current."""
        if not self._dirty:
            return True
        logger.info("Retrying pending metadata write")
        return self._persist()

    def _persist(self) -> bool:
        metadata = {novel_id: n.to_metadata() for novel_id, n in self._novels.items()}
        ok = self.storage.set(STORAGE_KEY, metadata)
        self._dirty = not ok
        if not ok:
            logger.error("Failed to persist novel metadata (%d novels)", len(metadata))
        return ok
