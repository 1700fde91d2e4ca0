"""Text segmentation utilities.

Why this exists:
- Splits documents into embedding-sized, citable chunks
- Maintains context with overlapping windows
- Drops pathological lines (minified files) and filters lines per file type

Strategies:
- Segmenter (smart, default): token-bounded sliding line window
- LineChunker: fixed number of lines per chunk
- BlockChunker: fixed number of characters per chunk

Every strategy emits references in one of two forms, which consumers cite
verbatim: the bare path when a chunk covers the whole input, otherwise
"{path}, Lines {first} to {last}" (1-based, inclusive).
"""

import re
from abc import ABC, abstractmethod
from typing import Optional

from kgrag.config.schema import ChunkingConfig, ChunkingStrategy, FileTypeConfig
from kgrag.entities import Chunk
from kgrag.observability.logging import get_logger

logger = get_logger(__name__)


class ChunkingError(ValueError):
    """Raised for invalid segmentation configuration."""


def estimate_tokens(line: str) -> int:
    """Approximate the token cost of a line (about four characters per token)."""
    return max(1, len(line) // 4)


def format_reference(path: str, start: int, end: int, total: int) -> str:
    """Build the chunk reference for lines [start, end) out of total lines."""
    if start == 0 and end >= total:
        return path
    return f"{path}, Lines {start + 1} to {end}"


class LineFilter:
    """Compiled include/exclude rules for one file type."""

    def __init__(self, file_type: FileTypeConfig) -> None:
        self.extension = file_type.extension
        self.enabled = file_type.enabled
        try:
            self.include = [re.compile(p) for p in file_type.include]
            self.exclude = [re.compile(p) for p in file_type.exclude]
        except re.error as e:
            raise ChunkingError(f"Invalid filter pattern for '{file_type.extension}': {e}") from e

    def apply(self, lines: list[str]) -> list[str]:
        if self.include:
            return [line for line in lines if any(p.search(line) for p in self.include)]
        if self.exclude:
            return [line for line in lines if not any(p.search(line) for p in self.exclude)]
        return lines


class TextChunker(ABC):
    """Base class for segmentation strategies."""

    def __init__(self, config: ChunkingConfig) -> None:
        if config.overlap >= config.chunk_size:
            raise ChunkingError(
                f"overlap ({config.overlap}) must be smaller than chunk_size ({config.chunk_size})"
            )
        self.config = config
        self.chunk_size = config.chunk_size
        self.overlap = config.overlap
        self._filters = {ft.extension: LineFilter(ft) for ft in config.file_types}

    def _filter_for(self, path: str) -> Optional[LineFilter]:
        file_type = self.config.file_type_for(path)
        if file_type is None:
            return None
        return self._filters.get(file_type.extension)

    def prepare_lines(self, path: str, text: str) -> Optional[list[str]]:
        """Split text into lines, drop over-long lines and apply file filters.

        Returns None when the file type is disabled.
        """
        line_filter = self._filter_for(path)
        if line_filter is not None and not line_filter.enabled:
            return None

        lines = text.split("\n")
        kept = [line for line in lines if len(line) <= self.config.max_line_length]
        if len(kept) < len(lines):
            logger.debug(
                "long_lines_dropped",
                path=path,
                dropped=len(lines) - len(kept),
                max_line_length=self.config.max_line_length,
            )

        if line_filter is not None:
            kept = line_filter.apply(kept)
        return kept

    @abstractmethod
    def chunk(self, path: str, text: str) -> list[Chunk]:
        """Split text read from path into ordered chunks."""

    def _log_result(self, path: str, chunks: list[Chunk]) -> None:
        logger.info(
            "document_chunked",
            path=path,
            strategy=type(self).__name__,
            chunk_count=len(chunks),
            avg_chunk_size=sum(len(c.content) for c in chunks) // len(chunks) if chunks else 0,
        )


class Segmenter(TextChunker):
    """Token-bounded sliding window over lines.

    Lines are accumulated while the running token estimate stays within
    chunk_size; consecutive windows share ``overlap`` lines. The window start
    strictly increases, so any input terminates.
    """

    def windows(self, lines: list[str]) -> list[tuple[int, int]]:
        """Return the [start, end) line windows for the given lines."""
        windows: list[tuple[int, int]] = []
        total = len(lines)
        start = 0

        while start < total:
            end = start
            tokens = 0
            while end < total:
                cost = estimate_tokens(lines[end])
                if end > start and tokens + cost > self.chunk_size:
                    break
                tokens += cost
                end += 1

            windows.append((start, end))
            if end >= total:
                break

            start = max(end - self.overlap, start + 1)

        return windows

    def chunk(self, path: str, text: str) -> list[Chunk]:
        lines = self.prepare_lines(path, text)
        if not lines:
            return []

        chunks = []
        for start, end in self.windows(lines):
            content = "\n".join(lines[start:end])
            if not content.strip():
                continue
            chunks.append(
                Chunk(reference=format_reference(path, start, end, len(lines)), content=content)
            )

        self._log_result(path, chunks)
        return chunks


class LineChunker(TextChunker):
    """Fixed windows of chunk_size lines advancing by chunk_size - overlap."""

    def chunk(self, path: str, text: str) -> list[Chunk]:
        lines = self.prepare_lines(path, text)
        if not lines:
            return []

        chunks = []
        total = len(lines)
        step = self.chunk_size - self.overlap
        for start in range(0, total, step):
            end = min(start + self.chunk_size, total)
            content = "\n".join(lines[start:end])
            if content.strip():
                chunks.append(
                    Chunk(reference=format_reference(path, start, end, total), content=content)
                )
            if end >= total:
                break

        self._log_result(path, chunks)
        return chunks


class BlockChunker(TextChunker):
    """Fixed windows of chunk_size characters advancing by chunk_size - overlap.

    Line filters and the maximum line length still apply; the windows are
    taken over the re-joined text.
    """

    def chunk(self, path: str, text: str) -> list[Chunk]:
        lines = self.prepare_lines(path, text)
        if not lines:
            return []

        text = "\n".join(lines)
        length = len(text)
        step = self.chunk_size - self.overlap

        chunks = []
        for start in range(0, length, step):
            end = min(start + self.chunk_size, length)
            content = text[start:end]
            if content.strip():
                if start == 0 and end == length:
                    reference = path
                else:
                    first_line = text.count("\n", 0, start) + 1
                    last_line = text.count("\n", 0, end - 1) + 1
                    reference = f"{path}, Lines {first_line} to {last_line}"
                chunks.append(Chunk(reference=reference, content=content))
            if end >= length:
                break

        self._log_result(path, chunks)
        return chunks


def create_chunker(config: ChunkingConfig) -> TextChunker:
    """Factory function to create a chunker for the configured strategy.

    Raises:
        ChunkingError: If overlap >= chunk_size or a filter pattern is invalid
        ValueError: If the strategy is unknown
    """
    strategy = ChunkingStrategy(config.strategy)

    if strategy == ChunkingStrategy.SMART:
        return Segmenter(config)
    elif strategy == ChunkingStrategy.LINE:
        return LineChunker(config)
    elif strategy == ChunkingStrategy.BLOCK:
        return BlockChunker(config)

    raise ValueError(f"Unknown chunking strategy: '{config.strategy}'")
