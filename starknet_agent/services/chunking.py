"""
Chunking service.

Splits extracted document text into overlapping windows of whitespace
tokens. Chunk ``i`` of a document has id ``<document_id>-<i>`` and records
the token span ``[start_token, end_token)`` it covers.
"""
import logging
import re
from typing import List, Optional, Tuple

from starknet_agent.domains.ingestion import Chunk, ChunkMetadata, ChunkStrategy

logger = logging.getLogger(__name__)

MAX_CHUNKS = 200

_HEADING = re.compile(r"^#+\s+")


def compute_chunk_params(size: int) -> Tuple[int, int]:
    """Pick chunk size and overlap (10%) from the file size in bytes."""
    if size > 1_000_000:
        chunk_size = 1000
    elif size > 100_000:
        chunk_size = 500
    elif size > 10_000:
        chunk_size = 200
    else:
        chunk_size = 100
    return chunk_size, int(chunk_size * 0.1)


def determine_strategy(mime_type: str) -> ChunkStrategy:
    if mime_type in ("text/csv", "application/csv", "application/json", "text/json"):
        return "structured"
    return "adaptive"


class _ChunkBuffer:
    """Accumulates tokens and emits chunks, carrying ``overlap`` tokens forward."""

    def __init__(self, document_id: str, chunk_size: int, overlap: int):
        self.document_id = document_id
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.tokens: List[str] = []
        self.carried = 0
        self.start_token = 0
        self.chunks: List[Chunk] = []

    def __len__(self) -> int:
        return len(self.tokens)

    def extend(self, tokens: List[str]) -> None:
        self.tokens.extend(tokens)

    def flush(self) -> None:
        # Nothing but already-emitted overlap left
        if len(self.tokens) <= self.carried:
            return

        end = min(self.chunk_size, len(self.tokens))
        chunk_tokens = self.tokens[:end]
        end_token = self.start_token + end
        index = len(self.chunks)
        self.chunks.append(
            Chunk(
                id=f"{self.document_id}-{index}",
                text=" ".join(chunk_tokens),
                metadata=ChunkMetadata(
                    document_id=self.document_id,
                    chunk_index=index,
                    start_token=self.start_token,
                    end_token=end_token,
                ),
            )
        )

        keep = min(self.overlap, end)
        self.tokens = chunk_tokens[end - keep :] + self.tokens[end:]
        self.carried = keep
        self.start_token = end_token - keep

    def add_segment(self, tokens: List[str]) -> None:
        """Add a paragraph or line, starting a new chunk if it would overflow."""
        if len(self.tokens) + len(tokens) > self.chunk_size:
            self.flush()
        self.extend(tokens)
        while len(self.tokens) >= self.chunk_size:
            self.flush()


class ChunkingService:
    """Service that splits document text into chunks."""

    def chunk_text(
        self,
        document_id: str,
        text: str,
        chunk_size: int,
        overlap: int,
        strategy: Optional[ChunkStrategy] = "adaptive",
    ) -> List[Chunk]:
        """Split ``text`` into chunks using the requested strategy.

        Args:
            document_id: Document the chunks belong to
            text: Extracted document text
            chunk_size: Maximum tokens per chunk
            overlap: Tokens repeated at the start of the next chunk
            strategy: "adaptive", "whitespace" or "structured"

        Returns:
            Chunks in document order with consecutive indices
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be a positive integer")
        if overlap < 0 or overlap >= chunk_size:
            raise ValueError("overlap must be non-negative and smaller than chunk_size")

        if strategy == "whitespace":
            chunks = self._chunk_by_whitespace(document_id, text, chunk_size, overlap)
        elif strategy == "structured":
            chunks = self._chunk_structured(document_id, text, chunk_size, overlap)
        elif strategy in (None, "adaptive"):
            chunks = self._chunk_adaptive(document_id, text, chunk_size, overlap)
        else:
            raise ValueError(f"Unknown chunking strategy: {strategy}")

        logger.debug(
            f"Split document {document_id} into {len(chunks)} chunks ({strategy})"
        )
        return chunks

    def _chunk_by_whitespace(
        self, document_id: str, text: str, chunk_size: int, overlap: int
    ) -> List[Chunk]:
        tokens = text.split()
        chunks: List[Chunk] = []
        for start in range(0, len(tokens), chunk_size - overlap):
            end = min(start + chunk_size, len(tokens))
            index = len(chunks)
            chunks.append(
                Chunk(
                    id=f"{document_id}-{index}",
                    text=" ".join(tokens[start:end]),
                    metadata=ChunkMetadata(
                        document_id=document_id,
                        chunk_index=index,
                        start_token=start,
                        end_token=end,
                    ),
                )
            )
            if end == len(tokens):
                break
        return chunks

    def _chunk_adaptive(
        self, document_id: str, text: str, chunk_size: int, overlap: int
    ) -> List[Chunk]:
        # Paragraphs are runs of non-blank lines; markdown headings stand alone
        segments: List[Tuple[str, bool]] = []
        current: List[str] = []
        for raw_line in text.split("\n"):
            line = raw_line.strip()
            if not line:
                if current:
                    segments.append((" ".join(current), False))
                    current = []
                continue
            if _HEADING.match(line):
                if current:
                    segments.append((" ".join(current), False))
                    current = []
                segments.append((line, True))
                continue
            current.append(line)
        if current:
            segments.append((" ".join(current), False))

        buffer = _ChunkBuffer(document_id, chunk_size, overlap)
        for segment, heading in segments:
            tokens = segment.split()
            if heading:
                buffer.flush()
                buffer.extend(tokens)
                while len(buffer) >= chunk_size:
                    buffer.flush()
                continue
            buffer.add_segment(tokens)

        buffer.flush()
        return buffer.chunks

    def _chunk_structured(
        self, document_id: str, text: str, chunk_size: int, overlap: int
    ) -> List[Chunk]:
        buffer = _ChunkBuffer(document_id, chunk_size, overlap)
        for line in text.split("\n"):
            tokens = line.split()
            if tokens:
                buffer.add_segment(tokens)
        buffer.flush()
        return buffer.chunks
