"""Tokenizer and text splitter for document indexing.

The splitter cuts a document into token-bounded chunks and records where
each chunk sits in the source text, so a chunk can always be traced back
to ``text[start_pos:end_pos]``.

Classes:
    Tokenizer: Protocol for token encoders.
    SimpleTokenizer: Regex word/punctuation tokenizer (default).
    TextSplitterConfig: Splitter parameters.
    TextSplitter: Recursive separator splitter with token overlap.

Chunking Strategy:
    - Split on the most significant separator for the document type
      (headings, blank lines, lines, sentences, words) until every piece
      fits in ``chunk_size`` tokens; fall back to fixed-width cuts.
    - Greedily merge neighbouring pieces up to ``chunk_size`` tokens.
    - Start each new chunk with up to ``chunk_overlap`` tokens of trailing
      pieces from the previous chunk.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from doc_vector_index.logging_config import get_logger
from doc_vector_index.models import TextChunk
from doc_vector_index.vector.errors import ChunkingError

logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 512  # tokens
DEFAULT_CHUNK_OVERLAP = 0  # tokens
MAX_TOKEN_CHARS = 4

DEFAULT_SEPARATORS = ["\n\n", "\n", ". ", " ", ""]

SEPARATORS_BY_DOC_TYPE: dict[str, list[str]] = {
    "markdown": ["\n## ", "\n### ", "\n#### ", "\n```", "\n\n", "\n", ". ", " ", ""],
    "python": ["\nclass ", "\ndef ", "\n    def ", "\n\n", "\n", " ", ""],
    "javascript": [
        "\nfunction ",
        "\nclass ",
        "\nexport ",
        "\nconst ",
        "\n\n",
        "\n",
        " ",
        "",
    ],
    "html": ["<h1", "<h2", "<h3", "<div", "<p", "<br", "\n\n", "\n", " ", ""],
}

DOC_TYPE_ALIASES = {
    "md": "markdown",
    "markdown": "markdown",
    "py": "python",
    "python": "python",
    "js": "javascript",
    "jsx": "javascript",
    "ts": "javascript",
    "tsx": "javascript",
    "javascript": "javascript",
    "typescript": "javascript",
    "htm": "html",
    "html": "html",
}


@runtime_checkable
class Tokenizer(Protocol):
    """Encodes text into tokens; only the token count matters to the index."""

    def encode(self, text: str) -> list[Any]: ...

    def decode(self, tokens: list[Any]) -> str: ...


class SimpleTokenizer:
    """Regex tokenizer approximating sub-word tokenizers.

    Words and individual punctuation marks are tokens; words longer than
    four characters are cut into four-character pieces, which tracks BPE
    token counts closely enough for chunk budgeting.

    Example:
        >>> SimpleTokenizer().encode("Hello, information!")
        ['Hell', 'o', ',', 'info', 'rmat', 'ion', '!']
    """

    TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]")

    def encode(self, text: str) -> list[str]:
        tokens: list[str] = []
        for match in self.TOKEN_PATTERN.finditer(text):
            piece = match.group(0)
            if len(piece) <= MAX_TOKEN_CHARS:
                tokens.append(piece)
            else:
                tokens.extend(
                    piece[i : i + MAX_TOKEN_CHARS] for i in range(0, len(piece), MAX_TOKEN_CHARS)
                )
        return tokens

    def decode(self, tokens: list[Any]) -> str:
        return " ".join(str(token) for token in tokens)


@dataclass
class TextSplitterConfig:
    """Text splitter parameters.

    Attributes:
        chunk_size: Maximum tokens per chunk (before overlap is added back).
        chunk_overlap: Tokens repeated from the end of the previous chunk.
        keep_separators: Keep separators at the start of the following piece.
        doc_type: File extension or language name selecting separators.
        tokenizer: Tokenizer used for counting; SimpleTokenizer if None.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP
    keep_separators: bool = True
    doc_type: str | None = None
    tokenizer: Tokenizer | None = field(default=None, repr=False)


class TextSplitter:
    """Split text into overlapping, token-bounded chunks.

    Example:
        >>> splitter = TextSplitter(TextSplitterConfig(chunk_size=128, doc_type="md"))
        >>> chunks = splitter.split(text)
        >>> text[chunks[0].start_pos:chunks[0].end_pos] == chunks[0].text
        True
    """

    def __init__(self, config: TextSplitterConfig | None = None) -> None:
        """Initialize and validate the splitter configuration.

        Raises:
            ChunkingError: If chunk_size is not positive or overlap is out of range.
        """
        self.config = config or TextSplitterConfig()
        if self.config.chunk_size < 1:
            raise ChunkingError("chunk_size must be at least 1")
        if self.config.chunk_overlap < 0:
            raise ChunkingError("chunk_overlap cannot be negative")
        if self.config.chunk_overlap >= self.config.chunk_size:
            raise ChunkingError("chunk_overlap must be less than chunk_size")
        self.tokenizer: Tokenizer = self.config.tokenizer or SimpleTokenizer()
        self.separators = self._separators_for(self.config.doc_type)

    @staticmethod
    def _separators_for(doc_type: str | None) -> list[str]:
        if not doc_type:
            return DEFAULT_SEPARATORS
        key = DOC_TYPE_ALIASES.get(doc_type.lower().lstrip("."))
        return SEPARATORS_BY_DOC_TYPE.get(key, DEFAULT_SEPARATORS) if key else DEFAULT_SEPARATORS

    def _count(self, text: str) -> int:
        return len(self.tokenizer.encode(text))

    def split(self, text: str) -> list[TextChunk]:
        """Split ``text`` into chunks.

        Returns:
            Chunks in document order; whitespace-only chunks are dropped.
        """
        if not text or not text.strip():
            return []

        spans = self._split_spans(text, 0, len(text), self.separators)
        chunks = self._merge_spans(text, spans)

        logger.debug(
            "Split %d chars into %d chunks (chunk_size=%d, overlap=%d, doc_type=%s)",
            len(text),
            len(chunks),
            self.config.chunk_size,
            self.config.chunk_overlap,
            self.config.doc_type,
        )
        return chunks

    def _split_spans(
        self, text: str, start: int, end: int, separators: list[str]
    ) -> list[tuple[int, int]]:
        """Recursively cut ``text[start:end]`` into spans that fit chunk_size."""
        if self._count(text[start:end]) <= self.config.chunk_size:
            return [(start, end)]

        for position, separator in enumerate(separators):
            if separator == "":
                break
            if text.find(separator, start, end) < 0:
                continue

            spans: list[tuple[int, int]] = []
            for piece_start, piece_end in self._cut_on(text, start, end, separator):
                if piece_end <= piece_start:
                    continue
                if self._count(text[piece_start:piece_end]) <= self.config.chunk_size:
                    spans.append((piece_start, piece_end))
                else:
                    spans.extend(
                        self._split_spans(text, piece_start, piece_end, separators[position + 1 :])
                    )
            return spans

        return self._hard_split(text, start, end)

    def _cut_on(self, text: str, start: int, end: int, separator: str) -> list[tuple[int, int]]:
        pieces: list[tuple[int, int]] = []
        piece_start = start
        found = text.find(separator, start, end)
        while found >= 0:
            pieces.append((piece_start, found))
            # kept separators lead the following piece
            piece_start = found if self.config.keep_separators else found + len(separator)
            found = text.find(separator, found + len(separator), end)
        pieces.append((piece_start, end))
        return pieces

    def _hard_split(self, text: str, start: int, end: int) -> list[tuple[int, int]]:
        """Fixed-width cuts for text with no usable separator."""
        spans: list[tuple[int, int]] = []
        position = start
        while position < end:
            width = min(end - position, self.config.chunk_size * MAX_TOKEN_CHARS)
            while width > 1 and self._count(text[position : position + width]) > self.config.chunk_size:
                width //= 2
            spans.append((position, position + width))
            position += width
        return spans

    def _merge_spans(self, text: str, spans: list[tuple[int, int]]) -> list[TextChunk]:
        counts = [self._count(text[start:end]) for start, end in spans]
        chunk_size = self.config.chunk_size
        chunks: list[TextChunk] = []
        current: list[int] = []
        total = 0

        for position, count in enumerate(counts):
            if current and total + count > chunk_size:
                self._emit(text, spans, current, chunks)

                carry: list[int] = []
                carry_total = 0
                for previous in reversed(current):
                    if carry_total + counts[previous] > self.config.chunk_overlap:
                        break
                    carry.insert(0, previous)
                    carry_total += counts[previous]
                while carry and carry_total + count > chunk_size:
                    carry_total -= counts[carry.pop(0)]

                current = carry
                total = carry_total

            current.append(position)
            total += count

        if current:
            self._emit(text, spans, current, chunks)
        return chunks

    def _emit(
        self,
        text: str,
        spans: list[tuple[int, int]],
        members: list[int],
        chunks: list[TextChunk],
    ) -> None:
        start_pos = spans[members[0]][0]
        end_pos = spans[members[-1]][1]
        chunk_text = text[start_pos:end_pos]
        if not chunk_text.strip():
            return
        chunks.append(
            TextChunk(
                text=chunk_text,
                tokens=self.tokenizer.encode(chunk_text),
                start_pos=start_pos,
                end_pos=end_pos,
            )
        )
