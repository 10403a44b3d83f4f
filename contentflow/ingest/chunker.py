from dataclasses import dataclass
from typing import Iterator, List, Sequence

from contentflow.core.config import ChunkingConfig


@dataclass
class Chunk:
    """A bounded, ordered segment of normalized content.
    Why available: Unit of embedding; index drives the vector id "{content_id}-chunk-{index}" so re-processing overwrites instead of duplicating."""

    index: int
    text: str


def _split_keep_separator(text: str, separator: str) -> List[str]:
    """Split on separator, leaving the separator at the end of the preceding piece so "".join(pieces) == text."""
    parts = text.split(separator)
    pieces = [p + separator for p in parts[:-1]] + [parts[-1]]
    return [p for p in pieces if p]


def _split_pieces(text: str, budget: int, separators: Sequence[str]) -> List[str]:
    """Recursively break text into pieces of at most budget characters, trying separators in priority order. "" means cut anywhere. A piece no separator can shrink is returned as is."""
    if len(text) <= budget:
        return [text]

    for i, sep in enumerate(separators):
        if sep == "":
            return [text[j : j + budget] for j in range(0, len(text), budget)]
        if sep not in text:
            continue

        remaining = separators[i + 1 :]
        out: List[str] = []
        for piece in _split_keep_separator(text, sep):
            if len(piece) <= budget:
                out.append(piece)
            else:
                out.extend(_split_pieces(piece, budget, remaining))
        return out

    return [text]


def _merge_pieces(pieces: Sequence[str], budget: int) -> List[str]:
    """Greedily pack consecutive pieces into bodies of at most budget characters."""
    bodies: List[str] = []
    current = ""
    for piece in pieces:
        if current and len(current) + len(piece) > budget:
            bodies.append(current)
            current = piece
        else:
            current += piece
    if current:
        bodies.append(current)
    return bodies


def iter_chunks(
    text: str,
    *,
    chunk_size: int,
    chunk_overlap: int,
    separators: Sequence[str],
) -> Iterator[str]:
    """Yield chunk strings in order. Every chunk after the first starts with the last chunk_overlap characters of the previous one (or all of it, if shorter), so dropping that prefix and concatenating reproduces text exactly.
    Why available: Deterministic splitter for the embedding pipeline; same input and parameters always give the same chunks."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    if chunk_overlap < 0 or chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be >= 0 and < chunk_size")
    if not text:
        return

    budget = chunk_size - chunk_overlap
    prev = ""
    for body in _merge_pieces(_split_pieces(text, budget, list(separators)), budget):
        chunk = (prev[-chunk_overlap:] + body) if (prev and chunk_overlap) else body
        yield chunk
        prev = chunk


def split_text(
    text: str,
    chunk_size: int,
    chunk_overlap: int,
    separators: Sequence[str],
) -> List[str]:
    """Non-streaming wrapper over iter_chunks. Empty text gives an empty list."""
    return list(
        iter_chunks(
            text,
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            separators=separators,
        )
    )


def chunk_content(text: str, config: ChunkingConfig) -> List[Chunk]:
    """Split text with the configured size/overlap/separators and number the pieces from 0."""
    return [
        Chunk(index=i, text=t)
        for i, t in enumerate(
            iter_chunks(
                text,
                chunk_size=config.chunk_size,
                chunk_overlap=config.chunk_overlap,
                separators=config.separators,
            )
        )
    ]
