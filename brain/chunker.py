"""
chunker.py
==========
Split one document into ordered, overlapping chunks.

Two strategies, chosen by the caller through ``DocumentKind``:

  prose — paragraphs (blank-line separated) are packed into a chunk while the
          running word count stays within ``chunk_size``. A paragraph larger
          than ``chunk_size`` words is emitted on its own through a sliding
          word window with ``overlap`` shared words.
  code  — sliding window over whole lines; a chunk closes when the next line
          would push it past ``chunk_size`` words, and the following chunk
          re-starts with the last ``code_overlap_lines`` lines. A single line
          longer than ``chunk_size`` words (minified code, data blobs) is
          cut with the prose word window instead, so no chunk exceeds
          ``chunk_size`` words.

Every chunk is an exact slice of the input (``text[start:end]``), so chunk
boundaries never rewrite whitespace and coverage can be checked precisely.
The output depends only on the arguments: chunk indices feed the derived
document id.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import List, Optional, Tuple

from brain.models import Chunk, DocumentKind

DEFAULT_CODE_OVERLAP_LINES = 5

CODE_EXTENSIONS = frozenset({
    "rs", "py", "js", "ts", "jsx", "tsx", "go", "java", "c", "cpp", "h", "hpp", "rb",
    "php", "swift", "kt", "scala", "lua", "r", "zig", "toml", "yaml", "yml", "json", "sql",
    "sh", "bash",
})

_WORD = re.compile(r"\S+")
_PARAGRAPH_BREAK = re.compile(r"\n[ \t\r\f\v]*\n\s*")

Span = Tuple[int, int]


def kind_for_path(file_path: str) -> DocumentKind:
    """Resolve the chunking strategy for a file from its extension."""
    suffix = PurePosixPath(file_path.replace("\\", "/")).suffix.lower().lstrip(".")
    if suffix in CODE_EXTENSIONS:
        return DocumentKind.CODE
    return DocumentKind.PROSE


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def chunk(
    text: str,
    kind: DocumentKind,
    chunk_size: int,
    overlap: int,
    code_overlap_lines: int = DEFAULT_CODE_OVERLAP_LINES,
) -> List[Chunk]:
    """
    Chunk ``text`` according to ``kind``.

    Parameters
    ----------
    chunk_size         : maximum words per chunk (prose and code)
    overlap            : words shared by consecutive prose windows
    code_overlap_lines : lines shared by consecutive code chunks

    Returns
    -------
    Chunks ordered by ``index`` (0, 1, 2 ...). Empty or whitespace-only text
    yields an empty list.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError("overlap must satisfy 0 <= overlap < chunk_size")
    if code_overlap_lines < 0:
        raise ValueError("code_overlap_lines must be non-negative")

    if not text or not text.strip():
        return []

    kind = DocumentKind(kind)
    if kind is DocumentKind.CODE:
        spans = _code_spans(text, chunk_size, overlap, code_overlap_lines)
    else:
        spans = _prose_spans(text, chunk_size, overlap)

    return [
        Chunk(text=text[start:end], index=i, kind=kind, start=start, end=end)
        for i, (start, end) in enumerate(spans)
    ]


# ---------------------------------------------------------------------------
# Prose
# ---------------------------------------------------------------------------

def _paragraphs(text: str) -> List[Span]:
    """Non-blank paragraph spans, trimmed of surrounding whitespace."""
    spans: List[Span] = []
    cursor = 0
    for brk in _PARAGRAPH_BREAK.finditer(text):
        spans.append((cursor, brk.start()))
        cursor = brk.end()
    spans.append((cursor, len(text)))

    trimmed: List[Span] = []
    for start, end in spans:
        segment = text[start:end]
        stripped = segment.strip()
        if not stripped:
            continue
        lead = len(segment) - len(segment.lstrip())
        trimmed.append((start + lead, start + lead + len(stripped)))
    return trimmed


def _word_spans(text: str, start: int, end: int) -> List[Span]:
    return [(m.start(), m.end()) for m in _WORD.finditer(text, start, end)]


def _word_windows(words: List[Span], size: int, overlap: int) -> List[Span]:
    windows: List[Span] = []
    start = 0
    while start < len(words):
        end = min(start + size, len(words))
        windows.append((words[start][0], words[end - 1][1]))
        if end >= len(words):
            break
        start = end - overlap
    return windows


def _prose_spans(text: str, chunk_size: int, overlap: int) -> List[Span]:
    spans: List[Span] = []
    current: Optional[Span] = None
    current_words = 0

    for p_start, p_end in _paragraphs(text):
        words = _word_spans(text, p_start, p_end)

        if len(words) > chunk_size:
            if current is not None:
                spans.append(current)
                current, current_words = None, 0
            spans.extend(_word_windows(words, chunk_size, overlap))
            continue

        if current is not None and current_words + len(words) > chunk_size:
            spans.append(current)
            current, current_words = None, 0

        current = (p_start, p_end) if current is None else (current[0], p_end)
        current_words += len(words)

    if current is not None:
        spans.append(current)
    return spans


# ---------------------------------------------------------------------------
# Code
# ---------------------------------------------------------------------------

def _lines(text: str) -> List[Span]:
    """Line spans excluding their terminators."""
    spans: List[Span] = []
    offset = 0
    for raw in text.splitlines(keepends=True):
        body = raw.rstrip("\r\n")
        spans.append((offset, offset + len(body)))
        offset += len(raw)
    return spans


def _code_spans(text: str, chunk_size: int, word_overlap: int, overlap_lines: int) -> List[Span]:
    lines = _lines(text)
    counts = [len(text[s:e].split()) for s, e in lines]

    spans: List[Span] = []
    window: List[int] = []
    window_words = 0

    def emit() -> None:
        start, end = lines[window[0]][0], lines[window[-1]][1]
        if text[start:end].strip():
            spans.append((start, end))

    for i, words in enumerate(counts):
        if words > chunk_size:
            if window:
                emit()
                window, window_words = [], 0
            start, end = lines[i]
            spans.extend(_word_windows(_word_spans(text, start, end), chunk_size, word_overlap))
            continue

        if window and window_words + words > chunk_size:
            emit()
            keep = min(overlap_lines, len(window) - 1)
            window = window[len(window) - keep:] if keep else []
            window_words = sum(counts[j] for j in window)
        window.append(i)
        window_words += words

    if window:
        emit()
    return spans
