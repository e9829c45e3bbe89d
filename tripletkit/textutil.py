"""Text normalization helpers shared by source implementations."""

from __future__ import annotations

from collections.abc import Iterator

from .types import RecordSection, SectionRole, Sentence


def normalize_inline_whitespace(text: str) -> str:
    """Collapse runs of whitespace into single spaces and trim."""
    parts: list[str] = []
    seen_space = False
    for ch in text:
        if ch.isspace():
            if not seen_space:
                parts.append(" ")
                seen_space = True
        else:
            parts.append(ch)
            seen_space = False
    return "".join(parts).strip()


def sentences(text: str) -> list[Sentence]:
    """Split text into sentences; blank lines always end a sentence."""
    results: list[Sentence] = []
    for block in text.split("\n\n"):
        if not block.strip():
            continue
        normalized = normalize_inline_whitespace(block)
        if normalized:
            results.extend(_block_sentences(normalized))
    return results


def make_section(role: SectionRole, heading: str | None, text: str) -> RecordSection:
    """Build a section with its sentences precomputed."""
    return RecordSection(role=role, heading=heading, text=text, sentences=sentences(text))


def _block_sentences(block: str) -> Iterator[Sentence]:
    buffer: list[str] = []
    for idx, ch in enumerate(block):
        buffer.append(ch)
        if _is_sentence_boundary(block, idx):
            trimmed = "".join(buffer).strip()
            if trimmed:
                yield trimmed
            buffer.clear()
    trailing = "".join(buffer).strip()
    if trailing:
        yield trailing


def _is_sentence_boundary(chars: str, idx: int) -> bool:
    ch = chars[idx]
    if ch == ".":
        return _is_dot_boundary(chars, idx)
    return ch in "!?"


def _is_dot_boundary(chars: str, idx: int) -> bool:
    if _is_between(chars, idx, _is_digit) or _is_between(chars, idx, _is_ticker_char):
        return False
    return not (idx + 1 < len(chars) and chars[idx + 1] == ".")


def _is_between(chars: str, idx: int, predicate) -> bool:
    return 0 < idx < len(chars) - 1 and predicate(chars[idx - 1]) and predicate(chars[idx + 1])


def _is_digit(ch: str) -> bool:
    return "0" <= ch <= "9"


def _is_ticker_char(ch: str) -> bool:
    return "A" <= ch <= "Z" or _is_digit(ch)