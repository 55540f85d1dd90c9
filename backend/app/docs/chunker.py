"""Document chunker - overlapping character windows with page/section hints."""

import re
from dataclasses import dataclass

_PAGE_MARKER = re.compile(r"\bpage\s+(\d+)\b", re.IGNORECASE)
_BARE_PAGE_LINE = re.compile(r"^[ \t]*(\d+)[ \t]*$", re.MULTILINE)
_CAPS_HEADING = re.compile(r"^[ \t]*([A-Z][A-Z0-9 \t/&-]{5,49})[ \t]*$")
_NUMBERED_HEADING = re.compile(r"^[ \t]*\d+(?:\.\d+)*\.?[ \t]+([A-Z][A-Za-z0-9 \t/&-]{5,50})[ \t]*$")

# Lines inspected for a section heading
_HEADING_SCAN_LINES = 5

# Chunks per placeholder page when no page marker is found
_CHUNKS_PER_PAGE_GUESS = 5


@dataclass(frozen=True)
class TextChunk:
    """Chunk produced by the chunker, before embedding."""

    index: int
    content: str
    page_hint: int | None
    section_hint: str | None


def chunk_text(
    text: str,
    chunk_size: int = 1000,
    overlap: int = 200,
) -> list[TextChunk]:
    """Split extracted text into overlapping, bounded windows.

    Pure function with no I/O or randomness.

    Args:
        text: Extracted document text
        chunk_size: Maximum characters per window
        overlap: Characters shared between consecutive windows

    Returns:
        Ordered chunks with contiguous 0-based indices. Content is the window
        stripped of surrounding whitespace; whitespace-only windows are skipped.

    Raises:
        ValueError: Unless chunk_size > overlap >= 0

    Strategy:
        1. Take a window of chunk_size characters from start
        2. Unless the window reaches the end of the text, cut it after the last
           "." or newline when that break lies past the window midpoint
        3. Next window starts at window_end - overlap
        4. Stop at the end of the text, or if the next start would not advance
    """
    if overlap < 0 or chunk_size <= overlap:
        raise ValueError(f"expected chunk_size > overlap >= 0, got {chunk_size=} {overlap=}")

    chunks: list[TextChunk] = []
    text_len = len(text)
    start = 0

    while start < text_len:
        end = min(start + chunk_size, text_len)

        if end < text_len:
            end = _snap_to_break(text, start, end, chunk_size, overlap)

        content = text[start:end].strip()
        if content:
            index = len(chunks)
            chunks.append(
                TextChunk(
                    index=index,
                    content=content,
                    page_hint=extract_page_hint(content, index),
                    section_hint=extract_section_hint(content),
                )
            )

        if end >= text_len:
            break

        next_start = end - overlap
        if next_start <= start:
            break
        start = next_start

    return chunks


def _snap_to_break(text: str, start: int, end: int, chunk_size: int, overlap: int) -> int:
    """Move a window end back to a sentence or line break past the midpoint."""
    window = text[start:end]
    break_point = max(window.rfind("."), window.rfind("\n"))

    if break_point <= chunk_size * 0.5:
        return end

    snapped = start + break_point + 1
    # A snapped window must still move the next start forward
    if snapped - overlap <= start:
        return end
    return snapped


def extract_page_hint(content: str, index: int) -> int:
    """Best-effort page number for a chunk.

    Looks for an explicit "page N" marker, then a bare integer on its own line
    (typical page footer). Falls back to a deterministic placeholder derived
    from the chunk index. Advisory only.
    """
    match = _PAGE_MARKER.search(content) or _BARE_PAGE_LINE.search(content)
    if match:
        return int(match.group(1))
    return index // _CHUNKS_PER_PAGE_GUESS + 1


def extract_section_hint(content: str) -> str | None:
    """Best-effort section title: an all-caps or numbered heading near the top."""
    for line in content.splitlines()[:_HEADING_SCAN_LINES]:
        match = _CAPS_HEADING.match(line) or _NUMBERED_HEADING.match(line)
        if match:
            heading = match.group(1).strip()
            if len(heading) >= 6:
                return heading
    return None
