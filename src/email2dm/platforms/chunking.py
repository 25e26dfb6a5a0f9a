"""
Message splitting for platforms with a per-message length limit.

Lengths are measured in Python code points.
"""

import re

from email2dm.platforms.models import PlatformCapabilities

# How far back from the limit to look for a space when wrapping a long line.
WRAP_WINDOW = 50

# Escaped character references such as &amp; or &#39;, never split by a hard cut.
_ENTITY_RE = re.compile(r"&(?:[A-Za-z]+|#[0-9]+|#x[0-9A-Fa-f]+);")
_MAX_ENTITY = 10


def wrap_long_line(line: str, width: int) -> list[str]:
    """
    Break a single line into pieces of at most ``width`` characters.

    A break happens at a space found within the last WRAP_WINDOW
    characters before the limit; the space itself is consumed. Without
    such a space the line is cut hard at ``width``, moved back to keep an
    escaped entity such as ``&amp;`` whole.

    Args:
        line: Line without newlines.
        width: Maximum piece length.

    Returns:
        The pieces, in order.
    """
    if width <= 0:
        raise ValueError("width must be positive")

    pieces: list[str] = []
    while len(line) > width:
        cut = line.rfind(" ", max(1, width - WRAP_WINDOW + 1), width + 1)
        if cut <= 0:
            cut = _hard_cut(line, width)
            pieces.append(line[:cut])
            line = line[cut:]
        else:
            pieces.append(line[:cut])
            line = line[cut + 1 :]
    pieces.append(line)
    return pieces


def _hard_cut(line: str, width: int) -> int:
    """Cut position at or before width that does not fall inside an entity."""
    start = line.rfind("&", max(1, width - _MAX_ENTITY + 1), width)
    if start > 0:
        match = _ENTITY_RE.match(line, start)
        if match and match.end() > width:
            return start
    return width


def split_message(text: str, limit: int) -> list[str]:
    """
    Pack lines greedily into the fewest chunks of at most ``limit`` chars.

    Lines are never split unless a single line exceeds the limit, so
    joining the result with newlines reproduces the input whenever no
    line was wrapped.

    Args:
        text: Message text.
        limit: Maximum chunk length.

    Returns:
        Chunks, in order.
    """
    if limit <= 0:
        raise ValueError("limit must be positive")
    if len(text) <= limit:
        return [text]

    chunks: list[str] = []
    current: list[str] = []
    size = 0

    for line in text.split("\n"):
        for piece in wrap_long_line(line, limit) if len(line) > limit else [line]:
            if current and size + 1 + len(piece) > limit:
                chunks.append("\n".join(current))
                current, size = [], 0
            size += len(piece) + (1 if current else 0)
            current.append(piece)

    if current:
        chunks.append("\n".join(current))
    return chunks


def plan_chunks(text: str, capabilities: PlatformCapabilities) -> list[str]:
    """
    Split text so that every chunk still fits once its part marker is added.

    The marker length is reserved up front for every chunk, and the split
    is redone if the chunk count outgrows the reservation (e.g. part 10).
    """
    limit = capabilities.max_message_length
    reserve = len(capabilities.marker_for(1))
    while True:
        available = limit - reserve
        if available <= 0:
            raise ValueError(f"message limit {limit} leaves no room for part markers")
        chunks = split_message(text, available)
        needed = len(capabilities.marker_for(len(chunks)))
        if needed <= reserve:
            return chunks
        reserve = needed
