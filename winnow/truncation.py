"""
Content truncation that respects a token budget.

Lengths are measured in UTF-8 bytes and cuts only happen between
grapheme clusters, so combining marks, joiner sequences, flags and
conjoining jamo always stay whole. The byte budget starts from the
bytes-per-token heuristic and is corrected against the real counter
until the result fits, so counters with any bytes/token ratio work.
"""

import logging

import regex

from .schema import ContentPiece, OverflowPolicy
from .tokenizer import BYTES_PER_TOKEN, TokenCounter

logger = logging.getLogger(__name__)

MIDDLE_MARKER = " [...] "

# Extended grapheme cluster (UAX #29)
GRAPHEME = regex.compile(r"\X")


def clusters(text: str) -> list[str]:
    """Split text into grapheme clusters that must not be cut apart."""
    return GRAPHEME.findall(text)


def byte_size(text: str) -> int:
    return len(text.encode("utf-8"))


def truncate_end(text: str, max_bytes: int) -> str:
    """Longest prefix of text that is at most max_bytes long."""
    used = 0
    kept: list[str] = []
    for cluster in clusters(text):
        size = byte_size(cluster)
        if used + size > max_bytes:
            break
        kept.append(cluster)
        used += size
    return "".join(kept)


def truncate_start(text: str, max_bytes: int) -> str:
    """Longest suffix of text that is at most max_bytes long."""
    used = 0
    kept: list[str] = []
    for cluster in reversed(clusters(text)):
        size = byte_size(cluster)
        if used + size > max_bytes:
            break
        kept.append(cluster)
        used += size
    return "".join(reversed(kept))


def truncate_middle(text: str, max_bytes: int, marker: str = MIDDLE_MARKER) -> str:
    """
    Keep the start and end of text joined by marker.

    Text that already fits is returned unchanged. The bytes left after the
    marker are split evenly between prefix and suffix.
    """
    if byte_size(text) <= max_bytes:
        return text
    usable = max(max_bytes - byte_size(marker), 0)
    half = usable // 2
    return truncate_end(text, half) + marker + truncate_start(text, half)


def fit_content(
    text: str,
    available_tokens: int,
    counter: TokenCounter,
    policy: OverflowPolicy,
    bytes_per_token: int = BYTES_PER_TOKEN,
) -> str:
    """
    Shrink text until counter.count(result) <= available_tokens.

    Args:
        text: Original content
        available_tokens: Tokens left for content (overhead already removed)
        counter: Counter used to verify each candidate
        policy: TRUNCATE_END or TRUNCATE_MIDDLE
        bytes_per_token: Heuristic used for the first byte estimate

    Returns:
        The truncated content, possibly empty
    """
    if policy == OverflowPolicy.TRUNCATE_MIDDLE:
        shrink = truncate_middle
    elif policy == OverflowPolicy.TRUNCATE_END:
        shrink = truncate_end
    else:
        raise ValueError(f"{policy!r} does not truncate")

    max_bytes = available_tokens * bytes_per_token
    attempts = 0
    while max_bytes > 0:
        attempts += 1
        candidate = shrink(text, max_bytes)
        tokens = counter.count(candidate)
        if tokens <= available_tokens or not candidate:
            logger.debug(
                f"Truncated {byte_size(text)} -> {byte_size(candidate)} bytes "
                f"({tokens}/{available_tokens} tokens, {attempts} attempts)"
            )
            return candidate
        # Estimate was too generous for this counter: scale by the observed
        # ratio and always make progress.
        max_bytes = min(
            max_bytes * available_tokens // tokens,
            byte_size(candidate) - 1,
            max_bytes - 1,
        )
    return ""


def truncate_piece(
    piece: ContentPiece,
    remaining: int,
    counter: TokenCounter,
    bytes_per_token: int = BYTES_PER_TOKEN,
) -> ContentPiece:
    """
    Return a copy of piece whose token_count fits in remaining.

    The caller must ensure remaining covers the message overhead.
    """
    overhead = counter.message_overhead()
    content = fit_content(
        piece.content,
        remaining - overhead,
        counter,
        piece.overflow,
        bytes_per_token=bytes_per_token,
    )
    return piece.with_overrides(
        content=content,
        token_count=counter.count(content) + overhead,
    )
