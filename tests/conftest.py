"""
Pytest fixtures for winnow tests.

Provides token counters and a piece factory with fixed token costs.
"""

import pytest
from pathlib import Path

# Add project root to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from winnow.schema import ContentPiece
from winnow.tokenizer import ApproximateCounter


class ByteCounter:
    """One token per UTF-8 byte, one token of overhead."""

    def count(self, text: str) -> int:
        return len(text.encode("utf-8"))

    def message_overhead(self) -> int:
        return 1


def _make_piece(**attrs) -> ContentPiece:
    """Piece with a precomputed token_count (10 unless given)."""
    defaults = {
        "role": "user",
        "content": "x",
        "priority": 500,
        "sequence": 0,
        "token_count": 10,
    }
    defaults.update(attrs)
    return ContentPiece(**defaults)


@pytest.fixture
def make_piece():
    """Factory for pieces with fixed token costs."""
    return _make_piece


@pytest.fixture
def counter():
    """Default approximate counter (4 bytes/token, overhead 4)."""
    return ApproximateCounter()


@pytest.fixture
def byte_counter():
    """Counter whose ratio differs from the truncation heuristic."""
    return ByteCounter()
