"""
Tests for budget-aware truncation.
"""

import pytest

from winnow.schema import OverflowPolicy
from winnow.truncation import (
    MIDDLE_MARKER,
    byte_size,
    clusters,
    fit_content,
    truncate_end,
    truncate_middle,
    truncate_piece,
    truncate_start,
)


# -----------------------------------------------------------------------------
# Character Boundary Tests
# -----------------------------------------------------------------------------

class TestClusters:
    """Tests for splitting text at safe cut points."""

    def test_plain_ascii(self):
        assert clusters("abc") == ["a", "b", "c"]

    def test_empty(self):
        assert clusters("") == []

    def test_combining_mark_stays_with_base(self):
        text = "e\u0301x"
        assert clusters(text) == ["e\u0301", "x"]

    def test_zwj_sequence_is_one_cluster(self):
        family = "\U0001F468\u200d\U0001F469"
        assert clusters(family + "a") == [family, "a"]

    def test_skin_tone_modifier(self):
        wave = "\U0001F44B\U0001F3FD"
        assert clusters(wave) == [wave]

    def test_flags_are_regional_indicator_pairs(self):
        us = "\U0001F1FA\U0001F1F8"
        jp = "\U0001F1EF\U0001F1F5"
        assert clusters(us + jp) == [us, jp]

    def test_conjoining_jamo(self):
        # L + V + T spell one Hangul syllable
        syllable = "\u1100\u1161\u11a8"
        assert clusters(syllable + "a") == [syllable, "a"]

    def test_spacing_vowel_sign(self):
        ki = "\u0915\u093f"
        assert clusters(ki + ki) == [ki, ki]


class TestTruncateEnd:
    """Tests for prefix truncation."""

    def test_keeps_prefix(self):
        assert truncate_end("hello world", 5) == "hello"

    def test_fits_unchanged(self):
        assert truncate_end("hello", 100) == "hello"

    def test_zero_bytes(self):
        assert truncate_end("hello", 0) == ""

    def test_never_splits_multibyte(self):
        # "é" is 2 bytes; 2 bytes only fits "h"
        assert truncate_end("héllo", 2) == "h"
        assert truncate_end("héllo", 3) == "hé"

    def test_never_splits_combining_sequence(self):
        text = "e\u0301" * 3  # each cluster is 3 bytes
        assert truncate_end(text, 4) == "e\u0301"
        assert truncate_end(text, 2) == ""

    def test_never_splits_flag(self):
        us = "\U0001F1FA\U0001F1F8"
        jp = "\U0001F1EF\U0001F1F5"
        # Each flag is 8 bytes
        assert truncate_end(us + jp, 12) == us
        assert truncate_end(us + jp, 16) == us + jp

    def test_never_splits_jamo_syllable(self):
        syllable = "\u1100\u1161\u11a8"  # 9 bytes
        assert truncate_end(syllable, 6) == ""
        assert truncate_end(syllable + syllable, 9) == syllable

    def test_never_detaches_vowel_sign(self):
        ki = "\u0915\u093f"  # 6 bytes
        assert truncate_end(ki + ki, 9) == ki
        assert truncate_start(ki + ki, 3) == ""


class TestTruncateStart:
    """Tests for suffix truncation."""

    def test_keeps_suffix(self):
        assert truncate_start("hello world", 5) == "world"

    def test_never_splits_multibyte(self):
        assert truncate_start("abcé", 2) == "é"
        assert truncate_start("abcé", 1) == ""


class TestTruncateMiddle:
    """Tests for middle truncation."""

    def test_fits_unchanged(self):
        assert truncate_middle("short", 100) == "short"

    def test_keeps_both_ends(self):
        text = "a" * 10 + "z" * 10
        # 13 bytes - 7 marker bytes = 6, split 3 / 3
        assert truncate_middle(text, 13) == "aaa" + MIDDLE_MARKER + "zzz"

    def test_marker_only_when_no_room(self):
        assert truncate_middle("a" * 50, 3) == MIDDLE_MARKER

    def test_custom_marker(self):
        assert truncate_middle("abcdefghij", 5, marker="~") == "ab~ij"


# -----------------------------------------------------------------------------
# Fit Tests
# -----------------------------------------------------------------------------

class TestFitContent:
    """Tests for the measure-and-shrink loop."""

    def test_exact_for_default_ratio(self, counter):
        result = fit_content("x" * 200, 16, counter, OverflowPolicy.TRUNCATE_END)
        assert result == "x" * 64
        assert counter.count(result) == 16

    def test_zero_available(self, counter):
        assert fit_content("x" * 200, 0, counter, OverflowPolicy.TRUNCATE_END) == ""

    def test_corrects_for_denser_counter(self, byte_counter):
        # Heuristic guesses 80 bytes; the counter charges 1 token per byte
        result = fit_content("b" * 100, 20, byte_counter, OverflowPolicy.TRUNCATE_END)
        assert result == "b" * 20

    def test_middle_corrects_for_denser_counter(self, byte_counter):
        result = fit_content("a" * 50, 10, byte_counter, OverflowPolicy.TRUNCATE_MIDDLE)
        assert byte_counter.count(result) <= 10
        assert MIDDLE_MARKER in result

    def test_middle_gives_up_to_empty(self, byte_counter):
        # The marker alone costs 7 tokens here
        result = fit_content("a" * 50, 5, byte_counter, OverflowPolicy.TRUNCATE_MIDDLE)
        assert result == ""

    def test_multibyte_content_stays_valid(self, byte_counter):
        result = fit_content("日本語" * 20, 10, byte_counter, OverflowPolicy.TRUNCATE_END)
        assert byte_size(result) <= 10
        assert result == "日本語"  # 9 bytes

    def test_fail_policy_rejected(self, counter):
        with pytest.raises(ValueError):
            fit_content("x", 1, counter, OverflowPolicy.FAIL)


class TestTruncatePiece:
    """Tests for truncating a whole piece."""

    def test_result_fits_remaining(self, counter, make_piece):
        piece = make_piece(content="x" * 200, token_count=54, overflow="truncate_end")
        truncated = truncate_piece(piece, 20, counter)
        assert truncated.token_count == counter.count(truncated.content) + 4
        assert truncated.token_count <= 20
        assert truncated.content == "x" * 64

    def test_original_untouched(self, counter, make_piece):
        piece = make_piece(content="x" * 200, token_count=54, overflow="truncate_end")
        truncate_piece(piece, 20, counter)
        assert piece.content == "x" * 200
        assert piece.token_count == 54

    def test_only_overhead_left(self, counter, make_piece):
        piece = make_piece(content="x" * 200, token_count=54, overflow="truncate_middle")
        truncated = truncate_piece(piece, 4, counter)
        assert truncated.content == ""
        assert truncated.token_count == 4
