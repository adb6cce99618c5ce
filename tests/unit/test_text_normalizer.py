"""Unit tests for text normalization utilities."""

from __future__ import annotations

import pytest

from setlist_sync.utils.text_normalizer import (
    clean_song_title,
    fuzzy_match,
    is_likely_live_album,
    is_likely_live_title,
    is_remix_title,
    normalize_display_name,
    normalize_key,
    similarity,
)


# ======================================================================
# normalize_key
# ======================================================================


class TestNormalizeKey:
    def test_folds_accents(self) -> None:
        assert normalize_key("Beyoncé") == "beyonce"

    def test_punctuation_and_case_variants_share_a_key(self) -> None:
        assert normalize_key("Guns N' Roses") == normalize_key("GUNS-N-ROSES") == "gunsnroses"

    def test_strips_whitespace(self) -> None:
        assert normalize_key("  The Black Keys! ") == "theblackkeys"

    @pytest.mark.parametrize("value", [None, "", "   ", "!!!"])
    def test_empty_inputs_give_empty_key(self, value: str | None) -> None:
        assert normalize_key(value) == ""


class TestNormalizeDisplayName:
    def test_collapses_inner_whitespace_and_keeps_case(self) -> None:
        assert normalize_display_name("  The   Weeknd \n") == "The Weeknd"


# ======================================================================
# Fuzzy matching
# ======================================================================


class TestSimilarity:
    def test_word_order_is_ignored(self) -> None:
        assert similarity("Carl Cox", "Cox Carl") == 100.0

    def test_empty_side_scores_zero(self) -> None:
        assert similarity("", "Drake") == 0.0

    def test_different_names_score_low(self) -> None:
        assert similarity("Drake", "Metallica") < 50.0


class TestFuzzyMatch:
    def test_exact_candidate_wins(self) -> None:
        result = fuzzy_match("Drake", ["Drake Bell", "Drake"])
        assert result == ("Drake", 100.0)

    def test_case_insensitive(self) -> None:
        result = fuzzy_match("drake", ["DRAKE"])
        assert result is not None
        assert result[0] == "DRAKE"

    def test_below_threshold_returns_none(self) -> None:
        assert fuzzy_match("Drake", ["Metallica"], threshold=90.0) is None

    def test_no_candidates_returns_none(self) -> None:
        assert fuzzy_match("Drake", []) is None


# ======================================================================
# Title hygiene
# ======================================================================


class TestCleanSongTitle:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Paint It Black - Remastered 2009", "Paint It Black"),
            ("Yesterday (Remastered 2009)", "Yesterday"),
            ("Hey Jude - 2015 Remaster", "Hey Jude"),
            ("Wonderwall - Radio Edit", "Wonderwall"),
            ("Hotline Bling", "Hotline Bling"),
        ],
    )
    def test_strips_decorations(self, raw: str, expected: str) -> None:
        assert clean_song_title(raw) == expected


class TestLiveAndRemixDetection:
    @pytest.mark.parametrize(
        "title",
        ["Song (Live at Wembley)", "Song - Live", "Song [Live]", "Song - Unplugged"],
    )
    def test_live_titles(self, title: str) -> None:
        assert is_likely_live_title(title) is True

    def test_live_word_in_a_studio_title_is_not_live(self) -> None:
        assert is_likely_live_title("Live Forever") is False

    def test_live_album_names(self) -> None:
        assert is_likely_live_album("Live at Leeds") is True
        assert is_likely_live_album("MTV Unplugged in New York") is True

    def test_alive_is_not_a_live_album(self) -> None:
        assert is_likely_live_album("Alive") is False

    def test_remix_titles(self) -> None:
        assert is_remix_title("One More Time - Remix") is True
        assert is_remix_title("Firestarter (Remixed)") is True
        assert is_remix_title("One More Time") is False
