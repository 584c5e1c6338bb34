"""Tests for label matching strategies."""

from __future__ import annotations

import pytest

from extragrid.exceptions import ValidationError
from extragrid.matchers import (
    ExactMatcher,
    FuzzyMatcher,
    LabelMode,
    RegexMatcher,
    levenshtein,
    make_matcher,
    normalize_label,
    similarity,
)


class TestLevenshtein:
    """Tests for edit distance."""

    @pytest.mark.parametrize(
        ("a", "b", "distance"),
        [
            ("", "", 0),
            ("abc", "", 3),
            ("kitten", "sitting", 3),
            ("flaw", "lawn", 2),
            ("entity", "entity", 0),
        ],
    )
    def test_distance(self, a: str, b: str, distance: int) -> None:
        assert levenshtein(a, b) == distance
        assert levenshtein(b, a) == distance


class TestSimilarity:
    """Tests for normalized similarity."""

    @pytest.mark.parametrize("text", ["", "a", "Entity Name", "Ünïcode"])
    def test_reflexive(self, text: str) -> None:
        assert similarity(text, text) == 1.0

    @pytest.mark.parametrize(
        ("a", "b"), [("entity", "entty"), ("name", "names"), ("abc", "xyz"), ("", "abc")]
    )
    def test_symmetric(self, a: str, b: str) -> None:
        assert similarity(a, b) == similarity(b, a)

    def test_value(self) -> None:
        assert similarity("entity name", "entity nam") == pytest.approx(1 - 1 / 11)
        assert similarity("abc", "xyz") == 0.0
        assert similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)


class TestNormalizeLabel:
    def test_strips_trailing_colons_and_whitespace(self) -> None:
        assert normalize_label("  Entity   Name: ") == "Entity Name"
        assert normalize_label("Total::") == "Total"

    def test_keeps_colons_when_asked(self) -> None:
        assert normalize_label("Total:", strip_colons=False) == "Total:"

    def test_inner_colon_kept(self) -> None:
        assert normalize_label("Ref: A:") == "Ref: A"


class TestExactMatcher:
    """Tests for exact label matching."""

    def test_matches_after_normalization(self) -> None:
        matcher = ExactMatcher(["Entity Name"])
        assert matcher.matches("Entity Name:")
        assert matcher.matches("entity   name")
        assert not matcher.matches("Entity")

    def test_case_sensitive(self) -> None:
        matcher = ExactMatcher(["Entity Name"], case_sensitive=True)
        assert matcher.matches("Entity Name")
        assert not matcher.matches("entity name")

    def test_requires_label(self) -> None:
        with pytest.raises(ValidationError):
            ExactMatcher(["", "  "])


class TestRegexMatcher:
    def test_search(self) -> None:
        matcher = RegexMatcher([r"^entity\b"])
        assert matcher.matches("Entity Name:")
        assert not matcher.matches("Legal entity")

    def test_invalid_pattern(self) -> None:
        with pytest.raises(ValidationError):
            RegexMatcher(["("])


class TestFuzzyMatcher:
    """Tests for fuzzy label matching at the threshold boundary."""

    def test_exactly_at_threshold_accepted(self) -> None:
        threshold = similarity("entity name", "entty name")
        matcher = FuzzyMatcher(["Entity Name"], threshold=threshold)
        assert matcher.matches("Entty Name")

    def test_one_edit_below_threshold_rejected(self) -> None:
        threshold = similarity("entity name", "entty name")
        matcher = FuzzyMatcher(["Entity Name"], threshold=threshold)
        assert similarity("entity name", "entty nme") < threshold
        assert not matcher.matches("Entty Nme")

    def test_default_threshold(self) -> None:
        matcher = FuzzyMatcher(["Entity Name"])
        assert matcher.threshold == 0.85
        assert matcher.matches("Entity Nme:")
        assert not matcher.matches("Entry")

    def test_threshold_range(self) -> None:
        with pytest.raises(ValidationError):
            FuzzyMatcher(["x"], threshold=1.5)


class TestMakeMatcher:
    @pytest.mark.parametrize(
        ("mode", "cls"),
        [
            (LabelMode.EXACT, ExactMatcher),
            ("regex", RegexMatcher),
            ("fuzzy", FuzzyMatcher),
        ],
    )
    def test_selects_strategy(self, mode: LabelMode | str, cls: type) -> None:
        assert isinstance(make_matcher(mode, ["Entity"]), cls)

    def test_unknown_mode(self) -> None:
        with pytest.raises(ValidationError):
            make_matcher("soundex", ["Entity"])
