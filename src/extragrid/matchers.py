"""Label matching strategies for label-neighbor search.

A cell is a label when its normalized text matches one of the candidate
labels under the selected mode:

- exact: equal after normalization
- regex: any pattern matches somewhere in the normalized text
- fuzzy: normalized Levenshtein similarity at or above a threshold
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from enum import Enum

from rapidfuzz.distance import Levenshtein

from extragrid.exceptions import ValidationError

DEFAULT_FUZZY_THRESHOLD = 0.85

_WHITESPACE_RE = re.compile(r"\s+")


class LabelMode(Enum):
    """How candidate labels are compared to cell text."""

    EXACT = "exact"
    REGEX = "regex"
    FUZZY = "fuzzy"


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings (insert, delete, substitute)."""
    return Levenshtein.distance(a, b)


def similarity(a: str, b: str) -> float:
    """``1 - levenshtein(a, b) / max(len(a), len(b))``; two empty strings are identical."""
    return Levenshtein.normalized_similarity(a, b)


def normalize_label(text: str, *, strip_colons: bool = True) -> str:
    """Collapse whitespace and, optionally, drop trailing colons.

    Examples:
        "  Entity   Name: " -> "Entity Name"
        "Total::" -> "Total"
    """
    normalized = _WHITESPACE_RE.sub(" ", text).strip()
    if strip_colons:
        normalized = normalized.rstrip(":").rstrip()
    return normalized


class LabelMatcher(ABC):
    """Decides whether a cell's text is one of the candidate labels."""

    def __init__(
        self,
        labels: list[str],
        *,
        case_sensitive: bool = False,
        strip_colons: bool = True,
    ) -> None:
        cleaned = [label for label in labels if label and label.strip()]
        if not cleaned:
            raise ValidationError("At least one label is required", field="labels")
        self.labels = cleaned
        self.case_sensitive = case_sensitive
        self.strip_colons = strip_colons

    def normalize(self, text: str) -> str:
        return normalize_label(text, strip_colons=self.strip_colons)

    def _fold(self, text: str) -> str:
        return text if self.case_sensitive else text.casefold()

    @abstractmethod
    def matches(self, text: str) -> bool:
        """Check whether ``text`` (a raw cell value) is a label."""
        ...


class ExactMatcher(LabelMatcher):
    def __init__(
        self,
        labels: list[str],
        *,
        case_sensitive: bool = False,
        strip_colons: bool = True,
    ) -> None:
        super().__init__(labels, case_sensitive=case_sensitive, strip_colons=strip_colons)
        self._targets = {self._fold(self.normalize(label)) for label in self.labels}

    def matches(self, text: str) -> bool:
        return self._fold(self.normalize(text)) in self._targets


class RegexMatcher(LabelMatcher):
    """Labels are regular expressions searched in the normalized text."""

    def __init__(
        self,
        labels: list[str],
        *,
        case_sensitive: bool = False,
        strip_colons: bool = True,
    ) -> None:
        super().__init__(labels, case_sensitive=case_sensitive, strip_colons=strip_colons)
        flags = 0 if case_sensitive else re.IGNORECASE
        try:
            self._patterns = [re.compile(label, flags) for label in self.labels]
        except re.error as e:
            raise ValidationError(f"Invalid label pattern: {e}", field="labels") from e

    def matches(self, text: str) -> bool:
        normalized = self.normalize(text)
        return any(pattern.search(normalized) for pattern in self._patterns)


class FuzzyMatcher(LabelMatcher):
    """Accepts text whose similarity to any label is at least ``threshold``."""

    def __init__(
        self,
        labels: list[str],
        *,
        case_sensitive: bool = False,
        strip_colons: bool = True,
        threshold: float = DEFAULT_FUZZY_THRESHOLD,
    ) -> None:
        super().__init__(labels, case_sensitive=case_sensitive, strip_colons=strip_colons)
        if not 0.0 <= threshold <= 1.0:
            raise ValidationError(
                "fuzzy_threshold must be between 0 and 1", field="fuzzy_threshold"
            )
        self.threshold = threshold
        self._targets = [self._fold(self.normalize(label)) for label in self.labels]

    def matches(self, text: str) -> bool:
        candidate = self._fold(self.normalize(text))
        if not candidate:
            return False
        return any(similarity(candidate, target) >= self.threshold for target in self._targets)


def make_matcher(
    mode: LabelMode | str,
    labels: list[str],
    *,
    case_sensitive: bool = False,
    strip_colons: bool = True,
    fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD,
) -> LabelMatcher:
    """Build the matcher for a label mode."""
    try:
        mode = LabelMode(mode)
    except ValueError as e:
        raise ValidationError(f"Unknown label mode: {mode}", field="label_mode") from e

    if mode is LabelMode.FUZZY:
        return FuzzyMatcher(
            labels,
            case_sensitive=case_sensitive,
            strip_colons=strip_colons,
            threshold=fuzzy_threshold,
        )
    if mode is LabelMode.REGEX:
        return RegexMatcher(labels, case_sensitive=case_sensitive, strip_colons=strip_colons)
    return ExactMatcher(labels, case_sensitive=case_sensitive, strip_colons=strip_colons)
