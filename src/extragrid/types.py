"""Records passed between the resolver, the search engine and the replace engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union

from extragrid.exceptions import AmbiguousError, NotFoundError, ValidationError

ROOT_ID = "root"
ROOT_PATH = "/"


def join_path(parent_path: str, name: str) -> str:
    """Append a name to a ``/``-separated path.

    Examples:
        ("/", "a.xlsx") -> "/a.xlsx"
        ("/A", "a.xlsx") -> "/A/a.xlsx"
    """
    if not parent_path or parent_path == ROOT_PATH:
        return f"/{name}"
    return f"{parent_path.rstrip('/')}/{name}"


# =============================================================================
# Name resolution
# =============================================================================


@dataclass(frozen=True)
class Candidate:
    """A tree node matching a name query, with its reconstructed path."""

    id: str
    name: str
    path: str
    parent_id: str
    is_container: bool = False


@dataclass(frozen=True)
class Resolved:
    """Exactly one node matched."""

    id: str
    name: str
    path: str

    def unwrap(self) -> Resolved:
        return self


@dataclass(frozen=True)
class Ambiguous:
    """More than one node matched; the caller must pick one by path."""

    kind: str
    name: str
    candidates: tuple[Candidate, ...]

    def __post_init__(self) -> None:
        if len(self.candidates) < 2:
            raise ValueError("Ambiguous requires more than one candidate")

    @property
    def paths(self) -> list[str]:
        return [c.path for c in self.candidates]

    def unwrap(self) -> Resolved:
        raise AmbiguousError(self.kind, self.name, list(self.candidates))


@dataclass(frozen=True)
class NotFound:
    """No node matched; ``available`` lists what is actually there."""

    kind: str
    name: str
    available: tuple[str, ...] = ()

    def unwrap(self) -> Resolved:
        raise NotFoundError(self.kind, self.name, list(self.available))


ResolutionOutcome = Union[Resolved, Ambiguous, NotFound]


def classify(
    kind: str,
    name: str,
    candidates: list[Candidate],
    available: list[str],
) -> ResolutionOutcome:
    """Turn a candidate list into an outcome by counting matches."""
    if not candidates:
        return NotFound(kind=kind, name=name, available=tuple(available))
    if len(candidates) == 1:
        only = candidates[0]
        return Resolved(id=only.id, name=only.name, path=only.path)
    return Ambiguous(kind=kind, name=name, candidates=tuple(candidates))


@dataclass(frozen=True)
class ResolutionRequest:
    """Names to resolve. Only ``drive_name`` is required."""

    drive_name: str
    folder_name: str | None = None
    file_name: str | None = None
    sheet_name: str | None = None
    item_path: str | None = None


@dataclass
class Resolution:
    """Identifiers produced for a ResolutionRequest."""

    drive_id: str
    drive_name: str
    folder_id: str = ROOT_ID
    folder_name: str | None = None
    folder_path: str = ROOT_PATH
    item_id: str | None = None
    file_name: str | None = None
    file_path: str | None = None
    sheet_id: str | None = None
    sheet_name: str | None = None
    resolved_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class RenameSuggestion:
    """A node whose name contains a term, with that term replaced."""

    id: str
    current_name: str
    suggested_name: str
    path: str
    is_container: bool
    parent_id: str


# =============================================================================
# Grid matching
# =============================================================================


@dataclass(frozen=True)
class Match:
    """A matched cell.

    ``cell`` is an absolute A1 address computed from the snapshot anchor.
    For label-neighbor matches it is the captured neighbor, and
    ``label_address`` / ``label_text`` describe the label cell.
    """

    sheet: str
    cell: str
    value: Any
    old_value: Any
    sheet_id: str | None = None
    is_header: bool = False
    label_text: str | None = None
    label_address: str | None = None
    context: dict[str, Any] | None = None

    @property
    def match_id(self) -> str:
        return f"{self.sheet}!{self.cell}"


# =============================================================================
# Replace
# =============================================================================


@dataclass(frozen=True)
class Change:
    sheet: str
    cell: str
    old_value: Any
    new_value: Any


@dataclass(frozen=True)
class ReplaceError:
    """A failed write. ``cell`` is None for a sheet-level failure."""

    sheet: str
    error: str
    cell: str | None = None


@dataclass(frozen=True)
class ReplaceSummary:
    total: int
    successful: int
    failed: int
    skipped: int = 0


@dataclass
class ReplaceOutcome:
    """Result of applying a replacement to a list of matches."""

    changes: list[Change] = field(default_factory=list)
    errors: list[ReplaceError] = field(default_factory=list)
    skipped: list[Match] = field(default_factory=list)
    total: int = 0

    @property
    def summary(self) -> ReplaceSummary:
        return ReplaceSummary(
            total=self.total,
            successful=len(self.changes),
            failed=len(self.errors),
            skipped=len(self.skipped),
        )


# =============================================================================
# Rename
# =============================================================================

RENAME_KINDS = ("file", "folder", "sheet")


@dataclass(frozen=True)
class RenameOperation:
    """One rename in a batch.

    For ``file`` and ``folder`` operations ``name`` is the node's current
    name and ``path`` optionally pins it by full path. For ``sheet``
    operations ``name`` is the current sheet name, ``file_name`` names the
    workbook and ``path`` optionally pins the workbook.
    """

    kind: str
    name: str
    new_name: str
    path: str | None = None
    file_name: str | None = None

    def __post_init__(self) -> None:
        if self.kind not in RENAME_KINDS:
            raise ValidationError(
                f"Unknown rename kind '{self.kind}'. Use one of: {', '.join(RENAME_KINDS)}",
                field="kind",
            )
        if not self.name or not self.new_name:
            raise ValidationError("name and new_name are required", field="name")
        if self.kind == "sheet" and not self.file_name:
            raise ValidationError("file_name is required for sheet renames", field="file_name")


@dataclass(frozen=True)
class RenameResult:
    """A completed rename. ``workbook_id`` is set for sheet renames."""

    kind: str
    id: str
    old_name: str
    new_name: str
    drive_id: str
    workbook_id: str | None = None


@dataclass(frozen=True)
class RenameError:
    index: int
    kind: str
    name: str
    error: str


@dataclass(frozen=True)
class BatchRenameSummary:
    total: int
    successful: int
    failed: int


@dataclass
class BatchRenameOutcome:
    """Results of a batch rename; one failed operation never stops the rest."""

    results: list[RenameResult] = field(default_factory=list)
    errors: list[RenameError] = field(default_factory=list)
    total: int = 0

    @property
    def summary(self) -> BatchRenameSummary:
        return BatchRenameSummary(
            total=self.total, successful=len(self.results), failed=len(self.errors)
        )
