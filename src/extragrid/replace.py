"""Replace engine.

Writes new values back to matched cells. Matches are grouped by sheet; each
sheet's live values are read once, unchanged cells are skipped, and updates
are submitted in batches. A batch that fails as a whole is retried one cell
at a time, so a single bad cell never blocks the rest.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Union

from loguru import logger

from extragrid.exceptions import UpstreamError, ValidationError
from extragrid.transport import MAX_BATCH_REQUESTS, CellUpdate, Transport
from extragrid.types import Change, Match, ReplaceError, ReplaceOutcome
from extragrid.utils import cell_text, chunked

DEFAULT_HIGHLIGHT = "#FFFF00"
REPLACE_MODES = ("all", "first")

_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


@dataclass(frozen=True)
class TextReplacement:
    """Replace ``search_term`` with ``replace_term`` inside cell text.

    Args:
        case_sensitive: Match case exactly
        whole_word: Only match the term on word boundaries
        replace_inside: Replace occurrences inside longer text; when False the
            cell is only replaced if its whole text is the term
        replace_mode: ``"all"`` occurrences or only the ``"first"``
    """

    search_term: str
    replace_term: str
    case_sensitive: bool = False
    whole_word: bool = False
    replace_inside: bool = True
    replace_mode: str = "all"

    def __post_init__(self) -> None:
        if not self.search_term:
            raise ValidationError("search_term is required", field="search_term")
        if self.replace_mode not in REPLACE_MODES:
            raise ValidationError(
                f"replace_mode must be one of: {', '.join(REPLACE_MODES)}", field="replace_mode"
            )

    def pattern(self) -> re.Pattern[str]:
        escaped = re.escape(self.search_term)
        if self.whole_word:
            escaped = rf"\b{escaped}\b"
        return re.compile(escaped, 0 if self.case_sensitive else re.IGNORECASE)

    def apply(self, value: Any) -> Any:
        """New value for a cell, or ``value`` itself when nothing matches."""
        text = cell_text(value)
        pattern = self.pattern()
        if not self.replace_inside:
            return self.replace_term if pattern.fullmatch(text.strip()) else value
        count = 1 if self.replace_mode == "first" else 0
        replaced = pattern.sub(lambda _m: self.replace_term, text, count=count)
        return value if replaced == text else replaced


@dataclass(frozen=True)
class ValueReplacement:
    """Overwrite each matched cell with a literal value."""

    value: Any

    def apply(self, value: Any) -> Any:  # noqa: ARG002
        return self.value


Replacement = Union[TextReplacement, ValueReplacement]


@dataclass(frozen=True)
class ReplaceOptions:
    highlight_changes: bool = False
    highlight_color: str = DEFAULT_HIGHLIGHT
    batch_size: int = MAX_BATCH_REQUESTS

    def __post_init__(self) -> None:
        if not 1 <= self.batch_size <= MAX_BATCH_REQUESTS:
            raise ValidationError(
                f"batch_size must be between 1 and {MAX_BATCH_REQUESTS}", field="batch_size"
            )
        if not _COLOR_RE.match(self.highlight_color):
            raise ValidationError("highlight_color must look like #RRGGBB", field="highlight_color")


@dataclass(frozen=True)
class _Pending:
    match: Match
    old_value: Any
    new_value: Any


class ReplaceEngine:
    """Applies a Replacement to matches through a Transport."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def apply_replace(
        self,
        drive_id: str,
        item_id: str,
        matches: list[Match],
        replacement: Replacement,
        options: ReplaceOptions | None = None,
    ) -> ReplaceOutcome:
        """Write ``replacement`` to every match.

        Returns:
            ReplaceOutcome with one Change per written cell, one ReplaceError
            per failed cell (or per sheet whose values could not be read) and
            the matches skipped because their value would not change
        """
        options = options or ReplaceOptions()
        outcome = ReplaceOutcome(total=len(matches))

        groups: dict[str, list[Match]] = {}
        for match in matches:
            groups.setdefault(match.sheet, []).append(match)

        for sheet, group in groups.items():
            sheet_ref = group[0].sheet_id or sheet
            try:
                live = await self._transport.get_used_range(drive_id, item_id, sheet_ref)
            except UpstreamError as e:
                logger.warning(
                    "Could not read sheet before replacing",
                    extra={"sheet": sheet, "matches": len(group), "error": str(e)},
                )
                outcome.errors.append(ReplaceError(sheet=sheet, error=str(e)))
                continue

            pending: list[_Pending] = []
            for match in group:
                current = live.value_at(match.cell)
                new_value = replacement.apply(current)
                if new_value == current:
                    outcome.skipped.append(match)
                    continue
                pending.append(_Pending(match, current, new_value))

            written: list[Change] = []
            for chunk in chunked(pending, options.batch_size):
                changes, errors = await self._write_chunk(drive_id, item_id, sheet_ref, chunk)
                written.extend(changes)
                outcome.errors.extend(errors)
            outcome.changes.extend(written)

            if options.highlight_changes and written:
                await self._highlight(
                    drive_id, item_id, sheet_ref, written, options.highlight_color
                )

        summary = outcome.summary
        logger.info(
            "Replace complete",
            extra={
                "item_id": item_id,
                "total": summary.total,
                "successful": summary.successful,
                "failed": summary.failed,
                "skipped": summary.skipped,
            },
        )
        return outcome

    async def _write_chunk(
        self, drive_id: str, item_id: str, sheet_ref: str, chunk: list[_Pending]
    ) -> tuple[list[Change], list[ReplaceError]]:
        updates = [CellUpdate(address=p.match.cell, value=p.new_value) for p in chunk]
        try:
            results = await self._transport.batch_patch(drive_id, item_id, sheet_ref, updates)
        except UpstreamError as e:
            logger.warning(
                "Batch write failed, retrying cell by cell",
                extra={"sheet": sheet_ref, "cells": len(chunk), "error": str(e)},
            )
            return await self._write_cells(drive_id, item_id, sheet_ref, chunk)

        changes: list[Change] = []
        errors: list[ReplaceError] = []
        for pending, result in zip(chunk, results):
            if result.ok:
                changes.append(_change(pending))
            else:
                errors.append(
                    ReplaceError(
                        sheet=pending.match.sheet,
                        cell=pending.match.cell,
                        error=result.error or f"HTTP {result.status}",
                    )
                )
        for pending in chunk[len(results) :]:
            errors.append(
                ReplaceError(
                    sheet=pending.match.sheet,
                    cell=pending.match.cell,
                    error="No result returned for update",
                )
            )
        return changes, errors

    async def _write_cells(
        self, drive_id: str, item_id: str, sheet_ref: str, chunk: list[_Pending]
    ) -> tuple[list[Change], list[ReplaceError]]:
        changes: list[Change] = []
        errors: list[ReplaceError] = []
        for pending in chunk:
            try:
                await self._transport.patch_range(
                    drive_id, item_id, sheet_ref, pending.match.cell, [[pending.new_value]]
                )
            except UpstreamError as e:
                errors.append(
                    ReplaceError(sheet=pending.match.sheet, cell=pending.match.cell, error=str(e))
                )
                continue
            changes.append(_change(pending))
        return changes, errors

    async def _highlight(
        self, drive_id: str, item_id: str, sheet_ref: str, changes: list[Change], color: str
    ) -> None:
        for change in changes:
            try:
                await self._transport.set_fill(drive_id, item_id, sheet_ref, change.cell, color)
            except UpstreamError as e:
                logger.warning(
                    "Could not highlight changed cell",
                    extra={"sheet": change.sheet, "cell": change.cell, "error": str(e)},
                )


def _change(pending: _Pending) -> Change:
    return Change(
        sheet=pending.match.sheet,
        cell=pending.match.cell,
        old_value=pending.old_value,
        new_value=pending.new_value,
    )
