"""Grid match engine.

Finds cells in a workbook under one of several scopes and returns them as
``Match`` records with absolute addresses. Every address is rebuilt from the
anchor of the range that was read, so a used range starting at ``C5`` yields
``C5``-relative coordinates, not ``A1``-relative ones.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from extragrid.cache import SEARCH_TTL, Clock, TTLCache
from extragrid.exceptions import NotFoundError, UpstreamError, ValidationError
from extragrid.matchers import DEFAULT_FUZZY_THRESHOLD, LabelMatcher, LabelMode, make_matcher
from extragrid.transport import RangeSnapshot, SheetInfo, Transport
from extragrid.types import Match
from extragrid.utils import cell_text, column_index_to_letter, is_empty, parse_sheet_and_address

ENTITY_LABELS = ("Entity name", "Entity", "Entity Name")
DIRECTIONS = ("down", "right")
PREVIEW_SAMPLES = 10
ALL_SHEETS = "ALL"


class Scope(Enum):
    """Where a search looks."""

    HEADER_ONLY = "header_only"
    SPECIFIC_RANGE = "specific_range"
    ENTIRE_SHEET = "entire_sheet"
    ALL_SHEETS = "all_sheets"
    LABEL_NEIGHBOR = "label_neighbor"
    ENTITY_NAME = "entity_name"

    @property
    def is_label_scope(self) -> bool:
        return self in (Scope.LABEL_NEIGHBOR, Scope.ENTITY_NAME)


@dataclass(frozen=True)
class LabelNeighborOptions:
    """Knobs for label-neighbor extraction.

    A label hit scans ``directions`` in order, up to ``max_down`` /
    ``max_right`` cells away, and captures the first non-empty neighbor.
    ``fuzzy_threshold`` of None defers to the search engine's default.
    """

    labels: tuple[str, ...] = ()
    mode: LabelMode = LabelMode.EXACT
    case_sensitive: bool = False
    strip_colons: bool = True
    fuzzy_threshold: float | None = None
    directions: tuple[str, ...] = DIRECTIONS
    max_down: int = 3
    max_right: int = 3
    value_search_term: str | None = None

    def __post_init__(self) -> None:
        unknown = [d for d in self.directions if d not in DIRECTIONS]
        if unknown:
            raise ValidationError(
                f"Unknown direction(s): {', '.join(unknown)}. Use 'down' or 'right'",
                field="directions",
            )
        if self.max_down < 0 or self.max_right < 0:
            raise ValidationError("Hop limits must not be negative", field="max_down")
        if self.fuzzy_threshold is not None and not 0.0 <= self.fuzzy_threshold <= 1.0:
            raise ValidationError(
                "fuzzy_threshold must be between 0 and 1", field="fuzzy_threshold"
            )

    def hop_limit(self, direction: str) -> int:
        return self.max_down if direction == "down" else self.max_right


@dataclass(frozen=True)
class SearchOptions:
    """Inputs for a search.

    ``search_term`` is required by the text scopes, ``range_spec`` by
    ``specific_range``. ``sheet_name`` picks the sheet for single-sheet
    scopes; for label scopes ``None`` or ``"ALL"`` means every sheet.
    """

    search_term: str | None = None
    range_spec: str | None = None
    sheet_name: str | None = None
    label: LabelNeighborOptions = field(default_factory=LabelNeighborOptions)


class GridSearch:
    """Runs searches against a Transport, memoizing results per item."""

    def __init__(
        self,
        transport: Transport,
        cache: TTLCache[list[Match]] | None = None,
        *,
        clock: Clock | None = None,
        fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD,
    ) -> None:
        if not 0.0 <= fuzzy_threshold <= 1.0:
            raise ValueError("fuzzy_threshold must be between 0 and 1")
        self._transport = transport
        self._cache: TTLCache[list[Match]] = cache or TTLCache(SEARCH_TTL, clock=clock)
        self.fuzzy_threshold = fuzzy_threshold

    async def find_matches(
        self,
        drive_id: str,
        item_id: str,
        scope: Scope | str,
        options: SearchOptions | None = None,
    ) -> list[Match]:
        """Search a workbook.

        Args:
            drive_id: Drive holding the workbook
            item_id: Workbook identifier
            scope: A Scope or its string value
            options: Search term, range and label knobs

        Returns:
            Matches in sheet order, then row-major order within a sheet

        Raises:
            ValidationError: Missing or malformed inputs
            NotFoundError: A named sheet does not exist
            UpstreamError: A single-sheet read or the sheet listing failed
        """
        scope = _coerce_scope(scope)
        options = options or SearchOptions()
        _validate(scope, options)

        key = f"{_item_prefix(drive_id, item_id)}{scope.value}:{options!r}"
        cached = self._cache.get(key)
        if cached is not None:
            return list(cached)

        if scope is Scope.HEADER_ONLY:
            matches = await self._search_headers(drive_id, item_id, options)
        elif scope is Scope.SPECIFIC_RANGE:
            matches = await self._search_range(drive_id, item_id, options)
        elif scope is Scope.ENTIRE_SHEET:
            matches = await self._search_sheet(drive_id, item_id, options)
        elif scope is Scope.ALL_SHEETS:
            matches = await self._search_all_sheets(drive_id, item_id, options)
        else:
            matches = await self._search_labels(drive_id, item_id, scope, options)

        self._cache.set(key, matches)
        logger.info(
            "Search complete",
            extra={"item_id": item_id, "scope": scope.value, "matches": len(matches)},
        )
        return list(matches)

    def invalidate(self, drive_id: str, item_id: str) -> int:
        """Forget memoized results for one workbook."""
        return self._cache.invalidate_prefix(_item_prefix(drive_id, item_id))

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_stats(self) -> dict[str, Any]:
        return self._cache.stats()

    # -------------------------------------------------------------------------
    # Text scopes
    # -------------------------------------------------------------------------

    async def _search_headers(
        self, drive_id: str, item_id: str, options: SearchOptions
    ) -> list[Match]:
        term = options.search_term or ""
        matches: list[Match] = []
        for sheet in await self._transport.list_sheets(drive_id, item_id):
            try:
                used = await self._transport.get_used_range(drive_id, item_id, sheet.id)
                if used.column_count == 0:
                    continue
                last_col = used.start_col + used.column_count - 1
                header = await self._transport.get_range(
                    drive_id, item_id, sheet.id, f"A1:{column_index_to_letter(last_col)}1"
                )
            except UpstreamError as e:
                _log_skipped_sheet(sheet, e)
                continue
            matches.extend(_scan_text(header, sheet, term, is_header=True))
        return matches

    async def _search_range(
        self, drive_id: str, item_id: str, options: SearchOptions
    ) -> list[Match]:
        sheet_name, address = parse_sheet_and_address(options.range_spec or "")
        if not address:
            raise ValidationError("range_spec has no address", field="range_spec")
        sheet = await self._pick_sheet(drive_id, item_id, sheet_name or options.sheet_name)
        snapshot = await self._transport.get_range(drive_id, item_id, sheet.id, address)
        return _scan_text(snapshot, sheet, options.search_term or "")

    async def _search_sheet(
        self, drive_id: str, item_id: str, options: SearchOptions
    ) -> list[Match]:
        sheet = await self._pick_sheet(drive_id, item_id, options.sheet_name)
        snapshot = await self._transport.get_used_range(drive_id, item_id, sheet.id)
        return _scan_text(snapshot, sheet, options.search_term or "")

    async def _search_all_sheets(
        self, drive_id: str, item_id: str, options: SearchOptions
    ) -> list[Match]:
        term = options.search_term or ""
        matches: list[Match] = []
        for sheet in await self._transport.list_sheets(drive_id, item_id):
            try:
                snapshot = await self._transport.get_used_range(drive_id, item_id, sheet.id)
            except UpstreamError as e:
                _log_skipped_sheet(sheet, e)
                continue
            matches.extend(_scan_text(snapshot, sheet, term))
        return matches

    # -------------------------------------------------------------------------
    # Label neighbor
    # -------------------------------------------------------------------------

    async def _search_labels(
        self, drive_id: str, item_id: str, scope: Scope, options: SearchOptions
    ) -> list[Match]:
        label_options = options.label
        labels = list(label_options.labels)
        if not labels and scope is Scope.ENTITY_NAME:
            labels = list(ENTITY_LABELS)
        matcher = make_matcher(
            label_options.mode,
            labels,
            case_sensitive=label_options.case_sensitive,
            strip_colons=label_options.strip_colons,
            fuzzy_threshold=(
                label_options.fuzzy_threshold
                if label_options.fuzzy_threshold is not None
                else self.fuzzy_threshold
            ),
        )

        if options.sheet_name and options.sheet_name.upper() != ALL_SHEETS:
            sheet = await self._pick_sheet(drive_id, item_id, options.sheet_name)
            snapshot = await self._transport.get_used_range(drive_id, item_id, sheet.id)
            return _scan_labels(snapshot, sheet, matcher, label_options)

        matches: list[Match] = []
        for sheet in await self._transport.list_sheets(drive_id, item_id):
            try:
                snapshot = await self._transport.get_used_range(drive_id, item_id, sheet.id)
            except UpstreamError as e:
                _log_skipped_sheet(sheet, e)
                continue
            matches.extend(_scan_labels(snapshot, sheet, matcher, label_options))
        return matches

    async def _pick_sheet(self, drive_id: str, item_id: str, name: str | None) -> SheetInfo:
        """The sheet called ``name`` (case-insensitive), or the first sheet."""
        sheets = await self._transport.list_sheets(drive_id, item_id)
        if not sheets:
            raise NotFoundError("sheet", name or "(first sheet)", [])
        if not name:
            return sheets[0]
        for sheet in sheets:
            if sheet.name.lower() == name.lower():
                return sheet
        raise NotFoundError("sheet", name, [s.name for s in sheets])


def _scan_text(
    snapshot: RangeSnapshot, sheet: SheetInfo, term: str, *, is_header: bool = False
) -> list[Match]:
    """Every cell whose text contains ``term`` (case-insensitive)."""
    needle = term.lower()
    matches: list[Match] = []
    for r, row in enumerate(snapshot.values):
        for c, value in enumerate(row):
            if is_empty(value):
                continue
            if needle in cell_text(value).lower():
                matches.append(
                    Match(
                        sheet=sheet.name,
                        sheet_id=sheet.id,
                        cell=snapshot.cell_address(r, c),
                        value=value,
                        old_value=value,
                        is_header=is_header,
                    )
                )
    return matches


def _scan_labels(
    snapshot: RangeSnapshot,
    sheet: SheetInfo,
    matcher: LabelMatcher,
    options: LabelNeighborOptions,
) -> list[Match]:
    values = snapshot.values
    value_filter = options.value_search_term.lower() if options.value_search_term else None
    matches: list[Match] = []
    # A neighbor reached from two labels is captured once, by the first label
    captured_cells: set[tuple[int, int]] = set()
    for r, row in enumerate(values):
        for c, value in enumerate(row):
            if is_empty(value):
                continue
            text = cell_text(value)
            if not matcher.matches(text):
                continue
            captured = _first_neighbor(values, r, c, options)
            if captured is None:
                continue
            direction, hops, nr, nc = captured
            if (nr, nc) in captured_cells:
                continue
            neighbor = values[nr][nc]
            if value_filter is not None and value_filter not in cell_text(neighbor).lower():
                continue
            captured_cells.add((nr, nc))
            matches.append(
                Match(
                    sheet=sheet.name,
                    sheet_id=sheet.id,
                    cell=snapshot.cell_address(nr, nc),
                    value=neighbor,
                    old_value=neighbor,
                    label_text=matcher.normalize(text),
                    label_address=snapshot.cell_address(r, c),
                    context={"direction": direction, "hops": hops},
                )
            )
    return matches


def _first_neighbor(
    values: tuple[tuple[Any, ...], ...], row: int, col: int, options: LabelNeighborOptions
) -> tuple[str, int, int, int] | None:
    """(direction, hops, row, col) of the first non-empty neighbor, if any."""
    for direction in options.directions:
        dr, dc = (1, 0) if direction == "down" else (0, 1)
        for hops in range(1, options.hop_limit(direction) + 1):
            r, c = row + dr * hops, col + dc * hops
            if r >= len(values) or c >= len(values[r]):
                break
            if not is_empty(values[r][c]):
                return direction, hops, r, c
    return None


def _coerce_scope(scope: Scope | str) -> Scope:
    try:
        return Scope(scope)
    except ValueError as e:
        valid = ", ".join(s.value for s in Scope)
        raise ValidationError(f"Unknown scope '{scope}'. Use one of: {valid}", field="scope") from e


def _validate(scope: Scope, options: SearchOptions) -> None:
    if not scope.is_label_scope and not (options.search_term and options.search_term.strip()):
        raise ValidationError("search_term is required", field="search_term")
    if scope is Scope.SPECIFIC_RANGE and not options.range_spec:
        raise ValidationError("range_spec is required for specific_range", field="range_spec")
    if scope is Scope.LABEL_NEIGHBOR and not options.label.labels:
        raise ValidationError("At least one label is required", field="labels")


def _item_prefix(drive_id: str, item_id: str) -> str:
    return f"search:{drive_id}:{item_id}:"


def _log_skipped_sheet(sheet: SheetInfo, error: UpstreamError) -> None:
    logger.warning(
        "Skipping sheet that could not be read",
        extra={"sheet": sheet.name, "error": str(error)},
    )


# =============================================================================
# Previews
# =============================================================================


def build_preview(matches: list[Match], search_term: str | None) -> dict[str, Any]:
    """Summarize matches before a replace: counts by kind and sheet, plus samples."""
    by_sheet: dict[str, int] = {}
    for match in matches:
        by_sheet[match.sheet] = by_sheet.get(match.sheet, 0) + 1
    headers = sum(1 for m in matches if m.is_header)
    return {
        "search_term": search_term,
        "total_matches": len(matches),
        "breakdown": {"headers": headers, "data_rows": len(matches) - headers},
        "by_sheet": by_sheet,
        "samples": [asdict(m) for m in matches[:PREVIEW_SAMPLES]],
    }


def build_selectable_preview(matches: list[Match]) -> list[dict[str, Any]]:
    """One entry per match, keyed by ``match_id`` so a caller can pick a subset."""
    return [
        {
            "match_id": m.match_id,
            "sheet": m.sheet,
            "cell": m.cell,
            "value": m.value,
            "is_header": m.is_header,
            "label_text": m.label_text,
            "label_address": m.label_address,
        }
        for m in matches
    ]


def select_matches(matches: list[Match], selection: list[str]) -> list[Match]:
    """Keep the matches whose ``match_id`` is in ``selection``, in selection order.

    Raises:
        ValidationError: A selected id does not belong to any match.
    """
    by_id = {m.match_id: m for m in matches}
    unknown = [s for s in selection if s not in by_id]
    if unknown:
        raise ValidationError(f"Unknown match id(s): {', '.join(unknown)}", field="selection")
    selected: list[Match] = []
    seen: set[str] = set()
    for match_id in selection:
        if match_id not in seen:
            seen.add(match_id)
            selected.append(by_id[match_id])
    return selected
