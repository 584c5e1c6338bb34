"""GridClient - main entry point for extragrid.

Wires a Transport to the name resolver, the search engine and the replace
engine, and adds by-name operations that resolve a workbook and act on it
in one call.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any

from loguru import logger

from extragrid.cache import RESOLUTION_TTL, SEARCH_TTL, SUGGESTION_TTL, Clock, TTLCache
from extragrid.config import Settings
from extragrid.exceptions import NotFoundError, UpstreamError, ValidationError
from extragrid.matchers import DEFAULT_FUZZY_THRESHOLD
from extragrid.rename import RenameService
from extragrid.replace import (
    DEFAULT_HIGHLIGHT,
    ReplaceEngine,
    ReplaceOptions,
    Replacement,
)
from extragrid.resolver import DEFAULT_SUGGESTION_DEPTH, NameResolver
from extragrid.search import GridSearch, Scope, SearchOptions, select_matches
from extragrid.transport import (
    MAX_BATCH_REQUESTS,
    GraphTransport,
    RangeSnapshot,
    SheetInfo,
    Transport,
)
from extragrid.types import (
    BatchRenameOutcome,
    Match,
    RenameOperation,
    RenameResult,
    RenameSuggestion,
    ReplaceOutcome,
    Resolution,
    ResolutionRequest,
    Resolved,
)
from extragrid.utils import parse_sheet_and_address, range_shape
from extragrid.walker import DEFAULT_MAX_DEPTH


@dataclass
class FindResult:
    """Matches found in a workbook located by name."""

    resolution: Resolution
    matches: list[Match]


@dataclass
class ReplaceResult:
    """Outcome of a by-name replace, with the matches it acted on."""

    resolution: Resolution
    matches: list[Match]
    outcome: ReplaceOutcome


@dataclass
class RangeResult:
    """A range read or written in a workbook located by name.

    ``old_values`` holds what a write overwrote, when it could be read.
    """

    resolution: Resolution
    snapshot: RangeSnapshot
    old_values: tuple[tuple[Any, ...], ...] | None = None


class GridClient:
    """Client for name-addressed spreadsheet operations.

    Example:
        >>> client = GridClient.from_settings(get_settings())
        >>> request = ResolutionRequest(drive_name="Documents", file_name="Budget.xlsx")
        >>> result = await client.find_by_name(request, Scope.ALL_SHEETS,
        ...     SearchOptions(search_term="2024"))
    """

    def __init__(
        self,
        transport: Transport,
        *,
        resolution_ttl: float = RESOLUTION_TTL,
        suggestion_ttl: float = SUGGESTION_TTL,
        search_ttl: float = SEARCH_TTL,
        cache_max_entries: int | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        suggestion_max_depth: int = DEFAULT_SUGGESTION_DEPTH,
        replace_batch_size: int = MAX_BATCH_REQUESTS,
        highlight_color: str = DEFAULT_HIGHLIGHT,
        fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            transport: Where drives and workbooks come from
            resolution_ttl: Seconds a resolved identifier stays cached
            suggestion_ttl: Seconds rename suggestions stay cached
            search_ttl: Seconds search results stay cached
            cache_max_entries: Optional LRU bound for every cache
            max_depth: Depth bound for name lookups
            suggestion_max_depth: Depth bound for rename suggestions
            replace_batch_size: Default updates per batch request
            highlight_color: Default fill for highlighted changes
            fuzzy_threshold: Default similarity for fuzzy label searches
            clock: Clock for every cache (tests pass a fake one)
        """
        self._transport = transport
        self.resolver = NameResolver(
            transport,
            TTLCache(resolution_ttl, clock=clock, max_entries=cache_max_entries),
            max_depth=max_depth,
            suggestion_cache=TTLCache(suggestion_ttl, clock=clock, max_entries=cache_max_entries),
            suggestion_max_depth=suggestion_max_depth,
        )
        self.search = GridSearch(
            transport,
            TTLCache(search_ttl, clock=clock, max_entries=cache_max_entries),
            fuzzy_threshold=fuzzy_threshold,
        )
        self.replacer = ReplaceEngine(transport)
        self.renamer = RenameService(transport, self.resolver)
        self._default_replace_options = ReplaceOptions(
            batch_size=replace_batch_size, highlight_color=highlight_color
        )

    @classmethod
    def from_settings(cls, settings: Settings, transport: Transport | None = None) -> GridClient:
        """Build a client from Settings, using Microsoft Graph unless a transport is given."""
        if transport is None:
            if not settings.access_token:
                raise ValidationError(
                    "An access token is required (set EXTRAGRID_ACCESS_TOKEN)",
                    field="access_token",
                )
            transport = GraphTransport(
                settings.access_token,
                base_url=settings.graph_base_url,
                site_id=settings.site_id,
                timeout=settings.request_timeout,
            )
        return cls(
            transport,
            resolution_ttl=settings.resolution_cache_ttl,
            suggestion_ttl=settings.suggestion_cache_ttl,
            search_ttl=settings.search_cache_ttl,
            cache_max_entries=settings.cache_max_entries,
            max_depth=settings.max_search_depth,
            suggestion_max_depth=settings.suggestion_max_depth,
            replace_batch_size=settings.replace_batch_size,
            highlight_color=settings.highlight_color,
            fuzzy_threshold=settings.fuzzy_threshold,
        )

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    async def resolve_drive(self, name: str) -> Resolved:
        return await self.resolver.resolve_drive(name)

    async def resolve_item(
        self, drive_id: str, name: str, *, container: Resolved | None = None
    ) -> Resolved:
        return await self.resolver.resolve_item(drive_id, name, container=container)

    async def resolve_item_by_path(self, drive_id: str, name: str, path: str) -> Resolved:
        return await self.resolver.resolve_item_by_path(drive_id, name, path)

    async def resolve_sheet(self, drive_id: str, item_id: str, name: str) -> Resolved:
        return await self.resolver.resolve_sheet(drive_id, item_id, name)

    async def resolve(self, request: ResolutionRequest) -> Resolution:
        return await self.resolver.resolve(request)

    async def find_related_items(
        self, drive_name: str, old_term: str, new_term: str
    ) -> list[RenameSuggestion]:
        """Suggest renames for every node whose name contains ``old_term``."""
        drive = await self.resolver.resolve_drive(drive_name)
        return await self.resolver.find_related_items(drive.id, old_term, new_term)

    # -------------------------------------------------------------------------
    # Find / replace by identifier
    # -------------------------------------------------------------------------

    async def find_matches(
        self,
        drive_id: str,
        item_id: str,
        scope: Scope | str,
        options: SearchOptions | None = None,
    ) -> list[Match]:
        return await self.search.find_matches(drive_id, item_id, scope, options)

    async def apply_replace(
        self,
        drive_id: str,
        item_id: str,
        matches: list[Match],
        replacement: Replacement,
        options: ReplaceOptions | None = None,
    ) -> ReplaceOutcome:
        """Write a replacement to matches, then forget cached searches of the item."""
        outcome = await self.replacer.apply_replace(
            drive_id, item_id, matches, replacement, options or self._default_replace_options
        )
        if outcome.changes:
            self.search.invalidate(drive_id, item_id)
        return outcome

    # -------------------------------------------------------------------------
    # Find / replace by name
    # -------------------------------------------------------------------------

    async def find_by_name(
        self,
        request: ResolutionRequest,
        scope: Scope | str,
        options: SearchOptions | None = None,
    ) -> FindResult:
        """Resolve a workbook (and optionally a sheet) by name, then search it."""
        resolution = await self._resolve_workbook(request)
        options = _scope_to_sheet(options or SearchOptions(), resolution)
        matches = await self.find_matches(
            resolution.drive_id, _item_id(resolution), scope, options
        )
        return FindResult(resolution=resolution, matches=matches)

    async def replace_by_name(
        self,
        request: ResolutionRequest,
        scope: Scope | str,
        options: SearchOptions | None,
        replacement: Replacement,
        replace_options: ReplaceOptions | None = None,
        *,
        selection: list[str] | None = None,
    ) -> ReplaceResult:
        """Resolve, search and replace in one call.

        Args:
            selection: Optional ``match_id`` values; only those matches are
                written, in the given order
        """
        found = await self.find_by_name(request, scope, options)
        matches = found.matches
        if selection is not None:
            matches = select_matches(matches, selection)
        outcome = await self.apply_replace(
            found.resolution.drive_id,
            _item_id(found.resolution),
            matches,
            replacement,
            replace_options,
        )
        return ReplaceResult(resolution=found.resolution, matches=matches, outcome=outcome)

    # -------------------------------------------------------------------------
    # Ranges by name
    # -------------------------------------------------------------------------

    async def read_range_by_name(self, request: ResolutionRequest, address: str) -> RangeResult:
        """Read an A1 range from a workbook located by name.

        The sheet comes from a ``Sheet!`` qualifier on ``address``, then from
        ``request.sheet_name``, then defaults to the first sheet.
        """
        resolution, sheet, bare = await self._locate_range(request, address)
        snapshot = await self._transport.get_range(
            resolution.drive_id, _item_id(resolution), sheet.id, bare
        )
        return RangeResult(resolution=resolution, snapshot=snapshot)

    async def write_range_by_name(
        self, request: ResolutionRequest, address: str, values: list[list[Any]]
    ) -> RangeResult:
        """Overwrite an A1 range in a workbook located by name.

        ``values`` must be a non-empty rectangle; for ``A1:B2`` style
        addresses its shape must match the range. The previous values are
        returned in ``old_values`` when they can be read.
        """
        _check_values(address, values)
        resolution, sheet, bare = await self._locate_range(request, address)
        item_id = _item_id(resolution)

        old_values = None
        try:
            before = await self._transport.get_range(resolution.drive_id, item_id, sheet.id, bare)
            old_values = before.values
        except UpstreamError as e:
            logger.warning(
                "Could not read values before write",
                extra={"item_id": item_id, "address": bare, "error": str(e)},
            )

        snapshot = await self._transport.patch_range(
            resolution.drive_id, item_id, sheet.id, bare, values
        )
        self.search.invalidate(resolution.drive_id, item_id)
        logger.info(
            "Wrote range",
            extra={"item_id": item_id, "sheet": sheet.name, "address": snapshot.address},
        )
        return RangeResult(resolution=resolution, snapshot=snapshot, old_values=old_values)

    # -------------------------------------------------------------------------
    # Renames
    # -------------------------------------------------------------------------

    async def rename_file_by_name(
        self,
        drive_name: str,
        file_name: str,
        new_name: str,
        *,
        item_path: str | None = None,
    ) -> RenameResult:
        return await self.renamer.rename_file_by_name(
            drive_name, file_name, new_name, item_path=item_path
        )

    async def rename_folder_by_name(
        self,
        drive_name: str,
        folder_name: str,
        new_name: str,
        *,
        folder_path: str | None = None,
    ) -> RenameResult:
        return await self.renamer.rename_folder_by_name(
            drive_name, folder_name, new_name, folder_path=folder_path
        )

    async def rename_sheet_by_name(
        self,
        drive_name: str,
        file_name: str,
        old_sheet_name: str,
        new_sheet_name: str,
        *,
        item_path: str | None = None,
    ) -> RenameResult:
        """Rename a worksheet, then forget cached searches of its workbook."""
        result = await self.renamer.rename_sheet_by_name(
            drive_name, file_name, old_sheet_name, new_sheet_name, item_path=item_path
        )
        self._forget_searches(result)
        return result

    async def batch_rename(
        self, drive_name: str, operations: list[RenameOperation]
    ) -> BatchRenameOutcome:
        outcome = await self.renamer.batch_rename(drive_name, operations)
        for result in outcome.results:
            self._forget_searches(result)
        return outcome

    # -------------------------------------------------------------------------
    # Housekeeping
    # -------------------------------------------------------------------------

    def clear_cache(self) -> None:
        self.resolver.clear_cache()
        self.search.clear_cache()

    def cache_stats(self) -> dict[str, Any]:
        stats = self.resolver.cache_stats()
        stats["search"] = self.search.cache_stats()
        return stats

    async def close(self) -> None:
        """Close the underlying transport."""
        await self._transport.close()

    async def __aenter__(self) -> GridClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _resolve_workbook(self, request: ResolutionRequest) -> Resolution:
        if not request.file_name:
            raise ValidationError("file_name is required", field="file_name")
        return await self.resolver.resolve(request)

    async def _locate_range(
        self, request: ResolutionRequest, address: str
    ) -> tuple[Resolution, SheetInfo, str]:
        qualifier, bare = parse_sheet_and_address(address)
        if not bare:
            raise ValidationError("A range address is required", field="address")
        resolution = await self._resolve_workbook(request)
        item_id = _item_id(resolution)

        if qualifier:
            sheet = await self.resolver.resolve_sheet(resolution.drive_id, item_id, qualifier)
            return resolution, SheetInfo(id=sheet.id, name=sheet.name), bare
        if resolution.sheet_id and resolution.sheet_name:
            return resolution, SheetInfo(id=resolution.sheet_id, name=resolution.sheet_name), bare

        sheets = await self._transport.list_sheets(resolution.drive_id, item_id)
        if not sheets:
            raise NotFoundError("sheet", "(first sheet)", [])
        return resolution, sheets[0], bare

    def _forget_searches(self, result: RenameResult) -> None:
        if result.workbook_id:
            self.search.invalidate(result.drive_id, result.workbook_id)


def _item_id(resolution: Resolution) -> str:
    if resolution.item_id is None:
        raise ValidationError("file_name is required", field="file_name")
    return resolution.item_id


def _scope_to_sheet(options: SearchOptions, resolution: Resolution) -> SearchOptions:
    """Use the resolved sheet for searches that did not name one."""
    if resolution.sheet_name and not options.sheet_name:
        return dataclasses.replace(options, sheet_name=resolution.sheet_name)
    return options


def _check_values(address: str, values: list[list[Any]]) -> None:
    if not values or not values[0]:
        raise ValidationError("values must be a non-empty 2D list", field="values")
    width = len(values[0])
    if any(len(row) != width for row in values):
        raise ValidationError("Every row of values must have the same length", field="values")
    try:
        expected = range_shape(address)
    except ValueError as e:
        raise ValidationError(str(e), field="address") from e
    # A single-cell address anchors a block of any size
    if ":" in address and expected != (len(values), width):
        raise ValidationError(
            f"values are {len(values)}x{width} but {address} is {expected[0]}x{expected[1]}",
            field="values",
        )
