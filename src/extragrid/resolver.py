"""Name resolution and disambiguation.

Turns human-readable drive, folder, file and sheet names into stable
identifiers. Folder and file lookups try the search root first and fall back
to a depth-bounded walk of the whole subtree. A name that matches several
nodes comes back as ``Ambiguous`` with every candidate path; the caller picks
one and retries with ``resolve_item_by_path``.
"""

from __future__ import annotations

import re
from typing import Any

from loguru import logger

from extragrid.cache import RESOLUTION_TTL, SUGGESTION_TTL, Clock, TTLCache
from extragrid.exceptions import NotFoundError, UpstreamError, ValidationError
from extragrid.transport import Transport, TreeNode
from extragrid.types import (
    ROOT_ID,
    ROOT_PATH,
    Candidate,
    RenameSuggestion,
    Resolution,
    ResolutionOutcome,
    ResolutionRequest,
    Resolved,
    classify,
    join_path,
)
from extragrid.walker import DEFAULT_MAX_DEPTH, TreeWalker, name_predicate

DEFAULT_SUGGESTION_DEPTH = 10


class NameResolver:
    """Resolves names to identifiers against a Transport.

    Successful resolutions are cached; ``Ambiguous`` and ``NotFound``
    outcomes are not, so a later rename or upload is picked up immediately.

    Args:
        transport: Source of drive trees and worksheets
        cache: Resolution cache (10 minute TTL when omitted)
        max_depth: Depth bound for fallback walks
        suggestion_cache: Cache for rename suggestions (5 minute TTL when omitted)
        suggestion_max_depth: Depth bound for rename suggestion walks
        clock: Clock for the default caches
    """

    def __init__(
        self,
        transport: Transport,
        cache: TTLCache[Resolved] | None = None,
        *,
        max_depth: int = DEFAULT_MAX_DEPTH,
        suggestion_cache: TTLCache[list[RenameSuggestion]] | None = None,
        suggestion_max_depth: int = DEFAULT_SUGGESTION_DEPTH,
        clock: Clock | None = None,
    ) -> None:
        self._transport = transport
        self._cache: TTLCache[Resolved] = cache or TTLCache(RESOLUTION_TTL, clock=clock)
        self._suggestions: TTLCache[list[RenameSuggestion]] = suggestion_cache or TTLCache(
            SUGGESTION_TTL, clock=clock
        )
        self._walker = TreeWalker(transport, max_depth=max_depth)
        self._suggestion_walker = TreeWalker(transport, max_depth=suggestion_max_depth)

    # -------------------------------------------------------------------------
    # Drives and sheets
    # -------------------------------------------------------------------------

    async def resolve_drive(self, name: str) -> Resolved:
        """Resolve a drive by name (case-insensitive).

        When several drives share a name the first one listed wins.
        """
        _require(name, "drive_name")
        key = f"drive:{name.lower()}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        drives = await self._transport.list_drives()
        matches = [d for d in drives if d.name.lower() == name.lower()]
        if not matches:
            raise NotFoundError("drive", name, [d.name for d in drives])
        if len(matches) > 1:
            logger.warning(
                "Several drives share a name, using the first",
                extra={"drive_name": name, "count": len(matches)},
            )

        drive = matches[0]
        resolved = Resolved(id=drive.id, name=drive.name, path=ROOT_PATH)
        self._cache.set(key, resolved)
        return resolved

    async def resolve_sheet(self, drive_id: str, item_id: str, name: str) -> Resolved:
        """Resolve a worksheet by name (case-insensitive)."""
        _require(name, "sheet_name")
        key = f"sheet:{item_id}:{name.lower()}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        sheets = await self._transport.list_sheets(drive_id, item_id)
        for sheet in sheets:
            if sheet.name.lower() == name.lower():
                resolved = Resolved(id=sheet.id, name=sheet.name, path=sheet.name)
                self._cache.set(key, resolved)
                return resolved
        raise NotFoundError("sheet", name, [s.name for s in sheets])

    # -------------------------------------------------------------------------
    # Folders and files
    # -------------------------------------------------------------------------

    async def lookup_container(self, drive_id: str, name: str) -> ResolutionOutcome:
        """Find a folder anywhere in the drive, without raising."""
        _require(name, "folder_name")
        return await self._lookup(
            drive_id,
            name,
            kind="folder",
            containers=True,
            base_id=ROOT_ID,
            base_path=ROOT_PATH,
        )

    async def lookup_item(
        self, drive_id: str, name: str, *, container: Resolved | None = None
    ) -> ResolutionOutcome:
        """Find a file under ``container`` (or the drive root), without raising."""
        _require(name, "file_name")
        return await self._lookup(
            drive_id,
            name,
            kind="file",
            containers=False,
            base_id=container.id if container else ROOT_ID,
            base_path=container.path if container else ROOT_PATH,
        )

    async def resolve_container(self, drive_id: str, name: str) -> Resolved:
        """Resolve a folder by name, raising NotFoundError or AmbiguousError."""
        outcome = await self.lookup_container(drive_id, name)
        return outcome.unwrap()

    async def resolve_item(
        self, drive_id: str, name: str, *, container: Resolved | None = None
    ) -> Resolved:
        """Resolve a file by name, raising NotFoundError or AmbiguousError."""
        outcome = await self.lookup_item(drive_id, name, container=container)
        return outcome.unwrap()

    async def resolve_item_by_path(self, drive_id: str, name: str, path: str) -> Resolved:
        """Pick the file named ``name`` whose full path is exactly ``path``.

        This is how an ``Ambiguous`` outcome is collapsed: pass one of its
        candidate paths. The search always starts at the drive root because
        the path is absolute.

        Raises:
            NotFoundError: No candidate has that path; ``available`` lists the
                paths that do exist for the name.
        """
        _require(name, "file_name")
        _require(path, "item_path")
        return await self._resolve_by_path(drive_id, name, path, containers=False)

    async def resolve_container_by_path(self, drive_id: str, name: str, path: str) -> Resolved:
        """Pick the folder named ``name`` whose full path is exactly ``path``."""
        _require(name, "folder_name")
        _require(path, "folder_path")
        return await self._resolve_by_path(drive_id, name, path, containers=True)

    async def _resolve_by_path(
        self, drive_id: str, name: str, path: str, *, containers: bool
    ) -> Resolved:
        wanted = _normalize_path(path)
        cache_kind = "container_path" if containers else "item_path"
        key = f"{cache_kind}:{drive_id}:{name.lower()}:{wanted}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        root_children = await self._list_root(drive_id, ROOT_ID, ROOT_PATH)
        result = await self._walker.walk(
            drive_id,
            name_predicate(name, containers=containers),
            root_children=root_children,
        )
        for candidate in result.matches:
            if _normalize_path(candidate.path) == wanted:
                resolved = _to_resolved(candidate)
                self._cache.set(key, resolved)
                return resolved
        raise NotFoundError("path", path, [c.path for c in result.matches])

    async def resolve_path(self, drive_id: str, full_path: str) -> Resolved:
        """Navigate ``/Folder/Sub/file.xlsx`` one level at a time.

        Inner segments must be folders; the last segment may be a folder or
        a file. Exact-case names win over case-insensitive ones.
        """
        _require(full_path, "path")
        if not full_path.startswith("/"):
            raise ValidationError("Path must start with '/'", field="path")
        wanted = _normalize_path(full_path)
        key = f"path:{drive_id}:{wanted}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        segments = [s for s in wanted.split("/") if s]
        if not segments:
            return Resolved(id=ROOT_ID, name="", path=ROOT_PATH)

        current = Resolved(id=ROOT_ID, name="", path=ROOT_PATH)
        for index, segment in enumerate(segments):
            last = index == len(segments) - 1
            children = await self._transport.list_children(drive_id, current.id)
            eligible = [c for c in children if last or c.is_container]
            node = _pick_by_name(eligible, segment)
            if node is None:
                kind = "item" if last else "folder"
                raise NotFoundError(kind, segment, [c.name for c in eligible])
            current = Resolved(id=node.id, name=node.name, path=join_path(current.path, node.name))

        self._cache.set(key, current)
        return current

    # -------------------------------------------------------------------------
    # Full requests
    # -------------------------------------------------------------------------

    async def resolve(self, request: ResolutionRequest) -> Resolution:
        """Resolve every name in a request.

        Steps are skipped for names that are not given. ``item_path``
        disambiguates the file by exact path.
        """
        drive = await self.resolve_drive(request.drive_name)
        resolution = Resolution(drive_id=drive.id, drive_name=drive.name)

        container: Resolved | None = None
        if request.folder_name:
            container = await self.resolve_container(drive.id, request.folder_name)
            resolution.folder_id = container.id
            resolution.folder_name = container.name
            resolution.folder_path = container.path

        if request.file_name:
            if request.item_path:
                item = await self.resolve_item_by_path(
                    drive.id, request.file_name, request.item_path
                )
            else:
                item = await self.resolve_item(drive.id, request.file_name, container=container)
            resolution.item_id = item.id
            resolution.file_name = item.name
            resolution.file_path = item.path
        elif request.sheet_name:
            raise ValidationError("sheet_name requires file_name", field="sheet_name")

        if request.sheet_name and resolution.item_id:
            sheet = await self.resolve_sheet(drive.id, resolution.item_id, request.sheet_name)
            resolution.sheet_id = sheet.id
            resolution.sheet_name = sheet.name

        logger.debug(
            "Resolved request",
            extra={
                "drive_id": resolution.drive_id,
                "item_id": resolution.item_id,
                "sheet_id": resolution.sheet_id,
            },
        )
        return resolution

    # -------------------------------------------------------------------------
    # Rename suggestions
    # -------------------------------------------------------------------------

    async def find_related_items(
        self, drive_id: str, old_term: str, new_term: str
    ) -> list[RenameSuggestion]:
        """List folders and files whose name contains ``old_term``.

        Each suggestion replaces every occurrence of ``old_term`` (ignoring
        case) with ``new_term``. Nothing is renamed.
        """
        _require(old_term, "old_term")
        key = f"related:{drive_id}:{old_term.lower()}:{new_term}"
        cached = self._suggestions.get(key)
        if cached is not None:
            return list(cached)

        needle = old_term.lower()
        pattern = re.compile(re.escape(old_term), re.IGNORECASE)
        result = await self._suggestion_walker.walk(
            drive_id, lambda node: needle in node.name.lower()
        )
        suggestions = [
            RenameSuggestion(
                id=c.id,
                current_name=c.name,
                suggested_name=pattern.sub(lambda _m: new_term, c.name),
                path=c.path,
                is_container=c.is_container,
                parent_id=c.parent_id,
            )
            for c in result.matches
        ]
        self._suggestions.set(key, suggestions)
        logger.info(
            "Found related items",
            extra={"drive_id": drive_id, "term": old_term, "count": len(suggestions)},
        )
        return list(suggestions)

    # -------------------------------------------------------------------------
    # Cache management
    # -------------------------------------------------------------------------

    def invalidate_drive(self, drive_id: str) -> int:
        """Forget folder, file and path resolutions (and suggestions) in a drive.

        Called after a rename, which can change any path below the renamed
        node. Returns the number of entries dropped.
        """
        dropped = 0
        for kind in ("container", "item", "container_path", "item_path", "path"):
            dropped += self._cache.invalidate_prefix(f"{kind}:{drive_id}:")
        dropped += self._suggestions.invalidate_prefix(f"related:{drive_id}:")
        return dropped

    def invalidate_sheets(self, item_id: str) -> int:
        """Forget sheet resolutions of one workbook."""
        return self._cache.invalidate_prefix(f"sheet:{item_id}:")

    def clear_cache(self) -> None:
        self._cache.clear()
        self._suggestions.clear()

    def cache_stats(self) -> dict[str, Any]:
        return {
            "resolution": self._cache.stats(),
            "suggestions": self._suggestions.stats(),
        }

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _lookup(
        self,
        drive_id: str,
        name: str,
        *,
        kind: str,
        containers: bool,
        base_id: str,
        base_path: str,
    ) -> ResolutionOutcome:
        cache_kind = "container" if containers else "item"
        key = f"{cache_kind}:{drive_id}:{base_id}:{name.lower()}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        children = await self._list_root(drive_id, base_id, base_path)
        predicate = name_predicate(name, containers=containers)

        direct = [c for c in children if predicate(c)]
        if len(direct) == 1:
            node = direct[0]
            resolved = Resolved(id=node.id, name=node.name, path=join_path(base_path, node.name))
            self._cache.set(key, resolved)
            return resolved

        result = await self._walker.walk(
            drive_id,
            predicate,
            root_id=base_id,
            root_path=base_path,
            root_children=children,
        )
        available = [c.name for c in children if c.is_container == containers]
        outcome = classify(kind, name, result.matches, available)
        if isinstance(outcome, Resolved):
            self._cache.set(key, outcome)
        else:
            logger.info(
                "Name did not resolve to a single node",
                extra={
                    "kind": kind,
                    "name": name,
                    "candidates": len(result.matches),
                    "skipped_branches": len(result.skipped),
                },
            )
        return outcome

    async def _list_root(self, drive_id: str, base_id: str, base_path: str) -> list[TreeNode]:
        try:
            return await self._transport.list_children(drive_id, base_id)
        except UpstreamError:
            logger.error(
                "Failed to list search root",
                extra={"drive_id": drive_id, "container_id": base_id, "path": base_path},
            )
            raise


def _require(value: str | None, field: str) -> None:
    if not value or not value.strip():
        raise ValidationError(f"{field} is required", field=field)


def _normalize_path(path: str) -> str:
    stripped = path.strip()
    if len(stripped) > 1:
        stripped = stripped.rstrip("/")
    return stripped or ROOT_PATH


def _to_resolved(candidate: Candidate) -> Resolved:
    return Resolved(id=candidate.id, name=candidate.name, path=candidate.path)


def _pick_by_name(nodes: list[TreeNode], name: str) -> TreeNode | None:
    for node in nodes:
        if node.name == name:
            return node
    for node in nodes:
        if node.name.lower() == name.lower():
            return node
    return None
