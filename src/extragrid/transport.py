"""Transport layer for drive trees and workbook grids.

Defines the Transport protocol and implementations:
- GraphTransport: Production transport using the Microsoft Graph API
- LocalFileTransport: Test transport serving an in-memory drive loaded from
  a golden JSON file
"""

from __future__ import annotations

import copy
import dataclasses
import json
import ssl
import urllib.parse
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import certifi
import httpx
from loguru import logger

from extragrid.exceptions import (
    APIError,
    AuthenticationError,
    ConflictError,
    RemoteNotFoundError,
    UpstreamError,
)
from extragrid.types import ROOT_ID, join_path
from extragrid.utils import (
    a1_to_cell,
    cell_to_a1,
    chunked,
    is_empty,
    parse_sheet_and_address,
    range_anchor,
)

# API constants
GRAPH_BASE = "https://graph.microsoft.com/v1.0"
DEFAULT_TIMEOUT = 60
MAX_BATCH_REQUESTS = 20  # Graph JSON batching limit
PAGE_SIZE = 999


@dataclass(frozen=True)
class DriveInfo:
    """A document library (drive) visible to the caller."""

    id: str
    name: str
    drive_type: str | None = None


@dataclass(frozen=True)
class TreeNode:
    """A folder (container) or file (item) in a drive."""

    id: str
    name: str
    is_container: bool
    parent_id: str | None = None
    parent_path: str | None = None


@dataclass(frozen=True)
class SheetInfo:
    """A worksheet inside a workbook."""

    id: str
    name: str
    position: int | None = None


@dataclass(frozen=True)
class RangeSnapshot:
    """Values read from a worksheet range.

    ``address`` is the range the server actually returned, which for a used
    range need not start at A1. All absolute cell addresses must be derived
    from it via ``start_row`` / ``start_col``.
    """

    address: str
    values: tuple[tuple[Any, ...], ...]

    @classmethod
    def from_response(cls, response: dict[str, Any]) -> RangeSnapshot:
        values = response.get("values") or []
        return cls(
            address=response.get("address") or "",
            values=tuple(tuple(row) for row in values),
        )

    @property
    def sheet_name(self) -> str | None:
        sheet, _ = parse_sheet_and_address(self.address)
        return sheet

    @property
    def start_row(self) -> int:
        return range_anchor(self.address)[0]

    @property
    def start_col(self) -> int:
        return range_anchor(self.address)[1]

    @property
    def row_count(self) -> int:
        return len(self.values)

    @property
    def column_count(self) -> int:
        return max((len(row) for row in self.values), default=0)

    def cell_address(self, row_offset: int, col_offset: int) -> str:
        """Absolute A1 address of the value at ``values[row_offset][col_offset]``."""
        return cell_to_a1(self.start_row + row_offset, self.start_col + col_offset)

    def value_at(self, address: str) -> Any:
        """Value at an absolute A1 address, or None when outside the snapshot."""
        row, col = a1_to_cell(address)
        r, c = row - self.start_row, col - self.start_col
        if r < 0 or c < 0 or r >= len(self.values) or c >= len(self.values[r]):
            return None
        return self.values[r][c]


@dataclass(frozen=True)
class CellUpdate:
    """A single-cell write."""

    address: str
    value: Any


@dataclass(frozen=True)
class BatchResult:
    """Outcome of one update inside a batch submission."""

    address: str
    ok: bool
    status: int
    error: str | None = None


class Transport(ABC):
    """Abstract base class for drive and workbook access.

    Implementations must provide tree listing, worksheet reads and range
    writes against some source (Microsoft Graph, local files, etc.).
    """

    @abstractmethod
    async def list_drives(self) -> list[DriveInfo]:
        """List the drives available to the caller."""
        ...

    @abstractmethod
    async def list_children(self, drive_id: str, container_id: str) -> list[TreeNode]:
        """List the direct children of a container.

        Args:
            drive_id: The drive identifier
            container_id: Folder id, or ``"root"`` for the drive root

        Returns:
            Child nodes, folders and files alike
        """
        ...

    @abstractmethod
    async def get_item(self, drive_id: str, item_id: str) -> TreeNode:
        """Fetch metadata for a single node."""
        ...

    @abstractmethod
    async def list_sheets(self, drive_id: str, item_id: str) -> list[SheetInfo]:
        """List the worksheets of a workbook, in workbook order."""
        ...

    @abstractmethod
    async def get_used_range(
        self,
        drive_id: str,
        item_id: str,
        sheet: str,
        values_only: bool = True,
    ) -> RangeSnapshot:
        """Read the used range of a worksheet.

        Args:
            drive_id: The drive identifier
            item_id: The workbook identifier
            sheet: Worksheet id or name
            values_only: Ignore cells that only carry formatting

        Returns:
            RangeSnapshot anchored at the used range's top-left cell
        """
        ...

    @abstractmethod
    async def get_range(
        self, drive_id: str, item_id: str, sheet: str, address: str
    ) -> RangeSnapshot:
        """Read an explicit A1 range from a worksheet."""
        ...

    @abstractmethod
    async def patch_range(
        self,
        drive_id: str,
        item_id: str,
        sheet: str,
        address: str,
        values: list[list[Any]],
    ) -> RangeSnapshot:
        """Overwrite the values of an A1 range."""
        ...

    @abstractmethod
    async def batch_patch(
        self,
        drive_id: str,
        item_id: str,
        sheet: str,
        updates: list[CellUpdate],
    ) -> list[BatchResult]:
        """Submit several single-cell writes in one request.

        Raises an UpstreamError if the submission as a whole fails;
        individual failures are reported in the returned results.
        """
        ...

    @abstractmethod
    async def set_fill(
        self, drive_id: str, item_id: str, sheet: str, address: str, color: str
    ) -> None:
        """Set the background fill of a range."""
        ...

    @abstractmethod
    async def rename_item(self, drive_id: str, item_id: str, new_name: str) -> TreeNode:
        """Rename a file or folder in place.

        Raises:
            ConflictError: A sibling already has ``new_name``
        """
        ...

    @abstractmethod
    async def rename_sheet(
        self, drive_id: str, item_id: str, sheet: str, new_name: str
    ) -> SheetInfo:
        """Rename a worksheet (by id or name).

        Raises:
            ConflictError: Another sheet of the workbook has ``new_name``
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        ...


class GraphTransport(Transport):
    """Production transport using the Microsoft Graph API.

    Handles authentication, SSL, paging and JSON batching.
    """

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = GRAPH_BASE,
        site_id: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            access_token: OAuth2 bearer token with Files/Sites read-write scope
            base_url: Graph endpoint root
            site_id: SharePoint site whose drives are listed; the caller's
                own drives (``/me/drives``) when omitted
            timeout: Request timeout in seconds
            client: Pre-built HTTP client (tests inject a mock transport)
        """
        self._base_url = base_url.rstrip("/")
        self._site_id = site_id
        if client is None:
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            client = httpx.AsyncClient(
                timeout=timeout,
                verify=ssl_context,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
            )
        self._client = client

    async def list_drives(self) -> list[DriveInfo]:
        path = f"/sites/{self._site_id}/drives" if self._site_id else "/me/drives"
        items = await self._get_paged(path, operation="list_drives")
        return [
            DriveInfo(id=d["id"], name=d.get("name", ""), drive_type=d.get("driveType"))
            for d in items
        ]

    async def list_children(self, drive_id: str, container_id: str) -> list[TreeNode]:
        path = f"/drives/{_quote(drive_id)}/items/{_quote(container_id)}/children"
        items = await self._get_paged(
            path,
            params={"$select": "id,name,folder,parentReference", "$top": str(PAGE_SIZE)},
            operation="list_children",
        )
        return [_parse_node(item, fallback_parent=container_id) for item in items]

    async def get_item(self, drive_id: str, item_id: str) -> TreeNode:
        path = f"/drives/{_quote(drive_id)}/items/{_quote(item_id)}"
        response = await self._request("GET", path, operation="get_item")
        return _parse_node(response)

    async def list_sheets(self, drive_id: str, item_id: str) -> list[SheetInfo]:
        path = f"{_workbook_path(drive_id, item_id)}/worksheets"
        items = await self._get_paged(path, operation="list_sheets")
        return [
            SheetInfo(id=ws["id"], name=ws.get("name", ""), position=ws.get("position"))
            for ws in items
        ]

    async def get_used_range(
        self,
        drive_id: str,
        item_id: str,
        sheet: str,
        values_only: bool = True,
    ) -> RangeSnapshot:
        suffix = "usedRange(valuesOnly=true)" if values_only else "usedRange"
        path = f"{_sheet_path(drive_id, item_id, sheet)}/{suffix}"
        response = await self._request("GET", path, operation="get_used_range")
        return RangeSnapshot.from_response(response)

    async def get_range(
        self, drive_id: str, item_id: str, sheet: str, address: str
    ) -> RangeSnapshot:
        path = _range_path(drive_id, item_id, sheet, address)
        response = await self._request("GET", path, operation="get_range")
        return RangeSnapshot.from_response(response)

    async def patch_range(
        self,
        drive_id: str,
        item_id: str,
        sheet: str,
        address: str,
        values: list[list[Any]],
    ) -> RangeSnapshot:
        path = _range_path(drive_id, item_id, sheet, address)
        response = await self._request(
            "PATCH", path, json_body={"values": values}, operation="patch_range"
        )
        return RangeSnapshot.from_response(response)

    async def batch_patch(
        self,
        drive_id: str,
        item_id: str,
        sheet: str,
        updates: list[CellUpdate],
    ) -> list[BatchResult]:
        results: list[BatchResult] = []
        for chunk in chunked(updates, MAX_BATCH_REQUESTS):
            requests = [
                {
                    "id": str(index),
                    "method": "PATCH",
                    "url": _range_path(drive_id, item_id, sheet, update.address),
                    "headers": {"Content-Type": "application/json"},
                    "body": {"values": [[update.value]]},
                }
                for index, update in enumerate(chunk)
            ]
            response = await self._request(
                "POST", "/$batch", json_body={"requests": requests}, operation="batch_patch"
            )
            by_id = {r.get("id"): r for r in response.get("responses", [])}
            for index, update in enumerate(chunk):
                reply = by_id.get(str(index))
                if reply is None:
                    results.append(
                        BatchResult(update.address, ok=False, status=0, error="No response")
                    )
                    continue
                status = int(reply.get("status", 0))
                if 200 <= status < 300:
                    results.append(BatchResult(update.address, ok=True, status=status))
                else:
                    results.append(
                        BatchResult(
                            update.address,
                            ok=False,
                            status=status,
                            error=_error_message(reply.get("body")) or f"HTTP {status}",
                        )
                    )
        return results

    async def set_fill(
        self, drive_id: str, item_id: str, sheet: str, address: str, color: str
    ) -> None:
        path = f"{_range_path(drive_id, item_id, sheet, address)}/format/fill"
        await self._request("PATCH", path, json_body={"color": color}, operation="set_fill")

    async def rename_item(self, drive_id: str, item_id: str, new_name: str) -> TreeNode:
        path = f"/drives/{_quote(drive_id)}/items/{_quote(item_id)}"
        response = await self._request(
            "PATCH", path, json_body={"name": new_name}, operation="rename_item"
        )
        return _parse_node(response)

    async def rename_sheet(
        self, drive_id: str, item_id: str, sheet: str, new_name: str
    ) -> SheetInfo:
        response = await self._request(
            "PATCH",
            _sheet_path(drive_id, item_id, sheet),
            json_body={"name": new_name},
            operation="rename_sheet",
        )
        return SheetInfo(
            id=response["id"],
            name=response.get("name", new_name),
            position=response.get("position"),
        )

    async def _get_paged(
        self,
        path: str,
        *,
        params: dict[str, str] | None = None,
        operation: str,
    ) -> list[dict[str, Any]]:
        """GET a collection, following ``@odata.nextLink`` until exhausted."""
        response = await self._request("GET", path, params=params, operation=operation)
        items: list[dict[str, Any]] = list(response.get("value", []))
        next_link = response.get("@odata.nextLink")
        while next_link:
            response = await self._request("GET", next_link, operation=operation)
            items.extend(response.get("value", []))
            next_link = response.get("@odata.nextLink")
        return items

    async def _request(
        self,
        method: str,
        path_or_url: str,
        *,
        params: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        operation: str,
    ) -> dict[str, Any]:
        """Make an authenticated request and decode the JSON body."""
        url = path_or_url if path_or_url.startswith("http") else f"{self._base_url}{path_or_url}"
        logger.debug(
            "Graph request", extra={"method": method, "url": url, "operation": operation}
        )
        try:
            response = await self._client.request(method, url, params=params, json=json_body)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            message = _error_message(_safe_json(e.response)) or e.response.text
            if status in (401, 403):
                raise AuthenticationError(
                    message or "Access denied. Check the token's scopes and permissions.",
                    operation=operation,
                    status_code=status,
                ) from e
            if status == 404:
                raise RemoteNotFoundError(
                    message or "Resource not found", operation=operation, status_code=status
                ) from e
            if status == 409:
                raise ConflictError(
                    message or "Name already exists", operation=operation, status_code=status
                ) from e
            raise APIError(
                f"API error ({status}): {message}", operation=operation, status_code=status
            ) from e
        except httpx.RequestError as e:
            raise UpstreamError(f"Network error: {e}", operation=operation) from e

        if not response.content:
            return {}
        result: dict[str, Any] = response.json()
        return result

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


class LocalFileTransport(Transport):
    """Test transport serving a drive tree and workbooks from memory.

    The fixture is either a dict or the path of a JSON file shaped like::

        {
          "drives": [
            {"id": "d1", "name": "Documents", "children": [
              {"id": "f1", "name": "Reports", "folder": true, "children": [...]},
              {"id": "i1", "name": "Budget.xlsx", "sheets": [
                {"id": "s1", "name": "Sheet1", "anchor": "A1", "values": [[...]]}
              ]}
            ]}
          ]
        }

    Writes and renames mutate the in-memory copy and are recorded in
    ``writes``, ``fills`` and ``renames``; every call is counted in ``calls``.
    """

    def __init__(self, fixture: Path | str | dict[str, Any]) -> None:
        """Initialize the transport.

        Args:
            fixture: Golden file path or an already-parsed fixture dict
        """
        if isinstance(fixture, (str, Path)):
            path = Path(fixture)
            if not path.exists():
                raise RemoteNotFoundError(
                    f"Golden file not found: {path}", operation="load_fixture"
                )
            data = json.loads(path.read_text(encoding="utf-8"))
        else:
            data = copy.deepcopy(fixture)

        self.calls: Counter[str] = Counter()
        self.writes: list[dict[str, Any]] = []
        self.fills: list[dict[str, Any]] = []
        self.renames: list[dict[str, Any]] = []

        self._drives: list[DriveInfo] = []
        self._children: dict[tuple[str, str], list[TreeNode]] = {}
        self._nodes: dict[tuple[str, str], TreeNode] = {}
        # (drive_id, item_id) -> list of sheet ids in order
        self._sheet_order: dict[tuple[str, str], list[SheetInfo]] = {}
        # (drive_id, item_id, sheet_id) -> {(row, col): value}
        self._cells: dict[tuple[str, str, str], dict[tuple[int, int], Any]] = {}

        for drive in data.get("drives", []):
            drive_id = drive["id"]
            self._drives.append(
                DriveInfo(id=drive_id, name=drive["name"], drive_type=drive.get("driveType"))
            )
            self._load_children(drive_id, ROOT_ID, "/", drive.get("children", []))

    def _load_children(
        self, drive_id: str, parent_id: str, parent_path: str, children: list[dict[str, Any]]
    ) -> None:
        nodes: list[TreeNode] = []
        for child in children:
            is_container = bool(child.get("folder")) or "children" in child
            node = TreeNode(
                id=child["id"],
                name=child["name"],
                is_container=is_container,
                parent_id=parent_id,
                parent_path=parent_path,
            )
            nodes.append(node)
            self._nodes[(drive_id, node.id)] = node
            if is_container:
                child_path = f"{parent_path.rstrip('/')}/{node.name}"
                self._load_children(drive_id, node.id, child_path, child.get("children", []))
            else:
                self._load_sheets(drive_id, node.id, child.get("sheets", []))
        self._children[(drive_id, parent_id)] = nodes

    def _load_sheets(self, drive_id: str, item_id: str, sheets: list[dict[str, Any]]) -> None:
        infos: list[SheetInfo] = []
        for position, sheet in enumerate(sheets):
            info = SheetInfo(id=sheet["id"], name=sheet["name"], position=position)
            infos.append(info)
            start_row, start_col = a1_to_cell(sheet.get("anchor", "A1"))
            cells: dict[tuple[int, int], Any] = {}
            for r, row in enumerate(sheet.get("values", [])):
                for c, value in enumerate(row):
                    if not is_empty(value):
                        cells[(start_row + r, start_col + c)] = value
            self._cells[(drive_id, item_id, info.id)] = cells
        self._sheet_order[(drive_id, item_id)] = infos

    async def list_drives(self) -> list[DriveInfo]:
        self.calls["list_drives"] += 1
        return list(self._drives)

    async def list_children(self, drive_id: str, container_id: str) -> list[TreeNode]:
        self.calls["list_children"] += 1
        key = (drive_id, container_id)
        if key not in self._children:
            raise RemoteNotFoundError(
                f"Container not found: {container_id}", operation="list_children", status_code=404
            )
        return list(self._children[key])

    async def get_item(self, drive_id: str, item_id: str) -> TreeNode:
        self.calls["get_item"] += 1
        node = self._nodes.get((drive_id, item_id))
        if node is None:
            raise RemoteNotFoundError(
                f"Item not found: {item_id}", operation="get_item", status_code=404
            )
        return node

    async def list_sheets(self, drive_id: str, item_id: str) -> list[SheetInfo]:
        self.calls["list_sheets"] += 1
        key = (drive_id, item_id)
        if key not in self._sheet_order:
            raise RemoteNotFoundError(
                f"Workbook not found: {item_id}", operation="list_sheets", status_code=404
            )
        return list(self._sheet_order[key])

    async def get_used_range(
        self,
        drive_id: str,
        item_id: str,
        sheet: str,
        values_only: bool = True,  # noqa: ARG002
    ) -> RangeSnapshot:
        self.calls["get_used_range"] += 1
        info, cells = self._sheet(drive_id, item_id, sheet, "get_used_range")
        if not cells:
            return RangeSnapshot(address=f"{info.name}!A1", values=(("",),))
        rows = [r for r, _ in cells]
        cols = [c for _, c in cells]
        return self._snapshot(info, cells, min(rows), min(cols), max(rows), max(cols))

    async def get_range(
        self, drive_id: str, item_id: str, sheet: str, address: str
    ) -> RangeSnapshot:
        self.calls["get_range"] += 1
        info, cells = self._sheet(drive_id, item_id, sheet, "get_range")
        (r1, c1), (r2, c2) = _bounds(address)
        return self._snapshot(info, cells, r1, c1, r2, c2)

    async def patch_range(
        self,
        drive_id: str,
        item_id: str,
        sheet: str,
        address: str,
        values: list[list[Any]],
    ) -> RangeSnapshot:
        self.calls["patch_range"] += 1
        info, cells = self._sheet(drive_id, item_id, sheet, "patch_range")
        return self._write(info, cells, address, values)

    async def batch_patch(
        self,
        drive_id: str,
        item_id: str,
        sheet: str,
        updates: list[CellUpdate],
    ) -> list[BatchResult]:
        self.calls["batch_patch"] += 1
        info, cells = self._sheet(drive_id, item_id, sheet, "batch_patch")
        results: list[BatchResult] = []
        for update in updates:
            self._write(info, cells, update.address, [[update.value]])
            results.append(BatchResult(update.address, ok=True, status=200))
        return results

    async def set_fill(
        self, drive_id: str, item_id: str, sheet: str, address: str, color: str
    ) -> None:
        self.calls["set_fill"] += 1
        info, _ = self._sheet(drive_id, item_id, sheet, "set_fill")
        self.fills.append({"sheet": info.name, "address": address, "color": color})

    async def rename_item(self, drive_id: str, item_id: str, new_name: str) -> TreeNode:
        self.calls["rename_item"] += 1
        node = self._nodes.get((drive_id, item_id))
        if node is None:
            raise RemoteNotFoundError(
                f"Item not found: {item_id}", operation="rename_item", status_code=404
            )
        parent_key = (drive_id, node.parent_id or ROOT_ID)
        siblings = self._children.get(parent_key, [])
        if any(s.id != item_id and s.name.lower() == new_name.lower() for s in siblings):
            raise ConflictError(
                f"An item named '{new_name}' already exists in this location",
                operation="rename_item",
                status_code=409,
            )

        renamed = dataclasses.replace(node, name=new_name)
        self._nodes[(drive_id, item_id)] = renamed
        self._children[parent_key] = [renamed if s.id == item_id else s for s in siblings]
        if renamed.is_container:
            self._move_children(drive_id, item_id, join_path(renamed.parent_path or "/", new_name))
        self.renames.append({"kind": "item", "id": item_id, "old": node.name, "new": new_name})
        return renamed

    async def rename_sheet(
        self, drive_id: str, item_id: str, sheet: str, new_name: str
    ) -> SheetInfo:
        self.calls["rename_sheet"] += 1
        info, _ = self._sheet(drive_id, item_id, sheet, "rename_sheet")
        order = self._sheet_order[(drive_id, item_id)]
        if any(s.id != info.id and s.name.lower() == new_name.lower() for s in order):
            raise ConflictError(
                f"A worksheet named '{new_name}' already exists in this workbook",
                operation="rename_sheet",
                status_code=409,
            )

        renamed = dataclasses.replace(info, name=new_name)
        self._sheet_order[(drive_id, item_id)] = [
            renamed if s.id == info.id else s for s in order
        ]
        self.renames.append({"kind": "sheet", "id": info.id, "old": info.name, "new": new_name})
        return renamed

    async def close(self) -> None:
        """No-op for local file transport."""
        pass

    def cell(self, drive_id: str, item_id: str, sheet: str, address: str) -> Any:
        """Current value of a cell, for assertions."""
        _, cells = self._sheet(drive_id, item_id, sheet, "cell")
        return cells.get(a1_to_cell(address))

    def _move_children(self, drive_id: str, container_id: str, container_path: str) -> None:
        """Rewrite the recorded parent path of everything below a renamed folder."""
        key = (drive_id, container_id)
        moved = [
            dataclasses.replace(c, parent_path=container_path)
            for c in self._children.get(key, [])
        ]
        self._children[key] = moved
        for child in moved:
            self._nodes[(drive_id, child.id)] = child
            if child.is_container:
                self._move_children(drive_id, child.id, join_path(container_path, child.name))

    def _sheet(
        self, drive_id: str, item_id: str, sheet: str, operation: str
    ) -> tuple[SheetInfo, dict[tuple[int, int], Any]]:
        for info in self._sheet_order.get((drive_id, item_id), []):
            if sheet in (info.id, info.name):
                return info, self._cells[(drive_id, item_id, info.id)]
        raise RemoteNotFoundError(
            f"Worksheet not found: {sheet}", operation=operation, status_code=404
        )

    def _write(
        self,
        info: SheetInfo,
        cells: dict[tuple[int, int], Any],
        address: str,
        values: list[list[Any]],
    ) -> RangeSnapshot:
        (r1, c1), _ = _bounds(address)
        for r, row in enumerate(values):
            for c, value in enumerate(row):
                if is_empty(value):
                    cells.pop((r1 + r, c1 + c), None)
                else:
                    cells[(r1 + r, c1 + c)] = value
        self.writes.append({"sheet": info.name, "address": address, "values": values})
        height = max(len(values), 1)
        width = max((len(row) for row in values), default=1)
        return self._snapshot(info, cells, r1, c1, r1 + height - 1, c1 + width - 1)

    @staticmethod
    def _snapshot(
        info: SheetInfo,
        cells: dict[tuple[int, int], Any],
        r1: int,
        c1: int,
        r2: int,
        c2: int,
    ) -> RangeSnapshot:
        values = tuple(
            tuple(cells.get((r, c), "") for c in range(c1, c2 + 1)) for r in range(r1, r2 + 1)
        )
        start, end = cell_to_a1(r1, c1), cell_to_a1(r2, c2)
        address = f"{info.name}!{start}" if start == end else f"{info.name}!{start}:{end}"
        return RangeSnapshot(address=address, values=values)


def _parse_node(item: dict[str, Any], fallback_parent: str | None = None) -> TreeNode:
    parent = item.get("parentReference") or {}
    return TreeNode(
        id=item["id"],
        name=item.get("name", ""),
        is_container="folder" in item,
        parent_id=parent.get("id", fallback_parent),
        parent_path=parent.get("path"),
    )


def _bounds(address: str) -> tuple[tuple[int, int], tuple[int, int]]:
    """Zero-based (start, end) corners of a bare or sheet-qualified A1 range."""
    _, bare = parse_sheet_and_address(address)
    start, _, end = bare.partition(":")
    first = a1_to_cell(start)
    return first, a1_to_cell(end) if end else first


def _quote(segment: str) -> str:
    return urllib.parse.quote(segment, safe="")


def _workbook_path(drive_id: str, item_id: str) -> str:
    return f"/drives/{_quote(drive_id)}/items/{_quote(item_id)}/workbook"


def _sheet_path(drive_id: str, item_id: str, sheet: str) -> str:
    return f"{_workbook_path(drive_id, item_id)}/worksheets/{_quote(sheet)}"


def _range_path(drive_id: str, item_id: str, sheet: str, address: str) -> str:
    escaped = urllib.parse.quote(address.replace("'", "''"), safe=":$")
    return f"{_sheet_path(drive_id, item_id, sheet)}/range(address='{escaped}')"


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _error_message(body: Any) -> str | None:
    """Extract ``error.message`` from a Graph error body."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            return str(message) if message else None
    return None
