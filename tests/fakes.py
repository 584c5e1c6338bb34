"""Test fakes for extragrid.

These fakes inject failures into the local transport and control time for
the caches, so tests can exercise fault isolation and expiry
deterministically.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from extragrid.exceptions import APIError
from extragrid.transport import BatchResult, CellUpdate, LocalFileTransport, RangeSnapshot, TreeNode

GOLDEN_DIR = Path(__file__).parent / "golden"


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FlakyTransport(LocalFileTransport):
    """LocalFileTransport that fails selected calls with a 500.

    Args:
        fail_children: Container ids whose listing fails
        fail_used_range: Sheet ids or names whose used range cannot be read
        fail_batch: Every batch_patch call fails as a whole
        batch_rejects: Addresses rejected individually inside a batch
        fail_cells: Addresses whose single-cell patch fails
        fail_fill: Every set_fill call fails
    """

    def __init__(
        self,
        fixture: Path | dict[str, Any] | None = None,
        *,
        fail_children: set[str] | None = None,
        fail_used_range: set[str] | None = None,
        fail_batch: bool = False,
        batch_rejects: set[str] | None = None,
        fail_cells: set[str] | None = None,
        fail_fill: bool = False,
    ) -> None:
        super().__init__(fixture if fixture is not None else GOLDEN_DIR / "drive.json")
        self.fail_children = fail_children or set()
        self.fail_used_range = fail_used_range or set()
        self.fail_batch = fail_batch
        self.batch_rejects = batch_rejects or set()
        self.fail_cells = fail_cells or set()
        self.fail_fill = fail_fill

    async def list_children(self, drive_id: str, container_id: str) -> list[TreeNode]:
        if container_id in self.fail_children:
            self.calls["list_children"] += 1
            raise APIError("Internal error", operation="list_children", status_code=500)
        return await super().list_children(drive_id, container_id)

    async def get_used_range(
        self,
        drive_id: str,
        item_id: str,
        sheet: str,
        values_only: bool = True,
    ) -> RangeSnapshot:
        if sheet in self.fail_used_range:
            self.calls["get_used_range"] += 1
            raise APIError("Internal error", operation="get_used_range", status_code=500)
        return await super().get_used_range(drive_id, item_id, sheet, values_only)

    async def batch_patch(
        self,
        drive_id: str,
        item_id: str,
        sheet: str,
        updates: list[CellUpdate],
    ) -> list[BatchResult]:
        if self.fail_batch:
            self.calls["batch_patch"] += 1
            raise APIError("Batch rejected", operation="batch_patch", status_code=503)
        accepted = [u for u in updates if u.address not in self.batch_rejects]
        written = {
            r.address: r
            for r in await super().batch_patch(drive_id, item_id, sheet, accepted)
        }
        return [
            written.get(u.address)
            or BatchResult(u.address, ok=False, status=400, error="Invalid value")
            for u in updates
        ]

    async def patch_range(
        self,
        drive_id: str,
        item_id: str,
        sheet: str,
        address: str,
        values: list[list[Any]],
    ) -> RangeSnapshot:
        if address in self.fail_cells:
            self.calls["patch_range"] += 1
            raise APIError("Cell locked", operation="patch_range", status_code=423)
        return await super().patch_range(drive_id, item_id, sheet, address, values)

    async def set_fill(
        self, drive_id: str, item_id: str, sheet: str, address: str, color: str
    ) -> None:
        if self.fail_fill:
            self.calls["set_fill"] += 1
            raise APIError("Formatting unavailable", operation="set_fill", status_code=500)
        await super().set_fill(drive_id, item_id, sheet, address, color)


def deep_tree(levels: int, *, file_every_level: bool = True) -> dict[str, Any]:
    """A drive with a single chain of folders ``/L1/L2/...`` and a file in each.

    The file at level ``n`` is called ``level-n.xlsx``; every level also
    holds ``target.xlsx`` so the deepest copy sits at depth ``levels + 1``.
    """
    children: list[dict[str, Any]] = []
    for level in range(levels, 0, -1):
        files: list[dict[str, Any]] = []
        if file_every_level:
            files.append({"id": f"lvl{level}", "name": f"level-{level}.xlsx", "sheets": []})
        files.append({"id": f"target{level}", "name": "target.xlsx", "sheets": []})
        children = [
            {"id": f"L{level}", "name": f"L{level}", "folder": True, "children": children + files}
        ]
    return {"drives": [{"id": "deep", "name": "Deep", "children": children}]}
