"""Renaming files, folders and worksheets by name.

Every rename resolves its target through the NameResolver, writes through
the Transport and then drops the resolver entries the new name makes stale.
A folder rename changes the path of everything below it, so the whole
drive's folder, file and path entries are forgotten.
"""

from __future__ import annotations

import re

from loguru import logger

from extragrid.exceptions import ExtraGridError, ValidationError
from extragrid.resolver import NameResolver
from extragrid.transport import Transport
from extragrid.types import (
    BatchRenameOutcome,
    RenameError,
    RenameOperation,
    RenameResult,
    Resolved,
)

# OneDrive / SharePoint reject these in file and folder names
_ITEM_FORBIDDEN = re.compile(r'["*:<>?/\\|]')
# Excel rejects these in worksheet names
_SHEET_FORBIDDEN = re.compile(r"[:\\/?*\[\]]")
MAX_SHEET_NAME = 31


def validate_item_name(name: str) -> None:
    """Reject file and folder names the remote store would refuse."""
    if not name or not name.strip():
        raise ValidationError("new_name is required", field="new_name")
    if name != name.strip():
        raise ValidationError("Names cannot start or end with a space", field="new_name")
    if name.endswith("."):
        raise ValidationError("Names cannot end with '.'", field="new_name")
    if _ITEM_FORBIDDEN.search(name):
        raise ValidationError(
            f"'{name}' contains a character that is not allowed in file names",
            field="new_name",
        )


def validate_sheet_name(name: str) -> None:
    """Reject worksheet names Excel would refuse."""
    if not name or not name.strip():
        raise ValidationError("new_sheet_name is required", field="new_sheet_name")
    if len(name) > MAX_SHEET_NAME:
        raise ValidationError(
            f"Worksheet names are limited to {MAX_SHEET_NAME} characters",
            field="new_sheet_name",
        )
    if name.startswith("'") or name.endswith("'"):
        raise ValidationError(
            "Worksheet names cannot start or end with an apostrophe", field="new_sheet_name"
        )
    if _SHEET_FORBIDDEN.search(name):
        raise ValidationError(
            f"'{name}' contains a character that is not allowed in worksheet names",
            field="new_sheet_name",
        )


class RenameService:
    """Renames nodes and worksheets and keeps the resolver cache honest.

    Args:
        transport: Where the renames are written
        resolver: Resolver used to find targets; its cache is invalidated
            after every successful rename
    """

    def __init__(self, transport: Transport, resolver: NameResolver) -> None:
        self._transport = transport
        self._resolver = resolver

    # -------------------------------------------------------------------------
    # By identifier
    # -------------------------------------------------------------------------

    async def rename_item(self, drive_id: str, item_id: str, new_name: str) -> RenameResult:
        """Rename a file or folder by id."""
        validate_item_name(new_name)
        current = await self._transport.get_item(drive_id, item_id)
        try:
            renamed = await self._transport.rename_item(drive_id, item_id, new_name)
        except ExtraGridError:
            logger.error(
                "Failed to rename item",
                extra={"drive_id": drive_id, "item_id": item_id, "new_name": new_name},
            )
            raise

        self._resolver.invalidate_drive(drive_id)
        kind = "folder" if current.is_container else "file"
        logger.info(
            "Renamed item",
            extra={
                "drive_id": drive_id,
                "item_id": item_id,
                "kind": kind,
                "old_name": current.name,
                "new_name": renamed.name,
            },
        )
        return RenameResult(
            kind=kind,
            id=renamed.id,
            old_name=current.name,
            new_name=renamed.name,
            drive_id=drive_id,
        )

    async def rename_sheet(
        self, drive_id: str, item_id: str, old_sheet_name: str, new_sheet_name: str
    ) -> RenameResult:
        """Rename a worksheet of a workbook given by id."""
        validate_sheet_name(new_sheet_name)
        sheet = await self._resolver.resolve_sheet(drive_id, item_id, old_sheet_name)
        try:
            renamed = await self._transport.rename_sheet(
                drive_id, item_id, sheet.id, new_sheet_name
            )
        except ExtraGridError:
            logger.error(
                "Failed to rename worksheet",
                extra={"drive_id": drive_id, "item_id": item_id, "sheet": sheet.name},
            )
            raise

        self._resolver.invalidate_sheets(item_id)
        logger.info(
            "Renamed worksheet",
            extra={
                "drive_id": drive_id,
                "item_id": item_id,
                "old_name": sheet.name,
                "new_name": renamed.name,
            },
        )
        return RenameResult(
            kind="sheet",
            id=renamed.id,
            old_name=sheet.name,
            new_name=renamed.name,
            drive_id=drive_id,
            workbook_id=item_id,
        )

    # -------------------------------------------------------------------------
    # By name
    # -------------------------------------------------------------------------

    async def rename_file_by_name(
        self,
        drive_name: str,
        file_name: str,
        new_name: str,
        *,
        item_path: str | None = None,
    ) -> RenameResult:
        """Rename a file found by name; ``item_path`` settles ambiguity."""
        drive = await self._resolver.resolve_drive(drive_name)
        item = await self._file(drive.id, file_name, item_path)
        return await self.rename_item(drive.id, item.id, new_name)

    async def rename_folder_by_name(
        self,
        drive_name: str,
        folder_name: str,
        new_name: str,
        *,
        folder_path: str | None = None,
    ) -> RenameResult:
        """Rename a folder found by name; ``folder_path`` settles ambiguity."""
        drive = await self._resolver.resolve_drive(drive_name)
        folder = await self._folder(drive.id, folder_name, folder_path)
        return await self.rename_item(drive.id, folder.id, new_name)

    async def rename_sheet_by_name(
        self,
        drive_name: str,
        file_name: str,
        old_sheet_name: str,
        new_sheet_name: str,
        *,
        item_path: str | None = None,
    ) -> RenameResult:
        drive = await self._resolver.resolve_drive(drive_name)
        item = await self._file(drive.id, file_name, item_path)
        return await self.rename_sheet(drive.id, item.id, old_sheet_name, new_sheet_name)

    async def batch_rename(
        self, drive_name: str, operations: list[RenameOperation]
    ) -> BatchRenameOutcome:
        """Apply renames in order.

        An unknown drive fails the whole batch. Any other failure is recorded
        against its operation and the batch moves on.
        """
        drive = await self._resolver.resolve_drive(drive_name)
        outcome = BatchRenameOutcome(total=len(operations))

        for index, op in enumerate(operations):
            try:
                result = await self._apply(drive.id, op)
            except ExtraGridError as e:
                logger.warning(
                    "Rename operation failed",
                    extra={"index": index, "kind": op.kind, "name": op.name, "error": str(e)},
                )
                outcome.errors.append(
                    RenameError(index=index, kind=op.kind, name=op.name, error=str(e))
                )
            else:
                outcome.results.append(result)

        logger.info(
            "Batch rename complete",
            extra={
                "drive_id": drive.id,
                "total": outcome.total,
                "failed": len(outcome.errors),
            },
        )
        return outcome

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _apply(self, drive_id: str, op: RenameOperation) -> RenameResult:
        if op.kind == "sheet":
            item = await self._file(drive_id, op.file_name or "", op.path)
            return await self.rename_sheet(drive_id, item.id, op.name, op.new_name)
        if op.kind == "folder":
            target = await self._folder(drive_id, op.name, op.path)
        else:
            target = await self._file(drive_id, op.name, op.path)
        return await self.rename_item(drive_id, target.id, op.new_name)

    async def _file(self, drive_id: str, name: str, path: str | None) -> Resolved:
        if path:
            return await self._resolver.resolve_item_by_path(drive_id, name, path)
        return await self._resolver.resolve_item(drive_id, name)

    async def _folder(self, drive_id: str, name: str, path: str | None) -> Resolved:
        if path:
            return await self._resolver.resolve_container_by_path(drive_id, name, path)
        return await self._resolver.resolve_container(drive_id, name)
