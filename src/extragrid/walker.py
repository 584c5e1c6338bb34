"""Depth-bounded traversal of a drive tree.

The walker lists containers one at a time using an explicit stack and yields
candidates in pre-order. A failure listing a sub-container skips that branch;
a failure listing the walk root propagates.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from loguru import logger

from extragrid.exceptions import DepthExceededError, UpstreamError
from extragrid.transport import Transport, TreeNode
from extragrid.types import ROOT_ID, ROOT_PATH, Candidate, join_path

DEFAULT_MAX_DEPTH = 20

NodePredicate = Callable[[TreeNode], bool]


@dataclass(frozen=True)
class SkippedBranch:
    """A sub-container whose listing failed."""

    path: str
    error: UpstreamError


@dataclass
class WalkResult:
    """Everything a walk found, plus the branches it could not enter."""

    matches: list[Candidate] = field(default_factory=list)
    skipped: list[SkippedBranch] = field(default_factory=list)
    depth_errors: list[DepthExceededError] = field(default_factory=list)
    containers_listed: int = 0

    @property
    def complete(self) -> bool:
        """True when no branch was skipped or cut off."""
        return not self.skipped and not self.depth_errors


def name_predicate(name: str, *, containers: bool | None) -> NodePredicate:
    """Match nodes whose name equals ``name`` case-insensitively.

    Args:
        name: Name to look for
        containers: True for folders only, False for files only, None for both
    """
    target = name.lower()

    def predicate(node: TreeNode) -> bool:
        if containers is not None and node.is_container != containers:
            return False
        return node.name.lower() == target

    return predicate


class TreeWalker:
    """Walks a drive tree from a container, collecting matching nodes.

    Depth is counted from the walk root (its children are at depth 1).
    Containers at ``max_depth`` are reported but never listed, so no node
    deeper than ``max_depth`` is visited or matched.
    """

    def __init__(self, transport: Transport, *, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self._transport = transport
        self.max_depth = max_depth

    async def walk(
        self,
        drive_id: str,
        predicate: NodePredicate,
        *,
        root_id: str = ROOT_ID,
        root_path: str = ROOT_PATH,
        root_children: list[TreeNode] | None = None,
    ) -> WalkResult:
        """Collect every node under ``root_id`` that satisfies ``predicate``.

        Args:
            drive_id: Drive to walk
            predicate: Selects the nodes to collect
            root_id: Container to start from
            root_path: Path of that container, used to build candidate paths
            root_children: Listing of the root if the caller already has it

        Returns:
            WalkResult with candidates in pre-order
        """
        result = WalkResult()
        if root_children is None:
            root_children = await self._transport.list_children(drive_id, root_id)
        result.containers_listed += 1

        stack: list[tuple[TreeNode, str, str, int]] = [
            (node, root_id, root_path, 1) for node in reversed(root_children)
        ]
        while stack:
            node, parent_id, parent_path, depth = stack.pop()
            path = join_path(parent_path, node.name)

            if predicate(node):
                result.matches.append(
                    Candidate(
                        id=node.id,
                        name=node.name,
                        path=path,
                        parent_id=node.parent_id or parent_id,
                        is_container=node.is_container,
                    )
                )

            if not node.is_container:
                continue

            if depth >= self.max_depth:
                error = DepthExceededError(path, self.max_depth)
                result.depth_errors.append(error)
                logger.warning(
                    "Maximum search depth reached",
                    extra={"drive_id": drive_id, "path": path, "max_depth": self.max_depth},
                )
                continue

            try:
                children = await self._transport.list_children(drive_id, node.id)
            except UpstreamError as e:
                logger.warning(
                    "Skipping folder that could not be listed",
                    extra={"drive_id": drive_id, "path": path, "error": str(e)},
                )
                result.skipped.append(SkippedBranch(path=path, error=e))
                continue

            result.containers_listed += 1
            stack.extend((child, node.id, path, depth + 1) for child in reversed(children))

        return result
