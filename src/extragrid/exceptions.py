"""Custom exceptions for extragrid."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from extragrid.types import Candidate


class ExtraGridError(Exception):
    """Base exception for all extragrid errors."""

    pass


class ValidationError(ExtraGridError):
    """Raised when required inputs are missing or malformed."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class ResolutionError(ExtraGridError):
    """Base exception for name resolution failures."""

    def __init__(self, kind: str, name: str, message: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(message)


class NotFoundError(ResolutionError):
    """Raised when no node matches a name.

    Carries the names that *are* present so the caller can see what went wrong.
    """

    def __init__(self, kind: str, name: str, available: list[str] | None = None) -> None:
        self.available = list(available or [])
        message = f"{kind.capitalize()} '{name}' not found."
        if self.available:
            message += f" Available: {', '.join(self.available)}"
        super().__init__(kind, name, message)


class AmbiguousError(ResolutionError):
    """Raised when a name matches more than one node.

    Not fatal: retry with one of ``paths`` via ``resolve_item_by_path``.
    """

    def __init__(self, kind: str, name: str, candidates: list[Candidate]) -> None:
        self.candidates = list(candidates)
        options = "\n".join(f"{i}. {c.path}" for i, c in enumerate(self.candidates, 1))
        super().__init__(
            kind,
            name,
            f"Multiple {kind}s named '{name}' found. Specify the full path:\n{options}",
        )

    @property
    def paths(self) -> list[str]:
        return [c.path for c in self.candidates]


class UpstreamError(ExtraGridError):
    """Raised when the remote store fails a request."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.operation = operation
        self.status_code = status_code
        super().__init__(f"{operation}: {message}" if operation else message)


class AuthenticationError(UpstreamError):
    """Raised when authentication fails (401/403)."""

    pass


class RemoteNotFoundError(UpstreamError):
    """Raised when the remote store returns 404."""

    pass


class ConflictError(UpstreamError):
    """Raised when the remote store returns 409 (e.g. the name is taken)."""

    pass


class APIError(UpstreamError):
    """Raised for other API errors."""

    pass


class DepthExceededError(ExtraGridError):
    """Recorded (not raised) when a traversal hits its depth bound."""

    def __init__(self, path: str, max_depth: int) -> None:
        self.path = path
        self.max_depth = max_depth
        super().__init__(f"Maximum search depth ({max_depth}) reached at '{path}'")
