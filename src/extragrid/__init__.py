"""extragrid - Name-addressed find and replace for Excel workbooks.

Resolves drives, folders, workbooks and worksheets by human-readable name
(with structured disambiguation when names collide), then searches and
rewrites cells under several scopes, including label-neighbor extraction.
"""

__version__ = "0.1.0"

from extragrid.cache import TTLCache
from extragrid.client import FindResult, GridClient, RangeResult, ReplaceResult
from extragrid.exceptions import (
    AmbiguousError,
    APIError,
    AuthenticationError,
    ConflictError,
    DepthExceededError,
    ExtraGridError,
    NotFoundError,
    RemoteNotFoundError,
    ResolutionError,
    UpstreamError,
    ValidationError,
)
from extragrid.matchers import LabelMode
from extragrid.rename import RenameService
from extragrid.replace import ReplaceOptions, TextReplacement, ValueReplacement
from extragrid.resolver import NameResolver
from extragrid.search import GridSearch, LabelNeighborOptions, Scope, SearchOptions
from extragrid.transport import GraphTransport, LocalFileTransport, Transport
from extragrid.types import (
    Ambiguous,
    BatchRenameOutcome,
    Match,
    NotFound,
    RenameOperation,
    RenameResult,
    Resolution,
    ResolutionRequest,
    Resolved,
)

__all__ = [
    "APIError",
    "Ambiguous",
    "AmbiguousError",
    "AuthenticationError",
    "BatchRenameOutcome",
    "ConflictError",
    "DepthExceededError",
    "ExtraGridError",
    "FindResult",
    "GraphTransport",
    "GridClient",
    "GridSearch",
    "LabelMode",
    "LabelNeighborOptions",
    "LocalFileTransport",
    "Match",
    "NameResolver",
    "NotFound",
    "NotFoundError",
    "RangeResult",
    "RemoteNotFoundError",
    "RenameOperation",
    "RenameResult",
    "RenameService",
    "ReplaceOptions",
    "ReplaceResult",
    "Resolution",
    "ResolutionError",
    "ResolutionRequest",
    "Resolved",
    "Scope",
    "SearchOptions",
    "TTLCache",
    "TextReplacement",
    "Transport",
    "UpstreamError",
    "ValidationError",
    "ValueReplacement",
    "__version__",
]
