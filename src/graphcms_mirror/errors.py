"""Exception hierarchy for schema loading, remote execution and asset downloads.

Fatal errors (schema, transport, missing context) propagate and abort the
sourcing pass. ``AssetDownloadError`` is caught per asset by the reconciler.
"""

from __future__ import annotations

__all__ = [
    "AssetDownloadError",
    "ContextNotInitializedError",
    "RemoteExecutionError",
    "SchemaLoadError",
    "SourcingError",
]


class SourcingError(RuntimeError):
    """Base exception for everything that can stop a sourcing pass."""


class RemoteExecutionError(SourcingError):
    """Raised when a GraphQL request fails at transport, HTTP or GraphQL level."""

    def __init__(self, operation_name: str, cause: str) -> None:
        super().__init__(f"Problem executing GraphQL operation {operation_name}: {cause}")
        self.operation_name = operation_name
        self.cause = cause


class SchemaLoadError(SourcingError):
    """Raised when the remote schema cannot be introspected or understood."""


class ContextNotInitializedError(SourcingError):
    """Raised when reconciliation runs before the schema context was built."""


class AssetDownloadError(SourcingError):
    """Raised when an asset could not be downloaded after all retries."""

    def __init__(self, url: str, file_name: str, reason: str) -> None:
        super().__init__(f"Failed to download {file_name} from {url}: {reason}")
        self.url = url
        self.file_name = file_name
        self.reason = reason
