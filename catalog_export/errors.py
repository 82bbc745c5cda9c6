"""Exception hierarchy for the catalog export pipeline."""

from typing import Any, List, Optional, Tuple


class CatalogExportError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(CatalogExportError, ValueError):
    """Raised when required configuration is missing or invalid.

    Configuration errors are fatal and are raised before any network call.
    Being a ValueError, they surface as validation errors inside PipelineConfig.
    """


class CommerceAPIError(CatalogExportError):
    """Uniform error for failed Commerce API calls."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        retryable: bool = False
    ):
        super().__init__(message)
        self.status_code = status_code
        self.url = url
        self.retryable = retryable


class AggregateBatchError(CatalogExportError):
    """Raised by the concurrency runner when one or more items failed.

    Carries every failed item with its last error, plus the results of the
    items that did succeed (``None`` at failed positions).
    """

    def __init__(self, failures: List[Tuple[Any, BaseException]], results: List[Any]):
        self.failures = failures
        self.results = results
        lines = [
            f"Failed request for item {item!r}: {error}"
            for item, error in failures
        ]
        super().__init__(
            f"{len(failures)} of {len(results)} requests failed:\n" + "\n".join(lines)
        )

    @property
    def failed_items(self) -> List[Any]:
        return [item for item, _ in self.failures]


class StorageError(CatalogExportError):
    """Raised when a storage backend cannot persist the export file."""
