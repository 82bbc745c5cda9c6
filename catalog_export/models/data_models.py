"""Core data models for the catalog export pipeline."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union


T = TypeVar("T")


class JobState(Enum):
    """Lifecycle of a single batch job."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PipelineState(Enum):
    """Pipeline orchestrator states."""
    AUTHENTICATING = "authenticating"
    FETCHING = "fetching"
    ENRICHING = "enriching"
    ASSEMBLING = "assembling"
    STORING = "storing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class CategoryRecord:
    """Category metadata resolved from the Commerce API."""
    id: str
    name: str
    path: Optional[str] = None
    parent_id: Optional[str] = None
    level: Optional[int] = None

    @classmethod
    def from_api(cls, category_id: str, body: Dict[str, Any]) -> "CategoryRecord":
        parent_id = body.get("parent_id")
        return cls(
            id=str(category_id),
            name=str(body.get("name") or ""),
            path=body.get("path"),
            parent_id=str(parent_id) if parent_id is not None else None,
            level=body.get("level"),
        )


@dataclass(frozen=True)
class InventoryRecord:
    """Stock figures for a single SKU."""
    sku: str
    quantity: int = 0
    in_stock: bool = False

    @classmethod
    def default(cls, sku: str) -> "InventoryRecord":
        return cls(sku=sku, quantity=0, in_stock=False)


@dataclass(frozen=True)
class ProductRecord:
    """Product as fetched from the products endpoint.

    ``categories`` and ``inventory`` are only populated by enrichment, which
    builds a new record instead of mutating this one.
    """
    sku: str
    name: Optional[str] = None
    price: Optional[float] = None
    status: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    category_ids: List[str] = field(default_factory=list)
    media_gallery_entries: List[Dict[str, Any]] = field(default_factory=list)
    extension_attributes: Dict[str, Any] = field(default_factory=dict)
    custom_attributes: Dict[str, Any] = field(default_factory=dict)
    categories: List[Dict[str, str]] = field(default_factory=list)
    inventory: Optional[InventoryRecord] = None

    @property
    def is_enriched(self) -> bool:
        return self.inventory is not None


@dataclass
class CacheEntry(Generic[T]):
    """Cached value with its creation timestamp."""
    value: T
    created_at: float


@dataclass
class BatchJob(Generic[T]):
    """A unit of work tracked by the concurrency runner."""
    item: T
    index: int
    attempts: int = 0
    state: JobState = JobState.PENDING
    result: Any = None
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful resolution."""
    value: T

    @property
    def degraded(self) -> bool:
        return False


@dataclass(frozen=True)
class Degraded(Generic[T]):
    """Resolution that fell back to defaults for some or all entities."""
    value: T
    cause: str

    @property
    def degraded(self) -> bool:
        return True


Outcome = Union[Ok[T], Degraded[T]]


@dataclass(frozen=True)
class CompressionStats:
    """Size statistics of the compressed CSV."""
    original_size: int
    compressed_size: int
    savings_percent: float


@dataclass(frozen=True)
class CsvResult:
    """Compressed CSV bytes with their statistics."""
    content: bytes
    row_count: int
    stats: Optional[CompressionStats] = None


@dataclass(frozen=True)
class StoredFile:
    """Descriptor returned by a storage backend after a write."""
    file_name: str
    url: str
    provider: str
    location: str
    size: int
    content_type: str
    last_modified: str


@dataclass(frozen=True)
class ExportFile:
    """An export file already present in storage."""
    name: str
    size: int
    last_modified: str


@dataclass(frozen=True)
class StepLog:
    """One entry of the pipeline step log."""
    state: PipelineState
    status: str  # "success" or "error"
    message: str
    elapsed_ms: float


@dataclass(frozen=True)
class ExportResult:
    """Final descriptor of a completed export run."""
    record_count: int
    category_count: int
    compression_stats: Optional[CompressionStats]
    storage: Optional[StoredFile]
    storage_type: str
    elapsed_seconds: float
    memory_peak_bytes: Optional[int] = None
    error: Optional[Dict[str, str]] = None

    @property
    def stored(self) -> bool:
        return self.storage is not None and self.error is None


@dataclass(frozen=True)
class PipelineFailure:
    """Error details for a failed run."""
    state: PipelineState
    message: str
    type: str


@dataclass
class PipelineOutcome:
    """Terminal outcome of a pipeline run: DONE with a result or FAILED."""
    state: PipelineState
    steps: List[StepLog]
    result: Optional[ExportResult] = None
    failure: Optional[PipelineFailure] = None

    @property
    def succeeded(self) -> bool:
        return self.state is PipelineState.DONE
