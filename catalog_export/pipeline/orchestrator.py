"""Pipeline orchestrator driving an export run through its states."""

import asyncio
import time
from typing import Any, Awaitable, Callable, List, Optional

import httpx

from catalog_export.commerce import (
    CategoryResolver,
    EnrichmentOrchestrator,
    InventoryResolver,
    ProductFetcher,
    resolve_token,
)
from catalog_export.errors import ConfigurationError, StorageError
from catalog_export.fetcher.cache import TTLCache
from catalog_export.fetcher.concurrency import BoundedConcurrencyRunner
from catalog_export.fetcher.http_client import AsyncHTTPClient
from catalog_export.fetcher.retry_handler import (
    BackoffPolicy,
    RetryHandler,
    exponential_backoff,
    fixed_backoff,
    is_transient_error,
)
from catalog_export.models.config import PipelineConfig
from catalog_export.models.data_models import (
    ExportResult,
    PipelineFailure,
    PipelineOutcome,
    PipelineState,
    StepLog,
)
from catalog_export.monitoring.logger import StructuredLogger
from catalog_export.monitoring.performance import PerformanceTracker
from catalog_export.processor.csv_assembler import CsvAssembler
from catalog_export.storage import StorageBackend, create_storage


class ExportPipeline:
    """
    Runs one catalog export: authenticate, fetch, enrich, assemble, store.

    The run moves strictly through AUTHENTICATING, FETCHING, ENRICHING,
    ASSEMBLING and STORING to DONE. Any exception ends it in FAILED, recording
    the state it happened in. Storage failures are not fatal: the run still
    finishes DONE with an unstored result.

    Caches are created per run unless passed in, so nothing leaks between
    runs by default.
    """

    def __init__(
        self,
        config: PipelineConfig,
        logger: Optional[StructuredLogger] = None,
        storage: Optional[StorageBackend] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        category_cache: Optional[TTLCache] = None,
        response_cache: Optional[TTLCache] = None,
        sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        on_state: Optional[Callable[[PipelineState], None]] = None
    ):
        """
        Initialize pipeline.

        Args:
            config: Pipeline configuration
            logger: Structured logger (created from config.log_level if omitted)
            storage: Storage backend (built from config if omitted)
            transport: Optional httpx transport for the Commerce client
            category_cache: Category cache shared across runs, if any
            response_cache: Response cache shared across runs, if any
            sleeper: Async sleep used for retries and batch pauses
            clock: Monotonic clock used by the caches
            on_state: Called with each state the run enters
        """
        self.config = config
        self.logger = logger or StructuredLogger(level=config.log_level)
        self.storage = storage
        self.transport = transport
        self.category_cache = category_cache
        self.response_cache = response_cache
        self._sleep = sleeper
        self._clock = clock
        self._on_state = on_state

        self.state: Optional[PipelineState] = None
        self.steps: List[StepLog] = []
        self.request_count = 0
        self._step_started = 0.0

    async def run(self) -> PipelineOutcome:
        """
        Run the pipeline within ``total_timeout``.

        Returns:
            PipelineOutcome in state DONE with an ExportResult, or FAILED with
            the failure and the step log so far. Never raises, except for
            cancellation of the caller.
        """
        self.state = None
        self.steps = []
        tracker = PerformanceTracker(track_memory=self.config.track_memory)
        tracker.start()
        self.logger.log(
            "pipeline_start",
            storage=self.config.storage_provider,
            fields=self.config.export_fields
        )

        try:
            result = await asyncio.wait_for(
                self._run_pipeline(tracker),
                timeout=self.config.total_timeout
            )
        except asyncio.TimeoutError:
            tracker.stop()
            self.logger.log("pipeline_timeout", timeout=self.config.total_timeout, state=self._state_name())
            return self._fail(
                f"Pipeline exceeded total timeout of {self.config.total_timeout}s",
                "TimeoutError"
            )
        except Exception as e:
            tracker.stop()
            return self._fail(str(e), type(e).__name__)

        self.state = PipelineState.DONE
        self.logger.log(
            "pipeline_complete",
            records=result.record_count,
            stored=result.stored,
            elapsed_seconds=round(result.elapsed_seconds, 3)
        )
        return PipelineOutcome(state=PipelineState.DONE, steps=list(self.steps), result=result)

    async def _run_pipeline(self, tracker: PerformanceTracker) -> ExportResult:
        config = self.config

        self._enter(PipelineState.AUTHENTICATING)
        self._validate()
        storage = self.storage or create_storage(config)

        category_cache = self.category_cache
        if category_cache is None:
            category_cache = TTLCache(config.category_cache_ttl, now=self._clock)
        response_cache = self.response_cache
        if response_cache is None:
            response_cache = TTLCache(config.response_cache_ttl, now=self._clock)
        retry_handler = RetryHandler(
            max_retries=config.max_retries,
            backoff=self._backoff(),
            retry_if=lambda e: is_transient_error(e, config.retryable_status_codes),
            sleeper=self._sleep,
            logger=self.logger
        )

        async with AsyncHTTPClient(
            base_url=config.commerce_base_url,
            timeout=config.request_timeout,
            response_cache=response_cache,
            retryable_status_codes=config.retryable_status_codes,
            transport=self.transport
        ) as client:
            token = await retry_handler.execute(
                resolve_token,
                client,
                token=config.commerce_token,
                username=config.commerce_username,
                password=config.commerce_password,
                token_path=config.token_path
            )
            client.set_token(token)
            self._complete("Authenticated with Commerce API")

            self._enter(PipelineState.FETCHING)
            fetcher = ProductFetcher(
                client,
                retry_handler,
                page_size=config.page_size,
                max_pages=config.max_pages,
                products_path=config.products_path,
                logger=self.logger
            )
            products = await fetcher.fetch_all(config.export_fields)
            self._complete(f"Fetched {len(products)} products in {fetcher.pages_fetched} pages")

            self._enter(PipelineState.ENRICHING)
            enricher = EnrichmentOrchestrator(
                CategoryResolver(
                    client,
                    category_cache,
                    self._runner(config.category_batch_size),
                    path_template=config.category_path,
                    logger=self.logger
                ),
                InventoryResolver(
                    client,
                    self._runner(config.inventory_concurrency),
                    batch_size=config.inventory_batch_size,
                    path=config.inventory_path,
                    logger=self.logger
                ),
                logger=self.logger
            )
            report = await enricher.enrich_with_report(products)
            message = f"Enriched {len(report.products)} products with {len(report.categories)} categories"
            if report.degraded:
                message += " (degraded)"
            self._complete(message)

            self.request_count = client.request_count

        self.logger.cache_stats("categories", hits=category_cache.hits, misses=category_cache.misses)
        self.logger.cache_stats("responses", hits=response_cache.hits, misses=response_cache.misses)

        self._enter(PipelineState.ASSEMBLING)
        assembler = CsvAssembler(
            chunk_size=config.csv_chunk_size,
            compression_level=config.compression_level,
            media_base_url=config.media_base_url,
            logger=self.logger
        )
        csv_result = assembler.assemble(report.products, config.export_fields)
        self._complete(f"Assembled {csv_result.row_count} rows ({len(csv_result.content)} bytes compressed)")

        self._enter(PipelineState.STORING)
        stored_file = None
        error = None
        try:
            stored_file = await storage.write(config.csv_filename, csv_result.content)
            self._complete(f"Stored {stored_file.file_name} at {stored_file.url}")
        except StorageError as e:
            error = {"message": str(e), "type": type(e).__name__}
            self.logger.storage_failed(storage.provider, str(e))
            self._record("error", str(e))

        tracker.stop()
        return ExportResult(
            record_count=len(report.products),
            category_count=len(report.categories),
            compression_stats=csv_result.stats,
            storage=stored_file,
            storage_type=storage.provider,
            elapsed_seconds=tracker.elapsed_seconds,
            memory_peak_bytes=tracker.memory_peak_bytes,
            error=error
        )

    def _validate(self) -> None:
        config = self.config
        if not config.commerce_base_url:
            raise ConfigurationError("commerce_base_url is required")
        if not config.commerce_token and not (config.commerce_username and config.commerce_password):
            raise ConfigurationError(
                "Commerce credentials are required: set a token or admin username and password"
            )

    def _backoff(self) -> BackoffPolicy:
        config = self.config
        if config.retry_backoff == "exponential":
            return exponential_backoff(
                base_delay=config.retry_delay,
                max_delay=config.retry_max_delay,
                jitter_max=config.retry_jitter_max
            )
        return fixed_backoff(config.retry_delay)

    def _runner(self, concurrency: int) -> BoundedConcurrencyRunner:
        return BoundedConcurrencyRunner(
            concurrency=concurrency,
            retries=self.config.max_retries,
            retry_delay=self.config.retry_delay,
            batch_pause=self.config.batch_pause,
            backoff=self._backoff(),
            sleeper=self._sleep,
            logger=self.logger
        )

    def _state_name(self) -> Optional[str]:
        return self.state.value if self.state else None

    def _enter(self, state: PipelineState) -> None:
        self.state = state
        self._step_started = time.perf_counter()
        self.logger.step_start(state.value)
        if self._on_state:
            self._on_state(state)

    def _record(self, status: str, message: str) -> float:
        elapsed_ms = (time.perf_counter() - self._step_started) * 1000
        self.steps.append(StepLog(state=self.state, status=status, message=message, elapsed_ms=elapsed_ms))
        return elapsed_ms

    def _complete(self, message: str) -> None:
        elapsed_ms = self._record("success", message)
        self.logger.step_complete(self.state.value, elapsed_ms, message)

    def _fail(self, message: str, error_type: str) -> PipelineOutcome:
        failed_state = self.state or PipelineState.AUTHENTICATING
        self.state = failed_state
        self._record("error", message)
        self.logger.step_failed(failed_state.value, message, error_type)
        self.state = PipelineState.FAILED
        return PipelineOutcome(
            state=PipelineState.FAILED,
            steps=list(self.steps),
            failure=PipelineFailure(state=failed_state, message=message, type=error_type)
        )
