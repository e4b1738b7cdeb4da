"""Job dispatcher.

Validates a typed submission, registers a job, launches the matching
strategy as a supervised asyncio task and returns immediately. The task
writes the terminal state back to the registry. Nothing is retried.
"""

import asyncio
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

import structlog

from multiconvert.core.metrics import MetricsCollector
from multiconvert.core.validation import (
    ConversionKind,
    FetchFormat,
    URLValidator,
    VideoQuality,
    validate_choice,
)
from multiconvert.models.conversion import ConversionRequest, ConversionResult, FailureCategory
from multiconvert.models.job import Job, JobFamily, JobStatus
from multiconvert.services.artifact_store import ArtifactStore
from multiconvert.services.job_registry import InvalidTransitionError, JobRegistry
from multiconvert.strategies.exceptions import UnsupportedKindError
from multiconvert.strategies.registry import StrategyContext, StrategyFunc, StrategyTable

logger = structlog.get_logger(__name__)

SHUTDOWN_MESSAGE = "Service shutting down"

CONVERT_ACCEPTED_PROGRESS = 50
FETCH_ACCEPTED_PROGRESS = 10
FETCH_STARTED_PROGRESS = 30


class SubmissionError(ValueError):
    """Raised when a submission fails validation."""

    pass


class InvalidURLError(SubmissionError):
    """Raised when a fetch URL is missing, malformed or not allowed."""

    pass


class InvalidOptionError(SubmissionError):
    """Raised when a submission option is out of range."""

    pass


class DispatcherClosedError(RuntimeError):
    """Raised when a submission arrives after shutdown started."""

    pass


def download_url_for(family: JobFamily, filename: str) -> str:
    """Public download path of an artifact for a job family."""
    if family == JobFamily.CONVERT:
        return f"/jobs/convert/download/{filename}"
    return f"/jobs/fetch/file/{filename}"


class Dispatcher:
    """Routes submissions to strategies and supervises their tasks."""

    def __init__(
        self,
        registry: JobRegistry,
        store: ArtifactStore,
        table: StrategyTable,
        context: StrategyContext,
        url_validator: Optional[URLValidator] = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.table = table
        self.context = context
        self.url_validator = url_validator or URLValidator(context.fetch.allowed_domains)
        self._tasks: Dict[str, asyncio.Task] = {}
        self._closed = False

    @property
    def in_flight(self) -> int:
        """Number of strategy tasks still running."""
        return len(self._tasks)

    def supports_conversion(self, kind: Optional[str]) -> bool:
        result = validate_choice(ConversionKind, kind, "conversion kind")
        return result.is_valid and self.table.supports(result.sanitized_value)

    def _resolve(self, enum_cls: type, kind: Optional[str], label: str) -> StrategyFunc:
        result = validate_choice(enum_cls, kind, label)
        if not result.is_valid:
            raise UnsupportedKindError(kind or "")
        return self.table.resolve(result.sanitized_value)

    def submit_conversion(
        self,
        kind: str,
        staged_input: Path,
        original_name: Optional[str] = None,
    ) -> Job:
        """Register a conversion job for an already staged input and launch it.

        The job starts as ``processing`` because the upload is complete.
        An unsupported kind raises before any job is registered, and the
        staged input is discarded.

        Raises:
            UnsupportedKindError: If no strategy handles ``kind``
            DispatcherClosedError: If shutdown has started
        """
        try:
            self._ensure_open()
            strategy_fn = self._resolve(ConversionKind, kind, "conversion kind")
        except (UnsupportedKindError, DispatcherClosedError):
            self.store.delete(staged_input)
            raise

        kind = kind.strip().lower()
        job = self.registry.new_job(
            JobFamily.CONVERT,
            kind,
            status=JobStatus.PROCESSING,
            progress=CONVERT_ACCEPTED_PROGRESS,
            title=original_name,
            input_path=str(staged_input),
            started_at=datetime.now(timezone.utc),
        )
        request = ConversionRequest(kind=kind, source=str(staged_input))
        self._launch(job, strategy_fn, request)
        return job

    def submit_fetch(self, url: str, fetch_format: str, quality: Optional[str] = None) -> Job:
        """Register a fetch job and launch it.

        Raises:
            InvalidURLError: If the URL is missing or not allowed
            UnsupportedKindError: If the format is unknown
            InvalidOptionError: If the quality tier is unknown
            DispatcherClosedError: If shutdown has started
        """
        self._ensure_open()

        validation = self.url_validator.validate(url)
        if not validation.is_valid:
            raise InvalidURLError(validation.error_message or "Invalid URL")

        strategy_fn = self._resolve(FetchFormat, fetch_format, "fetch format")
        fetch_format = fetch_format.strip().lower()

        options = {}
        if quality:
            checked = validate_choice(VideoQuality, quality, "quality")
            if not checked.is_valid:
                raise InvalidOptionError(checked.error_message)
            options["quality"] = checked.sanitized_value

        job = self.registry.new_job(
            JobFamily.FETCH,
            fetch_format,
            status=JobStatus.PENDING,
            progress=FETCH_ACCEPTED_PROGRESS,
        )
        request = ConversionRequest(
            kind=fetch_format, source=validation.sanitized_value or url, options=options
        )
        self._launch(job, strategy_fn, request)
        return job

    def _ensure_open(self) -> None:
        if self._closed:
            raise DispatcherClosedError(SHUTDOWN_MESSAGE)

    def _launch(self, job: Job, strategy_fn: StrategyFunc, request: ConversionRequest) -> None:
        task = asyncio.create_task(
            self._run(job.job_id, strategy_fn, request),
            name=f"job-{job.job_id}",
        )
        self._tasks[job.job_id] = task
        task.add_done_callback(lambda _t, job_id=job.job_id: self._forget(job_id))
        MetricsCollector.update_in_flight(self.in_flight)

        logger.info(
            "job_dispatched",
            job_id=job.job_id,
            family=job.family.value,
            kind=job.kind,
        )

    def _forget(self, job_id: str) -> None:
        self._tasks.pop(job_id, None)
        MetricsCollector.update_in_flight(self.in_flight)

    async def _run(
        self,
        job_id: str,
        strategy_fn: StrategyFunc,
        request: ConversionRequest,
    ) -> None:
        """Execute one strategy and record the terminal state."""
        start_time = time.monotonic()

        try:
            job = self.registry.get_or_raise(job_id)
            if job.status == JobStatus.PENDING:
                self.registry.start_processing(job_id, progress=FETCH_STARTED_PROGRESS)

            logger.info("job_processing_started", job_id=job_id, kind=request.kind)
            result = await strategy_fn(request, self.context)

        except asyncio.CancelledError:
            self._record_failure(job_id, SHUTDOWN_MESSAGE, FailureCategory.UNKNOWN)
            raise

        except Exception as e:
            logger.error(
                "job_failed_unexpected_error",
                job_id=job_id,
                error=str(e),
                exc_info=True,
            )
            self._record_failure(job_id, f"Unexpected error: {e}", FailureCategory.UNKNOWN)

        else:
            self._record_result(job_id, result)

        finally:
            self._finish(job_id, start_time)

    def _record_result(self, job_id: str, result: ConversionResult) -> None:
        if not result.success or result.output is None:
            self._record_failure(
                job_id,
                result.message or "Conversion failed",
                result.category or FailureCategory.UNKNOWN,
                title=result.title,
            )
            return

        job = self.registry.get_or_raise(job_id)
        output_name = result.output.name
        secondary_name = result.secondary_output.name if result.secondary_output else None

        try:
            self.registry.complete(
                job_id,
                output_filename=output_name,
                download_url=download_url_for(job.family, output_name),
                secondary_filename=secondary_name,
                secondary_download_url=(
                    download_url_for(job.family, secondary_name) if secondary_name else None
                ),
                title=result.title,
            )
        except InvalidTransitionError as e:
            logger.warning("job_completion_rejected", job_id=job_id, error=str(e))
            return

        logger.info(
            "job_completed_successfully",
            job_id=job_id,
            filename=output_name,
            secondary_filename=secondary_name,
        )

    def _record_failure(
        self,
        job_id: str,
        message: str,
        category: FailureCategory,
        title: Optional[str] = None,
    ) -> None:
        try:
            self.registry.fail(job_id, message, error_category=category.value, title=title)
        except InvalidTransitionError as e:
            logger.warning("job_failure_rejected", job_id=job_id, error=str(e))
            return

        logger.warning(
            "job_failed",
            job_id=job_id,
            category=category.value,
            error=message,
        )

    def _finish(self, job_id: str, start_time: float) -> None:
        job = self.registry.get(job_id)
        if job is None:
            return

        if job.family == JobFamily.CONVERT and job.input_path:
            self.store.delete(job.input_path)

        if job.is_terminal():
            MetricsCollector.record_job(
                family=job.family.value,
                kind=job.kind,
                status=job.status.value,
                duration=time.monotonic() - start_time,
            )

    async def wait(self, job_id: str) -> None:
        """Wait until the task of ``job_id`` finishes, if it is still running."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self, grace_seconds: float = 5.0) -> None:
        """Stop accepting work, wait briefly, then cancel what is left.

        Cancelled jobs end in ``error`` with "Service shutting down" and
        their subprocesses are killed.
        """
        self._closed = True
        tasks = list(self._tasks.values())
        if not tasks:
            return

        logger.info("dispatcher_draining", in_flight=len(tasks), grace_seconds=grace_seconds)
        _, pending = await asyncio.wait(tasks, timeout=grace_seconds)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning("dispatcher_cancelled_jobs", count=len(pending))

        logger.info("dispatcher_stopped")


# Global dispatcher instance
_dispatcher: Optional[Dispatcher] = None


def configure_dispatcher(
    registry: JobRegistry,
    store: ArtifactStore,
    table: StrategyTable,
    context: StrategyContext,
) -> Dispatcher:
    """Configure and initialize the global dispatcher."""
    global _dispatcher
    _dispatcher = Dispatcher(registry=registry, store=store, table=table, context=context)
    return _dispatcher


def get_dispatcher() -> Dispatcher:
    """Get the global dispatcher instance.

    Raises:
        RuntimeError: If the dispatcher is not configured.
    """
    if _dispatcher is None:
        raise RuntimeError("Dispatcher not configured. Call configure_dispatcher() first.")
    return _dispatcher
