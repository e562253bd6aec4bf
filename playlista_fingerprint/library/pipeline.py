"""
Library analysis pipeline.

A single producer pages unanalyzed files in ascending id order (keyset
pagination over an anti-join) onto a bounded hand-off queue. A single
consumer fans each file out to an analysis task, at most ``batch_size`` at
a time, and commits every completed batch in one transaction.

Guarantees:
    - memory is bounded by the queue capacity plus one batch of tasks
    - a file is visited at most once per run, never in descending id order
    - per-file decode/extraction failures are logged and skipped; the file
      stays unanalyzed for a later run
    - a failed commit is fatal (PersistenceError) and leaves no partial batch
    - cancellation is cooperative: in-flight tasks finish and are flushed
      before the run ends in the CANCELLED state

The total reported to the progress callback and returned from run() is a
snapshot taken at start; it goes stale if the library changes mid-run.
"""

import asyncio
import functools
import os
import uuid
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Union

from ..analysis.decoder import AudioDecoder, FileDescriptor, LibrosaDecoder
from ..analysis.feature_set import FeatureVector
from ..analysis.features import AnalysisParameters, analyze_source
from ..core.config import Settings, get_settings
from ..core.exceptions import (
    AnalysisError,
    ConfigurationError,
    DecodeError,
    ExtractionError,
)
from ..core.logging import LogContext, OperationLog, get_logger
from .cancellation import CancellationToken

logger = get_logger("library.pipeline")

ProgressCallback = Callable[[int, int], None]


def empty_progress_callback(processed: int, total: int) -> None:
    pass


class PipelineState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    CANCELLING = "cancelling"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class FileUniverse(Protocol):
    async def count_all(self) -> int:
        ...

    async def list_unfeatured(self, after: Optional[int], limit: int) -> Sequence[FileDescriptor]:
        ...


class FeatureSink(Protocol):
    async def insert_batch(self, vectors: Sequence[FeatureVector]) -> int:
        ...


@dataclass
class PipelineCursor:
    """Last file id handed to the consumer; only ever moves forward."""

    position: Optional[int] = None

    def advance(self, file_id: int) -> None:
        if self.position is not None and file_id <= self.position:
            raise ValueError(f"Cursor cannot move from {self.position} back to {file_id}")
        self.position = file_id


@dataclass
class AnalysisOutcome:
    file_id: int
    vector: Optional[FeatureVector] = None
    error: Optional[AnalysisError] = None


_END_OF_LIBRARY = object()


class _HandOff:
    """Bounded queue between producer and consumer with an end marker."""

    def __init__(self, capacity: int):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=capacity)
        self.exhausted = False

    async def put(self, file: FileDescriptor) -> None:
        await self._queue.put(file)

    async def close(self) -> None:
        await self._queue.put(_END_OF_LIBRARY)

    async def get(self) -> Optional[FileDescriptor]:
        if self.exhausted:
            return None
        item = await self._queue.get()
        if item is _END_OF_LIBRARY:
            self.exhausted = True
            return None
        return item

    async def drain(self) -> int:
        """Discard queued files until the producer closes; returns the count."""
        discarded = 0
        while await self.get() is not None:
            discarded += 1
        return discarded


class LibraryAnalysisPipeline:
    """
    Drives fingerprint extraction over every unanalyzed library file.

    The file universe is only read; the feature sink is only written, one
    transaction at a time. Analysis tasks run in an executor and touch
    nothing but the source audio.
    """

    def __init__(
        self,
        library: FileUniverse,
        store: FeatureSink,
        decoder: AudioDecoder,
        params: Optional[AnalysisParameters] = None,
        use_process_pool: bool = False,
    ):
        self.library = library
        self.store = store
        self.decoder = decoder
        self.params = params or AnalysisParameters()
        self.use_process_pool = use_process_pool

        self.state = PipelineState.IDLE
        self.stats: Dict[str, Any] = {}
        self._reset_stats()

    def _reset_stats(self) -> None:
        self.stats = {
            'total_files': 0,
            'processed': 0,
            'inserted': 0,
            'failed': 0,
            'batches_committed': 0,
            'skipped_on_cancel': 0,
        }

    def _set_state(self, state: PipelineState) -> None:
        if state is not self.state:
            logger.info("Pipeline state changed", previous=self.state.value, state=state.value)
            self.state = state

    async def run(
        self,
        batch_size: int,
        progress: ProgressCallback = empty_progress_callback,
        cancel: Optional[CancellationToken] = None,
    ) -> int:
        """
        Analyze every file lacking a fingerprint.

        Args:
            batch_size: files per page, queue capacity, concurrency cap and
                commit unit
            progress: called after each commit with (processed, total)
            cancel: cooperative cancellation token

        Returns:
            Number of library files counted at the start of the run

        Raises:
            ConfigurationError: batch_size below 1
            PersistenceError: a paging query or batch commit failed
        """
        if batch_size < 1:
            raise ConfigurationError(
                "batch_size must be at least 1", config_key="batch_size", config_value=batch_size
            )
        if self.state in (PipelineState.RUNNING, PipelineState.CANCELLING):
            raise RuntimeError("Pipeline is already running")

        cancel = cancel or CancellationToken()
        self._reset_stats()

        with LogContext(run_id=uuid.uuid4().hex[:8]), \
                OperationLog(logger, "library analysis", batch_size=batch_size) as operation:
            self._set_state(PipelineState.RUNNING)
            executor = self._create_executor(batch_size)
            try:
                total = await self.library.count_all()
                self.stats['total_files'] = total
                await self._run_protocol(batch_size, total, progress, cancel, executor)

                if cancel.is_cancelled():
                    self._set_state(PipelineState.CANCELLED)
                else:
                    self._set_state(PipelineState.COMPLETED)
            except BaseException:
                self._set_state(PipelineState.FAILED)
                raise
            finally:
                executor.shutdown(wait=False, cancel_futures=True)
                operation.update(state=self.state.value, **self.stats)

            return total

    async def _run_protocol(self, batch_size: int, total: int, progress: ProgressCallback,
                            cancel: CancellationToken, executor: Executor) -> None:
        handoff = _HandOff(batch_size)
        halt = asyncio.Event()
        producer = asyncio.ensure_future(self._produce(handoff, batch_size, cancel, halt))

        try:
            await self._consume(handoff, batch_size, total, progress, cancel, executor)
        except BaseException:
            # Let the producer observe the halt and close the queue.
            halt.set()
            await handoff.drain()
            await asyncio.gather(producer, return_exceptions=True)
            raise

        await producer

    async def _produce(self, handoff: _HandOff, batch_size: int,
                       cancel: CancellationToken, halt: asyncio.Event) -> None:
        cursor = PipelineCursor()
        try:
            while True:
                if cancel.is_cancelled():
                    logger.info("Producer stopping on cancellation", cursor=cursor.position)
                    break
                if halt.is_set():
                    break

                files = await self.library.list_unfeatured(after=cursor.position, limit=batch_size)
                if not files:
                    logger.info("No more files to analyze", cursor=cursor.position)
                    break

                for file in files:
                    await handoff.put(file)

                cursor.advance(files[-1].id)
                logger.debug("Cursor advanced", cursor=cursor.position, page=len(files))
        finally:
            await handoff.close()

    async def _consume(self, handoff: _HandOff, batch_size: int, total: int,
                       progress: ProgressCallback, cancel: CancellationToken,
                       executor: Executor) -> None:
        pending: List["asyncio.Future[AnalysisOutcome]"] = []
        processed = 0

        while True:
            if cancel.is_cancelled():
                self._set_state(PipelineState.CANCELLING)
                break

            file = await handoff.get()
            if file is None:
                break

            pending.append(asyncio.ensure_future(self._analyze(file, executor)))

            if len(pending) >= batch_size:
                processed += await self._flush(pending)
                pending = []
                progress(processed, total)

        # In-flight work is always committed, including after cancellation.
        if pending:
            processed += await self._flush(pending)
            progress(processed, total)

        if not handoff.exhausted:
            skipped = await handoff.drain()
            self.stats['skipped_on_cancel'] = skipped
            if skipped:
                logger.info("Queued files left for a later run", skipped=skipped)

    async def _analyze(self, file: FileDescriptor, executor: Executor) -> AnalysisOutcome:
        loop = asyncio.get_running_loop()
        task = functools.partial(analyze_source, self.decoder, file, self.params)
        try:
            vector = await loop.run_in_executor(executor, task)
        except DecodeError as e:
            logger.warning(
                "Skipping undecodable file",
                file_id=file.id,
                file_name=file.file_name,
                error=e
            )
            return AnalysisOutcome(file_id=file.id, error=e)
        except ExtractionError as e:
            logger.error(
                "Feature extraction failed",
                file_id=file.id,
                file_name=file.file_name,
                error=e
            )
            return AnalysisOutcome(file_id=file.id, error=e)
        except Exception as e:
            # Worker-level failure, e.g. a broken process pool
            error = ExtractionError("Analysis task failed", details=f"{type(e).__name__}: {e}",
                                    file_id=file.id, original_exception=e)
            logger.error(
                "Analysis task failed",
                file_id=file.id,
                file_name=file.file_name,
                error=e
            )
            return AnalysisOutcome(file_id=file.id, error=error)

        return AnalysisOutcome(file_id=file.id, vector=vector)

    async def _flush(self, pending: List["asyncio.Future[AnalysisOutcome]"]) -> int:
        """Await a batch of tasks and commit its successes as one transaction."""
        outcomes = await asyncio.gather(*pending)
        vectors = sorted(
            (outcome.vector for outcome in outcomes if outcome.vector is not None),
            key=lambda vector: vector.file_id,
        )
        failed = len(outcomes) - len(vectors)

        inserted = await self.store.insert_batch(vectors) if vectors else 0

        self.stats['processed'] += len(outcomes)
        self.stats['inserted'] += inserted
        self.stats['failed'] += failed
        self.stats['batches_committed'] += 1

        logger.info(
            "Batch committed",
            batch=self.stats['batches_committed'],
            files=len(outcomes),
            inserted=inserted,
            failed=failed
        )
        return len(outcomes)

    def _create_executor(self, batch_size: int) -> Executor:
        if self.use_process_pool:
            return ProcessPoolExecutor(max_workers=min(batch_size, os.cpu_count() or 1))
        return ThreadPoolExecutor(max_workers=batch_size, thread_name_prefix="analysis")


async def analyze_library(
    session_maker,
    library_root: Union[str, Path],
    batch_size: Optional[int] = None,
    progress: ProgressCallback = empty_progress_callback,
    cancel: Optional[CancellationToken] = None,
    settings: Optional[Settings] = None,
) -> int:
    """Run the pipeline over a database-backed library with default collaborators."""
    from ..database.repositories import FeatureStore, LibraryRepository

    settings = settings or get_settings()
    pipeline = LibraryAnalysisPipeline(
        library=LibraryRepository(session_maker),
        store=FeatureStore(session_maker),
        decoder=LibrosaDecoder(
            library_root,
            sample_rate=settings.analysis_sample_rate,
            max_duration=settings.analysis_max_duration,
        ),
        params=AnalysisParameters.from_settings(settings),
        use_process_pool=settings.analysis_use_process_pool,
    )
    return await pipeline.run(batch_size or settings.analysis_batch_size, progress, cancel)
