"""
Unit tests for the library analysis pipeline, run against in-memory
collaborators.
"""

import asyncio

import pytest

from conftest import InMemoryLibrary, InMemoryStore, SineDecoder
from playlista_fingerprint.core.exceptions import ConfigurationError, PersistenceError
from playlista_fingerprint.library.cancellation import CancellationToken
from playlista_fingerprint.library.pipeline import (
    LibraryAnalysisPipeline,
    PipelineCursor,
    PipelineState,
)


def make_pipeline(n_files, store=None, decoder=None):
    store = store or InMemoryStore()
    library = InMemoryLibrary(range(1, n_files + 1), store)
    pipeline = LibraryAnalysisPipeline(library, store, decoder or SineDecoder())
    return pipeline, library, store


class TestPipelineRun:
    """Test complete runs."""

    @pytest.mark.parametrize("batch_size", [1, 3, 10, 25])
    def test_every_file_analyzed_once(self, batch_size):
        """The set of stored files does not depend on the batch size."""
        pipeline, _, store = make_pipeline(10)

        total = asyncio.run(pipeline.run(batch_size))

        assert total == 10
        assert sorted(store.rows) == list(range(1, 11))
        assert pipeline.state == PipelineState.COMPLETED
        assert pipeline.stats["inserted"] == 10
        assert pipeline.stats["failed"] == 0

    def test_results_independent_of_batch_size(self):
        one_at_a_time, _, small = make_pipeline(6)
        all_at_once, _, large = make_pipeline(6)

        asyncio.run(one_at_a_time.run(1))
        asyncio.run(all_at_once.run(6))

        for file_id in range(1, 7):
            assert small.rows[file_id].normalized == large.rows[file_id].normalized

    def test_files_committed_in_ascending_order(self):
        pipeline, library, store = make_pipeline(12)

        asyncio.run(pipeline.run(4))

        committed = [file_id for batch in store.batches for file_id in batch]
        assert committed == list(range(1, 13))
        assert store.batches[0] == [1, 2, 3, 4]
        assert library.pages[0] is None
        assert library.pages[1:] == sorted(library.pages[1:])

    def test_second_run_is_idempotent(self):
        pipeline, _, store = make_pipeline(8)

        asyncio.run(pipeline.run(3))
        snapshot = dict(store.rows)
        total = asyncio.run(pipeline.run(3))

        assert total == 8
        assert store.rows == snapshot
        assert pipeline.stats["processed"] == 0
        assert pipeline.state == PipelineState.COMPLETED

    def test_empty_library(self):
        pipeline, _, store = make_pipeline(0)
        calls = []

        total = asyncio.run(pipeline.run(5, progress=lambda p, t: calls.append((p, t))))

        assert total == 0
        assert calls == []
        assert store.rows == {}
        assert pipeline.state == PipelineState.COMPLETED

    def test_progress_reports_after_each_commit(self):
        pipeline, _, _ = make_pipeline(12)
        calls = []

        asyncio.run(pipeline.run(5, progress=lambda p, t: calls.append((p, t))))

        assert calls == [(5, 12), (10, 12), (12, 12)]


class TestPipelineFailures:
    """Test per-file and fatal failures."""

    def test_corrupt_file_is_skipped(self):
        """One undecodable file does not stop the run."""
        decoder = SineDecoder(corrupt=[37])
        pipeline, _, store = make_pipeline(100, decoder=decoder)

        asyncio.run(pipeline.run(10))

        assert len(store.rows) == 99
        assert 37 not in store.rows
        assert pipeline.state == PipelineState.COMPLETED
        assert pipeline.stats["failed"] == 1
        assert pipeline.stats["processed"] == 100

    def test_skipped_file_is_retried_later(self):
        store = InMemoryStore()
        pipeline, _, _ = make_pipeline(5, store=store, decoder=SineDecoder(corrupt=[2]))
        asyncio.run(pipeline.run(2))

        retry, _, _ = make_pipeline(5, store=store)
        asyncio.run(retry.run(2))

        assert sorted(store.rows) == [1, 2, 3, 4, 5]
        assert retry.stats["processed"] == 1

    def test_commit_failure_is_fatal(self):
        store = InMemoryStore(fail_on_batch=2)
        pipeline, _, _ = make_pipeline(20, store=store)

        with pytest.raises(PersistenceError):
            asyncio.run(pipeline.run(5))

        assert pipeline.state == PipelineState.FAILED
        assert sorted(store.rows) == [1, 2, 3, 4, 5]

    def test_invalid_batch_size(self):
        pipeline, _, _ = make_pipeline(3)

        with pytest.raises(ConfigurationError):
            asyncio.run(pipeline.run(0))

        assert pipeline.state == PipelineState.IDLE

    def test_concurrent_run_rejected(self):
        pipeline, _, _ = make_pipeline(3)
        pipeline.state = PipelineState.RUNNING

        with pytest.raises(RuntimeError):
            asyncio.run(pipeline.run(1))


class TestPipelineCancellation:
    """Test cooperative cancellation."""

    def test_cancel_after_batches(self):
        """Batches committed before cancellation are kept, nothing after."""
        pipeline, _, store = make_pipeline(30)
        token = CancellationToken()

        def progress(processed, total):
            if processed >= 10:
                token.cancel("test")

        asyncio.run(pipeline.run(5, progress=progress, cancel=token))

        assert sorted(store.rows) == list(range(1, 11))
        assert pipeline.state == PipelineState.CANCELLED
        assert pipeline.stats["batches_committed"] == 2

    def test_cancel_while_batch_in_flight(self):
        """A batch already dispatched is committed whole; queued files are left."""
        token = CancellationToken()

        class CancellingDecoder(SineDecoder):
            def decode(self, file):
                if file.id == 7:
                    token.cancel("stop requested")
                return super().decode(file)

        pipeline, _, store = make_pipeline(30, decoder=CancellingDecoder())

        asyncio.run(pipeline.run(5, cancel=token))

        assert sorted(store.rows) == list(range(1, 11))
        assert store.batches[-1] == [6, 7, 8, 9, 10]
        assert pipeline.state == PipelineState.CANCELLED
        assert pipeline.stats["skipped_on_cancel"] > 0

    def test_cancelled_run_resumes(self):
        store = InMemoryStore()
        pipeline, _, _ = make_pipeline(30, store=store)
        token = CancellationToken()

        asyncio.run(pipeline.run(5, progress=lambda p, t: token.cancel(), cancel=token))
        assert len(store.rows) == 5

        asyncio.run(pipeline.run(5))

        assert sorted(store.rows) == list(range(1, 31))
        assert pipeline.state == PipelineState.COMPLETED

    def test_cancel_before_start(self):
        pipeline, _, store = make_pipeline(10)
        token = CancellationToken()
        token.cancel()

        total = asyncio.run(pipeline.run(3, cancel=token))

        assert total == 10
        assert store.rows == {}
        assert pipeline.state == PipelineState.CANCELLED


class TestPipelineCursor:
    """Test the keyset cursor."""

    def test_advances_forward(self):
        cursor = PipelineCursor()
        cursor.advance(3)
        cursor.advance(7)
        assert cursor.position == 7

    def test_never_moves_back(self):
        cursor = PipelineCursor(position=7)
        with pytest.raises(ValueError):
            cursor.advance(7)
