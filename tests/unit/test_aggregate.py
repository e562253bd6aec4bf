"""
Unit tests for group aggregation.
"""

import asyncio

import pytest

from playlista_fingerprint.analysis.feature_set import AggregatedFeatureSet
from playlista_fingerprint.library.aggregate import GroupAggregator, aggregate_rows, row_vector


class StaticStore:
    def __init__(self, rows):
        self.rows = rows
        self.requested = None

    async def fetch(self, file_ids):
        self.requested = sorted(file_ids)
        return [row for row in self.rows if row["file_id"] in self.requested]


class TestAggregateRows:
    """Test null-aware per-axis means."""

    def test_null_values_are_ignored(self):
        """A missing value does not drag the mean toward zero."""
        rows = [
            {"file_id": 1, "rms": 2.0, "zcr": 0.2},
            {"file_id": 2, "rms": None, "zcr": 0.4},
        ]

        result = aggregate_rows(rows)

        assert isinstance(result, AggregatedFeatureSet)
        assert result.rms == 2.0
        assert result.zcr == pytest.approx(0.3)

    def test_axis_without_values_is_zero(self):
        rows = [{"file_id": 1, "rms": None}, {"file_id": 2}]

        result = aggregate_rows(rows)

        assert result.rms == 0.0
        assert result.to_vector() == [0.0] * 61

    def test_empty_group(self):
        assert aggregate_rows([]) == AggregatedFeatureSet()

    def test_arrays_averaged_per_position(self):
        rows = [
            {"file_id": 1, "chroma": [1.0] * 12},
            {"file_id": 2, "chroma": [0.0] * 6 + [None] * 6},
            {"file_id": 3, "chroma": None},
        ]

        result = aggregate_rows(rows)

        assert result.chroma[:6] == (0.5,) * 6
        assert result.chroma[6:] == (1.0,) * 6

    def test_non_finite_values_are_ignored(self):
        rows = [{"rms": float("nan")}, {"rms": 0.4}]
        assert aggregate_rows(rows).rms == pytest.approx(0.4)

    def test_row_vector_presence_mask(self):
        values, present = row_vector({"rms": 1.0, "mfcc": [2.0] * 13})

        assert present.sum() == 14
        assert values[0] == 1.0
        assert list(values[48:]) == [2.0] * 13


class TestGroupAggregator:
    """Test aggregation backed by a store."""

    def test_aggregate_fetches_requested_files(self):
        store = StaticStore([
            {"file_id": 1, "energy": 0.2},
            {"file_id": 2, "energy": 0.6},
            {"file_id": 3, "energy": 1.0},
        ])

        result = asyncio.run(GroupAggregator(store).aggregate([1, 2, 2]))

        assert store.requested == [1, 2]
        assert result.energy == pytest.approx(0.4)

    def test_unknown_files_yield_zero(self):
        store = StaticStore([{"file_id": 1, "energy": 0.2}])

        result = asyncio.run(GroupAggregator(store).aggregate([42]))

        assert result == AggregatedFeatureSet()
