"""
Group aggregation of stored fingerprints.

The mean is taken independently per scalar and per array position, over the
rows that actually hold a value there; an axis no row contributes to is 0.0.
A group where some files lack some descriptors still yields a centroid.
"""

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

import numpy as np

from ..analysis.feature_set import VECTOR_LAYOUT, VECTOR_SIZE, AggregatedFeatureSet, split_vector
from ..core.logging import get_logger

logger = get_logger("library.aggregate")


class AnalysisSource(Protocol):
    async def fetch(self, file_ids: Iterable[int]) -> List[Dict[str, Any]]:
        ...


def _contribution(value: Any) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def row_vector(row: Mapping[str, Any]) -> Tuple[np.ndarray, np.ndarray]:
    """Flatten a stored row into (values, present) arrays in vector order."""
    values = np.zeros(VECTOR_SIZE, dtype=np.float64)
    present = np.zeros(VECTOR_SIZE, dtype=bool)
    offset = 0
    for name, size in VECTOR_LAYOUT:
        field = row.get(name)
        if size == 1:
            items = [field]
        else:
            items = list(field or [])[:size]
        for index, item in enumerate(items):
            contribution = _contribution(item)
            if contribution is not None:
                values[offset + index] = contribution
                present[offset + index] = True
        offset += size
    return values, present


def aggregate_rows(rows: Iterable[Mapping[str, Any]]) -> AggregatedFeatureSet:
    sums = np.zeros(VECTOR_SIZE, dtype=np.float64)
    counts = np.zeros(VECTOR_SIZE, dtype=np.int64)
    for row in rows:
        values, present = row_vector(row)
        sums += values
        counts += present

    means = np.zeros(VECTOR_SIZE, dtype=np.float64)
    np.divide(sums, counts, out=means, where=counts > 0)
    return AggregatedFeatureSet(**split_vector(means))


class GroupAggregator:
    """Mean fingerprint of a set of files."""

    def __init__(self, store: AnalysisSource):
        self.store = store

    async def aggregate(self, file_ids: Iterable[int]) -> AggregatedFeatureSet:
        ids = set(file_ids)
        rows = await self.store.fetch(ids)
        logger.debug("Aggregating analyses", requested=len(ids), found=len(rows))
        return aggregate_rows(rows)
