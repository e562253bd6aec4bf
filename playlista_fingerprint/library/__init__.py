"""Library-wide analysis: batch pipeline and group aggregation"""

from .aggregate import GroupAggregator, aggregate_rows
from .cancellation import CancellationToken, cancel_on_signals
from .pipeline import (
    LibraryAnalysisPipeline,
    PipelineCursor,
    PipelineState,
    analyze_library,
    empty_progress_callback,
)

__all__ = [
    "GroupAggregator",
    "aggregate_rows",
    "CancellationToken",
    "cancel_on_signals",
    "LibraryAnalysisPipeline",
    "PipelineCursor",
    "PipelineState",
    "analyze_library",
    "empty_progress_callback",
]
