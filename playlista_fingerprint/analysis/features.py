"""
Per-file feature extraction: frame descriptors folded into one feature set.
"""

import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional

import numpy as np

from ..core.config import Settings
from ..core.exceptions import AnalysisError, DecodeError, ExtractionError
from ..core.logging import get_logger
from .decoder import AudioDecoder, FileDescriptor
from .feature_set import VECTOR_SIZE, FeatureVector, RawFeatureSet, split_vector
from .frames import ArrayLike, FrameDescriptors, SpectralFrameAnalyzer
from .normalizer import normalize

logger = get_logger("analysis.features")


@dataclass(frozen=True)
class AnalysisParameters:
    """Framing and descriptor parameters shared by every analysis task."""

    window_size: int = 1024
    hop_size: int = 512
    mel_bands: int = 40
    rolloff_percent: float = 0.85

    @classmethod
    def from_settings(cls, settings: Settings) -> "AnalysisParameters":
        return cls(
            window_size=settings.analysis_window_size,
            hop_size=settings.analysis_hop_size,
            mel_bands=settings.mel_bands,
            rolloff_percent=settings.rolloff_percent,
        )


class FeatureAccumulator:
    """
    Running arithmetic mean of frame descriptors, per scalar and per array
    position. Incremental updates keep long files from overflowing a sum.
    """

    def __init__(self):
        self._mean = np.zeros(VECTOR_SIZE, dtype=np.float64)
        self.count = 0

    def add(self, descriptors: FrameDescriptors) -> None:
        self.count += 1
        self._mean += (descriptors.to_array() - self._mean) / self.count

    def result(self) -> RawFeatureSet:
        if self.count == 0:
            raise ExtractionError("No frames to aggregate")
        if not np.all(np.isfinite(self._mean)):
            bad = int(np.count_nonzero(~np.isfinite(self._mean)))
            raise ExtractionError(
                "Non-finite descriptor values",
                details=f"{bad} of {VECTOR_SIZE} values",
            )
        return RawFeatureSet(**split_vector(self._mean))


def aggregate_frames(frames: Iterable[FrameDescriptors]) -> RawFeatureSet:
    """Fold a frame descriptor sequence into one RawFeatureSet."""
    accumulator = FeatureAccumulator()
    for descriptors in frames:
        accumulator.add(descriptors)
    return accumulator.result()


@lru_cache(maxsize=8)
def get_analyzer(sample_rate: int, params: AnalysisParameters) -> SpectralFrameAnalyzer:
    return SpectralFrameAnalyzer(
        sample_rate,
        window_size=params.window_size,
        hop_size=params.hop_size,
        mel_bands=params.mel_bands,
        rolloff_percent=params.rolloff_percent,
    )


def extract_features(
    samples: ArrayLike,
    sample_rate: int,
    params: Optional[AnalysisParameters] = None,
) -> RawFeatureSet:
    """
    Analyze a mono PCM buffer.

    Raises:
        ExtractionError: empty buffer, numeric failure or non-finite result
    """
    params = params or AnalysisParameters()
    try:
        analyzer = get_analyzer(int(sample_rate), params)
        with np.errstate(divide="raise", over="raise", invalid="raise", under="ignore"):
            return aggregate_frames(analyzer.analyze(samples))
    except ExtractionError:
        raise
    except Exception as e:
        raise ExtractionError(
            "Descriptor computation failed",
            details=f"{type(e).__name__}: {e}",
            original_exception=e,
        ) from e


def analyze_source(
    decoder: AudioDecoder,
    file: FileDescriptor,
    params: Optional[AnalysisParameters] = None,
) -> FeatureVector:
    """
    Decode, analyze and normalize one library file.

    Reads the source audio and nothing else; safe to run in a worker thread
    or process.
    """
    start_time = time.time()
    try:
        source = decoder.decode(file)
    except AnalysisError:
        raise
    except Exception as e:
        raise DecodeError(
            "Audio decoding failed",
            details=f"{type(e).__name__}: {e}",
            file_id=file.id,
            original_exception=e,
        ) from e

    try:
        raw = extract_features(source.samples, source.sample_rate, params)
    except ExtractionError as e:
        e.file_id = file.id
        e.context.setdefault("file_id", file.id)
        raise

    logger.debug(
        "Features extracted",
        file_id=file.id,
        audio_duration=round(source.duration, 2),
        duration_ms=round((time.time() - start_time) * 1000, 2)
    )
    return FeatureVector(file_id=file.id, normalized=normalize(raw), raw=raw)
