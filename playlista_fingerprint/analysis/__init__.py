"""Acoustic analysis: frames, per-file features and normalization"""

from .decoder import AudioDecoder, AudioSource, FileDescriptor, LibrosaDecoder
from .feature_set import (
    AggregatedFeatureSet,
    FeatureVector,
    NormalizedFeatureSet,
    RawFeatureSet,
)
from .features import AnalysisParameters, aggregate_frames, analyze_source, extract_features
from .frames import FrameSequence, SpectralFrameAnalyzer
from .normalizer import normalize

__all__ = [
    "AudioDecoder",
    "AudioSource",
    "FileDescriptor",
    "LibrosaDecoder",
    "RawFeatureSet",
    "NormalizedFeatureSet",
    "AggregatedFeatureSet",
    "FeatureVector",
    "AnalysisParameters",
    "aggregate_frames",
    "analyze_source",
    "extract_features",
    "FrameSequence",
    "SpectralFrameAnalyzer",
    "normalize",
]
