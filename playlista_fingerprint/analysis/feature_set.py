"""
Feature set value objects shared by analysis, persistence and aggregation.

Every feature set has the same shape: twelve scalar descriptors and three
fixed-length arrays (chroma, mfcc, perceptual_loudness). Arrays are kept
as tuples so instances are immutable and hashable.
"""

import math
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple, Type, TypeVar

N_CHROMA = 12
N_MFCC = 13
N_BARK_BANDS = 24

SCALAR_FIELDS: Tuple[str, ...] = (
    "rms",
    "zcr",
    "energy",
    "spectral_centroid",
    "spectral_flatness",
    "spectral_slope",
    "spectral_rolloff",
    "spectral_spread",
    "spectral_skewness",
    "spectral_kurtosis",
    "perceptual_spread",
    "perceptual_sharpness",
)

ARRAY_FIELDS: Dict[str, int] = {
    "chroma": N_CHROMA,
    "mfcc": N_MFCC,
    "perceptual_loudness": N_BARK_BANDS,
}

# Layout of the flat vector consumed by the recommendation layer.
VECTOR_LAYOUT: Tuple[Tuple[str, int], ...] = (
    ("rms", 1),
    ("zcr", 1),
    ("energy", 1),
    ("spectral_centroid", 1),
    ("spectral_flatness", 1),
    ("spectral_slope", 1),
    ("spectral_rolloff", 1),
    ("spectral_spread", 1),
    ("spectral_skewness", 1),
    ("spectral_kurtosis", 1),
    ("chroma", N_CHROMA),
    ("perceptual_spread", 1),
    ("perceptual_sharpness", 1),
    ("perceptual_loudness", N_BARK_BANDS),
    ("mfcc", N_MFCC),
)

VECTOR_SIZE = sum(size for _, size in VECTOR_LAYOUT)

T = TypeVar("T", bound="FeatureSet")


@dataclass(frozen=True)
class FeatureSet:
    """Fixed-dimension acoustic descriptor set."""

    rms: float = 0.0
    zcr: float = 0.0
    energy: float = 0.0
    spectral_centroid: float = 0.0
    spectral_flatness: float = 0.0
    spectral_slope: float = 0.0
    spectral_rolloff: float = 0.0
    spectral_spread: float = 0.0
    spectral_skewness: float = 0.0
    spectral_kurtosis: float = 0.0
    perceptual_spread: float = 0.0
    perceptual_sharpness: float = 0.0
    chroma: Tuple[float, ...] = (0.0,) * N_CHROMA
    mfcc: Tuple[float, ...] = (0.0,) * N_MFCC
    perceptual_loudness: Tuple[float, ...] = (0.0,) * N_BARK_BANDS

    def __post_init__(self):
        for name, size in ARRAY_FIELDS.items():
            value = tuple(float(v) for v in getattr(self, name))
            if len(value) != size:
                raise ValueError(f"{name} must have {size} values, got {len(value)}")
            object.__setattr__(self, name, value)
        for name in SCALAR_FIELDS:
            object.__setattr__(self, name, float(getattr(self, name)))

    @classmethod
    def from_dict(cls: Type[T], data: Mapping[str, Any]) -> T:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        for name in ARRAY_FIELDS:
            result[name] = list(result[name])
        return result

    def values(self) -> Iterable[float]:
        """All scalar and array values, in vector order."""
        for name, size in VECTOR_LAYOUT:
            value = getattr(self, name)
            if size == 1:
                yield value
            else:
                yield from value

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in self.values())

    def to_vector(self) -> List[float]:
        """Flatten into the 61-element vector used for similarity search."""
        return list(self.values())


@dataclass(frozen=True)
class RawFeatureSet(FeatureSet):
    """Per-file descriptor means straight out of the analyzer."""


@dataclass(frozen=True)
class NormalizedFeatureSet(FeatureSet):
    """Descriptors remapped into bounded, comparison-stable ranges."""


@dataclass(frozen=True)
class AggregatedFeatureSet(FeatureSet):
    """Mean descriptors over a group of files."""


@dataclass(frozen=True)
class FeatureVector:
    """
    Persisted analysis of one file: normalized descriptors plus the raw
    values they were derived from.
    """

    file_id: int
    normalized: NormalizedFeatureSet
    raw: RawFeatureSet


def split_vector(vector: Sequence[float]) -> Dict[str, Any]:
    """Inverse of FeatureSet.to_vector: map a flat vector back to field values."""
    if len(vector) != VECTOR_SIZE:
        raise ValueError(f"Expected a vector of length {VECTOR_SIZE}, got {len(vector)}")
    result: Dict[str, Any] = {}
    offset = 0
    for name, size in VECTOR_LAYOUT:
        if size == 1:
            result[name] = float(vector[offset])
        else:
            result[name] = tuple(float(v) for v in vector[offset:offset + size])
        offset += size
    return result
