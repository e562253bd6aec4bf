"""
Deterministic mapping of raw descriptors into bounded ranges.

Every mapping is element-wise and uses fixed constants, so the output is a
pure function of the input and does not depend on reduction order.
"""

import math
from typing import Callable, Dict, Tuple

from .feature_set import NormalizedFeatureSet, RawFeatureSet

# Nyquist of the highest accepted decoding rate (22050 Hz)
REFERENCE_NYQUIST_HZ = 11025.0
FLATNESS_FLOOR_DB = -60.0
ENERGY_CEILING = 1024.0
KURTOSIS_CEILING = 1000.0
SKEWNESS_SCALE = 10.0
MFCC_SCALE = 100.0


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(max(value, low), high)


def unit(value: float) -> float:
    return clamp(value)


def frequency(value: float) -> float:
    return clamp(value / REFERENCE_NYQUIST_HZ)


def flatness(value: float) -> float:
    if value <= 0.0:
        return 0.0
    db = 10.0 * math.log10(value)
    return clamp((db - FLATNESS_FLOOR_DB) / -FLATNESS_FLOOR_DB)


def log_ceiling(ceiling: float) -> Callable[[float], float]:
    denominator = math.log1p(ceiling)

    def mapping(value: float) -> float:
        return clamp(math.log1p(max(value, 0.0)) / denominator)
    return mapping


def soft_saturate(value: float) -> float:
    value = max(value, 0.0)
    return value / (1.0 + value)


def tanh_scaled(scale: float) -> Callable[[float], float]:
    def mapping(value: float) -> float:
        return math.tanh(value / scale)
    return mapping


SCALAR_MAPPINGS: Dict[str, Callable[[float], float]] = {
    "rms": unit,
    "zcr": unit,
    "energy": log_ceiling(ENERGY_CEILING),
    "spectral_centroid": frequency,
    "spectral_flatness": flatness,
    "spectral_slope": math.tanh,
    "spectral_rolloff": frequency,
    "spectral_spread": frequency,
    "spectral_skewness": tanh_scaled(SKEWNESS_SCALE),
    "spectral_kurtosis": log_ceiling(KURTOSIS_CEILING),
    "perceptual_spread": unit,
    "perceptual_sharpness": soft_saturate,
}

ARRAY_MAPPINGS: Dict[str, Callable[[float], float]] = {
    "chroma": unit,
    "mfcc": tanh_scaled(MFCC_SCALE),
    "perceptual_loudness": soft_saturate,
}


def _map_array(values: Tuple[float, ...], mapping: Callable[[float], float]) -> Tuple[float, ...]:
    return tuple(mapping(v) for v in values)


def normalize(raw: RawFeatureSet) -> NormalizedFeatureSet:
    """Map a RawFeatureSet into its NormalizedFeatureSet."""
    values = {name: mapping(getattr(raw, name)) for name, mapping in SCALAR_MAPPINGS.items()}
    values.update(
        {name: _map_array(getattr(raw, name), mapping) for name, mapping in ARRAY_MAPPINGS.items()}
    )
    return NormalizedFeatureSet(**values)
