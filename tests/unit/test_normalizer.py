"""
Unit tests for descriptor normalization.
"""

import math

import pytest

from playlista_fingerprint.analysis.feature_set import NormalizedFeatureSet, RawFeatureSet
from playlista_fingerprint.analysis.normalizer import (
    flatness,
    frequency,
    log_ceiling,
    normalize,
    soft_saturate,
)

SIGNED_FIELDS = {"spectral_slope", "spectral_skewness", "mfcc"}


def extreme_raw(sign: float) -> RawFeatureSet:
    return RawFeatureSet(
        rms=sign * 10.0,
        zcr=sign * 2.0,
        energy=sign * 1e9,
        spectral_centroid=sign * 1e6,
        spectral_flatness=sign * 5.0,
        spectral_slope=sign * 1e3,
        spectral_rolloff=sign * 1e6,
        spectral_spread=sign * 1e6,
        spectral_skewness=sign * 1e4,
        spectral_kurtosis=sign * 1e12,
        perceptual_spread=sign * 3.0,
        perceptual_sharpness=sign * 1e6,
        chroma=(sign * 4.0,) * 12,
        mfcc=(sign * 1e5,) * 13,
        perceptual_loudness=(sign * 1e6,) * 24,
    )


def assert_bounded(normalized: NormalizedFeatureSet) -> None:
    for name, value in normalized.to_dict().items():
        values = value if isinstance(value, list) else [value]
        low = -1.0 if name in SIGNED_FIELDS else 0.0
        for v in values:
            assert math.isfinite(v), name
            assert low <= v <= 1.0, name


class TestNormalize:
    """Test the raw-to-normalized mapping."""

    def test_zero_input(self):
        normalized = normalize(RawFeatureSet())

        assert isinstance(normalized, NormalizedFeatureSet)
        assert normalized.to_vector() == [0.0] * 61

    @pytest.mark.parametrize("sign", [1.0, -1.0])
    def test_extreme_values_are_bounded(self, sign):
        assert_bounded(normalize(extreme_raw(sign)))

    def test_pure_and_repeatable(self):
        """Normalizing the same input twice gives bit-identical output."""
        raw = RawFeatureSet(
            rms=0.12,
            zcr=0.08,
            energy=37.5,
            spectral_centroid=2300.0,
            spectral_flatness=0.02,
            spectral_slope=-0.4,
            spectral_rolloff=4100.0,
            spectral_spread=1800.0,
            spectral_skewness=2.5,
            spectral_kurtosis=11.0,
            perceptual_spread=0.6,
            perceptual_sharpness=1.3,
            chroma=tuple(i / 12 for i in range(12)),
            mfcc=tuple(-200.0 + 20 * i for i in range(13)),
            perceptual_loudness=tuple(0.1 * i for i in range(24)),
        )

        first = normalize(raw)
        second = normalize(RawFeatureSet.from_dict(raw.to_dict()))

        assert first == second
        assert first.to_vector() == second.to_vector()
        assert_bounded(first)

    def test_monotonic_in_frequency(self):
        low = normalize(RawFeatureSet(spectral_centroid=500.0))
        high = normalize(RawFeatureSet(spectral_centroid=5000.0))

        assert low.spectral_centroid < high.spectral_centroid


class TestMappings:
    """Test individual mapping helpers."""

    def test_frequency_reference(self):
        assert frequency(11025.0) == 1.0
        assert frequency(0.0) == 0.0

    def test_flatness_db_scale(self):
        assert flatness(1.0) == 1.0
        assert flatness(1e-6) == pytest.approx(0.0, abs=1e-12)
        assert flatness(1e-9) == 0.0
        assert flatness(1e-3) == pytest.approx(0.5)

    def test_log_ceiling(self):
        mapping = log_ceiling(1000.0)
        assert mapping(1000.0) == pytest.approx(1.0)
        assert mapping(0.0) == 0.0

    def test_soft_saturate(self):
        assert soft_saturate(1.0) == 0.5
        assert soft_saturate(-3.0) == 0.0
