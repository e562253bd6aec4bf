"""
Spectral frame analysis: windowed FFT frames and per-frame descriptors.

Framing policy: frames start at 0, hop, 2*hop, ... and are emitted only when
they fit completely inside the buffer, so a trailing partial frame is
dropped. A non-empty buffer shorter than one window yields a single frame
zero-padded to the window size.
"""

from dataclasses import dataclass
from typing import Iterator, Sequence, Union

import librosa
import numpy as np
from scipy.fft import dct

from ..core.exceptions import ExtractionError
from .feature_set import N_BARK_BANDS, N_CHROMA, N_MFCC, VECTOR_LAYOUT, VECTOR_SIZE

# Total spectral power at or below this is treated as silence.
SILENCE_FLOOR = 1e-12
LOG_FLOOR = 1e-10
LOUDNESS_EXPONENT = 0.23

ArrayLike = Union[np.ndarray, Sequence[float]]


def frame_count(n_samples: int, window_size: int, hop_size: int) -> int:
    """Number of frames FrameSequence yields for a buffer of n_samples."""
    if n_samples <= 0:
        return 0
    if n_samples < window_size:
        return 1
    return 1 + (n_samples - window_size) // hop_size


class FrameSequence:
    """
    Lazy, finite, restartable sequence of overlapping frames.

    Frames are views into the sample buffer; only the zero-padded frame of
    a short buffer is a copy.
    """

    def __init__(self, samples: ArrayLike, window_size: int, hop_size: int):
        if window_size < 2:
            raise ValueError(f"window_size must be >= 2, got {window_size}")
        if not 1 <= hop_size <= window_size:
            raise ValueError(f"hop_size must be in 1..{window_size}, got {hop_size}")

        buffer = np.asarray(samples, dtype=np.float64)
        if buffer.ndim != 1:
            raise ExtractionError(f"Expected a mono sample buffer, got shape {buffer.shape}")

        self.samples = buffer
        self.window_size = window_size
        self.hop_size = hop_size

    @property
    def overlap(self) -> int:
        return self.window_size - self.hop_size

    def __len__(self) -> int:
        return frame_count(len(self.samples), self.window_size, self.hop_size)

    def __iter__(self) -> Iterator[np.ndarray]:
        n = len(self.samples)
        if n == 0:
            return
        if n < self.window_size:
            padded = np.zeros(self.window_size, dtype=np.float64)
            padded[:n] = self.samples
            yield padded
            return
        for start in range(0, n - self.window_size + 1, self.hop_size):
            yield self.samples[start:start + self.window_size]


@dataclass
class FrameDescriptors:
    """Raw descriptors of a single frame."""

    rms: float
    zcr: float
    energy: float
    spectral_centroid: float
    spectral_flatness: float
    spectral_slope: float
    spectral_rolloff: float
    spectral_spread: float
    spectral_skewness: float
    spectral_kurtosis: float
    perceptual_spread: float
    perceptual_sharpness: float
    chroma: np.ndarray
    mfcc: np.ndarray
    perceptual_loudness: np.ndarray

    def to_array(self) -> np.ndarray:
        """Flatten in VECTOR_LAYOUT order."""
        out = np.empty(VECTOR_SIZE, dtype=np.float64)
        offset = 0
        for name, size in VECTOR_LAYOUT:
            out[offset:offset + size] = getattr(self, name)
            offset += size
        return out


def a_weighting(frequencies: np.ndarray) -> np.ndarray:
    """IEC 61672 A-weighting as a power gain per frequency."""
    f2 = np.asarray(frequencies, dtype=np.float64) ** 2
    numerator = (12194.0 ** 2) * f2 ** 2
    denominator = (
        (f2 + 20.6 ** 2)
        * np.sqrt((f2 + 107.7 ** 2) * (f2 + 737.9 ** 2))
        * (f2 + 12194.0 ** 2)
    )
    amplitude = numerator / denominator
    # +2.0 dB normalises the curve to unity at 1 kHz
    return (amplitude ** 2) * (10.0 ** (2.0 / 10.0))


def bark_band_index(frequencies: np.ndarray) -> np.ndarray:
    """Critical band (0..23) each frequency bin falls into."""
    f = np.asarray(frequencies, dtype=np.float64)
    bark = 13.0 * np.arctan(0.00076 * f) + 3.5 * np.arctan((f / 7500.0) ** 2)
    return np.clip(np.floor(bark), 0, N_BARK_BANDS - 1).astype(np.intp)


class SpectralFrameAnalyzer:
    """
    Turns a mono PCM buffer into per-frame spectral, timbral and perceptual
    descriptors. Filterbanks and weights are built once per instance, so an
    analyzer is cheap to reuse across files with the same sample rate.
    """

    def __init__(
        self,
        sample_rate: int,
        window_size: int = 1024,
        hop_size: int = 512,
        mel_bands: int = 40,
        rolloff_percent: float = 0.85,
    ):
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        if window_size < 2:
            raise ValueError(f"window_size must be >= 2, got {window_size}")
        if not 1 <= hop_size <= window_size:
            raise ValueError(f"hop_size must be in 1..{window_size}, got {hop_size}")

        self.sample_rate = sample_rate
        self.window_size = window_size
        self.hop_size = hop_size
        self.rolloff_percent = rolloff_percent
        self.nyquist = sample_rate / 2.0

        self.window = np.hanning(window_size)
        self.frequencies = np.fft.rfftfreq(window_size, d=1.0 / sample_rate)
        self._normalized_frequencies = self.frequencies / self.nyquist

        self._mel_basis = librosa.filters.mel(
            sr=sample_rate, n_fft=window_size, n_mels=mel_bands
        ).astype(np.float64)
        self._chroma_basis = librosa.filters.chroma(
            sr=sample_rate, n_fft=window_size, n_chroma=N_CHROMA
        ).astype(np.float64)
        self._loudness_weights = a_weighting(self.frequencies)
        self._bark_index = bark_band_index(self.frequencies)

        bands = np.arange(1, N_BARK_BANDS + 1, dtype=np.float64)
        sharpness_weights = np.where(bands < 15, 1.0, 0.066 * np.exp(0.171 * bands))
        self._sharpness_kernel = bands * sharpness_weights

    def frames(self, samples: ArrayLike) -> FrameSequence:
        return FrameSequence(samples, self.window_size, self.hop_size)

    def analyze(self, samples: ArrayLike) -> Iterator[FrameDescriptors]:
        """Lazily yield descriptors for every frame of the buffer."""
        for frame in self.frames(samples):
            yield self.analyze_frame(frame)

    def analyze_frame(self, frame: np.ndarray) -> FrameDescriptors:
        frame = np.asarray(frame, dtype=np.float64)
        if frame.shape != (self.window_size,):
            raise ExtractionError(
                f"Frame must have {self.window_size} samples, got {frame.shape}"
            )

        squared = frame * frame
        energy = float(squared.sum())
        rms = float(np.sqrt(squared.mean()))
        positive = frame >= 0.0
        zcr = float(np.count_nonzero(positive[1:] != positive[:-1])) / (self.window_size - 1)

        spectrum = np.fft.rfft(frame * self.window)
        magnitude = np.abs(spectrum)
        power = magnitude * magnitude
        total = float(power.sum())

        if total <= SILENCE_FLOOR:
            return FrameDescriptors(
                rms=rms,
                zcr=zcr,
                energy=energy,
                spectral_centroid=0.0,
                spectral_flatness=0.0,
                spectral_slope=0.0,
                spectral_rolloff=0.0,
                spectral_spread=0.0,
                spectral_skewness=0.0,
                spectral_kurtosis=0.0,
                perceptual_spread=0.0,
                perceptual_sharpness=0.0,
                chroma=np.zeros(N_CHROMA),
                mfcc=np.zeros(N_MFCC),
                perceptual_loudness=np.zeros(N_BARK_BANDS),
            )

        centroid, spread, skewness, kurtosis = self._moments(power, total)
        loudness, perceptual_spread, sharpness = self._perceptual(power)

        return FrameDescriptors(
            rms=rms,
            zcr=zcr,
            energy=energy,
            spectral_centroid=centroid,
            spectral_flatness=self._flatness(power),
            spectral_slope=self._slope(magnitude),
            spectral_rolloff=self._rolloff(power, total),
            spectral_spread=spread,
            spectral_skewness=skewness,
            spectral_kurtosis=kurtosis,
            perceptual_spread=perceptual_spread,
            perceptual_sharpness=sharpness,
            chroma=self._chroma(power),
            mfcc=self._mfcc(power),
            perceptual_loudness=loudness,
        )

    def _moments(self, power: np.ndarray, total: float):
        weights = power / total
        centroid = float(np.dot(self.frequencies, weights))
        deviation = self.frequencies - centroid
        variance = float(np.dot(deviation ** 2, weights))
        spread = float(np.sqrt(variance))
        if spread <= 1e-9:
            return centroid, 0.0, 0.0, 0.0
        skewness = float(np.dot(deviation ** 3, weights)) / spread ** 3
        kurtosis = float(np.dot(deviation ** 4, weights)) / spread ** 4
        return centroid, spread, skewness, kurtosis

    def _flatness(self, power: np.ndarray) -> float:
        geometric = float(np.exp(np.mean(np.log(np.maximum(power, LOG_FLOOR ** 2)))))
        arithmetic = float(power.mean())
        return min(geometric / arithmetic, 1.0)

    def _slope(self, magnitude: np.ndarray) -> float:
        mean_magnitude = float(magnitude.mean())
        if mean_magnitude <= 0.0:
            return 0.0
        shape = magnitude / mean_magnitude
        x = self._normalized_frequencies
        x_centered = x - x.mean()
        return float(np.dot(x_centered, shape - shape.mean()) / np.dot(x_centered, x_centered))

    def _rolloff(self, power: np.ndarray, total: float) -> float:
        cumulative = np.cumsum(power)
        index = int(np.searchsorted(cumulative, self.rolloff_percent * total))
        return float(self.frequencies[min(index, len(self.frequencies) - 1)])

    def _mfcc(self, power: np.ndarray) -> np.ndarray:
        mel_energy = self._mel_basis @ power
        log_mel = np.log(np.maximum(mel_energy, LOG_FLOOR))
        return dct(log_mel, type=2, norm="ortho")[:N_MFCC]

    def _chroma(self, power: np.ndarray) -> np.ndarray:
        chroma = self._chroma_basis @ power
        peak = float(chroma.max())
        if peak <= 0.0:
            return np.zeros(N_CHROMA)
        return chroma / peak

    def _perceptual(self, power: np.ndarray):
        weighted = power * self._loudness_weights
        band_energy = np.bincount(self._bark_index, weights=weighted, minlength=N_BARK_BANDS)
        specific = np.power(band_energy, LOUDNESS_EXPONENT)
        total = float(specific.sum())
        if total <= 0.0:
            return specific, 0.0, 0.0
        spread = ((total - float(specific.max())) / total) ** 2
        sharpness = 0.11 * float(np.dot(self._sharpness_kernel, specific)) / total
        return specific, spread, sharpness
