"""
Decoded-audio collaborator: turns a library file reference into mono PCM.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Union

import numpy as np

from ..core.exceptions import DecodeError
from ..core.logging import get_logger

logger = get_logger("analysis.decoder")


@dataclass(frozen=True)
class FileDescriptor:
    """A library file as seen by the pipeline: its id and location."""

    id: int
    directory: str
    file_name: str

    def resolve(self, library_root: Union[str, Path]) -> Path:
        return Path(library_root) / self.directory / self.file_name


@dataclass(frozen=True)
class AudioSource:
    """Decoded mono PCM for one file. Transient: discarded after analysis."""

    identifier: int
    sample_rate: int
    samples: np.ndarray
    duration: float

    @property
    def total_samples(self) -> int:
        return int(len(self.samples))


class AudioDecoder(Protocol):
    def decode(self, file: FileDescriptor) -> AudioSource:
        ...


class LibrosaDecoder:
    """Decode and resample library files with librosa."""

    def __init__(self, library_root: Union[str, Path], sample_rate: int = 22050,
                 max_duration: Optional[float] = None):
        self.library_root = Path(library_root)
        self.sample_rate = sample_rate
        self.max_duration = max_duration

    def decode(self, file: FileDescriptor) -> AudioSource:
        import librosa

        path = file.resolve(self.library_root)
        try:
            samples, sr = librosa.load(
                str(path),
                sr=self.sample_rate,
                mono=True,
                duration=self.max_duration,
            )
        except Exception as e:
            raise DecodeError(
                "Audio loading failed",
                details=str(e),
                file_id=file.id,
                path=str(path),
                original_exception=e,
            ) from e

        logger.debug(
            "Audio loaded successfully",
            file_id=file.id,
            duration_seconds=len(samples) / sr,
            sample_rate=sr,
            samples=len(samples)
        )
        return AudioSource(
            identifier=file.id,
            sample_rate=int(sr),
            samples=samples,
            duration=len(samples) / float(sr),
        )
