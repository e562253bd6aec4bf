"""
Shared test doubles: synthetic audio, an in-memory library and feature store.
"""

from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from playlista_fingerprint.analysis.decoder import AudioSource, FileDescriptor
from playlista_fingerprint.analysis.feature_set import FeatureVector
from playlista_fingerprint.core.exceptions import DecodeError, PersistenceError

SAMPLE_RATE = 22050


def sine(frequency: float, n_samples: int = 4096, amplitude: float = 0.5,
         sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    t = np.arange(n_samples) / sample_rate
    return amplitude * np.sin(2.0 * np.pi * frequency * t)


class SineDecoder:
    """Decodes file N into a sine whose pitch depends on N."""

    def __init__(self, corrupt: Iterable[int] = (), n_samples: int = 4096):
        self.corrupt = set(corrupt)
        self.n_samples = n_samples
        self.decoded: List[int] = []

    def decode(self, file: FileDescriptor) -> AudioSource:
        if file.id in self.corrupt:
            raise DecodeError("Unreadable audio", file_id=file.id, path=file.file_name)
        self.decoded.append(file.id)
        samples = sine(220.0 + 10.0 * file.id, self.n_samples)
        return AudioSource(
            identifier=file.id,
            sample_rate=SAMPLE_RATE,
            samples=samples,
            duration=len(samples) / SAMPLE_RATE,
        )


class InMemoryStore:
    """Feature sink that behaves like a table with a unique file_id."""

    def __init__(self, fail_on_batch: Optional[int] = None):
        self.rows: Dict[int, FeatureVector] = {}
        self.batches: List[List[int]] = []
        self.fail_on_batch = fail_on_batch

    async def insert_batch(self, vectors: Sequence[FeatureVector]) -> int:
        if self.fail_on_batch is not None and len(self.batches) + 1 == self.fail_on_batch:
            raise PersistenceError("Simulated commit failure", operation="insert_batch")
        ids = [vector.file_id for vector in vectors]
        if any(file_id in self.rows for file_id in ids):
            raise PersistenceError("Duplicate analysis", operation="insert_batch")
        for vector in vectors:
            self.rows[vector.file_id] = vector
        self.batches.append(ids)
        return len(vectors)


class InMemoryLibrary:
    """File universe whose 'unfeatured' view is derived from an InMemoryStore."""

    def __init__(self, file_ids: Iterable[int], store: InMemoryStore):
        self.file_ids = sorted(file_ids)
        self.store = store
        self.pages: List[Optional[int]] = []

    async def count_all(self) -> int:
        return len(self.file_ids)

    async def list_unfeatured(self, after: Optional[int], limit: int) -> List[FileDescriptor]:
        self.pages.append(after)
        candidates = [
            file_id for file_id in self.file_ids
            if file_id not in self.store.rows and (after is None or file_id > after)
        ]
        return [
            FileDescriptor(id=file_id, directory="artist/album", file_name=f"{file_id:03d}.mp3")
            for file_id in candidates[:limit]
        ]
