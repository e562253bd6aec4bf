"""
Repositories over the media and analysis tables.

LibraryRepository answers which files exist and which still lack a
fingerprint; FeatureStore writes and reads fingerprints. Every SQLAlchemy
failure surfaces as PersistenceError.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import delete, exists, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..analysis.decoder import FileDescriptor
from ..analysis.feature_set import ARRAY_FIELDS, SCALAR_FIELDS, FeatureVector
from ..core.exceptions import PersistenceError
from ..core.logging import get_logger
from .models import MediaAnalysis, MediaFile

logger = get_logger("database.repositories")


class LibraryRepository:
    """File universe: library files and their analysis status."""

    def __init__(self, session_maker: async_sessionmaker):
        self._session_maker = session_maker

    async def count_all(self) -> int:
        try:
            async with self._session_maker() as session:
                result = await session.execute(select(func.count()).select_from(MediaFile))
                return int(result.scalar_one())
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to count library files", details=str(e),
                                   operation="count_all", original_exception=e) from e

    async def list_unfeatured(self, after: Optional[int], limit: int) -> List[FileDescriptor]:
        """
        Next ``limit`` files without a fingerprint whose id is greater than
        ``after``, in ascending id order.
        """
        has_analysis = exists().where(MediaAnalysis.file_id == MediaFile.id)
        query = (
            select(MediaFile.id, MediaFile.directory, MediaFile.file_name)
            .where(~has_analysis)
            .order_by(MediaFile.id.asc())
            .limit(limit)
        )
        if after is not None:
            query = query.where(MediaFile.id > after)

        try:
            async with self._session_maker() as session:
                result = await session.execute(query)
                return [
                    FileDescriptor(id=row.id, directory=row.directory, file_name=row.file_name)
                    for row in result
                ]
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to page unanalyzed files", details=str(e),
                                   operation="list_unfeatured", original_exception=e) from e

    async def add_files(self, entries: Iterable[Dict[str, Any]]) -> List[int]:
        """Register library files; returns their ids in insertion order."""
        rows = [MediaFile(**entry) for entry in entries]
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    session.add_all(rows)
                    await session.flush()
                    return [row.id for row in rows]
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to register library files", details=str(e),
                                   operation="add_files", original_exception=e) from e


class FeatureStore:
    """Persisted fingerprints, at most one per file."""

    def __init__(self, session_maker: async_sessionmaker):
        self._session_maker = session_maker

    async def exists(self, file_id: int) -> bool:
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(exists().where(MediaAnalysis.file_id == file_id))
                )
                return bool(result.scalar())
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to check analysis", details=str(e),
                                   operation="exists", original_exception=e) from e

    async def insert_batch(self, vectors: Sequence[FeatureVector]) -> int:
        """Insert all vectors in one transaction; all or nothing."""
        if not vectors:
            return 0
        rows = [to_row(vector) for vector in vectors]
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    session.add_all(rows)
        except SQLAlchemyError as e:
            raise PersistenceError(
                "Failed to commit analysis batch",
                details=str(e),
                operation="insert_batch",
                context={"batch_size": len(rows), "file_ids": [v.file_id for v in vectors]},
                original_exception=e,
            ) from e

        logger.debug("Analysis batch inserted", rows=len(rows))
        return len(rows)

    async def fetch(self, file_ids: Iterable[int]) -> List[Dict[str, Any]]:
        """Stored descriptor columns for the given files, as plain dicts."""
        ids = sorted(set(file_ids))
        if not ids:
            return []
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(MediaAnalysis)
                    .where(MediaAnalysis.file_id.in_(ids))
                    .order_by(MediaAnalysis.file_id)
                )
                return [from_row(row) for row in result.scalars()]
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load analyses", details=str(e),
                                   operation="fetch", original_exception=e) from e

    async def delete(self, file_id: int) -> bool:
        """Remove a file's fingerprint so the next run analyzes it again."""
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(MediaAnalysis).where(MediaAnalysis.file_id == file_id)
                    )
                    return result.rowcount > 0
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to delete analysis", details=str(e),
                                   operation="delete", original_exception=e) from e


def to_row(vector: FeatureVector) -> MediaAnalysis:
    normalized = vector.normalized
    values: Dict[str, Any] = {name: getattr(normalized, name) for name in SCALAR_FIELDS}
    values.update({name: list(getattr(normalized, name)) for name in ARRAY_FIELDS})
    return MediaAnalysis(file_id=vector.file_id, raw=vector.raw.to_dict(), **values)


def from_row(row: MediaAnalysis) -> Dict[str, Any]:
    values: Dict[str, Any] = {"file_id": row.file_id}
    for name in SCALAR_FIELDS:
        values[name] = getattr(row, name)
    for name in ARRAY_FIELDS:
        values[name] = getattr(row, name)
    values["raw"] = row.raw
    return values
