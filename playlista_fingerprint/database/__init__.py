"""Database components for Playlista fingerprinting"""

from .connection import close_db, get_session_maker, init_db
from .models import Base, MediaAnalysis, MediaFile
from .repositories import FeatureStore, LibraryRepository

__all__ = [
    "init_db",
    "close_db",
    "get_session_maker",
    "Base",
    "MediaFile",
    "MediaAnalysis",
    "LibraryRepository",
    "FeatureStore",
]
