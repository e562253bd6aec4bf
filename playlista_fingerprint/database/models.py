"""
SQLAlchemy models for Playlista fingerprinting
"""

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class MediaFile(Base):
    """A file in the music library"""

    __tablename__ = "media_files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    directory = Column(String(1000), nullable=False)
    file_name = Column(String(500), nullable=False)
    extension = Column(String(20), nullable=True)
    duration = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_directory_file_name", "directory", "file_name", unique=True),
    )


class MediaAnalysis(Base):
    """
    Acoustic fingerprint of one file. Scalar and array columns hold the
    normalized descriptors; ``raw`` holds the values they came from.
    """

    __tablename__ = "media_analysis"

    id = Column(Integer, primary_key=True, autoincrement=True)
    file_id = Column(Integer, ForeignKey("media_files.id"), nullable=False, unique=True, index=True)

    rms = Column(Float, nullable=True)
    zcr = Column(Float, nullable=True)
    energy = Column(Float, nullable=True)
    spectral_centroid = Column(Float, nullable=True)
    spectral_flatness = Column(Float, nullable=True)
    spectral_slope = Column(Float, nullable=True)
    spectral_rolloff = Column(Float, nullable=True)
    spectral_spread = Column(Float, nullable=True)
    spectral_skewness = Column(Float, nullable=True)
    spectral_kurtosis = Column(Float, nullable=True)
    perceptual_spread = Column(Float, nullable=True)
    perceptual_sharpness = Column(Float, nullable=True)

    # Fixed-length arrays: 12, 13 and 24 values
    chroma = Column(JSON, nullable=True)
    mfcc = Column(JSON, nullable=True)
    perceptual_loudness = Column(JSON, nullable=True)

    raw = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
