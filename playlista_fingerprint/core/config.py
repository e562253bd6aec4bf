"""
Configuration management for Playlista fingerprinting
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PLAYLISTA_",
        case_sensitive=False,
        extra="ignore",
    )

    # Database Settings
    database_url: str = Field(
        default="sqlite+aiosqlite:///./playlista.db",
        description="Database connection URL"
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    # Logging Settings
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format (json/text)")

    # Analysis Settings
    # Normalization maps frequency descriptors against an 11025 Hz reference Nyquist
    analysis_sample_rate: int = Field(default=22050, gt=0, le=22050, description="Decoding sample rate")
    analysis_max_duration: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Seconds of audio decoded per file (None decodes the whole file)"
    )
    analysis_window_size: int = Field(default=1024, ge=2, description="FFT window size in samples")
    analysis_hop_size: int = Field(default=512, ge=1, description="Hop between frames in samples")
    analysis_batch_size: int = Field(default=10, ge=1, description="Files per committed batch")
    analysis_use_process_pool: bool = Field(
        default=False,
        description="Run analysis tasks in a process pool instead of threads"
    )

    # Descriptor Settings
    mel_bands: int = Field(default=40, ge=13, description="Mel filterbank size for MFCC")
    rolloff_percent: float = Field(default=0.85, gt=0.0, lt=1.0, description="Spectral rolloff energy ratio")

    @model_validator(mode="after")
    def _check_hop(self) -> "Settings":
        if self.analysis_hop_size > self.analysis_window_size:
            raise ValueError("analysis_hop_size must not exceed analysis_window_size")
        return self


@lru_cache()
def get_settings() -> Settings:
    """Get application settings (cached)"""
    return Settings()
