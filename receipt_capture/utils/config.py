"""Configuration management for the receipt capture pipeline.

Loads and validates YAML configuration with defaults tuned for receipt
and invoice photos taken with a phone or webcam.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class SamplerConfig(BaseModel):
    """Configuration for grabbing frames from the video source."""

    max_processing_dimension: int = Field(default=1920, gt=0)


class DetectorConfig(BaseModel):
    """Thresholds for the classical edge/contour corner detector."""

    clahe_clip_limit: float = 2.0
    clahe_tile_size: int = 8
    blur_kernel_size: int = 5
    canny_low: int = 50
    canny_high: int = 150
    dilate_kernel_size: int = 3
    dilate_iterations: int = 1
    erode_iterations: int = 0
    min_area_fraction: float = 0.1
    max_area_fraction: float = 0.95
    approx_epsilon_fraction: float = 0.02
    min_angle: float = 60.0
    max_angle: float = 120.0
    min_side_ratio: float = 0.7
    max_side_ratio: float = 1.3
    area_weight: float = 0.75
    center_weight: float = 0.15
    perimeter_weight: float = 0.1
    refine_corners: bool = True
    refine_window: int = 5
    refine_max_shift: float = 10.0


class TrackerConfig(BaseModel):
    """Pointer interaction settings, in frame-resolution pixels."""

    touch_radius: float = Field(default=60.0, gt=0)
    edge_zone_multiplier: float = Field(default=2.0, ge=1.0)
    edge_zone_fraction: float = Field(default=0.1, ge=0.0, le=0.5)


class RectifierConfig(BaseModel):
    """Configuration for perspective correction and OCR post-processing."""

    min_output_dimension: int = Field(default=1400, gt=0)
    enhance: bool = True
    clahe_clip_limit: float = 2.0
    clahe_tile_size: int = 8
    sharpen_amount: float = 0.5


class EncoderConfig(BaseModel):
    """Configuration for serializing captures."""

    format: str = "JPEG"
    jpeg_quality: float = Field(default=0.95, gt=0.0, le=1.0)
    max_upload_bytes: int | None = None
    quality_presets: list[float] = Field(
        default_factory=lambda: [0.95, 0.9, 0.85, 0.8, 0.7]
    )


class SessionConfig(BaseModel):
    """Scheduling for the live detection loop."""

    detection_interval_ms: int = Field(default=100, ge=0)
    engine_ready_timeout_s: float = Field(default=30.0, gt=0)


class ServerConfig(BaseModel):
    """Bind address for the HTTP API."""

    host: str = "127.0.0.1"
    port: int = 8000


class OCRConfig(BaseModel):
    """Configuration for the Tesseract OCR collaborator."""

    tesseract_cmd: str | None = None
    default_lang: str = "eng"
    psm: int = 6


class AppConfig(BaseModel):
    """Top-level application configuration."""

    sampler: SamplerConfig = Field(default_factory=SamplerConfig)
    detector: DetectorConfig = Field(default_factory=DetectorConfig)
    tracker: TrackerConfig = Field(default_factory=TrackerConfig)
    rectifier: RectifierConfig = Field(default_factory=RectifierConfig)
    encoder: EncoderConfig = Field(default_factory=EncoderConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
