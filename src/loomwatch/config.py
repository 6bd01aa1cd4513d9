"""
LoomWatch Configuration
=======================

This module handles configuration loading for the detection service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    LOOMWATCH_STREAM_URL        -> stream.url
    LOOMWATCH_MAX_QUEUE_SIZE    -> stream.max_queue_size
    LOOMWATCH_WORKING_WIDTH     -> processing.width
    LOOMWATCH_WORKING_HEIGHT    -> processing.height
    LOOMWATCH_THRESHOLD_HIGH    -> thresholds.high
    LOOMWATCH_THRESHOLD_LOW     -> thresholds.low
    LOOMWATCH_COOLDOWN_MS       -> alert.cooldown_ms
    LOOMWATCH_SPEECH_ENABLED    -> speech.enabled
    LOOMWATCH_AGENT_PORT        -> server.port
    LOOMWATCH_LOG_LEVEL         -> logging.level
    PORT                        -> server.port (Cloud Run)

Example:
    from loomwatch.config import settings

    print(settings.thresholds.high)
    print(settings.alert.cooldown_ms)
"""

import os
import logging
from pathlib import Path
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, Field, model_validator


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class AgentConfig(BaseModel):
    """Agent identification configuration."""

    name: str = Field(default="loomwatch", description="Agent name")
    version: str = Field(default="v0.1.0", description="Protocol version")


class StreamConfig(BaseModel):
    """Frame source connection configuration."""

    url: str = Field(
        default="ws://localhost:8000/ws/camera",
        description="WebSocket URL of the camera frame source",
    )
    reconnect_backoff_ms: int = Field(
        default=500,
        ge=100,
        description="Backoff in milliseconds between reconnect attempts",
    )
    max_reconnect_attempts: int = Field(
        default=0,
        ge=0,
        description="Maximum reconnection attempts (0 = unlimited)",
    )
    max_queue_size: int = Field(
        default=1,
        ge=1,
        description="Frame buffer capacity (1 = keep only latest)",
    )


class ProcessingConfig(BaseModel):
    """Working resolution and magnitude preprocessing."""

    width: int = Field(default=480, gt=0, description="Working frame width")
    height: int = Field(default=360, gt=0, description="Working frame height")
    blur_kernel: int = Field(
        default=5,
        ge=0,
        description="Gaussian blur kernel for the magnitude field (<=1 disables)",
    )

    @model_validator(mode="after")
    def _check_blur_kernel(self) -> "ProcessingConfig":
        if self.blur_kernel > 1 and self.blur_kernel % 2 == 0:
            raise ValueError(f"blur_kernel must be odd, got {self.blur_kernel}")
        return self


class OpticalFlowConfig(BaseModel):
    """Farnebäck dense optical flow parameters."""

    pyr_scale: float = Field(default=0.5, gt=0, lt=1.0)
    levels: int = Field(default=3, ge=1)
    winsize: int = Field(default=15, ge=3)
    iterations: int = Field(default=3, ge=1)
    poly_n: int = Field(default=5, ge=5)
    poly_sigma: float = Field(default=1.2, gt=0)


class SmoothingConfig(BaseModel):
    """Exponential smoothing of mean flow magnitude."""

    alpha: float = Field(
        default=0.5,
        gt=0,
        le=1.0,
        description="EMA weight of the current frame (0, 1]",
    )


class IntegratorConfig(BaseModel):
    """Leaky temporal integrator."""

    charge_decay: float = Field(
        default=0.88,
        ge=0,
        lt=1.0,
        description="Leak factor applied while clear",
    )
    detected_decay: float = Field(
        default=0.95,
        ge=0,
        le=1.0,
        description="Decay factor applied while detected",
    )


class BaselineConfig(BaseModel):
    """Rolling baseline used to adapt thresholds."""

    capacity: int = Field(default=30, ge=1, description="Max baseline samples")
    min_samples: int = Field(default=10, ge=1, description="Samples before baseline is valid")
    activation_floor: float = Field(
        default=0.3,
        ge=0,
        description="Baseline must exceed this to adapt thresholds",
    )
    high_multiplier: float = Field(default=1.4, gt=0)
    low_multiplier: float = Field(default=1.0, gt=0)
    clamp_min: float = Field(default=0.6, gt=0, description="Lower clamp factor of nominal")
    clamp_max: float = Field(default=1.5, gt=0, description="Upper clamp factor of nominal")

    @model_validator(mode="after")
    def _check_bounds(self) -> "BaselineConfig":
        if self.min_samples > self.capacity:
            raise ValueError("baseline.min_samples cannot exceed baseline.capacity")
        if self.clamp_min > self.clamp_max:
            raise ValueError("baseline.clamp_min cannot exceed baseline.clamp_max")
        return self


class ThresholdsConfig(BaseModel):
    """Nominal detection thresholds."""

    high: float = Field(default=2.0, gt=0, description="Enter threshold (smoothed magnitude)")
    low: float = Field(default=1.4, gt=0, description="Exit threshold (smoothed magnitude)")
    integration: float = Field(default=15.0, gt=0, description="Integrator threshold")
    looming: float = Field(default=0.3, gt=0, description="Looming score threshold")
    min_magnitude: float = Field(default=0.5, ge=0, description="Magnitude floor for MAG mode")

    @model_validator(mode="after")
    def _check_hysteresis(self) -> "ThresholdsConfig":
        if self.low > self.high:
            raise ValueError("thresholds.low must not exceed thresholds.high")
        return self


class DirectionConfig(BaseModel):
    """Direction zones and stabilization."""

    left_edge: float = Field(default=0.30, gt=0, lt=1.0, description="Left zone end (fraction of width)")
    right_edge: float = Field(default=0.70, gt=0, lt=1.0, description="Right zone start (fraction of width)")
    center_bias: float = Field(default=0.9, gt=0, le=1.0)
    margin: float = Field(default=0.4, ge=0)
    history_size: int = Field(default=5, ge=1)

    @model_validator(mode="after")
    def _check_edges(self) -> "DirectionConfig":
        if self.left_edge >= self.right_edge:
            raise ValueError("direction.left_edge must be below direction.right_edge")
        return self


class AlertConfig(BaseModel):
    """Alert emission."""

    cooldown_ms: int = Field(default=2000, ge=0, description="Minimum gap between alerts")
    message_template: str = Field(
        default="Obstacle detected {direction}!",
        description="Alert text; {direction} is replaced by the direction label",
    )
    direction_labels: Dict[str, str] = Field(
        default_factory=lambda: {
            "center": "ahead",
            "left": "on the left",
            "right": "on the right",
        },
        description="Spoken label per direction",
    )


class SpeechConfig(BaseModel):
    """Speech collaborator."""

    enabled: bool = Field(default=True, description="Enable speech notifications")
    cooldown_ms: int = Field(default=2000, ge=0, description="Minimum gap between utterances")


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8001, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")
    every_n_frames: int = Field(default=30, ge=1, description="Periodic summary interval")


class Settings(BaseModel):
    """
    Main settings class for LoomWatch.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    agent: AgentConfig = Field(default_factory=AgentConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    optical_flow: OpticalFlowConfig = Field(default_factory=OpticalFlowConfig)
    smoothing: SmoothingConfig = Field(default_factory=SmoothingConfig)
    integrator: IntegratorConfig = Field(default_factory=IntegratorConfig)
    baseline: BaselineConfig = Field(default_factory=BaselineConfig)
    thresholds: ThresholdsConfig = Field(default_factory=ThresholdsConfig)
    direction: DirectionConfig = Field(default_factory=DirectionConfig)
    alert: AlertConfig = Field(default_factory=AlertConfig)
    speech: SpeechConfig = Field(default_factory=SpeechConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/app/config.yaml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# (environment variable, section, key, parser); earlier entries win per key
ENV_OVERRIDES = (
    ("LOOMWATCH_STREAM_URL", "stream", "url", str),
    ("LOOMWATCH_MAX_QUEUE_SIZE", "stream", "max_queue_size", int),
    ("LOOMWATCH_WORKING_WIDTH", "processing", "width", int),
    ("LOOMWATCH_WORKING_HEIGHT", "processing", "height", int),
    ("LOOMWATCH_THRESHOLD_HIGH", "thresholds", "high", float),
    ("LOOMWATCH_THRESHOLD_LOW", "thresholds", "low", float),
    ("LOOMWATCH_COOLDOWN_MS", "alert", "cooldown_ms", int),
    ("LOOMWATCH_SPEECH_ENABLED", "speech", "enabled", _as_bool),
    ("PORT", "server", "port", int),
    ("LOOMWATCH_AGENT_PORT", "server", "port", int),
    ("LOOMWATCH_LOG_LEVEL", "logging", "level", str),
)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply ENV_OVERRIDES on top of the file values, in place."""
    applied = set()
    for env_name, section, key, parse in ENV_OVERRIDES:
        raw = os.environ.get(env_name)
        if not raw or (section, key) in applied:
            continue
        config_data.setdefault(section, {})[key] = parse(raw)
        applied.add((section, key))
        logger.debug(f"{env_name} overrides {section}.{key}")


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
