"""Configuration management for seat occupancy analytics.

Loads and validates YAML configuration files for the reconstruction
engine, logging, the dashboard and the narrative suggestion provider.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """Configuration for frame-to-session reconstruction and aggregation.

    Attributes:
        absence_frame_threshold: Number of frames a vacated seat-group may
            stay unobserved and still resume the same session.
        frame_rate: Frame rate used to turn the threshold into seconds.
        max_points: Point cap applied to every series handed to charts.
        min_group_size: Smallest confirmed seat group counted as a group.
        display_timezone: IANA zone used for display strings and buckets.
    """

    absence_frame_threshold: int = 9000
    frame_rate: float = 30.0
    max_points: int = 500
    min_group_size: int = 2
    display_timezone: str = "UTC"

    def __post_init__(self) -> None:
        if self.absence_frame_threshold <= 0:
            raise ValueError(
                f"absence_frame_threshold must be positive, got {self.absence_frame_threshold}"
            )
        if self.frame_rate <= 0:
            raise ValueError(f"frame_rate must be positive, got {self.frame_rate}")
        if self.max_points < 1:
            raise ValueError(f"max_points must be at least 1, got {self.max_points}")

    @property
    def absence_tolerance_ms(self) -> int:
        """Absence tolerance window in milliseconds."""
        return int(round(self.absence_frame_threshold / self.frame_rate * 1000))


@dataclass
class LoggingConfig:
    """Configuration for application logging."""

    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class DashboardConfig:
    """Configuration for Streamlit dashboard."""

    host: str = "0.0.0.0"
    port: int = 8501


@dataclass
class InsightsConfig:
    """Configuration for the hosted language model behind suggestions."""

    provider: str = "anthropic"
    anthropic_model: str = "claude-3-5-sonnet-20241022"
    gemini_model: str = "gemini-2.5-flash"
    max_tokens: int = 1024
    timeout_seconds: float = 30.0


@dataclass
class AppConfig:
    """Top-level application configuration."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    insights: InsightsConfig = field(default_factory=InsightsConfig)


def load_config(config_path: str) -> AppConfig:
    """Load application configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Populated AppConfig instance.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file contains invalid YAML.
        ValueError: If an engine setting is out of range.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if raw is None:
        logger.warning("Empty config file, using defaults")
        return AppConfig()

    config = AppConfig(
        engine=EngineConfig(**raw.get("engine", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        dashboard=DashboardConfig(**raw.get("dashboard", {})),
        insights=InsightsConfig(**raw.get("insights", {})),
    )

    logger.info("Configuration loaded from %s", config_path)
    return config
