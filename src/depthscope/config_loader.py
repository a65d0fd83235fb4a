"""Configuration loader with Pydantic validation and environment variable interpolation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

# Load environment variables at module level
load_dotenv(find_dotenv(usecwd=True))

from depthscope.constants import (
    DEFAULT_EXPECTED_LEVELS,
    DEFAULT_FAILURE_THRESHOLD,
    DEFAULT_HISTORY_SIZE,
    DEFAULT_MAX_RECONNECT_ATTEMPTS,
    DEFAULT_SYMBOL,
    FeedMode,
    LogLevel,
    VenueSchema,
)


def interpolate_env_vars(value: Any) -> Any:
    """
    Interpolate environment variables in string values.

    Supports formats:
    - ${VAR_NAME} - empty string if not set
    - ${VAR_NAME:default} - optional with default value
    """
    if not isinstance(value, str):
        return value

    pattern = r"\$\{([^}:]+)(?::([^}]*))?\}"

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default = match.group(2)

        env_value = os.environ.get(var_name)

        if env_value is not None:
            return env_value
        elif default is not None:
            return default
        else:
            return ""

    return re.sub(pattern, replacer, value)


def process_config_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively process config dict to interpolate env vars."""
    result = {}
    for key, value in data.items():
        if isinstance(value, dict):
            result[key] = process_config_dict(value)
        elif isinstance(value, list):
            result[key] = [
                process_config_dict(item) if isinstance(item, dict) else interpolate_env_vars(item)
                for item in value
            ]
        else:
            result[key] = interpolate_env_vars(value)
    return result


# ============================================
# Pydantic Configuration Models
# ============================================


class EnvironmentConfig(BaseModel):
    """Environment and runtime settings."""

    log_level: LogLevel = LogLevel.INFO
    feed_mode: FeedMode = FeedMode.LIVE
    status_interval_seconds: float = 30.0

    @field_validator("status_interval_seconds")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Interval must be positive, got: {v}")
        return v


class VenueConfig(BaseModel):
    """One trading venue's depth endpoint."""

    name: str
    kind: VenueSchema
    symbol: str = DEFAULT_SYMBOL  # Canonical symbol stamped on snapshots
    instrument: str = ""  # Venue-native instrument id (BTC-USDT on OKX)
    primary_url: str = ""
    fallback_url: str = ""
    poll_interval_seconds: float = 1.0
    request_timeout_seconds: float = 10.0
    expected_levels: int = DEFAULT_EXPECTED_LEVELS
    enabled: bool = True

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Venue names are used as keys; normalise to lowercase."""
        v = v.strip().lower()
        if not v:
            raise ValueError("Venue name must not be empty")
        return v

    @field_validator("poll_interval_seconds", "request_timeout_seconds")
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Interval must be positive, got: {v}")
        return v

    @field_validator("expected_levels")
    @classmethod
    def validate_expected_levels(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Expected levels must be positive, got: {v}")
        return v

    @model_validator(mode="after")
    def validate_endpoint(self) -> VenueConfig:
        """Live venues need at least a primary endpoint."""
        if self.kind != VenueSchema.SIM and not self.primary_url:
            raise ValueError(f"Venue '{self.name}' requires a primary_url")
        if not self.instrument:
            self.instrument = self.symbol
        return self


def default_venues() -> list[VenueConfig]:
    """Binance, OKX and Bybit spot BTC/USDT depth, top 20 levels."""
    return [
        VenueConfig(
            name="binance",
            kind=VenueSchema.BINANCE,
            primary_url="https://api.binance.com/api/v3/depth?symbol=BTCUSDT&limit=20",
            fallback_url="https://api1.binance.com/api/v3/depth?symbol=BTCUSDT&limit=20",
            poll_interval_seconds=0.8,
        ),
        VenueConfig(
            name="okx",
            kind=VenueSchema.OKX,
            instrument="BTC-USDT",
            primary_url="https://www.okx.com/api/v5/market/books?instId=BTC-USDT&sz=20",
            fallback_url="https://aws.okx.com/api/v5/market/books?instId=BTC-USDT&sz=20",
            poll_interval_seconds=1.2,
        ),
        VenueConfig(
            name="bybit",
            kind=VenueSchema.BYBIT,
            primary_url="https://api.bybit.com/v5/market/orderbook?category=spot&symbol=BTCUSDT&limit=20",
            fallback_url="https://api.bytick.com/v5/market/orderbook?category=spot&symbol=BTCUSDT&limit=20",
            poll_interval_seconds=1.5,
        ),
    ]


class BackoffConfig(BaseModel):
    """Reconnect backoff and circuit-breaker settings."""

    base_delay_seconds: float = 5.0
    growth_factor: float = 1.5
    jitter_seconds: float = 3.0
    max_delay_seconds: float = 60.0
    max_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS

    @field_validator("base_delay_seconds", "jitter_seconds")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"Value must be non-negative, got: {v}")
        return v

    @field_validator("growth_factor")
    @classmethod
    def validate_growth(cls, v: float) -> float:
        if v < 1.0:
            raise ValueError(f"Growth factor must be >= 1.0, got: {v}")
        return v

    @field_validator("max_delay_seconds")
    @classmethod
    def validate_cap(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Delay cap must be positive, got: {v}")
        return v

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Max attempts must be non-negative, got: {v}")
        return v


class QualityConfig(BaseModel):
    """Data-quality scoring settings."""

    monitor_interval_seconds: float = 30.0
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD
    # Spread as percent of midpoint considered plausible
    accurate_spread_pct_min: float = 0.001
    accurate_spread_pct_max: float = 1.0
    degraded_spread_pct_max: float = 2.0

    @field_validator("monitor_interval_seconds")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Interval must be positive, got: {v}")
        return v

    @field_validator("failure_threshold")
    @classmethod
    def validate_threshold(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Failure threshold must be at least 1, got: {v}")
        return v

    @model_validator(mode="after")
    def validate_spread_band(self) -> QualityConfig:
        if not (
            0 <= self.accurate_spread_pct_min
            < self.accurate_spread_pct_max
            <= self.degraded_spread_pct_max
        ):
            raise ValueError(
                "Spread bands must satisfy 0 <= accurate_min < accurate_max <= degraded_max"
            )
        return self


class FeedConfig(BaseModel):
    """Feed manager configuration."""

    venues: list[VenueConfig] = Field(default_factory=default_venues)
    stagger_seconds: float = 1.5  # Offset between venue start-ups
    backoff: BackoffConfig = Field(default_factory=BackoffConfig)
    quality: QualityConfig = Field(default_factory=QualityConfig)

    @field_validator("stagger_seconds")
    @classmethod
    def validate_stagger(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"Stagger must be non-negative, got: {v}")
        return v

    @model_validator(mode="after")
    def validate_unique_names(self) -> FeedConfig:
        names = [v.name for v in self.venues]
        if len(names) != len(set(names)):
            raise ValueError(f"Venue names must be unique, got: {names}")
        return self

    @property
    def enabled_venues(self) -> list[VenueConfig]:
        return [v for v in self.venues if v.enabled]


class ProcessorConfig(BaseModel):
    """Order-book processor configuration."""

    max_snapshots: int = DEFAULT_HISTORY_SIZE
    max_spread_samples: int = DEFAULT_HISTORY_SIZE
    merged_depth: int = 20  # Levels per side in merged books

    # Spread analysis
    trend_window: int = 10
    trend_threshold: float = 0.01
    tight_ratio: float = 0.7
    wide_ratio: float = 1.3
    reported_spread_samples: int = 100

    # Time decay and derived time-coordinate
    decay_half_life_seconds: float = 300.0
    time_window_seconds: float = 300.0
    time_slices: int = 50

    # Market impact
    execution_seconds_per_level: float = 0.1

    # Prediction
    min_prediction_points: int = 10
    default_price_step: float = 10.0

    @field_validator("max_snapshots", "max_spread_samples", "merged_depth", "time_slices")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Value must be positive, got: {v}")
        return v

    @field_validator("trend_window", "min_prediction_points")
    @classmethod
    def validate_window(cls, v: int) -> int:
        if v < 2:
            raise ValueError(f"Window must be at least 2, got: {v}")
        return v

    @field_validator(
        "decay_half_life_seconds", "time_window_seconds", "default_price_step"
    )
    @classmethod
    def validate_positive_float(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Value must be positive, got: {v}")
        return v

    @model_validator(mode="after")
    def validate_tightness(self) -> ProcessorConfig:
        if self.tight_ratio >= self.wide_ratio:
            raise ValueError(
                f"tight_ratio ({self.tight_ratio}) must be less than wide_ratio ({self.wide_ratio})"
            )
        return self


class DetectorConfig(BaseModel):
    """Pressure zone detector configuration."""

    volume_threshold: float = 0.1  # Fraction of side volume to admit a cluster
    cluster_distance: float = 0.005  # 0.5% weighted price distance
    max_history: int = DEFAULT_HISTORY_SIZE

    # Movement prediction
    similarity_pct: float = 0.02
    similarity_window_seconds: float = 300.0
    min_matches: int = 3
    trend_lookback: int = 5
    intensity_trend_threshold: float = 5.0

    # Imbalance
    imbalance_depth: int = 10
    bullish_ratio: float = 0.65
    bearish_ratio: float = 0.35

    # Heatmap
    heatmap_time_slots: int = 20
    heatmap_price_slots: int = 50
    heatmap_volume_normalizer: float = 10.0

    @field_validator("volume_threshold", "cluster_distance", "similarity_pct")
    @classmethod
    def validate_fraction(cls, v: float) -> float:
        if not 0 < v < 1:
            raise ValueError(f"Fraction must be between 0 and 1, got: {v}")
        return v

    @field_validator(
        "max_history", "min_matches", "imbalance_depth", "heatmap_time_slots", "heatmap_price_slots"
    )
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Value must be positive, got: {v}")
        return v

    @field_validator("trend_lookback")
    @classmethod
    def validate_lookback(cls, v: int) -> int:
        if v < 2:
            raise ValueError(f"Lookback must be at least 2, got: {v}")
        return v

    @model_validator(mode="after")
    def validate_imbalance_band(self) -> DetectorConfig:
        if not 0 < self.bearish_ratio < 0.5 < self.bullish_ratio < 1:
            raise ValueError(
                f"Imbalance band must satisfy 0 < bearish ({self.bearish_ratio}) < 0.5 "
                f"< bullish ({self.bullish_ratio}) < 1"
            )
        return self


class AppConfig(BaseModel):
    """Root application configuration."""

    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)
    feeds: FeedConfig = Field(default_factory=FeedConfig)
    processor: ProcessorConfig = Field(default_factory=ProcessorConfig)
    detector: DetectorConfig = Field(default_factory=DetectorConfig)

    @property
    def is_sim_mode(self) -> bool:
        """Check if running against the simulated depth generator."""
        return self.environment.feed_mode == FeedMode.SIM


# ============================================
# Configuration Loader
# ============================================


class ConfigLoader:
    """Load and validate configuration from YAML files with env var interpolation."""

    def __init__(self, config_path: str | Path) -> None:
        """
        Initialize config loader.

        Args:
            config_path: Path to the YAML configuration file.
        """
        self.config_path = Path(config_path)
        self._config: AppConfig | None = None

    def load(self) -> AppConfig:
        """
        Load and validate configuration.

        Returns:
            Validated AppConfig instance.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            yaml.YAMLError: If YAML is invalid.
            pydantic.ValidationError: If config validation fails.
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)

        if raw_config is None:
            raw_config = {}

        processed_config = process_config_dict(raw_config)

        self._config = AppConfig.model_validate(processed_config)

        return self._config

    @property
    def config(self) -> AppConfig:
        """Get loaded config, loading if necessary."""
        if self._config is None:
            return self.load()
        return self._config

    def reload(self) -> AppConfig:
        """Force reload configuration from disk."""
        self._config = None
        return self.load()


def load_config(config_path: str | Path) -> AppConfig:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Validated AppConfig instance.
    """
    loader = ConfigLoader(config_path)
    return loader.load()


def load_config_with_overrides(
    config_path: str | Path,
    *,
    log_level: str | None = None,
    feed_mode: str | None = None,
    venues: list[str] | None = None,
) -> AppConfig:
    """
    Load configuration with CLI overrides.

    Args:
        config_path: Path to the YAML configuration file.
        log_level: Override logging level.
        feed_mode: Override feed mode (live or sim).
        venues: Restrict polling to these venue names.

    Returns:
        Validated AppConfig instance with overrides applied.
    """
    config = load_config(config_path)

    updates: dict[str, Any] = {}
    env_updates: dict[str, Any] = {}

    if log_level is not None:
        env_updates["log_level"] = LogLevel(log_level.upper())

    if feed_mode is not None:
        env_updates["feed_mode"] = FeedMode(feed_mode.lower())

    if env_updates:
        updates["environment"] = config.environment.model_copy(update=env_updates)

    if venues:
        wanted = {v.lower() for v in venues}
        known = {v.name for v in config.feeds.venues}
        unknown = wanted - known
        if unknown:
            raise ValueError(f"Unknown venues: {sorted(unknown)}. Available: {sorted(known)}")
        selected = [
            v.model_copy(update={"enabled": v.name in wanted}) for v in config.feeds.venues
        ]
        updates["feeds"] = config.feeds.model_copy(update={"venues": selected})

    if updates:
        return config.model_copy(update=updates)

    return config
