"""Contest engine configuration.

Values come from application settings; tests and callers can build a
``ContestConfig`` directly to override them.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from arena.core.config import HouseOverwritePolicy, Settings, settings as app_settings


@dataclass(frozen=True)
class ContestConfig:
    """Complete contest engine configuration."""

    # Grading
    price_target_tolerance: float = 0.02
    max_error_band: float = 0.10

    # House predictor
    min_history: int = 20
    house_model_revision: str = "basic_momentum-v1"
    house_overwrite_policy: HouseOverwritePolicy = "on_revision_change"

    # Market data
    history_interval: str = "1d"
    history_range: str = "3mo"

    # Resolution lease
    resolution_lock_timeout: int = 300
    resolution_lock_wait: float = 5.0

    def __post_init__(self) -> None:
        if not 0 < self.price_target_tolerance < self.max_error_band:
            raise ValueError("require 0 < price_target_tolerance < max_error_band")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ContestConfig:
        s = settings or app_settings
        return cls(
            price_target_tolerance=s.contest_price_target_tolerance,
            max_error_band=s.contest_max_error_band,
            min_history=s.contest_min_history,
            house_model_revision=s.house_model_revision,
            house_overwrite_policy=s.house_overwrite_policy,
            history_interval=s.history_interval,
            history_range=s.history_range,
            resolution_lock_timeout=s.resolution_lock_timeout,
            resolution_lock_wait=s.resolution_lock_wait,
        )


@lru_cache
def get_contest_config() -> ContestConfig:
    """Get cached contest configuration."""
    return ContestConfig.from_settings()
