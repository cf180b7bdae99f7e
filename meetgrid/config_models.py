from __future__ import annotations

import logging
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ConfigDict

from meetgrid import ARGS_DIR

logger = logging.getLogger(__name__)


# =============================================================================
# CalendarConfig (args/calendar.yaml)
# =============================================================================

class GridConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    hour_height: float = Field(default=48.0, gt=0)
    snap_px: float = Field(default=12.0, gt=0)
    min_edit_minutes: int = Field(default=30, ge=1)
    min_create_minutes: int = Field(default=60, ge=1)

    @property
    def snap_minutes(self) -> float:
        return self.snap_px / self.hour_height * 60


class DisplayConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    track_width: float = Field(default=82.0, gt=0)
    margin_px: float = Field(default=12.0, ge=0)
    scroll_to_hour: float = Field(default=8.5, ge=0, le=24)
    week_days: int = Field(default=7, ge=1, le=7)


class CalendarConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    grid: GridConfig = Field(default_factory=GridConfig)
    display: DisplayConfig = Field(default_factory=DisplayConfig)


# =============================================================================
# SyncConfig (args/sync.yaml)
# =============================================================================

class CommitConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    debounce_ms: int = Field(default=500, ge=0)
    auto_retry: bool = Field(default=False)
    retry_base_ms: int = Field(default=5000, ge=1)
    retry_max_exponent: int = Field(default=8, ge=0, le=16)


class IdsConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    temp_prefix: str = Field(default="temp-", min_length=1)


class StoreConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    path: str = Field(default="data/meetings.db")
    range_days: int = Field(default=7, ge=1)


class SyncConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    commit: CommitConfig = Field(default_factory=CommitConfig)
    ids: IdsConfig = Field(default_factory=IdsConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)


# =============================================================================
# load_and_validate
# =============================================================================

_CONFIG_MAP: dict[str, type[BaseModel]] = {
    "calendar": CalendarConfig,
    "sync": SyncConfig,
}


def load_and_validate(config_name: str, model_class: Optional[type[BaseModel]] = None) -> Any:
    if model_class is None:
        model_class = _CONFIG_MAP.get(config_name)
        if model_class is None:
            raise ValueError(f"Unknown config: {config_name}. Available: {list(_CONFIG_MAP.keys())}")

    yaml_path = ARGS_DIR / f"{config_name}.yaml"

    try:
        if yaml_path.exists():
            with open(yaml_path) as f:
                raw = yaml.safe_load(f) or {}
        else:
            raw = {}

        return model_class.model_validate(raw)
    except Exception as e:
        logger.warning(f"Config validation failed for {config_name}: {e}, using defaults")
        return model_class()


def config_names() -> list[str]:
    return sorted(_CONFIG_MAP)
