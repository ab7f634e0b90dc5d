"""Engine configuration using pydantic-settings."""

import functools
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from progression_engine.errors import ConfigurationError
from progression_engine.models.adaptive import AdaptiveConfig
from progression_engine.models.level import Level
from progression_engine.progression.xp import DEFAULT_LEVELS, validate_level_table
from progression_engine.review.srs import SRS_INTERVALS_DAYS, validate_intervals


def _find_project_root() -> Path:
    """Find project root by locating pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path(__file__).resolve().parent.parent.parent


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from settings.yaml."""

    def get_field_value(self, field_name: str) -> tuple[Any, str, bool]:
        """Not used - we implement __call__ instead."""
        return None, "", False

    def __call__(self) -> dict[str, Any]:
        """Load settings from YAML file."""
        yaml_path = _find_project_root() / "config" / "settings.yaml"
        if not yaml_path.exists():
            return {}

        with open(yaml_path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        return flatten_settings(data)


def flatten_settings(data: dict) -> dict[str, Any]:
    """Flatten the nested YAML layout to match Settings field names."""
    flattened: dict[str, Any] = {}
    if 'hearts' in data:
        flattened['max_hearts'] = data['hearts'].get('max')
        flattened['heart_regen_minutes'] = data['hearts'].get('regen_minutes')
    if 'srs' in data:
        flattened['srs_intervals_days'] = data['srs'].get('intervals_days')
    if 'adaptive' in data:
        adaptive = data['adaptive']
        flattened['adaptive_enabled'] = adaptive.get('enabled')
        flattened['adaptive_window_size'] = adaptive.get('window_size')
        flattened['adaptive_increase_threshold'] = adaptive.get('increase_threshold')
        flattened['adaptive_decrease_threshold'] = adaptive.get('decrease_threshold')
        flattened['adaptive_max_adjustments'] = adaptive.get('max_adjustments')
    if 'streak' in data:
        flattened['streak_perfect_hours'] = data['streak'].get('perfect_hours')
        flattened['streak_at_risk_hours'] = data['streak'].get('at_risk_hours')
        flattened['default_timezone'] = data['streak'].get('default_timezone')
        flattened['streak_auto_freeze'] = data['streak'].get('auto_freeze')
    if 'xp' in data:
        flattened['daily_goal_xp'] = data['xp'].get('daily_goal')
        flattened['levels'] = data['xp'].get('levels')
    if 'storage' in data:
        flattened['storage_backend'] = data['storage'].get('backend')
        flattened['progress_update_attempts'] = data['storage'].get('update_attempts')

    # Remove None values
    return {k: v for k, v in flattened.items() if v is not None}


class Settings(BaseSettings):
    """Engine settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_prefix="PROGRESSION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Hearts
    max_hearts: int = Field(default=5, ge=1)
    heart_regen_minutes: int = Field(default=30, ge=1)

    # Spaced repetition
    srs_intervals_days: tuple[int, ...] = Field(default=SRS_INTERVALS_DAYS)

    # Adaptive difficulty
    adaptive_enabled: bool = Field(default=True)
    adaptive_window_size: int = Field(default=5, ge=1)
    adaptive_increase_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    adaptive_decrease_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    adaptive_max_adjustments: int | None = Field(default=None, ge=0)

    # Streaks
    streak_perfect_hours: float = Field(default=12.0)
    streak_at_risk_hours: float = Field(default=4.0)
    default_timezone: str = Field(default="UTC")
    streak_auto_freeze: bool = Field(default=True)

    # XP
    daily_goal_xp: int = Field(default=20, ge=1)
    levels: list[Level] = Field(default_factory=lambda: list(DEFAULT_LEVELS))

    # Storage
    storage_backend: Literal["memory", "json"] = Field(default="memory")
    progress_update_attempts: int = Field(default=3, ge=1)

    # Paths
    project_root: Path = Field(default_factory=_find_project_root)

    @field_validator("levels")
    @classmethod
    def _check_levels(cls, levels: list[Level]) -> list[Level]:
        validate_level_table(levels)
        return levels

    @field_validator("srs_intervals_days")
    @classmethod
    def _check_intervals(cls, intervals: tuple[int, ...]) -> tuple[int, ...]:
        validate_intervals(intervals)
        return intervals

    @model_validator(mode="after")
    def _check_adaptive(self) -> "Settings":
        try:
            self.adaptive_config()
        except ValidationError as exc:
            raise ConfigurationError(f"invalid adaptive settings: {exc}") from exc
        return self

    @property
    def data_dir(self) -> Path:
        d = self.project_root / "data" / "progress"
        d.mkdir(parents=True, exist_ok=True)
        return d

    def adaptive_config(self) -> AdaptiveConfig:
        """Build the adaptive-difficulty configuration record."""
        return AdaptiveConfig(
            enabled=self.adaptive_enabled,
            window_size=self.adaptive_window_size,
            increase_threshold=self.adaptive_increase_threshold,
            decrease_threshold=self.adaptive_decrease_threshold,
            max_adjustments=self.adaptive_max_adjustments,
        )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings sources to include YAML file.

        Priority order (highest to lowest):
        1. init_settings (arguments passed to Settings())
        2. env_settings (PROGRESSION_* environment variables)
        3. dotenv_settings (.env file)
        4. YamlSettingsSource (settings.yaml)
        5. file_secret_settings
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSettingsSource(settings_cls),
            file_secret_settings,
        )


@functools.lru_cache
def get_settings() -> Settings:
    """Get engine settings singleton."""
    return Settings()
