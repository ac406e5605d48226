from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Fleet Sync"

    fleet_percentage: float = Field(default=0.10, ge=0.0, le=1.0)
    fleet_min_delay_ms: int = Field(default=1000, ge=0)
    fleet_max_delay_ms: int = Field(default=2000, ge=0)
    fleet_mock_mode: bool = True
    max_departures_override: int | None = Field(default=None, ge=0)

    run_timeout_seconds: float = Field(default=180.0, gt=0.0)
    safety_margin_seconds: float = Field(default=30.0, ge=0.0)

    data_dir: str = "data"
    cache_file: str = "last-scrape.json"
    dataset_file: str = "planes.json"

    log_level: str = "INFO"
    log_to_console: bool = True
    log_file: str = ""

    @field_validator("max_departures_override", mode="before")
    @classmethod
    def _blank_override_is_unset(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def cache_path(self) -> Path:
        return Path(self.data_dir) / self.cache_file

    @property
    def dataset_path(self) -> Path:
        return Path(self.data_dir) / self.dataset_file


@dataclass(slots=True, frozen=True)
class ProcessingConfig:
    """Run parameters, fixed once at process start."""

    percentage: float = 0.10
    min_delay_ms: int = 1000
    max_delay_ms: int = 2000
    dry_run: bool = True
    action_budget_override: int | None = None

    def __post_init__(self) -> None:
        if self.min_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("pacing delays must be >= 0")
        if self.min_delay_ms > self.max_delay_ms:
            raise ValueError(
                f"min_delay_ms={self.min_delay_ms} must not exceed max_delay_ms={self.max_delay_ms}"
            )
        if self.action_budget_override is not None and self.action_budget_override < 0:
            raise ValueError("action_budget_override must be >= 0")

    @classmethod
    def from_settings(cls, settings: Settings) -> ProcessingConfig:
        return cls(
            percentage=settings.fleet_percentage,
            min_delay_ms=settings.fleet_min_delay_ms,
            max_delay_ms=settings.fleet_max_delay_ms,
            dry_run=settings.fleet_mock_mode,
            action_budget_override=settings.max_departures_override,
        )
