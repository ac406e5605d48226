from __future__ import annotations

from pathlib import Path

import pytest

from fleet_sync.config import ProcessingConfig, Settings


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("MAX_DEPARTURES_OVERRIDE", "FLEET_PERCENTAGE", "FLEET_MOCK_MODE", "DATA_DIR"):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    settings = Settings()

    assert settings.fleet_percentage == 0.10
    assert settings.fleet_mock_mode is True
    assert settings.max_departures_override is None
    assert settings.dataset_path == Path("data") / "planes.json"
    assert settings.cache_path == Path("data") / "last-scrape.json"


@pytest.mark.parametrize(("raw", "expected"), [("", None), ("   ", None), ("5", 5)])
def test_override_from_environment(monkeypatch, raw: str, expected: int | None) -> None:
    monkeypatch.setenv("MAX_DEPARTURES_OVERRIDE", raw)

    assert Settings().max_departures_override == expected


def test_settings_read_dotenv_file(tmp_path) -> None:
    (tmp_path / ".env").write_text("FLEET_PERCENTAGE=0.25\nFLEET_MOCK_MODE=false\n", encoding="utf-8")

    settings = Settings()

    assert settings.fleet_percentage == 0.25
    assert settings.fleet_mock_mode is False


def test_processing_config_from_settings(monkeypatch) -> None:
    monkeypatch.setenv("MAX_DEPARTURES_OVERRIDE", "3")

    config = ProcessingConfig.from_settings(Settings())

    assert config.action_budget_override == 3
    assert config.dry_run is True


def test_min_delay_above_max_is_rejected() -> None:
    with pytest.raises(ValueError):
        ProcessingConfig(min_delay_ms=500, max_delay_ms=100)


def test_negative_override_is_rejected() -> None:
    with pytest.raises(ValueError):
        ProcessingConfig(action_budget_override=-1)
