from __future__ import annotations

import json
from pathlib import Path

import pytest

from bulk_loader import config
from bulk_loader.config import Settings, load_config_file
from bulk_loader.errors import ConfigError

LEGACY_CONFIG = {
    "db_user": "loader",
    "db_pass": "secret",
    "db_address": "db.example.internal",
    "db_port": 3307,
    "db_name": "warehouse",
    "db_table": "staging.events",
    "db_max_idle_conns": 4,
    "db_max_open_conns": 16,
    "total_worker": 12,
    "debug": True,
}


def _write(tmp_path: Path, payload: object) -> Path:
    path = tmp_path / "loader.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_get_settings_defaults():
    config.get_settings.cache_clear()
    settings = config.get_settings()
    assert settings.db_port > 0
    assert settings.total_worker >= 1
    assert settings.db_max_idle_conns <= settings.db_max_open_conns
    assert settings.retry_max_attempts >= 0


def test_load_config_file_accepts_legacy_keys(tmp_path: Path) -> None:
    settings = load_config_file(_write(tmp_path, LEGACY_CONFIG))

    assert settings.db_host == "db.example.internal"
    assert settings.db_password == "secret"
    assert settings.db_port == 3307
    assert settings.db_table == "staging.events"
    assert settings.db_max_idle_conns == 4
    assert settings.db_max_open_conns == 16
    assert settings.total_worker == 12
    assert settings.debug is True
    assert settings.effective_log_level == "DEBUG"


def test_overrides_win_and_none_is_ignored(tmp_path: Path) -> None:
    settings = load_config_file(
        _write(tmp_path, LEGACY_CONFIG), total_worker=3, db_table=None, debug=False
    )

    assert settings.total_worker == 3
    assert settings.db_table == "staging.events"
    assert settings.debug is False


def test_missing_file_is_a_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Cannot read"):
        load_config_file(tmp_path / "missing.json")


def test_invalid_json_is_a_config_error(tmp_path: Path) -> None:
    path = tmp_path / "loader.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config_file(path)


def test_non_object_is_a_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="JSON object"):
        load_config_file(_write(tmp_path, [1, 2, 3]))


@pytest.mark.parametrize(
    "overrides",
    [
        {"total_worker": 0},
        {"db_max_open_conns": 0},
        {"db_max_idle_conns": 20, "db_max_open_conns": 5},
        {"csv_delimiter": "::"},
    ],
)
def test_invalid_values_are_rejected(tmp_path: Path, overrides: dict) -> None:
    with pytest.raises(ConfigError):
        load_config_file(_write(tmp_path, {**LEGACY_CONFIG, **overrides}))


def test_environment_variables_are_read(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TOTAL_WORKER", "7")
    monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "0")

    settings = Settings()

    assert settings.total_worker == 7
    assert settings.retry_max_attempts == 0


def test_file_values_take_precedence_over_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("TOTAL_WORKER", "7")
    settings = load_config_file(_write(tmp_path, {"total_worker": 2}))
    assert settings.total_worker == 2
