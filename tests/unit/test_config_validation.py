from pathlib import Path

import jsonschema
import pytest
import yaml

from urlshortener.common.settings import load_settings, validate_config


def _base_config() -> dict:
    return {
        "config_version": "0.1",
        "environment": "local",
        "metrics_log_path": "logs/metrics.log",
        "app_log_path": "logs/app.log",
        "log_level": "INFO",
    }


def test_validate_config_accepts_minimal_config(schema_path: Path) -> None:
    validate_config(_base_config(), schema_path)


def test_shipped_settings_file_is_valid(schema_path: Path) -> None:
    settings = load_settings(schema_path.parent / "settings.yaml", schema_path)
    assert settings.environment == "local"
    assert settings.raw["rate_limit"] == {"max_calls": 15, "window_ms": 60000}
    assert settings.raw["circuit_breaker"]["open_duration_ms"] == 25000


def test_validate_config_rejects_invalid_environment(schema_path: Path) -> None:
    config = _base_config()
    config["environment"] = "dev"
    with pytest.raises(jsonschema.ValidationError):
        validate_config(config, schema_path)


def test_validate_config_rejects_zero_max_calls(schema_path: Path) -> None:
    config = _base_config()
    config["rate_limit"] = {"max_calls": 0, "window_ms": 60000}
    with pytest.raises(jsonschema.ValidationError):
        validate_config(config, schema_path)


def test_validate_config_rejects_unknown_breaker_key(schema_path: Path) -> None:
    config = _base_config()
    config["circuit_breaker"] = {"timeout_ms": 1000}
    with pytest.raises(jsonschema.ValidationError):
        validate_config(config, schema_path)


def test_validate_config_rejects_unknown_top_level_key(schema_path: Path) -> None:
    config = _base_config()
    config["unexpected"] = True
    with pytest.raises(jsonschema.ValidationError):
        validate_config(config, schema_path)


def test_load_settings_reads_yaml(tmp_path: Path, schema_path: Path) -> None:
    config = _base_config()
    config["log_level"] = "DEBUG"
    config_path = tmp_path / "settings.yaml"
    config_path.write_text(yaml.safe_dump(config))

    settings = load_settings(config_path, schema_path)
    assert settings.log_level == "DEBUG"
    assert settings.config_path == config_path
    assert settings.raw == config


def test_load_settings_missing_file_raises(tmp_path: Path, schema_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_settings(tmp_path / "missing.yaml", schema_path)
