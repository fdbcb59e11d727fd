import importlib
import json
from pathlib import Path

import pytest

from carecord.configuration import app_configuration
from carecord.configuration.app_configuration import AppConfig
from carecord.configuration.safety_settings import (
    DEFAULT_SUPPORT_MESSAGES,
    DEFAULT_WARNING_MESSAGE,
    ClassifierSettings,
    SafetySettings,
)


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "app_config.yml"


def test_app_config_reload_parses_yaml(config_path: Path) -> None:
    config_payload = {
        "database_path": str(config_path.parent / "safety.db"),
        "classifier": {"model_name": "test-model", "base_url": "http://localhost:9000/v1"},
        "behavior_cleanup": {"interval_seconds": 120},
        "safety": {
            "timeouts": {"policy_read_seconds": 1.5, "action_seconds": "3"},
            "system_actor_id": "42",
            "dm_sensitivity": "HIGH",
            "support_messages": {"critical": "Please reach out."},
        },
    }
    config_path.write_text(json.dumps(config_payload), encoding="utf-8")

    config = AppConfig(config_path)

    assert config.database_path == (config_path.parent / "safety.db").resolve()
    assert config.behavior_cleanup_interval == pytest.approx(120.0)

    safety = config.safety
    assert safety.policy_read_timeout == pytest.approx(1.5)
    assert safety.action_timeout == pytest.approx(3.0)
    assert safety.classifier_timeout == pytest.approx(5.0)
    assert safety.system_actor_id == 42
    assert safety.dm_sensitivity == "high"
    assert safety.support_messages["critical"] == "Please reach out."
    assert safety.support_messages["low"] == DEFAULT_SUPPORT_MESSAGES["low"]

    classifier = config.classifier
    assert classifier.model_name == "test-model"
    assert classifier.base_url == "http://localhost:9000/v1"


def test_app_config_missing_file_returns_defaults(tmp_path: Path) -> None:
    config = AppConfig(tmp_path / "does_not_exist.yml")

    assert config.data == {}
    assert config.get("anything", "fallback") == "fallback"
    assert config.behavior_cleanup_interval == pytest.approx(3600.0)
    assert config.database_path.name == "app.db"
    assert config.safety.persistence_timeout == pytest.approx(5.0)


def test_app_config_non_mapping_is_ignored(config_path: Path) -> None:
    config_path.write_text("- just\n- a list\n", encoding="utf-8")

    config = AppConfig(config_path)

    assert config.data == {}


def test_app_config_reload_picks_up_changes(config_path: Path) -> None:
    config_path.write_text(json.dumps({"safety": {"mute_duration_seconds": 60}}), encoding="utf-8")
    config = AppConfig(config_path)
    assert config.safety.mute_duration_seconds == pytest.approx(60.0)

    config_path.write_text(json.dumps({"safety": {"mute_duration_seconds": 900}}), encoding="utf-8")
    config.reload()

    assert config.safety.mute_duration_seconds == pytest.approx(900.0)


def test_malformed_sections_fall_back_to_defaults(config_path: Path) -> None:
    config_path.write_text(json.dumps({"safety": "oops", "classifier": ["x"]}), encoding="utf-8")

    config = AppConfig(config_path)

    assert config.safety.as_dict() == {}
    assert config.classifier.model_name == "omni-moderation-latest"


def test_safety_settings_defaults() -> None:
    settings = SafetySettings()

    assert settings.policy_read_timeout == pytest.approx(2.0)
    assert settings.action_timeout == pytest.approx(10.0)
    assert settings.behavior_cache_size == 10_000
    assert settings.system_actor_id == 0
    assert settings.mute_duration_seconds == pytest.approx(3600.0)
    assert settings.warning_message == DEFAULT_WARNING_MESSAGE
    assert settings.support_messages == DEFAULT_SUPPORT_MESSAGES


def test_classifier_api_key_falls_back_to_environment(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")

    assert ClassifierSettings().api_key == "sk-env"
    assert ClassifierSettings({"api_key": "sk-file"}).api_key == "sk-file"

    monkeypatch.delenv("OPENAI_API_KEY")
    assert ClassifierSettings().api_key is None
    assert ClassifierSettings().base_url is None


def test_module_import_does_not_load_working_directory_config(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    reloaded = importlib.reload(app_configuration)

    assert not hasattr(reloaded, "app_config")
    assert not (tmp_path / "config").exists()
