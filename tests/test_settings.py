import os
import sys

import pytest
import yaml

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from config import YamlConfig
from db import SettingsRepository
from settings_schema import SETTING_KEYS, SettingsSchema, validate_settings


@pytest.fixture
def paths(tmp_path):
    return str(tmp_path / "timer.db"), str(tmp_path / "settings.yaml")


def test_defaults_written_to_yaml(paths):
    db_path, yaml_path = paths
    repo = SettingsRepository(db_path, yaml_path)
    assert repo.load_settings() == SettingsSchema()
    with open(yaml_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    assert set(SETTING_KEYS) <= set(data)
    assert all(data[k] is True for k in SETTING_KEYS)


def test_yaml_edits_are_picked_up(paths):
    db_path, yaml_path = paths
    repo = SettingsRepository(db_path, yaml_path)
    YamlConfig(yaml_path).save({"audio_cues": False, "track_reps": True})
    settings = repo.load_settings()
    assert settings.audio_cues is False
    assert settings.track_reps is True


def test_invalid_yaml_value_is_ignored(paths, caplog):
    db_path, yaml_path = paths
    repo = SettingsRepository(db_path, yaml_path)
    YamlConfig(yaml_path).save({"enable_warmup": "maybe"})
    assert repo.load_settings().enable_warmup is True
    assert "Ignoring invalid settings file" in caplog.text


def test_unreadable_yaml_file_is_ignored(paths, caplog):
    db_path, yaml_path = paths
    with open(yaml_path, "w", encoding="utf-8") as f:
        f.write("audio_cues: [unclosed\n")
    repo = SettingsRepository(db_path, yaml_path)
    assert repo.load_settings().audio_cues is True
    assert "unreadable" in caplog.text


def test_save_settings_round_trip(paths):
    db_path, yaml_path = paths
    repo = SettingsRepository(db_path, yaml_path)
    settings = SettingsSchema(track_reps=False, enable_cooldown=False)
    repo.save_settings(settings)
    again = SettingsRepository(db_path, yaml_path)
    assert again.load_settings() == settings
    assert YamlConfig(yaml_path).load()["enable_cooldown"] is False


def test_reset_restores_defaults(paths):
    db_path, yaml_path = paths
    repo = SettingsRepository(db_path, yaml_path)
    repo.save_settings(SettingsSchema(enable_glass_motion=False))
    assert repo.load_settings().enable_glass_motion is False
    repo.reset()
    assert repo.load_settings().enable_glass_motion is True


def test_validate_settings_raises_value_error():
    validate_settings({"audio_cues": True})
    with pytest.raises(ValueError):
        validate_settings({"audio_cues": "nope"})
