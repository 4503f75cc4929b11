import os

import pytest

import data_store
from models import DEFAULT_PERIOD, GRADE_CATEGORIES


def test_settings_defaults():
    settings = data_store.load_settings_from_config({})
    assert settings.base_url == "http://localhost:5000"
    assert settings.token is None
    assert settings.rubrics == GRADE_CATEGORIES
    assert settings.default_period == DEFAULT_PERIOD
    assert settings.debug_mode is False


def test_settings_from_config():
    settings = data_store.load_settings_from_config({
        "server": {"base_url": "http://school.test", "token": "abc", "timeout": 5},
        "group": {"id": 5, "name": "3A"},
        "subject": {"id": 2, "name": "Matemáticas"},
        "rubrics": ["Tarea", "Examen"],
        "periods": ["P1", "P2"],
        "default_period": "P2",
    })
    assert settings.base_url == "http://school.test"
    assert settings.token == "abc"
    assert settings.timeout == 5.0
    assert (settings.group_id, settings.group_name) == (5, "3A")
    assert (settings.subject_id, settings.subject_name) == (2, "Matemáticas")
    assert settings.rubrics == ["Tarea", "Examen"]
    assert settings.default_period == "P2"


def test_unknown_default_period_falls_back_to_first():
    settings = data_store.load_settings_from_config(
        {"periods": ["P1", "P2"], "default_period": "P9"})
    assert settings.default_period == "P1"


def test_environment_overrides_server(monkeypatch):
    monkeypatch.setenv(data_store.ENV_API_URL, "http://env.test")
    monkeypatch.setenv(data_store.ENV_API_TOKEN, "env-token")
    settings = data_store.load_settings_from_config(
        {"server": {"base_url": "http://file.test", "token": "file-token"}})
    assert settings.base_url == "http://env.test"
    assert settings.token == "env-token"


def test_project_config_round_trip(tmp_path):
    settings = data_store.load_settings_from_config({"group": {"id": 7, "name": "Sexto B"}})
    config = {"unrelated": True}
    data_store.save_settings_to_config(config, settings)
    data_store.save_project_config(str(tmp_path), config)

    loaded = data_store.load_project_config(str(tmp_path))
    assert loaded["unrelated"] is True
    assert data_store.load_settings_from_config(loaded) == settings


def test_session_config_round_trip(tmp_path):
    assert data_store.load_session_config() is None
    data_store.save_session_config(str(tmp_path))
    assert data_store.load_session_config() == {"project_dir": str(tmp_path)}


def test_export_dir_requires_project(tmp_path):
    with pytest.raises(RuntimeError):
        data_store.ensure_export_dir()
    data_store.set_project_dir(str(tmp_path), "salida")
    path = data_store.ensure_export_dir()
    assert path == os.path.join(str(tmp_path), "salida")
    assert os.path.isdir(path)
    assert data_store.get_project_dir() == str(tmp_path)


def test_environment_server_values_are_not_written_back(monkeypatch):
    monkeypatch.setenv(data_store.ENV_API_URL, "http://env.test")
    monkeypatch.setenv(data_store.ENV_API_TOKEN, "env-token")
    config = {"server": {"base_url": "http://file.test", "token": "file-token"}}
    settings = data_store.load_settings_from_config(config)
    data_store.save_settings_to_config(config, settings)
    assert config["server"]["base_url"] == "http://file.test"
    assert config["server"]["token"] == "file-token"


def test_environment_token_without_file_token_is_not_written(monkeypatch):
    monkeypatch.setenv(data_store.ENV_API_TOKEN, "env-token")
    config = {}
    data_store.save_settings_to_config(config, data_store.load_settings_from_config(config))
    assert config["server"]["token"] is None


def _write_config(project_dir, data):
    data_store.save_project_config(str(project_dir), data)


def test_inspect_project_accepts_complete_config(tmp_path):
    _write_config(tmp_path, {
        "server": {"base_url": "https://school.test"},
        "group": {"id": 5, "name": "3A"},
        "subject": {"id": 2, "name": "Matemáticas"},
    })
    settings, problems = data_store.inspect_project(str(tmp_path))
    assert problems == []
    assert settings.group_id == 5


def test_inspect_project_reports_missing_ids_and_bad_url(tmp_path):
    _write_config(tmp_path, {"server": {"base_url": "school.test"}})
    settings, problems = data_store.inspect_project(str(tmp_path))
    assert settings is not None
    assert problems == [
        "server.base_url must start with http:// or https://",
        "group.id must be a positive number",
        "subject.id must be a positive number",
    ]


def test_inspect_project_reports_unreadable_config(tmp_path):
    assert data_store.inspect_project(str(tmp_path / "nope")) == \
        (None, ["Project directory does not exist."])
    assert data_store.inspect_project(str(tmp_path)) == \
        (None, ["Missing 'config.json' inside the project directory."])

    (tmp_path / "config.json").write_text("{not json", encoding="utf-8")
    settings, problems = data_store.inspect_project(str(tmp_path))
    assert settings is None
    assert problems[0].startswith("config.json could not be read")

    _write_config(tmp_path, {"group": {"id": "tercero"}})
    settings, problems = data_store.inspect_project(str(tmp_path))
    assert settings is None
    assert problems[0].startswith("config.json has an invalid value")
