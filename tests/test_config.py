from pathlib import Path

import courseplayer.config as config_module
from courseplayer.config import AppConfig, load_config


def test_storage_root_falls_back_when_preferred_is_unusable(
    tmp_path: Path, monkeypatch
) -> None:
    home_dir = tmp_path / "home"
    monkeypatch.setattr(config_module.Path, "home", lambda: home_dir)

    preferred_storage = tmp_path / "storage"
    preferred_storage.write_text("not a directory", encoding="utf-8")

    config = AppConfig.from_mapping(
        {
            "storage_root": "storage",
            "database_file": "storage/courseplayer.db",
        },
        base_path=tmp_path,
    )

    expected_storage = (home_dir / ".courseplayer" / "storage").resolve()
    expected_database = (expected_storage / "courseplayer.db").resolve()

    assert config.storage_root == expected_storage
    assert config.database_file == expected_database
    assert config.settings_file == expected_storage / "settings.json"
    assert expected_storage.exists()


def test_api_base_url_defaults_and_environment_override(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("COURSEPLAYER_API_URL", raising=False)
    mapping = {
        "storage_root": "storage",
        "database_file": "storage/courseplayer.db",
        "api_base_url": "http://content.example/",
        "request_timeout": "not a number",
    }

    config = AppConfig.from_mapping(mapping, base_path=tmp_path)
    assert config.api_base_url == "http://content.example"
    assert config.request_timeout == 15.0

    monkeypatch.setenv("COURSEPLAYER_API_URL", "https://lectures.example/")
    overridden = AppConfig.from_mapping(mapping, base_path=tmp_path)
    assert overridden.api_base_url == "https://lectures.example"


def test_load_config_reads_json_file(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("COURSEPLAYER_API_URL", raising=False)
    config_file = tmp_path / "custom.json"
    config_file.write_text(
        '{"storage_root": "%s", "database_file": "%s", "request_timeout": 3}'
        % ((tmp_path / "data").as_posix(), (tmp_path / "data" / "db.sqlite").as_posix()),
        encoding="utf-8",
    )

    config = load_config(config_file)

    assert config.storage_root == (tmp_path / "data").resolve()
    assert config.database_file == (tmp_path / "data" / "db.sqlite").resolve()
    assert config.request_timeout == 3.0
    assert config.api_base_url == "http://127.0.0.1:8000"
