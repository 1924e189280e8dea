from __future__ import annotations

from pathlib import Path

import pytest

from usersvc.config import ServiceConfig, default_database_path, load_service_config


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_missing_file_uses_defaults(tmp_path: Path) -> None:
    config = load_service_config(tmp_path / "absent.yaml", environ={})

    assert config.database_path == default_database_path()
    assert config.port == 8080
    assert config.default_page_size == 10
    assert config.max_page_size == 100
    assert config.cors_origins == ("*",)


def test_yaml_values_and_relative_database_path(tmp_path: Path) -> None:
    config_path = _write(
        tmp_path / "service.yaml",
        """
service:
  database_path: data/users.sqlite3
  host: 127.0.0.1
  port: 9000
  default_page_size: 5
  max_page_size: 20
  log_level: debug
  cors_origins: https://example.com
""",
    )

    config = load_service_config(config_path, environ={})

    assert config.database_path == (tmp_path / "data" / "users.sqlite3").resolve()
    assert config.host == "127.0.0.1"
    assert config.port == 9000
    assert config.default_page_size == 5
    assert config.max_page_size == 20
    assert config.log_level == "DEBUG"
    assert config.cors_origins == ("https://example.com",)


def test_environment_overrides_file(tmp_path: Path) -> None:
    config_path = _write(tmp_path / "service.yaml", "service:\n  port: 9000\n")
    db_path = tmp_path / "override.sqlite3"

    config = load_service_config(
        config_path,
        environ={
            "USERSVC_PORT": "9100",
            "USERSVC_DB_PATH": str(db_path),
            "USERSVC_LOG_LEVEL": "warning",
        },
    )

    assert config.port == 9100
    assert config.database_path == db_path.resolve()
    assert config.log_level == "WARNING"


def test_invalid_values_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        ServiceConfig(database_path=tmp_path / "db.sqlite3", port=0)
    with pytest.raises(ValueError):
        ServiceConfig(database_path=tmp_path / "db.sqlite3", default_page_size=50, max_page_size=10)
    with pytest.raises(ValueError):
        load_service_config(tmp_path / "absent.yaml", environ={"USERSVC_PORT": "eighty"})

    bad_file = _write(tmp_path / "service.yaml", "- just\n- a list\n")
    with pytest.raises(ValueError):
        load_service_config(bad_file, environ={})
