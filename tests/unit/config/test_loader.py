"""Tests for config loader."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from pulsechat.config.loader import (
    ConfigFileNotFoundError,
    ConfigParseError,
    EnvVarNotFoundError,
    expand_env_vars,
    load_config,
)
from pulsechat.config.models import AppConfig


class TestLoadConfig:
    """Tests for load_config function."""

    def test_load_valid_config(self, tmp_path: Path) -> None:
        """Load a valid config file."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("""
server:
  port: 9000
  public_base_url: "https://chat.example.com"
presence:
  online_threshold_seconds: 30
""")

        config = load_config(config_file)

        assert isinstance(config, AppConfig)
        assert config.server.port == 9000
        assert config.server.host == "0.0.0.0"
        assert config.server.public_base_url == "https://chat.example.com"
        assert config.presence.online_threshold_seconds == 30
        assert config.typing.timeout_seconds == 3.0

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        """An empty file yields the default configuration."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")

        config = load_config(config_file)

        assert config == AppConfig()

    def test_file_not_found(self) -> None:
        """File not found raises ConfigFileNotFoundError."""
        with pytest.raises(ConfigFileNotFoundError) as exc_info:
            load_config(Path("/nonexistent/path/config.yaml"))

        assert "not found" in str(exc_info.value).lower()

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        """Invalid YAML format raises ConfigParseError."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("invalid: yaml: format:")

        with pytest.raises(ConfigParseError):
            load_config(config_file)

    def test_non_mapping_root(self, tmp_path: Path) -> None:
        """A YAML list at the root raises ConfigParseError."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- server\n- logging\n")

        with pytest.raises(ConfigParseError):
            load_config(config_file)

    def test_invalid_value(self, tmp_path: Path) -> None:
        """Out-of-range value raises ValidationError."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("""
typing:
  timeout_seconds: 0
""")

        with pytest.raises(ValidationError) as exc_info:
            load_config(config_file)

        errors = exc_info.value.errors()
        assert any(e["loc"] == ("typing", "timeout_seconds") for e in errors)


class TestExpandEnvVars:
    """Tests for expand_env_vars function."""

    def test_expand_string_env_var(self) -> None:
        with patch.dict(os.environ, {"PUBLIC_URL": "https://x"}, clear=False):
            result = expand_env_vars("${PUBLIC_URL}")

        assert result == "https://x"

    def test_expand_nested_dict(self) -> None:
        with patch.dict(os.environ, {"DB_URL": "sqlite+aiosqlite:///x"}, clear=False):
            data = {"database": {"url": "${DB_URL}"}}
            result = expand_env_vars(data)

        assert result["database"]["url"] == "sqlite+aiosqlite:///x"

    def test_expand_in_list(self) -> None:
        with patch.dict(os.environ, {"VAR1": "value1", "VAR2": "value2"}, clear=False):
            result = expand_env_vars(["${VAR1}", "${VAR2}", "static"])

        assert result == ["value1", "value2", "static"]

    def test_no_expansion_for_partial_match(self) -> None:
        with patch.dict(os.environ, {"VAR": "value"}, clear=False):
            result = expand_env_vars("prefix${VAR}suffix")

        assert result == "prefix${VAR}suffix"

    def test_undefined_env_var_raises_error(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(EnvVarNotFoundError) as exc_info:
                expand_env_vars("${UNDEFINED_VAR}")

            assert "UNDEFINED_VAR" in str(exc_info.value)

    def test_non_string_values_unchanged(self) -> None:
        data = {"port": 8080, "enabled": True, "ratio": 0.5, "nothing": None}

        assert expand_env_vars(data) == data


class TestLoadConfigWithEnvVars:
    """Tests for load_config with environment variable expansion."""

    def test_load_config_with_env_vars(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("""
server:
  public_base_url: ${PULSECHAT_PUBLIC_URL}
auth:
  subject_header: ${SUBJECT_HEADER}
""")

        with patch.dict(
            os.environ,
            {
                "PULSECHAT_PUBLIC_URL": "https://chat.example.com",
                "SUBJECT_HEADER": "X-Forwarded-User",
            },
            clear=False,
        ):
            config = load_config(config_file)

        assert config.server.public_base_url == "https://chat.example.com"
        assert config.auth.subject_header == "X-Forwarded-User"

    def test_load_config_undefined_env_var(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("""
database:
  url: ${UNDEFINED_VAR}
""")

        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(EnvVarNotFoundError) as exc_info:
                load_config(config_file)

            assert "UNDEFINED_VAR" in str(exc_info.value)

    def test_full_config(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("""
server:
  host: "127.0.0.1"
  port: 9000
  public_base_url: "https://chat.example.com"
logging:
  level: DEBUG
  format: text
database:
  url: "sqlite+aiosqlite:///data/chat.db"
auth:
  subject_header: "X-User"
presence:
  online_threshold_seconds: 45
typing:
  timeout_seconds: 5
storage:
  root: "/var/lib/pulsechat/uploads"
  max_upload_bytes: 2048
  upload_ttl_seconds: 120
watch:
  max_wait_seconds: 10
""")

        config = load_config(config_file)

        assert config.server.host == "127.0.0.1"
        assert config.server.port == 9000
        assert config.logging.level == "DEBUG"
        assert config.logging.format == "text"
        assert config.database.url == "sqlite+aiosqlite:///data/chat.db"
        assert config.auth.subject_header == "X-User"
        assert config.presence.online_threshold_seconds == 45
        assert config.typing.timeout_seconds == 5
        assert config.storage.root == Path("/var/lib/pulsechat/uploads")
        assert config.storage.max_upload_bytes == 2048
        assert config.storage.upload_ttl_seconds == 120
        assert config.watch.max_wait_seconds == 10
