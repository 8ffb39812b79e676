"""Tests for configuration management."""

import json
import os
import tempfile
from pathlib import Path

import pytest

from snapmark.config import ConfigError, ConfigManager
from snapmark.models.config import AppConfig, EnvSettings


class TestAppConfig:
    """Test AppConfig model."""

    def test_default_config(self):
        """Test default configuration values."""
        config = AppConfig()
        assert config.host == "127.0.0.1"
        assert config.port == 8000
        assert config.enable_screenshots is True
        assert config.blob_url_mode == "local"
        assert config.retry_ceiling == 3
        assert config.sweep_batch_size == 50
        assert config.stale_processing_minutes == 30

    def test_browser_launch_config(self):
        """Test launch settings are derived from the config."""
        config = AppConfig(
            viewport_width=1024,
            navigation_timeout=15,
            screenshot_timeout=60,
            browser_args=["--no-sandbox"],
        )

        launch = config.browser_launch_config()

        assert launch.viewport_width == 1024
        assert launch.viewport_height == 720
        assert launch.navigation_timeout_seconds == 15.0
        assert launch.capture_budget_seconds == 60.0
        assert launch.args == ("--no-sandbox",)
        assert launch.headless is True

    def test_invalid_url_mode_rejected(self):
        with pytest.raises(ValueError):
            AppConfig(blob_url_mode="s3")


class TestConfigManager:
    """Test ConfigManager functionality."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.config_dir = Path(self.temp_dir) / ".snapmark"
        self.config_manager = ConfigManager(self.config_dir)

    def teardown_method(self):
        """Clean up test fixtures."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_uses_env_config_dir_when_not_provided(self, monkeypatch):
        """Test config manager reads SNAPMARK_CONFIG_DIR."""
        env_dir = Path(self.temp_dir) / "from_env"
        monkeypatch.setenv("SNAPMARK_CONFIG_DIR", str(env_dir))

        assert ConfigManager().config_dir == env_dir

    def test_load_missing_env_file(self):
        """Test loading missing .env file raises error."""
        with pytest.raises(ConfigError, match=".env file not found"):
            self.config_manager.load_env_settings()

    def test_load_missing_config_file(self):
        """Test loading missing config.yaml raises error."""
        with pytest.raises(ConfigError, match="Config file not found"):
            self.config_manager.load_app_config()

    def test_create_env_file(self, monkeypatch):
        """Test creating .env file with a generated token."""
        monkeypatch.setenv("API_TOKENS", "{}")

        token = self.config_manager.create_env_file(user_id="alice")

        assert len(token) >= 32
        content = self.config_manager.env_file.read_text()
        assert json.dumps({token: "alice"}) in content
        if os.name != "nt":
            assert (self.config_manager.env_file.stat().st_mode & 0o777) == 0o600

        settings = self.config_manager.load_env_settings()
        assert settings.api_tokens == {token: "alice"}

    def test_create_env_file_with_given_token(self, monkeypatch):
        monkeypatch.setenv("API_TOKENS", "{}")

        token = self.config_manager.create_env_file(user_id="bob", token="s3cr3t")

        assert token == "s3cr3t"
        assert self.config_manager.load_env_settings().api_tokens == {"s3cr3t": "bob"}

    def test_env_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("API_TOKENS", '{"abc": "carol"}')

        assert EnvSettings(_env_file=None).api_tokens == {"abc": "carol"}

    def test_save_and_load_config(self):
        """Test saving and loading configuration."""
        config = AppConfig(
            data_dir=str(Path(self.temp_dir) / "data"),
            enable_screenshots=False,
            stale_processing_minutes=None,
        )

        self.config_manager.save_app_config(config)
        assert self.config_manager.config_file.exists()

        loaded = self.config_manager.load_app_config()
        assert loaded.data_dir == str(Path(self.temp_dir) / "data")
        assert loaded.enable_screenshots is False
        assert loaded.stale_processing_minutes is None

    def test_empty_config_file_uses_defaults(self):
        self.config_manager.config_dir.mkdir(parents=True)
        self.config_manager.config_file.write_text("")

        assert self.config_manager.load_app_config().port == 8000

    def test_invalid_yaml_raises_error(self):
        """Test invalid YAML raises ConfigError."""
        self.config_manager.config_file.parent.mkdir(parents=True, exist_ok=True)
        self.config_manager.config_file.write_text("invalid: yaml: content:")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            self.config_manager.load_app_config()

    def test_invalid_value_raises_error(self):
        self.config_manager.config_file.parent.mkdir(parents=True, exist_ok=True)
        self.config_manager.config_file.write_text("retry_ceiling: -1\n")

        with pytest.raises(ConfigError, match="Failed to load config"):
            self.config_manager.load_app_config()

    def test_resolve_data_dir(self):
        """Test data directory defaults to <config_dir>/data."""
        assert self.config_manager.resolve_data_dir(AppConfig()) == self.config_dir / "data"
        assert self.config_manager.resolve_data_dir(AppConfig(data_dir="/srv/snap")) == Path("/srv/snap")

    def test_validate_nonexistent_data_dir(self):
        """Test validating a non-existent data directory raises error."""
        config = AppConfig(data_dir="/nonexistent/path")

        with pytest.raises(ConfigError, match="does not exist"):
            self.config_manager.validate_data_dir(config)

    def test_validate_file_as_data_dir(self):
        """Test validating a file path raises error."""
        file_path = Path(self.temp_dir) / "file.txt"
        file_path.write_text("test")

        with pytest.raises(ConfigError, match="not a directory"):
            self.config_manager.validate_data_dir(AppConfig(data_dir=str(file_path)))

    def test_validate_accessible_data_dir(self):
        """Test validating an accessible data directory succeeds."""
        data_path = Path(self.temp_dir) / "data"
        data_path.mkdir(parents=True)

        # Should not raise
        self.config_manager.validate_data_dir(AppConfig(data_dir=str(data_path)))
