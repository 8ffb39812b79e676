"""Configuration management."""

import json
import os
import secrets
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

from .models.config import AppConfig, EnvSettings


class ConfigError(Exception):
    """Configuration-related error."""

    pass


class ConfigManager:
    """Manages application configuration from .env and config.yaml."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_dir: Configuration directory path. Defaults to ~/.snapmark
        """
        if config_dir is None:
            env_config_dir = os.environ.get("SNAPMARK_CONFIG_DIR")
            if env_config_dir:
                config_dir = Path(env_config_dir)
            else:
                config_dir = Path.home() / '.snapmark'

        self.config_dir = config_dir
        self.config_file = config_dir / 'config.yaml'
        self.env_file = config_dir / '.env'

    def load_env_settings(self) -> EnvSettings:
        """Load environment settings from .env file.

        Raises:
            ConfigError: If .env file is missing or invalid
        """
        if not self.env_file.exists():
            raise ConfigError(
                f".env file not found at {self.env_file}. "
                f"Run 'snapmark init' to create configuration."
            )

        load_dotenv(self.env_file, override=True)

        try:
            return EnvSettings(_env_file=self.env_file)
        except Exception as e:
            raise ConfigError(f"Invalid .env file: {e}") from e

    def load_app_config(self) -> AppConfig:
        """Load application configuration from config.yaml.

        Raises:
            ConfigError: If config file is missing or invalid
        """
        if not self.config_file.exists():
            raise ConfigError(
                f"Config file not found at {self.config_file}. "
                f"Run 'snapmark init' to create configuration."
            )

        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)

            if data is None:
                data = {}

            return AppConfig(**data)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in config file: {e}") from e
        except Exception as e:
            raise ConfigError(f"Failed to load config: {e}") from e

    def save_app_config(self, config: AppConfig) -> None:
        """Save application configuration to config.yaml.

        Raises:
            ConfigError: If save fails
        """
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)

            data = config.model_dump(mode='json')

            with open(self.config_file, 'w', encoding='utf-8') as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)

        except Exception as e:
            raise ConfigError(f"Failed to save config: {e}") from e

    def create_env_file(self, user_id: str = "local-user", token: Optional[str] = None) -> str:
        """Create .env file with a single API token.

        Args:
            user_id: User the token authenticates as
            token: Bearer token; a random one is generated when omitted

        Returns:
            The token written to the file

        Raises:
            ConfigError: If file creation fails
        """
        token = token or secrets.token_urlsafe(32)
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)

            env_content = f"""# SnapMark API credentials
# JSON object mapping bearer token -> user id
API_TOKENS='{json.dumps({token: user_id})}'
"""

            with open(self.env_file, 'w', encoding='utf-8') as f:
                f.write(env_content)

            # Set restrictive permissions on Unix-like systems
            if os.name != 'nt':
                os.chmod(self.env_file, 0o600)

        except Exception as e:
            raise ConfigError(f"Failed to create .env file: {e}") from e

        return token

    def resolve_data_dir(self, config: AppConfig) -> Path:
        """Directory holding documents and blobs."""
        if config.data_dir:
            return Path(config.data_dir)
        return self.config_dir / "data"

    def validate_data_dir(self, config: AppConfig) -> None:
        """Validate the data directory is usable.

        Raises:
            ConfigError: If the directory is missing or not read/writable
        """
        path = self.resolve_data_dir(config)

        if not path.exists():
            raise ConfigError(f"Data directory does not exist: {path}")

        if not path.is_dir():
            raise ConfigError(f"Data directory is not a directory: {path}")

        if not os.access(path, os.R_OK):
            raise ConfigError(f"Data directory is not readable: {path}")

        if not os.access(path, os.W_OK):
            raise ConfigError(f"Data directory is not writable: {path}")
