"""
Configuration Manager - Loading and saving configurations

Handles configuration file loading, saving and validation with support for
TOML and JSON files, `${VAR}` environment substitution in string values and
environment-variable overrides through pydantic-settings.

Requires: pydantic>=2.0.0, pydantic-settings>=2.0.0, tomli-w>=1.0.0
"""

import asyncio
import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

import tomllib

import tomli_w  # type: ignore
from pydantic import ValidationError  # type: ignore

from .models import CoreConfig

logger = logging.getLogger(__name__)

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::([^}]*))?\}")


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""
    pass


def substitute_env_vars(data: Any) -> Any:
    """Replace ${VAR} and ${VAR:default} in string values, recursively"""
    if isinstance(data, dict):
        return {key: substitute_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [substitute_env_vars(item) for item in data]
    if isinstance(data, str) and "${" in data:
        return _ENV_PATTERN.sub(lambda m: os.getenv(m.group(1), m.group(2) or ""), data)
    return data


class ConfigManager:
    """
    Manages configuration loading, saving, and validation.

    Features:
    - TOML and JSON format support
    - Async file operations
    - Configuration validation with Pydantic
    - Environment variable overrides and substitution
    """

    def __init__(self):
        self._config_cache: dict[str, CoreConfig] = {}

    async def load_config(self, config_path: Optional[Path] = None) -> CoreConfig:
        """
        Load configuration from file.

        Args:
            config_path: Path to configuration file (auto-detect if None)

        Returns:
            Loaded CoreConfig instance; environment defaults when the file is
            missing or invalid
        """
        if config_path is None:
            config_path = self._find_config_file()
        config_path = Path(config_path)

        if not config_path.exists():
            logger.info(f"Config file not found: {config_path}, using environment defaults")
            return self._load_from_environment()

        try:
            content = await asyncio.to_thread(config_path.read_text, encoding='utf-8')

            if config_path.suffix.lower() == '.toml':
                data = await self._parse_toml(content)
            elif config_path.suffix.lower() == '.json':
                data = await self._parse_json(content)
            else:
                raise ValueError(f"Unsupported config format: {config_path.suffix}")

            config = self._dict_to_config_validated(data)
            self._config_cache[str(config_path)] = config

            logger.info(f"Loaded configuration from: {config_path}")
            return config

        except (OSError, ValueError, ConfigValidationError) as e:
            logger.error(f"Failed to load config from {config_path}: {e}")
            logger.info("Using default configuration with environment overrides")
            return self._load_from_environment()

    async def save_config(self, config: CoreConfig, config_path: Path) -> bool:
        """
        Save configuration to file.

        Args:
            config: CoreConfig instance to save
            config_path: Destination (.toml or .json)

        Returns:
            True if saved successfully
        """
        config_path = Path(config_path)
        try:
            data = self._config_to_dict(config)

            if config_path.suffix.lower() == '.toml':
                content = await self._format_toml(data)
            elif config_path.suffix.lower() == '.json':
                content = await self._format_json(data)
            else:
                raise ValueError(f"Unsupported config format: {config_path.suffix}")

            config_path.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(config_path.write_text, content, encoding='utf-8')
            self._config_cache[str(config_path)] = config

            logger.info(f"Saved configuration to: {config_path}")
            return True

        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Failed to save config to {config_path}: {e}")
            return False

    def get_cached(self, config_path: Path) -> Optional[CoreConfig]:
        return self._config_cache.get(str(config_path))

    def _find_config_file(self) -> Path:
        """Find configuration file in standard locations"""
        search_paths = [
            Path("./threadclear.toml"),
            Path("./threadclear.json"),
            Path("./config.toml"),
            Path.home() / ".config" / "threadclear" / "config.toml",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return Path("./threadclear.toml")

    def _load_from_environment(self) -> CoreConfig:
        """Create configuration from environment variables only"""
        try:
            return CoreConfig()
        except ValidationError as e:
            logger.error(f"Failed to load config from environment: {e}")
            return CoreConfig.model_construct()

    async def _parse_toml(self, content: str) -> dict[str, Any]:
        """Parse TOML content"""
        return await asyncio.to_thread(tomllib.loads, content)

    async def _parse_json(self, content: str) -> dict[str, Any]:
        """Parse JSON content"""
        return await asyncio.to_thread(json.loads, content)

    async def _format_toml(self, data: dict[str, Any]) -> str:
        """Format data as TOML"""
        return await asyncio.to_thread(tomli_w.dumps, data)

    async def _format_json(self, data: dict[str, Any]) -> str:
        """Format data as JSON"""
        return await asyncio.to_thread(json.dumps, data, indent=2)

    def _dict_to_config_validated(self, data: dict[str, Any]) -> CoreConfig:
        """Convert dictionary to CoreConfig with validation"""
        try:
            return CoreConfig.model_validate(substitute_env_vars(data))
        except ValidationError as e:
            raise ConfigValidationError(f"Configuration validation failed: {e}")

    def _config_to_dict(self, config: CoreConfig) -> dict[str, Any]:
        """Convert CoreConfig to a TOML-safe dictionary (TOML has no null)"""
        return config.model_dump(mode="json", exclude_none=True)
