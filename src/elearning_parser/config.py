"""Configuration management for elearning-parser.

Handles loading, saving, and validating TOML configuration stored in:
- macOS: ~/.config/elearning-parser/config.toml
- Linux: ~/.config/elearning-parser/config.toml (XDG_CONFIG_HOME)
- Windows: %APPDATA%\\elearning-parser\\config.toml

Environment variables take precedence over the file:
    ELEARNING_S3_BUCKET, ELEARNING_S3_ENDPOINT_URL, ELEARNING_S3_REGION
    ELEARNING_VALIDATE_FILE_EXISTS, ELEARNING_CALCULATE_MODULE_SIZE
"""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import tomllib
import tomli_w

from elearning_parser.access.object_store import (
    DEFAULT_MAX_WORKERS,
    MAX_CACHE_SIZE,
    STREAMING_THRESHOLD,
)

_TRUE_VALUES = ("true", "1", "yes")


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


@dataclass
class AccessSettings:
    """Tuning for the object store engine.

    Attributes:
        streaming_threshold: Largest object size (bytes) buffered and cached
        max_cache_entries: Capacity of the small-file content cache
        max_workers: Worker pool size for parallel store calls
        eager_cache: Scan every key under the root when opening a package
    """

    streaming_threshold: int = STREAMING_THRESHOLD
    max_cache_entries: int = MAX_CACHE_SIZE
    max_workers: int = DEFAULT_MAX_WORKERS
    eager_cache: bool = True


@dataclass
class S3Settings:
    """S3 connection settings. Credentials never live in the config file.

    Attributes:
        bucket: Default bucket name
        endpoint_url: Custom endpoint for S3-compatible services
        region: Region name
    """

    bucket: str = ""
    endpoint_url: str = ""
    region: str = ""


@dataclass
class ValidationSettings:
    """Feature toggles for package validation.

    Attributes:
        validate_file_exists: Check referenced files exist while parsing
        calculate_module_size: Sum file sizes while parsing
    """

    validate_file_exists: bool = False
    calculate_module_size: bool = False


@dataclass
class LoggingSettings:
    """Session log settings.

    Attributes:
        log_dir: Directory for the session log file
        level: Minimum level written to the log file
    """

    log_dir: Path = field(default_factory=lambda: get_default_log_dir())
    level: str = "INFO"


@dataclass
class ParserConfig:
    """Configuration for elearning-parser.

    Attributes:
        access: Object store engine tuning
        s3: S3 connection settings
        validation: Validation feature toggles
        logging: Session log settings
    """

    access: AccessSettings = field(default_factory=AccessSettings)
    s3: S3Settings = field(default_factory=S3Settings)
    validation: ValidationSettings = field(default_factory=ValidationSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "ParserConfig":
        """Load configuration from TOML file.

        Args:
            path: Path to config file (defaults to standard location)

        Returns:
            ParserConfig instance with loaded values

        Raises:
            FileNotFoundError: If config file doesn't exist
        """
        if path is None:
            path = get_config_path()

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "rb") as f:
            data = tomllib.load(f)

        config = cls()

        if "access" in data:
            access = data["access"]
            config.access.streaming_threshold = int(
                access.get("streaming_threshold", config.access.streaming_threshold)
            )
            config.access.max_cache_entries = int(
                access.get("max_cache_entries", config.access.max_cache_entries)
            )
            config.access.max_workers = int(access.get("max_workers", config.access.max_workers))
            config.access.eager_cache = bool(access.get("eager_cache", config.access.eager_cache))

        if "s3" in data:
            s3 = data["s3"]
            config.s3.bucket = s3.get("bucket", config.s3.bucket)
            config.s3.endpoint_url = s3.get("endpoint_url", config.s3.endpoint_url)
            config.s3.region = s3.get("region", config.s3.region)

        if "validation" in data:
            validation = data["validation"]
            config.validation.validate_file_exists = bool(
                validation.get("validate_file_exists", config.validation.validate_file_exists)
            )
            config.validation.calculate_module_size = bool(
                validation.get("calculate_module_size", config.validation.calculate_module_size)
            )

        if "logging" in data:
            log_dir = data["logging"].get("log_dir")
            if log_dir:
                config.logging.log_dir = Path(log_dir)
            config.logging.level = data["logging"].get("level", config.logging.level)

        config.apply_env_overrides()
        return config

    def apply_env_overrides(self) -> None:
        """Override values from environment variables (which take precedence)."""
        env_bucket = os.environ.get("ELEARNING_S3_BUCKET")
        if env_bucket:
            self.s3.bucket = env_bucket

        env_endpoint = os.environ.get("ELEARNING_S3_ENDPOINT_URL")
        if env_endpoint:
            self.s3.endpoint_url = env_endpoint

        env_region = os.environ.get("ELEARNING_S3_REGION")
        if env_region:
            self.s3.region = env_region

        self.validation.validate_file_exists = _env_flag(
            "ELEARNING_VALIDATE_FILE_EXISTS", self.validation.validate_file_exists
        )
        self.validation.calculate_module_size = _env_flag(
            "ELEARNING_CALCULATE_MODULE_SIZE", self.validation.calculate_module_size
        )

    def save(self, path: Optional[Path] = None) -> None:
        """Save configuration to TOML file.

        Args:
            path: Path to save config (defaults to standard location)
        """
        if path is None:
            path = get_config_path()

        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "access": {
                "streaming_threshold": self.access.streaming_threshold,
                "max_cache_entries": self.access.max_cache_entries,
                "max_workers": self.access.max_workers,
                "eager_cache": self.access.eager_cache,
            },
            "s3": {
                "bucket": self.s3.bucket,
                "endpoint_url": self.s3.endpoint_url,
                "region": self.s3.region,
            },
            "validation": {
                "validate_file_exists": self.validation.validate_file_exists,
                "calculate_module_size": self.validation.calculate_module_size,
            },
            "logging": {
                "log_dir": str(self.logging.log_dir),
                "level": self.logging.level,
            },
        }

        with open(path, "wb") as f:
            tomli_w.dump(data, f)

    def get(self, key: str, default: Optional[Any] = None) -> Optional[Any]:
        """Get a configuration value by key.

        Supports dot notation for nested values (e.g., "s3.bucket").

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value: Any = self
        for part in key.split("."):
            if hasattr(value, part):
                value = getattr(value, part)
            else:
                return default

        if isinstance(value, Path):
            return str(value)
        return value

    def set(self, key: str, value: str) -> None:
        """Set a configuration value by key.

        Supports dot notation for nested values (e.g., "access.max_workers").

        Args:
            key: Configuration key
            value: Configuration value as a string

        Raises:
            ValueError: If the key is unknown or the value has the wrong type
        """
        parts = key.split(".")
        target: Any = self

        for part in parts[:-1]:
            if hasattr(target, part):
                target = getattr(target, part)
            else:
                raise ValueError(f"Invalid config key: {key}")

        final_key = parts[-1]
        if len(parts) < 2 or not hasattr(target, final_key):
            raise ValueError(f"Invalid config key: {key}")

        # Try to preserve type
        current = getattr(target, final_key)
        if isinstance(current, bool):
            new_value: Any = value.lower() in _TRUE_VALUES
        elif isinstance(current, int):
            new_value = int(value)
        elif isinstance(current, Path):
            new_value = Path(value)
        else:
            new_value = value

        setattr(target, final_key, new_value)


def get_config_dir() -> Path:
    """Get the platform-specific config directory.

    Returns:
        Path to the config directory for elearning-parser.
    """
    if sys.platform == "darwin" or sys.platform == "linux":
        xdg_config = os.environ.get("XDG_CONFIG_HOME")
        if xdg_config:
            return Path(xdg_config) / "elearning-parser"
        return Path.home() / ".config" / "elearning-parser"
    elif sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "elearning-parser"
        return Path.home() / "AppData" / "Roaming" / "elearning-parser"
    else:
        return Path.home() / ".config" / "elearning-parser"


def get_config_path() -> Path:
    """Get the path to the config.toml file."""
    return get_config_dir() / "config.toml"


def get_default_log_dir() -> Path:
    """Get the default session log directory."""
    return get_config_dir() / "logs"


def ensure_config_exists() -> ParserConfig:
    """Ensure config file exists, creating default if needed.

    Returns:
        ParserConfig instance
    """
    config_path = get_config_path()

    if config_path.exists():
        try:
            return ParserConfig.load(config_path)
        except (tomllib.TOMLDecodeError, ValueError, TypeError):
            # Corrupted config is replaced with defaults
            pass

    config = ParserConfig()
    config.save(config_path)
    config.apply_env_overrides()
    return config


def is_file_validation_enabled() -> bool:
    """Whether parsers should verify that referenced files exist."""
    return _env_flag("ELEARNING_VALIDATE_FILE_EXISTS")


def is_module_size_enabled() -> bool:
    """Whether parsers should compute the total package size."""
    return _env_flag("ELEARNING_CALCULATE_MODULE_SIZE")
