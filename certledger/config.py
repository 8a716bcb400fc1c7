"""
certledger configuration

Configuration values with YAML files, environment variables and
validation.

Configuration sources (in order of precedence):
    1. Environment variables (CERTLEDGER_*)
    2. Runtime overrides (``ConfigManager.set``)
    3. YAML files (./certledger.yaml, ./config/certledger.yaml,
       ~/.certledger/config.yaml, or an explicit path)
    4. Default values

The admin credential hash is read here and handed to ``AccessGuard`` at
construction; nothing else in the package reads it.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from certledger.core import is_valid_sha256, load_yaml
from certledger.observability import Layer, get_logger

T = TypeVar("T")

logger = get_logger("config", Layer.CONFIG)


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigValidationError(ConfigError):
    """Configuration validation error."""
    pass


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding and validation.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    secret: bool = False  # masked in to_dict()
    _value: Optional[T] = field(default=None, repr=False)

    def get(self) -> T:
        if self.env_var and self.env_var in os.environ:
            value = self._coerce(os.environ[self.env_var])
            if self.validator and not self.validator(value):
                shown = "***" if self.secret else value
                raise ConfigValidationError(f"Invalid value in {self.env_var}: {shown!r}")
            return value
        return self._value if self._value is not None else self.default

    def set(self, value: Any) -> None:
        """Set the value with coercion and validation."""
        if isinstance(value, str) and not isinstance(self.default, str):
            value = self._coerce(value)
        if self.validator and not self.validator(value):
            raise ConfigValidationError(f"Invalid value for config: {value!r}")
        self._value = value

    def reset(self) -> None:
        self._value = None

    def _coerce(self, value: str) -> T:
        target_type = type(self.default)

        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")  # type: ignore
        elif target_type == int:
            try:
                return int(value)  # type: ignore
            except ValueError as exc:
                raise ConfigValidationError(f"Expected an integer, got {value!r}") from exc
        return value  # type: ignore


@dataclass
class LedgerConfig:
    """Where the file-backed ledger lives."""
    path: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="certledger-ledger.json",
        env_var="CERTLEDGER_LEDGER_PATH",
        description="Path of the JSON ledger file used by the CLI",
        validator=lambda x: isinstance(x, str) and bool(x.strip()),
    ))


@dataclass
class AccessConfig:
    """Access guard configuration."""
    admin_credential_hash: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="CERTLEDGER_ADMIN_CREDENTIAL_HASH",
        description="Hex SHA-256 of the certifier credential (empty disables privileged operations)",
        validator=lambda x: isinstance(x, str) and (x == "" or is_valid_sha256(x.strip().lower())),
        secret=True,
    ))


@dataclass
class LifecycleConfig:
    """Lifecycle engine configuration."""
    validity_days: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=365,
        env_var="CERTLEDGER_VALIDITY_DAYS",
        description="Days a certificate stays valid after approval or renewal",
        validator=lambda x: isinstance(x, int) and x > 0,
    ))


@dataclass
class ObservabilityConfig:
    """Logging configuration."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="warning",
        env_var="CERTLEDGER_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="CERTLEDGER_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class CertLedgerConfig:
    """Root configuration aggregating every section."""
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    access: AccessConfig = field(default_factory=AccessConfig)
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self, reveal_secrets: bool = False) -> Dict[str, Any]:
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                value = obj.get()
                if obj.secret and value and not reveal_secrets:
                    return "***"
                return value
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        return yaml.dump(self.to_dict(), default_flow_style=False)


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Instances are independent; ``get_config_manager`` hands out a shared
    process-wide one for the CLI.
    """

    DEFAULT_PATHS = (
        Path("certledger.yaml"),
        Path("config/certledger.yaml"),
        Path.home() / ".certledger" / "config.yaml",
    )

    def __init__(self, config: Optional[CertLedgerConfig] = None):
        self._config = config or CertLedgerConfig()
        self._config_paths: List[Path] = []

    @property
    def config(self) -> CertLedgerConfig:
        return self._config

    @property
    def loaded_paths(self) -> List[Path]:
        return list(self._config_paths)

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        try:
            data = load_yaml(path)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file must hold a mapping: {path}")

        self._apply_dict(data)
        self._config_paths.append(path)
        logger.debug("Loaded configuration file", path=str(path))

    def load_defaults(self) -> None:
        """Load the first default configuration file that exists."""
        for path in self.DEFAULT_PATHS:
            if path.exists():
                self.load_from_file(path)
                return

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        def apply_to_config(config_obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                path = f"{prefix}{key}"
                if not hasattr(config_obj, key):
                    raise ConfigError(f"Unknown config key: {path}")
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value, f"{path}.")
                else:
                    raise ConfigError(f"Invalid value for config section: {path}")

        apply_to_config(self._config, data, "")

    def _resolve(self, path: str) -> ConfigValue:
        obj: Any = self._config
        for part in path.split("."):
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)
        if not isinstance(obj, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        return obj

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: manager.set("lifecycle.validity_days", 730)
        """
        self._resolve(path).set(value)

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: manager.get("ledger.path")
        """
        return self._resolve(path).get()

    def validate(self) -> List[str]:
        """
        Validate all configuration values.

        Returns list of validation errors.
        """
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if obj.validator and not obj.validator(value):
                        shown = "***" if obj.secret else value
                        errors.append(f"{path}: validation failed for value {shown!r}")
                except ConfigError as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Export configuration schema for documentation."""
        schema: Dict[str, Any] = {"properties": {}}

        def extract_schema(obj: Any, properties: Dict[str, Any]) -> None:
            if isinstance(obj, ConfigValue):
                properties["type"] = type(obj.default).__name__
                properties["default"] = str(obj.default)
                properties["description"] = obj.description
                if obj.env_var:
                    properties["env_var"] = obj.env_var
                if obj.secret:
                    properties["secret"] = True
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    properties[field_name] = {}
                    extract_schema(getattr(obj, field_name), properties[field_name])

        extract_schema(self._config, schema["properties"])
        return schema


_manager: Optional[ConfigManager] = None
_manager_lock = threading.Lock()


def get_config_manager() -> ConfigManager:
    """Get the shared configuration manager, loading default files once."""
    global _manager
    with _manager_lock:
        if _manager is None:
            _manager = ConfigManager()
            _manager.load_defaults()
        return _manager