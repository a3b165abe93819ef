"""
Agent Coordination Configuration System

Deployment settings for the coordinator: signing domain, signature scheme
and logging. Loaded from YAML, overridable from the environment.

Configuration Sources (in order of precedence):
    1. Environment variables (AGENTCOORD_*)
    2. Runtime overrides
    3. User config file (~/.agentcoord/config.yaml)
    4. Project config file (./agentcoord.yaml)
    5. Default values

Only deployment choices live here. Constants that feed digests byte-for-byte
(participant cap, acceptance nonce, signing prefix) are module constants.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

T = TypeVar("T")

TESTNET_CHAIN_ID = 0x80000000
SIGNATURE_SCHEMES = ("secp256k1", "ed25519")


class ConfigError(Exception):
    """Configuration error."""
    pass


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    The environment variable, when set, wins over a runtime override,
    which wins over the default.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)
    _callbacks: List[Callable[[T, T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])

        return self._value if self._value is not None else self.default

    def set(self, value: T) -> None:
        """Set a runtime override; raises ConfigError if the validator rejects it."""
        if isinstance(value, str) and not isinstance(self.default, str):
            value = self._coerce(value)
        if self.validator and not self.validator(value):
            raise ConfigError(f"Invalid value for config: {value!r}")

        old_value = self._value
        self._value = value

        for callback in self._callbacks:
            callback(old_value, value)

    def _coerce(self, value: str) -> T:
        """Environment values arrive as text; convert to the default's type."""
        target_type = type(self.default)

        try:
            if target_type == bool:
                return value.lower() in ("true", "1", "yes", "on")  # type: ignore
            elif target_type == int:
                return int(value, 0)  # type: ignore
            else:
                return value  # type: ignore
        except ValueError as e:
            raise ConfigError(f"Cannot coerce {value!r} to {target_type.__name__}") from e

    def on_change(self, callback: Callable[[T, T], None]) -> None:
        """Register a change callback."""
        self._callbacks.append(callback)


def _is_ascii_text(value: Any) -> bool:
    return isinstance(value, str) and 0 < len(value) <= 128 and value.isascii()


@dataclass
class DomainConfig:
    """Signing domain; every field changes the domain separator."""
    chain_id: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=TESTNET_CHAIN_ID,
        env_var="AGENTCOORD_CHAIN_ID",
        description="Network chain id (1 = mainnet, 0x80000000 = testnet)",
        validator=lambda x: isinstance(x, int) and 0 < x < 2 ** 32,
    ))
    verifying_context: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="agent-coordination",
        env_var="AGENTCOORD_VERIFYING_CONTEXT",
        description="Deployment identifier hashed into the domain separator",
        validator=_is_ascii_text,
    ))
    name: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="ERC-8001-Agent-Coordination",
        env_var="AGENTCOORD_DOMAIN_NAME",
        description="Domain name tag",
        validator=_is_ascii_text,
    ))
    version: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="1",
        env_var="AGENTCOORD_DOMAIN_VERSION",
        description="Domain version tag",
        validator=_is_ascii_text,
    ))


@dataclass
class SignatureConfig:
    """Configuration for acceptance signature verification."""
    scheme: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="secp256k1",
        env_var="AGENTCOORD_SIGNATURE_SCHEME",
        description="Signature scheme (secp256k1, ed25519)",
        validator=lambda x: x in SIGNATURE_SCHEMES,
    ))


@dataclass
class ObservabilityConfig:
    """Log level and output format for every coordination logger."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="AGENTCOORD_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="AGENTCOORD_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class CoordinationConfig:
    """
    Root configuration for the coordination core.

    One section per concern; to_dict() resolves every value as currently
    effective, environment overrides included.
    """
    domain: DomainConfig = field(default_factory=DomainConfig)
    signatures: SignatureConfig = field(default_factory=SignatureConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False)


class ConfigManager:
    """
    Process-wide owner of the active CoordinationConfig.

    Singleton; construction is guarded by a class-level lock.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._config = CoordinationConfig()
        self._config_paths: List[Path] = []
        self._watchers: List[Callable[[CoordinationConfig], None]] = []
        self._initialized = True

    @property
    def config(self) -> CoordinationConfig:
        """Get the current configuration."""
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if data:
            if not isinstance(data, dict):
                raise ConfigError(f"Configuration root must be a mapping: {path}")
            self._apply_dict(data)
            if path not in self._config_paths:
                self._config_paths.append(path)

    def load_defaults(self) -> None:
        """Load ~/.agentcoord/config.yaml then ./agentcoord.yaml, when present."""
        default_paths = [
            Path.home() / ".agentcoord" / "config.yaml",
            Path("agentcoord.yaml"),
        ]

        for path in default_paths:
            if path.exists():
                self.load_from_file(path)

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        """Walk a parsed YAML mapping onto the config sections."""
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
                    raise ConfigError(f"Invalid config section: {path}")

        apply_to_config(self._config, data, "")

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("domain.chain_id", 1)
        """
        parts = path.split(".")
        obj = self._config

        try:
            for part in parts[:-1]:
                obj = getattr(obj, part)
            attr = getattr(obj, parts[-1])
        except AttributeError as e:
            raise ConfigError(f"Invalid config path: {path}") from e

        if isinstance(attr, ConfigValue):
            attr.set(value)
        else:
            raise ConfigError(f"Invalid config path: {path}")

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("domain.chain_id")
        """
        obj = self._config
        try:
            for part in path.split("."):
                obj = getattr(obj, part)
        except AttributeError as e:
            raise ConfigError(f"Invalid config path: {path}") from e

        if isinstance(obj, ConfigValue):
            return obj.get()
        return obj

    def watch(self, callback: Callable[[CoordinationConfig], None]) -> None:
        """Register a callback for configuration changes."""
        self._watchers.append(callback)

    def reload(self) -> None:
        """Re-read previously loaded files and notify watchers."""
        for path in self._config_paths:
            if path.exists():
                self.load_from_file(path)

        for watcher in self._watchers:
            watcher(self._config)

    def reset(self) -> None:
        """Drop runtime overrides, loaded files and watchers; back to defaults."""
        self._config = CoordinationConfig()
        self._config_paths = []
        self._watchers = []

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
                        errors.append(f"{path}: validation failed for value {value!r}")
                except ConfigError as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Describe every setting: type, default, description, env var."""
        schema: Dict[str, Any] = {"properties": {}}

        def extract_schema(obj: Any, properties: Dict[str, Any]) -> None:
            if isinstance(obj, ConfigValue):
                properties["type"] = type(obj.default).__name__
                properties["default"] = str(obj.default)
                properties["description"] = obj.description
                if obj.env_var:
                    properties["env_var"] = obj.env_var
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    properties[field_name] = {}
                    extract_schema(getattr(obj, field_name), properties[field_name])

        extract_schema(self._config, schema["properties"])
        return schema


def get_config() -> CoordinationConfig:
    """Get the current coordination configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    """Get the configuration manager instance."""
    return ConfigManager()
