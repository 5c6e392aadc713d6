"""
Configuration for the ingress controller.

Settings come from, in increasing precedence: defaults, environment
variables, an optional YAML file, and command-line overrides.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from panacea.config.logging import StructuredLogger, get_logger, setup_logging, verbosity_to_level
from panacea.models.ingress import EmptyClassPolicy
from panacea.models.route import ProxyTransportConfig


class ControllerSettings(BaseSettings):
    """Controller settings; environment names are the upper-cased field names."""

    model_config = SettingsConfigDict(env_nested_delimiter="__", extra="ignore")

    ingress_class: str = Field(
        default="panacea-ingress-class",
        description="IngressClass name to reconcile"
    )
    listen: str = Field(
        default="0.0.0.0:80",
        description="Address to listen on for HTTP requests"
    )
    kubeconfig: str = Field(
        default="",
        description="Path to a kubeconfig. Only required if out-of-cluster"
    )
    resync_period: int = Field(
        default=30,
        ge=0,
        description="Resync period in seconds, 0 disables periodic resync"
    )
    namespace: str = Field(
        default="",
        description="Namespace to watch for Ingress resources. Empty watches all namespaces"
    )
    verbosity: int = Field(
        default=0,
        ge=0,
        description="Logging verbosity level"
    )
    log_format: str = Field(
        default="text",
        pattern="^(text|json)$",
        description="Log output format"
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Also write logs to this file, rotated at 10MB"
    )
    empty_class_policy: EmptyClassPolicy = Field(
        default=EmptyClassPolicy.NONE,
        description="Ingresses selected when the class filter is empty"
    )
    cluster_query_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Deadline in seconds for list and lookup calls of one pass"
    )
    cache_sync_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Seconds to wait for the initial ingress list"
    )
    reconcile_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Deadline in seconds for building the routing table of one pass"
    )
    access_log: bool = Field(
        default=False,
        description="Log one record per proxied request"
    )
    proxy: ProxyTransportConfig = Field(default_factory=ProxyTransportConfig)


class ConfigLoader:
    """Loads settings from a YAML file with environment variable substitution."""

    def __init__(self, config_file: Optional[Path] = None):
        """Initialize the configuration loader.

        Args:
            config_file: Optional YAML file with settings keyed by field name.
        """
        self.config_file = Path(config_file) if config_file else None

    def load(self, overrides: Optional[Dict[str, Any]] = None) -> ControllerSettings:
        """Load and validate settings.

        Args:
            overrides: Values that take precedence over the file, typically
                       from the command line. None values are ignored.

        Returns:
            Validated controller settings.
        """
        config_data: Dict[str, Any] = {}
        if self.config_file is not None:
            config_data = self._substitute_env_vars(self._load_yaml_file(self.config_file))

        if overrides:
            explicit = {key: value for key, value in overrides.items() if value is not None}
            config_data = self._merge_configs(config_data, explicit)

        return ControllerSettings(**config_data)

    def _load_yaml_file(self, file_path: Path) -> Dict[str, Any]:
        """Load and parse a YAML file."""
        with open(file_path, 'r') as file:
            data = yaml.safe_load(file) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {file_path} must contain a mapping")
        return data

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge configuration dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _substitute_env_vars(self, config: Any) -> Any:
        """Substitute environment variables in configuration values."""
        if isinstance(config, dict):
            return {key: self._substitute_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_string_env_vars(config)
        else:
            return config

    def _substitute_string_env_vars(self, value: str) -> str:
        """Substitute ``${VAR}`` and ``${VAR:default}`` references."""
        def replace_env_var(match):
            var_spec = match.group(1)
            if ':' in var_spec:
                var_name, default_value = var_spec.split(':', 1)
                return os.getenv(var_name, default_value)
            else:
                return os.getenv(var_spec, match.group(0))

        return re.sub(r'\$\{([^}]+)\}', replace_env_var, value)


def load_settings(config_file: Optional[Path] = None, **overrides: Any) -> ControllerSettings:
    """Load settings from the environment, an optional file and overrides."""
    return ConfigLoader(config_file).load(overrides)


__all__ = [
    "ControllerSettings",
    "ConfigLoader",
    "load_settings",
    "get_logger",
    "setup_logging",
    "verbosity_to_level",
    "StructuredLogger",
]
