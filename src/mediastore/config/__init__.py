"""Configuration loading and validation."""

from mediastore.config.loader import (
    ConfigError,
    ConfigErrorCode,
    expand_env_refs,
    load_config,
    load_config_from_dict,
    resolve_env_var,
)

__all__ = [
    "ConfigError",
    "ConfigErrorCode",
    "expand_env_refs",
    "load_config",
    "load_config_from_dict",
    "resolve_env_var",
]
