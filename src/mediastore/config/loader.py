"""Configuration loading and validation."""

from __future__ import annotations

import logging
import os
import re
import stat
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from mediastore.errors import StorageError
from mediastore.models.config import AppConfig

logger = logging.getLogger(__name__)
_SENSITIVE_MODE_MASK = 0o077
_ENV_REF_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigErrorCode(str, Enum):
    """Stable config error codes for CLI and caller mapping."""

    FILE_NOT_FOUND = "CONFIG_FILE_NOT_FOUND"
    YAML_INVALID = "CONFIG_YAML_INVALID"
    EMPTY_FILE = "CONFIG_EMPTY_FILE"
    ROOT_NOT_MAPPING = "CONFIG_ROOT_NOT_MAPPING"
    VALIDATION_FAILED = "CONFIG_VALIDATION_FAILED"
    PROVIDER_CONFIG_INVALID = "CONFIG_PROVIDER_CONFIG_INVALID"
    ENV_VAR_MISSING = "CONFIG_ENV_VAR_MISSING"
    UNKNOWN = "CONFIG_UNKNOWN"


class ConfigError(Exception):
    """Configuration loading or validation error."""

    def __init__(
        self,
        message: str,
        *,
        code: ConfigErrorCode = ConfigErrorCode.UNKNOWN,
        path: Path | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.path = path
        self.__cause__ = cause


def load_config(path: Path) -> AppConfig:
    """Load and validate configuration from YAML file.

    Args:
        path: Path to YAML config file

    Returns:
        Validated AppConfig instance

    Raises:
        ConfigError: If file not found, YAML invalid, or validation fails
    """
    if not path.exists():
        raise ConfigError(
            f"Config file not found: {path}",
            code=ConfigErrorCode.FILE_NOT_FOUND,
            path=path,
        )
    _warn_if_permissive_config_mode(path)

    try:
        with path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML in {path}: {e}",
            code=ConfigErrorCode.YAML_INVALID,
            path=path,
            cause=e,
        ) from e

    if raw is None:
        raise ConfigError(
            f"Config file is empty: {path}",
            code=ConfigErrorCode.EMPTY_FILE,
            path=path,
        )

    if not isinstance(raw, dict):
        raise ConfigError(
            f"Config must be a YAML mapping, got {type(raw).__name__}",
            code=ConfigErrorCode.ROOT_NOT_MAPPING,
            path=path,
        )

    return _validate(raw, path=path)


def load_config_from_dict(data: dict[str, Any]) -> AppConfig:
    """Load and validate configuration from a dict (useful for testing).

    Raises:
        ConfigError: If validation fails or a referenced env var is unset
    """
    return _validate(data, path=None)


def _validate(raw: dict[str, Any], *, path: Path | None) -> AppConfig:
    expanded = expand_env_refs(raw)
    try:
        return AppConfig.model_validate(expanded)
    except ValidationError as e:
        raise ConfigError(
            format_validation_error(e, path),
            code=ConfigErrorCode.VALIDATION_FAILED,
            path=path,
            cause=e,
        ) from e
    except StorageError as e:
        # Raised by per-type provider config parsing.
        raise ConfigError(
            e.message,
            code=ConfigErrorCode.PROVIDER_CONFIG_INVALID,
            path=path,
            cause=e,
        ) from e


def expand_env_refs(value: Any) -> Any:
    """Replace string values of the exact form ``${NAME}`` with environment values.

    References embedded in longer strings are left as written.

    Raises:
        ConfigError: If a referenced variable is not set
    """
    if isinstance(value, dict):
        return {key: expand_env_refs(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env_refs(item) for item in value]
    if isinstance(value, str):
        match = _ENV_REF_RE.fullmatch(value)
        if match:
            return resolve_env_var(match.group(1))
    return value


def resolve_env_var(env_var_name: str, required: bool = True) -> str | None:
    """Resolve environment variable by name.

    Raises:
        ConfigError: If required and not found
    """
    value = os.environ.get(env_var_name)
    if value is None and required:
        raise ConfigError(
            f"Required environment variable not set: {env_var_name}",
            code=ConfigErrorCode.ENV_VAR_MISSING,
        )
    return value


def format_validation_error(e: ValidationError, path: Path | None = None) -> str:
    """Format Pydantic validation error for human readability.

    Input values are not echoed, since they may hold credentials.
    """
    prefix = f"Config validation failed ({path}):" if path else "Config validation failed:"
    errors = []
    for err in e.errors():
        loc = " -> ".join(str(x) for x in err["loc"])
        msg = err["msg"]
        errors.append(f"  {loc}: {msg}")
    return prefix + "\n" + "\n".join(errors)


def _warn_if_permissive_config_mode(path: Path) -> None:
    """Warn when config file mode exposes secrets to group/other users."""
    if os.name != "posix":
        return
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except OSError:
        return
    if mode & _SENSITIVE_MODE_MASK:
        logger.warning(
            "Config file permissions are too permissive for secret-bearing config: path=%s mode=%04o expected=0600",
            path,
            mode,
        )
