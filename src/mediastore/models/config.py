"""Configuration models for storage providers and runtime settings."""

from __future__ import annotations

from typing import Any, Literal, TypeAlias, assert_never

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from mediastore.errors import ConfigurationError
from mediastore.models.enums import StorageProviderType, StorageProviderTypeField

DEFAULT_PATH_TEMPLATE = "/{year}/{month}/{filename}"


class _CamelModel(BaseModel):
    """Accepts both camelCase (persisted records) and snake_case field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _BackendConfig(_CamelModel):
    """Backend config: closed shape, unknown fields rejected."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        # Persisted records store unset optionals as "".
        if isinstance(value, str) and not value.strip():
            return None
        return value


def _parse_mode(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("permission mode must be an octal string or integer")
    try:
        mode = int(str(value).strip(), 8)
    except ValueError as exc:
        raise ValueError(f"invalid octal permission mode: {value!r}") from exc
    if not 0 <= mode <= 0o7777:
        raise ValueError(f"permission mode out of range: {value!r}")
    return mode


class LocalConfig(_BackendConfig):
    """Local filesystem storage configuration."""

    root_dir: str
    create_dir_if_not_exists: bool = True
    file_mode: int | None = None
    dir_mode: int | None = None

    @field_validator("file_mode", "dir_mode", mode="before")
    @classmethod
    def _octal_mode(cls, value: Any) -> int | None:
        # "0644" and 644 both mean 0o644.
        return _parse_mode(value)


class S3Config(_BackendConfig):
    """AWS S3 / S3-compatible storage configuration."""

    access_key_id: str = Field(min_length=1)
    secret_access_key: str = Field(min_length=1)
    region: str = Field(min_length=1)
    bucket: str = Field(min_length=1)
    endpoint: str | None = None
    base_path: str | None = None
    force_path_style: bool = False
    acl: str | None = None


class VercelBlobConfig(_BackendConfig):
    """Vercel Blob storage configuration."""

    token: str = Field(min_length=1)
    base_path: str | None = None
    access: Literal["public", "private"] = "public"
    cache_control: str | None = None


class GithubPagesConfig(_BackendConfig):
    """Git repository (GitHub contents API) storage configuration."""

    owner: str = Field(min_length=1)
    repo: str = Field(min_length=1)
    branch: str = Field(default="main", min_length=1)
    token: str = Field(min_length=1)
    base_path: str | None = None
    committer_name: str = "CMS Bot"
    committer_email: str = "cms-bot@example.com"
    api_base_url: str = "https://api.github.com"
    commit_message_template: str | None = None

    @field_validator("committer_name", "committer_email", "api_base_url", "branch", mode="before")
    @classmethod
    def _default_when_unset(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            assert info.field_name is not None
            return cls.model_fields[info.field_name].default
        return value

    @field_validator("api_base_url")
    @classmethod
    def _http_api_base(cls, value: str) -> str:
        if not value.startswith(("https://", "http://")):
            raise ValueError("apiBaseUrl must be an http(s) URL")
        return value.rstrip("/")


class ExternalUrlConfig(_BackendConfig):
    """External URL passthrough has no settings."""


ProviderConfig: TypeAlias = (
    LocalConfig | S3Config | VercelBlobConfig | GithubPagesConfig | ExternalUrlConfig
)


def config_model_for(provider_type: StorageProviderType) -> type[_BackendConfig]:
    """Return the config model for a provider type."""
    match provider_type:
        case StorageProviderType.LOCAL:
            return LocalConfig
        case StorageProviderType.AWS_S3:
            return S3Config
        case StorageProviderType.VERCEL_BLOB:
            return VercelBlobConfig
        case StorageProviderType.GITHUB_PAGES:
            return GithubPagesConfig
        case StorageProviderType.EXTERNAL_URL:
            return ExternalUrlConfig
        case _:
            assert_never(provider_type)


def describe_validation_error(exc: PydanticValidationError) -> str:
    """Summarize a pydantic error by location and message only.

    Input values are left out on purpose: they may be credentials.
    """
    parts = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err["loc"]) or "config"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def parse_provider_config(provider_type: StorageProviderType, raw: Any) -> ProviderConfig:
    """Validate raw backend config against the shape for ``provider_type``.

    Raises:
        ConfigurationError: If required settings are missing or unknown fields are present.
    """
    model = config_model_for(StorageProviderType(provider_type))
    if isinstance(raw, model):
        return raw  # type: ignore[return-value]
    if isinstance(raw, BaseModel):
        raw = raw.model_dump(exclude_unset=True)
    try:
        return model.model_validate(raw or {})  # type: ignore[return-value]
    except PydanticValidationError as exc:
        raise ConfigurationError(
            f"Invalid {provider_type} config: {describe_validation_error(exc)}",
            provider_type=str(provider_type),
        ) from exc


class ProviderFields(_CamelModel):
    """Fields shared by every request addressed at a provider."""

    type: StorageProviderTypeField
    base_url: str = ""
    path_template: str = DEFAULT_PATH_TEMPLATE
    max_file_size: int | None = Field(default=None, gt=0)
    config: ProviderConfig = Field(default_factory=ExternalUrlConfig)

    @model_validator(mode="before")
    @classmethod
    def _typed_config(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        type_value = data.get("type")
        if type_value is None:
            return data
        try:
            provider_type = StorageProviderType(str(type_value).strip().upper())
        except ValueError:
            return data
        merged = dict(data)
        merged["config"] = parse_provider_config(provider_type, data.get("config"))
        for key in ("path_template", "pathTemplate"):
            if key in merged and not merged[key]:
                merged[key] = DEFAULT_PATH_TEMPLATE
        return merged


class StorageProvider(ProviderFields):
    """A configured storage provider, as persisted by the external store."""

    id: str | None = None
    name: str
    is_default: bool = False
    is_active: bool = True


class RemoteFetchConfig(_CamelModel):
    """Limits for fetching attacker-influenced URLs."""

    max_bytes: int = Field(default=20 * 1024 * 1024, gt=0)
    max_redirects: int = Field(default=0, ge=0, le=5)
    https_only: bool = False
    timeout_s: float = Field(default=15.0, gt=0)
    dns_timeout_s: float = Field(default=5.0, gt=0)
    user_agent: str = "mediastore/0.1 (+remote-fetch)"


class StorageSettings(_CamelModel):
    """Runtime settings for backend calls."""

    request_timeout_s: float = Field(default=30.0, gt=0)
    max_unique_attempts: int = Field(default=10, ge=1, le=50)


class SyncSettings(_CamelModel):
    """Media sync (remote storage -> local directory) settings."""

    target_dir: str = "./public"
    concurrency: int = Field(default=16, ge=1, le=64)
    protected_files: list[str] = Field(default_factory=list)
    prune_stale: bool = True


class AppConfig(_CamelModel):
    """Root configuration loaded from YAML."""

    providers: list[StorageProvider] = Field(default_factory=list)
    fetch: RemoteFetchConfig = Field(default_factory=RemoteFetchConfig)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)

    @model_validator(mode="after")
    def _validate_providers(self) -> AppConfig:
        names = [provider.name for provider in self.providers]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate provider names: {', '.join(duplicates)}")
        defaults = [provider.name for provider in self.providers if provider.is_default]
        if len(defaults) > 1:
            raise ValueError(f"only one provider may be default, got: {', '.join(defaults)}")
        return self

    def get_provider(self, name: str | None = None) -> StorageProvider:
        """Return the named provider, or the default one when name is None."""
        if name is None:
            for provider in self.providers:
                if provider.is_default:
                    return provider
            raise KeyError("No default storage provider configured")
        for provider in self.providers:
            if provider.name == name:
                return provider
        available = ", ".join(sorted(p.name for p in self.providers))
        raise KeyError(f"Unknown storage provider: {name!r}. Available: {available}")
