import os
from dataclasses import dataclass, field
from typing import Dict, List, Literal

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - exercised on Python < 3.11
    import tomli as tomllib

import yaml
from pydantic import (
    AnyHttpUrl,
    BaseModel,
    ConfigDict,
    Field,
    PositiveInt,
    ValidationError,
    field_validator,
)

from .errors import ConfigError

CONFIG_ENV = "NOSTREAM_CONFIG"
DEFAULT_CONFIG_PATH = "config.toml"

TRUTHY_VALUES: frozenset[str] = frozenset({"1", "true", "yes", "on"})
FALSY_VALUES: frozenset[str] = frozenset({"0", "false", "no", "off"})


class ProviderFilter(BaseModel):
    mode: Literal["whitelist", "blacklist"]
    models: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("models")
    @classmethod
    def _reject_blank(cls, value: List[str]) -> List[str]:
        if any(not item for item in value):
            raise ValueError("filter model ids must be non-empty strings")
        return value

    @property
    def model_ids(self) -> frozenset[str]:
        return frozenset(self.models)


class ProviderConfig(BaseModel):
    enabled: bool = True
    type: str
    endpoint: AnyHttpUrl
    api_key: str = Field(min_length=1)
    filter: ProviderFilter | None = None

    model_config = ConfigDict(extra="allow")

    @property
    def base_url(self) -> str:
        return str(self.endpoint).rstrip("/")


class AppConfig(BaseModel):
    host: str = "0.0.0.0"
    port: PositiveInt = 3000
    fake_stream_interval: PositiveInt = Field(
        default=500, description="keep-alive interval in milliseconds"
    )
    keys: List[str] = Field(default_factory=list)
    max_retries: PositiveInt = 3

    model_config = ConfigDict(extra="forbid")

    @field_validator("keys")
    @classmethod
    def _reject_blank_keys(cls, value: List[str]) -> List[str]:
        if any(not key for key in value):
            raise ValueError("api keys must be non-empty strings")
        return value

    @property
    def fake_stream_interval_s(self) -> float:
        return self.fake_stream_interval / 1000.0


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warn", "warning", "error"] = "info"

    model_config = ConfigDict(extra="forbid")


class _RootModel(BaseModel):
    app: AppConfig = Field(default_factory=AppConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    providers: Dict[str, ProviderConfig] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


@dataclass
class GatewayConfig:
    app: AppConfig = field(default_factory=AppConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    providers: Dict[str, ProviderConfig] = field(default_factory=dict)
    path: str | None = None

    def provider(self, name: str) -> ProviderConfig | None:
        return self.providers.get(name)

    def enabled_providers(self) -> Dict[str, ProviderConfig]:
        return {name: cfg for name, cfg in self.providers.items() if cfg.enabled}


def env_var_as_bool(name: str, *, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if not normalized:
        return default
    if normalized in TRUTHY_VALUES:
        return True
    if normalized in FALSY_VALUES:
        return False
    return default


def resolve_config_path(explicit: str | None = None) -> str:
    if explicit:
        return explicit
    return os.environ.get(CONFIG_ENV) or DEFAULT_CONFIG_PATH


def _read_raw(path: str) -> object:
    _, suffix = os.path.splitext(path)
    if suffix.lower() in (".yaml", ".yml"):
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    with open(path, "rb") as f:
        return tomllib.load(f)


def parse_config(data: object, *, path: str | None = None) -> GatewayConfig:
    try:
        parsed = _RootModel.model_validate(data)
    except ValidationError as exc:
        problems = []
        for error in exc.errors():
            location = " -> ".join(str(item) for item in error.get("loc", ())) or "<root>"
            problems.append(f"{location}: {error.get('msg', 'invalid value')}")
        raise ConfigError("; ".join(problems)) from exc
    return GatewayConfig(
        app=parsed.app,
        logging=parsed.logging,
        providers=dict(parsed.providers),
        path=path,
    )


def load_config(path: str | None = None) -> GatewayConfig:
    resolved = resolve_config_path(path)
    try:
        raw = _read_raw(resolved)
    except FileNotFoundError as exc:
        raise ConfigError(f"Failed to load config from {resolved}: file not found") from exc
    except (tomllib.TOMLDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to load config from {resolved}: {exc}") from exc
    try:
        return parse_config(raw, path=resolved)
    except ConfigError as exc:
        raise ConfigError(f"Failed to load config from {resolved}: {exc}") from exc
