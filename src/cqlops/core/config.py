"""Connection settings for the store.

Settings come from an INI profile file (``~/.cqlopscfg`` unless
``CQLOPS_CONFIG_FILE`` points elsewhere) and are then overridden by
``CQLOPS_*`` environment variables (``CQLOPS_NODES``, ``CQLOPS_KEYSPACE``, ...):

    [DEFAULT]
    nodes = 10.0.0.1, 10.0.0.2
    port = 9042
    keyspace = app
    datacenter = dc1
    replication = dc1:3, dc2:2
    durable_writes = true

    [staging]
    nodes = staging-db
    keyspace = app_staging

Precedence (first wins): keyword arguments > environment > profile file.
"""

from __future__ import annotations

import configparser
import os
from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from cqlops.core.errors import ConfigurationError
from cqlops.core.types import IDENTIFIER_RE

DEFAULT_CONFIG_PATH = Path("~/.cqlopscfg")
DEFAULT_PROFILE = "DEFAULT"
DEFAULT_DATACENTER = "datacenter1"

ENV_CONFIG_FILE = "CQLOPS_CONFIG_FILE"


class StoreConfig(BaseSettings):
    """Everything needed to open a session and create the keyspace."""

    model_config = SettingsConfigDict(
        env_prefix="CQLOPS_",
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
    )

    keyspace: str
    nodes: Annotated[tuple[str, ...], NoDecode] = ("127.0.0.1",)
    port: int = Field(default=9042, ge=1, le=65535)
    username: str | None = None
    password: str | None = None
    datacenter: str | None = None
    replication: Annotated[dict[str, int], NoDecode] = Field(default_factory=dict)
    durable_writes: bool = False

    @field_validator("keyspace", mode="before")
    @classmethod
    def _check_keyspace(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            if not IDENTIFIER_RE.match(value):
                raise ValueError(f"must match {IDENTIFIER_RE.pattern}")
        return value

    @field_validator("nodes", mode="before")
    @classmethod
    def _split_nodes(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = tuple(n.strip() for n in value.split(",") if n.strip())
        if not value:
            raise ValueError("at least one contact node is required")
        return value

    @field_validator("replication", mode="before")
    @classmethod
    def _split_replication(cls, value: Any) -> Any:
        """``"dc1:3, dc2:2"`` -> ``{"dc1": "3", "dc2": "2"}``; factors coerce to int."""
        if not isinstance(value, str):
            return value
        replication: dict[str, str] = {}
        for entry in value.split(","):
            entry = entry.strip()
            if not entry:
                continue
            dc, sep, factor = entry.partition(":")
            if not sep or not dc.strip():
                raise ValueError(f"expected dc:factor, got {entry!r}")
            replication[dc.strip()] = factor.strip()
        return replication

    @property
    def local_datacenter(self) -> str:
        """Explicit data center, else the first replicated one, else the driver default."""
        if self.datacenter:
            return self.datacenter
        if self.replication:
            return next(iter(self.replication))
        return DEFAULT_DATACENTER

    def redacted(self) -> StoreConfig:
        return self.model_copy(update={"password": "***" if self.password else None})


class _ProfileSource(PydanticBaseSettingsSource):
    """Settings source over one section of the INI profile file."""

    def __init__(self, settings_cls: type[BaseSettings], values: dict[str, str]) -> None:
        super().__init__(settings_cls)
        self._values = values

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:  # noqa: ARG002
        val = self._values.get(field_name)
        return val, field_name, val is not None

    def __call__(self) -> dict[str, Any]:
        return {k: v for k, v in self._values.items() if k in self.settings_cls.model_fields}


def config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path).expanduser()
    return Path(os.environ.get(ENV_CONFIG_FILE) or DEFAULT_CONFIG_PATH).expanduser()


def _read_profile(path: Path, profile: str | None) -> dict[str, str]:
    if not path.exists():
        if profile and profile != DEFAULT_PROFILE:
            raise ConfigurationError(f"Profile {profile!r} requested but {path} does not exist")
        return {}

    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read(path)
    except configparser.Error as exc:
        raise ConfigurationError(f"Could not parse {path}: {exc}") from exc

    name = profile or DEFAULT_PROFILE
    if name != DEFAULT_PROFILE and not parser.has_section(name):
        raise ConfigurationError(f"Profile {name!r} not found in {path}")
    return dict(parser[name])


def _make_settings_class(profile_values: dict[str, str]) -> type[StoreConfig]:
    class ProfileStoreConfig(StoreConfig):
        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            return (init_settings, env_settings, _ProfileSource(settings_cls, profile_values))

    return ProfileStoreConfig


def _config_error(exc: ValidationError) -> ConfigurationError:
    err = exc.errors()[0]
    field = ".".join(str(loc) for loc in err["loc"])
    if err["type"] == "missing" and field == "keyspace":
        return ConfigurationError(
            "No keyspace configured, set it in the profile or via CQLOPS_KEYSPACE"
        )
    return ConfigurationError(f"Invalid {field}: {err.get('input')!r} ({err['msg']})")


def load_config(
    profile: str | None = None,
    path: str | Path | None = None,
    **overrides: Any,
) -> StoreConfig:
    """
    Resolve the store configuration for a profile.

    Args:
        profile: Section of the config file; ``DEFAULT`` when omitted.
        path: Config file; defaults to ``CQLOPS_CONFIG_FILE`` or ``~/.cqlopscfg``.
        **overrides: Field values that win over the environment and the file.

    Raises:
        ConfigurationError: When the file, the profile or a value is invalid.
    """
    values = _read_profile(config_path(path), profile)
    settings_cls = _make_settings_class(values)
    try:
        return settings_cls(**overrides)
    except ValidationError as exc:
        raise _config_error(exc) from exc
