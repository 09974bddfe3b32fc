"""Connection config builders and provisioner settings."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping
from urllib.parse import parse_qs, quote, unquote, urlsplit

import tomllib

from pydantic import BaseModel, ConfigDict, Field

CONFIG_FILE = Path("fixturedb.toml")
DEFAULT_FIXTURES_DIR = Path(__file__).resolve().parent / "data" / "sakila"

_ENV_KEYS: Mapping[str, str] = {
    "user": "DB_USER",
    "password": "DB_PASSWORD",
    "host": "DB_HOST",
    "port": "DB_PORT",
    "database_url": "DATABASE_URL",
    "engine": "FIXTUREDB_ENGINE",
    "work_dir": "FIXTUREDB_WORK_DIR",
    "fixtures_dir": "FIXTUREDB_FIXTURES_DIR",
    "maintenance_database": "FIXTUREDB_MAINTENANCE_DB",
}


class EngineProfile(str, Enum):
    """Capability class of the engine backing a run."""

    CLIENT_SERVER = "postgres"
    EMBEDDED = "sqlite"


class ConnectionConfig(BaseModel):
    """Immutable connection descriptor for either engine profile."""

    model_config = ConfigDict(frozen=True)

    engine: EngineProfile
    user: str | None = None
    password: str | None = None
    host: str | None = None
    port: int | None = None
    database: str | None = None
    filename: Path | None = None
    multi_statements: bool = False
    maintenance_database: str = "postgres"

    def url(self) -> str:
        """Render the config using the `<engine>://user:password@host:port[/db]` convention."""

        if self.engine is EngineProfile.EMBEDDED:
            return f"sqlite:///{self.filename}" if self.filename else "sqlite://"
        auth = ""
        if self.user:
            auth = quote(self.user, safe="")
            if self.password is not None:
                auth += ":" + quote(self.password, safe="")
            auth += "@"
        netloc = f"{auth}{self.host or 'localhost'}"
        if self.port is not None:
            netloc += f":{self.port}"
        path = f"/{self.database}" if self.database else ""
        return f"postgresql://{netloc}{path}"

    def connect_kwargs(self) -> dict[str, object]:
        """Keyword arguments accepted by `asyncpg.connect`.

        The no-database projection binds the maintenance database, the one
        every server keeps for DATABASE-level DDL.
        """

        kwargs: dict[str, object] = {"host": self.host or "localhost"}
        if self.port is not None:
            kwargs["port"] = self.port
        if self.user:
            kwargs["user"] = self.user
        if self.password is not None:
            kwargs["password"] = self.password
        # Without a database asyncpg falls back to one named after the user.
        kwargs["database"] = self.database or self.maintenance_database
        return kwargs


def without_database(base: ConnectionConfig) -> ConnectionConfig:
    """Projection used to issue DATABASE-level DDL."""

    return base.model_copy(update={"database": None})


def for_database(
    base: ConnectionConfig,
    name: str,
    *,
    filename: Path | str | None = None,
    multi_statements: bool | None = None,
) -> ConnectionConfig:
    """Projection bound to the named database (and backing file for SQLite)."""

    update: dict[str, object] = {"database": name}
    if filename is not None:
        update["filename"] = Path(filename)
    if multi_statements is not None:
        update["multi_statements"] = multi_statements
    return base.model_copy(update=update)


def parse_url(url: str) -> ConnectionConfig:
    """Parse a `postgresql://` or `sqlite:///` URL into a config."""

    parts = urlsplit(url)
    scheme = parts.scheme.split("+", 1)[0].lower()
    if scheme in {"sqlite", "sqlite3"}:
        query = parse_qs(parts.query)
        raw_path = query["database"][0] if "database" in query else parts.path[1:]
        filename = Path(raw_path) if raw_path else None
        return ConnectionConfig(
            engine=EngineProfile.EMBEDDED,
            filename=filename,
            database=filename.stem if filename else None,
        )
    if scheme in {"postgres", "postgresql"}:
        return ConnectionConfig(
            engine=EngineProfile.CLIENT_SERVER,
            user=unquote(parts.username) if parts.username else None,
            password=unquote(parts.password) if parts.password is not None else None,
            host=parts.hostname,
            port=parts.port,
            database=parts.path.lstrip("/") or None,
        )
    raise ValueError(f"Unsupported database URL scheme: {parts.scheme!r}")


class ProvisionerSettings(BaseModel):
    """Run-wide defaults, overridable from fixturedb.toml and the environment."""

    user: str = "postgres"
    password: str = "password"
    host: str = "localhost"
    port: int = 5432
    database_url: str | None = None
    engine: EngineProfile | None = None
    maintenance_database: str = "postgres"
    meta_database: str = "test_meta"
    fixture_database: str = "test_sakila"
    migration_table: str = "_evolutions"
    work_dir: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()) / "fixturedb")
    fixtures_dir: Path = DEFAULT_FIXTURES_DIR
    connect_timeout: float = 5.0

    def server_config(self) -> ConnectionConfig:
        """Client-server defaults without a database, as used by the probe."""

        url_config = self.url_config()
        if url_config is not None:
            return without_database(url_config)
        return ConnectionConfig(
            engine=EngineProfile.CLIENT_SERVER,
            user=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            maintenance_database=self.maintenance_database,
        )

    def url_config(self) -> ConnectionConfig | None:
        """Client-server config parsed from DATABASE_URL, if one is set."""

        if not self.database_url:
            return None
        config = _server_url_config(self.database_url)
        return config.model_copy(update={"maintenance_database": self.maintenance_database})

    def with_engine(self, engine: EngineProfile | None) -> ProvisionerSettings:
        """Return a copy with the engine choice pinned (or reset to probing)."""

        return self.model_copy(update={"engine": engine})


@dataclass(frozen=True, slots=True)
class RunConfig:
    """Selection made once per run and shared read-only by every component."""

    profile: EngineProfile
    base: ConnectionConfig
    settings: ProvisionerSettings

    @classmethod
    def build(cls, settings: ProvisionerSettings, profile: EngineProfile) -> RunConfig:
        return cls(profile=profile, base=base_config(settings, profile), settings=settings)

    @property
    def meta_database(self) -> str:
        return self.base.database or self.settings.meta_database


def base_config(settings: ProvisionerSettings, profile: EngineProfile) -> ConnectionConfig:
    """Single source of truth for a run; regions only ever see projections of it."""

    if profile is EngineProfile.EMBEDDED:
        name = settings.meta_database
        return ConnectionConfig(
            engine=EngineProfile.EMBEDDED,
            database=name,
            filename=settings.work_dir / f"{name}.db",
        )
    config = settings.url_config()
    if config is not None:
        if config.database:
            return config
        return for_database(config, settings.meta_database)
    return for_database(settings.server_config(), settings.meta_database)


def load_settings(
    environ: Mapping[str, str] | None = None,
    config_file: Path | str | None = None,
) -> ProvisionerSettings:
    """Build settings from fixturedb.toml overlaid with environment variables."""

    env = os.environ if environ is None else environ
    path = Path(config_file or env.get("FIXTUREDB_CONFIG") or CONFIG_FILE)
    try:
        data = _read_config_file(path)
    except (OSError, tomllib.TOMLDecodeError):
        data = {}

    for field_name, env_name in _ENV_KEYS.items():
        value = env.get(env_name)
        if value:
            data[field_name] = value
    if data.get("engine") == "auto":
        data.pop("engine")
    return ProvisionerSettings(**data)


def _read_config_file(path: Path) -> dict[str, object]:
    with path.open("rb") as handle:
        raw = tomllib.load(handle)
    section = raw.get("fixturedb", raw)
    if not isinstance(section, dict):
        return {}
    return {key: value for key, value in section.items() if key in ProvisionerSettings.model_fields}


def _server_url_config(url: str) -> ConnectionConfig:
    config = parse_url(url)
    if config.engine is not EngineProfile.CLIENT_SERVER:
        raise ValueError(f"DATABASE_URL must point at a PostgreSQL server, got {url!r}")
    return config


__all__ = [
    "CONFIG_FILE",
    "ConnectionConfig",
    "DEFAULT_FIXTURES_DIR",
    "EngineProfile",
    "ProvisionerSettings",
    "RunConfig",
    "base_config",
    "for_database",
    "load_settings",
    "parse_url",
    "without_database",
]
