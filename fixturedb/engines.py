"""Engine backends implementing reset, seed, integrity and introspection."""

from __future__ import annotations

import logging
import shutil
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Iterable, Protocol, runtime_checkable

import aiosqlite
import asyncpg

from .config import ConnectionConfig, EngineProfile, RunConfig, without_database
from .errors import IntrospectionError, ProvisioningError, ResetError, SeedError
from .models import DatabaseRegion, FixtureSet, RegionState

LOG = logging.getLogger(__name__)

SQLITE_SEQUENCE_TABLE = "sqlite_sequence"
DEFAULT_MIGRATION_TABLE = "_evolutions"


@runtime_checkable
class EngineBackend(Protocol):
    """Capability interface shared by the client-server and embedded engines."""

    profile: EngineProfile

    async def reset_database(self, region: DatabaseRegion) -> None:
        """Recreate the region empty and bind a fresh handle to it."""

    async def seed(self, region: DatabaseRegion) -> None:
        """Load the reference dataset into a just-reset region."""

    async def set_integrity(self, region: DatabaseRegion, enabled: bool) -> None:
        """Toggle foreign-key enforcement on the region's handle."""

    async def list_tables(self, region: DatabaseRegion) -> tuple[str, ...]:
        """Return user tables, hiding bookkeeping tables."""

    async def release(self, region: DatabaseRegion) -> None:
        """Close the region's handle if one is open."""


class _BaseBackend:
    profile: EngineProfile

    def __init__(self, fixtures: FixtureSet, *, migration_table: str = DEFAULT_MIGRATION_TABLE) -> None:
        self._fixtures = fixtures
        self._hidden_tables = frozenset({SQLITE_SEQUENCE_TABLE, migration_table})

    @property
    def fixtures(self) -> FixtureSet:
        return self._fixtures

    async def release(self, region: DatabaseRegion) -> None:
        connection, region.connection = region.connection, None
        if connection is not None:
            await _close_quietly(connection)

    def _visible(self, names: Iterable[str]) -> tuple[str, ...]:
        return tuple(name for name in names if name not in self._hidden_tables)

    async def reset_database(self, region: DatabaseRegion) -> None:
        await self.release(region)
        region.state = RegionState.PENDING
        try:
            await self._recreate(region)
        except ResetError:
            region.state = RegionState.FAILED
            raise
        except Exception as exc:
            region.state = RegionState.FAILED
            raise ResetError(f"Failed to reset database '{region.name}': {exc}") from exc
        region.state = RegionState.EMPTY
        LOG.info("Database reset", extra={"database": region.name, "engine": self.profile.value})

    async def seed(self, region: DatabaseRegion) -> None:
        if region.state is not RegionState.EMPTY or not region.is_open:
            raise SeedError(
                f"Database '{region.name}' must be freshly reset before seeding (state: {region.state.value})."
            )
        try:
            await self._load(region)
        except SeedError:
            region.state = RegionState.FAILED
            raise
        except Exception as exc:
            region.state = RegionState.FAILED
            raise SeedError(f"Failed to seed database '{region.name}': {exc}") from exc
        region.state = RegionState.SEEDED
        LOG.info("Database seeded", extra={"database": region.name, "engine": self.profile.value})

    async def _recreate(self, region: DatabaseRegion) -> None:
        raise NotImplementedError

    async def _load(self, region: DatabaseRegion) -> None:
        raise NotImplementedError


class PostgresBackend(_BaseBackend):
    """Client-server engine driven through asyncpg."""

    profile = EngineProfile.CLIENT_SERVER

    _TABLES_QUERY = """
        SELECT tablename
        FROM pg_catalog.pg_tables
        WHERE schemaname = current_schema()
    """

    def __init__(
        self,
        fixtures: FixtureSet,
        *,
        migration_table: str = DEFAULT_MIGRATION_TABLE,
        connect_timeout: float = 5.0,
    ) -> None:
        super().__init__(fixtures, migration_table=migration_table)
        self._connect_timeout = connect_timeout

    async def set_integrity(self, region: DatabaseRegion, enabled: bool) -> None:
        role = "origin" if enabled else "replica"
        await _require_connection(region).execute(f"SET session_replication_role = {role}")

    async def list_tables(self, region: DatabaseRegion) -> tuple[str, ...]:
        connection = _require_connection(region)
        try:
            rows = await connection.fetch(self._TABLES_QUERY)
        except Exception as exc:
            raise IntrospectionError(f"Failed to list tables of '{region.name}': {exc}") from exc
        return self._visible(str(row["tablename"]) for row in rows)

    async def _recreate(self, region: DatabaseRegion) -> None:
        identifier = quote_identifier(region.name)
        admin = await self._connect(without_database(region.config))
        try:
            await admin.execute(f"DROP DATABASE IF EXISTS {identifier}")
            await admin.execute(f"CREATE DATABASE {identifier}")
        finally:
            await _close_quietly(admin)

        region.connection = await self._connect(region.config)
        bound = await region.connection.fetchval("SELECT current_database()")
        if bound != region.name:
            raise ResetError(f"Connection bound to '{bound}' instead of '{region.name}'.")

    async def _load(self, region: DatabaseRegion) -> None:
        if not region.config.multi_statements:
            raise SeedError(f"Database '{region.name}' is not configured for multi-statement scripts.")
        connection = _require_connection(region)
        for path in self._fixtures.scripts:
            # Without arguments asyncpg sends the whole script as one simple query.
            await connection.execute(path.read_text(encoding="utf-8"))
            LOG.debug("Executed fixture script", extra={"database": region.name, "script": path.name})

    async def _connect(self, config: ConnectionConfig) -> Any:
        return await asyncpg.connect(**config.connect_kwargs(), timeout=self._connect_timeout)


class SqliteBackend(_BaseBackend):
    """Embedded file-backed engine driven through aiosqlite."""

    profile = EngineProfile.EMBEDDED

    _TABLES_QUERY = "SELECT name FROM sqlite_master WHERE type = 'table'"
    _SIDECAR_SUFFIXES = ("-journal", "-wal", "-shm")

    async def set_integrity(self, region: DatabaseRegion, enabled: bool) -> None:
        connection = _require_connection(region)
        # The pragma is ignored inside an open transaction.
        await connection.commit()
        await connection.execute(f"PRAGMA foreign_keys = {'ON' if enabled else 'OFF'}")

    async def list_tables(self, region: DatabaseRegion) -> tuple[str, ...]:
        connection = _require_connection(region)
        try:
            async with connection.execute(self._TABLES_QUERY) as cursor:
                rows = await cursor.fetchall()
        except Exception as exc:
            raise IntrospectionError(f"Failed to list tables of '{region.name}': {exc}") from exc
        return self._visible(str(row[0]) for row in rows)

    async def open(self, path: Path) -> aiosqlite.Connection:
        """Open a handle with foreign-key enforcement switched on."""

        connection = await aiosqlite.connect(path)
        await connection.execute("PRAGMA foreign_keys = ON")
        return connection

    async def _recreate(self, region: DatabaseRegion) -> None:
        path = _region_file(region)
        path.parent.mkdir(parents=True, exist_ok=True)
        for candidate in (path, *(path.with_name(path.name + suffix) for suffix in self._SIDECAR_SUFFIXES)):
            candidate.unlink(missing_ok=True)
        region.connection = await self.open(path)

    async def _load(self, region: DatabaseRegion) -> None:
        path = _region_file(region)
        await self.release(region)
        shutil.copyfile(self._fixtures.snapshot, path)
        region.connection = await self.open(path)


@asynccontextmanager
async def integrity_disabled(backend: EngineBackend, region: DatabaseRegion) -> AsyncIterator[DatabaseRegion]:
    """Switch foreign-key enforcement off for a bulk load and always restore it."""

    await backend.set_integrity(region, False)
    try:
        yield region
    finally:
        await backend.set_integrity(region, True)


def build_backend(run: RunConfig) -> EngineBackend:
    """Instantiate the backend for the profile chosen at the start of the run."""

    settings = run.settings
    fixtures = FixtureSet.from_directory(settings.fixtures_dir)
    if run.profile is EngineProfile.CLIENT_SERVER:
        return PostgresBackend(
            fixtures,
            migration_table=settings.migration_table,
            connect_timeout=settings.connect_timeout,
        )
    return SqliteBackend(fixtures, migration_table=settings.migration_table)


def quote_identifier(name: str) -> str:
    """Double-quote a database name for DATABASE-level DDL."""

    if not name:
        raise ValueError("Database name must not be empty.")
    return '"' + name.replace('"', '""') + '"'


def _require_connection(region: DatabaseRegion) -> Any:
    if region.connection is None:
        raise ProvisioningError(f"Database '{region.name}' has no open connection.")
    return region.connection


def _region_file(region: DatabaseRegion) -> Path:
    if region.config.filename is None:
        raise ResetError(f"Database '{region.name}' has no backing file configured.")
    return Path(region.config.filename)


async def _close_quietly(connection: Any) -> None:
    try:
        await connection.close()
    except Exception:  # pragma: no cover - best effort cleanup
        LOG.debug("Ignoring error while closing connection", exc_info=True)


__all__ = [
    "EngineBackend",
    "PostgresBackend",
    "SqliteBackend",
    "build_backend",
    "integrity_disabled",
]
