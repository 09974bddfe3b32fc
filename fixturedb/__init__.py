"""Test-fixture database provisioner for PostgreSQL and SQLite."""

from __future__ import annotations

__version__ = "0.1.0"

from .config import (
    ConnectionConfig,
    EngineProfile,
    ProvisionerSettings,
    RunConfig,
    for_database,
    load_settings,
    parse_url,
    without_database,
)
from .engines import EngineBackend, PostgresBackend, SqliteBackend, build_backend, integrity_disabled
from .errors import IntrospectionError, ProvisioningError, ResetError, SeedError
from .models import DatabaseRegion, FixtureSet, RegionKind, RegionState
from .probe import select_engine
from .provisioner import ProvisionedDatabases, Provisioner, create_provisioner

__all__ = [
    "ConnectionConfig",
    "DatabaseRegion",
    "EngineBackend",
    "EngineProfile",
    "FixtureSet",
    "IntrospectionError",
    "PostgresBackend",
    "ProvisionedDatabases",
    "Provisioner",
    "ProvisionerSettings",
    "ProvisioningError",
    "RegionKind",
    "RegionState",
    "ResetError",
    "RunConfig",
    "SeedError",
    "SqliteBackend",
    "build_backend",
    "create_provisioner",
    "for_database",
    "integrity_disabled",
    "load_settings",
    "parse_url",
    "select_engine",
    "without_database",
]
