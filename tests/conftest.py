"""Shared fakes for tests that exercise the PostgreSQL backend without a server."""

from __future__ import annotations

import re
from typing import Any

import asyncpg
import pytest

_CREATE_TABLE = re.compile(r"CREATE\s+TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?\"?(\w+)\"?", re.IGNORECASE)
_DATABASE_DDL = re.compile(r"^(DROP|CREATE)\s+DATABASE\s+(IF\s+EXISTS\s+)?\"?([^\"\s;]+)\"?", re.IGNORECASE)


class FakePgServer:
    """In-memory stand-in for a PostgreSQL cluster reached through asyncpg."""

    def __init__(self) -> None:
        self.databases: dict[str, list[str]] = {"postgres": []}
        self.statements: list[tuple[str, str]] = []
        self.connect_calls: list[dict[str, Any]] = []
        self.failures: dict[str, BaseException] = {}
        self.bound_override: str | None = None
        self.connections: list[FakePgConnection] = []

    def fail_on(self, prefix: str, exc: BaseException) -> None:
        self.failures[prefix.upper()] = exc

    async def connect(self, **kwargs: Any) -> FakePgConnection:
        self.connect_calls.append(kwargs)
        database = kwargs.get("database") or kwargs.get("user") or "postgres"
        if database not in self.databases:
            raise asyncpg.exceptions.InvalidCatalogNameError(f'database "{database}" does not exist')
        connection = FakePgConnection(self, database)
        self.connections.append(connection)
        return connection

    def executed_on(self, database: str) -> list[str]:
        return [sql for db, sql in self.statements if db == database]


class FakePgConnection:
    def __init__(self, server: FakePgServer, database: str) -> None:
        self.server = server
        self.database = database
        self.closed = False

    async def execute(self, sql: str) -> str:
        self.server.statements.append((self.database, sql))
        statement = sql.strip()
        for prefix, exc in self.server.failures.items():
            if statement.upper().startswith(prefix):
                raise exc
        match = _DATABASE_DDL.match(statement)
        if match:
            verb, if_exists, name = match.groups()
            if verb.upper() == "DROP":
                if name not in self.server.databases and not if_exists:
                    raise asyncpg.exceptions.InvalidCatalogNameError(f'database "{name}" does not exist')
                self.server.databases.pop(name, None)
                return "DROP DATABASE"
            if name in self.server.databases:
                raise asyncpg.exceptions.DuplicateDatabaseError(f'database "{name}" already exists')
            self.server.databases[name] = []
            return "CREATE DATABASE"
        tables = self.server.databases[self.database]
        for table in _CREATE_TABLE.findall(statement):
            tables.append(table)
        return "OK"

    async def fetchval(self, _sql: str) -> str:
        return self.server.bound_override or self.database

    async def fetch(self, sql: str) -> list[dict[str, str]]:
        assert "pg_tables" in sql
        return [{"tablename": table} for table in self.server.databases[self.database]]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_pg(monkeypatch: pytest.MonkeyPatch) -> FakePgServer:
    server = FakePgServer()
    monkeypatch.setattr("fixturedb.engines.asyncpg.connect", server.connect)
    monkeypatch.setattr("fixturedb.probe.asyncpg.connect", server.connect)
    return server
