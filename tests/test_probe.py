"""Tests for the reachability probe and engine selection."""

from __future__ import annotations

import inspect
from typing import Any

import pytest

import fixturedb
from fixturedb.config import EngineProfile, ProvisionerSettings
from fixturedb.probe import probe, select_engine


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.mark.anyio
async def test_probe_reports_reachable_server(fake_pg) -> None:  # type: ignore[no-untyped-def]
    settings = ProvisionerSettings()

    assert await probe(settings.server_config()) is True
    assert fake_pg.connections[0].closed is True
    assert fake_pg.connect_calls[0]["database"] == "postgres"


def test_probe_module_is_reachable_from_package() -> None:
    assert inspect.ismodule(fixturedb.probe)
    assert fixturedb.probe.probe is probe


@pytest.mark.anyio
async def test_probe_with_non_default_user_binds_maintenance_database(fake_pg) -> None:  # type: ignore[no-untyped-def]
    settings = ProvisionerSettings(user="ci", password="ci-pass")

    assert await probe(settings.server_config()) is True
    assert fake_pg.connect_calls[0]["user"] == "ci"
    assert fake_pg.connect_calls[0]["database"] == "postgres"


@pytest.mark.anyio
async def test_probe_swallows_connection_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _refused(**kwargs: Any) -> None:
        raise ConnectionRefusedError("connection refused")

    monkeypatch.setattr("fixturedb.probe.asyncpg.connect", _refused)

    assert await probe(ProvisionerSettings().server_config()) is False


@pytest.mark.anyio
async def test_probe_swallows_timeouts(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _slow(**kwargs: Any) -> None:
        raise TimeoutError

    monkeypatch.setattr("fixturedb.probe.asyncpg.connect", _slow)

    assert await probe(ProvisionerSettings().server_config(), timeout=0.1) is False


@pytest.mark.anyio
async def test_probe_treats_invalid_port_as_unreachable() -> None:
    settings = ProvisionerSettings(host="127.0.0.1", port=1, connect_timeout=2.0)

    assert await probe(settings.server_config(), timeout=settings.connect_timeout) is False


@pytest.mark.anyio
async def test_select_engine_prefers_client_server(fake_pg) -> None:  # type: ignore[no-untyped-def]
    assert await select_engine(ProvisionerSettings()) is EngineProfile.CLIENT_SERVER


@pytest.mark.anyio
async def test_select_engine_picks_reachable_server_for_any_user(fake_pg) -> None:  # type: ignore[no-untyped-def]
    fake_pg.databases["maintenance"] = []
    settings = ProvisionerSettings(user="ci", maintenance_database="maintenance")

    assert await select_engine(settings) is EngineProfile.CLIENT_SERVER
    assert fake_pg.connect_calls == [
        {
            "host": "localhost",
            "port": 5432,
            "user": "ci",
            "password": "password",
            "database": "maintenance",
            "timeout": 5.0,
        }
    ]


@pytest.mark.anyio
async def test_select_engine_falls_back_to_embedded(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, Any]] = []

    async def _refused(**kwargs: Any) -> None:
        calls.append(kwargs)
        raise OSError("unreachable")

    monkeypatch.setattr("fixturedb.probe.asyncpg.connect", _refused)

    assert await select_engine(ProvisionerSettings(port=1)) is EngineProfile.EMBEDDED
    assert len(calls) == 1


@pytest.mark.anyio
async def test_select_engine_skips_probe_when_pinned(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _unexpected(**kwargs: Any) -> None:
        raise AssertionError("should not probe")

    monkeypatch.setattr("fixturedb.probe.asyncpg.connect", _unexpected)

    settings = ProvisionerSettings(engine=EngineProfile.EMBEDDED)

    assert await select_engine(settings) is EngineProfile.EMBEDDED
