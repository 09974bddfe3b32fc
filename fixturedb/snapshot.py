"""Rebuild the embedded snapshot from the fixture SQL scripts."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from .config import ConnectionConfig, EngineProfile
from .engines import SqliteBackend, integrity_disabled
from .errors import SeedError
from .models import DatabaseRegion, FixtureSet, RegionKind

LOG = logging.getLogger(__name__)


async def build_snapshot(fixtures: FixtureSet, target: Path | str | None = None) -> Path:
    """Write a SQLite snapshot equivalent to the schema and data scripts.

    The scripts are written in the subset of SQL shared by PostgreSQL and
    SQLite and are loaded with foreign-key checks off. The result is built
    next to `target` and moved into place once complete, so a failed build
    never leaves a partial snapshot behind.
    """

    destination = Path(target) if target is not None else fixtures.snapshot
    scratch = destination.with_name(destination.name + ".building")
    backend = SqliteBackend(fixtures)
    region = DatabaseRegion(
        kind=RegionKind.FIXTURE,
        name=destination.stem,
        config=ConnectionConfig(engine=EngineProfile.EMBEDDED, database=destination.stem, filename=scratch),
    )
    await backend.reset_database(region)
    try:
        async with integrity_disabled(backend, region):
            for path in fixtures.scripts:
                await region.connection.executescript(path.read_text(encoding="utf-8"))
            await region.connection.commit()
    except Exception as exc:
        await backend.release(region)
        scratch.unlink(missing_ok=True)
        raise SeedError(f"Failed to build snapshot '{destination}': {exc}") from exc
    await backend.release(region)
    os.replace(scratch, destination)
    LOG.info("Snapshot written", extra={"snapshot": str(destination)})
    return destination


__all__ = ["build_snapshot"]
