"""Command line entry point: provision both regions or rebuild the snapshot."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .config import EngineProfile, ProvisionerSettings, load_settings
from .errors import ProvisioningError
from .models import FixtureSet
from .provisioner import create_provisioner
from .snapshot import build_snapshot


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="fixturedb", description=__doc__)
    parser.add_argument(
        "--engine",
        choices=("auto", *(profile.value for profile in EngineProfile)),
        default=None,
        help="Skip probing and use this engine (default: probe PostgreSQL, fall back to SQLite)",
    )
    parser.add_argument("--work-dir", type=Path, help="Directory for SQLite working files")
    parser.add_argument("--fixtures-dir", type=Path, help="Directory holding sakila.db, schema.sql and data.sql")
    parser.add_argument(
        "--build-snapshot",
        nargs="?",
        const="",
        metavar="PATH",
        help="Rebuild the SQLite snapshot from the SQL scripts (default: in the fixtures dir)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace, base: ProvisionerSettings) -> ProvisionerSettings:
    updates: dict[str, object] = {}
    if args.work_dir is not None:
        updates["work_dir"] = args.work_dir
    if args.fixtures_dir is not None:
        updates["fixtures_dir"] = args.fixtures_dir
    settings = base.model_copy(update=updates)
    if args.engine is not None:
        settings = settings.with_engine(None if args.engine == "auto" else EngineProfile(args.engine))
    return settings


async def provision(settings: ProvisionerSettings) -> int:
    async with await create_provisioner(settings) as provisioner:
        databases = await provisioner.provision()
        print(f"Engine: {databases.profile.value}")
        for region in (databases.meta, databases.fixture):
            tables = await provisioner.list_tables(region.kind)
            print(f"{region.kind.value}: {region.name} ({len(tables)} tables)")
            for table in tables:
                print(f"  {table}")
    return 0


async def rebuild_snapshot(settings: ProvisionerSettings, target: Path | None) -> int:
    fixtures = FixtureSet.from_directory(settings.fixtures_dir)
    written = await build_snapshot(fixtures, target)
    print(f"Snapshot written to {written}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = settings_from_args(args, load_settings())
    try:
        if args.build_snapshot is not None:
            return asyncio.run(rebuild_snapshot(settings, Path(args.build_snapshot) if args.build_snapshot else None))
        return asyncio.run(provision(settings))
    except ProvisioningError as exc:
        print(f"Provisioning failed: {exc}", file=sys.stderr)
        return 1


__all__ = ["main", "parse_args", "settings_from_args"]
