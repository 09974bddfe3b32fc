"""Run-level orchestration: select once, then reset and seed each region."""

from __future__ import annotations

from dataclasses import dataclass

from .config import ConnectionConfig, EngineProfile, ProvisionerSettings, RunConfig, for_database, load_settings
from .engines import EngineBackend, build_backend
from .models import DatabaseRegion, RegionKind
from .probe import select_engine


@dataclass(frozen=True, slots=True)
class ProvisionedDatabases:
    """Ready-to-query regions handed to the consuming test suite."""

    profile: EngineProfile
    meta: DatabaseRegion
    fixture: DatabaseRegion


class Provisioner:
    """Owns the meta and fixture regions for one run."""

    def __init__(self, run: RunConfig, backend: EngineBackend | None = None) -> None:
        self._run = run
        self._backend = backend or build_backend(run)
        if self._backend.profile is not run.profile:
            raise ValueError(
                f"Backend for '{self._backend.profile.value}' cannot serve a '{run.profile.value}' run."
            )
        self._regions: dict[RegionKind, DatabaseRegion] = {}

    @property
    def run(self) -> RunConfig:
        return self._run

    @property
    def profile(self) -> EngineProfile:
        return self._run.profile

    @property
    def backend(self) -> EngineBackend:
        return self._backend

    @property
    def regions(self) -> tuple[DatabaseRegion, ...]:
        return tuple(self._regions.values())

    async def setup_meta(self) -> DatabaseRegion:
        """Reset the meta region; it stays empty for the application to migrate."""

        region = self._region(RegionKind.META, self._run.meta_database, self._meta_config())
        await self._backend.reset_database(region)
        return region

    async def setup_fixture(self) -> DatabaseRegion:
        """Reset and seed the reference dataset region."""

        region = self._region(RegionKind.FIXTURE, self._run.settings.fixture_database, self._fixture_config())
        await self._backend.reset_database(region)
        await self._backend.seed(region)
        return region

    async def provision(self) -> ProvisionedDatabases:
        meta = await self.setup_meta()
        fixture = await self.setup_fixture()
        return ProvisionedDatabases(profile=self.profile, meta=meta, fixture=fixture)

    async def list_tables(self, kind: RegionKind) -> tuple[str, ...]:
        region = self._regions.get(kind)
        if region is None:
            raise KeyError(f"Region '{kind.value}' has not been provisioned.")
        return await self._backend.list_tables(region)

    async def close(self) -> None:
        """Release every region handle."""

        for region in self._regions.values():
            await self._backend.release(region)

    async def __aenter__(self) -> Provisioner:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _region(self, kind: RegionKind, name: str, config: ConnectionConfig) -> DatabaseRegion:
        # Reuse the existing region so its stale handle is released by the reset.
        region = self._regions.get(kind)
        if region is None:
            region = DatabaseRegion(kind=kind, name=name, config=config)
            self._regions[kind] = region
        return region

    def _meta_config(self) -> ConnectionConfig:
        return for_database(self._run.base, self._run.meta_database)

    def _fixture_config(self) -> ConnectionConfig:
        name = self._run.settings.fixture_database
        filename = None
        if self.profile is EngineProfile.EMBEDDED:
            filename = self._run.settings.work_dir / f"{name}.db"
        return for_database(self._run.base, name, filename=filename, multi_statements=True)


async def create_provisioner(
    settings: ProvisionerSettings | None = None,
    *,
    backend: EngineBackend | None = None,
) -> Provisioner:
    """Probe once, freeze the run config and build the matching provisioner."""

    resolved = settings or load_settings()
    profile = await select_engine(resolved)
    return Provisioner(RunConfig.build(resolved, profile), backend=backend)


__all__ = ["ProvisionedDatabases", "Provisioner", "create_provisioner"]
