"""Region and fixture descriptors shared by the backends and the provisioner."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from .config import ConnectionConfig


class RegionKind(str, Enum):
    """Purpose of a logical database within a run."""

    META = "meta"
    FIXTURE = "fixture"


class RegionState(str, Enum):
    """Lifecycle of a region between resets."""

    PENDING = "pending"
    EMPTY = "empty"
    SEEDED = "seeded"
    FAILED = "failed"


@dataclass(slots=True)
class DatabaseRegion:
    """A named database and the one live handle the provisioner owns for it."""

    kind: RegionKind
    name: str
    config: ConnectionConfig
    connection: Any | None = None
    state: RegionState = RegionState.PENDING

    @property
    def is_open(self) -> bool:
        return self.connection is not None

    @property
    def usable(self) -> bool:
        return self.is_open and self.state in {RegionState.EMPTY, RegionState.SEEDED}


@dataclass(frozen=True, slots=True)
class FixtureSet:
    """Reference dataset files: one SQLite snapshot plus PostgreSQL scripts."""

    snapshot: Path
    schema_script: Path
    data_script: Path

    @classmethod
    def from_directory(cls, directory: Path | str) -> FixtureSet:
        root = Path(directory)
        return cls(
            snapshot=root / "sakila.db",
            schema_script=root / "schema.sql",
            data_script=root / "data.sql",
        )

    @property
    def scripts(self) -> tuple[Path, Path]:
        """Scripts in load order: schema first, then data."""

        return self.schema_script, self.data_script


__all__ = ["DatabaseRegion", "FixtureSet", "RegionKind", "RegionState"]
