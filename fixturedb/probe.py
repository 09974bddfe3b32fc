"""Client-server reachability probe and engine selection."""

from __future__ import annotations

import logging

import asyncpg

from .config import ConnectionConfig, EngineProfile, ProvisionerSettings

LOG = logging.getLogger(__name__)


async def probe(config: ConnectionConfig, *, timeout: float = 5.0) -> bool:
    """Return whether the PostgreSQL server in `config` accepts a connection.

    Every failure (authentication, refused socket, timeout) is reported as
    unreachable; nothing is raised to the caller. A slow server is only
    unreachable once the driver gives up on it.
    """

    try:
        connection = await asyncpg.connect(**config.connect_kwargs(), timeout=timeout)
    except Exception as exc:
        LOG.warning(
            "Client-server engine unreachable",
            extra={"host": config.host, "port": config.port, "error": str(exc)},
        )
        return False
    try:
        await connection.close()
    except Exception:  # pragma: no cover - best effort cleanup
        LOG.debug("Ignoring error while closing probe connection", exc_info=True)
    return True


async def select_engine(settings: ProvisionerSettings) -> EngineProfile:
    """Pick the engine for the run: PostgreSQL when reachable, SQLite otherwise."""

    if settings.engine is not None:
        LOG.info("Engine pinned by settings", extra={"engine": settings.engine.value})
        return settings.engine
    reachable = await probe(settings.server_config(), timeout=settings.connect_timeout)
    profile = EngineProfile.CLIENT_SERVER if reachable else EngineProfile.EMBEDDED
    LOG.info("Selected engine", extra={"engine": profile.value, "fallback": not reachable})
    return profile


__all__ = ["probe", "select_engine"]
