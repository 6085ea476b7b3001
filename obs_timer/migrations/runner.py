"""Schema migrations applied at startup, tracked in ``schema_migrations``."""

from __future__ import annotations

import logging
from pathlib import Path

import asyncpg

logger = logging.getLogger(__name__)

VERSIONS_DIR = Path(__file__).resolve().parent / "versions"
TRACKING_TABLE = "schema_migrations"


class MigrationRunner:
    """Apply ``versions/NNN_name.sql`` files in filename order, once each."""

    def __init__(self, pool: asyncpg.Pool, versions_dir: Path = VERSIONS_DIR) -> None:
        self.pool = pool
        self.versions_dir = versions_dir

    async def _applied_versions(self, conn: asyncpg.Connection) -> set[str]:
        await conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {TRACKING_TABLE} (
                version    TEXT PRIMARY KEY,
                name       TEXT NOT NULL,
                applied_at TIMESTAMPTZ DEFAULT NOW()
            )
            """
        )
        rows = await conn.fetch(f"SELECT version FROM {TRACKING_TABLE}")  # noqa: S608
        return {row["version"] for row in rows}

    async def run_pending(self) -> list[str]:
        """Apply every migration not yet recorded; return the new versions."""
        sql_files = sorted(self.versions_dir.glob("*.sql"))
        newly_applied: list[str] = []

        async with self.pool.acquire() as conn:
            applied = await self._applied_versions(conn)
            for sql_path in sql_files:
                version = sql_path.stem
                if version in applied:
                    continue
                logger.info("Applying migration: %s", version)
                async with conn.transaction():
                    await conn.execute(sql_path.read_text(encoding="utf-8"))
                    await conn.execute(
                        f"INSERT INTO {TRACKING_TABLE} (version, name) VALUES ($1, $2)",
                        version,
                        sql_path.name,
                    )
                newly_applied.append(version)

        if newly_applied:
            logger.info("Applied %d migration(s): %s", len(newly_applied), ", ".join(newly_applied))
        else:
            logger.info("Database schema is up to date")
        return newly_applied
