"""
Version ledger: the persisted record of applied schema migrations.

The ledger is the ``schema_migrations`` table on the backend being migrated.
Every method takes an open transaction so that a ledger write always commits
or aborts together with the schema change it records.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ragsync.storage.interface import Transaction

LEDGER_TABLE = "schema_migrations"

CREATE_LEDGER_SQL = f"""
CREATE TABLE IF NOT EXISTS {LEDGER_TABLE} (
    version INTEGER PRIMARY KEY,
    description TEXT NOT NULL,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""


@dataclass(frozen=True)
class LedgerEntry:
    """One applied migration as recorded in the ledger."""

    version: int
    description: str
    applied_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "description": self.description,
            "appliedAt": self.applied_at.isoformat() if self.applied_at else None,
        }


def _parse_timestamp(value: Any) -> datetime | None:
    # SQLite hands back TEXT, PostgreSQL a datetime
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


class VersionLedger:
    """Reads and writes the ``schema_migrations`` table."""

    async def ensure_table(self, tx: Transaction) -> None:
        await tx.execute(CREATE_LEDGER_SQL)

    async def current_version(self, tx: Transaction) -> int:
        """Highest applied version, or 0 when nothing has been applied."""
        rows = await tx.fetch_all(
            f"SELECT COALESCE(MAX(version), 0) AS version FROM {LEDGER_TABLE}"
        )
        return int(rows[0]["version"]) if rows else 0

    async def entries(self, tx: Transaction) -> list[LedgerEntry]:
        rows = await tx.fetch_all(
            f"SELECT version, description, applied_at FROM {LEDGER_TABLE} ORDER BY version"
        )
        return [
            LedgerEntry(
                version=int(row["version"]),
                description=row["description"],
                applied_at=_parse_timestamp(row["applied_at"]),
            )
            for row in rows
        ]

    async def record(self, tx: Transaction, version: int, description: str) -> None:
        await tx.execute(
            f"INSERT INTO {LEDGER_TABLE} (version, description) VALUES (:version, :description)",
            {"version": version, "description": description},
        )

    async def remove(self, tx: Transaction, version: int) -> None:
        await tx.execute(
            f"DELETE FROM {LEDGER_TABLE} WHERE version = :version", {"version": version}
        )


__all__ = ["LEDGER_TABLE", "CREATE_LEDGER_SQL", "LedgerEntry", "VersionLedger"]
