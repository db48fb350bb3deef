"""Holdings storage: Protocol definition, SQLite implementation, factory."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import ClassVar, Protocol, runtime_checkable

import aiosqlite

from portfolio_prism.core.config import PrismConfig, StorageConfig
from portfolio_prism.core.exceptions import (
    HoldingExistsError,
    HoldingNotFoundError,
    StorageError,
)
from portfolio_prism.core.models import (
    AssetClass,
    Holding,
    HoldingCreate,
    HoldingUpdate,
)

logger = logging.getLogger(__name__)

_COLUMNS = "id, type, symbol, quantity, cost_basis, created_at, updated_at"


@runtime_checkable
class HoldingStore(Protocol):
    """Abstract holdings store. At most one holding per (type, symbol)."""

    async def list_holdings(
        self, asset_class: AssetClass | None = None
    ) -> list[Holding]: ...
    async def get_holding(self, holding_id: int) -> Holding: ...
    async def get_holding_by_symbol(
        self, asset_class: AssetClass, symbol: str
    ) -> Holding: ...
    async def create_holding(self, request: HoldingCreate) -> Holding: ...
    async def update_holding(
        self, holding_id: int, request: HoldingUpdate
    ) -> Holding: ...
    async def delete_holding(self, holding_id: int) -> None: ...
    async def bulk_create(self, requests: list[HoldingCreate]) -> int: ...
    async def is_empty(self) -> bool: ...
    async def initialize(self) -> None: ...
    async def close(self) -> None: ...
    async def health_check(self) -> bool: ...


class SqliteHoldingStore:
    """SQLite implementation of the holdings store.

    Uses aiosqlite for async access, WAL mode for concurrent reads,
    and a version-tracked migration system.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS holdings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    type TEXT NOT NULL CHECK (type IN ('fund', 'crypto')),
                    symbol TEXT NOT NULL,
                    quantity REAL NOT NULL DEFAULT 0 CHECK (quantity >= 0),
                    cost_basis REAL NOT NULL DEFAULT 0 CHECK (cost_basis >= 0),
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE(type, symbol)
                )""",
                "CREATE INDEX IF NOT EXISTS idx_holdings_type ON holdings(type)",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL, run migrations."""
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e
        logger.info("Holdings store initialized at %s", self._path)

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    # --- Holding Operations ---

    async def list_holdings(
        self, asset_class: AssetClass | None = None
    ) -> list[Holding]:
        try:
            if asset_class is None:
                query = f"SELECT {_COLUMNS} FROM holdings ORDER BY type, symbol"
                params: tuple = ()
            else:
                query = f"SELECT {_COLUMNS} FROM holdings WHERE type = ? ORDER BY symbol"
                params = (str(asset_class),)
            async with self._db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_holding(r) for r in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to list holdings: {e}",
                context={"operation": "query", "table": "holdings"},
            ) from e

    async def get_holding(self, holding_id: int) -> Holding:
        try:
            async with self._db.execute(
                f"SELECT {_COLUMNS} FROM holdings WHERE id = ?", (holding_id,)
            ) as cursor:
                row = await cursor.fetchone()
        except Exception as e:
            raise StorageError(
                f"Failed to get holding: {e}",
                context={"operation": "query", "table": "holdings", "holding_id": holding_id},
            ) from e
        if row is None:
            raise HoldingNotFoundError(
                f"Holding not found: {holding_id}",
                context={"holding_id": holding_id},
            )
        return self._row_to_holding(row)

    async def get_holding_by_symbol(
        self, asset_class: AssetClass, symbol: str
    ) -> Holding:
        try:
            async with self._db.execute(
                f"SELECT {_COLUMNS} FROM holdings WHERE type = ? AND symbol = ?",
                (str(asset_class), symbol),
            ) as cursor:
                row = await cursor.fetchone()
        except Exception as e:
            raise StorageError(
                f"Failed to get holding: {e}",
                context={"operation": "query", "table": "holdings", "symbol": symbol},
            ) from e
        if row is None:
            raise HoldingNotFoundError(
                f"Holding not found: {asset_class}/{symbol}",
                context={"type": str(asset_class), "symbol": symbol},
            )
        return self._row_to_holding(row)

    async def create_holding(self, request: HoldingCreate) -> Holding:
        now = _utcnow()
        try:
            cursor = await self._db.execute(
                """INSERT INTO holdings
                   (type, symbol, quantity, cost_basis, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    str(request.type),
                    request.symbol,
                    request.quantity,
                    request.cost_basis,
                    now.isoformat(),
                    now.isoformat(),
                ),
            )
            await self._db.commit()
        except sqlite3.IntegrityError as e:
            await self._db.rollback()
            raise HoldingExistsError(
                f"Holding already exists for {request.type}/{request.symbol}",
                context={"type": str(request.type), "symbol": request.symbol},
            ) from e
        except Exception as e:
            raise StorageError(
                f"Failed to create holding: {e}",
                context={"operation": "insert", "table": "holdings"},
            ) from e

        return Holding(
            id=cursor.lastrowid,
            type=request.type,
            symbol=request.symbol,
            quantity=request.quantity,
            cost_basis=request.cost_basis,
            created_at=now,
            updated_at=now,
        )

    async def update_holding(
        self, holding_id: int, request: HoldingUpdate
    ) -> Holding:
        existing = await self.get_holding(holding_id)
        changes: dict = {"updated_at": _utcnow()}
        if request.quantity is not None:
            changes["quantity"] = request.quantity
        if request.cost_basis is not None:
            changes["cost_basis"] = request.cost_basis
        updated = existing.model_copy(update=changes)

        try:
            await self._db.execute(
                """UPDATE holdings
                   SET quantity = ?, cost_basis = ?, updated_at = ?
                   WHERE id = ?""",
                (
                    updated.quantity,
                    updated.cost_basis,
                    updated.updated_at.isoformat(),
                    holding_id,
                ),
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to update holding: {e}",
                context={"operation": "update", "table": "holdings", "holding_id": holding_id},
            ) from e
        return updated

    async def delete_holding(self, holding_id: int) -> None:
        try:
            cursor = await self._db.execute(
                "DELETE FROM holdings WHERE id = ?", (holding_id,)
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to delete holding: {e}",
                context={"operation": "delete", "table": "holdings", "holding_id": holding_id},
            ) from e
        if cursor.rowcount == 0:
            raise HoldingNotFoundError(
                f"Holding not found: {holding_id}",
                context={"holding_id": holding_id},
            )

    async def bulk_create(self, requests: list[HoldingCreate]) -> int:
        """Insert many holdings in one transaction; duplicates are skipped."""
        if not requests:
            return 0
        now = _utcnow().isoformat()
        try:
            cursor = await self._db.executemany(
                """INSERT OR IGNORE INTO holdings
                   (type, symbol, quantity, cost_basis, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                [
                    (str(r.type), r.symbol, r.quantity, r.cost_basis, now, now)
                    for r in requests
                ],
            )
            await self._db.commit()
        except Exception as e:
            await self._db.rollback()
            raise StorageError(
                f"Failed to bulk create holdings: {e}",
                context={"operation": "insert", "table": "holdings"},
            ) from e
        return cursor.rowcount

    async def is_empty(self) -> bool:
        try:
            async with self._db.execute("SELECT COUNT(*) FROM holdings") as cursor:
                row = await cursor.fetchone()
        except Exception as e:
            raise StorageError(
                f"Failed to count holdings: {e}",
                context={"operation": "query", "table": "holdings"},
            ) from e
        return row[0] == 0

    # --- Helpers ---

    @staticmethod
    def _row_to_holding(row: aiosqlite.Row) -> Holding:
        return Holding(
            id=row["id"],
            type=AssetClass(row["type"]),
            symbol=row["symbol"],
            quantity=row["quantity"],
            cost_basis=row["cost_basis"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def create_store(config: StorageConfig) -> SqliteHoldingStore:
    """Create and initialize the holdings store."""
    store = SqliteHoldingStore(config)
    await store.initialize()
    return store


async def seed_from_config(store: HoldingStore, config: PrismConfig) -> int:
    """Copy holdings declared in the config file into an empty store.

    Does nothing once the store holds any position, so edits made through
    the API are never overwritten. Returns the number of rows inserted.
    """
    if not await store.is_empty():
        logger.info("Holdings already exist in database, skipping seed")
        return 0

    requests = [
        HoldingCreate(
            type=AssetClass.FUND,
            symbol=h.code,
            quantity=h.quantity,
            cost_basis=h.cost_basis,
        )
        for h in config.tefas.holdings
    ] + [
        HoldingCreate(
            type=AssetClass.CRYPTO,
            symbol=h.symbol,
            quantity=h.quantity,
            cost_basis=h.cost_basis,
        )
        for h in config.crypto.binance.holdings
    ]
    if not requests:
        logger.info("No holdings in config to seed")
        return 0

    inserted = await store.bulk_create(requests)
    logger.info("Seeded %d holdings from config", inserted)
    return inserted
