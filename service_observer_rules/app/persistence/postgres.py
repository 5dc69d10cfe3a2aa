"""
PostgreSQL persistence layer for the Observer Rules service.

The observers and geo_objects tables belong to the map application; this
module only reads geo-objects and rewrites an observer's ``rules`` column.
"""

import json
from datetime import datetime, timezone
from typing import Any, List, Optional

import asyncpg

from shared.errors import ObserverNotFoundError, PersistenceError
from shared.logging import get_logger

from ..models import GeoObject, Observer
from .query import ACTIVE_PREDICATE, GeoObjectQueryBuilder

OBSERVER_COLUMNS = "id, name, map_id, access_token, rules"


class PostgreSQLPersistence:
    """Connection pool shared by the repositories."""

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10, command_timeout: float = 30):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = get_logger("observer_rules.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout
            )
            self.logger.info("PostgreSQL persistence started")

        except Exception as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise PersistenceError("Failed to start PostgreSQL persistence", {"error": str(e)}) from e

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    def _require_pool(self) -> asyncpg.Pool:
        if self.pool is None:
            raise PersistenceError("PostgreSQL persistence is not started")
        return self.pool

    async def fetch_geo_objects(self, sql: str, args: List[Any]) -> List[GeoObject]:
        """Run a rendered geo-object query."""
        async with self._require_pool().acquire() as conn:
            rows = await conn.fetch(sql, *args)
        return [GeoObject.from_row(row) for row in rows]

    async def fetch_observer(self, where: str, value: Any) -> Optional[Observer]:
        async with self._require_pool().acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {OBSERVER_COLUMNS} FROM observers WHERE {where} = $1",
                value
            )
        return Observer.from_row(row) if row else None

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            async with self._require_pool().acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception as e:
            self.logger.warning("PostgreSQL health check failed", error=str(e))
            return False


class GeoObjectRepository:
    """Query entry points for geo-objects."""

    def __init__(self, persistence: PostgreSQLPersistence):
        self.persistence = persistence

    def create_query_builder(self) -> GeoObjectQueryBuilder:
        return GeoObjectQueryBuilder(self.persistence.fetch_geo_objects)

    def active_on_map(self, map_id: int, now: Optional[datetime] = None) -> GeoObjectQueryBuilder:
        """Query for the active objects of one map, ready for rule predicates."""
        return (
            self.create_query_builder()
            .where("g.map_id = :map")
            .and_where(ACTIVE_PREDICATE)
            .set_parameter("map", map_id)
            .set_parameter("now", now or datetime.now(timezone.utc))
        )

    async def find_active_by_map(self, map_id: int) -> List[GeoObject]:
        return await self.active_on_map(map_id).execute()


class ObserverRepository:
    """Observer lookups and transactional configuration writes."""

    def __init__(self, persistence: PostgreSQLPersistence):
        self.persistence = persistence

    async def find(self, observer_id: int) -> Optional[Observer]:
        return await self.persistence.fetch_observer("id", observer_id)

    async def find_by_access_token(self, access_token: str) -> Optional[Observer]:
        return await self.persistence.fetch_observer("access_token", access_token)

    async def begin_transaction(self) -> "ObserverTransaction":
        transaction = ObserverTransaction(self.persistence)
        await transaction.start()
        return transaction


class ObserverTransaction:
    """One connection and one transaction for a refresh-then-write cycle."""

    def __init__(self, persistence: PostgreSQLPersistence):
        self.persistence = persistence
        self.logger = persistence.logger
        self._conn: Optional[asyncpg.Connection] = None
        self._transaction = None

    async def start(self):
        self._conn = await self.persistence._require_pool().acquire()
        try:
            self._transaction = self._conn.transaction()
            await self._transaction.start()
        except Exception:
            await self._release()
            raise

    async def refresh(self, observer: Observer) -> Observer:
        """Re-read the observer row, locking it until commit or rollback."""
        row = await self._connection().fetchrow(
            f"SELECT {OBSERVER_COLUMNS} FROM observers WHERE id = $1 FOR UPDATE",
            observer.id
        )
        if row is None:
            raise ObserverNotFoundError(
                "Observer disappeared before its rules could be written",
                {"observer_id": observer.id}
            )
        observer.update_from_row(row)
        return observer

    async def flush(self, observer: Observer):
        """Write the observer's current rules configuration."""
        await self._connection().execute(
            "UPDATE observers SET rules = $2::jsonb, updated_at = NOW() WHERE id = $1",
            observer.id,
            json.dumps(observer.rules)
        )

    async def commit(self):
        try:
            await self._transaction.commit()
        finally:
            await self._release()

    async def rollback(self):
        try:
            if self._transaction is not None and self._conn is not None:
                await self._transaction.rollback()
        finally:
            await self._release()

    def _connection(self) -> asyncpg.Connection:
        if self._conn is None:
            raise PersistenceError("Observer transaction is not active")
        return self._conn

    async def _release(self):
        if self._conn is not None:
            await self.persistence._require_pool().release(self._conn)
            self._conn = None
