"""PostgreSQL-backed remote store publishing changes through Redis."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from uuid import UUID

import psycopg
from psycopg import sql
from psycopg.types.json import Jsonb

from checklist.config import Settings, settings
from checklist.db import DatabaseManager
from checklist.errors import RemoteStoreError
from checklist.models import ChangeEvent, EventType
from checklist.store import ChangeHandler, Row
from checklist.store.changefeed import RedisChangeFeed, RedisSubscription

logger = logging.getLogger(__name__)


def _normalize_value(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    return value


def _normalize_row(row: Mapping[str, Any]) -> Row:
    return {key: _normalize_value(value) for key, value in row.items()}


def _adapt_value(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return Jsonb(value)
    return value


def _where_clause(filters: Optional[Mapping[str, Any]]) -> Tuple[sql.Composable, List[Any]]:
    if not filters:
        return sql.SQL(""), []

    clauses: List[sql.Composable] = []
    params: List[Any] = []
    for column, value in filters.items():
        identifier = sql.Identifier(column)
        if value is None:
            clauses.append(sql.SQL("{} IS NULL").format(identifier))
        elif isinstance(value, (list, tuple, set, frozenset)):
            clauses.append(sql.SQL("{}::text = ANY(%s)").format(identifier))
            params.append(list(value))
        else:
            clauses.append(sql.SQL("{} = %s").format(identifier))
            params.append(value)
    return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(clauses), params


def _require_filters(filters: Mapping[str, Any], operation: str) -> None:
    if not filters:
        raise ValueError(f"{operation} requires at least one filter")


class PostgresRemoteStore:
    """RemoteStore over psycopg with change events fanned out via Redis."""

    def __init__(self, db: DatabaseManager, feed: RedisChangeFeed) -> None:
        self._db = db
        self._feed = feed

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "PostgresRemoteStore":
        db = DatabaseManager(
            config.database_url,
            min_size=config.db_pool_min_size,
            max_size=config.db_pool_max_size,
        )
        feed = RedisChangeFeed(config.redis_url, channel_prefix=config.change_channel_prefix)
        return cls(db, feed)

    async def close(self) -> None:
        await self._db.close()
        await self._feed.close()

    async def select(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Sequence[str] = (),
        descending: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Row]:
        where, params = _where_clause(filters)
        query = sql.SQL("SELECT * FROM {}").format(sql.Identifier(table)) + where
        if order_by:
            direction = sql.SQL(" DESC") if descending else sql.SQL(" ASC")
            query += sql.SQL(" ORDER BY ") + sql.SQL(", ").join(
                sql.Identifier(column) + direction for column in order_by
            )
        if limit is not None:
            query += sql.SQL(" LIMIT %s")
            params.append(limit)
        if offset:
            query += sql.SQL(" OFFSET %s")
            params.append(offset)

        try:
            async with self._db.cursor() as cur:
                await cur.execute(query, params)
                rows = await cur.fetchall()
        except psycopg.Error as exc:
            logger.error("Select from %s failed: %s", table, exc)
            raise RemoteStoreError(f"Select from {table} failed: {exc}", table=table, operation="select") from exc

        return [_normalize_row(row) for row in rows]

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        columns = list(row)
        query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
            sql.Identifier(table),
            sql.SQL(", ").join(sql.Identifier(column) for column in columns),
            sql.SQL(", ").join(sql.Placeholder() for _ in columns),
        )
        params = [_adapt_value(row[column]) for column in columns]

        try:
            async with self._db.cursor() as cur:
                await cur.execute(query, params)
                created = await cur.fetchone()
        except psycopg.Error as exc:
            logger.error("Insert into %s failed: %s", table, exc)
            raise RemoteStoreError(f"Insert into {table} failed: {exc}", table=table, operation="insert") from exc

        stored = _normalize_row(created)
        await self._publish([ChangeEvent(event_type=EventType.INSERT, table=table, new_row=stored)])
        return stored

    async def update(self, table: str, filters: Mapping[str, Any], patch: Mapping[str, Any]) -> None:
        _require_filters(filters, "update")
        if not patch:
            return

        where, where_params = _where_clause(filters)
        assignments = [
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in patch
        ]
        if "updated_at" not in patch:
            assignments.append(sql.SQL("updated_at = now()"))
        update_query = (
            sql.SQL("UPDATE {} SET ").format(sql.Identifier(table))
            + sql.SQL(", ").join(assignments)
            + where
            + sql.SQL(" RETURNING *")
        )
        lock_query = sql.SQL("SELECT * FROM {}").format(sql.Identifier(table)) + where + sql.SQL(" FOR UPDATE")
        params = [_adapt_value(value) for value in patch.values()] + where_params

        try:
            async with self._db.cursor() as cur:
                await cur.execute(lock_query, where_params)
                before = {str(row["id"]): _normalize_row(row) for row in await cur.fetchall()}
                await cur.execute(update_query, params)
                after = [_normalize_row(row) for row in await cur.fetchall()]
        except psycopg.Error as exc:
            logger.error("Update of %s failed: %s", table, exc)
            raise RemoteStoreError(f"Update of {table} failed: {exc}", table=table, operation="update") from exc

        await self._publish(
            [
                ChangeEvent(
                    event_type=EventType.UPDATE,
                    table=table,
                    new_row=row,
                    old_row=before.get(str(row.get("id"))),
                )
                for row in after
            ]
        )

    async def delete(self, table: str, filters: Mapping[str, Any]) -> None:
        _require_filters(filters, "delete")
        where, params = _where_clause(filters)
        query = sql.SQL("DELETE FROM {}").format(sql.Identifier(table)) + where + sql.SQL(" RETURNING *")

        try:
            async with self._db.cursor() as cur:
                await cur.execute(query, params)
                removed = [_normalize_row(row) for row in await cur.fetchall()]
        except psycopg.Error as exc:
            logger.error("Delete from %s failed: %s", table, exc)
            raise RemoteStoreError(f"Delete from {table} failed: {exc}", table=table, operation="delete") from exc

        await self._publish(
            [ChangeEvent(event_type=EventType.DELETE, table=table, old_row=row) for row in removed]
        )

    async def subscribe_changes(self, table: str, handler: ChangeHandler) -> RedisSubscription:
        return await self._feed.subscribe(table, handler)

    async def _publish(self, events: Sequence[ChangeEvent]) -> None:
        # The write is already committed; a lost notification only delays convergence.
        for event in events:
            try:
                await self._feed.publish(event)
            except RemoteStoreError as exc:
                logger.warning("Change notification not delivered: %s", exc)
