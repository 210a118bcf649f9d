"""In-process backend: tables as lists of dicts, same error codes as the hosted one."""

import copy
import inspect
import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Sequence

from storeops.backend.base import (
    UNDEFINED_FUNCTION,
    UNDEFINED_TABLE,
    UNIQUE_CONSTRAINTS,
    UNIQUE_VIOLATION,
    BackendClient,
    BackendError,
    Filter,
    row_matches,
    timestamp,
)
from storeops.backend.channels import ChangeEvent, ChangeHub, Channel
from storeops.backend.procedures import PROCEDURES

Procedure = Callable[..., Awaitable[Any]]


class MemoryBackend(BackendClient):
    def __init__(self, register_functions: bool = True) -> None:
        self._tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self._missing: set[str] = set()
        self._functions: dict[str, Procedure] = {}
        self._last_ts: datetime | None = None
        self.hub = ChangeHub()
        if register_functions:
            for name, fn in PROCEDURES.items():
                self.register_function(name, fn)

    # Test and dev helpers

    def register_function(self, name: str, fn: Procedure) -> None:
        self._functions[name] = fn

    def drop_function(self, name: str) -> None:
        self._functions.pop(name, None)

    def drop_table(self, table: str) -> None:
        """Make the table behave as if it did not exist (42P01 on every access)."""
        self._missing.add(table)
        self._tables.pop(table, None)

    def create_table(self, table: str) -> None:
        self._missing.discard(table)

    def rows(self, table: str) -> list[dict[str, Any]]:
        return copy.deepcopy(self._tables.get(table, []))

    # Internals

    def _table(self, table: str) -> list[dict[str, Any]]:
        if table in self._missing:
            raise BackendError(UNDEFINED_TABLE, f'relation "public.{table}" does not exist')
        return self._tables[table]

    def _now(self) -> str:
        # strictly increasing so newest-first ordering is total
        now = datetime.now(timezone.utc)
        if self._last_ts is not None and now <= self._last_ts:
            now = self._last_ts + timedelta(microseconds=1)
        self._last_ts = now
        return timestamp(now)

    def _check_unique(self, table: str, candidate: dict[str, Any], ignore: dict[str, Any] | None = None) -> None:
        for columns in UNIQUE_CONSTRAINTS.get(table, []):
            key = tuple(candidate.get(c) for c in columns)
            if any(k is None for k in key):
                continue
            for row in self._tables[table]:
                if row is ignore:
                    continue
                if tuple(row.get(c) for c in columns) == key:
                    raise BackendError(
                        UNIQUE_VIOLATION,
                        f"duplicate key value violates unique constraint on {table} ({', '.join(columns)})",
                    )

    # BackendClient

    async def select(
        self,
        table: str,
        *filters: Filter,
        columns: Sequence[str] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        rows = [r for r in self._table(table) if row_matches(r, filters)]
        if order_by:
            present = [r for r in rows if r.get(order_by) is not None]
            absent = [r for r in rows if r.get(order_by) is None]
            present.sort(key=lambda r: r[order_by], reverse=descending)
            rows = present + absent
        rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]
        if columns:
            rows = [{c: r.get(c) for c in columns} for r in rows]
        return copy.deepcopy(rows)

    async def insert(self, table: str, rows: dict[str, Any] | list[dict[str, Any]]) -> list[dict[str, Any]]:
        store = self._table(table)
        batch = [rows] if isinstance(rows, dict) else rows
        prepared = []
        for row in batch:
            new = copy.deepcopy(row)
            new.setdefault("id", str(uuid.uuid4()))
            if new.get("created_at") is None:
                new["created_at"] = self._now()
            self._check_unique(table, new)
            for other in prepared:
                if any(
                    all(other.get(c) == new.get(c) and new.get(c) is not None for c in cols)
                    for cols in UNIQUE_CONSTRAINTS.get(table, [])
                ):
                    raise BackendError(UNIQUE_VIOLATION, f"duplicate key value in batch insert into {table}")
            prepared.append(new)
        store.extend(prepared)
        for new in prepared:
            await self.hub.publish(ChangeEvent("INSERT", table, new=copy.deepcopy(new)))
        return copy.deepcopy(prepared)

    async def update(self, table: str, patch: dict[str, Any], *filters: Filter) -> list[dict[str, Any]]:
        store = self._table(table)
        changes = []
        for row in store:
            if not row_matches(row, filters):
                continue
            candidate = {**row, **patch}
            self._check_unique(table, candidate, ignore=row)
            changes.append((row, candidate))
        updated = []
        for row, candidate in changes:
            old = copy.deepcopy(row)
            row.update(copy.deepcopy(patch))
            updated.append(copy.deepcopy(row))
            await self.hub.publish(ChangeEvent("UPDATE", table, new=copy.deepcopy(row), old=old))
        return updated

    async def delete(self, table: str, *filters: Filter) -> int:
        store = self._table(table)
        removed = [r for r in store if row_matches(r, filters)]
        self._tables[table] = [r for r in store if not row_matches(r, filters)]
        for row in removed:
            await self.hub.publish(ChangeEvent("DELETE", table, old=copy.deepcopy(row)))
        return len(removed)

    async def count(self, table: str, *filters: Filter) -> int:
        return sum(1 for r in self._table(table) if row_matches(r, filters))

    async def rpc(self, function_name: str, args: dict[str, Any] | None = None) -> Any:
        fn = self._functions.get(function_name)
        if fn is None:
            raise BackendError(UNDEFINED_FUNCTION, f"function public.{function_name} does not exist")
        try:
            inspect.signature(fn).bind(self, **(args or {}))
        except TypeError as exc:
            raise BackendError(UNDEFINED_FUNCTION, f"function public.{function_name}: {exc}") from exc
        return await fn(self, **(args or {}))

    def channel(self, name: str) -> Channel:
        return Channel(name, self.hub)
