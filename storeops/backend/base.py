"""Table client contract for the hosted relational backend."""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

from storeops.backend.channels import Channel
from storeops.core.config import Settings, get_settings

# PostgreSQL / PostgREST error codes surfaced by the backend
UNDEFINED_TABLE = "42P01"
UNDEFINED_FUNCTION = "42883"
UNIQUE_VIOLATION = "23505"
RAISE_EXCEPTION = "P0001"
NO_ROWS = "PGRST116"

# (column, operator, value)
Filter = tuple[str, str, Any]

OPERATORS = ("eq", "neq", "gt", "gte", "lt", "lte", "in")

# Uniqueness enforced by the data layer, one tuple of columns per constraint.
UNIQUE_CONSTRAINTS: dict[str, list[tuple[str, ...]]] = {
    "loyalty_coins_wallet": [("user_id",)],
    "loyalty_product_settings": [("product_id",)],
    "employees": [("employee_id",)],
    "employee_attendance": [("employee_id", "attendance_date")],
    "employee_salaries": [("employee_id", "salary_month", "salary_year")],
}


class BackendError(Exception):
    """Error reported by the backend, carrying its SQL/PostgREST code."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")

    def is_missing_relation(self) -> bool:
        return self.code in (UNDEFINED_TABLE, UNDEFINED_FUNCTION) or "relation" in self.message

    def is_no_rows(self) -> bool:
        return self.code == NO_ROWS

    def is_unique_violation(self) -> bool:
        return self.code == UNIQUE_VIOLATION


def eq(column: str, value: Any) -> Filter:
    return (column, "eq", value)


def neq(column: str, value: Any) -> Filter:
    return (column, "neq", value)


def gt(column: str, value: Any) -> Filter:
    return (column, "gt", value)


def gte(column: str, value: Any) -> Filter:
    return (column, "gte", value)


def lt(column: str, value: Any) -> Filter:
    return (column, "lt", value)


def lte(column: str, value: Any) -> Filter:
    return (column, "lte", value)


def in_(column: str, values: Iterable[Any]) -> Filter:
    return (column, "in", list(values))


def row_matches(row: dict[str, Any], filters: Iterable[Filter]) -> bool:
    """True if row satisfies every filter. None never satisfies a range comparison."""
    for column, op, value in filters:
        current = row.get(column)
        if op == "eq":
            if current != value:
                return False
        elif op == "neq":
            if current == value:
                return False
        elif op == "in":
            if current not in value:
                return False
        else:
            if current is None or value is None:
                return False
            if op == "gt" and not current > value:
                return False
            if op == "gte" and not current >= value:
                return False
            if op == "lt" and not current < value:
                return False
            if op == "lte" and not current <= value:
                return False
    return True


def timestamp(dt: datetime | None = None) -> str:
    """Fixed-width UTC ISO timestamp, so string order is time order."""
    dt = dt or datetime.now(timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class BackendClient(ABC):
    """select/insert/update/delete over named tables, rpc and change channels.

    Rows are plain JSON-compatible dicts. Every method raises BackendError on
    failure; select_one raises with NO_ROWS when nothing matches.
    """

    @abstractmethod
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
        ...

    async def select_one(self, table: str, *filters: Filter, order_by: str | None = None) -> dict[str, Any]:
        """First matching row; BackendError(NO_ROWS) if there is none."""
        rows = await self.select(table, *filters, order_by=order_by, limit=1)
        if not rows:
            raise BackendError(NO_ROWS, f"no rows returned from {table}")
        return rows[0]

    @abstractmethod
    async def insert(self, table: str, rows: dict[str, Any] | list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Insert one or more rows; return them as stored (with id and created_at)."""
        ...

    @abstractmethod
    async def update(self, table: str, patch: dict[str, Any], *filters: Filter) -> list[dict[str, Any]]:
        """Apply patch to every matching row; return the updated rows."""
        ...

    async def upsert(self, table: str, row: dict[str, Any], on_conflict: str = "id") -> dict[str, Any]:
        """Update the row whose on_conflict column matches, else insert it."""
        key = row.get(on_conflict)
        if key is not None:
            updated = await self.update(table, row, eq(on_conflict, key))
            if updated:
                return updated[0]
        inserted = await self.insert(table, row)
        return inserted[0]

    @abstractmethod
    async def delete(self, table: str, *filters: Filter) -> int:
        ...

    @abstractmethod
    async def count(self, table: str, *filters: Filter) -> int:
        ...

    @abstractmethod
    async def rpc(self, function_name: str, args: dict[str, Any] | None = None) -> Any:
        """Call a server-side function by name."""
        ...

    @abstractmethod
    def channel(self, name: str) -> Channel:
        """Named channel for change notifications; call .on(...) then .subscribe()."""
        ...

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        return None


def get_backend(settings: Settings | None = None) -> BackendClient:
    settings = settings or get_settings()
    if settings.backend == "mongo":
        from storeops.backend.mongo import MongoBackend
        return MongoBackend(settings.mongodb_uri, settings.mongodb_db_name)
    from storeops.backend.memory import MemoryBackend
    return MemoryBackend()
