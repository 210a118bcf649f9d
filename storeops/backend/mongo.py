"""MongoDB-backed tables: one collection per table, change streams for channels."""

import asyncio
import uuid
from typing import Any, Sequence

import certifi
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, OperationFailure, PyMongoError

from storeops.backend.base import (
    UNDEFINED_FUNCTION,
    UNIQUE_CONSTRAINTS,
    UNIQUE_VIOLATION,
    BackendClient,
    BackendError,
    Filter,
    timestamp,
)
from storeops.backend.channels import ChangeEvent, ChangeHub, Channel
from storeops.backend.procedures import PROCEDURES
from storeops.core.logging import get_logger

log = get_logger(__name__)

_MONGO_OPS = {"neq": "$ne", "gt": "$gt", "gte": "$gte", "lt": "$lt", "lte": "$lte", "in": "$in"}
_CHANGE_EVENTS = {"insert": "INSERT", "update": "UPDATE", "replace": "UPDATE", "delete": "DELETE"}


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


def to_query(filters: Sequence[Filter]) -> dict[str, Any]:
    query: dict[str, Any] = {}
    for column, op, value in filters:
        clause = query.setdefault(column, {})
        if op == "eq":
            clause["$eq"] = value
        else:
            clause[_MONGO_OPS[op]] = value
    return query


def _strip(doc: dict[str, Any] | None) -> dict[str, Any] | None:
    if doc is None:
        return None
    return {k: v for k, v in doc.items() if k != "_id"}


class MongoBackend(BackendClient):
    def __init__(self, uri: str, db_name: str) -> None:
        # Atlas in Docker: tlsCAFile + tlsDisableOCSPEndpointCheck avoid TLSV1_ALERT_INTERNAL_ERROR
        kwargs: dict[str, Any] = {}
        if _use_tls(uri):
            kwargs["tlsCAFile"] = certifi.where()
            kwargs["tlsDisableOCSPEndpointCheck"] = True
        self._client = AsyncIOMotorClient(uri, **kwargs)
        self._db = self._client[db_name]
        self._functions = dict(PROCEDURES)
        self._watchers: dict[str, asyncio.Task] = {}
        self.hub = ChangeHub(on_attach=self._watch_tables)

    async def connect(self) -> None:
        for table, constraints in UNIQUE_CONSTRAINTS.items():
            for columns in constraints:
                await self._db[table].create_index([(c, 1) for c in columns], unique=True)
        await self._db["loyalty_transactions"].create_index([("user_id", 1), ("created_at", -1)])
        await self._db["employee_attendance"].create_index([("attendance_date", 1)])

    async def close(self) -> None:
        for task in self._watchers.values():
            task.cancel()
        self._watchers.clear()
        self._client.close()

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
        projection = {c: 1 for c in columns} if columns else None
        if projection is not None:
            projection["_id"] = 0
        cursor = self._db[table].find(to_query(filters), projection)
        if order_by:
            cursor = cursor.sort(order_by, -1 if descending else 1)
        if offset:
            cursor = cursor.skip(offset)
        if limit is not None:
            cursor = cursor.limit(limit)
        try:
            return [_strip(doc) for doc in await cursor.to_list(length=None)]
        except PyMongoError as exc:
            raise BackendError("MONGO", str(exc)) from exc

    async def insert(self, table: str, rows: dict[str, Any] | list[dict[str, Any]]) -> list[dict[str, Any]]:
        batch = [rows] if isinstance(rows, dict) else rows
        prepared = []
        for row in batch:
            new = dict(row)
            new.setdefault("id", str(uuid.uuid4()))
            if new.get("created_at") is None:
                new["created_at"] = timestamp()
            prepared.append(new)
        try:
            await self._db[table].insert_many([dict(r) for r in prepared], ordered=True)
        except DuplicateKeyError as exc:
            raise BackendError(UNIQUE_VIOLATION, str(exc)) from exc
        except PyMongoError as exc:
            if "E11000" in str(exc):
                raise BackendError(UNIQUE_VIOLATION, str(exc)) from exc
            raise BackendError("MONGO", str(exc)) from exc
        return prepared

    async def update(self, table: str, patch: dict[str, Any], *filters: Filter) -> list[dict[str, Any]]:
        """Apply patch to matching rows and return the rows as written.

        Each write re-checks the filters, so a row changed by someone else
        after it was matched is left alone and not returned.
        """
        collection = self._db[table]
        query = to_query(filters)
        updated = []
        try:
            ids = [doc["id"] async for doc in collection.find(query, {"id": 1})]
            for row_id in ids:
                doc = await collection.find_one_and_update(
                    {"$and": [query, {"id": row_id}]},
                    {"$set": patch},
                    return_document=ReturnDocument.AFTER,
                )
                if doc is not None:
                    updated.append(_strip(doc))
        except DuplicateKeyError as exc:
            raise BackendError(UNIQUE_VIOLATION, str(exc)) from exc
        except PyMongoError as exc:
            raise BackendError("MONGO", str(exc)) from exc
        return updated

    async def delete(self, table: str, *filters: Filter) -> int:
        try:
            result = await self._db[table].delete_many(to_query(filters))
        except PyMongoError as exc:
            raise BackendError("MONGO", str(exc)) from exc
        return result.deleted_count

    async def count(self, table: str, *filters: Filter) -> int:
        try:
            return await self._db[table].count_documents(to_query(filters))
        except PyMongoError as exc:
            raise BackendError("MONGO", str(exc)) from exc

    async def rpc(self, function_name: str, args: dict[str, Any] | None = None) -> Any:
        fn = self._functions.get(function_name)
        if fn is None:
            raise BackendError(UNDEFINED_FUNCTION, f"function {function_name} does not exist")
        return await fn(self, **(args or {}))

    def channel(self, name: str) -> Channel:
        return Channel(name, self.hub)

    def _watch_tables(self, channel: Channel) -> None:
        for table in channel.tables:
            if table not in self._watchers:
                self._watchers[table] = asyncio.get_running_loop().create_task(self._watch(table))

    async def _watch(self, table: str) -> None:
        """Forward a collection's change stream to the hub. Needs a replica set."""
        try:
            async with self._db[table].watch(full_document="updateLookup") as stream:
                async for change in stream:
                    event = _CHANGE_EVENTS.get(change.get("operationType"))
                    if event is None:
                        continue
                    await self.hub.publish(
                        ChangeEvent(event, table, new=_strip(change.get("fullDocument")), old=None)
                    )
        except OperationFailure as exc:
            log.warning("change_stream_unavailable", table=table, error=str(exc))
        finally:
            self._watchers.pop(table, None)
