"""SQLite database client wrapper with CRUD operations."""

import asyncio
import json
import logging
import re
import sqlite3
import threading
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import aiosqlite

from src.core.config import settings
from src.core.errors import ConflictError, DependencyUnavailableError, NotFoundError


logger = logging.getLogger(__name__)

FilterValue = str | int | float | bool | None

# Relation columns that do not follow the *_id naming convention
_RELATION_FIELDS = {"id", "taken_by", "cancelled_by", "assigned_to", "created_by", "completed_by", "reference_id"}

# Columns holding JSON documents
_JSON_FIELDS = {"requirements", "progress_data"}

_IDENTIFIER = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


class DatabaseError(DependencyUnavailableError):
    """The SQLite backend failed to execute a statement."""


class RecordNotFoundError(NotFoundError):
    """No record with the requested id exists in the collection."""


class DuplicateRecordError(ConflictError):
    """A uniqueness constraint rejected the write."""


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name contains only alphanumeric characters and underscores."""
    if not _IDENTIFIER.match(collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def _validate_field_names(fields: list[str]) -> None:
    for field in fields:
        if not _IDENTIFIER.match(field):
            msg = f"Invalid field name: {field}"
            raise ValueError(msg)


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding in filter queries via json.dumps."""
    return json.dumps(str(value))[1:-1]


def _convert_record(record: dict[str, Any]) -> dict[str, Any]:
    """Convert ids to strings and decode JSON columns for Pydantic compatibility."""
    converted = record.copy()
    for key, value in converted.items():
        if isinstance(value, int) and (key in _RELATION_FIELDS or key.endswith("_id")):
            converted[key] = str(value)
        elif key in _JSON_FIELDS and isinstance(value, str):
            converted[key] = json.loads(value)
    return converted


def _encode_value(value: Any) -> Any:  # noqa: ANN401
    """Convert a Python value to something SQLite can bind."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, dict | list):
        return json.dumps(value)
    return value


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


def _parse_value(value: str, *, is_like: bool = False) -> FilterValue:
    """Parse a string value to the appropriate Python type for SQLite."""
    if is_like:
        return "%" + value.replace("%", "\\%").replace("_", "\\_") + "%"

    if value.isdigit():
        return int(value)
    if value.replace(".", "", 1).isdigit():
        return float(value)

    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False

    return value


def _get_sql_operator(op: str) -> str:
    """Map filter operator to SQL operator."""
    op_map = {
        "=": "=",
        "!=": "!=",
        ">": ">",
        "<": "<",
        ">=": ">=",
        "<=": "<=",
        "~": "LIKE",
    }
    sql_op = op_map.get(op)
    if not sql_op:
        msg = f"Unsupported operator: {op}"
        raise ValueError(msg)
    return sql_op


def _parse_single_comparison(comparison: str) -> tuple[str, FilterValue]:
    """Parse a single comparison expression into a SQL condition and parameter."""
    match = re.fullmatch(
        r"""\s*(\w+)\s*(=|!=|>=|<=|>|<|~)\s*(['"])([^'"]*)\3\s*""",
        comparison,
    )
    if not match:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg)

    field = match.group(1)
    op = match.group(2)
    raw_value = match.group(4)

    sql_op = _get_sql_operator(op)
    is_like = sql_op == "LIKE"
    value = _parse_value(raw_value, is_like=is_like)

    if is_like:
        return f"{field} LIKE ? ESCAPE '\\'", value
    return f"{field} {sql_op} ?", value


def _parse_or_group(or_group: str) -> tuple[str, list[FilterValue]]:
    """Parse an OR group (with or without parentheses) into a SQL condition and parameters."""
    inner = or_group[1:-1] if or_group.startswith("(") and or_group.endswith(")") else or_group
    or_parts = [p.strip() for p in inner.split("||")]
    or_conditions = []
    or_params = []

    for part in or_parts:
        cond, value = _parse_single_comparison(part)
        or_conditions.append(cond)
        or_params.append(value)

    return f"({' OR '.join(or_conditions)})", or_params


def _split_and_conditions(filter_query: str) -> list[str]:
    """Split filter query by && while preserving parenthesized groups."""
    parts = []
    current = ""
    paren_depth = 0

    for char in filter_query:
        if char == "(":
            paren_depth += 1
        elif char == ")":
            paren_depth -= 1

        current += char

        if paren_depth == 0 and current.endswith("&&"):
            parts.append(current[:-2].strip())
            current = ""

    if current.strip():
        parts.append(current.strip())

    return parts


def parse_filter(filter_query: str) -> tuple[str, list[FilterValue]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list."""
    if not filter_query:
        return "", []

    parts = _split_and_conditions(filter_query)
    conditions = []
    params: list[FilterValue] = []

    for raw_part in parts:
        part = raw_part.strip()

        if (part.startswith("(") and part.endswith(")")) or "||" in part:
            cond, cond_params = _parse_or_group(part)
            conditions.append(cond)
            params.extend(cond_params)
        else:
            cond, value = _parse_single_comparison(part)
            conditions.append(cond)
            params.append(value)

    return " AND ".join(conditions), params


def _parse_sort(sort: str) -> str:
    """Translate `-field`, `+field` or `field [ASC|DESC]` into a safe ORDER BY clause."""
    default = "id ASC"
    if not sort:
        return default

    clauses = []
    for raw in sort.split(","):
        item = raw.strip()
        if item.startswith(("-", "+")):
            direction = "DESC" if item[0] == "-" else "ASC"
            item = f"{item[1:]} {direction}"
        match = re.match(r"^([A-Za-z_][A-Za-z0-9_]*)\s*(ASC|DESC)?$", item, re.IGNORECASE)
        if not match:
            logger.warning("Invalid sort parameter, using default", extra={"sort": sort})
            return default
        clauses.append(f"{match.group(1)} {(match.group(2) or 'ASC').upper()}")

    return ", ".join(clauses)


def _raise_storage_error(*, operation: str, collection: str, error: Exception) -> None:
    """Translate a SQLite failure into the storage error hierarchy."""
    if isinstance(error, sqlite3.IntegrityError) and "UNIQUE" in str(error):
        msg = f"Duplicate record in {collection}: {error}"
        logger.warning("unique_constraint_violation", extra={"collection": collection, "error": str(error)})
        raise DuplicateRecordError(msg) from error
    if isinstance(error, aiosqlite.OperationalError) and "no such table" in str(error):
        msg = f"Table '{collection}' does not exist. Call init_db() first."
        logger.error("Table not found", extra={"collection": collection})
        raise DatabaseError(msg) from error
    logger.error(f"{operation}_failed", extra={"collection": collection, "error": str(error)})
    msg = f"Failed to {operation.replace('_', ' ')} in {collection}: {error}"
    raise DatabaseError(msg) from error


_db_connections: dict[tuple[int, int, str], aiosqlite.Connection] = {}
_db_lock = asyncio.Lock()


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Get or create a cached connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop = asyncio.get_event_loop()
    loop_id = id(loop)
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    # Check if we have a cached connection and verify the loop is still valid
    if cache_key in _db_connections:
        cached_conn = _db_connections[cache_key]
        if not loop.is_closed():
            return cached_conn
        async with _db_lock:
            _db_connections.pop(cache_key, None)

    async with _db_lock:
        # Double-check after acquiring lock
        if cache_key in _db_connections:
            return _db_connections[cache_key]

        path.parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(str(path))
        await conn.execute("PRAGMA foreign_keys = ON")
        await conn.execute("PRAGMA journal_mode = WAL")

        _db_connections[cache_key] = conn

        logger.info(
            "Created new SQLite connection",
            extra={"db_path": str(path), "thread_id": thread_id, "loop_id": loop_id},
        )
        return conn


async def close_connection(*, db_path: str | None = None) -> None:
    """Close the cached SQLite connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop = asyncio.get_event_loop()
    loop_id = id(loop)
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    if cache_key not in _db_connections:
        return

    try:
        async with _db_lock:
            if cache_key in _db_connections:
                conn = _db_connections[cache_key]
                await conn.close()
                del _db_connections[cache_key]
                logger.info(
                    "Closed SQLite connection",
                    extra={"thread_id": thread_id, "loop_id": loop_id, "db_path": str(path)},
                )
    except Exception as e:
        logger.warning(
            "Error closing SQLite connection",
            extra={"error": str(e), "thread_id": thread_id, "loop_id": loop_id},
        )


async def init_db(*, db_path: str | None = None) -> None:
    """Initialize the database schema by delegating to schema.init_db()."""
    from src.core import schema

    await schema.init_db(db_path=db_path)


async def _fetch_one(conn: aiosqlite.Connection, query: str, params: list[Any] | tuple[Any, ...]) -> dict | None:
    cursor = await conn.execute(query, params)
    row = await cursor.fetchone()
    if row is None:
        return None
    columns = [description[0] for description in cursor.description]
    return _convert_record(dict(zip(columns, row, strict=True)))


async def create_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert a new record and return it with its assigned id.

    Raises:
        DuplicateRecordError: If a uniqueness constraint rejects the insert
        DatabaseError: For any other storage failure
    """
    _validate_collection_name(collection)
    _validate_field_names(list(data))
    try:
        conn = await get_connection()

        columns = list(data.keys())
        columns_str = ", ".join(columns)
        placeholders_str = ", ".join("?" for _ in columns)
        values = [_encode_value(data[key]) for key in columns]

        query = f"INSERT INTO {collection} ({columns_str}) VALUES ({placeholders_str})"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, values)
        await conn.commit()

        record_id = cursor.lastrowid
        result = await _fetch_one(conn, f"SELECT * FROM {collection} WHERE id = ?", (record_id,))  # noqa: S608

        logger.info("Created record", extra={"collection": collection, "record_id": record_id})
        return result or {}
    except Exception as e:
        _raise_storage_error(operation="create_record", collection=collection, error=e)
        raise


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single record by ID, raising RecordNotFoundError if not found."""
    _validate_collection_name(collection)
    try:
        conn = await get_connection()
        record = await _fetch_one(conn, f"SELECT * FROM {collection} WHERE id = ?", (int(record_id),))  # noqa: S608
    except Exception as e:
        _raise_storage_error(operation="get_record", collection=collection, error=e)
        raise

    if record is None:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)

    logger.debug("Retrieved record", extra={"collection": collection, "record_id": record_id})
    return record


async def update_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Update a record by ID and return the updated record."""
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    _validate_collection_name(collection)
    _validate_field_names(list(data))
    try:
        conn = await get_connection()

        set_clause = ", ".join(f"{key} = ?" for key in data)
        values = [_encode_value(val) for val in data.values()]
        values.append(int(record_id))

        query = f"UPDATE {collection} SET {set_clause}, updated = datetime('now') WHERE id = ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, values)
        await conn.commit()
        updated_rows = cursor.rowcount
    except Exception as e:
        _raise_storage_error(operation="update_record", collection=collection, error=e)
        raise

    if updated_rows == 0:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)

    logger.info("Updated record", extra={"collection": collection, "record_id": record_id})
    return await get_record(collection=collection, record_id=record_id)


async def update_record_if(
    *,
    collection: str,
    record_id: str,
    data: dict[str, Any],
    condition: str,
) -> dict[str, Any] | None:
    """Update a record only while `condition` still holds (compare-and-swap).

    The condition uses the same filter syntax as list_records and is evaluated by
    SQLite in the same statement as the write, so concurrent callers cannot both
    win.

    Returns:
        The updated record, or None if the condition no longer held

    Raises:
        RecordNotFoundError: If the record does not exist at all
    """
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    _validate_collection_name(collection)
    _validate_field_names(list(data))
    where_clause, where_params = parse_filter(condition)
    if not where_clause:
        msg = "Conditional update requires a condition"
        raise ValueError(msg)

    try:
        conn = await get_connection()

        set_clause = ", ".join(f"{key} = ?" for key in data)
        values: list[Any] = [_encode_value(val) for val in data.values()]
        values.append(int(record_id))
        values.extend(where_params)

        query = f"UPDATE {collection} SET {set_clause}, updated = datetime('now') WHERE id = ? AND {where_clause}"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, values)
        await conn.commit()
        updated_rows = cursor.rowcount
    except Exception as e:
        _raise_storage_error(operation="update_record_if", collection=collection, error=e)
        raise

    if updated_rows == 0:
        # Raises RecordNotFoundError when the row is missing rather than stale
        await get_record(collection=collection, record_id=record_id)
        logger.info(
            "Conditional update skipped",
            extra={"collection": collection, "record_id": record_id, "condition": condition},
        )
        return None

    logger.info("Conditionally updated record", extra={"collection": collection, "record_id": record_id})
    return await get_record(collection=collection, record_id=record_id)


async def update_records(*, collection: str, filter_query: str, data: dict[str, Any]) -> int:
    """Bulk update every record matching the filter and return the number changed."""
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    _validate_collection_name(collection)
    _validate_field_names(list(data))
    where_clause, where_params = parse_filter(filter_query)
    if not where_clause:
        msg = "Bulk update requires a filter"
        raise ValueError(msg)

    try:
        conn = await get_connection()

        set_clause = ", ".join(f"{key} = ?" for key in data)
        values: list[Any] = [_encode_value(val) for val in data.values()]
        values.extend(where_params)

        query = f"UPDATE {collection} SET {set_clause}, updated = datetime('now') WHERE {where_clause}"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, values)
        await conn.commit()
    except Exception as e:
        _raise_storage_error(operation="update_records", collection=collection, error=e)
        raise

    logger.info("Bulk updated records", extra={"collection": collection, "count": cursor.rowcount})
    return cursor.rowcount


async def increment_record(*, collection: str, record_id: str, increments: dict[str, int]) -> dict[str, Any]:
    """Atomically add to integer columns of a record and return it."""
    if not increments:
        msg = "Empty increment payload"
        raise ValueError(msg)

    _validate_collection_name(collection)
    _validate_field_names(list(increments))
    try:
        conn = await get_connection()

        set_clause = ", ".join(f"{key} = COALESCE({key}, 0) + ?" for key in increments)
        values: list[Any] = list(increments.values())
        values.append(int(record_id))

        query = f"UPDATE {collection} SET {set_clause}, updated = datetime('now') WHERE id = ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, values)
        await conn.commit()
        updated_rows = cursor.rowcount
    except Exception as e:
        _raise_storage_error(operation="increment_record", collection=collection, error=e)
        raise

    if updated_rows == 0:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)

    return await get_record(collection=collection, record_id=record_id)


async def upsert_record(*, collection: str, data: dict[str, Any], conflict_fields: list[str]) -> dict[str, Any]:
    """Insert a record, or overwrite the row that collides on `conflict_fields`."""
    _validate_collection_name(collection)
    _validate_field_names([*data, *conflict_fields])
    missing = [field for field in conflict_fields if field not in data]
    if missing:
        msg = f"Upsert data is missing conflict fields: {missing}"
        raise ValueError(msg)

    try:
        conn = await get_connection()

        columns = list(data.keys())
        values = [_encode_value(data[key]) for key in columns]
        update_columns = [key for key in columns if key not in conflict_fields]
        update_clause = ", ".join(f"{key} = excluded.{key}" for key in update_columns)
        update_clause = f"{update_clause}, updated = datetime('now')" if update_clause else "updated = datetime('now')"

        query = (
            f"INSERT INTO {collection} ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)}) "  # noqa: S608 - collection is validated
            f"ON CONFLICT({', '.join(conflict_fields)}) DO UPDATE SET {update_clause}"
        )
        await conn.execute(query, values)
        await conn.commit()

        lookup = " AND ".join(f"{field} = ?" for field in conflict_fields)
        result = await _fetch_one(
            conn,
            f"SELECT * FROM {collection} WHERE {lookup}",  # noqa: S608 - collection is validated
            [_encode_value(data[field]) for field in conflict_fields],
        )
    except Exception as e:
        _raise_storage_error(operation="upsert_record", collection=collection, error=e)
        raise

    logger.info("Upserted record", extra={"collection": collection, "conflict_fields": conflict_fields})
    return result or {}


async def delete_record(*, collection: str, record_id: str) -> None:
    """Delete a record by ID, raising RecordNotFoundError if not found."""
    _validate_collection_name(collection)
    try:
        conn = await get_connection()

        query = f"DELETE FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, (int(record_id),))
        await conn.commit()
        deleted_rows = cursor.rowcount
    except Exception as e:
        _raise_storage_error(operation="delete_record", collection=collection, error=e)
        raise

    if deleted_rows == 0:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)

    logger.info("Deleted record", extra={"collection": collection, "record_id": record_id})


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int = 50,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List records with optional filtering, sorting, and pagination."""
    _validate_collection_name(collection)
    try:
        conn = await get_connection()

        where_clause = ""
        params: list[Any] = []
        if filter_query:
            where_clause, params = parse_filter(filter_query)
            where_clause = f"WHERE {where_clause}"

        safe_sort = _parse_sort(sort)
        offset = (page - 1) * per_page

        query = f"SELECT * FROM {collection} {where_clause} ORDER BY {safe_sort} LIMIT ? OFFSET ?"  # noqa: S608 - collection is validated
        params.extend([per_page, offset])

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()

        columns = [description[0] for description in cursor.description]
        records = [_convert_record(dict(zip(columns, row, strict=True))) for row in rows]
    except Exception as e:
        _raise_storage_error(operation="list_records", collection=collection, error=e)
        raise

    logger.debug("Listed records", extra={"collection": collection, "count": len(records)})
    return records


async def count_records(*, collection: str, filter_query: str = "") -> int:
    """Count records matching the filter."""
    _validate_collection_name(collection)
    try:
        conn = await get_connection()

        where_clause, params = parse_filter(filter_query)
        where_sql = f"WHERE {where_clause}" if where_clause else ""

        cursor = await conn.execute(f"SELECT COUNT(*) FROM {collection} {where_sql}", params)  # noqa: S608 - collection is validated
        row = await cursor.fetchone()
    except Exception as e:
        _raise_storage_error(operation="count_records", collection=collection, error=e)
        raise

    return int(row[0]) if row else 0


async def get_first_record(*, collection: str, filter_query: str, sort: str = "") -> dict[str, Any] | None:
    """Return the first record matching the filter, or None."""
    records = await list_records(collection=collection, filter_query=filter_query, sort=sort, per_page=1)
    return records[0] if records else None
