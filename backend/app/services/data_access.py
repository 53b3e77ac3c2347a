"""
Generic Table Access
Equality-filtered reads (optionally cached), chunked IN loads and writes that
invalidate the cached reads of the table they touch, once on flush and again
when the session commits or rolls back.
"""

import enum
import time
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type, Union

from sqlalchemy import event, select, delete as sa_delete, inspect
from sqlalchemy.orm import Session
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ResourceNotFoundError
from app.core.logging_config import logger
from app.services.query_cache import query_cache, make_key, QueryCache

Row = Dict[str, Any]


def _serialize(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def row_to_dict(obj: Any) -> Row:
    """Column values of a mapped instance, datetimes as ISO strings"""
    mapper = inspect(obj).mapper
    return {
        attr.key: _serialize(getattr(obj, attr.key))
        for attr in mapper.column_attrs
    }


def _table_name(model: Type) -> str:
    return model.__tablename__


def _apply_match(stmt, model: Type, match: Optional[Dict[str, Any]]):
    for column, value in (match or {}).items():
        stmt = stmt.where(getattr(model, column) == value)
    return stmt


async def query(
    db: AsyncSession,
    model: Type,
    match: Optional[Dict[str, Any]] = None,
    single: bool = False,
    use_cache: bool = False,
    ttl: Optional[float] = None,
    order_by: Optional[Any] = None,
    cache: QueryCache = query_cache,
) -> Union[List[Row], Row]:
    """
    Rows of model matching every column == value pair in match.

    With single=True returns one row dict and raises ResourceNotFoundError
    when nothing matches.
    """
    table = _table_name(model)

    async def fetch():
        started = time.perf_counter()
        stmt = _apply_match(select(model), model, match)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        result = await db.execute(stmt)
        rows = [row_to_dict(obj) for obj in result.scalars().all()]
        logger.log_db_query(
            "SELECT", table, (time.perf_counter() - started) * 1000, rows_affected=len(rows)
        )
        if single:
            return rows[0] if rows else None
        return rows

    if use_cache:
        key = make_key(table, "*", match, single)
        data = await cache.get_or_fetch(key, fetch, ttl)
    else:
        data = await fetch()

    if single and data is None:
        resource_id = str((match or {}).get("id", match))
        raise ResourceNotFoundError(table, resource_id)
    return data


async def batch_load(
    db: AsyncSession,
    model: Type,
    ids: Sequence[Any],
    column: str = "id",
    chunk_size: Optional[int] = None,
) -> List[Row]:
    """Load rows whose column is in ids, one IN query per chunk"""
    if not ids:
        return []

    size = chunk_size or settings.BATCH_LOAD_CHUNK_SIZE
    ids = list(ids)
    attr = getattr(model, column)
    rows: List[Row] = []

    for start in range(0, len(ids), size):
        chunk = ids[start:start + size]
        result = await db.execute(select(model).where(attr.in_(chunk)))
        rows.extend(row_to_dict(obj) for obj in result.scalars().all())

    logger.log_db_query(
        "SELECT IN", _table_name(model), 0.0, rows_affected=len(rows),
        chunks=(len(ids) + size - 1) // size
    )
    return rows


# session.info key holding (cache, prefix) pairs to clear once the transaction ends
PENDING_INVALIDATIONS = "query_cache_pending"


def _invalidate(db: AsyncSession, model: Type, cache: QueryCache) -> None:
    prefix = f"{_table_name(model)}:"
    cache.clear(prefix=prefix)
    # Other sessions can re-cache the old committed rows until this transaction ends
    db.sync_session.info.setdefault(PENDING_INVALIDATIONS, set()).add((cache, prefix))


@event.listens_for(Session, "after_commit")
@event.listens_for(Session, "after_rollback")
def _clear_pending(session: Session) -> None:
    for cache, prefix in session.info.pop(PENDING_INVALIDATIONS, ()):
        cache.clear(prefix=prefix)


async def insert(
    db: AsyncSession,
    model: Type,
    data: Union[Row, Iterable[Row]],
    cache: QueryCache = query_cache,
) -> List[Row]:
    items = [data] if isinstance(data, dict) else list(data)
    objects = [model(**item) for item in items]
    db.add_all(objects)
    await db.flush()
    _invalidate(db, model, cache)
    return [row_to_dict(obj) for obj in objects]


async def update(
    db: AsyncSession,
    model: Type,
    match: Dict[str, Any],
    data: Row,
    cache: QueryCache = query_cache,
) -> List[Row]:
    result = await db.execute(_apply_match(select(model), model, match))
    objects = result.scalars().all()
    for obj in objects:
        for key, value in data.items():
            setattr(obj, key, value)
    await db.flush()
    _invalidate(db, model, cache)
    return [row_to_dict(obj) for obj in objects]


async def remove(
    db: AsyncSession,
    model: Type,
    match: Dict[str, Any],
    cache: QueryCache = query_cache,
) -> List[Row]:
    result = await db.execute(_apply_match(select(model), model, match))
    removed = [row_to_dict(obj) for obj in result.scalars().all()]
    if removed:
        await db.execute(_apply_match(sa_delete(model), model, match))
        await db.flush()
    _invalidate(db, model, cache)
    return removed
