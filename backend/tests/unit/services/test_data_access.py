"""
Unit Tests for generic table access
Tests for: chunked IN loads, cached reads, cache invalidation on write and commit
"""
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.skill import SkillCategory
from app.services import data_access
from app.services.query_cache import QueryCache, make_key

TABLE = SkillCategory.__tablename__
ALL_CATEGORIES = make_key(TABLE)


@pytest.fixture
def cache():
    return QueryCache()


@pytest.fixture
def selects(db_session: AsyncSession):
    """SELECT statements sent to the database while the test runs"""
    statements = []

    def record(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith("SELECT"):
            statements.append(statement)

    engine = db_session.bind.sync_engine
    event.listen(engine, "before_cursor_execute", record)
    yield statements
    event.remove(engine, "before_cursor_execute", record)


async def add_categories(db_session, cache, *names):
    return await data_access.insert(
        db_session, SkillCategory, [{"name": name} for name in names], cache=cache
    )


class TestBatchLoad:
    async def test_splits_ids_into_chunks(self, db_session, cache, selects):
        rows = await add_categories(db_session, cache, "Airway", "Cardiac", "Neuro", "Renal", "Skin")
        ids = [row["id"] for row in rows]

        loaded = await data_access.batch_load(db_session, SkillCategory, ids, chunk_size=2)

        assert sorted(row["name"] for row in loaded) == ["Airway", "Cardiac", "Neuro", "Renal", "Skin"]
        assert len(selects) == 3

    async def test_default_chunk_size_uses_one_query(self, db_session, cache, selects):
        rows = await add_categories(db_session, cache, "Airway", "Cardiac")

        loaded = await data_access.batch_load(db_session, SkillCategory, [r["id"] for r in rows])

        assert len(loaded) == 2
        assert len(selects) == 1

    async def test_unknown_ids_are_skipped(self, db_session, cache):
        rows = await add_categories(db_session, cache, "Airway")

        loaded = await data_access.batch_load(
            db_session, SkillCategory, [rows[0]["id"], "missing"], chunk_size=1
        )

        assert [row["name"] for row in loaded] == ["Airway"]

    async def test_other_column(self, db_session, cache):
        await add_categories(db_session, cache, "Airway", "Cardiac", "Neuro")

        loaded = await data_access.batch_load(
            db_session, SkillCategory, ["Neuro", "Airway"], column="name", chunk_size=1
        )

        assert sorted(row["name"] for row in loaded) == ["Airway", "Neuro"]

    async def test_empty_ids_skip_the_database(self, db_session, selects):
        assert await data_access.batch_load(db_session, SkillCategory, []) == []
        assert selects == []


class TestCachedQuery:
    async def test_second_read_served_from_cache(self, db_session, cache, selects):
        await add_categories(db_session, cache, "Airway")

        first = await data_access.query(db_session, SkillCategory, use_cache=True, cache=cache)
        second = await data_access.query(db_session, SkillCategory, use_cache=True, cache=cache)

        assert first == second
        assert len(selects) == 1
        assert cache.stats()["hits"] == 1


class TestWriteInvalidation:
    async def test_insert_clears_table_prefix_only(self, db_session, cache):
        cache.set(ALL_CATEGORIES, [])
        cache.set(make_key("skills"), [])

        await add_categories(db_session, cache, "Airway")

        assert cache.get(ALL_CATEGORIES) is None
        assert cache.get(make_key("skills")) == []

    async def test_update_clears_table_prefix(self, db_session, cache):
        rows = await add_categories(db_session, cache, "Airway")
        cache.set(ALL_CATEGORIES, rows)

        updated = await data_access.update(
            db_session, SkillCategory, {"id": rows[0]["id"]}, {"name": "Breathing"}, cache=cache
        )

        assert updated[0]["name"] == "Breathing"
        assert cache.get(ALL_CATEGORIES) is None

    async def test_remove_clears_table_prefix(self, db_session, cache):
        rows = await add_categories(db_session, cache, "Airway")
        cache.set(ALL_CATEGORIES, rows)

        removed = await data_access.remove(db_session, SkillCategory, {"id": rows[0]["id"]}, cache=cache)

        assert [row["name"] for row in removed] == ["Airway"]
        assert cache.get(ALL_CATEGORIES) is None

    async def test_rows_cached_before_commit_are_cleared_on_commit(self, db_session, cache):
        await add_categories(db_session, cache, "Airway")
        # a concurrent reader caches the committed state while the insert is still pending
        cache.set(ALL_CATEGORIES, [])

        await db_session.commit()

        assert cache.get(ALL_CATEGORIES) is None
        rows = await data_access.query(db_session, SkillCategory, use_cache=True, cache=cache)
        assert [row["name"] for row in rows] == ["Airway"]

    async def test_rows_cached_before_rollback_are_cleared(self, db_session, cache):
        await add_categories(db_session, cache, "Airway")
        cache.set(ALL_CATEGORIES, [{"name": "Airway"}])

        await db_session.rollback()

        assert cache.get(ALL_CATEGORIES) is None
        assert await data_access.query(db_session, SkillCategory, use_cache=True, cache=cache) == []

    async def test_commit_without_writes_keeps_cache(self, db_session, cache):
        cache.set(ALL_CATEGORIES, [])

        await db_session.commit()

        assert cache.get(ALL_CATEGORIES) == []

    async def test_reader_in_another_session_sees_committed_rows(self, db_session, cache):
        other_factory = async_sessionmaker(bind=db_session.bind, class_=AsyncSession, expire_on_commit=False)

        await add_categories(db_session, cache, "Airway")
        async with other_factory() as other:
            before = await data_access.query(other, SkillCategory, use_cache=True, cache=cache)
            await other.rollback()
        assert before == []

        await db_session.commit()

        async with other_factory() as other:
            after = await data_access.query(other, SkillCategory, use_cache=True, cache=cache)
        assert [row["name"] for row in after] == ["Airway"]
