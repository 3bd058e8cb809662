"""
test_quote_store.py — Quote Revision Store and QuotePipeline tests.

Tests cover:
  - Append-only versioning, latest / history ordering
  - Optimistic concurrency (StaleVersionError)
  - Cascade delete
  - Concurrent appends against the same base version
  - SqlQuoteStore over SQLite (aiosqlite)
  - QuotePipeline generate / preview and risk-factor multipliers
"""

import asyncio
import threading

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.models.quote_models import IntegrityStatus, ShellCategory
from app.services.errors import PricingError, StaleVersionError
from app.services.integrity_engine import aggregate
from app.services.pricing_config import PricingRules
from app.services.pricing_engine import price_shells
from app.services.quote_pipeline import QuotePipeline
from app.services.quote_store import InMemoryQuoteStore, SqlQuoteStore
from app.services.shell_generator import generate_shells


@pytest.fixture
def priced(acceptance_record, cost_basis, rules):
    shells = price_shells(generate_shells(acceptance_record), cost_basis, rules)
    return shells, aggregate(shells, rules)


# ===========================================================================
# Class 1: In-memory store
# ===========================================================================

class TestInMemoryStore:

    def test_first_save_is_version_one(self, priced):
        store = InMemoryQuoteStore()
        quote = store.save("sr-1", *priced)
        assert quote.version == 1
        assert quote.scoping_record_id == "sr-1"
        assert quote.totals.total_client_price == 29_800.0
        assert store.latest("sr-1").id == quote.id

    def test_latest_none_for_unknown_record(self):
        store = InMemoryQuoteStore()
        assert store.latest("nope") is None
        assert store.history("nope") == []

    def test_history_grows_oldest_first(self, priced):
        store = InMemoryQuoteStore()
        for base in range(3):
            store.save("sr-1", *priced, base_version=base)
        history = store.history("sr-1")
        assert [q.version for q in history] == [1, 2, 3]
        assert store.latest("sr-1").version == 3

    def test_stale_save_rejected(self, priced):
        store = InMemoryQuoteStore()
        store.save("sr-1", *priced, base_version=0)
        with pytest.raises(StaleVersionError) as exc:
            store.save("sr-1", *priced, base_version=0)
        assert exc.value.expected_version == 0
        assert exc.value.actual_version == 1
        assert len(store.history("sr-1")) == 1

    def test_save_after_refetch_succeeds(self, priced):
        store = InMemoryQuoteStore()
        store.save("sr-1", *priced)
        latest = store.latest("sr-1")
        quote = store.save("sr-1", *priced, base_version=latest.version)
        assert quote.version == 2

    def test_prior_versions_unchanged(self, priced):
        store = InMemoryQuoteStore()
        shells, totals = priced
        store.save("sr-1", shells, totals)
        shells[0].client_price = 1.0
        totals.total_client_price = 1.0
        first = store.history("sr-1")[0]
        assert first.line_items[0].client_price == 23_950.0
        assert first.totals.total_client_price == 29_800.0

    def test_returned_quotes_are_copies(self, priced):
        store = InMemoryQuoteStore()
        store.save("sr-1", *priced)
        store.latest("sr-1").line_items[0].client_price = 1.0
        assert store.latest("sr-1").line_items[0].client_price == 23_950.0

    def test_records_are_independent(self, priced):
        store = InMemoryQuoteStore()
        store.save("sr-1", *priced)
        assert store.save("sr-2", *priced).version == 1

    def test_delete_record_cascades(self, priced):
        store = InMemoryQuoteStore()
        store.save("sr-1", *priced)
        store.save("sr-1", *priced, base_version=1)
        assert store.delete_record("sr-1") == 2
        assert store.latest("sr-1") is None
        assert store.save("sr-1", *priced).version == 1

    def test_concurrent_saves_one_wins(self, priced):
        store = InMemoryQuoteStore()
        results = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            try:
                store.save("sr-1", *priced, base_version=0)
                results.append("ok")
            except StaleVersionError:
                results.append("stale")

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results.count("ok") == 1
        assert results.count("stale") == 7
        assert [q.version for q in store.history("sr-1")] == [1]


# ===========================================================================
# Class 2: SQL store (SQLite via aiosqlite)
# ===========================================================================

async def _sql_store():
    from app.db import Base
    from app.models import orm_models  # noqa: F401
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine, SqlQuoteStore(async_sessionmaker(engine, expire_on_commit=False))


class TestSqlStore:

    def test_save_and_read_back(self, priced):
        async def scenario():
            engine, store = await _sql_store()
            try:
                saved = await store.save("sr-1", *priced)
                latest = await store.latest("sr-1")
                return saved, latest
            finally:
                await engine.dispose()

        saved, latest = asyncio.run(scenario())
        assert saved.version == 1
        assert latest.id == saved.id
        assert latest.totals.total_client_price == 29_800.0
        assert latest.totals.integrity_status == IntegrityStatus.PASSED
        assert len(latest.line_items) == 5
        assert latest.primary.cost_breakdown["modeling"] == 7_200.0

    def test_versioning_and_stale(self, priced):
        async def scenario():
            engine, store = await _sql_store()
            try:
                await store.save("sr-1", *priced, base_version=0)
                await store.save("sr-1", *priced, base_version=1)
                with pytest.raises(StaleVersionError):
                    await store.save("sr-1", *priced, base_version=1)
                return await store.history("sr-1")
            finally:
                await engine.dispose()

        history = asyncio.run(scenario())
        assert [q.version for q in history] == [1, 2]

    def test_delete_record(self, priced):
        async def scenario():
            engine, store = await _sql_store()
            try:
                await store.save("sr-1", *priced)
                removed = await store.delete_record("sr-1")
                return removed, await store.latest("sr-1")
            finally:
                await engine.dispose()

        removed, latest = asyncio.run(scenario())
        assert removed == 1
        assert latest is None

    def test_created_by_round_trip(self, priced):
        async def scenario():
            engine, store = await _sql_store()
            try:
                await store.save("sr-1", *priced, created_by="pricing-chat")
                await store.save("sr-1", *priced, base_version=1)
                return await store.history("sr-1")
            finally:
                await engine.dispose()

        first, second = asyncio.run(scenario())
        assert first.created_by == "pricing-chat"
        assert first.to_dict()["created_by"] == "pricing-chat"
        assert second.created_by is None


# ===========================================================================
# Class 3: Pipeline
# ===========================================================================

class TestQuotePipeline:

    def test_generate_acceptance(self, pipeline, acceptance_record):
        quote = pipeline.generate(acceptance_record)
        assert quote.version == 1
        assert len(quote.line_items) == 5
        assert quote.totals.total_client_price == 29_800.0
        assert quote.totals.total_vendor_cost == 14_730.0
        assert quote.totals.gross_margin_percent == 50.57
        assert quote.integrity_status == IntegrityStatus.PASSED
        assert sum(s.is_primary for s in quote.line_items) == 1

    def test_regenerate_appends(self, pipeline, acceptance_record):
        pipeline.generate(acceptance_record)
        acceptance_record.areas[0].mepf.enabled = False
        second = pipeline.generate(acceptance_record, base_version=1)
        assert second.version == 2
        assert len(second.line_items) == 4
        assert pipeline.store.history(acceptance_record.id)[0].totals.total_client_price == 29_800.0

    def test_preview_does_not_save(self, pipeline, acceptance_record):
        priced = pipeline.preview(acceptance_record)
        assert priced.totals.total_client_price == 29_800.0
        assert pipeline.store.latest(acceptance_record.id) is None

    def test_failed_pricing_saves_nothing(self, pipeline, acceptance_record):
        acceptance_record.areas[0].lod = "400"
        with pytest.raises(PricingError):
            pipeline.generate(acceptance_record)
        assert pipeline.store.latest(acceptance_record.id) is None

    def test_risk_factor_multipliers(self, pipeline, acceptance_record):
        acceptance_record.risk_factors = ["occupied", "unknown_condition"]
        quote = pipeline.generate(acceptance_record)
        assert [m.name for m in quote.applied_multipliers] == ["Occupied Building"]
        assert quote.line_items[-1].category == ShellCategory.SUMMARY
        # 29,800 x 1.15
        assert abs(quote.totals.total_client_price - 34_270.0) < 0.01
        assert quote.totals.total_vendor_cost == 14_730.0

    def test_rush_timeline(self, pipeline, acceptance_record):
        priced = pipeline.preview(acceptance_record, timeline="rush")
        assert [m.name for m in priced.applied_multipliers] == ["Rush (< 1 week)"]
        assert abs(priced.totals.total_client_price - 44_700.0) < 0.01

    def test_configured_multiplier_not_doubled(self, cost_basis, acceptance_record):
        rules = PricingRules.from_dict({"multipliers": [{"name": "Occupied Building", "factor": 1.15}]})
        pipeline = QuotePipeline(cost_basis, rules)
        acceptance_record.risk_factors = ["occupied"]
        priced = pipeline.preview(acceptance_record)
        assert len(priced.applied_multipliers) == 1

    def test_below_threshold_quote_is_saved_blocked(self, cost_basis, acceptance_record):
        thin = PricingRules.from_dict({"cogs_multiplier": 1.2, "default_addon_markup": 1.1,
                                       "addon_markups": {}})
        quote = QuotePipeline(cost_basis, thin).generate(acceptance_record)
        assert quote.integrity_status == IntegrityStatus.BLOCKED


# ===========================================================================
# Class 4: Database helpers
# ===========================================================================

class TestDatabaseHelpers:

    @pytest.mark.parametrize("url, expected", [
        ("postgres://u:p@h:5432/db", "postgresql+asyncpg://u:p@h:5432/db"),
        ("postgresql://u:p@h:5432/db", "postgresql+asyncpg://u:p@h:5432/db"),
        ("postgresql+asyncpg://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
        ("sqlite+aiosqlite:///q.db", "sqlite+aiosqlite:///q.db"),
    ])
    def test_normalise_database_url(self, url, expected):
        from app.db import normalise_database_url
        assert normalise_database_url(url) == expected

    def test_missing_url_uses_dev_placeholder(self):
        from app.db import normalise_database_url
        assert normalise_database_url("").startswith("postgresql+asyncpg://")

    def test_init_db_creates_table(self):
        from sqlalchemy import inspect

        from app.db import init_db

        async def scenario():
            engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
            try:
                created = await init_db(bind=engine)
                async with engine.connect() as conn:
                    exists = await conn.run_sync(lambda c: inspect(c).has_table("quote_versions"))
                return created, exists
            finally:
                await engine.dispose()

        assert asyncio.run(scenario()) == (True, True)

    def test_current_version_sql(self, priced):
        async def scenario():
            engine, store = await _sql_store()
            try:
                before = await store.current_version("sr-1")
                await store.save("sr-1", *priced)
                return before, await store.current_version("sr-1")
            finally:
                await engine.dispose()

        assert asyncio.run(scenario()) == (0, 1)

    def test_pipeline_agenerate_over_sql(self, cost_basis, rules, acceptance_record):
        async def scenario():
            engine, store = await _sql_store()
            try:
                quote = await QuotePipeline(cost_basis, rules, store).agenerate(acceptance_record)
                return quote, await store.latest(acceptance_record.id)
            finally:
                await engine.dispose()

        quote, latest = asyncio.run(scenario())
        assert quote.version == latest.version == 1
        assert latest.totals.gross_margin_percent == 50.57
