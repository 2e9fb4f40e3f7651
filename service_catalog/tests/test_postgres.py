"""
Unit tests for the PostgreSQL record store.
"""

import pytest
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import asyncpg

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import NotFoundError, StoreError, ValidationError
from service_catalog.app.catalog.models import ProductDraft
from service_catalog.app.persistence.postgres import PostgreSQLPersistence


PRODUCT_ID = uuid.UUID("6f9b1c4e-0d7a-4c3e-9a51-2f0f3b1e8d11")


def make_row(**overrides):
    row = {
        "id": PRODUCT_ID,
        "name": "Widget",
        "price": Decimal("9.99"),
        "category": "tools",
        "description": None,
        "is_active": True,
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row


class TestPostgreSQLPersistence:
    """Test cases for PostgreSQLPersistence."""

    @pytest.fixture
    def conn(self):
        return AsyncMock()

    @pytest.fixture
    def persistence(self, conn):
        acquire_cm = MagicMock()
        acquire_cm.__aenter__ = AsyncMock(return_value=conn)
        acquire_cm.__aexit__ = AsyncMock(return_value=False)

        pool = MagicMock()
        pool.acquire.return_value = acquire_cm

        persistence = PostgreSQLPersistence("postgres://localhost:5432/products_db")
        persistence.pool = pool
        return persistence

    @pytest.mark.asyncio
    async def test_find_by_id_returns_product(self, persistence, conn):
        conn.fetchrow.return_value = make_row()

        product = await persistence.find_by_id(str(PRODUCT_ID), active_only=True)

        assert product.id == str(PRODUCT_ID)
        assert product.price == Decimal("9.99")
        query = conn.fetchrow.await_args.args[0]
        assert "is_active = TRUE" in query

    @pytest.mark.asyncio
    async def test_find_by_id_with_malformed_id_is_absent(self, persistence, conn):
        assert await persistence.find_by_id("not-a-uuid") is None
        conn.fetchrow.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_find_all_filters_only_when_asked(self, persistence, conn):
        conn.fetch.return_value = [make_row(), make_row(is_active=False)]

        products = await persistence.find_all()
        assert len(products) == 2
        assert "is_active" not in conn.fetch.await_args.args[0]

        await persistence.find_all(active_only=True)
        assert "is_active = TRUE" in conn.fetch.await_args.args[0]

    @pytest.mark.asyncio
    async def test_category_and_search_are_newest_first(self, persistence, conn):
        conn.fetch.return_value = []

        await persistence.find_by_category("tools")
        query = conn.fetch.await_args.args[0]
        assert "ORDER BY created_at DESC" in query
        assert "is_active = TRUE" in query

        await persistence.search("wid")
        query, term = conn.fetch.await_args.args
        assert "strpos(lower(name), lower($1))" in query
        assert "ORDER BY created_at DESC" in query
        assert term == "wid"

    @pytest.mark.asyncio
    async def test_insert_returns_stored_product(self, persistence, conn):
        conn.fetchrow.return_value = make_row()

        product = await persistence.insert(ProductDraft(name="Widget", price=Decimal("9.99"), category="tools"))

        assert product.name == "Widget"
        args = conn.fetchrow.await_args.args
        assert isinstance(args[1], uuid.UUID)
        assert args[2:5] == ("Widget", Decimal("9.99"), "tools")

    @pytest.mark.asyncio
    async def test_insert_rejects_negative_price_before_query(self, persistence, conn):
        with pytest.raises(ValidationError):
            await persistence.insert(ProductDraft(name="Widget", price=Decimal("-1")))

        conn.fetchrow.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_builds_assignments_for_patch(self, persistence, conn):
        conn.fetchrow.return_value = make_row(price=Decimal("19.99"))

        product = await persistence.update(str(PRODUCT_ID), {"price": Decimal("19.99")})

        assert product.price == Decimal("19.99")
        query, product_id, price = conn.fetchrow.await_args.args
        assert "price = $2" in query
        assert "is_active = TRUE" in query
        assert product_id == PRODUCT_ID
        assert price == Decimal("19.99")

    @pytest.mark.asyncio
    async def test_update_inactive_or_missing_raises_not_found(self, persistence, conn):
        conn.fetchrow.return_value = None

        with pytest.raises(NotFoundError):
            await persistence.update(str(PRODUCT_ID), {"name": "Gadget"})

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_columns(self, persistence, conn):
        with pytest.raises(StoreError):
            await persistence.update(str(PRODUCT_ID), {"is_active": True})

        conn.fetchrow.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_soft_delete(self, persistence, conn):
        conn.fetchrow.return_value = make_row(is_active=False)

        product = await persistence.soft_delete(str(PRODUCT_ID))

        assert product.is_active is False
        assert "SET is_active = FALSE" in conn.fetchrow.await_args.args[0]

    @pytest.mark.asyncio
    async def test_soft_delete_missing_raises_not_found(self, persistence, conn):
        conn.fetchrow.return_value = None

        with pytest.raises(NotFoundError):
            await persistence.soft_delete(str(PRODUCT_ID))

    @pytest.mark.asyncio
    async def test_driver_errors_become_store_errors(self, persistence, conn):
        conn.fetch.side_effect = asyncpg.PostgresError("relation does not exist")

        with pytest.raises(StoreError):
            await persistence.find_all()

    @pytest.mark.asyncio
    async def test_calls_before_start_raise_store_error(self):
        persistence = PostgreSQLPersistence("postgres://localhost:5432/products_db")

        with pytest.raises(StoreError):
            await persistence.find_all()

        assert await persistence.health_check() is False
