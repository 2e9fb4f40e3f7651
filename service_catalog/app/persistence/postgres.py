"""
PostgreSQL record store for the Catalog Service.
"""

import asyncio
import uuid
from typing import Dict, Any, Optional, List

import asyncpg

from shared.errors import NotFoundError, StoreError
from shared.logging import get_logger
from ..catalog.models import Product, ProductDraft, validate_product_fields


_STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)

# Columns a patch may touch
_PATCHABLE_COLUMNS = ("name", "price", "category", "description")


def _parse_id(product_id: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(product_id))
    except ValueError:
        return None


class PostgreSQLPersistence:
    """PostgreSQL persistence layer for products."""

    def __init__(
        self,
        dsn: str,
        min_size: int = 2,
        max_size: int = 10,
        command_timeout: float = 30.0
    ):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = get_logger("catalog.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Open the pool and create the schema if missing."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout
            )

            await self._create_tables()

            self.logger.info("PostgreSQL persistence started")

        except _STORE_ERRORS as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise StoreError(f"PostgreSQL start failed: {e}") from e

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    def _acquire(self):
        if self.pool is None:
            raise StoreError("Record store not started")
        return self.pool.acquire()

    async def _create_tables(self):
        """Create database tables."""
        async with self._acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS products (
                    id UUID PRIMARY KEY,
                    name VARCHAR(255) NOT NULL,
                    price NUMERIC(12, 2) NOT NULL CHECK (price >= 0),
                    category VARCHAR(100),
                    description TEXT,
                    is_active BOOLEAN NOT NULL DEFAULT TRUE,
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_products_category ON products(category);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_products_active ON products(is_active);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_products_created ON products(created_at DESC);
            """)

    async def find_all(self, active_only: bool = False) -> List[Product]:
        """All products in arbitrary order, optionally excluding soft-deleted rows."""
        query = "SELECT * FROM products"
        if active_only:
            query += " WHERE is_active = TRUE"
        return await self._fetch("find_all", query)

    async def find_by_id(self, product_id: str, active_only: bool = False) -> Optional[Product]:
        parsed = _parse_id(product_id)
        if parsed is None:
            return None

        query = "SELECT * FROM products WHERE id = $1"
        if active_only:
            query += " AND is_active = TRUE"

        try:
            async with self._acquire() as conn:
                row = await conn.fetchrow(query, parsed)
        except _STORE_ERRORS as e:
            raise self._failed("find_by_id", e, product_id=product_id) from e

        return self._row_to_product(row) if row else None

    async def find_by_category(self, category: str, active_only: bool = True) -> List[Product]:
        """Products in ``category``, newest first."""
        query = "SELECT * FROM products WHERE category = $1"
        if active_only:
            query += " AND is_active = TRUE"
        query += " ORDER BY created_at DESC"
        return await self._fetch("find_by_category", query, category)

    async def search(self, term: str, active_only: bool = True) -> List[Product]:
        """Case-insensitive substring match on name, description or category, newest first."""
        # strpos avoids LIKE wildcard escaping for terms containing % or _
        query = """
            SELECT * FROM products
            WHERE (
                strpos(lower(name), lower($1)) > 0
                OR strpos(lower(coalesce(description, '')), lower($1)) > 0
                OR strpos(lower(coalesce(category, '')), lower($1)) > 0
            )
        """
        if active_only:
            query += " AND is_active = TRUE"
        query += " ORDER BY created_at DESC"
        return await self._fetch("search", query, term)

    async def insert(self, draft: ProductDraft) -> Product:
        """Insert a product; the store assigns id and creation time."""
        fields = validate_product_fields({
            "name": draft.name,
            "price": draft.price,
            "category": draft.category,
        })

        try:
            async with self._acquire() as conn:
                row = await conn.fetchrow("""
                    INSERT INTO products (id, name, price, category, description, is_active, created_at)
                    VALUES ($1, $2, $3, $4, $5, TRUE, NOW())
                    RETURNING *
                """,
                    uuid.uuid4(), fields["name"], fields["price"], draft.category, draft.description
                )
        except _STORE_ERRORS as e:
            raise self._failed("insert", e, name=draft.name) from e

        product = self._row_to_product(row)
        self.logger.info("Product saved", product_id=product.id, name=product.name)
        return product

    async def update(self, product_id: str, patch: Dict[str, Any]) -> Product:
        """Apply ``patch`` to an active product. Raises NotFoundError otherwise."""
        unknown = set(patch) - set(_PATCHABLE_COLUMNS)
        if unknown:
            raise StoreError("Unknown product fields", details={"fields": sorted(unknown)})
        patch = validate_product_fields(dict(patch))

        parsed = _parse_id(product_id)
        if parsed is None:
            raise NotFoundError(f"Product with ID {product_id} not found", details={"id": product_id})

        columns = [column for column in _PATCHABLE_COLUMNS if column in patch]
        assignments = ", ".join(f"{column} = ${index}" for index, column in enumerate(columns, start=2))
        values = [patch[column] for column in columns]

        try:
            async with self._acquire() as conn:
                row = await conn.fetchrow(f"""
                    UPDATE products SET {assignments}
                    WHERE id = $1 AND is_active = TRUE
                    RETURNING *
                """, parsed, *values)
        except _STORE_ERRORS as e:
            raise self._failed("update", e, product_id=product_id) from e

        if not row:
            raise NotFoundError(f"Product with ID {product_id} not found", details={"id": product_id})

        self.logger.info("Product updated", product_id=product_id, fields=columns)
        return self._row_to_product(row)

    async def soft_delete(self, product_id: str) -> Product:
        """Mark an active product inactive and return it."""
        parsed = _parse_id(product_id)
        if parsed is None:
            raise NotFoundError(f"Product with ID {product_id} not found", details={"id": product_id})

        try:
            async with self._acquire() as conn:
                row = await conn.fetchrow("""
                    UPDATE products SET is_active = FALSE
                    WHERE id = $1 AND is_active = TRUE
                    RETURNING *
                """, parsed)
        except _STORE_ERRORS as e:
            raise self._failed("soft_delete", e, product_id=product_id) from e

        if not row:
            raise NotFoundError(f"Product with ID {product_id} not found", details={"id": product_id})

        self.logger.info("Product soft-deleted", product_id=product_id)
        return self._row_to_product(row)

    async def count(self) -> int:
        """Get total number of products, including soft-deleted ones."""
        try:
            async with self._acquire() as conn:
                return await conn.fetchval("SELECT COUNT(*) FROM products") or 0
        except _STORE_ERRORS as e:
            raise self._failed("count", e) from e

    async def clear(self) -> None:
        """Remove every product row."""
        try:
            async with self._acquire() as conn:
                await conn.execute("TRUNCATE products")
        except _STORE_ERRORS as e:
            raise self._failed("clear", e) from e
        self.logger.info("Products table cleared")

    async def _fetch(self, operation: str, query: str, *args) -> List[Product]:
        try:
            async with self._acquire() as conn:
                rows = await conn.fetch(query, *args)
        except _STORE_ERRORS as e:
            raise self._failed(operation, e) from e
        return [self._row_to_product(row) for row in rows]

    def _failed(self, operation: str, exc: Exception, **context) -> StoreError:
        self.logger.error("PostgreSQL operation failed", operation=operation, error=str(exc), **context)
        return StoreError(f"{operation} failed: {exc}", details={"operation": operation})

    def _row_to_product(self, row) -> Product:
        """Convert database row to Product object."""
        return Product(
            id=str(row['id']),
            name=row['name'],
            price=row['price'],
            category=row['category'],
            description=row['description'],
            is_active=row['is_active'],
            created_at=row['created_at']
        )

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            async with self._acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except (StoreError, *_STORE_ERRORS):
            return False
