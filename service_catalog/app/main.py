"""
Catalog service.
"""

from typing import Optional

from fastapi import Query

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import CacheUnavailableError, StoreError
from shared.retry import RetryConfig, RetryError, retry_on_exception

from .catalog.coordinator import CatalogCoordinator
from .catalog.keys import CacheKeyPolicy
from .catalog.models import (
    CacheClearResponse,
    DeleteResponse,
    ProductCreateRequest,
    ProductCreateResponse,
    ProductDetailResponse,
    ProductListResponse,
    ProductUpdateRequest,
    ProductWriteResponse,
)
from .catalog.stores import CacheStore, RecordStore
from .cache.redis_cache import RedisCache
from .persistence.postgres import PostgreSQLPersistence


SERVICE_NAME = "catalog"
SERVICE_PORT = 8014


class CatalogService(BaseService):
    """Catalog service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        persistence: Optional[RecordStore] = None,
        cache: Optional[CacheStore] = None,
    ):
        config = config or get_config(SERVICE_NAME, SERVICE_PORT)

        self.persistence = persistence or PostgreSQLPersistence(
            config.postgres_dsn,
            min_size=config.postgres_min_pool_size,
            max_size=config.postgres_max_pool_size,
            command_timeout=config.postgres_command_timeout
        )
        self.cache = cache or RedisCache(config.redis_url, socket_timeout=config.redis_socket_timeout)

        super().__init__(SERVICE_NAME, SERVICE_PORT, config)

        self.coordinator = CatalogCoordinator(
            self.persistence,
            self.cache,
            CacheKeyPolicy(
                prefix=self.config.cache_prefix,
                default_ttl=self.config.cache_ttl_seconds,
                search_ttl=self.config.search_cache_ttl_seconds
            ),
            metrics=self.metrics,
            cache_enabled=self.config.cache_enabled,
            list_active_only=self.config.list_active_only,
        )

        self._setup_catalog_routes()

    def _setup_catalog_routes(self):
        """Set up catalog-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "Catalog Service",
                "version": "1.0.0",
                "capabilities": ["cache_aside", "soft_delete", "search"]
            }

        # Static paths are registered before /products/{product_id}

        @self.app.get("/products", response_model=ProductListResponse)
        async def list_products():
            """List products."""
            return await self.coordinator.list_products()

        @self.app.get("/products/search", response_model=ProductListResponse)
        async def search_products(q: str = Query(..., min_length=1, description="Search term")):
            """Search active products by name, description or category."""
            return await self.coordinator.search_products(q)

        @self.app.get("/products/category/{category}", response_model=ProductListResponse)
        async def list_by_category(category: str):
            """List active products in a category."""
            return await self.coordinator.list_by_category(category)

        @self.app.get("/products/cache/stats")
        async def cache_stats():
            """Report cache reachability and key count."""
            return await self.coordinator.cache_stats()

        @self.app.delete("/products/cache", response_model=CacheClearResponse)
        async def clear_cache():
            """Delete every cached catalog entry."""
            return await self.coordinator.clear_cache()

        @self.app.get("/products/{product_id}", response_model=ProductDetailResponse)
        async def get_product(product_id: str):
            """Get a single product."""
            return await self.coordinator.get_product(product_id)

        @self.app.post("/products", response_model=ProductCreateResponse, status_code=201)
        async def create_product(request: ProductCreateRequest):
            """Create a product."""
            return await self.coordinator.create_product(request.to_draft())

        @self.app.put("/products/{product_id}", response_model=ProductWriteResponse)
        async def update_product(product_id: str, request: ProductUpdateRequest):
            """Patch an active product."""
            return await self.coordinator.update_product(product_id, request.to_patch())

        @self.app.delete("/products/{product_id}", response_model=DeleteResponse)
        async def delete_product(product_id: str):
            """Soft-delete a product."""
            return await self.coordinator.delete_product(product_id)

    async def _check_dependencies(self):
        """Check catalog service dependencies."""
        dependencies = {}

        if not self.config.cache_enabled:
            dependencies["redis"] = "disabled"
        elif await self.cache.health_check():
            dependencies["redis"] = "ok"
        else:
            dependencies["redis"] = "error"

        if await self.persistence.health_check():
            dependencies["postgres"] = "ok"
        else:
            dependencies["postgres"] = "error"

        return dependencies

    async def start(self):
        """Open the record store and cache connections."""
        retry_config = RetryConfig(
            max_attempts=self.config.startup_retry_attempts,
            base_delay=self.config.startup_retry_delay
        )

        # The record store is required
        await retry_on_exception((StoreError,), retry_config)(self.persistence.start)()

        if self.config.cache_enabled:
            try:
                await retry_on_exception((CacheUnavailableError,), retry_config)(self.cache.start)()
            except RetryError as e:
                self.logger.warning(
                    "Cache unavailable at startup, serving from the record store",
                    error=str(e.last_exception)
                )

        self.logger.info("Catalog service started", cache_enabled=self.config.cache_enabled)

    async def stop(self):
        """Close the record store and cache connections."""
        await self.cache.stop()
        await self.persistence.stop()

        self.logger.info("Catalog service stopped")


def create_app(**kwargs):
    """Create catalog service application."""
    service = CatalogService(**kwargs)
    return service.app


if __name__ == "__main__":
    service = CatalogService()
    service.run()
