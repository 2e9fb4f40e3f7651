"""
Cache-aside coordination for catalog reads and writes.

Reads check the cache first, fall back to the record store on a miss or a
cache error, and write the store result back with the query class's TTL.
Writes go to the record store first, then refresh or invalidate the keys
the mutation affects. Cache failures never reach the caller; they show up
only as ``cache_status`` in the response metadata. Store failures always
propagate.

Consistency is bounded staleness: invalidation is not atomic with the store
write, so a cached entry can lag the store by up to its TTL.
"""

import time
from decimal import InvalidOperation
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TYPE_CHECKING

from shared.errors import CacheUnavailableError, NotFoundError, StoreError
from shared.logging import get_logger
from shared.tracing import trace_operation

from .keys import CacheKeyPolicy, QueryClass
from .models import (
    CacheClearResponse,
    CacheStatus,
    CreateMeta,
    DeleteResponse,
    Product,
    ProductCreateResponse,
    ProductDetailResponse,
    ProductDraft,
    ProductListResponse,
    ProductResponse,
    ProductWriteResponse,
    ReadMeta,
    Source,
    WriteMeta,
)
from .stores import CacheStore, RecordStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class CatalogCoordinator:
    """Decides per operation whether to use the cache or the record store."""

    def __init__(
        self,
        records: RecordStore,
        cache: Optional[CacheStore],
        keys: Optional[CacheKeyPolicy] = None,
        *,
        metrics: Optional["MetricsCollector"] = None,
        cache_enabled: bool = True,
        list_active_only: bool = True,
    ):
        self.records = records
        self.cache = cache
        self.keys = keys or CacheKeyPolicy()
        self.metrics = metrics
        self.cache_enabled = cache_enabled and cache is not None
        self.list_active_only = list_active_only
        self.logger = get_logger("catalog.coordinator")

    # Reads

    async def list_products(self) -> ProductListResponse:
        """All products; soft-deleted rows are included only when list_active_only is off."""
        products, meta = await self._read(
            QueryClass.ALL,
            self.keys.all_items(),
            "find_all",
            lambda: self.records.find_all(active_only=self.list_active_only),
            many=True,
        )
        return ProductListResponse(data=[ProductResponse.from_product(p) for p in products], meta=meta)

    async def list_by_category(self, category: str) -> ProductListResponse:
        """Active products in ``category``, newest first."""
        products, meta = await self._read(
            QueryClass.CATEGORY,
            self.keys.category(category),
            "find_by_category",
            lambda: self.records.find_by_category(category, active_only=True),
            many=True,
        )
        return ProductListResponse(data=[ProductResponse.from_product(p) for p in products], meta=meta)

    async def search_products(self, term: str) -> ProductListResponse:
        """Active products whose name, description or category contains ``term``."""
        products, meta = await self._read(
            QueryClass.SEARCH,
            self.keys.search(term),
            "search",
            lambda: self.records.search(term, active_only=True),
            many=True,
        )
        return ProductListResponse(data=[ProductResponse.from_product(p) for p in products], meta=meta)

    async def get_product(self, product_id: str) -> ProductDetailResponse:
        """Single active product. Raises NotFoundError when missing or soft-deleted."""

        async def fetch() -> Product:
            product = await self.records.find_by_id(product_id, active_only=True)
            if product is None:
                raise NotFoundError(f"Product with ID {product_id} not found", details={"id": product_id})
            return product

        product, meta = await self._read(
            QueryClass.ITEM,
            self.keys.item(product_id),
            "find_by_id",
            fetch,
            many=False,
        )
        return ProductDetailResponse(data=ProductResponse.from_product(product), meta=meta)

    async def _read(
        self,
        query_class: QueryClass,
        key: str,
        operation: str,
        fetch: Callable[[], Awaitable[Any]],
        *,
        many: bool,
    ) -> Tuple[Any, ReadMeta]:
        total_start = time.perf_counter()
        cache_time_ms = 0.0

        if self.cache_enabled:
            lookup_start = time.perf_counter()
            payload = await self._cache_lookup(query_class, key, many)
            cache_time_ms = _elapsed_ms(lookup_start)

            if payload is not None:
                self.logger.info("Served from cache", key=key, query_class=query_class.value)
                return payload, ReadMeta(
                    source=Source.CACHE,
                    fetch_time_ms=cache_time_ms,
                    cache_time_ms=cache_time_ms,
                    total_time_ms=_elapsed_ms(total_start),
                    cached=True,
                    cache_status=CacheStatus.HIT,
                    count=len(payload) if many else None,
                )

        db_start = time.perf_counter()
        payload = await self._store_call(operation, fetch)
        db_time_ms = _elapsed_ms(db_start)

        stored = False
        if self.cache_enabled:
            populate_start = time.perf_counter()
            encoded = [p.to_dict() for p in payload] if many else payload.to_dict()
            stored = await self._cache_set(key, encoded, self.keys.ttl_for(query_class))
            cache_time_ms = round(cache_time_ms + _elapsed_ms(populate_start), 2)
            status = CacheStatus.CACHED if stored else CacheStatus.CACHE_FAILED
        else:
            status = CacheStatus.NOT_CACHED

        self.logger.info(
            "Served from database",
            key=key,
            query_class=query_class.value,
            cache_status=status.value,
            db_time_ms=db_time_ms
        )

        return payload, ReadMeta(
            source=Source.DATABASE,
            fetch_time_ms=db_time_ms,
            db_time_ms=db_time_ms,
            cache_time_ms=cache_time_ms if self.cache_enabled else None,
            total_time_ms=_elapsed_ms(total_start),
            cached=stored,
            cache_status=status,
            count=len(payload) if many else None,
        )

    # Writes

    async def create_product(self, draft: ProductDraft) -> ProductCreateResponse:
        """Insert, drop the aggregate keys, then cache the new item."""
        total_start = time.perf_counter()

        db_start = time.perf_counter()
        product = await self._store_call("insert", lambda: self.records.insert(draft))
        db_time_ms = _elapsed_ms(db_start)

        cache_cleared = False
        cache_time_ms: Optional[float] = None
        status = CacheStatus.NOT_CACHED

        if self.cache_enabled:
            cache_start = time.perf_counter()
            cache_cleared = await self._cache_delete(self.keys.all_items())
            collections_cleared = await self._invalidate_collections()
            stored = await self._cache_set(
                self.keys.item(product.id),
                product.to_dict(),
                self.keys.ttl_for(QueryClass.ITEM)
            )
            cache_time_ms = _elapsed_ms(cache_start)

            if cache_cleared and collections_cleared and stored:
                status = CacheStatus.CLEARED_AND_UPDATED
            else:
                status = CacheStatus.MANAGEMENT_FAILED

        self.logger.info("Product created", product_id=product.id, cache_status=status.value)

        return ProductCreateResponse(
            data=ProductResponse.from_product(product),
            meta=CreateMeta(
                create_time_ms=round(db_time_ms + (cache_time_ms or 0.0), 2),
                db_time_ms=db_time_ms,
                cache_time_ms=cache_time_ms,
                total_time_ms=_elapsed_ms(total_start),
                cache_cleared=cache_cleared,
                cache_status=status,
            ),
        )

    async def update_product(self, product_id: str, patch: Dict[str, Any]) -> ProductWriteResponse:
        """Patch an active product, then re-cache it and drop the aggregate keys."""
        total_start = time.perf_counter()

        db_start = time.perf_counter()
        product = await self._store_call("update", lambda: self.records.update(product_id, patch))
        db_time_ms = _elapsed_ms(db_start)

        cache_time_ms: Optional[float] = None
        status = CacheStatus.NOT_CACHED

        if self.cache_enabled:
            cache_start = time.perf_counter()
            stored = await self._cache_set(
                self.keys.item(product.id),
                product.to_dict(),
                self.keys.ttl_for(QueryClass.ITEM)
            )
            cleared = await self._cache_delete(self.keys.all_items())
            collections_cleared = await self._invalidate_collections()
            cache_time_ms = _elapsed_ms(cache_start)

            if stored and cleared and collections_cleared:
                status = CacheStatus.UPDATED
            else:
                status = CacheStatus.MANAGEMENT_FAILED

        self.logger.info(
            "Product updated",
            product_id=product.id,
            fields=sorted(patch),
            cache_status=status.value
        )

        return ProductWriteResponse(
            data=ProductResponse.from_product(product),
            meta=WriteMeta(
                db_time_ms=db_time_ms,
                cache_time_ms=cache_time_ms,
                total_time_ms=_elapsed_ms(total_start),
                cache_status=status,
            ),
        )

    async def delete_product(self, product_id: str) -> DeleteResponse:
        """Soft-delete, then drop the item key and the aggregate keys."""
        total_start = time.perf_counter()

        db_start = time.perf_counter()
        await self._store_call("soft_delete", lambda: self.records.soft_delete(product_id))
        db_time_ms = _elapsed_ms(db_start)

        cache_time_ms: Optional[float] = None
        status = CacheStatus.NOT_CACHED

        if self.cache_enabled:
            cache_start = time.perf_counter()
            item_cleared = await self._cache_delete(self.keys.item(product_id))
            all_cleared = await self._cache_delete(self.keys.all_items())
            collections_cleared = await self._invalidate_collections()
            cache_time_ms = _elapsed_ms(cache_start)

            if item_cleared and all_cleared and collections_cleared:
                status = CacheStatus.CLEARED
            else:
                status = CacheStatus.MANAGEMENT_FAILED

        self.logger.info("Product deleted", product_id=product_id, cache_status=status.value)

        return DeleteResponse(
            success=True,
            message=f"Product {product_id} deleted",
            meta=WriteMeta(
                db_time_ms=db_time_ms,
                cache_time_ms=cache_time_ms,
                total_time_ms=_elapsed_ms(total_start),
                cache_status=status,
            ),
        )

    # Administration

    async def clear_cache(self) -> CacheClearResponse:
        """Delete every key under the shared prefix."""
        if not self.cache_enabled:
            return CacheClearResponse(deleted=0, cache_status=CacheStatus.NOT_CACHED)

        pattern = self.keys.namespace_pattern()
        try:
            with trace_operation("cache.delete_by_pattern", **{"cache.pattern": pattern}):
                deleted = await self.cache.delete_by_pattern(pattern)
        except CacheUnavailableError as exc:
            self._cache_failed("delete_by_pattern", pattern, exc)
            return CacheClearResponse(deleted=exc.deleted, cache_status=CacheStatus.MANAGEMENT_FAILED)

        self.logger.info("Catalog cache cleared", pattern=pattern, deleted=deleted)
        return CacheClearResponse(deleted=deleted, cache_status=CacheStatus.CLEARED)

    async def cache_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "enabled": self.cache_enabled,
            "prefix": self.keys.prefix,
            "ttl_seconds": self.keys.default_ttl,
            "search_ttl_seconds": self.keys.search_ttl,
            "reachable": False,
            "keys": None,
        }
        if not self.cache_enabled:
            return stats

        try:
            keys: List[str] = await self.cache.keys(self.keys.namespace_pattern())
        except CacheUnavailableError as exc:
            self._cache_failed("keys", self.keys.namespace_pattern(), exc)
            return stats

        stats["reachable"] = True
        stats["keys"] = len(keys)
        return stats

    # Collaborator calls

    async def _store_call(self, operation: str, call: Callable[[], Awaitable[Any]]) -> Any:
        start = time.perf_counter()
        try:
            with trace_operation(f"store.{operation}"):
                return await call()
        except StoreError as exc:
            self.logger.error("Record store call failed", operation=operation, error=str(exc))
            raise
        finally:
            if self.metrics:
                self.metrics.observe_histogram(
                    "catalog_store_query_duration_seconds",
                    time.perf_counter() - start,
                    operation=operation
                )

    async def _cache_lookup(self, query_class: QueryClass, key: str, many: bool) -> Optional[Any]:
        try:
            with trace_operation("cache.get", **{"cache.key": key}):
                raw = await self.cache.get_json(key)
        except CacheUnavailableError as exc:
            self._cache_failed("get", key, exc)
            self._count("catalog_cache_misses_total", query_class=query_class.value)
            return None

        if raw is None:
            self._count("catalog_cache_misses_total", query_class=query_class.value)
            return None

        try:
            payload = [Product.from_dict(item) for item in raw] if many else Product.from_dict(raw)
        except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
            self.logger.warning("Discarding undecodable cache entry", key=key, error=str(exc))
            self._count("catalog_cache_misses_total", query_class=query_class.value)
            return None

        self._count("catalog_cache_hits_total", query_class=query_class.value)
        return payload

    async def _cache_set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        try:
            with trace_operation("cache.set", **{"cache.key": key, "cache.ttl": ttl_seconds}):
                await self.cache.set_json(key, value, ttl_seconds)
        except CacheUnavailableError as exc:
            self._cache_failed("set", key, exc)
            return False
        return True

    async def _cache_delete(self, key: str) -> bool:
        try:
            with trace_operation("cache.delete", **{"cache.key": key}):
                await self.cache.delete(key)
        except CacheUnavailableError as exc:
            self._cache_failed("delete", key, exc)
            return False
        return True

    async def _invalidate_collections(self) -> bool:
        """Drop cached category and search results; a write can change any of them."""
        ok = True
        for pattern in (self.keys.category_pattern(), self.keys.search_pattern()):
            try:
                with trace_operation("cache.delete_by_pattern", **{"cache.pattern": pattern}):
                    await self.cache.delete_by_pattern(pattern)
            except CacheUnavailableError as exc:
                self._cache_failed("delete_by_pattern", pattern, exc)
                ok = False
        return ok

    def _cache_failed(self, operation: str, key: str, exc: CacheUnavailableError) -> None:
        self.logger.warning(
            "Cache operation failed, continuing without cache",
            operation=operation,
            key=key,
            error=str(exc)
        )
        self._count("catalog_cache_errors_total", operation=operation)

    def _count(self, metric_name: str, **labels) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, **labels)
