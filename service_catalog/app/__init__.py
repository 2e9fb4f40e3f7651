"""
Catalog Service package.

Serves a product catalog from PostgreSQL through a Redis cache-aside layer:

- app.main: API surface, lifecycle and health.
- app.catalog: Product models, cache key policy and the cache-aside coordinator.
- app.cache: Redis cache store.
- app.persistence: PostgreSQL record store.

The service holds no cross-request state; both stores are injected.
"""
