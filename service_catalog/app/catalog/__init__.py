"""
Catalog domain: product models, cache key namespacing, store interfaces and
the cache-aside coordinator.
"""

from .coordinator import CatalogCoordinator
from .keys import CacheKeyPolicy, QueryClass

__all__ = ["CatalogCoordinator", "CacheKeyPolicy", "QueryClass"]
