"""
Cache key namespacing for catalog queries.

Each query class owns a disjoint sub-prefix under the shared prefix, so keys
from different classes never collide. Category names and search terms are
used verbatim; ``Phone`` and ``phone`` are cached independently.
"""

from dataclasses import dataclass
from enum import Enum


class QueryClass(str, Enum):
    """Logical catalog query kinds."""
    ALL = "all"
    ITEM = "item"
    CATEGORY = "category"
    SEARCH = "search"


DEFAULT_TTL_SECONDS = 30
DEFAULT_SEARCH_TTL_SECONDS = 60


@dataclass(frozen=True)
class CacheKeyPolicy:
    """Maps a query description to its cache key and TTL."""

    prefix: str = "products"
    default_ttl: int = DEFAULT_TTL_SECONDS
    search_ttl: int = DEFAULT_SEARCH_TTL_SECONDS

    def all_items(self) -> str:
        return f"{self.prefix}:all"

    def item(self, product_id: str) -> str:
        return f"{self.prefix}:{product_id}"

    def category(self, category: str) -> str:
        return f"{self.prefix}:category:{category}"

    def search(self, term: str) -> str:
        return f"{self.prefix}:search:{term}"

    def ttl_for(self, query_class: QueryClass) -> int:
        if query_class is QueryClass.SEARCH:
            return self.search_ttl
        return self.default_ttl

    def namespace_pattern(self) -> str:
        """Glob matching every key under the shared prefix."""
        return f"{self.prefix}:*"

    def category_pattern(self) -> str:
        return f"{self.prefix}:category:*"

    def search_pattern(self) -> str:
        return f"{self.prefix}:search:*"
