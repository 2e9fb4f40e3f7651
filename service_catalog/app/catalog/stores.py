"""
Store interfaces consumed by the catalog coordinator.

The Redis and PostgreSQL implementations live in ``app.cache`` and
``app.persistence``; tests supply in-process fakes.
"""

from typing import Any, Dict, List, Optional, Protocol

from .models import Product, ProductDraft


class CacheStore(Protocol):
    """Key/value store with per-key TTL.

    Every method raises ``CacheUnavailableError`` on transport or
    serialization failure. A miss is not a failure.
    """

    async def get_json(self, key: str) -> Optional[Any]: ...

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> int: ...

    async def delete_by_pattern(self, pattern: str) -> int: ...

    async def keys(self, pattern: str = "*") -> List[str]: ...

    async def ping(self) -> bool: ...

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def health_check(self) -> bool: ...


class RecordStore(Protocol):
    """Durable product store.

    ``active_only`` selects whether soft-deleted rows are visible. Failures
    raise ``StoreError``; mutations on missing or inactive rows raise
    ``NotFoundError``.
    """

    async def find_all(self, active_only: bool = False) -> List[Product]: ...

    async def find_by_id(self, product_id: str, active_only: bool = False) -> Optional[Product]: ...

    async def find_by_category(self, category: str, active_only: bool = True) -> List[Product]: ...

    async def search(self, term: str, active_only: bool = True) -> List[Product]: ...

    async def insert(self, draft: ProductDraft) -> Product: ...

    async def update(self, product_id: str, patch: Dict[str, Any]) -> Product: ...

    async def soft_delete(self, product_id: str) -> Product: ...

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def health_check(self) -> bool: ...
