"""
In-process stand-ins for Redis and PostgreSQL used by the catalog tests.
"""

import json
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from fnmatch import fnmatchcase
from typing import Any, Dict, List, Optional, Set, Tuple

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import CacheUnavailableError, NotFoundError, StoreError
from service_catalog.app.catalog.models import Product, ProductDraft, validate_product_fields


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeCacheStore:
    """Dict-backed cache with TTL expiry driven by a FakeClock.

    Set ``available = False`` to fail every call, or add operation names to
    ``fail_operations`` to fail selectively.
    """

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock or FakeClock()
        self.entries: Dict[str, Tuple[str, float]] = {}
        self.available = True
        self.fail_operations: Set[str] = set()
        self.calls: List[Tuple[str, str]] = []
        self.ttls: Dict[str, int] = {}

    def _check(self, operation: str):
        if not self.available or operation in self.fail_operations:
            raise CacheUnavailableError(f"fake cache {operation} failure")

    def _live_keys(self) -> List[str]:
        now = self.clock()
        for key in [k for k, (_, expires_at) in self.entries.items() if expires_at <= now]:
            del self.entries[key]
        return list(self.entries)

    async def get_json(self, key: str) -> Optional[Any]:
        self.calls.append(("get", key))
        self._check("get")
        if key not in self._live_keys():
            return None
        return json.loads(self.entries[key][0])

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        self.calls.append(("set", key))
        self._check("set")
        self.entries[key] = (json.dumps(value), self.clock() + ttl_seconds)
        self.ttls[key] = ttl_seconds

    async def delete(self, key: str) -> int:
        self.calls.append(("delete", key))
        self._check("delete")
        if key in self._live_keys():
            del self.entries[key]
            return 1
        return 0

    async def delete_by_pattern(self, pattern: str) -> int:
        self.calls.append(("delete_by_pattern", pattern))
        self._check("delete_by_pattern")
        matched = [key for key in self._live_keys() if fnmatchcase(key, pattern)]
        for key in matched:
            del self.entries[key]
        return len(matched)

    async def keys(self, pattern: str = "*") -> List[str]:
        self.calls.append(("keys", pattern))
        self._check("keys")
        return [key for key in self._live_keys() if fnmatchcase(key, pattern)]

    async def ping(self) -> bool:
        self._check("ping")
        return True

    async def start(self) -> None:
        self._check("ping")

    async def stop(self) -> None:
        return None

    async def health_check(self) -> bool:
        return self.available

    def put_raw(self, key: str, raw: str, ttl_seconds: int = 30):
        self.entries[key] = (raw, self.clock() + ttl_seconds)


class FakeRecordStore:
    """Dict-backed record store with the same filtering rules as PostgreSQL."""

    def __init__(self):
        self.rows: Dict[str, Product] = {}
        self.fail = False
        self.calls: List[str] = []
        self._created_base = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _check(self, operation: str):
        self.calls.append(operation)
        if self.fail:
            raise StoreError(f"fake store {operation} failure")

    def _visible(self, active_only: bool) -> List[Product]:
        return [replace(p) for p in self.rows.values() if p.is_active or not active_only]

    async def find_all(self, active_only: bool = False) -> List[Product]:
        self._check("find_all")
        return self._visible(active_only)

    async def find_by_id(self, product_id: str, active_only: bool = False) -> Optional[Product]:
        self._check("find_by_id")
        product = self.rows.get(product_id)
        if product is None or (active_only and not product.is_active):
            return None
        return replace(product)

    async def find_by_category(self, category: str, active_only: bool = True) -> List[Product]:
        self._check("find_by_category")
        products = [p for p in self._visible(active_only) if p.category == category]
        return sorted(products, key=lambda p: p.created_at, reverse=True)

    async def search(self, term: str, active_only: bool = True) -> List[Product]:
        self._check("search")
        needle = term.lower()
        products = [
            p for p in self._visible(active_only)
            if any(needle in (value or "").lower() for value in (p.name, p.description, p.category))
        ]
        return sorted(products, key=lambda p: p.created_at, reverse=True)

    async def insert(self, draft: ProductDraft) -> Product:
        self._check("insert")
        fields = validate_product_fields({"name": draft.name, "price": draft.price, "category": draft.category})
        product = Product(
            id=str(uuid.uuid4()),
            name=fields["name"],
            price=fields["price"],
            category=draft.category,
            description=draft.description,
            created_at=self._created_base + timedelta(seconds=len(self.rows)),
        )
        self.rows[product.id] = product
        return replace(product)

    async def update(self, product_id: str, patch: Dict[str, Any]) -> Product:
        self._check("update")
        patch = validate_product_fields(dict(patch))
        product = self.rows.get(product_id)
        if product is None or not product.is_active:
            raise NotFoundError(f"Product with ID {product_id} not found")
        updated = replace(product, **patch)
        self.rows[product_id] = updated
        return replace(updated)

    async def soft_delete(self, product_id: str) -> Product:
        self._check("soft_delete")
        product = self.rows.get(product_id)
        if product is None or not product.is_active:
            raise NotFoundError(f"Product with ID {product_id} not found")
        deleted = replace(product, is_active=False)
        self.rows[product_id] = deleted
        return replace(deleted)

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        return None

    async def health_check(self) -> bool:
        return not self.fail


class DummyMetrics:
    """Minimal metrics collector stub."""

    def __init__(self):
        self.counters = []
        self.histograms = []

    def increment_counter(self, metric_name: str, **labels):
        self.counters.append((metric_name, labels))

    def observe_histogram(self, metric_name: str, value: float, **labels):
        self.histograms.append((metric_name, value, labels))

    def count(self, metric_name: str, **labels) -> int:
        return sum(
            1 for name, recorded in self.counters
            if name == metric_name and all(recorded.get(k) == v for k, v in labels.items())
        )
