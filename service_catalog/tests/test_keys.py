"""
Unit tests for catalog cache key namespacing.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_catalog.app.catalog.keys import CacheKeyPolicy, QueryClass


class TestCacheKeyPolicy:
    """Test cases for CacheKeyPolicy."""

    @pytest.fixture
    def policy(self):
        return CacheKeyPolicy()

    def test_key_shapes(self, policy):
        assert policy.all_items() == "products:all"
        assert policy.item("8f1c") == "products:8f1c"
        assert policy.category("audio") == "products:category:audio"
        assert policy.search("usb hub") == "products:search:usb hub"

    def test_query_classes_do_not_collide(self, policy):
        keys = {
            policy.all_items(),
            policy.item("audio"),
            policy.category("audio"),
            policy.search("audio"),
        }
        assert len(keys) == 4

    def test_terms_are_not_normalized(self, policy):
        assert policy.search("Phone") != policy.search("phone")
        assert policy.category("Audio") != policy.category("audio")

    def test_ttls(self, policy):
        assert policy.ttl_for(QueryClass.ALL) == 30
        assert policy.ttl_for(QueryClass.ITEM) == 30
        assert policy.ttl_for(QueryClass.CATEGORY) == 30
        assert policy.ttl_for(QueryClass.SEARCH) == 60

    def test_custom_prefix_and_patterns(self):
        policy = CacheKeyPolicy(prefix="catalog", default_ttl=10, search_ttl=20)

        assert policy.all_items() == "catalog:all"
        assert policy.namespace_pattern() == "catalog:*"
        assert policy.category_pattern() == "catalog:category:*"
        assert policy.search_pattern() == "catalog:search:*"
        assert policy.ttl_for(QueryClass.SEARCH) == 20
