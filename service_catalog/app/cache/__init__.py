"""
Cache package for the Catalog Service.

Provides the Redis-backed cache store consulted by the catalog coordinator.
"""
