"""
Persistence package for the Catalog Service (PostgreSQL record store).
"""
