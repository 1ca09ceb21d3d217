"""Data stores for persistence and caching.

Stores handle:
- PostgreSQL: DB session, repositories, ORM operations (remote system of record)
- Redis: local durable cache with typed keys and in-process change notifications

No marketplace rules in stores - those belong in services.
"""
