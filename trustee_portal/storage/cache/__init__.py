"""
Trustee Portal - Cache Storage Module
"""

from __future__ import annotations

from trustee_portal.storage.cache.redis import (
    RedisCache,
    get_cache,
    init_cache,
    close_cache,
)

__all__ = [
    "RedisCache",
    "get_cache",
    "init_cache",
    "close_cache",
]
