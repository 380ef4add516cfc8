"""
Trustee Portal - Storage Module

This module provides storage backends for:
- Relational storage of users, organizations, memberships and invitations
- Cache storage (Redis)
- Rate limit counters (in-memory or Redis)
"""

from __future__ import annotations

from trustee_portal.storage.base import StorageBackend
from trustee_portal.storage.cache import (
    RedisCache,
    get_cache,
    init_cache,
    close_cache,
)
from trustee_portal.storage.counters import (
    CounterStore,
    InMemoryCounterStore,
    RedisCounterStore,
    WindowState,
)
from trustee_portal.storage.database import (
    Database,
    get_database,
    init_database,
    close_database,
    get_session,
)
from trustee_portal.storage.models import (
    Base,
    UserModel,
    OrganizationModel,
    OrganizationMemberModel,
    OrganizationInvitationModel,
    AuditLogModel,
)
from trustee_portal.storage.repository import (
    UserRepository,
    OrganizationRepository,
    MemberRepository,
    InvitationRepository,
    AuditLogRepository,
)

__all__ = [
    # Base classes
    "StorageBackend",
    # Cache
    "RedisCache",
    "get_cache",
    "init_cache",
    "close_cache",
    # Counters
    "CounterStore",
    "InMemoryCounterStore",
    "RedisCounterStore",
    "WindowState",
    # Database
    "Database",
    "get_database",
    "init_database",
    "close_database",
    "get_session",
    # Models
    "Base",
    "UserModel",
    "OrganizationModel",
    "OrganizationMemberModel",
    "OrganizationInvitationModel",
    "AuditLogModel",
    # Repositories
    "UserRepository",
    "OrganizationRepository",
    "MemberRepository",
    "InvitationRepository",
    "AuditLogRepository",
]
