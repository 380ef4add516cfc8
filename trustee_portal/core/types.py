"""
Trustee Portal - Shared Type Definitions
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum


# =============================================================================
# Enums
# =============================================================================

class SubscriptionStatus(str, Enum):
    """Organization subscription status."""
    TRIAL = "trial"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"


class InvitationStatus(str, Enum):
    """Derived state of an invitation."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


# =============================================================================
# Time
# =============================================================================

def utcnow() -> datetime:
    """Naive UTC timestamp, matching the naive DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
