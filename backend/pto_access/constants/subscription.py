"""
Canonical subscription status vocabulary.

The billing processor (Stripe) reports subscription states with its own
vocabulary (trialing, canceled, past_due, ...). Organizations store the
canonical values below; webhook handlers normalize before writing and the
subscription gate normalizes again on read so legacy rows stay safe.

Mapping (billing -> canonical):
    trialing                                   -> trial
    active                                     -> active
    canceled / cancelled                       -> cancelled
    past_due / unpaid / incomplete /
    incomplete_expired / expired / paused      -> expired
    anything else                              -> expired (fail closed)
"""

from enum import Enum
from typing import Optional


class SubscriptionStatus(str, Enum):
    """Canonical organization subscription status."""
    TRIAL = "trial"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


# Statuses that grant access to gated operations
ENTITLED_STATUSES = frozenset({SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE})

BILLING_STATUS_MAP = {
    "trial": SubscriptionStatus.TRIAL,
    "trialing": SubscriptionStatus.TRIAL,
    "active": SubscriptionStatus.ACTIVE,
    "canceled": SubscriptionStatus.CANCELLED,
    "cancelled": SubscriptionStatus.CANCELLED,
    "past_due": SubscriptionStatus.EXPIRED,
    "unpaid": SubscriptionStatus.EXPIRED,
    "incomplete": SubscriptionStatus.EXPIRED,
    "incomplete_expired": SubscriptionStatus.EXPIRED,
    "expired": SubscriptionStatus.EXPIRED,
    "paused": SubscriptionStatus.EXPIRED,
}


def normalize_subscription_status(value: Optional[str]) -> SubscriptionStatus:
    """Map a stored or billing-processor status onto the canonical vocabulary."""
    if isinstance(value, SubscriptionStatus):
        return value
    if not value:
        return SubscriptionStatus.EXPIRED
    return BILLING_STATUS_MAP.get(str(value).strip().lower(), SubscriptionStatus.EXPIRED)
