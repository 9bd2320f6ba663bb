"""Subscription status values shared by the ledger, webhooks, and reader."""

import enum


class SubscriptionStatus(str, enum.Enum):
    """Subscription states as stored in the ledger.

    ``NONE`` is the reader's answer when no row exists and ``UNKNOWN`` stands
    for a Stripe status outside this set. Neither is ever stored.
    """

    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    UNPAID = "unpaid"
    CANCELED = "canceled"
    NONE = "none"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: str | None) -> "SubscriptionStatus":
        """Map a Stripe status string onto the enum, falling back to ``UNKNOWN``."""
        if not raw:
            return cls.UNKNOWN
        try:
            status = cls(raw.lower())
        except ValueError:
            return cls.UNKNOWN
        return cls.UNKNOWN if status is cls.NONE else status

    @property
    def storable(self) -> bool:
        return self not in (SubscriptionStatus.NONE, SubscriptionStatus.UNKNOWN)
