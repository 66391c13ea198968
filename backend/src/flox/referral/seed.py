"""Launch referral codes loaded by ``flox seed-codes``."""

from datetime import datetime, timedelta
from typing import Any

from flox.referral.models import DiscountType


def default_codes(now: datetime | None = None) -> list[dict[str, Any]]:
    """Referral codes created when the database is first seeded.

    Relative expiries are computed from ``now`` so re-running the seed on a
    fresh database keeps the launch windows.
    """
    now = now or datetime.utcnow()

    return [
        {
            "code": "WELCOME10",
            "description": "10% off your first subscription",
            "discount_type": DiscountType.PERCENTAGE,
            "discount_value": 10,
        },
        {
            "code": "STUDENT",
            "description": "Student discount - 30% off",
            "discount_type": DiscountType.PERCENTAGE,
            "discount_value": 30,
        },
        {
            "code": "FRIEND",
            "description": "Friend referral - 15% off",
            "discount_type": DiscountType.PERCENTAGE,
            "discount_value": 15,
        },
        {
            "code": "TRIAL7",
            "description": "Extra 7 days free trial",
            "discount_type": DiscountType.TRIAL_EXTENSION,
            "discount_value": 7,
        },
        {
            "code": "SPECIAL50",
            "description": "Special offer - $5 off",
            "discount_type": DiscountType.FIXED,
            "discount_value": 500,  # $5.00 in cents
            "max_uses": 50,
        },
        {
            "code": "FLOXFREE100",
            "description": "100% Free Subscription - Limited Time Offer",
            "discount_type": DiscountType.FREE,
            "discount_value": 100,
            "max_uses": 50,
            "expires_at": now + timedelta(days=30),
        },
        {
            "code": "FLOX50OFF",
            "description": "50% Off Your Subscription",
            "discount_type": DiscountType.PERCENTAGE,
            "discount_value": 50,
            "max_uses": 100,
            "expires_at": now + timedelta(days=60),
        },
        {
            "code": "FLOX25OFF",
            "description": "25% Off Your Subscription",
            "discount_type": DiscountType.PERCENTAGE,
            "discount_value": 25,
        },
        {
            "code": "FLOXVIP",
            "description": "VIP Access - Lifetime Free",
            "discount_type": DiscountType.FREE,
            "discount_value": 100,
            "max_uses": 10,
        },
    ]
