"""User account and webhook bookkeeping models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel
from sqlalchemy import Column, DateTime, String

from flox.storage.db import Base


class SubscriptionStatus(str, Enum):
    """Subscription status stored on the user record."""
    NONE = "none"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class SubscriptionPlan(str, Enum):
    """Plans offered on the plan selection screen."""
    MONTHLY = "monthly"
    YEARLY = "yearly"


class UserAccount(Base):
    """User account for Flox.

    The id is the subject issued by the identity provider. Subscription
    fields are owned by the subscription services and reconciled with
    Stripe webhook notifications.
    """
    __tablename__ = "user_accounts"

    id = Column(String(64), primary_key=True)

    # Identity
    email = Column(String(255), unique=True, nullable=True, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)

    # Stripe
    stripe_customer_id = Column(String(255), nullable=True)
    stripe_subscription_id = Column(String(255), nullable=True, index=True)

    # Subscription
    subscription_status = Column(String(20), nullable=False, default=SubscriptionStatus.NONE.value)
    subscription_plan = Column(String(20), nullable=True)
    trial_ends_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<UserAccount(id={self.id}, email={self.email}, status={self.subscription_status})>"

    @property
    def display_name(self) -> str:
        """Name sent to Stripe when creating the customer."""
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or self.email or self.id


class ProcessedWebhookEvent(Base):
    """Tracks processed webhook events for idempotency.

    Stripe retries deliveries, so the same event id can arrive more than once.
    Stored in database to survive server restarts and work across multiple processes.
    """
    __tablename__ = "processed_webhook_events"

    id = Column(String(255), primary_key=True)  # Stripe event id
    event_type = Column(String(100), nullable=False)  # e.g., "invoice.payment_failed"
    source = Column(String(50), nullable=False, default="stripe")
    processed_at = Column(DateTime, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<ProcessedWebhookEvent(id={self.id}, type={self.event_type})>"


# Pydantic models for API

class User(BaseModel):
    """User data for API responses."""
    id: str
    email: str | None
    first_name: str | None
    last_name: str | None
    subscription_status: SubscriptionStatus
    subscription_plan: SubscriptionPlan | None
    trial_ends_at: datetime | None
    created_at: datetime

    class Config:
        from_attributes = True
