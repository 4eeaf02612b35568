"""
Team subscription storage model and the entitlement derived from it.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union
import uuid
from pydantic import BaseModel, ConfigDict
from sqlalchemy import Column, String, Integer, DateTime, Index, text
from trace_analyst.db import Base
from trace_analyst.models.enums import UNLIMITED_STATUSES


class Subscription(Base):
    """
    Model for a team's billing subscription.

    Only the AI analysis counter columns are written by this package; the rest of
    the row is owned by billing.
    """
    __tablename__ = "subscriptions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    team_id = Column(String, nullable=False, unique=True)
    status = Column(String, nullable=False, server_default=text("'INACTIVE'"))
    stripe_subscription_id = Column(String, nullable=True)

    # AI trace analysis quota (free tier), reset on UTC calendar month change
    ai_analysis_count = Column(Integer, nullable=False, default=0, server_default=text("0"))
    ai_analysis_reset_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        Index('idx_subscriptions_team_id', 'team_id'),
    )


class SubscriptionRecord(BaseModel):
    """Snapshot of a subscription row passed in by the request handler."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    team_id: str
    status: str
    ai_analysis_count: int = 0
    ai_analysis_reset_at: Optional[datetime] = None

    @property
    def has_unlimited_entitlement(self) -> bool:
        return (self.status or "").upper() in UNLIMITED_STATUSES


@dataclass(frozen=True)
class Unlimited:
    """Paid (ACTIVE or PAST_DUE) team. Usage is tracked for display only."""
    usage_count: int = 0


@dataclass(frozen=True)
class Metered:
    """Free-tier team capped per UTC calendar month."""
    usage_count: int = 0
    reset_at: Optional[datetime] = None


Entitlement = Union[Unlimited, Metered]
