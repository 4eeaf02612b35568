"""
AI analysis quota enforcement.

- Self-hosted deployments: never gated
- ACTIVE / PAST_DUE subscriptions: unlimited (usage shown for display only)
- Free tier: FREE_TIER_LIMIT analyses per UTC calendar month

The per-team counter lives on the subscriptions row and is only mutated by two
single-statement UPDATEs: a guarded monthly reset (at most one concurrent
request can win it) and an atomic increment after a successful analysis.
"""
import logging
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from trace_analyst.config import Settings
from trace_analyst.errors import QuotaStorageError
from trace_analyst.models.quota import QuotaCheckResult, UNLIMITED
from trace_analyst.models.subscription import (
    Entitlement,
    Metered,
    Subscription,
    SubscriptionRecord,
    Unlimited,
)

logger = logging.getLogger(__name__)

FREE_TIER_LIMIT = 10

QUOTA_EXCEEDED_MESSAGE = (
    f"Free tier limit of {FREE_TIER_LIMIT} AI analyses per month exceeded. "
    f"Upgrade to Pro for unlimited analyses."
)


def _as_utc(value: datetime) -> datetime:
    # Stores without timezone support hand back naive datetimes; they were written as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_month(now: datetime) -> datetime:
    """First instant of now's UTC calendar month."""
    now = _as_utc(now)
    return datetime(now.year, now.month, 1, tzinfo=timezone.utc)


def should_reset_quota(reset_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """
    Check if a UTC month boundary has been crossed since the last reset.

    Args:
        reset_at: Last reset timestamp (None means never reset)
        now: Current datetime (defaults to now in UTC)

    Returns:
        True if the counter should be reset
    """
    if reset_at is None:
        return True
    now = _as_utc(now or datetime.now(timezone.utc))
    reset_at = _as_utc(reset_at)
    return reset_at.month != now.month or reset_at.year != now.year


def resolve_entitlement(subscription: Optional[SubscriptionRecord]) -> Entitlement:
    """
    Derive the team's entitlement from its subscription snapshot.

    Teams without a subscription record are free tier with no usage recorded.
    """
    if subscription is None:
        return Metered()
    usage_count = subscription.ai_analysis_count or 0
    if subscription.has_unlimited_entitlement:
        return Unlimited(usage_count=usage_count)
    return Metered(usage_count=usage_count, reset_at=subscription.ai_analysis_reset_at)


def get_subscription_record(db: Session, team_id: str) -> Optional[SubscriptionRecord]:
    """
    Load the subscription snapshot for a team.

    Args:
        db: Database session
        team_id: Team ID

    Returns:
        SubscriptionRecord, or None if the team has no subscription row

    Raises:
        QuotaStorageError: If the query fails
    """
    try:
        row = db.execute(
            select(Subscription).where(Subscription.team_id == team_id)
        ).scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.error(f"Error reading subscription for team_id={team_id}: {str(e)}", exc_info=True)
        raise QuotaStorageError(f"Failed to read subscription for team {team_id}") from e

    if row is None:
        return None
    return SubscriptionRecord.model_validate(row)


def _evaluate_free_tier(used: int) -> QuotaCheckResult:
    if used >= FREE_TIER_LIMIT:
        return QuotaCheckResult(
            allowed=False,
            limit=FREE_TIER_LIMIT,
            used=used,
            message=QUOTA_EXCEEDED_MESSAGE,
        )
    return QuotaCheckResult(allowed=True, limit=FREE_TIER_LIMIT, used=used)


def _reset_usage_if_stale(db: Session, subscription_id: str, now: datetime) -> bool:
    """
    Reset the counter for a new month unless another request already did.

    The WHERE guard is the mutual-exclusion point: once one request has moved
    ai_analysis_reset_at into the current month, every later UPDATE for that
    month matches zero rows.

    Returns:
        True if this call performed the reset
    """
    try:
        result = db.execute(
            update(Subscription)
            .where(Subscription.id == subscription_id)
            .where(or_(
                Subscription.ai_analysis_reset_at.is_(None),
                Subscription.ai_analysis_reset_at < start_of_month(now),
            ))
            .values(ai_analysis_count=0, ai_analysis_reset_at=now)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount == 1
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error resetting AI analysis usage for subscription_id={subscription_id}: {str(e)}", exc_info=True)
        raise QuotaStorageError(f"Failed to reset AI analysis usage for subscription {subscription_id}") from e


def _read_usage_count(db: Session, subscription_id: str) -> int:
    try:
        count = db.execute(
            select(Subscription.ai_analysis_count).where(Subscription.id == subscription_id)
        ).scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.error(f"Error reading AI analysis usage for subscription_id={subscription_id}: {str(e)}", exc_info=True)
        raise QuotaStorageError(f"Failed to read AI analysis usage for subscription {subscription_id}") from e
    return count or 0


def check_quota(
    db: Session,
    team_id: str,
    subscription: Optional[SubscriptionRecord],
    settings: Settings,
    now: Optional[datetime] = None,
) -> QuotaCheckResult:
    """
    Check if team has remaining AI analysis quota.

    Args:
        db: Database session
        team_id: Team ID
        subscription: Team's subscription snapshot (None if the team has none)
        settings: Application settings (self_hosted flag)
        now: Current datetime (defaults to now in UTC)

    Returns:
        QuotaCheckResult (limit -1 means unlimited)

    Raises:
        QuotaStorageError: If the monthly reset cannot be applied or re-read
    """
    if settings.self_hosted:
        return QuotaCheckResult(allowed=True, limit=UNLIMITED, used=0)

    entitlement = resolve_entitlement(subscription)
    if isinstance(entitlement, Unlimited):
        return QuotaCheckResult(allowed=True, limit=UNLIMITED, used=entitlement.usage_count)

    now = _as_utc(now or datetime.now(timezone.utc))

    if not should_reset_quota(entitlement.reset_at, now):
        result = _evaluate_free_tier(entitlement.usage_count)
        if not result.allowed:
            logger.info(f"AI_QUOTA_EXCEEDED: team_id={team_id} used={result.used} limit={result.limit}")
        return result

    if subscription is None:
        # No stored counter yet: zero usage, nothing to reset
        return QuotaCheckResult(allowed=True, limit=FREE_TIER_LIMIT, used=0)

    if _reset_usage_if_stale(db, subscription.id, now):
        logger.info(f"AI_QUOTA_RESET: team_id={team_id} month={now.strftime('%Y-%m')}")
        return QuotaCheckResult(allowed=True, limit=FREE_TIER_LIMIT, used=0)

    # A concurrent request already reset this month: evaluate against the state it left
    used = _read_usage_count(db, subscription.id)
    logger.info(f"AI_QUOTA_RESET_SKIPPED: team_id={team_id} already reset this month, used={used}")
    return _evaluate_free_tier(used)


def increment_usage(
    db: Session,
    team_id: str,
    subscription: Optional[SubscriptionRecord],
    settings: Settings,
) -> None:
    """
    Increment AI analysis usage counter.

    Only called after a successful analysis. Unlimited teams and self-hosted
    deployments are not counted.

    Raises:
        QuotaStorageError: If the increment fails
    """
    if settings.self_hosted:
        return

    if subscription is None:
        logger.warning(f"Team {team_id} has no subscription record, skipping usage increment")
        return

    if isinstance(resolve_entitlement(subscription), Unlimited):
        return

    try:
        result = db.execute(
            update(Subscription)
            .where(Subscription.id == subscription.id)
            .values(ai_analysis_count=Subscription.ai_analysis_count + 1)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error incrementing AI analysis usage for team_id={team_id}: {str(e)}", exc_info=True)
        raise QuotaStorageError(f"Failed to increment AI analysis usage for team {team_id}") from e

    if result.rowcount == 0:
        logger.warning(f"Subscription {subscription.id} for team {team_id} vanished before usage increment")
