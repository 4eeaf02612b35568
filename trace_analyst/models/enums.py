"""
Status and category enums for trace analysis.
"""
from enum import Enum


class FailureCategory(str, Enum):
    """Closed taxonomy of test failure causes returned by the analyzer."""

    STALE_LOCATOR = "STALE_LOCATOR"
    TIMING_ISSUE = "TIMING_ISSUE"
    NETWORK_ERROR = "NETWORK_ERROR"
    ASSERTION_FAILURE = "ASSERTION_FAILURE"
    DATA_ISSUE = "DATA_ISSUE"
    ENVIRONMENT_ISSUE = "ENVIRONMENT_ISSUE"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    OTHER = "OTHER"


class SubscriptionStatus(str, Enum):
    """Subscription status values stored on the team's subscription record."""

    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"
    INACTIVE = "INACTIVE"
    TRIALING = "TRIALING"
    UNPAID = "UNPAID"


# Statuses that carry unlimited AI analysis (PAST_DUE is the payment grace period)
UNLIMITED_STATUSES = frozenset({SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PAST_DUE.value})
