"""Database models package."""

from .alert import (
    AlertCondition,
    AlertMetric,
    AlertRule,
    AlertScope,
    AlertSeverity,
    AlertTrigger,
    AlertTriggerStatus,
    Notification,
    NotificationChannel,
    NotificationPreference,
    NotificationStatus,
    NotificationType,
)
from .metric import WindfarmMetricSample
from .portfolio import Portfolio, PortfolioItem
from .user import User
from .windfarm import Windfarm

__all__ = [
    "AlertCondition",
    "AlertMetric",
    "AlertRule",
    "AlertScope",
    "AlertSeverity",
    "AlertTrigger",
    "AlertTriggerStatus",
    "Notification",
    "NotificationChannel",
    "NotificationPreference",
    "NotificationStatus",
    "NotificationType",
    "Portfolio",
    "PortfolioItem",
    "User",
    "Windfarm",
    "WindfarmMetricSample",
]
