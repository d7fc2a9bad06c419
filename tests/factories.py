"""Test data builders shared across test modules."""

from datetime import datetime, timedelta
from typing import Any, Dict, List

from sqlalchemy.ext.asyncio import AsyncSession

from alert_engine.models.alert import (
    AlertCondition,
    AlertMetric,
    AlertRule,
    AlertScope,
    AlertSeverity,
    NotificationPreference,
)
from alert_engine.models.metric import WindfarmMetricSample
from alert_engine.models.user import User

# Fixed evaluation clock, on the hour
NOW = datetime(2026, 3, 2, 12, 0, 0)


class FakeEmailService:
    """Records sends instead of calling Resend; can be told to fail."""

    def __init__(self):
        self.alerts: List[Dict[str, Any]] = []
        self.digests: List[Dict[str, Any]] = []
        self.attempts = 0
        self.fail_times = 0

    def _maybe_fail(self):
        self.attempts += 1
        if self.fail_times > 0:
            self.fail_times -= 1
            raise RuntimeError("email provider unavailable")

    async def send_alert_email(self, **kwargs) -> None:
        self._maybe_fail()
        self.alerts.append(kwargs)

    async def send_digest_email(self, **kwargs) -> None:
        self._maybe_fail()
        self.digests.append(kwargs)


async def add_samples(session: AsyncSession, windfarm_id: int, metric: AlertMetric, points) -> None:
    """Insert ``(observed_at, value)`` pairs for one windfarm metric."""
    session.add_all(
        [
            WindfarmMetricSample(windfarm_id=windfarm_id, metric=metric, observed_at=observed_at, value=value)
            for observed_at, value in points
        ]
    )
    await session.commit()


def every_five_minutes(start: datetime, end: datetime, value: float):
    """Constant-valued samples every five minutes from ``start`` to ``end`` inclusive."""
    points = []
    current = start
    while current <= end:
        points.append((current, value))
        current += timedelta(minutes=5)
    return points


async def make_rule(session: AsyncSession, user: User, **overrides) -> AlertRule:
    """Store a rule directly, bypassing API validation."""
    values = dict(
        name="Low capacity factor",
        metric=AlertMetric.CAPACITY_FACTOR,
        condition=AlertCondition.BELOW,
        threshold_value=10.0,
        scope=AlertScope.SPECIFIC_WINDFARM,
        windfarm_id=42,
        severity=AlertSeverity.HIGH,
        channels=["in_app", "email"],
        sustained_minutes=0,
        is_enabled=True,
    )
    values.update(overrides)
    rule = AlertRule(user_id=user.id, **values)
    session.add(rule)
    await session.commit()
    await session.refresh(rule)
    return rule


async def set_preferences(session: AsyncSession, user: User, **values) -> NotificationPreference:
    prefs = NotificationPreference(user_id=user.id, **values)
    session.add(prefs)
    await session.commit()
    return prefs
