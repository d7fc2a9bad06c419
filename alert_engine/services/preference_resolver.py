"""Per-user delivery decisions for notification channels."""

import enum
from datetime import datetime
from typing import Optional

from alert_engine.models.alert import AlertSeverity, NotificationChannel, NotificationPreference


class DeliveryDecision(str, enum.Enum):
    DELIVER_IMMEDIATELY = "deliver_immediately"
    DEFER_TO_DIGEST = "defer_to_digest"
    SUPPRESS = "suppress"


def default_preferences(user_id: Optional[int] = None) -> NotificationPreference:
    """Unsaved preference row carrying the column defaults."""
    return NotificationPreference(
        user_id=user_id,
        email_enabled=True,
        email_digest_enabled=True,
        in_app_enabled=True,
        digest_frequency_hours=24,
        quiet_hours_enabled=False,
        min_severity=AlertSeverity.LOW,
    )


def channel_enabled(preferences: NotificationPreference, channel: NotificationChannel) -> bool:
    if channel == NotificationChannel.IN_APP:
        return preferences.in_app_enabled
    if channel == NotificationChannel.EMAIL:
        return preferences.email_enabled
    if channel == NotificationChannel.EMAIL_DIGEST:
        return preferences.email_digest_enabled
    raise ValueError(f"Unsupported channel: {channel}")


def in_quiet_hours(preferences: NotificationPreference, now: datetime) -> bool:
    """Whether ``now`` (UTC) falls in ``[start, end)``; windows may wrap midnight.

    Equal bounds describe an empty window.
    """
    if not preferences.quiet_hours_enabled:
        return False

    start, end = preferences.quiet_hours_start, preferences.quiet_hours_end
    if start is None or end is None or start == end:
        return False

    hour = now.hour
    if start < end:
        return start <= hour < end
    return hour >= start or hour < end


def should_deliver_now(
    preferences: Optional[NotificationPreference],
    severity: AlertSeverity,
    channel: NotificationChannel,
    now: datetime,
) -> DeliveryDecision:
    """Decide how a notification on ``channel`` is handled for this user.

    Quiet hours only hold back immediate email; in-app and digest entries
    are not interruptions.
    """
    if preferences is None:
        preferences = default_preferences()

    if not channel_enabled(preferences, channel):
        return DeliveryDecision.SUPPRESS

    min_severity = preferences.min_severity or AlertSeverity.LOW
    if AlertSeverity(severity).rank < AlertSeverity(min_severity).rank:
        return DeliveryDecision.SUPPRESS

    if channel == NotificationChannel.EMAIL and in_quiet_hours(preferences, now):
        return DeliveryDecision.SUPPRESS

    if channel == NotificationChannel.EMAIL_DIGEST:
        return DeliveryDecision.DEFER_TO_DIGEST

    return DeliveryDecision.DELIVER_IMMEDIATELY
