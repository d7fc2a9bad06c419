"""Alert models for user-configurable monitoring and notifications."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Enum, Float, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum

from alert_engine.core.clock import utcnow
from alert_engine.core.database import Base


def enum_values(enum_cls) -> List[str]:
    """Persist enum values (``"capacity_factor"``) rather than member names."""
    return [member.value for member in enum_cls]


class AlertMetric(str, enum.Enum):
    """Metric types that can trigger alerts."""
    CAPACITY_FACTOR = "capacity_factor"
    GENERATION = "generation"
    AVAILABILITY = "availability"
    PRICE = "price"
    CAPTURE_RATE = "capture_rate"
    WIND_SPEED = "wind_speed"
    DATA_QUALITY = "data_quality"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class AlertCondition(str, enum.Enum):
    """Condition types for alert triggers."""
    ABOVE = "above"
    BELOW = "below"
    CHANGE_BY_PERCENT = "change_by_percent"
    OUTSIDE_RANGE = "outside_range"


class AlertScope(str, enum.Enum):
    """Scope of alert monitoring."""
    SPECIFIC_WINDFARM = "specific_windfarm"
    PORTFOLIO = "portfolio"
    ALL_WINDFARMS = "all_windfarms"


class AlertSeverity(str, enum.Enum):
    """Severity level of alert, ordered low < medium < high < critical."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    AlertSeverity.LOW: 0,
    AlertSeverity.MEDIUM: 1,
    AlertSeverity.HIGH: 2,
    AlertSeverity.CRITICAL: 3,
}


class NotificationChannel(str, enum.Enum):
    """Notification delivery channels."""
    IN_APP = "in_app"
    EMAIL = "email"
    EMAIL_DIGEST = "email_digest"


class AlertRule(Base):
    """Alert rule model for defining monitoring conditions."""

    __tablename__ = "alert_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # What to monitor
    metric: Mapped[AlertMetric] = mapped_column(Enum(AlertMetric, values_callable=enum_values), nullable=False)
    condition: Mapped[AlertCondition] = mapped_column(
        Enum(AlertCondition, values_callable=enum_values), nullable=False
    )
    threshold_value: Mapped[float] = mapped_column(Float, nullable=False)
    threshold_value_upper: Mapped[Optional[float]] = mapped_column(Float, nullable=True)  # outside_range only

    # Scope
    scope: Mapped[AlertScope] = mapped_column(
        Enum(AlertScope, values_callable=enum_values), default=AlertScope.ALL_WINDFARMS, nullable=False
    )
    windfarm_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("windfarms.id", ondelete="CASCADE"), nullable=True, index=True
    )
    portfolio_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=True, index=True
    )

    # Severity and notification
    severity: Mapped[AlertSeverity] = mapped_column(
        Enum(AlertSeverity, values_callable=enum_values), default=AlertSeverity.MEDIUM, nullable=False
    )
    channels: Mapped[List[str]] = mapped_column(JSON, default=lambda: ["in_app"], nullable=False)

    # Alert only if the condition holds for this many minutes (0 = first breaching sample)
    sustained_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Status
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )
    last_triggered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)

    # Relationships
    user = relationship("User", back_populates="alert_rules")
    windfarm = relationship("Windfarm")
    portfolio = relationship("Portfolio")
    triggers = relationship("AlertTrigger", back_populates="rule", cascade="all, delete-orphan")

    @property
    def channel_set(self) -> List[NotificationChannel]:
        return [NotificationChannel(c) for c in self.channels or []]

    def __repr__(self) -> str:
        return f"<AlertRule(id={self.id}, name='{self.name}', metric={self.metric}, user_id={self.user_id})>"


class AlertTriggerStatus(str, enum.Enum):
    """Status of an alert trigger."""
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


OPEN_TRIGGER_STATUSES = (AlertTriggerStatus.ACTIVE, AlertTriggerStatus.ACKNOWLEDGED)


def open_trigger_key(rule_id: int, windfarm_id: int) -> str:
    """Marker held by the single open trigger of a (rule, windfarm) pair."""
    return f"{rule_id}:{windfarm_id}"


class AlertTrigger(Base):
    """One breach episode of one rule against one windfarm.

    ``open_key`` is set while the trigger is active or acknowledged and
    cleared on resolution; its unique constraint allows at most one open
    trigger per (rule, windfarm).
    """

    __tablename__ = "alert_triggers"
    __table_args__ = (
        UniqueConstraint("open_key", name="uq_alert_trigger_open_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    rule_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("alert_rules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    windfarm_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("windfarms.id", ondelete="CASCADE"), nullable=False, index=True
    )
    open_key: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Trigger details, snapshotted from the rule when the trigger opened
    triggered_value: Mapped[float] = mapped_column(Float, nullable=False)
    threshold_value: Mapped[float] = mapped_column(Float, nullable=False)
    threshold_value_upper: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    severity: Mapped[AlertSeverity] = mapped_column(
        Enum(AlertSeverity, values_callable=enum_values), default=AlertSeverity.MEDIUM, nullable=False
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)

    # Status
    status: Mapped[AlertTriggerStatus] = mapped_column(
        Enum(AlertTriggerStatus, values_callable=enum_values),
        default=AlertTriggerStatus.ACTIVE,
        nullable=False,
        index=True,
    )

    # Timestamps
    triggered_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Relationships
    rule = relationship("AlertRule", back_populates="triggers")
    windfarm = relationship("Windfarm")
    notifications = relationship("Notification", back_populates="trigger")

    def __repr__(self) -> str:
        return f"<AlertTrigger(id={self.id}, rule_id={self.rule_id}, status={self.status})>"


class NotificationStatus(str, enum.Enum):
    """Status of a notification."""
    UNREAD = "unread"
    READ = "read"
    ARCHIVED = "archived"


class NotificationType(str, enum.Enum):
    """What produced a notification."""
    ALERT = "alert"
    DIGEST = "digest"


class Notification(Base):
    """One delivery decision for a (trigger, channel, recipient).

    Content is fixed at creation. Only ``status`` and the delivery
    bookkeeping columns change afterwards.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        UniqueConstraint("trigger_id", "channel", "user_id", name="uq_notification_trigger_channel_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # NULL for digest summaries
    trigger_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("alert_triggers.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Notification content
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[AlertSeverity] = mapped_column(
        Enum(AlertSeverity, values_callable=enum_values), default=AlertSeverity.MEDIUM, nullable=False
    )
    notification_type: Mapped[str] = mapped_column(String(50), default=NotificationType.ALERT.value, nullable=False)

    # Link to relevant entity
    entity_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # e.g., "windfarm"
    entity_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    channel: Mapped[NotificationChannel] = mapped_column(
        Enum(NotificationChannel, values_callable=enum_values),
        default=NotificationChannel.IN_APP,
        nullable=False,
        index=True,
    )

    # Status
    status: Mapped[NotificationStatus] = mapped_column(
        Enum(NotificationStatus, values_callable=enum_values),
        default=NotificationStatus.UNREAD,
        nullable=False,
        index=True,
    )

    # Delivery bookkeeping
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    delivery_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Relationships
    user = relationship("User", back_populates="notifications")
    trigger = relationship("AlertTrigger", back_populates="notifications")

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, user_id={self.user_id}, channel={self.channel}, status={self.status})>"


class NotificationPreference(Base):
    """User notification preferences, one row per user."""

    __tablename__ = "notification_preferences"
    __table_args__ = (
        UniqueConstraint("user_id", name="uq_user_notification_preferences"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Channel kill switches
    email_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    email_digest_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    in_app_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Digest frequency (hours between digest emails)
    digest_frequency_hours: Mapped[int] = mapped_column(Integer, default=24, nullable=False)
    last_digest_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Quiet hours (UTC)
    quiet_hours_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    quiet_hours_start: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # Hour 0-23
    quiet_hours_end: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # Hour 0-23

    # Severity floor (only receive notifications >= this severity)
    min_severity: Mapped[AlertSeverity] = mapped_column(
        Enum(AlertSeverity, values_callable=enum_values), default=AlertSeverity.LOW, nullable=False
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    # Relationships
    user = relationship("User", back_populates="notification_preferences")

    def __repr__(self) -> str:
        return f"<NotificationPreference(user_id={self.user_id})>"
