"""Alert schemas for API serialization."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from alert_engine.models.alert import (
    AlertCondition,
    AlertMetric,
    AlertScope,
    AlertSeverity,
    AlertTriggerStatus,
    NotificationChannel,
    NotificationStatus,
)


# ============================================================================
# ALERT RULE SCHEMAS
# ============================================================================

class AlertRuleBase(BaseModel):
    """Base alert rule schema."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    metric: AlertMetric
    condition: AlertCondition
    threshold_value: float
    threshold_value_upper: Optional[float] = None
    scope: AlertScope = AlertScope.ALL_WINDFARMS
    windfarm_id: Optional[int] = None
    portfolio_id: Optional[int] = None
    severity: AlertSeverity = AlertSeverity.MEDIUM
    channels: List[NotificationChannel] = [NotificationChannel.IN_APP]
    sustained_minutes: int = Field(default=0, ge=0)
    is_enabled: bool = True


class AlertRuleCreate(AlertRuleBase):
    """Schema for creating an alert rule."""
    pass


class AlertRuleUpdate(BaseModel):
    """Partial update; only fields present in the request body are applied."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    metric: Optional[AlertMetric] = None
    condition: Optional[AlertCondition] = None
    threshold_value: Optional[float] = None
    threshold_value_upper: Optional[float] = None
    scope: Optional[AlertScope] = None
    windfarm_id: Optional[int] = None
    portfolio_id: Optional[int] = None
    severity: Optional[AlertSeverity] = None
    channels: Optional[List[NotificationChannel]] = None
    sustained_minutes: Optional[int] = Field(None, ge=0)
    is_enabled: Optional[bool] = None


class WindfarmBrief(BaseModel):
    """Brief windfarm info for alert responses."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class PortfolioBrief(BaseModel):
    """Brief portfolio info for alert responses."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class AlertRuleResponse(BaseModel):
    """Schema for alert rule response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    name: str
    description: Optional[str] = None
    metric: AlertMetric
    condition: AlertCondition
    threshold_value: float
    threshold_value_upper: Optional[float] = None
    scope: AlertScope
    windfarm_id: Optional[int] = None
    portfolio_id: Optional[int] = None
    severity: AlertSeverity
    channels: List[NotificationChannel]
    sustained_minutes: int
    is_enabled: bool
    created_at: datetime
    updated_at: datetime
    last_triggered_at: Optional[datetime] = None
    trigger_count: int = 0
    windfarm: Optional[WindfarmBrief] = None
    portfolio: Optional[PortfolioBrief] = None


class AlertRuleListResponse(BaseModel):
    """Schema for listing alert rules."""
    rules: List[AlertRuleResponse]
    total: int


# ============================================================================
# ALERT TRIGGER SCHEMAS
# ============================================================================

class AlertTriggerResponse(BaseModel):
    """Schema for alert trigger response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    rule_id: int
    windfarm_id: int
    triggered_value: float
    threshold_value: float
    threshold_value_upper: Optional[float] = None
    message: str
    status: AlertTriggerStatus
    triggered_at: datetime
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    rule_name: str = ""
    windfarm_name: str = ""
    severity: AlertSeverity = AlertSeverity.MEDIUM


class AlertTriggerListResponse(BaseModel):
    """Schema for listing alert triggers."""
    triggers: List[AlertTriggerResponse]
    total: int
    active_count: int
    acknowledged_count: int


# ============================================================================
# NOTIFICATION SCHEMAS
# ============================================================================

class NotificationResponse(BaseModel):
    """Schema for notification response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    trigger_id: Optional[int] = None
    title: str
    message: str
    severity: AlertSeverity
    notification_type: str
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    channel: NotificationChannel
    status: NotificationStatus
    created_at: datetime
    read_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None


class NotificationListResponse(BaseModel):
    """Schema for listing notifications."""
    notifications: List[NotificationResponse]
    total: int
    unread_count: int


class NotificationMarkRead(BaseModel):
    """Schema for marking notifications as read."""
    notification_ids: List[int]


# ============================================================================
# NOTIFICATION PREFERENCE SCHEMAS
# ============================================================================

class NotificationPreferenceBase(BaseModel):
    """Base notification preference schema."""
    email_enabled: bool = True
    email_digest_enabled: bool = True
    in_app_enabled: bool = True
    digest_frequency_hours: int = 24
    quiet_hours_enabled: bool = False
    quiet_hours_start: Optional[int] = Field(None, ge=0, le=23)
    quiet_hours_end: Optional[int] = Field(None, ge=0, le=23)
    min_severity: AlertSeverity = AlertSeverity.LOW


class NotificationPreferenceUpdate(BaseModel):
    """Schema for updating notification preferences."""
    email_enabled: Optional[bool] = None
    email_digest_enabled: Optional[bool] = None
    in_app_enabled: Optional[bool] = None
    digest_frequency_hours: Optional[int] = None
    quiet_hours_enabled: Optional[bool] = None
    quiet_hours_start: Optional[int] = Field(None, ge=0, le=23)
    quiet_hours_end: Optional[int] = Field(None, ge=0, le=23)
    min_severity: Optional[AlertSeverity] = None


class NotificationPreferenceResponse(NotificationPreferenceBase):
    """Schema for notification preference response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    last_digest_sent_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# ============================================================================
# ALERT SUMMARY SCHEMAS
# ============================================================================

class AlertsSummary(BaseModel):
    """Summary of alerts for dashboard."""
    total_rules: int
    active_rules: int
    active_triggers: int
    acknowledged_triggers: int
    unread_notifications: int
    recent_triggers: List[AlertTriggerResponse]


class AlertsOverview(BaseModel):
    """Overview of alerts for quick status."""
    has_active_alerts: bool
    active_count: int
    critical_count: int
    high_count: int
    unread_notifications: int
