"""Alerts API endpoints for managing user alerts and notifications."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from alert_engine.core.constants import (
    DEFAULT_PAGINATION_LIMIT,
    MAX_PAGINATION_LIMIT,
    MIN_PAGINATION_LIMIT,
)
from alert_engine.core.database import get_db
from alert_engine.core.deps import get_principal
from alert_engine.core.principal import Principal
from alert_engine.models.alert import AlertTriggerStatus, NotificationChannel, NotificationStatus
from alert_engine.schemas.alert import (
    AlertRuleCreate,
    AlertRuleListResponse,
    AlertRuleResponse,
    AlertRuleUpdate,
    AlertsOverview,
    AlertsSummary,
    AlertTriggerListResponse,
    AlertTriggerResponse,
    NotificationListResponse,
    NotificationMarkRead,
    NotificationPreferenceResponse,
    NotificationPreferenceUpdate,
    NotificationResponse,
)
from alert_engine.services.alert_service import AlertService

router = APIRouter()


# ============================================================================
# ALERT RULES ENDPOINTS
# ============================================================================

@router.get("/rules", response_model=AlertRuleListResponse)
async def list_alert_rules(
    is_enabled: Optional[bool] = Query(None, description="Filter by enabled status"),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """List all alert rules for the current user."""
    service = AlertService(db)
    rules = await service.list_alert_rules(principal, is_enabled=is_enabled)
    return {
        "rules": rules,
        "total": len(rules),
    }


@router.post("/rules", response_model=AlertRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_alert_rule(
    data: AlertRuleCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Create a new alert rule."""
    service = AlertService(db)
    rule = await service.create_alert_rule(principal, data)
    return await service.describe_rule(rule)


@router.get("/rules/{rule_id}", response_model=AlertRuleResponse)
async def get_alert_rule(
    rule_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Get an alert rule by ID."""
    service = AlertService(db)
    rule = await service.get_alert_rule(principal, rule_id)
    return await service.describe_rule(rule)


@router.put("/rules/{rule_id}", response_model=AlertRuleResponse)
async def update_alert_rule(
    rule_id: int,
    data: AlertRuleUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Update an alert rule. Fields left out of the body keep their value."""
    service = AlertService(db)
    rule = await service.update_alert_rule(principal, rule_id, data)
    return await service.describe_rule(rule)


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_alert_rule(
    rule_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Delete an alert rule together with its triggers."""
    service = AlertService(db)
    await service.delete_alert_rule(principal, rule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.api_route("/rules/{rule_id}/toggle", methods=["POST", "PATCH"], response_model=AlertRuleResponse)
async def toggle_alert_rule(
    rule_id: int,
    enabled: Optional[bool] = Query(None, description="Target state; omitted flips the current state"),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Toggle an alert rule's enabled status."""
    service = AlertService(db)
    rule = await service.toggle_alert_rule(principal, rule_id, enabled=enabled)
    return await service.describe_rule(rule)


# ============================================================================
# ALERT TRIGGERS ENDPOINTS
# ============================================================================

@router.get("/triggers", response_model=AlertTriggerListResponse)
async def list_alert_triggers(
    status: Optional[AlertTriggerStatus] = Query(None, description="Filter by status (active, acknowledged, resolved)"),
    limit: int = Query(DEFAULT_PAGINATION_LIMIT, ge=MIN_PAGINATION_LIMIT, le=MAX_PAGINATION_LIMIT),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """List alert triggers for the current user's rules."""
    service = AlertService(db)
    return await service.list_triggers(principal, status=status, limit=limit, offset=offset)


@router.post("/triggers/{trigger_id}/acknowledge", response_model=AlertTriggerResponse)
async def acknowledge_trigger(
    trigger_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Acknowledge an alert trigger. Resolved triggers answer 409."""
    service = AlertService(db)
    return await service.acknowledge_trigger(principal, trigger_id)


@router.post("/triggers/{trigger_id}/resolve", response_model=AlertTriggerResponse)
async def resolve_trigger(
    trigger_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Resolve an alert trigger."""
    service = AlertService(db)
    return await service.resolve_trigger(principal, trigger_id)


# ============================================================================
# NOTIFICATIONS ENDPOINTS
# ============================================================================

@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(
    status: Optional[NotificationStatus] = Query(None, description="Filter by status (unread, read, archived)"),
    channel: NotificationChannel = Query(NotificationChannel.IN_APP, description="Delivery channel"),
    limit: int = Query(DEFAULT_PAGINATION_LIMIT, ge=MIN_PAGINATION_LIMIT, le=MAX_PAGINATION_LIMIT),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """List notifications for the current user."""
    service = AlertService(db)
    return await service.list_notifications(
        principal,
        status=status,
        channel=channel,
        limit=limit,
        offset=offset,
    )


@router.get("/notifications/unread-count")
async def get_unread_count(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Get count of unread in-app notifications."""
    service = AlertService(db)
    count = await service.get_unread_count(principal)
    return {"unread_count": count}


@router.api_route("/notifications/mark-read", methods=["POST", "PATCH"])
async def mark_notifications_read(
    data: NotificationMarkRead,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Mark specific notifications as read."""
    service = AlertService(db)
    count = await service.mark_notifications_read(principal, data.notification_ids)
    return {"marked_read": count}


@router.api_route("/notifications/mark-all-read", methods=["POST", "PATCH"])
async def mark_all_notifications_read(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Mark all notifications as read."""
    service = AlertService(db)
    count = await service.mark_all_notifications_read(principal)
    return {"marked_read": count}


@router.patch("/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    service = AlertService(db)
    return await service.mark_notification_read(principal, notification_id)


@router.patch("/notifications/{notification_id}/archive", response_model=NotificationResponse)
async def archive_notification(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    service = AlertService(db)
    return await service.archive_notification(principal, notification_id)


@router.delete("/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Delete a notification. Deleting one that is already gone also succeeds."""
    service = AlertService(db)
    await service.delete_notification(principal, notification_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# NOTIFICATION PREFERENCES ENDPOINTS
# ============================================================================

@router.get("/preferences", response_model=NotificationPreferenceResponse)
async def get_notification_preferences(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Get notification preferences for the current user."""
    service = AlertService(db)
    return await service.get_notification_preferences(principal)


@router.put("/preferences", response_model=NotificationPreferenceResponse)
async def update_notification_preferences(
    data: NotificationPreferenceUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Update notification preferences for the current user."""
    service = AlertService(db)
    return await service.update_notification_preferences(principal, data)


# ============================================================================
# SUMMARY & OVERVIEW ENDPOINTS
# ============================================================================

@router.get("/summary", response_model=AlertsSummary)
async def get_alerts_summary(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Get summary of alerts for dashboard."""
    service = AlertService(db)
    return await service.get_alerts_summary(principal)


@router.get("/overview", response_model=AlertsOverview)
async def get_alerts_overview(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    """Get quick overview of alerts status."""
    service = AlertService(db)
    return await service.get_alerts_overview(principal)
