"""Alert service for managing user alert rules, triggers and notifications."""

from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from alert_engine.core.clock import utcnow
from alert_engine.core.constants import (
    ALLOWED_DIGEST_FREQUENCY_HOURS,
    DEFAULT_PAGINATION_LIMIT,
    RECENT_TRIGGERS_LIMIT,
)
from alert_engine.core.exceptions import NotFoundException, ValidationException
from alert_engine.core.principal import Principal
from alert_engine.models.alert import (
    AlertCondition,
    AlertRule,
    AlertScope,
    AlertSeverity,
    AlertTrigger,
    AlertTriggerStatus,
    Notification,
    NotificationChannel,
    NotificationPreference,
    NotificationStatus,
)
from alert_engine.models.portfolio import Portfolio
from alert_engine.models.windfarm import Windfarm
from alert_engine.schemas.alert import (
    AlertRuleCreate,
    AlertRuleUpdate,
    NotificationPreferenceUpdate,
)
from alert_engine.services.trigger_lifecycle import TriggerLifecycleManager

logger = structlog.get_logger()

RULE_FIELDS = (
    "name",
    "description",
    "metric",
    "condition",
    "threshold_value",
    "threshold_value_upper",
    "scope",
    "windfarm_id",
    "portfolio_id",
    "severity",
    "channels",
    "sustained_minutes",
    "is_enabled",
)

# Columns that may be left out of an update but never cleared
NON_NULLABLE_RULE_FIELDS = (
    "name",
    "metric",
    "condition",
    "threshold_value",
    "scope",
    "severity",
    "channels",
    "sustained_minutes",
    "is_enabled",
)


def dedupe_channels(channels) -> List[str]:
    """Channel values without duplicates, first occurrence wins."""
    seen: List[str] = []
    for channel in channels:
        value = NotificationChannel(channel).value
        if value not in seen:
            seen.append(value)
    return seen


class AlertService:
    """Service for managing user alerts and notifications.

    Every operation is scoped to the ``Principal`` it receives; rows owned by
    another user behave exactly like rows that do not exist.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ========================================================================
    # ALERT RULE CRUD
    # ========================================================================

    async def create_alert_rule(self, principal: Principal, data: AlertRuleCreate) -> AlertRule:
        """Validate and store a new alert rule for the principal."""
        values = data.model_dump()
        await self._validate_rule(principal, values)

        rule = AlertRule(user_id=principal.user_id, **values)
        self.db.add(rule)
        await self.db.commit()

        logger.info("Alert rule created", rule_id=rule.id, user_id=principal.user_id)
        return await self.get_alert_rule(principal, rule.id)

    async def get_alert_rule(self, principal: Principal, rule_id: int) -> AlertRule:
        """Get a live alert rule owned by the principal."""
        rule = await self._find_rule(principal, rule_id)
        if rule is None or rule.deleted_at is not None:
            raise NotFoundException("Alert rule not found")
        return rule

    async def list_alert_rules(
        self, principal: Principal, is_enabled: Optional[bool] = None
    ) -> List[Dict[str, Any]]:
        """List the principal's live alert rules with their open trigger count."""
        query = (
            select(
                AlertRule,
                func.count(AlertTrigger.id).label("trigger_count"),
            )
            .outerjoin(
                AlertTrigger,
                and_(
                    AlertRule.id == AlertTrigger.rule_id,
                    AlertTrigger.status == AlertTriggerStatus.ACTIVE,
                ),
            )
            .options(joinedload(AlertRule.windfarm), joinedload(AlertRule.portfolio))
            .where(and_(AlertRule.user_id == principal.user_id, AlertRule.deleted_at.is_(None)))
            .group_by(AlertRule.id)
            .order_by(AlertRule.created_at.desc(), AlertRule.id.desc())
        )

        if is_enabled is not None:
            query = query.where(AlertRule.is_enabled == is_enabled)

        result = await self.db.execute(query)
        return [self._rule_to_dict(row[0], row[1]) for row in result.unique().all()]

    async def update_alert_rule(
        self, principal: Principal, rule_id: int, data: AlertRuleUpdate
    ) -> AlertRule:
        """Apply a partial update; the merged rule must pass the same validation as a new one."""
        rule = await self.get_alert_rule(principal, rule_id)

        changes = data.model_dump(exclude_unset=True)
        values = {field: getattr(rule, field) for field in RULE_FIELDS}
        values.update(changes)
        await self._validate_rule(principal, values)

        for field, value in values.items():
            setattr(rule, field, value)

        await self.db.commit()
        logger.info("Alert rule updated", rule_id=rule_id, fields=sorted(changes))
        return await self.get_alert_rule(principal, rule_id)

    async def toggle_alert_rule(
        self, principal: Principal, rule_id: int, enabled: Optional[bool] = None
    ) -> AlertRule:
        """Flip ``is_enabled``, or set it to ``enabled`` when given so retries are idempotent."""
        rule = await self.get_alert_rule(principal, rule_id)

        rule.is_enabled = (not rule.is_enabled) if enabled is None else enabled
        await self.db.commit()

        logger.info("Alert rule toggled", rule_id=rule_id, is_enabled=rule.is_enabled)
        return await self.get_alert_rule(principal, rule_id)

    async def delete_alert_rule(self, principal: Principal, rule_id: int) -> None:
        """Soft delete a rule and its triggers.

        Deleting an already deleted rule is a no-op for its owner.
        """
        rule = await self._find_rule(principal, rule_id)
        if rule is None:
            raise NotFoundException("Alert rule not found")
        if rule.deleted_at is not None:
            return

        now = utcnow()
        rule.deleted_at = now
        rule.is_enabled = False
        await self.db.execute(
            update(AlertTrigger)
            .where(and_(AlertTrigger.rule_id == rule_id, AlertTrigger.deleted_at.is_(None)))
            .values(deleted_at=now, open_key=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        logger.info("Alert rule deleted", rule_id=rule_id, user_id=principal.user_id)

    async def describe_rule(self, rule: AlertRule) -> Dict[str, Any]:
        """Response payload for a single rule, including its active trigger count."""
        trigger_count = await self.db.scalar(
            select(func.count())
            .select_from(AlertTrigger)
            .where(
                and_(
                    AlertTrigger.rule_id == rule.id,
                    AlertTrigger.status == AlertTriggerStatus.ACTIVE,
                    AlertTrigger.deleted_at.is_(None),
                )
            )
        )
        return self._rule_to_dict(rule, trigger_count or 0)

    async def _find_rule(self, principal: Principal, rule_id: int) -> Optional[AlertRule]:
        result = await self.db.execute(
            select(AlertRule)
            .options(joinedload(AlertRule.windfarm), joinedload(AlertRule.portfolio))
            .where(and_(AlertRule.id == rule_id, AlertRule.user_id == principal.user_id))
            .execution_options(populate_existing=True)
        )
        return result.unique().scalar_one_or_none()

    async def _validate_rule(self, principal: Principal, values: Dict[str, Any]) -> None:
        """Reject inconsistent rules; normalises ``channels`` in place."""
        for field in NON_NULLABLE_RULE_FIELDS:
            if values.get(field) is None:
                raise ValidationException(f"{field} must not be null", field=field)

        condition = AlertCondition(values["condition"])
        upper = values.get("threshold_value_upper")
        if condition == AlertCondition.OUTSIDE_RANGE:
            if upper is None:
                raise ValidationException(
                    "threshold_value_upper is required for outside_range", field="threshold_value_upper"
                )
            if upper <= values["threshold_value"]:
                raise ValidationException(
                    "threshold_value_upper must be greater than threshold_value",
                    field="threshold_value_upper",
                )
        elif upper is not None:
            raise ValidationException(
                "threshold_value_upper is only allowed for outside_range", field="threshold_value_upper"
            )

        if values.get("sustained_minutes") is None or values["sustained_minutes"] < 0:
            raise ValidationException("sustained_minutes must be zero or positive", field="sustained_minutes")

        scope = AlertScope(values["scope"])
        windfarm_id, portfolio_id = values.get("windfarm_id"), values.get("portfolio_id")
        if scope == AlertScope.SPECIFIC_WINDFARM:
            if windfarm_id is None:
                raise ValidationException("windfarm_id is required for specific_windfarm", field="windfarm_id")
            if portfolio_id is not None:
                raise ValidationException("portfolio_id is not allowed for specific_windfarm", field="portfolio_id")
            if await self.db.get(Windfarm, windfarm_id) is None:
                raise ValidationException("Windfarm not found", field="windfarm_id")
        elif scope == AlertScope.PORTFOLIO:
            if portfolio_id is None:
                raise ValidationException("portfolio_id is required for portfolio scope", field="portfolio_id")
            if windfarm_id is not None:
                raise ValidationException("windfarm_id is not allowed for portfolio scope", field="windfarm_id")
            portfolio = await self.db.get(Portfolio, portfolio_id)
            if portfolio is None or portfolio.user_id != principal.user_id:
                raise ValidationException("Portfolio not found", field="portfolio_id")
        else:
            if windfarm_id is not None:
                raise ValidationException("windfarm_id is not allowed for all_windfarms", field="windfarm_id")
            if portfolio_id is not None:
                raise ValidationException("portfolio_id is not allowed for all_windfarms", field="portfolio_id")

        channels = dedupe_channels(values.get("channels") or [])
        if not channels:
            raise ValidationException("At least one notification channel is required", field="channels")
        values["channels"] = channels

    # ========================================================================
    # ALERT TRIGGERS
    # ========================================================================

    async def list_triggers(
        self,
        principal: Principal,
        status: Optional[AlertTriggerStatus] = None,
        limit: int = DEFAULT_PAGINATION_LIMIT,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """List triggers of the principal's live rules, newest first."""
        owned = and_(
            AlertRule.user_id == principal.user_id,
            AlertRule.deleted_at.is_(None),
            AlertTrigger.deleted_at.is_(None),
        )
        base_query = (
            select(AlertTrigger)
            .join(AlertRule, AlertTrigger.rule_id == AlertRule.id)
            .options(joinedload(AlertTrigger.rule), joinedload(AlertTrigger.windfarm))
            .where(owned)
        )
        count_query = (
            select(func.count())
            .select_from(AlertTrigger)
            .join(AlertRule, AlertTrigger.rule_id == AlertRule.id)
            .where(owned)
        )

        if status is not None:
            base_query = base_query.where(AlertTrigger.status == status)
            count_query = count_query.where(AlertTrigger.status == status)

        total = (await self.db.execute(count_query)).scalar() or 0

        status_counts = await self.db.execute(
            select(AlertTrigger.status, func.count())
            .join(AlertRule, AlertTrigger.rule_id == AlertRule.id)
            .where(owned)
            .group_by(AlertTrigger.status)
        )
        counts = {row[0]: row[1] for row in status_counts.all()}

        result = await self.db.execute(
            base_query.order_by(AlertTrigger.triggered_at.desc(), AlertTrigger.id.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )

        return {
            "triggers": [self._trigger_to_dict(t) for t in result.unique().scalars().all()],
            "total": total,
            "active_count": counts.get(AlertTriggerStatus.ACTIVE, 0),
            "acknowledged_count": counts.get(AlertTriggerStatus.ACKNOWLEDGED, 0),
        }

    async def get_trigger(self, principal: Principal, trigger_id: int) -> AlertTrigger:
        result = await self.db.execute(
            select(AlertTrigger)
            .join(AlertRule, AlertTrigger.rule_id == AlertRule.id)
            .options(joinedload(AlertTrigger.rule), joinedload(AlertTrigger.windfarm))
            .where(
                and_(
                    AlertTrigger.id == trigger_id,
                    AlertRule.user_id == principal.user_id,
                    AlertRule.deleted_at.is_(None),
                    AlertTrigger.deleted_at.is_(None),
                )
            )
            .execution_options(populate_existing=True)
        )
        trigger = result.unique().scalar_one_or_none()
        if trigger is None:
            raise NotFoundException("Alert trigger not found")
        return trigger

    async def acknowledge_trigger(self, principal: Principal, trigger_id: int) -> Dict[str, Any]:
        trigger = await self.get_trigger(principal, trigger_id)
        await TriggerLifecycleManager(self.db).acknowledge(trigger, utcnow())
        return self._trigger_to_dict(await self.get_trigger(principal, trigger_id))

    async def resolve_trigger(self, principal: Principal, trigger_id: int) -> Dict[str, Any]:
        trigger = await self.get_trigger(principal, trigger_id)
        await TriggerLifecycleManager(self.db).resolve(trigger, utcnow())
        return self._trigger_to_dict(await self.get_trigger(principal, trigger_id))

    # ========================================================================
    # NOTIFICATIONS
    # ========================================================================

    async def list_notifications(
        self,
        principal: Principal,
        status: Optional[NotificationStatus] = None,
        channel: Optional[NotificationChannel] = NotificationChannel.IN_APP,
        limit: int = DEFAULT_PAGINATION_LIMIT,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """List the principal's notifications; the unread count always covers in-app."""
        filters = [Notification.user_id == principal.user_id]
        if channel is not None:
            filters.append(Notification.channel == channel)
        if status is not None:
            filters.append(Notification.status == status)

        total = (
            await self.db.execute(select(func.count()).select_from(Notification).where(and_(*filters)))
        ).scalar() or 0

        result = await self.db.execute(
            select(Notification)
            .where(and_(*filters))
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )

        return {
            "notifications": list(result.scalars().all()),
            "total": total,
            "unread_count": await self.get_unread_count(principal),
        }

    async def get_unread_count(self, principal: Principal) -> int:
        """Count of unread in-app notifications."""
        result = await self.db.execute(
            select(func.count())
            .select_from(Notification)
            .where(
                and_(
                    Notification.user_id == principal.user_id,
                    Notification.channel == NotificationChannel.IN_APP,
                    Notification.status == NotificationStatus.UNREAD,
                )
            )
        )
        return result.scalar() or 0

    async def mark_notifications_read(self, principal: Principal, notification_ids: List[int]) -> int:
        """Mark specific unread notifications as read. Already read ids are ignored."""
        if not notification_ids:
            return 0

        result = await self.db.execute(
            update(Notification)
            .where(
                and_(
                    Notification.id.in_(notification_ids),
                    Notification.user_id == principal.user_id,
                    Notification.status == NotificationStatus.UNREAD,
                )
            )
            .values(status=NotificationStatus.READ, read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount

    async def mark_all_notifications_read(self, principal: Principal) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(
                and_(
                    Notification.user_id == principal.user_id,
                    Notification.status == NotificationStatus.UNREAD,
                )
            )
            .values(status=NotificationStatus.READ, read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount

    async def mark_notification_read(self, principal: Principal, notification_id: int) -> Notification:
        notification = await self._get_notification(principal, notification_id)
        if notification.status == NotificationStatus.UNREAD:
            notification.status = NotificationStatus.READ
            notification.read_at = utcnow()
            await self.db.commit()
        return notification

    async def archive_notification(self, principal: Principal, notification_id: int) -> Notification:
        notification = await self._get_notification(principal, notification_id)
        if notification.status != NotificationStatus.ARCHIVED:
            notification.status = NotificationStatus.ARCHIVED
            await self.db.commit()
        return notification

    async def delete_notification(self, principal: Principal, notification_id: int) -> bool:
        """Delete a notification; returns whether a row was removed."""
        result = await self.db.execute(
            delete(Notification).where(
                and_(Notification.id == notification_id, Notification.user_id == principal.user_id)
            )
        )
        await self.db.commit()
        return result.rowcount > 0

    async def _get_notification(self, principal: Principal, notification_id: int) -> Notification:
        result = await self.db.execute(
            select(Notification).where(
                and_(Notification.id == notification_id, Notification.user_id == principal.user_id)
            )
            .execution_options(populate_existing=True)
        )
        notification = result.scalar_one_or_none()
        if notification is None:
            raise NotFoundException("Notification not found")
        return notification

    # ========================================================================
    # NOTIFICATION PREFERENCES
    # ========================================================================

    async def get_notification_preferences(self, principal: Principal) -> NotificationPreference:
        """Get notification preferences, creating defaults on first read."""
        result = await self.db.execute(
            select(NotificationPreference).where(NotificationPreference.user_id == principal.user_id)
        )
        prefs = result.scalar_one_or_none()

        if not prefs:
            prefs = NotificationPreference(user_id=principal.user_id)
            self.db.add(prefs)
            await self.db.commit()
            await self.db.refresh(prefs)

        return prefs

    async def update_notification_preferences(
        self, principal: Principal, data: NotificationPreferenceUpdate
    ) -> NotificationPreference:
        prefs = await self.get_notification_preferences(principal)
        changes = data.model_dump(exclude_unset=True)

        frequency = changes.get("digest_frequency_hours", prefs.digest_frequency_hours)
        if frequency not in ALLOWED_DIGEST_FREQUENCY_HOURS:
            raise ValidationException(
                f"digest_frequency_hours must be one of {list(ALLOWED_DIGEST_FREQUENCY_HOURS)}",
                field="digest_frequency_hours",
            )

        quiet_enabled = changes.get("quiet_hours_enabled", prefs.quiet_hours_enabled)
        if quiet_enabled:
            for field in ("quiet_hours_start", "quiet_hours_end"):
                if changes.get(field, getattr(prefs, field)) is None:
                    raise ValidationException(f"{field} is required when quiet hours are enabled", field=field)

        for field, value in changes.items():
            if value is None and field not in ("quiet_hours_start", "quiet_hours_end"):
                continue
            setattr(prefs, field, value)

        await self.db.commit()
        await self.db.refresh(prefs)
        logger.info("Notification preferences updated", user_id=principal.user_id, fields=sorted(changes))
        return prefs

    # ========================================================================
    # SUMMARY & OVERVIEW
    # ========================================================================

    async def get_alerts_summary(self, principal: Principal) -> Dict[str, Any]:
        """Get summary of alerts for dashboard."""
        rule_counts = await self.db.execute(
            select(
                func.count().label("total"),
                func.count().filter(AlertRule.is_enabled.is_(True)).label("active"),
            )
            .select_from(AlertRule)
            .where(and_(AlertRule.user_id == principal.user_id, AlertRule.deleted_at.is_(None)))
        )
        total_rules, active_rules = rule_counts.one()

        recent = await self.list_triggers(principal, limit=RECENT_TRIGGERS_LIMIT)

        return {
            "total_rules": total_rules,
            "active_rules": active_rules,
            "active_triggers": recent["active_count"],
            "acknowledged_triggers": recent["acknowledged_count"],
            "unread_notifications": await self.get_unread_count(principal),
            "recent_triggers": recent["triggers"],
        }

    async def get_alerts_overview(self, principal: Principal) -> Dict[str, Any]:
        """Get quick overview of active alerts by severity."""
        severity_counts = await self.db.execute(
            select(AlertTrigger.severity, func.count())
            .join(AlertRule, AlertRule.id == AlertTrigger.rule_id)
            .where(
                and_(
                    AlertRule.user_id == principal.user_id,
                    AlertRule.deleted_at.is_(None),
                    AlertTrigger.deleted_at.is_(None),
                    AlertTrigger.status == AlertTriggerStatus.ACTIVE,
                )
            )
            .group_by(AlertTrigger.severity)
        )
        s_counts = {row[0]: row[1] for row in severity_counts.all()}
        active_count = sum(s_counts.values())

        return {
            "has_active_alerts": active_count > 0,
            "active_count": active_count,
            "critical_count": s_counts.get(AlertSeverity.CRITICAL, 0),
            "high_count": s_counts.get(AlertSeverity.HIGH, 0),
            "unread_notifications": await self.get_unread_count(principal),
        }

    # ========================================================================
    # HELPER METHODS
    # ========================================================================

    def _rule_to_dict(self, rule: AlertRule, trigger_count: int = 0) -> Dict[str, Any]:
        data = {field: getattr(rule, field) for field in RULE_FIELDS}
        data.update(
            {
                "id": rule.id,
                "user_id": rule.user_id,
                "created_at": rule.created_at,
                "updated_at": rule.updated_at,
                "last_triggered_at": rule.last_triggered_at,
                "trigger_count": trigger_count,
                "windfarm": (
                    {"id": rule.windfarm.id, "name": rule.windfarm.name} if rule.windfarm else None
                ),
                "portfolio": (
                    {"id": rule.portfolio.id, "name": rule.portfolio.name} if rule.portfolio else None
                ),
            }
        )
        return data

    def _trigger_to_dict(self, trigger: AlertTrigger) -> Dict[str, Any]:
        return {
            "id": trigger.id,
            "rule_id": trigger.rule_id,
            "windfarm_id": trigger.windfarm_id,
            "triggered_value": trigger.triggered_value,
            "threshold_value": trigger.threshold_value,
            "threshold_value_upper": trigger.threshold_value_upper,
            "message": trigger.message,
            "status": trigger.status,
            "triggered_at": trigger.triggered_at,
            "acknowledged_at": trigger.acknowledged_at,
            "resolved_at": trigger.resolved_at,
            "rule_name": trigger.rule.name if trigger.rule else "",
            "windfarm_name": trigger.windfarm.name if trigger.windfarm else "",
            "severity": trigger.severity,
        }
