"""Alert trigger state machine.

    none -> active -> acknowledged -> resolved
            active --------------------> resolved

Every transition is a single conditional statement so that concurrent
evaluators, an overrunning tick and user actions cannot double-open or
move a trigger backwards. ``AlertTrigger.open_key`` carries the unique
"open" marker for a (rule, windfarm) pair.
"""

from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import and_, case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from alert_engine.core.exceptions import ConflictException
from alert_engine.models.alert import (
    OPEN_TRIGGER_STATUSES,
    AlertCondition,
    AlertRule,
    AlertTrigger,
    AlertTriggerStatus,
    open_trigger_key,
)
from alert_engine.models.windfarm import Windfarm

logger = structlog.get_logger()


def build_trigger_message(rule: AlertRule, windfarm_name: str, value: float) -> str:
    """Human readable description of a breach, stored on the trigger."""
    metric = rule.metric.display_name
    if rule.condition == AlertCondition.OUTSIDE_RANGE:
        condition = f"outside range {rule.threshold_value:g} to {rule.threshold_value_upper:g}"
    elif rule.condition == AlertCondition.CHANGE_BY_PERCENT:
        return (
            f"{metric} at {windfarm_name} changed by {value:+.1f}% "
            f"(threshold {rule.threshold_value:g}%)"
        )
    else:
        condition = f"{rule.condition.value} {rule.threshold_value:g}"

    message = f"{metric} at {windfarm_name} is {condition} (current value {value:.2f})"
    if rule.sustained_minutes:
        message += f" for at least {rule.sustained_minutes} minutes"
    return message


class TriggerLifecycleManager:
    """Applies trigger transitions with atomic check-and-set semantics."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_open_trigger(self, rule_id: int, windfarm_id: int) -> Optional[AlertTrigger]:
        result = await self.db.execute(
            select(AlertTrigger).where(
                AlertTrigger.open_key == open_trigger_key(rule_id, windfarm_id)
            )
        )
        return result.scalar_one_or_none()

    async def open_trigger(
        self, rule: AlertRule, windfarm_id: int, value: float, now: datetime
    ) -> Optional[AlertTrigger]:
        """Open a trigger for a breaching (rule, windfarm).

        Returns the new trigger, or ``None`` when one is already open. Only
        the caller that receives a trigger may dispatch notifications for it.
        """
        rule_id = rule.id
        if await self.get_open_trigger(rule_id, windfarm_id) is not None:
            return None

        windfarm_name = await self.db.scalar(select(Windfarm.name).where(Windfarm.id == windfarm_id))
        trigger = AlertTrigger(
            rule_id=rule.id,
            windfarm_id=windfarm_id,
            open_key=open_trigger_key(rule.id, windfarm_id),
            triggered_value=value,
            threshold_value=rule.threshold_value,
            threshold_value_upper=rule.threshold_value_upper,
            severity=rule.severity,
            message=build_trigger_message(rule, windfarm_name or f"windfarm {windfarm_id}", value),
            status=AlertTriggerStatus.ACTIVE,
            triggered_at=now,
        )

        try:
            self.db.add(trigger)
            await self.db.execute(
                update(AlertRule)
                .where(AlertRule.id == rule.id)
                .values(last_triggered_at=now)
            )
            await self.db.commit()
        except IntegrityError:
            # Another writer opened it between the check and the insert.
            # The rollback expires every instance loaded in this session.
            await self.db.rollback()
            logger.info("Alert trigger already open", rule_id=rule_id, windfarm_id=windfarm_id)
            return None

        await self.db.refresh(trigger)
        logger.info(
            "Alert trigger opened",
            trigger_id=trigger.id,
            rule_id=rule.id,
            windfarm_id=windfarm_id,
            value=value,
            severity=rule.severity.value,
        )
        return trigger

    async def resolve_open(self, rule_id: int, windfarm_id: int, now: datetime) -> bool:
        """Resolve the open trigger of a (rule, windfarm), if any. Returns whether one was resolved."""
        result = await self.db.execute(
            update(AlertTrigger)
            .where(
                and_(
                    AlertTrigger.rule_id == rule_id,
                    AlertTrigger.windfarm_id == windfarm_id,
                    AlertTrigger.status.in_(OPEN_TRIGGER_STATUSES),
                )
            )
            .values(**self._resolved_values(now))
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        resolved = result.rowcount > 0
        if resolved:
            logger.info("Alert trigger resolved", rule_id=rule_id, windfarm_id=windfarm_id)
        return resolved

    async def acknowledge(self, trigger: AlertTrigger, now: datetime) -> AlertTrigger:
        """Acknowledge an active trigger.

        Acknowledging an acknowledged trigger is a no-op; a resolved trigger
        cannot be acknowledged.
        """
        result = await self.db.execute(
            update(AlertTrigger)
            .where(
                and_(
                    AlertTrigger.id == trigger.id,
                    AlertTrigger.status == AlertTriggerStatus.ACTIVE,
                )
            )
            .values(status=AlertTriggerStatus.ACKNOWLEDGED, acknowledged_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(trigger)

        if result.rowcount == 0 and trigger.status == AlertTriggerStatus.RESOLVED:
            raise ConflictException("Resolved alerts cannot be acknowledged")

        if result.rowcount:
            logger.info("Alert trigger acknowledged", trigger_id=trigger.id)
        return trigger

    async def resolve(self, trigger: AlertTrigger, now: datetime) -> AlertTrigger:
        """Resolve a trigger on user request. Resolving a resolved trigger is a no-op."""
        result = await self.db.execute(
            update(AlertTrigger)
            .where(
                and_(
                    AlertTrigger.id == trigger.id,
                    AlertTrigger.status.in_(OPEN_TRIGGER_STATUSES),
                )
            )
            .values(**self._resolved_values(now))
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(trigger)

        if result.rowcount:
            logger.info("Alert trigger resolved by user", trigger_id=trigger.id)
        return trigger

    @staticmethod
    def _resolved_values(now: datetime) -> dict:
        return {
            "status": AlertTriggerStatus.RESOLVED,
            "open_key": None,
            # resolved_at never precedes triggered_at
            "resolved_at": case(
                (AlertTrigger.triggered_at > now, AlertTrigger.triggered_at),
                else_=now,
            ),
        }
