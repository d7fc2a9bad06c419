"""One evaluation tick over every enabled alert rule."""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Tuple

import structlog
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from alert_engine.core.clock import utcnow
from alert_engine.core.config import Settings, get_settings
from alert_engine.core.database import get_session_factory
from alert_engine.core.principal import Principal
from alert_engine.models.alert import AlertRule
from alert_engine.models.user import User
from alert_engine.services.email import EmailService
from alert_engine.services.metric_source import DatabaseMetricSource, MetricSource
from alert_engine.services.notification_dispatcher import NotificationDispatcher
from alert_engine.services.rule_evaluator import EvaluationOutcome, RuleEvaluator
from alert_engine.services.trigger_lifecycle import TriggerLifecycleManager

logger = structlog.get_logger()


@dataclass
class TickReport:
    rules: int = 0
    units: int = 0
    opened: int = 0
    resolved: int = 0
    no_data: int = 0
    failed: int = 0


class EvaluationEngine:
    """Fans (rule, windfarm) units out over a bounded pool of tasks.

    Each unit runs in its own session. A failure in one unit is logged and
    counted; it never stops the rest of the tick.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        metric_source_factory: Optional[Callable[[AsyncSession], MetricSource]] = None,
        email_sender: Optional[EmailService] = None,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory or get_session_factory()
        self.metric_source_factory = metric_source_factory or DatabaseMetricSource
        self.email_sender = email_sender
        self.settings = settings or get_settings()

    async def run_tick(self, now: Optional[datetime] = None) -> TickReport:
        now = now or utcnow()
        report = TickReport()
        logger.info("Alert evaluation tick started", now=now.isoformat())

        units = await self._collect_units(now, report)
        report.units = len(units)

        semaphore = asyncio.Semaphore(max(1, self.settings.ALERT_EVALUATION_CONCURRENCY))

        async def bounded(rule_id: int, windfarm_id: int) -> None:
            async with semaphore:
                await self._run_unit(rule_id, windfarm_id, now, report)

        await asyncio.gather(*(bounded(rule_id, windfarm_id) for rule_id, windfarm_id in units))

        logger.info(
            "Alert evaluation tick finished",
            rules=report.rules,
            units=report.units,
            opened=report.opened,
            resolved=report.resolved,
            no_data=report.no_data,
            failed=report.failed,
        )
        return report

    async def _collect_units(self, now: datetime, report: TickReport) -> List[Tuple[int, int]]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(AlertRule)
                .join(User, AlertRule.user_id == User.id)
                .where(
                    and_(
                        AlertRule.is_enabled.is_(True),
                        AlertRule.deleted_at.is_(None),
                        User.is_active.is_(True),
                    )
                )
                .order_by(AlertRule.id)
            )
            rules = list(result.scalars().all())
            report.rules = len(rules)

            evaluator = RuleEvaluator(db, self.metric_source_factory(db), self.settings)
            units = []
            for rule in rules:
                rule_id = rule.id
                try:
                    windfarm_ids = await evaluator.resolve_scope(rule)
                except Exception as e:
                    report.failed += 1
                    logger.error(
                        "Alert rule scope resolution failed",
                        rule_id=rule_id,
                        error=str(e),
                        exc_info=True,
                    )
                    continue
                units.extend((rule_id, windfarm_id) for windfarm_id in windfarm_ids)
            return units

    async def _run_unit(self, rule_id: int, windfarm_id: int, now: datetime, report: TickReport) -> None:
        try:
            async with self.session_factory() as db:
                rule = await db.get(AlertRule, rule_id, options=[selectinload(AlertRule.user)])
                if rule is None or not rule.is_enabled or rule.deleted_at is not None:
                    return

                evaluator = RuleEvaluator(db, self.metric_source_factory(db), self.settings)
                result = await evaluator.evaluate_windfarm(rule, windfarm_id, now)
                lifecycle = TriggerLifecycleManager(db)

                if result.outcome == EvaluationOutcome.NO_DATA:
                    report.no_data += 1
                elif result.outcome == EvaluationOutcome.CLEAR:
                    if await lifecycle.resolve_open(rule_id, windfarm_id, now):
                        report.resolved += 1
                elif result.outcome == EvaluationOutcome.BREACHING:
                    recipient = Principal.from_user(rule.user)
                    trigger = await lifecycle.open_trigger(rule, windfarm_id, result.value, now)
                    if trigger is not None:
                        report.opened += 1
                        dispatcher = NotificationDispatcher(db, self.email_sender, self.settings)
                        await dispatcher.dispatch(trigger, rule, recipient, now)
        except Exception as e:
            report.failed += 1
            logger.error(
                "Alert rule evaluation failed",
                rule_id=rule_id,
                windfarm_id=windfarm_id,
                error=str(e),
                exc_info=True,
            )
