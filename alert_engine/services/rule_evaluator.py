"""Rule evaluation: decide breaching / clear / no_data per windfarm."""

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from alert_engine.core.config import Settings, get_settings
from alert_engine.core.constants import DECOMMISSIONED_WINDFARM_STATUS
from alert_engine.models.alert import AlertCondition, AlertRule, AlertScope
from alert_engine.models.portfolio import PortfolioItem
from alert_engine.models.windfarm import Windfarm
from alert_engine.services.metric_source import MetricDataUnavailable, MetricSample, MetricSource

logger = structlog.get_logger()


class EvaluationOutcome(str, enum.Enum):
    BREACHING = "breaching"
    CLEAR = "clear"
    NO_DATA = "no_data"


@dataclass(frozen=True)
class EvaluationResult:
    windfarm_id: int
    outcome: EvaluationOutcome
    value: Optional[float] = None


def condition_breached(
    condition: AlertCondition,
    value: float,
    threshold: float,
    upper: Optional[float] = None,
) -> bool:
    """Strict comparison of one value against a rule's threshold(s).

    ``change_by_percent`` expects ``value`` to already be the percent change.
    """
    if condition == AlertCondition.BELOW:
        return value < threshold
    if condition == AlertCondition.ABOVE:
        return value > threshold
    if condition == AlertCondition.OUTSIDE_RANGE:
        return value < threshold or value > upper
    if condition == AlertCondition.CHANGE_BY_PERCENT:
        return abs(value) > threshold
    raise ValueError(f"Unsupported condition: {condition}")


class RuleEvaluator:
    """Evaluates one rule against every windfarm its scope resolves to."""

    def __init__(
        self,
        db: AsyncSession,
        metric_source: MetricSource,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.metric_source = metric_source
        self.settings = settings or get_settings()

    async def resolve_scope(self, rule: AlertRule) -> List[int]:
        """Windfarm ids the rule currently covers.

        Portfolio membership is read fresh on every call, so windfarms added
        to a portfolio are picked up on the next tick.
        """
        if rule.scope == AlertScope.SPECIFIC_WINDFARM:
            return [rule.windfarm_id] if rule.windfarm_id is not None else []

        if rule.scope == AlertScope.PORTFOLIO:
            result = await self.db.execute(
                select(PortfolioItem.windfarm_id)
                .where(PortfolioItem.portfolio_id == rule.portfolio_id)
                .order_by(PortfolioItem.windfarm_id)
            )
            return list(result.scalars().all())

        if rule.scope == AlertScope.ALL_WINDFARMS:
            result = await self.db.execute(
                select(Windfarm.id)
                .where(
                    or_(
                        Windfarm.status.is_(None),
                        Windfarm.status != DECOMMISSIONED_WINDFARM_STATUS,
                    )
                )
                .order_by(Windfarm.id)
            )
            return list(result.scalars().all())

        raise ValueError(f"Unsupported scope: {rule.scope}")

    async def evaluate(self, rule: AlertRule, now: datetime) -> List[EvaluationResult]:
        """Evaluate a rule for all windfarms in scope. Disabled or deleted rules yield nothing."""
        if not rule.is_enabled or rule.deleted_at is not None:
            return []

        results = []
        for windfarm_id in await self.resolve_scope(rule):
            results.append(await self.evaluate_windfarm(rule, windfarm_id, now))
        return results

    async def evaluate_windfarm(
        self, rule: AlertRule, windfarm_id: int, now: datetime
    ) -> EvaluationResult:
        lookback = timedelta(minutes=self.settings.ALERT_METRIC_LOOKBACK_MINUTES)

        if rule.condition == AlertCondition.CHANGE_BY_PERCENT:
            window_minutes = rule.sustained_minutes or self.settings.ALERT_CHANGE_WINDOW_MINUTES
            start = now - timedelta(minutes=window_minutes)
        else:
            start = now - lookback - timedelta(minutes=rule.sustained_minutes)

        try:
            samples = await self.metric_source.get_samples(windfarm_id, rule.metric, start, now)
        except MetricDataUnavailable as e:
            return self._no_data(rule, windfarm_id, "metric source unavailable", error=str(e))

        if not samples or samples[-1].observed_at < now - lookback:
            return self._no_data(rule, windfarm_id, "no recent samples")

        if rule.condition == AlertCondition.CHANGE_BY_PERCENT:
            return self._evaluate_change(rule, windfarm_id, samples)

        return self._evaluate_threshold(rule, windfarm_id, samples, now)

    def _evaluate_threshold(
        self,
        rule: AlertRule,
        windfarm_id: int,
        samples: Sequence[MetricSample],
        now: datetime,
    ) -> EvaluationResult:
        latest = samples[-1]

        def breached(sample: MetricSample) -> bool:
            return condition_breached(
                rule.condition, sample.value, rule.threshold_value, rule.threshold_value_upper
            )

        if not breached(latest):
            return EvaluationResult(windfarm_id, EvaluationOutcome.CLEAR, latest.value)

        if rule.sustained_minutes <= 0:
            return EvaluationResult(windfarm_id, EvaluationOutcome.BREACHING, latest.value)

        max_gap = timedelta(minutes=self.settings.ALERT_MAX_SAMPLE_GAP_MINUTES)
        if now - latest.observed_at > max_gap:
            return self._no_data(rule, windfarm_id, "sustained window not covered up to now")

        # Walk back over the run of consecutive breaching samples; a silence
        # longer than max_gap ends the run like a healthy sample would
        run_start = latest.observed_at
        for sample in reversed(samples[:-1]):
            if not breached(sample) or run_start - sample.observed_at > max_gap:
                break
            run_start = sample.observed_at

        if latest.observed_at - run_start >= timedelta(minutes=rule.sustained_minutes):
            return EvaluationResult(windfarm_id, EvaluationOutcome.BREACHING, latest.value)
        return EvaluationResult(windfarm_id, EvaluationOutcome.CLEAR, latest.value)

    def _evaluate_change(
        self, rule: AlertRule, windfarm_id: int, samples: Sequence[MetricSample]
    ) -> EvaluationResult:
        if len(samples) < 2:
            return self._no_data(rule, windfarm_id, "not enough samples for change")

        baseline = samples[0].value
        latest = samples[-1].value
        if baseline == 0:
            return self._no_data(rule, windfarm_id, "zero baseline")

        change_pct = (latest - baseline) / abs(baseline) * 100
        outcome = (
            EvaluationOutcome.BREACHING
            if condition_breached(rule.condition, change_pct, rule.threshold_value)
            else EvaluationOutcome.CLEAR
        )
        return EvaluationResult(windfarm_id, outcome, change_pct)

    def _no_data(self, rule: AlertRule, windfarm_id: int, reason: str, **extra) -> EvaluationResult:
        logger.warning(
            "No data for alert rule",
            rule_id=rule.id,
            windfarm_id=windfarm_id,
            metric=rule.metric.value,
            reason=reason,
            **extra,
        )
        return EvaluationResult(windfarm_id, EvaluationOutcome.NO_DATA)
