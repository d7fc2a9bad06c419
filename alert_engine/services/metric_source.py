"""Read access to windfarm metric time series."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List

import structlog
from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from alert_engine.models.alert import AlertMetric
from alert_engine.models.metric import WindfarmMetricSample

logger = structlog.get_logger()


@dataclass(frozen=True)
class MetricSample:
    observed_at: datetime
    value: float


class MetricDataUnavailable(Exception):
    """The metric store could not be read; evaluation treats this as a data gap."""


class MetricSource(ABC):
    """Source of metric samples for rule evaluation."""

    @abstractmethod
    async def get_samples(
        self,
        windfarm_id: int,
        metric: AlertMetric,
        start: datetime,
        end: datetime,
    ) -> List[MetricSample]:
        """Return samples with ``start <= observed_at <= end``, oldest first."""


class DatabaseMetricSource(MetricSource):
    """Reads samples from the ``windfarm_metric_samples`` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_samples(
        self,
        windfarm_id: int,
        metric: AlertMetric,
        start: datetime,
        end: datetime,
    ) -> List[MetricSample]:
        try:
            result = await self.db.execute(
                select(WindfarmMetricSample.observed_at, WindfarmMetricSample.value)
                .where(
                    and_(
                        WindfarmMetricSample.windfarm_id == windfarm_id,
                        WindfarmMetricSample.metric == metric,
                        WindfarmMetricSample.observed_at >= start,
                        WindfarmMetricSample.observed_at <= end,
                    )
                )
                .order_by(WindfarmMetricSample.observed_at.asc())
            )
        except SQLAlchemyError as e:
            logger.warning(
                "Metric query failed",
                windfarm_id=windfarm_id,
                metric=metric.value,
                error=str(e),
            )
            raise MetricDataUnavailable(str(e)) from e

        return [MetricSample(observed_at=row[0], value=row[1]) for row in result.all()]
