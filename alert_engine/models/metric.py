"""Read model of the windfarm metric time-series store."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Enum, Float, ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from alert_engine.core.database import Base
from alert_engine.models.alert import AlertMetric, enum_values


class WindfarmMetricSample(Base):
    """One observation of a metric for a windfarm.

    The table is written by the core platform's ingestion jobs; the engine
    only reads it through ``DatabaseMetricSource``.
    """

    __tablename__ = "windfarm_metric_samples"
    __table_args__ = (
        Index("idx_metric_sample_lookup", "windfarm_id", "metric", "observed_at"),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    windfarm_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("windfarms.id", ondelete="CASCADE"), nullable=False
    )
    metric: Mapped[AlertMetric] = mapped_column(
        Enum(AlertMetric, values_callable=enum_values), nullable=False
    )
    observed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<WindfarmMetricSample(windfarm_id={self.windfarm_id}, metric={self.metric}, "
            f"observed_at={self.observed_at}, value={self.value})>"
        )
