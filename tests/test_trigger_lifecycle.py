"""Tests for the alert trigger state machine."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from alert_engine.core.exceptions import ConflictException
from alert_engine.models.alert import (
    AlertCondition,
    AlertMetric,
    AlertRule,
    AlertTrigger,
    AlertTriggerStatus,
    open_trigger_key,
)
from alert_engine.services.trigger_lifecycle import TriggerLifecycleManager, build_trigger_message
from tests.factories import NOW, make_rule


@pytest.fixture
def lifecycle(test_session):
    return TriggerLifecycleManager(test_session)


async def count_triggers(session, rule_id):
    return await session.scalar(
        select(func.count()).select_from(AlertTrigger).where(AlertTrigger.rule_id == rule_id)
    )


@pytest.mark.asyncio
async def test_open_trigger_snapshots_rule(test_session, lifecycle, test_user, windfarm):
    rule = await make_rule(test_session, test_user)

    trigger = await lifecycle.open_trigger(rule, 42, 8.0, NOW)

    assert trigger is not None
    assert trigger.status == AlertTriggerStatus.ACTIVE
    assert trigger.open_key == open_trigger_key(rule.id, 42)
    assert trigger.triggered_value == 8.0
    assert trigger.threshold_value == 10.0
    assert trigger.severity == rule.severity
    assert trigger.triggered_at == NOW
    assert "Hornsea Two" in trigger.message

    last_triggered = await test_session.scalar(
        select(AlertRule.last_triggered_at).where(AlertRule.id == rule.id)
    )
    assert last_triggered == NOW


@pytest.mark.asyncio
async def test_at_most_one_open_trigger(test_session, lifecycle, test_user, windfarm):
    rule = await make_rule(test_session, test_user)

    first = await lifecycle.open_trigger(rule, 42, 8.0, NOW)
    second = await lifecycle.open_trigger(rule, 42, 7.0, NOW + timedelta(minutes=5))

    assert first is not None
    assert second is None
    assert await count_triggers(test_session, rule.id) == 1


@pytest.mark.asyncio
async def test_concurrent_open_loses_on_unique_key(test_session, lifecycle, test_user, windfarm, monkeypatch):
    rule = await make_rule(test_session, test_user)
    rule_id = rule.id
    assert await lifecycle.open_trigger(rule, 42, 8.0, NOW) is not None

    # Simulate a writer that checked before the first insert was visible
    async def stale_check(*args):
        return None

    monkeypatch.setattr(lifecycle, "get_open_trigger", stale_check)

    assert await lifecycle.open_trigger(rule, 42, 7.0, NOW) is None
    assert await count_triggers(test_session, rule_id) == 1


@pytest.mark.asyncio
async def test_resolve_open_clears_key(test_session, lifecycle, test_user, windfarm):
    rule = await make_rule(test_session, test_user)
    trigger = await lifecycle.open_trigger(rule, 42, 8.0, NOW)

    assert await lifecycle.resolve_open(rule.id, 42, NOW + timedelta(minutes=10)) is True
    assert await lifecycle.resolve_open(rule.id, 42, NOW + timedelta(minutes=15)) is False

    await test_session.refresh(trigger)
    assert trigger.status == AlertTriggerStatus.RESOLVED
    assert trigger.open_key is None
    assert trigger.resolved_at == NOW + timedelta(minutes=10)


@pytest.mark.asyncio
async def test_resolved_at_never_precedes_triggered_at(test_session, lifecycle, test_user, windfarm):
    rule = await make_rule(test_session, test_user)
    trigger = await lifecycle.open_trigger(rule, 42, 8.0, NOW)

    # A clock that lags the one that opened the trigger
    await lifecycle.resolve_open(rule.id, 42, NOW - timedelta(minutes=3))

    await test_session.refresh(trigger)
    assert trigger.resolved_at == NOW


@pytest.mark.asyncio
async def test_new_trigger_after_resolution(test_session, lifecycle, test_user, windfarm):
    rule = await make_rule(test_session, test_user)
    await lifecycle.open_trigger(rule, 42, 8.0, NOW)
    await lifecycle.resolve_open(rule.id, 42, NOW + timedelta(minutes=5))

    reopened = await lifecycle.open_trigger(rule, 42, 6.0, NOW + timedelta(minutes=10))

    assert reopened is not None
    assert await count_triggers(test_session, rule.id) == 2


@pytest.mark.asyncio
async def test_acknowledge_is_idempotent(test_session, lifecycle, test_user, windfarm):
    rule = await make_rule(test_session, test_user)
    trigger = await lifecycle.open_trigger(rule, 42, 8.0, NOW)

    await lifecycle.acknowledge(trigger, NOW + timedelta(minutes=1))
    await lifecycle.acknowledge(trigger, NOW + timedelta(minutes=2))

    assert trigger.status == AlertTriggerStatus.ACKNOWLEDGED
    assert trigger.acknowledged_at == NOW + timedelta(minutes=1)
    # Still open: the evaluator resolves it when the breach clears
    assert trigger.open_key == open_trigger_key(rule.id, 42)


@pytest.mark.asyncio
async def test_acknowledge_resolved_trigger_conflicts(test_session, lifecycle, test_user, windfarm):
    rule = await make_rule(test_session, test_user)
    trigger = await lifecycle.open_trigger(rule, 42, 8.0, NOW)
    await lifecycle.resolve(trigger, NOW + timedelta(minutes=1))

    with pytest.raises(ConflictException):
        await lifecycle.acknowledge(trigger, NOW + timedelta(minutes=2))


@pytest.mark.asyncio
async def test_resolve_acknowledged_and_resolve_again(test_session, lifecycle, test_user, windfarm):
    rule = await make_rule(test_session, test_user)
    trigger = await lifecycle.open_trigger(rule, 42, 8.0, NOW)
    await lifecycle.acknowledge(trigger, NOW + timedelta(minutes=1))

    await lifecycle.resolve(trigger, NOW + timedelta(minutes=2))
    await lifecycle.resolve(trigger, NOW + timedelta(minutes=3))

    assert trigger.status == AlertTriggerStatus.RESOLVED
    assert trigger.resolved_at == NOW + timedelta(minutes=2)


def test_build_trigger_message_variants():
    rule = AlertRule(
        metric=AlertMetric.WIND_SPEED,
        condition=AlertCondition.OUTSIDE_RANGE,
        threshold_value=3.0,
        threshold_value_upper=25.0,
        sustained_minutes=15,
    )
    message = build_trigger_message(rule, "Hornsea Two", 27.5)
    assert "outside range 3 to 25" in message
    assert "15 minutes" in message

    rule = AlertRule(
        metric=AlertMetric.GENERATION,
        condition=AlertCondition.CHANGE_BY_PERCENT,
        threshold_value=25.0,
        sustained_minutes=0,
    )
    assert "-30.0%" in build_trigger_message(rule, "Hornsea Two", -30.0)
