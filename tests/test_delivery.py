"""Tests for retrying outbound deliveries."""

import pytest

from alert_engine.services.delivery import calculate_retry_delay, send_with_retry


class Flaky:
    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("smtp relay timeout")


@pytest.mark.parametrize("retry_count,expected", [(0, 1.0), (1, 2.0), (2, 4.0), (10, 30.0)])
def test_retry_delay_backs_off_with_jitter(retry_count, expected):
    delay = calculate_retry_delay(retry_count, base_delay=1.0, max_delay=30.0)
    assert expected * 0.9 <= delay <= expected * 1.1


def test_retry_delay_never_negative():
    assert calculate_retry_delay(3, base_delay=0.0, max_delay=0.0) == 0.0


@pytest.mark.asyncio
async def test_first_attempt_succeeds(test_settings):
    send = Flaky(failures=0)

    result = await send_with_retry(send, settings=test_settings)

    assert result.delivered is True
    assert result.attempts == 1
    assert result.last_error is None


@pytest.mark.asyncio
async def test_succeeds_within_budget(test_settings):
    send = Flaky(failures=2)

    result = await send_with_retry(send, settings=test_settings, notification_id=7)

    assert result.delivered is True
    assert result.attempts == 3


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(test_settings):
    send = Flaky(failures=5)

    result = await send_with_retry(send, settings=test_settings)

    assert result.delivered is False
    assert result.attempts == 3
    assert result.last_error == "smtp relay timeout"
    assert send.calls == 3
