"""Tests for the run status poller."""

import pytest

from assist_gateway.core.exceptions import RemoteServiceError
from assist_gateway.models.chat import RunStatus
from assist_gateway.services.run_poller import (
    INITIAL_DELAY_MS,
    MAX_DELAY_MS,
    RunPoller,
    backoff_delay,
)
from tests.fakes import FakeAssistantService


class FakeClock:
    """Monotonic clock that only moves when the poller sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestBackoffDelay:
    def test_first_delay_is_initial(self):
        assert backoff_delay(0, 0, 9000) == INITIAL_DELAY_MS

    def test_grows_by_factor(self):
        assert backoff_delay(0, 1, 9000) == pytest.approx(390)
        assert backoff_delay(0, 2, 9000) == pytest.approx(507)

    def test_capped(self):
        assert backoff_delay(0, 10, 60000) == MAX_DELAY_MS

    def test_clipped_to_remaining_budget(self):
        assert backoff_delay(8900, 10, 9000) == pytest.approx(100)

    def test_none_when_budget_spent(self):
        assert backoff_delay(9000, 3, 9000) is None
        assert backoff_delay(9500, 3, 9000) is None
        assert backoff_delay(0, 0, 0) is None


class TestRunPoller:
    @pytest.mark.asyncio
    async def test_returns_when_run_completes(self):
        service = FakeAssistantService()
        service.run_statuses = ["queued", "in_progress", "completed"]
        clock = FakeClock()

        run = await RunPoller(service, sleep=clock.sleep, clock=clock).wait("thread_1", "run_1", 9000)

        assert run.status == RunStatus.COMPLETED
        assert service.names().count("get_run") == 3
        assert clock.sleeps == [pytest.approx(0.3), pytest.approx(0.39)]

    @pytest.mark.asyncio
    async def test_stops_on_requires_action(self):
        service = FakeAssistantService()
        service.run_statuses = ["in_progress", "requires_action"]
        clock = FakeClock()

        run = await RunPoller(service, sleep=clock.sleep, clock=clock).wait("thread_1", "run_1", 9000)

        assert run.status == RunStatus.REQUIRES_ACTION

    @pytest.mark.asyncio
    async def test_stops_on_failed_status(self):
        service = FakeAssistantService()
        service.run_statuses = ["in_progress", "expired"]
        clock = FakeClock()

        run = await RunPoller(service, sleep=clock.sleep, clock=clock).wait("thread_1", "run_1", 9000)

        assert run.status == RunStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_budget_exhaustion_returns_pending_run(self):
        service = FakeAssistantService()
        service.run_statuses = ["in_progress"]
        clock = FakeClock()

        run = await RunPoller(service, sleep=clock.sleep, clock=clock).wait("thread_1", "run_1", 9000)

        assert run.status == RunStatus.IN_PROGRESS
        assert clock.now * 1000 <= 9000 + MAX_DELAY_MS
        assert all(seconds * 1000 <= MAX_DELAY_MS for seconds in clock.sleeps)

    @pytest.mark.asyncio
    async def test_zero_budget_checks_once(self):
        service = FakeAssistantService()
        service.run_statuses = ["queued"]
        clock = FakeClock()

        run = await RunPoller(service, sleep=clock.sleep, clock=clock).wait("thread_1", "run_1", 0)

        assert run.status == RunStatus.QUEUED
        assert service.names() == ["get_run"]
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self):
        service = FakeAssistantService()
        service.get_run_error = RemoteServiceError("connection reset")
        clock = FakeClock()

        with pytest.raises(RemoteServiceError):
            await RunPoller(service, sleep=clock.sleep, clock=clock).wait("thread_1", "run_1", 9000)
        assert service.names() == ["get_run"]
