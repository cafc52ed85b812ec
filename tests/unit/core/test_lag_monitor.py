"""Unit tests for src/core/lag_monitor.py."""

import asyncio
import time

import pytest
from pytest_mock import MockerFixture

from src.core.exceptions import ConfigurationError, LagMonitorUnavailableError
from src.core.lag_monitor import EventLoopLagMonitor


@pytest.mark.unit
class TestEventLoopLagMonitor:
    """Tests for lag smoothing, listeners and the sampling task."""

    def test_defaults(self) -> None:
        monitor = EventLoopLagMonitor()

        assert monitor.interval_ms == 500.0
        assert monitor.smoothing_factor == pytest.approx(1 / 3)
        assert monitor.lag_event_threshold_ms == 70.0
        assert monitor.is_running is False

    def test_current_lag_unavailable_when_not_running(self) -> None:
        monitor = EventLoopLagMonitor()

        with pytest.raises(LagMonitorUnavailableError):
            _ = monitor.current_lag_ms

    @pytest.mark.parametrize(
        ("interval_ms", "smoothing_factor"),
        [(0, 0.5), (-1, 0.5), (100, 0), (100, 1.5)],
    )
    def test_rejects_invalid_parameters(
        self, interval_ms: float, smoothing_factor: float
    ) -> None:
        with pytest.raises(ConfigurationError):
            EventLoopLagMonitor(interval_ms=interval_ms, smoothing_factor=smoothing_factor)

    def test_record_sample_dampens_lag(self) -> None:
        """smoothed = f * sample + (1 - f) * smoothed."""
        monitor = EventLoopLagMonitor(smoothing_factor=0.5)

        monitor.record_sample(100)
        assert monitor._smoothed_lag_ms == 50
        monitor.record_sample(100)
        assert monitor._smoothed_lag_ms == 75
        monitor.record_sample(0)
        assert monitor._smoothed_lag_ms == 37.5

    def test_negative_samples_clamped(self) -> None:
        monitor = EventLoopLagMonitor(smoothing_factor=1)
        monitor.record_sample(-20)
        assert monitor._smoothed_lag_ms == 0

    def test_listeners_get_raw_samples_above_threshold(self) -> None:
        monitor = EventLoopLagMonitor(smoothing_factor=0.1, lag_event_threshold_ms=50)
        seen: list[float] = []
        monitor.on_lag(seen.append)

        monitor.record_sample(10)
        monitor.record_sample(50)
        monitor.record_sample(600)

        assert seen == [600]

    def test_failing_listener_does_not_block_others(self, mocker: MockerFixture) -> None:
        mocker.patch("src.core.lag_monitor.logger")
        monitor = EventLoopLagMonitor(lag_event_threshold_ms=1)
        seen: list[float] = []

        def broken(_: float) -> None:
            raise RuntimeError("boom")

        monitor.on_lag(broken)
        monitor.on_lag(seen.append)

        monitor.record_sample(10)

        assert seen == [10]

    async def test_start_and_stop(self) -> None:
        monitor = EventLoopLagMonitor(interval_ms=10)

        monitor.start()
        assert monitor.is_running is True
        assert monitor.current_lag_ms >= 0

        await monitor.stop()
        assert monitor.is_running is False
        with pytest.raises(LagMonitorUnavailableError):
            _ = monitor.current_lag_ms

    async def test_start_is_idempotent(self) -> None:
        monitor = EventLoopLagMonitor(interval_ms=10)
        monitor.start()
        task = monitor._task
        monitor.start()

        assert monitor._task is task
        await monitor.stop()

    async def test_cancelled_caller_of_stop_stays_cancelled(self) -> None:
        monitor = EventLoopLagMonitor(interval_ms=10)
        monitor.start()
        stopper = asyncio.create_task(monitor.stop())
        await asyncio.sleep(0)

        stopper.cancel()

        with pytest.raises(asyncio.CancelledError):
            await stopper
        assert monitor.is_running is False

    async def test_stop_without_start(self) -> None:
        monitor = EventLoopLagMonitor()
        await monitor.stop()
        assert monitor.is_running is False

    async def test_detects_blocked_loop(self) -> None:
        """Blocking the loop shows up as lag and reaches listeners."""
        monitor = EventLoopLagMonitor(
            interval_ms=10, smoothing_factor=1, lag_event_threshold_ms=20
        )
        seen: list[float] = []
        monitor.on_lag(seen.append)
        monitor.start()

        await asyncio.sleep(0.03)
        time.sleep(0.1)  # noqa: ASYNC251 - deliberately block the loop
        await asyncio.sleep(0.05)
        await monitor.stop()

        assert seen
        assert max(seen) >= 50
