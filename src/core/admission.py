"""Admission control service.

:class:`AdmissionController` owns every piece of mutable admission state:
the rate limiter's counter table, the overload gate and the lag monitor that
feeds it. One instance is built per application and handed to the admission
middleware, so tests and multiple apps in one process never share counters.
"""

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from src.core.config import Settings
from src.core.lag_monitor import EventLoopLagMonitor
from src.core.overload import OverloadGate
from src.core.rate_limit import FixedWindowRateLimiter, RateLimitDecision


@dataclass
class AdmissionController:
    """Rate limiting plus load shedding behind one object."""

    rate_limiter: FixedWindowRateLimiter
    gate: OverloadGate
    monitor: EventLoopLagMonitor | None = None
    _listening: bool = field(default=False, init=False, repr=False)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AdmissionController":
        """Build the controller described by ``settings``."""
        rate_config = settings.rate_limit_config
        overload_config = settings.overload_config

        rate_limiter = FixedWindowRateLimiter(
            max_requests=rate_config.max_requests,
            window_seconds=rate_config.window_seconds,
            max_tracked_keys=rate_config.max_tracked_keys,
        )

        monitor = None
        if overload_config.enabled:
            monitor = EventLoopLagMonitor(
                interval_ms=overload_config.check_interval_ms,
                smoothing_factor=overload_config.smoothing_factor,
                lag_event_threshold_ms=overload_config.lag_warning_threshold_ms,
            )
        gate = OverloadGate(max_lag_ms=overload_config.max_lag_ms, source=monitor)

        return cls(rate_limiter=rate_limiter, gate=gate, monitor=monitor)

    def start(self) -> None:
        """Start the lag monitor and attach the gate's lag listener once."""
        if self.monitor is None:
            logger.info("Overload shedding disabled, no lag monitor started")
            return
        if not self._listening:
            self.monitor.on_lag(self.gate.on_lag)
            self._listening = True
        self.monitor.start()

    async def stop(self) -> None:
        if self.monitor is not None:
            await self.monitor.stop()

    def admit(self, client_key: str, now: float | None = None) -> RateLimitDecision:
        return self.rate_limiter.admit(client_key, now)

    def should_shed(self) -> bool:
        return self.gate.should_shed()

    def snapshot(self) -> dict[str, Any]:
        """Current admission state for the health probe.

        The lag is read once and judged by the same rule the shedding stage
        uses. While shedding is active a busy server answers most probes with
        503 before they get here, so ``"busy"`` shows up only for requests
        admitted just before the lag crossed the threshold, or when the
        shedding stage is left out of the pipeline but a lag source is wired.
        """
        lag = self.gate.current_lag_ms()
        return {
            "status": "busy" if self.gate.is_overloaded(lag) else "healthy",
            "event_loop_lag_ms": None if lag is None else round(lag, 2),
            "tracked_clients": len(self.rate_limiter),
        }
