"""Event-loop lag measurement.

A background task sleeps for a fixed interval and measures how late it woke
up. The difference between the time actually elapsed and the interval
requested is the lag: time the loop spent running other callbacks instead of
this one. A busy, CPU-bound loop shows lag long before requests start to
time out, which makes it a cheap overload signal for a single-threaded
server.

Raw samples are noisy, so the monitor keeps a dampened value::

    smoothed = factor * sample + (1 - factor) * smoothed

Listeners registered with :meth:`EventLoopLagMonitor.on_lag` receive every
raw sample above ``lag_event_threshold_ms``.
"""

import asyncio
from collections.abc import Callable

from loguru import logger

from src.core.constants import MILLISECONDS_PER_SECOND
from src.core.exceptions import ConfigurationError, LagMonitorUnavailableError

type LagListener = Callable[[float], None]


class EventLoopLagMonitor:
    """Periodically samples the running event loop for scheduling lag.

    Args:
        interval_ms: Sampling interval in milliseconds.
        smoothing_factor: Weight of the newest sample, between 0 and 1.
        lag_event_threshold_ms: Raw lag above which listeners are notified.

    Raises:
        ConfigurationError: If the interval or factor is out of range.
    """

    def __init__(
        self,
        interval_ms: float = 500.0,
        smoothing_factor: float = 1 / 3,
        lag_event_threshold_ms: float = 70.0,
    ) -> None:
        if interval_ms <= 0 or not 0 < smoothing_factor <= 1:
            raise ConfigurationError(
                "Lag monitor interval must be positive and smoothing in (0, 1]",
                context={
                    "interval_ms": interval_ms,
                    "smoothing_factor": smoothing_factor,
                },
            )
        self.interval_ms = interval_ms
        self.smoothing_factor = smoothing_factor
        self.lag_event_threshold_ms = lag_event_threshold_ms
        self._smoothed_lag_ms = 0.0
        self._listeners: list[LagListener] = []
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def current_lag_ms(self) -> float:
        """The dampened lag value.

        Raises:
            LagMonitorUnavailableError: If the monitor is not running.
        """
        if not self.is_running:
            raise LagMonitorUnavailableError
        return self._smoothed_lag_ms

    def on_lag(self, listener: LagListener) -> None:
        """Register a callback for raw samples above the event threshold."""
        self._listeners.append(listener)

    def record_sample(self, lag_ms: float) -> None:
        """Fold one raw lag sample into the smoothed value and notify listeners."""
        lag_ms = max(0.0, lag_ms)
        self._smoothed_lag_ms = (
            self.smoothing_factor * lag_ms
            + (1 - self.smoothing_factor) * self._smoothed_lag_ms
        )

        if lag_ms > self.lag_event_threshold_ms:
            for listener in list(self._listeners):
                try:
                    listener(lag_ms)
                except Exception:  # noqa: BLE001 - a listener must not stop sampling
                    logger.opt(exception=True).error(
                        "Lag listener {} failed", getattr(listener, "__name__", listener)
                    )

    def start(self) -> None:
        """Start sampling on the running event loop.

        Raises:
            RuntimeError: If called outside a running event loop.
        """
        if self.is_running:
            return
        self._smoothed_lag_ms = 0.0
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="event-loop-lag-monitor"
        )
        logger.info(
            "Event loop lag monitor started",
            interval_ms=self.interval_ms,
            lag_event_threshold_ms=self.lag_event_threshold_ms,
        )

    async def stop(self) -> None:
        """Cancel the sampling task and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            # The caller itself is being cancelled; let that propagate.
            if current is not None and current.cancelling():
                raise
        logger.info("Event loop lag monitor stopped")

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        interval = self.interval_ms / MILLISECONDS_PER_SECOND
        while True:
            started = loop.time()
            await asyncio.sleep(interval)
            elapsed = loop.time() - started
            self.record_sample((elapsed - interval) * MILLISECONDS_PER_SECOND)
