"""Load shedding on event-loop lag.

:class:`OverloadGate` turns a lag reading into a per-request shed decision.
It reads the lag source once per call and never blocks. When the source is
missing, stopped or fails to answer, the gate fails open: it reports "not
busy" so that a broken monitor degrades to no shedding instead of rejecting
all traffic.
"""

from typing import Protocol

from loguru import logger

from src.core.exceptions import LagMonitorUnavailableError


class LagSource(Protocol):
    """Anything that can report the current event-loop lag."""

    @property
    def current_lag_ms(self) -> float:
        """Current lag in milliseconds."""
        ...


class OverloadGate:
    """Decides whether a request should be shed.

    Args:
        max_lag_ms: Lag above which requests are shed.
        source: Lag signal. ``None`` means no signal, so nothing is shed.
    """

    def __init__(self, max_lag_ms: float, source: LagSource | None = None) -> None:
        self.max_lag_ms = max_lag_ms
        self.source = source

    def current_lag_ms(self) -> float | None:
        """Read the lag signal, or ``None`` when it is unavailable."""
        if self.source is None:
            return None
        try:
            return self.source.current_lag_ms
        except LagMonitorUnavailableError as e:
            logger.debug("Lag signal unavailable, failing open: {}", e.message)
            return None

    def is_overloaded(self, lag_ms: float | None) -> bool:
        """Whether a lag reading is over the shed threshold. ``None`` never is."""
        return lag_ms is not None and lag_ms > self.max_lag_ms

    def should_shed(self) -> bool:
        """Return True when the server is too busy to take this request."""
        return self.is_overloaded(self.current_lag_ms())

    def on_lag(self, current_lag_ms: float) -> None:
        """Lag listener: report a lag spike. Does not reject anything."""
        logger.warning(
            "Event loop lag detected! Latency: {}ms",
            round(current_lag_ms, 2),
            lag_ms=current_lag_ms,
            max_lag_ms=self.max_lag_ms,
        )
