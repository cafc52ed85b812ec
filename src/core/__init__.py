"""Framework-independent building blocks.

- **admission**: the composed admission-control service
- **rate_limit**: fixed-window per-client request counting
- **lag_monitor**: event-loop lag sampling
- **overload**: load-shedding decision on top of the lag signal
- **config**: environment-driven settings
- **logging**: Loguru setup
- **exceptions**: error hierarchy
- **context**: request correlation IDs
"""
