"""Bulwark - HTTP server bootstrap with a fixed admission-control pipeline.

Layers:
- **api**: FastAPI application factory, middleware pipeline, error handlers
- **core**: configuration, logging, and the admission-control services
  (fixed-window rate limiter, event-loop lag monitor, overload gate)
"""
