"""Core application constants."""

# Time constants
MILLISECONDS_PER_SECOND = 1000
SECONDS_PER_DAY = 24 * 60 * 60

# Admission control
RATE_LIMIT_MESSAGE = "You have exceeded the 100 requests in 24 hrs limit!"
OVERLOAD_MESSAGE = "Server too busy!"
UNKNOWN_CLIENT_KEY = "unknown"

# Request bodies
DEFAULT_MAX_BODY_BYTES = 50 * 1024

# Security
DEFAULT_HSTS_MAX_AGE = 15552000  # 180 days in seconds
REDACTED = "[REDACTED]"
