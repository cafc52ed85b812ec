"""API-related constants."""

# HTTP Headers
CORRELATION_ID_HEADER = "X-Correlation-ID"
FORWARDED_PROTO_HEADER = "x-forwarded-proto"

RATE_LIMIT_LIMIT_HEADER = "RateLimit-Limit"
RATE_LIMIT_REMAINING_HEADER = "RateLimit-Remaining"
RATE_LIMIT_RESET_HEADER = "RateLimit-Reset"
LEGACY_RATE_LIMIT_LIMIT_HEADER = "X-RateLimit-Limit"
LEGACY_RATE_LIMIT_REMAINING_HEADER = "X-RateLimit-Remaining"
LEGACY_RATE_LIMIT_RESET_HEADER = "X-RateLimit-Reset"
RETRY_AFTER_HEADER = "Retry-After"

# Content types
JSON_CONTENT_TYPES = {"application/json", "text/json"}

# Methods that may be redirected from http:// to https:// without losing a body
SAFE_REDIRECT_METHODS = {"GET", "HEAD"}

# Headers that leak server implementation details
FINGERPRINT_HEADERS = ("x-powered-by", "server")

# HTTP status codes whose starlette names differ across releases
HTTP_413_PAYLOAD_TOO_LARGE = 413
HTTP_422_UNPROCESSABLE = 422

# Request scope state key holding the body size received from the client,
# set when an earlier stage has buffered and rewritten the body
RAW_BODY_BYTES_STATE_KEY = "raw_body_bytes"
