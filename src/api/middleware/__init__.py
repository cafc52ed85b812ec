"""Middleware stages of the request pipeline.

Runtime order, outermost first (see ``src.api.main.install_pipeline``):

1. **RequestContextMiddleware**: correlation ID for logs and responses
2. **CORSMiddleware** (Starlette): allow-all origin policy, pre-flight replies
3. **InputSanitizationMiddleware**: escapes markup in query strings and JSON
4. **BodySizeLimitMiddleware**: 413 for oversized bodies
5. **GZipMiddleware** (Starlette): response compression
6. **SecurityHeadersMiddleware**: security header policy
7. **RateLimitMiddleware**: 429 once a client spends its window allowance
8. **OverloadSheddingMiddleware**: 503 while the event loop lags
9. **HTTPSEnforcementMiddleware**: redirects or refuses plaintext requests
"""
