"""HTTP layer: application factory, middleware pipeline and error responses."""
