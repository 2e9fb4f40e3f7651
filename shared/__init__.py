"""
Shared utilities for the catalog service.

This package aggregates common building blocks consumed by services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- tracing: OpenTelemetry tracing config
- errors: Canonical error types and responses
- retry: Retry decorator for connection bootstrap
- base_service: FastAPI app factory, middleware and error handlers

Do not import from service packages into shared/.
"""
