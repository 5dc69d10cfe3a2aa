"""
Shared utilities for the Observer Rules service.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with observer correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses

Do not import from service packages into shared/.
"""
