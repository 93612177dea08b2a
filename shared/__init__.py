"""
Shared utilities for the Portal Access Layer.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry helpers with explicit, testable policies

Cross-cutting logic lives here to avoid import cycles. Do not import from
service_* packages into shared/.
"""
