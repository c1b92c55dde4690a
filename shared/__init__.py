"""
Shared utilities for the bundle pricing engine.

This package aggregates common building blocks consumed by the pricing
service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with correlation IDs
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI service skeleton (health, metrics, error handlers)

Runtime modules in shared/ do not import from service_* packages; test_helpers
builds pricing fixtures and is the one exception.
"""
