"""
Shared utilities for the Prometheus Unified Exporter.

This package holds the ambient building blocks the exporter service uses:

- config: Process settings via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Self-instrumentation on a private Prometheus registry
- errors: Canonical error types and responses
- base_service: FastAPI application scaffolding

Do not import from service_* packages into shared/.
"""
