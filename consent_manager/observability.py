"""Prometheus metrics for the consent manager API."""

from __future__ import annotations

from functools import lru_cache

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

METRICS_ENDPOINT = "/metrics"

# Probe and scrape traffic would otherwise dominate the request metrics.
EXCLUDED_HANDLERS = ["^/health$", "^/ready$", f"^{METRICS_ENDPOINT}$"]


@lru_cache(maxsize=1)
def _instrumentator() -> Instrumentator:
    """One instrumentator per process; Prometheus collectors register globally."""
    return Instrumentator(
        should_group_status_codes=False,
        excluded_handlers=EXCLUDED_HANDLERS,
    )


def setup_instrumentation(app: FastAPI) -> None:
    """Count and time consent API requests and expose them at ``/metrics``."""
    instrumentator = _instrumentator()
    instrumentator.instrument(app)
    instrumentator.expose(app, include_in_schema=False, endpoint=METRICS_ENDPOINT)
