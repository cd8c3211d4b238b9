"""Metric helpers.

Thin wrappers around prometheus_client primitives with service-name
prefixing and basic naming validation. The default registry is used so that
`generate_latest()` in the service exposes everything.
"""

from __future__ import annotations

import re

from prometheus_client import Counter, Gauge, Histogram

_NAME_RE = re.compile(r"^[a-z_][a-z0-9_]*$")


def _validate(name: str) -> str:
    if not _NAME_RE.match(name):
        raise ValueError(
            f"Invalid metric name '{name}'. Use snake_case alphanumerics/underscores."
        )
    return name


def _prefix(name: str, service: str | None) -> str:
    if service and not name.startswith(service + "_"):
        return f"{service}_{name}"
    return name


def get_counter(
    name: str,
    documentation: str,
    service: str | None = None,
    labelnames: tuple[str, ...] = (),
) -> Counter:
    return Counter(_validate(_prefix(name, service)), documentation, labelnames)


def get_histogram(
    name: str,
    documentation: str,
    service: str | None = None,
    buckets: list[float] | None = None,
) -> Histogram:
    full_name = _validate(_prefix(name, service))
    if buckets is None:
        return Histogram(full_name, documentation)
    return Histogram(full_name, documentation, buckets=buckets)


def get_gauge(name: str, documentation: str, service: str | None = None) -> Gauge:
    return Gauge(_validate(_prefix(name, service)), documentation)


__all__ = ["get_counter", "get_histogram", "get_gauge"]
