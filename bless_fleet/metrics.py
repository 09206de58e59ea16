"""Prometheus metrics for the bless-fleet daemon.

This module centralises counters and gauges so that supervisors and the
coordinator can record lightweight telemetry without each one managing its
own metric instances. Labels are kept to outcomes and operation names; node
identities are never used as labels so cardinality stays flat no matter how
large the fleet grows.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Final, Iterator

from prometheus_client import Counter, Gauge, Histogram


NODE_REGISTRATIONS: Final[Counter] = Counter(
    "bless_fleet_registrations_total",
    "Total node registration attempts, labeled by outcome.",
    labelnames=("outcome",),
)

SESSION_STARTS: Final[Counter] = Counter(
    "bless_fleet_session_starts_total",
    "Total session-open attempts, labeled by outcome.",
    labelnames=("outcome",),
)

HEARTBEATS: Final[Counter] = Counter(
    "bless_fleet_heartbeats_total",
    "Total heartbeat pings, labeled by outcome.",
    labelnames=("outcome",),
)

SESSION_CLOSES: Final[Counter] = Counter(
    "bless_fleet_session_closes_total",
    "Total session-close calls issued at shutdown, labeled by outcome.",
    labelnames=("outcome",),
)

NODE_RESTARTS: Final[Counter] = Counter(
    "bless_fleet_node_restarts_total",
    "Total restarts of a node lifecycle after a failed attempt.",
)

DUPLICATE_CLAIMS: Final[Counter] = Counter(
    "bless_fleet_duplicate_claims_total",
    "Total supervisors that stopped because the node was already claimed.",
)

ACTIVE_NODES: Final[Gauge] = Gauge(
    "bless_fleet_active_nodes",
    "Current number of node identities claimed in the registry.",
)

REQUEST_LATENCY: Final[Histogram] = Histogram(
    "bless_fleet_request_latency_seconds",
    "Latency of gateway requests in seconds, labeled by operation.",
    labelnames=("operation",),
    # Session starts can take a long time on the gateway side, so the upper
    # buckets stretch well past the usual request timeout.
    buckets=(
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
        30.0,
        60.0,
    ),
)


@contextmanager
def observe_request(operation: str) -> Iterator[None]:
    """Record wall-clock latency of one gateway request."""
    start = time.perf_counter()
    try:
        yield
    finally:
        REQUEST_LATENCY.labels(operation=operation).observe(
            time.perf_counter() - start
        )
