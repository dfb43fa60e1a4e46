from __future__ import annotations

"""Gateway metrics (Prometheus).

Counters are process-wide and label-bounded: `mode` and `outcome` come from
fixed sets, never from request paths.
"""

from prometheus_client import Counter, Histogram

requests_total = Counter(
    "gateway_requests_total",
    "Gateway requests by mode and terminal outcome",
    labelnames=("mode", "outcome"),
)
presigns_total = Counter(
    "gateway_presigns_total",
    "Number of presigned URL generations",
    labelnames=("result",),
)
presign_latency = Histogram(
    "gateway_presign_seconds",
    "Latency for presigned URL generation",
    labelnames=("result",),
    buckets=(0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
)
playlist_segments_total = Counter(
    "gateway_playlist_segments_total",
    "Playlist segments rewritten with presigned URLs",
)


def inc_request(mode: str, outcome: str) -> None:
    requests_total.labels(mode=mode, outcome=outcome).inc()


def inc_presign(result: str) -> None:
    presigns_total.labels(result=result).inc()


def observe_presign_seconds(result: str, seconds: float) -> None:
    presign_latency.labels(result=result).observe(seconds)


def inc_playlist_segments(count: int) -> None:
    if count > 0:
        playlist_segments_total.inc(count)


__all__ = [
    "inc_request",
    "inc_presign",
    "observe_presign_seconds",
    "inc_playlist_segments",
]
