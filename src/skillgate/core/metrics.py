"""Prometheus metrics for SkillGate."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

si_http_requests_total = Counter(
    "skillgate_http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)
si_ask_duration_seconds = Histogram(
    "skillgate_ask_duration_seconds",
    "Ask request duration in seconds (inference included)",
    ["variant", "model"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)
si_upstream_errors_total = Counter(
    "skillgate_upstream_errors_total",
    "Local inference failures by status",
    ["status"],
)
si_rerank_tier_total = Counter(
    "skillgate_rerank_tier_total",
    "Rerank calls answered per tier",
    ["tier"],
)
si_credits_charged_total = Counter(
    "skillgate_credits_charged_total",
    "Total credits charged",
    ["route"],
)
si_billing_rejections_total = Counter(
    "skillgate_billing_rejections_total",
    "Requests rejected by the billing guard",
    ["status"],
)
