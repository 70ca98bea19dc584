"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

import logging

from prometheus_client import Counter, Gauge, Histogram, Summary

log = logging.getLogger(__name__)


REQUEST_COUNTER = Counter(
	"mkt_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"mkt_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

RATE_LIMITED_EVENTS = Counter(
	"mkt_rate_limited_total",
	"Requests rejected by rate limiting",
	["kind"],
)

REDIS_UP = Gauge("mkt_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("mkt_redis_latency_seconds", "Redis ping latency (seconds)")

POSTGRES_UP = Gauge("mkt_postgres_up", "Postgres availability (1=up,0=down)")
POSTGRES_LATENCY = Summary("mkt_postgres_latency_seconds", "Postgres ping latency (seconds)")

BACKGROUND_RUNS = Counter(
	"mkt_jobs_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"mkt_jobs_duration_seconds",
	"Background job duration",
	["name"],
	buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 15.0, 30.0, 60.0, 300.0, 900.0),
)

SCORES_WRITTEN = Counter(
	"mkt_ranking_scores_written_total",
	"Reputation score writes by the scoring jobs",
	["score", "result"],
)

INTERACTIONS_PURGED = Counter(
	"mkt_ranking_interactions_purged_total",
	"Interactions deleted by the retention job",
)

RANKING_QUERIES = Counter(
	"mkt_ranking_queries_total",
	"Ranking queries executed",
	["kind"],
)

RANKING_LATENCY = Histogram(
	"mkt_ranking_latency_seconds",
	"Ranking query latency in seconds",
	["kind"],
	buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0),
)

BEST_EFFORT_FAILURES = Counter(
	"mkt_best_effort_failures_total",
	"Tracking side effects that failed and were discarded",
	["action"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_rate_limited(kind: str) -> None:
	RATE_LIMITED_EVENTS.labels(kind=kind).inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	BACKGROUND_RUNS.labels(name=name, result=result).inc()
	if duration_seconds is not None:
		BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)


def inc_score_written(score: str, result: str) -> None:
	SCORES_WRITTEN.labels(score=score, result=result).inc()


def inc_interactions_purged(count: int) -> None:
	if count > 0:
		INTERACTIONS_PURGED.inc(count)


def inc_ranking_query(kind: str) -> None:
	RANKING_QUERIES.labels(kind=kind).inc()


def observe_ranking_latency(kind: str, latency_seconds: float) -> None:
	RANKING_LATENCY.labels(kind=kind).observe(latency_seconds)


def inc_best_effort_failure(action: str) -> None:
	BEST_EFFORT_FAILURES.labels(action=action).inc()
