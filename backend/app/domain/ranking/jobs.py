"""Batch jobs that recompute persisted scores and prune old interactions."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Optional, TypeVar

from app.domain.ranking import models, scoring
from app.domain.ranking.errors import RankingError
from app.domain.ranking.repository import CandidateRepository
from app.obs import metrics as obs_metrics
from app.settings import settings

logger = logging.getLogger(__name__)

DISCOVERY_JOB = "ranking-discovery-scoring"
TRENDING_JOB = "ranking-trending-scoring"
RETENTION_JOB = "ranking-interaction-retention"

TRENDING_WINDOW = timedelta(days=7)
VELOCITY_WINDOW = timedelta(hours=24)

T = TypeVar("T")


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


class _FanOut:
	"""Runs one write per item under a semaphore, isolating failures."""

	score_name = ""

	def __init__(self, repository: CandidateRepository, *, concurrency: Optional[int] = None) -> None:
		self.repo = repository
		self._concurrency = max(1, concurrency or settings.ranking_job_concurrency)

	async def _guarded(self, semaphore: asyncio.Semaphore, user_id: str, work: Awaitable[None]) -> bool:
		async with semaphore:
			try:
				await work
			except RankingError as exc:
				obs_metrics.inc_score_written(self.score_name, "failed")
				logger.warning(
					"ranking_job.item_failed",
					extra={"score": self.score_name, "user_id": user_id, "detail": exc.detail},
				)
				return False
			except Exception:  # noqa: BLE001 - one bad row must not abort the batch
				obs_metrics.inc_score_written(self.score_name, "error")
				logger.exception("ranking_job.item_error", extra={"score": self.score_name, "user_id": user_id})
				return False
		obs_metrics.inc_score_written(self.score_name, "ok")
		return True

	async def _fan_out(self, items: list[tuple[str, Awaitable[None]]]) -> models.JobResult:
		semaphore = asyncio.Semaphore(self._concurrency)
		outcomes = await asyncio.gather(*(self._guarded(semaphore, user_id, work) for user_id, work in items))
		updated = sum(1 for ok in outcomes if ok)
		return models.JobResult(updated=updated, failed=len(outcomes) - updated)


class DiscoveryScorer(_FanOut):
	"""Recomputes profile completeness and the discovery score of every active user."""

	score_name = "discovery"

	async def _score_user(self, user: models.UserRecord, now: datetime) -> None:
		completeness = scoring.profile_completeness(user)
		signals = scoring.signals_for(user, now=now, completeness=completeness)
		update = (
			models.ReputationUpdateBuilder()
			.profile_completeness(completeness)
			.discovery_score(scoring.discovery_score(signals))
			.scored_at(now)
			.build()
		)
		await self.repo.write_reputation(user.id, update)

	async def run_once(self, *, now: Optional[datetime] = None) -> models.JobResult:
		now = now or _utcnow()
		page = await self.repo.list_active_candidates(models.CandidateQuery(sort=models.SortKey.NEWEST))
		result = await self._fan_out([(user.id, self._score_user(user, now)) for user in page.users])
		logger.info(
			"ranking_job.discovery_done",
			extra={"updated": result.updated, "failed": result.failed},
		)
		return result


class TrendingScorer(_FanOut):
	"""Scores users with interactions in the trailing week.

	Users without recent interactions keep their previous trending score.
	"""

	score_name = "trending"

	async def _score_target(self, target_user_id: str, aggregate: models.InteractionAggregate, now: datetime) -> None:
		recent = await self.repo.get_interaction_aggregates(target_user_id, now - VELOCITY_WINDOW)
		stats = models.InteractionStats(
			total_7d=aggregate.count,
			weight_sum_7d=aggregate.weight_sum,
			count_24h=recent.count,
		)
		update = (
			models.ReputationUpdateBuilder()
			.trending_score(scoring.trending_score(stats))
			.scored_at(now)
			.build()
		)
		await self.repo.write_reputation(target_user_id, update)

	async def run_once(self, *, now: Optional[datetime] = None) -> models.JobResult:
		now = now or _utcnow()
		aggregates = await self.repo.aggregate_interactions(now - TRENDING_WINDOW)
		targeted = [(agg.target_user_id, agg) for agg in aggregates if agg.target_user_id is not None]
		if len(targeted) != len(aggregates):
			logger.debug("ranking_job.untargeted_skipped", extra={"count": len(aggregates) - len(targeted)})
		result = await self._fan_out([(target_id, self._score_target(target_id, agg, now)) for target_id, agg in targeted])
		logger.info(
			"ranking_job.trending_done",
			extra={"updated": result.updated, "failed": result.failed},
		)
		return result


class InteractionRetentionJob:
	"""Deletes interactions past the retention window."""

	def __init__(self, repository: CandidateRepository, *, retention_days: Optional[int] = None) -> None:
		self.repo = repository
		self.retention_days = retention_days or settings.interaction_retention_days

	async def run_once(self, *, now: Optional[datetime] = None) -> int:
		now = now or _utcnow()
		purged = await self.repo.purge_interactions(now - timedelta(days=self.retention_days))
		obs_metrics.inc_interactions_purged(purged)
		logger.info("ranking_job.retention_done", extra={"purged": purged})
		return purged


async def run_timed(name: str, job: Awaitable[T], *, timeout: Optional[float] = None) -> Optional[T]:
	"""Await a job run with a deadline; a timed-out run returns ``None``."""

	timeout = timeout or settings.ranking_job_timeout_seconds
	started = time.perf_counter()
	try:
		result = await asyncio.wait_for(job, timeout=timeout)
	except asyncio.TimeoutError:
		obs_metrics.record_job_run(name, result="timeout", duration_seconds=time.perf_counter() - started)
		logger.warning("ranking_job.timeout", extra={"job": name, "timeout": timeout})
		return None
	except Exception:
		obs_metrics.record_job_run(name, result="error", duration_seconds=time.perf_counter() - started)
		raise
	obs_metrics.record_job_run(name, result="success", duration_seconds=time.perf_counter() - started)
	return result


async def run_discovery_scoring(repository: CandidateRepository, *, now: Optional[datetime] = None) -> Optional[models.JobResult]:
	return await run_timed(DISCOVERY_JOB, DiscoveryScorer(repository).run_once(now=now))


async def run_trending_scoring(repository: CandidateRepository, *, now: Optional[datetime] = None) -> Optional[models.JobResult]:
	return await run_timed(TRENDING_JOB, TrendingScorer(repository).run_once(now=now))


async def run_interaction_retention(repository: CandidateRepository, *, now: Optional[datetime] = None) -> Optional[int]:
	return await run_timed(RETENTION_JOB, InteractionRetentionJob(repository).run_once(now=now))


__all__ = [
	"DISCOVERY_JOB",
	"DiscoveryScorer",
	"InteractionRetentionJob",
	"RETENTION_JOB",
	"TRENDING_JOB",
	"TrendingScorer",
	"run_discovery_scoring",
	"run_interaction_retention",
	"run_timed",
	"run_trending_scoring",
]
