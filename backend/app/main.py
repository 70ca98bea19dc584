"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import ops, ranking
from app.api.errors import install_error_handlers
from app.api.middleware_request_id import RequestIdMiddleware
from app.domain.ranking import jobs
from app.domain.ranking.memory import MemoryCandidateRepository
from app.domain.ranking.postgres import PostgresCandidateRepository
from app.domain.ranking.repository import CandidateRepository
from app.infra import postgres
from app.infra.redis import close_redis
from app.infra.scheduler import JobScheduler
from app.obs import init as obs_init
from app.settings import settings

logger = logging.getLogger(__name__)


async def build_repository() -> CandidateRepository:
	if settings.ranking_backend == "memory":
		return MemoryCandidateRepository()
	pool = await postgres.init_pool()
	return PostgresCandidateRepository(pool)


def build_scheduler(repository: CandidateRepository) -> JobScheduler:
	scheduler = JobScheduler()

	async def _discovery() -> None:
		await jobs.run_discovery_scoring(repository)

	async def _trending() -> None:
		await jobs.run_trending_scoring(repository)

	async def _retention() -> None:
		await jobs.run_interaction_retention(repository)

	scheduler.schedule_every(jobs.DISCOVERY_JOB, _discovery, minutes=settings.discovery_interval_minutes)
	scheduler.schedule_every(jobs.TRENDING_JOB, _trending, minutes=settings.trending_interval_minutes)
	scheduler.schedule_every(jobs.RETENTION_JOB, _retention, hours=settings.retention_interval_hours)
	return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
	repository = await build_repository()
	app.state.ranking_repository = repository
	scheduler: JobScheduler | None = None
	if settings.ranking_scheduler_enabled:
		scheduler = build_scheduler(repository)
		scheduler.start()
		logger.info("ranking_scheduler.started", extra={"jobs": scheduler.job_ids()})
	app.state.ranking_scheduler = scheduler
	try:
		yield
	finally:
		if scheduler is not None:
			scheduler.shutdown()
		await postgres.close_pool()
		await close_redis()


app = FastAPI(title="Marketplace Ranking", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins)
if not allow_origins:
	allow_origins = ["http://localhost:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
obs_init(app)
# outermost, so every response carries X-Request-Id
app.add_middleware(RequestIdMiddleware)

app.include_router(ranking.router)
app.include_router(ops.router)
