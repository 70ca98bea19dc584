"""Operations endpoints: health checks, metrics and manual job triggers."""

from __future__ import annotations

from typing import Awaitable, Optional, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.api.deps import get_repository
from app.domain.ranking import jobs, schemas
from app.domain.ranking.repository import CandidateRepository
from app.infra.auth import AuthenticatedUser, get_admin_user
from app.obs import health

router = APIRouter(prefix="", tags=["ops"])

T = TypeVar("T")


async def _run_job(name: str, job: Awaitable[T]) -> T:
	result: Optional[T] = await jobs.run_timed(name, job)
	if result is None:
		raise HTTPException(status.HTTP_504_GATEWAY_TIMEOUT, detail="job_timeout")
	return result


@router.get("/health")
async def health_live() -> dict[str, str]:
	return await health.liveness()


@router.get("/health/ready")
async def health_ready() -> Response:
	status_code, payload = await health.readiness()
	return JSONResponse(content=payload, status_code=status_code)


@router.get("/metrics")
async def prometheus_metrics() -> Response:
	payload = generate_latest()
	return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


@router.post("/jobs/discovery-scoring", response_model=schemas.Envelope[schemas.JobResultSchema])
async def trigger_discovery_scoring(
	_: AuthenticatedUser = Depends(get_admin_user),
	repository: CandidateRepository = Depends(get_repository),
) -> schemas.Envelope[schemas.JobResultSchema]:
	result = await _run_job(jobs.DISCOVERY_JOB, jobs.DiscoveryScorer(repository).run_once())
	return schemas.Envelope[schemas.JobResultSchema](data=schemas.JobResultSchema(updated=result.updated, failed=result.failed))


@router.post("/jobs/trending-scoring", response_model=schemas.Envelope[schemas.JobResultSchema])
async def trigger_trending_scoring(
	_: AuthenticatedUser = Depends(get_admin_user),
	repository: CandidateRepository = Depends(get_repository),
) -> schemas.Envelope[schemas.JobResultSchema]:
	result = await _run_job(jobs.TRENDING_JOB, jobs.TrendingScorer(repository).run_once())
	return schemas.Envelope[schemas.JobResultSchema](data=schemas.JobResultSchema(updated=result.updated, failed=result.failed))


@router.post("/jobs/interaction-retention", response_model=schemas.Envelope[schemas.PurgeResultSchema])
async def trigger_interaction_retention(
	_: AuthenticatedUser = Depends(get_admin_user),
	repository: CandidateRepository = Depends(get_repository),
) -> schemas.Envelope[schemas.PurgeResultSchema]:
	purged = await _run_job(jobs.RETENTION_JOB, jobs.InteractionRetentionJob(repository).run_once())
	return schemas.Envelope[schemas.PurgeResultSchema](data=schemas.PurgeResultSchema(purged=purged))
