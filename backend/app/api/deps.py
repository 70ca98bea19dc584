"""Shared FastAPI dependencies for the ranking routes."""

from __future__ import annotations

from fastapi import Depends, Request

from app.domain.ranking.repository import CandidateRepository
from app.domain.ranking.service import RankingService


def get_repository(request: Request) -> CandidateRepository:
	return request.app.state.ranking_repository


def get_ranking_service(repository: CandidateRepository = Depends(get_repository)) -> RankingService:
	return RankingService(repository)
