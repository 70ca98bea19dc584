"""REST endpoints for user search, recommendations and ranked feeds."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from app.api.deps import get_ranking_service
from app.domain.ranking import schemas
from app.domain.ranking.service import RankingService
from app.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["ranking"])


@router.get("/users/search", response_model=schemas.Envelope[schemas.SearchPayload])
async def search_users_endpoint(
	query: schemas.SearchUsersQuery = Depends(),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: RankingService = Depends(get_ranking_service),
) -> schemas.Envelope[schemas.SearchPayload]:
	filters = query.to_filters()
	result = await service.search(filters, query.to_pagination(), auth_user.id)
	return schemas.Envelope[schemas.SearchPayload](data=schemas.SearchPayload.build(result, filters))


@router.get("/users/recommendations", response_model=schemas.Envelope[schemas.RecommendPayload])
async def recommendations_endpoint(
	query: schemas.RecommendQuery = Depends(),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: RankingService = Depends(get_ranking_service),
) -> schemas.Envelope[schemas.RecommendPayload]:
	users = await service.recommend(auth_user.id, auth_user.user_type, query.limit)
	payload = schemas.RecommendPayload(users=[schemas.UserResult.from_record(user) for user in users])
	return schemas.Envelope[schemas.RecommendPayload](data=payload)


@router.get("/users/discover", response_model=schemas.Envelope[schemas.FeedPayload])
async def discover_endpoint(
	query: schemas.FeedQuery = Depends(),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: RankingService = Depends(get_ranking_service),
) -> schemas.Envelope[schemas.FeedPayload]:
	result = await service.discover(auth_user.id, query.to_pagination())
	return schemas.Envelope[schemas.FeedPayload](data=schemas.FeedPayload.build(result))


@router.get("/users/trending", response_model=schemas.Envelope[schemas.FeedPayload])
async def trending_endpoint(
	query: schemas.FeedQuery = Depends(),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: RankingService = Depends(get_ranking_service),
) -> schemas.Envelope[schemas.FeedPayload]:
	result = await service.trending(auth_user.id, query.to_pagination())
	return schemas.Envelope[schemas.FeedPayload](data=schemas.FeedPayload.build(result))


@router.post("/users/{user_id}/view", response_model=schemas.Envelope[schemas.TrackPayload])
async def record_view_endpoint(
	user_id: str,
	payload: Optional[schemas.ViewRequest] = None,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: RankingService = Depends(get_ranking_service),
) -> schemas.Envelope[schemas.TrackPayload]:
	device_type = payload.device_type if payload else None
	tracked = await service.record_profile_view(auth_user.id, user_id, device_type=device_type)
	return schemas.Envelope[schemas.TrackPayload](data=schemas.TrackPayload(tracked=tracked))
