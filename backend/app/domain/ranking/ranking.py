# Ordering and pagination helpers
"""Sort orders shared by the in-memory store and the SQL builder."""

from __future__ import annotations

import math
from typing import Callable

from app.domain.ranking import models

SortKeyFn = Callable[[models.UserRecord], tuple]


def _ts(user: models.UserRecord) -> float:
	return user.created_at.timestamp()


def _online_key(user: models.UserRecord) -> tuple:
	if user.last_active_at is None:
		return (1, 0.0, -user.discovery_score, user.id)
	return (0, -user.last_active_at.timestamp(), -user.discovery_score, user.id)


_SORT_KEYS: dict[models.SortKey, SortKeyFn] = {
	models.SortKey.RELEVANCE: lambda u: (-u.discovery_score, -u.overall_score, u.id),
	models.SortKey.NEWEST: lambda u: (-_ts(u), u.id),
	models.SortKey.OLDEST: lambda u: (_ts(u), u.id),
	models.SortKey.POPULAR: lambda u: (-u.profile_views, -u.overall_score, u.id),
	models.SortKey.RATING: lambda u: (-u.overall_score, -u.profile_views, u.id),
	models.SortKey.ONLINE: _online_key,
	models.SortKey.RECOMMENDED: lambda u: (-u.discovery_score, -u.overall_score, -u.profile_views, u.id),
	models.SortKey.DISCOVER: lambda u: (-u.discovery_score, -_ts(u), u.id),
	models.SortKey.TRENDING: lambda u: (-u.trending_score, -u.profile_views, u.id),
}

# ORDER BY fragments over the aliases used by the Postgres repository
SQL_ORDER_BY: dict[models.SortKey, str] = {
	models.SortKey.RELEVANCE: 'COALESCE(r."discoveryScore", 0) DESC, COALESCE(r."overallScore", 0) DESC, u.id',
	models.SortKey.NEWEST: 'u."createdAt" DESC, u.id',
	models.SortKey.OLDEST: 'u."createdAt" ASC, u.id',
	models.SortKey.POPULAR: 'u."profileViews" DESC, COALESCE(r."overallScore", 0) DESC, u.id',
	models.SortKey.RATING: 'COALESCE(r."overallScore", 0) DESC, u."profileViews" DESC, u.id',
	models.SortKey.ONLINE: 'u."lastActiveAt" DESC NULLS LAST, COALESCE(r."discoveryScore", 0) DESC, u.id',
	models.SortKey.RECOMMENDED: (
		'COALESCE(r."discoveryScore", 0) DESC, COALESCE(r."overallScore", 0) DESC, u."profileViews" DESC, u.id'
	),
	models.SortKey.DISCOVER: 'COALESCE(r."discoveryScore", 0) DESC, u."createdAt" DESC, u.id',
	models.SortKey.TRENDING: 'COALESCE(r."trendingScore", 0) DESC, u."profileViews" DESC, u.id',
}


def sort_key(sort: models.SortKey) -> SortKeyFn:
	return _SORT_KEYS[sort]


def order_candidates(users: list[models.UserRecord], sort: models.SortKey) -> list[models.UserRecord]:
	return sorted(users, key=sort_key(sort))


def pagination_info(pagination: models.Pagination, total: int) -> models.PaginationInfo:
	pages = math.ceil(total / pagination.limit) if pagination.limit else 0
	return models.PaginationInfo(
		page=pagination.page,
		limit=pagination.limit,
		total=total,
		pages=pages,
		has_next=pagination.page * pagination.limit < total,
		has_prev=pagination.page > 1,
	)
