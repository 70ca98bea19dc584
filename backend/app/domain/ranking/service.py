"""Query-time ranking: search, recommendations, feeds and activity tracking."""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Optional

from app.domain.ranking import models, policy, ranking
from app.domain.ranking.errors import ValidationError
from app.domain.ranking.repository import CandidateRepository
from app.infra.best_effort import best_effort
from app.obs import metrics as obs_metrics
from app.settings import settings

INTERACTION_WEIGHTS: dict[models.InteractionType, float] = {
	models.InteractionType.PROFILE_VISIT: 2.0,
	models.InteractionType.LIKE: 2.0,
	models.InteractionType.FAVORITE: 3.0,
	models.InteractionType.CHAT: 3.0,
	models.InteractionType.POST_CLICK: 3.0,
}


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


class RankingService:
	"""Orders, filters and paginates users by their persisted scores.

	Scores are never recomputed here; the batch jobs own them.
	"""

	def __init__(
		self,
		repository: CandidateRepository,
		*,
		search_per_minute: Optional[int] = None,
		recommend_per_minute: Optional[int] = None,
	) -> None:
		self._repository = repository
		self._search_limit = search_per_minute or settings.search_per_minute
		self._recommend_limit = recommend_per_minute or settings.recommend_per_minute

	@property
	def repository(self) -> CandidateRepository:
		return self._repository

	async def _run_page(self, kind: str, query: models.CandidateQuery) -> models.CandidatePage:
		start = time.perf_counter()
		page = await self._repository.list_active_candidates(query)
		obs_metrics.inc_ranking_query(kind)
		obs_metrics.observe_ranking_latency(kind, time.perf_counter() - start)
		return page

	async def search(
		self,
		filters: models.SearchFilters,
		pagination: models.Pagination,
		requester_id: str,
		*,
		now: Optional[datetime] = None,
	) -> models.SearchResult:
		policy.validate_pagination(pagination)
		policy.validate_search_filters(filters)
		await policy.enforce_rate_limit(requester_id, kind="search", limit=self._search_limit)
		now = now or _utcnow()
		query = models.CandidateQuery(
			text=policy.normalise_text(filters.query),
			user_types=frozenset({filters.user_type}) if filters.user_type else None,
			location=policy.normalise_text(filters.location),
			verified=filters.verified,
			min_age=filters.min_age,
			max_age=filters.max_age,
			services=policy.normalise_terms(filters.services),
			languages=policy.normalise_terms(filters.languages),
			min_rating=filters.min_rating,
			active_since=now - timedelta(minutes=policy.ONLINE_WINDOW_MINUTES) if filters.online else None,
			visible_in="search",
			exclude_ids=frozenset({requester_id}),
			exclude_blocked_for=requester_id,
			sort=filters.sort_by,
			offset=pagination.offset,
			limit=pagination.limit,
		)
		page = await self._run_page("search", query)
		if query.text:
			entry = models.SearchRecord(
				user_id=requester_id,
				query=(filters.query or "").strip(),
				results=page.total,
				created_at=now,
				filters={
					"userType": filters.user_type.value if filters.user_type else None,
					"location": query.location,
					"verified": filters.verified,
					"sortBy": filters.sort_by.value,
				},
			)
			await best_effort(
				"record_search",
				self._repository.record_search(entry),
				extra={"actor_id": requester_id},
			)
		return models.SearchResult(users=page.users, pagination=ranking.pagination_info(pagination, page.total))

	async def recommend(
		self,
		user_id: str,
		user_type: models.UserType,
		limit: int = 10,
	) -> list[models.UserRecord]:
		if limit < 1 or limit > policy.MAX_RECOMMEND_LIMIT:
			raise ValidationError("limit_out_of_range")
		candidate_types = policy.recommendation_types(user_type)
		await policy.enforce_rate_limit(user_id, kind="recommend", limit=self._recommend_limit)
		seen = await self._repository.recent_interaction_targets(user_id, policy.RECENT_INTERACTIONS_WINDOW)
		query = models.CandidateQuery(
			user_types=candidate_types,
			visible_in="discovery",
			exclude_ids=frozenset(seen | {user_id}),
			exclude_blocked_for=user_id,
			sort=models.SortKey.RECOMMENDED,
			limit=limit,
		)
		page = await self._run_page("recommend", query)
		return page.users

	async def _feed(
		self,
		kind: str,
		requester_id: str,
		pagination: models.Pagination,
		*,
		visible_in: str,
		sort: models.SortKey,
	) -> models.SearchResult:
		policy.validate_pagination(pagination)
		query = models.CandidateQuery(
			visible_in=visible_in,
			exclude_ids=frozenset({requester_id}),
			exclude_blocked_for=requester_id,
			sort=sort,
			offset=pagination.offset,
			limit=pagination.limit,
		)
		page = await self._run_page(kind, query)
		return models.SearchResult(users=page.users, pagination=ranking.pagination_info(pagination, page.total))

	async def discover(self, requester_id: str, pagination: models.Pagination) -> models.SearchResult:
		return await self._feed(
			"discover",
			requester_id,
			pagination,
			visible_in="discovery",
			sort=models.SortKey.DISCOVER,
		)

	async def trending(self, requester_id: str, pagination: models.Pagination) -> models.SearchResult:
		return await self._feed(
			"trending",
			requester_id,
			pagination,
			visible_in="trending",
			sort=models.SortKey.TRENDING,
		)

	async def _track(
		self,
		actor_id: str,
		target_id: str,
		kind: models.InteractionType,
		counter: models.ReputationCounter,
		*,
		device_type: Optional[str] = None,
		source: Optional[str] = None,
		now: Optional[datetime] = None,
	) -> bool:
		extra = {"actor_id": actor_id, "target_id": target_id, "interaction": kind.value}
		interaction = models.Interaction(
			actor_id=actor_id,
			target_user_id=target_id,
			type=kind,
			weight=INTERACTION_WEIGHTS[kind],
			created_at=now or _utcnow(),
			device_type=device_type,
			source=source,
		)
		recorded = await best_effort(
			"record_interaction",
			self._repository.record_interaction(interaction),
			extra=extra,
		)
		counted = await best_effort(
			f"increment_{counter.value}",
			self._repository.increment_reputation_counter(target_id, counter),
			extra=extra,
		)
		return recorded and counted

	async def record_profile_view(
		self,
		viewer_id: str,
		target_id: str,
		*,
		device_type: Optional[str] = None,
		now: Optional[datetime] = None,
	) -> bool:
		"""Count a profile visit; self-views are ignored."""

		if viewer_id == target_id:
			return False
		viewed = await best_effort(
			"increment_profile_views",
			self._repository.increment_profile_views(target_id),
			extra={"actor_id": viewer_id, "target_id": target_id},
		)
		tracked = await self._track(
			viewer_id,
			target_id,
			models.InteractionType.PROFILE_VISIT,
			models.ReputationCounter.TOTAL_VIEWS,
			device_type=device_type,
			source="profile",
			now=now,
		)
		return viewed and tracked

	async def record_like(self, actor_id: str, target_id: str, *, now: Optional[datetime] = None) -> bool:
		if actor_id == target_id:
			return False
		return await self._track(
			actor_id,
			target_id,
			models.InteractionType.LIKE,
			models.ReputationCounter.TOTAL_LIKES,
			source="like",
			now=now,
		)


__all__ = ["INTERACTION_WEIGHTS", "RankingService"]
