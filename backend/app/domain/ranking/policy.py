"""Validation, visibility and rate-limit rules for ranking queries."""

from __future__ import annotations

from typing import Optional

from app.domain.ranking import models
from app.domain.ranking.errors import RankingRateLimitError, ValidationError
from app.infra.rate_limit import allow

MAX_PAGE_LIMIT = 100
MAX_RECOMMEND_LIMIT = 50
MAX_RATING = 5.0
ONLINE_WINDOW_MINUTES = 15
RECENT_INTERACTIONS_WINDOW = 100

SEARCHABLE_TYPES = frozenset({models.UserType.ESCORT, models.UserType.AGENCY})
PUBLIC_SORTS = frozenset(
	{
		models.SortKey.RELEVANCE,
		models.SortKey.NEWEST,
		models.SortKey.OLDEST,
		models.SortKey.POPULAR,
		models.SortKey.RATING,
		models.SortKey.ONLINE,
	}
)

# Which user types each requester type gets recommended
COMPLEMENTARY_TYPES: dict[models.UserType, frozenset[models.UserType]] = {
	models.UserType.CLIENT: frozenset({models.UserType.ESCORT, models.UserType.AGENCY}),
	models.UserType.ESCORT: frozenset({models.UserType.CLIENT, models.UserType.AGENCY}),
	models.UserType.AGENCY: frozenset({models.UserType.ESCORT, models.UserType.CLIENT}),
}

VISIBILITY_FLAGS = {
	"search": "show_in_search",
	"discovery": "show_in_discovery",
	"trending": "show_in_trending",
}


async def enforce_rate_limit(user_id: str, *, kind: str, limit: int) -> None:
	"""Ensure the caller remains within the configured budget."""

	allowed = await allow(f"ranking:{kind}", user_id, limit=limit)
	if not allowed:
		raise RankingRateLimitError()


def validate_pagination(pagination: models.Pagination, *, max_limit: int = MAX_PAGE_LIMIT) -> None:
	if pagination.page < 1:
		raise ValidationError("page_out_of_range")
	if pagination.limit < 1 or pagination.limit > max_limit:
		raise ValidationError("limit_out_of_range")


def validate_search_filters(filters: models.SearchFilters) -> None:
	if filters.user_type is not None and filters.user_type not in SEARCHABLE_TYPES:
		raise ValidationError("user_type_not_searchable")
	if filters.sort_by not in PUBLIC_SORTS:
		raise ValidationError("unknown_sort")
	for value in (filters.min_age, filters.max_age):
		if value is not None and value < 0:
			raise ValidationError("age_out_of_range")
	if filters.min_age is not None and filters.max_age is not None and filters.min_age > filters.max_age:
		raise ValidationError("age_range_inverted")
	if filters.min_rating is not None and not (0.0 <= filters.min_rating <= MAX_RATING):
		raise ValidationError("rating_out_of_range")


def recommendation_types(user_type: models.UserType) -> frozenset[models.UserType]:
	try:
		return COMPLEMENTARY_TYPES[user_type]
	except KeyError:
		raise ValidationError("user_type_not_recommendable") from None


def normalise_text(value: Optional[str]) -> Optional[str]:
	if value is None:
		return None
	value = value.strip().lower()
	return value or None


def normalise_terms(values: list[str]) -> tuple[str, ...]:
	return tuple(sorted({v.strip().lower() for v in values if v and v.strip()}))


def is_visible(settings: models.UserSettings, visible_in: Optional[str]) -> bool:
	if visible_in is None:
		return True
	return bool(getattr(settings, VISIBILITY_FLAGS[visible_in]))


def _contains(haystack: Optional[str], needle: str) -> bool:
	return bool(haystack) and needle in haystack.lower()


def _overlaps(values: list[str], wanted: tuple[str, ...]) -> bool:
	have = {v.lower() for v in values}
	return any(term in have for term in wanted)


def matches_query(user: models.UserRecord, query: models.CandidateQuery, settings: models.UserSettings) -> bool:
	"""In-process evaluation of a candidate predicate.

	Mirrors the WHERE clause the Postgres repository builds for the same query.
	"""

	if not user.is_active or user.is_banned or user.deleted_at is not None:
		return False
	if user.id in query.exclude_ids:
		return False
	if not is_visible(settings, query.visible_in):
		return False
	if query.user_types is not None and user.user_type not in query.user_types:
		return False
	if query.text and not any(
		_contains(value, query.text) for value in (user.username, user.first_name, user.last_name, user.bio)
	):
		return False
	if query.location:
		loc = user.location
		if loc is None or not (_contains(loc.city, query.location) or _contains(loc.country, query.location)):
			return False
	if query.verified is not None and user.verified != query.verified:
		return False
	detail = user.detail
	if query.min_age is not None or query.max_age is not None:
		if detail is None or detail.age is None:
			return False
		if query.min_age is not None and detail.age < query.min_age:
			return False
		if query.max_age is not None and detail.age > query.max_age:
			return False
	if query.services and (detail is None or not _overlaps(detail.services, query.services)):
		return False
	if query.languages and (detail is None or not _overlaps(detail.languages, query.languages)):
		return False
	if query.min_rating is not None and (detail is None or detail.rating is None or detail.rating < query.min_rating):
		return False
	if query.active_since is not None and (user.last_active_at is None or user.last_active_at < query.active_since):
		return False
	return True
