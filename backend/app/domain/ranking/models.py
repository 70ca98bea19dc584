"""Domain models backing scoring and ranking."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Optional

SCORE_MIN = 0.0
SCORE_MAX = 100.0


def clamp_score(value: float) -> float:
	return max(SCORE_MIN, min(SCORE_MAX, float(value)))


class UserType(str, Enum):
	ESCORT = "ESCORT"
	AGENCY = "AGENCY"
	CLIENT = "CLIENT"
	ADMIN = "ADMIN"


class InteractionType(str, Enum):
	PROFILE_VISIT = "PROFILE_VISIT"
	LIKE = "LIKE"
	FAVORITE = "FAVORITE"
	CHAT = "CHAT"
	POST_CLICK = "POST_CLICK"


class SortKey(str, Enum):
	"""Orderings accepted by user search."""

	RELEVANCE = "relevance"
	NEWEST = "newest"
	OLDEST = "oldest"
	POPULAR = "popular"
	RATING = "rating"
	ONLINE = "online"
	# internal orderings used by recommendation and the feeds
	RECOMMENDED = "recommended"
	DISCOVER = "discover"
	TRENDING = "trending"


class ReputationCounter(str, Enum):
	TOTAL_VIEWS = "total_views"
	TOTAL_LIKES = "total_likes"
	TOTAL_MESSAGES = "total_messages"
	TOTAL_FAVORITES = "total_favorites"


@dataclass(slots=True)
class Location:
	city: Optional[str] = None
	country: Optional[str] = None


@dataclass(slots=True)
class TypeDetail:
	"""Escort, agency or client sub-record; only the ranking-relevant fields."""

	verified: bool = False
	age: Optional[int] = None
	services: list[str] = field(default_factory=list)
	languages: list[str] = field(default_factory=list)
	rating: Optional[float] = None


@dataclass(slots=True)
class UserSettings:
	show_in_search: bool = True
	show_in_discovery: bool = True
	show_in_trending: bool = True
	show_phone_number: bool = False


@dataclass(slots=True)
class Reputation:
	overall_score: float = 0.0
	discovery_score: float = 0.0
	trending_score: float = 0.0
	trust_score: float = 0.0
	profile_completeness: int = 0
	total_views: int = 0
	total_likes: int = 0
	total_messages: int = 0
	total_favorites: int = 0
	last_score_update: Optional[datetime] = None


@dataclass(slots=True)
class ReputationUpdate:
	"""Partial reputation write; ``None`` means the column is left untouched."""

	overall_score: Optional[float] = None
	discovery_score: Optional[float] = None
	trending_score: Optional[float] = None
	trust_score: Optional[float] = None
	profile_completeness: Optional[int] = None
	last_score_update: Optional[datetime] = None

	def changes(self) -> dict[str, Any]:
		return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

	def apply(self, reputation: Reputation) -> Reputation:
		for name, value in self.changes().items():
			setattr(reputation, name, value)
		return reputation


class ReputationUpdateBuilder:
	"""Accumulates a :class:`ReputationUpdate` one field at a time.

	Score fields are clamped to ``[0, 100]`` as they are set.
	"""

	def __init__(self) -> None:
		self._update = ReputationUpdate()

	def overall_score(self, value: float) -> "ReputationUpdateBuilder":
		self._update.overall_score = clamp_score(value)
		return self

	def discovery_score(self, value: float) -> "ReputationUpdateBuilder":
		self._update.discovery_score = clamp_score(value)
		return self

	def trending_score(self, value: float) -> "ReputationUpdateBuilder":
		self._update.trending_score = clamp_score(value)
		return self

	def trust_score(self, value: float) -> "ReputationUpdateBuilder":
		self._update.trust_score = clamp_score(value)
		return self

	def profile_completeness(self, value: int) -> "ReputationUpdateBuilder":
		self._update.profile_completeness = int(clamp_score(value))
		return self

	def scored_at(self, when: datetime) -> "ReputationUpdateBuilder":
		self._update.last_score_update = when
		return self

	def build(self) -> ReputationUpdate:
		return ReputationUpdate(**self._update.changes())


@dataclass(slots=True)
class UserRecord:
	"""User row joined with the sub-records ranking needs."""

	id: str
	username: str
	user_type: UserType
	created_at: datetime
	first_name: Optional[str] = None
	last_name: Optional[str] = None
	bio: Optional[str] = None
	phone: Optional[str] = None
	avatar: Optional[str] = None
	website: Optional[str] = None
	is_active: bool = True
	is_banned: bool = False
	deleted_at: Optional[datetime] = None
	profile_views: int = 0
	last_active_at: Optional[datetime] = None
	location: Optional[Location] = None
	detail: Optional[TypeDetail] = None
	settings: Optional[UserSettings] = None
	reputation: Optional[Reputation] = None
	active_posts: int = 0
	likes_received: int = 0
	favorites_received: int = 0

	@property
	def verified(self) -> bool:
		return bool(self.detail and self.detail.verified)

	@property
	def discovery_score(self) -> float:
		return self.reputation.discovery_score if self.reputation else 0.0

	@property
	def trending_score(self) -> float:
		return self.reputation.trending_score if self.reputation else 0.0

	@property
	def overall_score(self) -> float:
		return self.reputation.overall_score if self.reputation else 0.0


@dataclass(slots=True)
class Interaction:
	actor_id: str
	target_user_id: Optional[str]
	type: InteractionType
	weight: float
	created_at: datetime
	device_type: Optional[str] = None
	source: Optional[str] = None


@dataclass(slots=True)
class SearchRecord:
	"""One authenticated text search, kept for search history."""

	user_id: str
	query: str
	results: int
	created_at: datetime
	filters: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class InteractionAggregate:
	target_user_id: Optional[str]
	count: int = 0
	weight_sum: float = 0.0


@dataclass(slots=True)
class UserBlock:
	"""Directional block relationship (blocker -> blocked)."""

	blocker_id: str
	blocked_id: str
	reason: Optional[str] = None
	created_at: Optional[datetime] = None


@dataclass(slots=True)
class SearchFilters:
	query: Optional[str] = None
	user_type: Optional[UserType] = None
	location: Optional[str] = None
	verified: Optional[bool] = None
	min_age: Optional[int] = None
	max_age: Optional[int] = None
	services: list[str] = field(default_factory=list)
	languages: list[str] = field(default_factory=list)
	min_rating: Optional[float] = None
	online: bool = False
	sort_by: SortKey = SortKey.RELEVANCE


@dataclass(slots=True)
class Pagination:
	page: int = 1
	limit: int = 20

	@property
	def offset(self) -> int:
		return (self.page - 1) * self.limit


@dataclass(slots=True)
class PaginationInfo:
	page: int
	limit: int
	total: int
	pages: int
	has_next: bool
	has_prev: bool


@dataclass(slots=True)
class CandidateQuery:
	"""Predicate, ordering and window handed to the repository.

	``limit=None`` asks for the full candidate set (batch jobs).
	"""

	text: Optional[str] = None
	user_types: Optional[frozenset[UserType]] = None
	location: Optional[str] = None
	verified: Optional[bool] = None
	min_age: Optional[int] = None
	max_age: Optional[int] = None
	services: tuple[str, ...] = ()
	languages: tuple[str, ...] = ()
	min_rating: Optional[float] = None
	active_since: Optional[datetime] = None
	visible_in: Optional[str] = None
	exclude_ids: frozenset[str] = frozenset()
	exclude_blocked_for: Optional[str] = None
	sort: SortKey = SortKey.RELEVANCE
	offset: int = 0
	limit: Optional[int] = None


@dataclass(slots=True)
class CandidatePage:
	users: list[UserRecord]
	total: int


@dataclass(slots=True)
class SearchResult:
	users: list[UserRecord]
	pagination: PaginationInfo


@dataclass(slots=True)
class ProfileSignals:
	"""Inputs of the discovery score."""

	days_since_last_active: Optional[int]
	days_since_created: int
	profile_completeness: float = 0.0
	verified: bool = False
	active_posts: int = 0
	likes_received: int = 0
	favorites_received: int = 0
	overall_score: float = 0.0


@dataclass(slots=True)
class InteractionStats:
	"""Inputs of the trending score."""

	total_7d: int = 0
	weight_sum_7d: float = 0.0
	count_24h: int = 0


@dataclass(slots=True)
class JobResult:
	updated: int = 0
	failed: int = 0
