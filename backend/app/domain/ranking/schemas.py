"""Pydantic schemas for the ranking APIs."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.domain.ranking import models, policy
from app.domain.ranking.errors import ValidationError


class _ClientModel(BaseModel):
	"""Response and body models speak camelCase on the wire."""

	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _split_csv(value: Optional[str]) -> list[str]:
	if not value:
		return []
	return [part.strip() for part in value.split(",") if part.strip()]


class SearchUsersQuery(BaseModel):
	q: Optional[str] = Field(default=None, max_length=120, description="Free text over name, username and bio")
	user_type: Optional[str] = Field(default=None, description="ESCORT or AGENCY")
	location: Optional[str] = Field(default=None, max_length=120)
	verified: Optional[bool] = None
	min_age: Optional[int] = None
	max_age: Optional[int] = None
	services: Optional[str] = Field(default=None, description="Comma-separated services")
	languages: Optional[str] = Field(default=None, description="Comma-separated languages")
	min_rating: Optional[float] = None
	online: bool = False
	sort_by: str = Field(default=models.SortKey.RELEVANCE.value)
	page: int = 1
	limit: int = 20

	def to_filters(self) -> models.SearchFilters:
		try:
			sort_by = models.SortKey(self.sort_by.strip().lower())
		except ValueError:
			raise ValidationError("unknown_sort") from None
		user_type: Optional[models.UserType] = None
		if self.user_type:
			try:
				user_type = models.UserType(self.user_type.strip().upper())
			except ValueError:
				raise ValidationError("user_type_not_searchable") from None
		return models.SearchFilters(
			query=self.q,
			user_type=user_type,
			location=self.location,
			verified=self.verified,
			min_age=self.min_age,
			max_age=self.max_age,
			services=_split_csv(self.services),
			languages=_split_csv(self.languages),
			min_rating=self.min_rating,
			online=self.online,
			sort_by=sort_by,
		)

	def to_pagination(self) -> models.Pagination:
		return models.Pagination(page=self.page, limit=self.limit)


class FeedQuery(BaseModel):
	page: int = 1
	limit: int = 20

	def to_pagination(self) -> models.Pagination:
		return models.Pagination(page=self.page, limit=self.limit)


class RecommendQuery(BaseModel):
	limit: int = 10


class LocationSchema(_ClientModel):
	city: Optional[str] = None
	country: Optional[str] = None


class UserResult(_ClientModel):
	id: str
	username: str
	user_type: models.UserType
	first_name: Optional[str] = None
	last_name: Optional[str] = None
	avatar: Optional[str] = None
	bio: Optional[str] = None
	phone: Optional[str] = None
	verified: bool = False
	age: Optional[int] = None
	rating: Optional[float] = None
	location: Optional[LocationSchema] = None
	profile_views: int = Field(default=0, ge=0)
	last_active_at: Optional[datetime] = None
	created_at: datetime
	discovery_score: float = Field(default=0.0, ge=0.0, le=100.0)
	trending_score: float = Field(default=0.0, ge=0.0, le=100.0)
	overall_score: float = Field(default=0.0, ge=0.0, le=100.0)

	@classmethod
	def from_record(cls, user: models.UserRecord) -> "UserResult":
		detail = user.detail
		show_phone = bool(user.settings and user.settings.show_phone_number)
		location = None
		if user.location is not None:
			location = LocationSchema(city=user.location.city, country=user.location.country)
		return cls(
			id=user.id,
			username=user.username,
			user_type=user.user_type,
			first_name=user.first_name,
			last_name=user.last_name,
			avatar=user.avatar,
			bio=user.bio,
			phone=user.phone if show_phone else None,
			verified=user.verified,
			age=detail.age if detail else None,
			rating=detail.rating if detail else None,
			location=location,
			profile_views=user.profile_views,
			last_active_at=user.last_active_at,
			created_at=user.created_at,
			discovery_score=user.discovery_score,
			trending_score=user.trending_score,
			overall_score=user.overall_score,
		)


class PaginationSchema(_ClientModel):
	page: int
	limit: int
	total: int
	pages: int
	has_next: bool
	has_prev: bool

	@classmethod
	def from_info(cls, info: models.PaginationInfo) -> "PaginationSchema":
		return cls(
			page=info.page,
			limit=info.limit,
			total=info.total,
			pages=info.pages,
			has_next=info.has_next,
			has_prev=info.has_prev,
		)


class AppliedFilters(_ClientModel):
	query: Optional[str] = None
	user_type: Optional[models.UserType] = None
	location: Optional[str] = None
	verified: Optional[bool] = None
	sort_by: models.SortKey = models.SortKey.RELEVANCE


class SearchPayload(_ClientModel):
	users: list[UserResult]
	pagination: PaginationSchema
	filters: AppliedFilters

	@classmethod
	def build(cls, result: models.SearchResult, filters: models.SearchFilters) -> "SearchPayload":
		return cls(
			users=[UserResult.from_record(user) for user in result.users],
			pagination=PaginationSchema.from_info(result.pagination),
			filters=AppliedFilters(
				query=policy.normalise_text(filters.query),
				user_type=filters.user_type,
				location=policy.normalise_text(filters.location),
				verified=filters.verified,
				sort_by=filters.sort_by,
			),
		)


class FeedPayload(_ClientModel):
	users: list[UserResult]
	pagination: PaginationSchema

	@classmethod
	def build(cls, result: models.SearchResult) -> "FeedPayload":
		return cls(
			users=[UserResult.from_record(user) for user in result.users],
			pagination=PaginationSchema.from_info(result.pagination),
		)


class RecommendPayload(_ClientModel):
	users: list[UserResult]


class ViewRequest(_ClientModel):
	device_type: Optional[str] = Field(default=None, max_length=32)


class TrackPayload(BaseModel):
	tracked: bool = True


class JobResultSchema(BaseModel):
	updated: int = Field(..., ge=0)
	failed: int = Field(..., ge=0)


class PurgeResultSchema(BaseModel):
	purged: int = Field(..., ge=0)


T = TypeVar("T")


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


class Envelope(BaseModel, Generic[T]):
	success: bool = True
	data: T
	timestamp: datetime = Field(default_factory=_utcnow)
