"""Exceptions raised by the ranking domain."""

from __future__ import annotations

from enum import Enum

from fastapi import status


class RankingError(Exception):
	"""Base class for ranking errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "ranking_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class ValidationError(RankingError):
	"""Malformed filter or pagination input; raised before any query runs."""

	status_code = 422
	detail = "validation_error"


class NotFoundError(RankingError):
	"""Target user or reputation row is absent."""

	status_code = status.HTTP_404_NOT_FOUND
	detail = "not_found"


class RankingRateLimitError(RankingError):
	status_code = status.HTTP_429_TOO_MANY_REQUESTS
	detail = "rate_limit"


class RepositoryErrorKind(str, Enum):
	UNAVAILABLE = "unavailable"
	NOT_FOUND = "not_found"
	CONFLICT = "conflict"


_KIND_STATUS = {
	RepositoryErrorKind.UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
	RepositoryErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
	RepositoryErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
}


class RepositoryError(RankingError):
	"""Datastore failure, normalised so callers never see driver error codes."""

	def __init__(self, kind: RepositoryErrorKind, detail: str | None = None) -> None:
		self.kind = kind
		self.status_code = _KIND_STATUS[kind]
		super().__init__(detail or f"repository_{kind.value}")
