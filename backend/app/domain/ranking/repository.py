"""Datastore boundary used by the scoring jobs and the ranker."""

from __future__ import annotations

import abc
from datetime import datetime

from app.domain.ranking import models


class CandidateRepository(abc.ABC):
	"""Read/write access to users, interactions and reputation rows.

	Implementations raise :class:`~app.domain.ranking.errors.RepositoryError`
	for every datastore failure.
	"""

	@abc.abstractmethod
	async def list_active_candidates(self, query: models.CandidateQuery) -> models.CandidatePage:
		"""Active, non-banned, non-deleted users matching ``query``, ordered and windowed."""

	@abc.abstractmethod
	async def get_interaction_aggregates(self, target_user_id: str, since: datetime) -> models.InteractionAggregate:
		"""Count and weight sum of interactions targeting one user since ``since``."""

	@abc.abstractmethod
	async def aggregate_interactions(self, since: datetime) -> list[models.InteractionAggregate]:
		"""Per-target aggregates of every interaction since ``since``."""

	@abc.abstractmethod
	async def recent_interaction_targets(self, actor_id: str, limit: int) -> set[str]:
		"""Distinct targets among the actor's ``limit`` most recent interactions."""

	@abc.abstractmethod
	async def read_reputation(self, user_id: str) -> models.Reputation:
		...

	@abc.abstractmethod
	async def write_reputation(self, user_id: str, update: models.ReputationUpdate) -> None:
		...

	@abc.abstractmethod
	async def is_blocked(self, blocker_id: str, blocked_id: str) -> bool:
		...

	@abc.abstractmethod
	async def blocked_ids(self, user_id: str) -> set[str]:
		"""Users blocked by or blocking ``user_id``."""

	@abc.abstractmethod
	async def read_settings(self, user_id: str) -> models.UserSettings:
		"""Visibility settings, created with defaults on first access."""

	@abc.abstractmethod
	async def record_interaction(self, interaction: models.Interaction) -> None:
		...

	@abc.abstractmethod
	async def record_search(self, entry: models.SearchRecord) -> None:
		...

	@abc.abstractmethod
	async def increment_profile_views(self, user_id: str) -> None:
		...

	@abc.abstractmethod
	async def increment_reputation_counter(self, user_id: str, counter: models.ReputationCounter) -> None:
		...

	@abc.abstractmethod
	async def purge_interactions(self, before: datetime) -> int:
		"""Delete interactions created before ``before`` and return how many went."""


__all__ = ["CandidateRepository"]
