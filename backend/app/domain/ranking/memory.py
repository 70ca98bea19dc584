"""In-process repository used by tests and local runs without Postgres."""

from __future__ import annotations

import asyncio
import copy
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional

from app.domain.ranking import models, policy, ranking
from app.domain.ranking.errors import RepositoryError, RepositoryErrorKind
from app.domain.ranking.repository import CandidateRepository


class MemoryCandidateRepository(CandidateRepository):
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.users: dict[str, models.UserRecord] = {}
		self.settings: dict[str, models.UserSettings] = {}
		self.reputations: dict[str, models.Reputation] = {}
		self.interactions: list[models.Interaction] = []
		self.searches: list[models.SearchRecord] = []
		self.blocks: dict[tuple[str, str], models.UserBlock] = {}

	async def reset(self) -> None:
		async with self._lock:
			self.users.clear()
			self.settings.clear()
			self.reputations.clear()
			self.interactions.clear()
			self.searches.clear()
			self.blocks.clear()

	async def seed(
		self,
		*,
		users: Iterable[models.UserRecord] | None = None,
		interactions: Iterable[models.Interaction] | None = None,
		blocks: Iterable[models.UserBlock] | None = None,
	) -> None:
		"""Load fixtures; a user's ``settings``/``reputation`` become its rows."""

		async with self._lock:
			for user in users or []:
				self.users[user.id] = user
				if user.settings is not None:
					self.settings[user.id] = user.settings
				if user.reputation is not None:
					self.reputations[user.id] = user.reputation
			self.interactions.extend(interactions or [])
			for block in blocks or []:
				key = (block.blocker_id, block.blocked_id)
				if key in self.blocks:
					raise RepositoryError(RepositoryErrorKind.CONFLICT, "block_exists")
				self.blocks[key] = block

	def _settings_for(self, user_id: str) -> models.UserSettings:
		existing = self.settings.get(user_id)
		if existing is None:
			existing = models.UserSettings()
			self.settings[user_id] = existing
		return existing

	def _blocked_ids(self, user_id: str) -> set[str]:
		blocked: set[str] = set()
		for blocker, target in self.blocks:
			if blocker == user_id:
				blocked.add(target)
			if target == user_id:
				blocked.add(blocker)
		return blocked

	def _snapshot(self, user: models.UserRecord) -> models.UserRecord:
		reputation = self.reputations.get(user.id)
		return replace(
			user,
			settings=copy.copy(self._settings_for(user.id)),
			reputation=copy.copy(reputation) if reputation is not None else None,
		)

	async def list_active_candidates(self, query: models.CandidateQuery) -> models.CandidatePage:
		async with self._lock:
			excluded = self._blocked_ids(query.exclude_blocked_for) if query.exclude_blocked_for else set()
			matched: list[models.UserRecord] = []
			for user in self.users.values():
				if user.id in excluded:
					continue
				if not policy.matches_query(user, query, self._settings_for(user.id)):
					continue
				matched.append(self._snapshot(user))
		ordered = ranking.order_candidates(matched, query.sort)
		total = len(ordered)
		if query.limit is None:
			window = ordered[query.offset :]
		else:
			window = ordered[query.offset : query.offset + query.limit]
		return models.CandidatePage(users=window, total=total)

	def _aggregate(self, since: datetime, target_user_id: Optional[str] = None) -> dict[Optional[str], models.InteractionAggregate]:
		buckets: dict[Optional[str], models.InteractionAggregate] = defaultdict(
			lambda: models.InteractionAggregate(target_user_id=None)
		)
		for event in self.interactions:
			if event.created_at < since:
				continue
			if target_user_id is not None and event.target_user_id != target_user_id:
				continue
			bucket = buckets[event.target_user_id]
			bucket.target_user_id = event.target_user_id
			bucket.count += 1
			bucket.weight_sum += event.weight
		return buckets

	async def get_interaction_aggregates(self, target_user_id: str, since: datetime) -> models.InteractionAggregate:
		async with self._lock:
			buckets = self._aggregate(since, target_user_id)
		return buckets.get(target_user_id) or models.InteractionAggregate(target_user_id=target_user_id)

	async def aggregate_interactions(self, since: datetime) -> list[models.InteractionAggregate]:
		async with self._lock:
			return list(self._aggregate(since).values())

	async def recent_interaction_targets(self, actor_id: str, limit: int) -> set[str]:
		async with self._lock:
			mine = [event for event in self.interactions if event.actor_id == actor_id]
		mine.sort(key=lambda event: event.created_at, reverse=True)
		return {event.target_user_id for event in mine[:limit] if event.target_user_id}

	async def read_reputation(self, user_id: str) -> models.Reputation:
		async with self._lock:
			reputation = self.reputations.get(user_id)
			if reputation is None:
				raise RepositoryError(RepositoryErrorKind.NOT_FOUND, "reputation_not_found")
			return copy.copy(reputation)

	async def write_reputation(self, user_id: str, update: models.ReputationUpdate) -> None:
		async with self._lock:
			reputation = self.reputations.get(user_id)
			if reputation is None:
				raise RepositoryError(RepositoryErrorKind.NOT_FOUND, "reputation_not_found")
			update.apply(reputation)

	async def is_blocked(self, blocker_id: str, blocked_id: str) -> bool:
		async with self._lock:
			return (blocker_id, blocked_id) in self.blocks

	async def blocked_ids(self, user_id: str) -> set[str]:
		async with self._lock:
			return self._blocked_ids(user_id)

	async def read_settings(self, user_id: str) -> models.UserSettings:
		async with self._lock:
			if user_id not in self.users:
				raise RepositoryError(RepositoryErrorKind.NOT_FOUND, "user_not_found")
			return copy.copy(self._settings_for(user_id))

	async def record_interaction(self, interaction: models.Interaction) -> None:
		async with self._lock:
			self.interactions.append(interaction)

	async def record_search(self, entry: models.SearchRecord) -> None:
		async with self._lock:
			self.searches.append(entry)

	async def increment_profile_views(self, user_id: str) -> None:
		async with self._lock:
			user = self.users.get(user_id)
			if user is None:
				raise RepositoryError(RepositoryErrorKind.NOT_FOUND, "user_not_found")
			user.profile_views += 1

	async def increment_reputation_counter(self, user_id: str, counter: models.ReputationCounter) -> None:
		async with self._lock:
			reputation = self.reputations.get(user_id)
			if reputation is None:
				raise RepositoryError(RepositoryErrorKind.NOT_FOUND, "reputation_not_found")
			setattr(reputation, counter.value, getattr(reputation, counter.value) + 1)

	async def purge_interactions(self, before: datetime) -> int:
		async with self._lock:
			kept = [event for event in self.interactions if event.created_at >= before]
			purged = len(self.interactions) - len(kept)
			self.interactions = kept
			return purged


__all__ = ["MemoryCandidateRepository"]
