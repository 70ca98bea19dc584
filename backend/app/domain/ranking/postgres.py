"""asyncpg-backed repository over the marketplace tables."""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator
from uuid import uuid4

import asyncpg

from app.domain.ranking import models
from app.domain.ranking.errors import RepositoryError, RepositoryErrorKind
from app.domain.ranking.ranking import SQL_ORDER_BY
from app.domain.ranking.repository import CandidateRepository

PURGE_BATCH = 1000

_REPUTATION_COLUMNS = {
	"overall_score": '"overallScore"',
	"discovery_score": '"discoveryScore"',
	"trending_score": '"trendingScore"',
	"trust_score": '"trustScore"',
	"profile_completeness": '"profileCompleteness"',
	"last_score_update": '"lastScoreUpdate"',
}

_COUNTER_COLUMNS = {
	models.ReputationCounter.TOTAL_VIEWS: '"totalViews"',
	models.ReputationCounter.TOTAL_LIKES: '"totalLikes"',
	models.ReputationCounter.TOTAL_MESSAGES: '"totalMessages"',
	models.ReputationCounter.TOTAL_FAVORITES: '"totalFavorites"',
}

_VISIBILITY_COLUMNS = {
	"search": '"showInSearch"',
	"discovery": '"showInDiscovery"',
	"trending": '"showInTrending"',
}

_CANDIDATE_FROM = """
	FROM "User" u
	LEFT JOIN "UserReputation" r ON r."userId" = u.id
	LEFT JOIN "UserSettings" s ON s."userId" = u.id
	LEFT JOIN "Location" l ON l.id = u."locationId"
	LEFT JOIN "Escort" e ON e."userId" = u.id
	LEFT JOIN "Agency" a ON a."userId" = u.id
	LEFT JOIN "Client" c ON c."userId" = u.id
"""

_VERIFIED_EXPR = """
	COALESCE(CASE u."userType"
		WHEN 'ESCORT' THEN e."isVerified"
		WHEN 'AGENCY' THEN a."isVerified"
		WHEN 'CLIENT' THEN c."isVerified"
	END, FALSE)
"""

_CANDIDATE_COLUMNS = f"""
	u.id, u.username, u."firstName", u."lastName", u.bio, u.phone, u.avatar, u.website,
	u."userType", u."isActive", u."isBanned", u."deletedAt", u."profileViews",
	u."lastActiveAt", u."createdAt",
	l.city, l.country,
	{_VERIFIED_EXPR} AS verified,
	(e."userId" IS NOT NULL OR a."userId" IS NOT NULL OR c."userId" IS NOT NULL) AS has_detail,
	e.age, e.services, e.languages, e.rating,
	COALESCE(s."showInSearch", TRUE) AS show_in_search,
	COALESCE(s."showInDiscovery", TRUE) AS show_in_discovery,
	COALESCE(s."showInTrending", TRUE) AS show_in_trending,
	COALESCE(s."showPhoneNumber", FALSE) AS show_phone_number,
	r."userId" IS NOT NULL AS has_reputation,
	r."overallScore", r."discoveryScore", r."trendingScore", r."trustScore",
	r."profileCompleteness", r."totalViews", r."totalLikes", r."totalMessages",
	r."totalFavorites", r."lastScoreUpdate",
	(SELECT COUNT(*) FROM "Post" p WHERE p."authorId" = u.id AND p."isActive") AS active_posts,
	(SELECT COUNT(*) FROM "Like" lk JOIN "Post" p ON p.id = lk."postId"
		WHERE p."authorId" = u.id AND p."isActive") AS likes_received,
	(SELECT COUNT(*) FROM "Favorite" fv JOIN "Post" p ON p.id = fv."postId"
		WHERE p."authorId" = u.id AND p."isActive") AS favorites_received
"""


class _Params:
	"""Collects positional bindings while a WHERE clause is assembled."""

	def __init__(self) -> None:
		self.values: list[Any] = []

	def add(self, value: Any) -> str:
		self.values.append(value)
		return f"${len(self.values)}"


def _to_db(value: datetime) -> datetime:
	"""Prisma DateTime columns are UTC `timestamp` without time zone."""

	if value.tzinfo is None:
		return value
	return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db(value: datetime | None) -> datetime | None:
	if value is None or value.tzinfo is not None:
		return value
	return value.replace(tzinfo=timezone.utc)


def _like_pattern(text: str) -> str:
	escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
	return f"%{escaped}%"


def _build_where(query: models.CandidateQuery, params: _Params) -> str:
	clauses = ['u."isActive"', 'NOT u."isBanned"', 'u."deletedAt" IS NULL']
	if query.exclude_ids:
		clauses.append(f"NOT (u.id = ANY({params.add(sorted(query.exclude_ids))}::text[]))")
	if query.exclude_blocked_for:
		ref = params.add(query.exclude_blocked_for)
		clauses.append(
			f"""u.id NOT IN (
				SELECT "blockedId" FROM "UserBlock" WHERE "blockerId" = {ref}
				UNION
				SELECT "blockerId" FROM "UserBlock" WHERE "blockedId" = {ref}
			)"""
		)
	if query.visible_in:
		clauses.append(f"COALESCE(s.{_VISIBILITY_COLUMNS[query.visible_in]}, TRUE)")
	if query.user_types is not None:
		types = sorted(t.value for t in query.user_types)
		clauses.append(f'u."userType"::text = ANY({params.add(types)}::text[])')
	if query.text:
		ref = params.add(_like_pattern(query.text))
		clauses.append(
			f'(u.username ILIKE {ref} OR u."firstName" ILIKE {ref} OR u."lastName" ILIKE {ref} OR u.bio ILIKE {ref})'
		)
	if query.location:
		ref = params.add(_like_pattern(query.location))
		clauses.append(f"(l.city ILIKE {ref} OR l.country ILIKE {ref})")
	if query.verified is not None:
		clauses.append(f"{_VERIFIED_EXPR} = {params.add(query.verified)}")
	if query.min_age is not None:
		clauses.append(f"e.age >= {params.add(query.min_age)}")
	if query.max_age is not None:
		clauses.append(f"e.age <= {params.add(query.max_age)}")
	if query.services:
		clauses.append(
			f"EXISTS (SELECT 1 FROM unnest(e.services) sv WHERE lower(sv) = ANY({params.add(list(query.services))}::text[]))"
		)
	if query.languages:
		clauses.append(
			f"EXISTS (SELECT 1 FROM unnest(e.languages) lg WHERE lower(lg) = ANY({params.add(list(query.languages))}::text[]))"
		)
	if query.min_rating is not None:
		clauses.append(f"e.rating >= {params.add(query.min_rating)}")
	if query.active_since is not None:
		clauses.append(f'u."lastActiveAt" >= {params.add(_to_db(query.active_since))}')
	return " AND ".join(clauses)


def _row_to_user(row: asyncpg.Record) -> models.UserRecord:
	location = None
	if row["city"] is not None or row["country"] is not None:
		location = models.Location(city=row["city"], country=row["country"])
	detail = None
	if row["has_detail"]:
		detail = models.TypeDetail(
			verified=bool(row["verified"]),
			age=row["age"],
			services=list(row["services"] or []),
			languages=list(row["languages"] or []),
			rating=float(row["rating"]) if row["rating"] is not None else None,
		)
	reputation = None
	if row["has_reputation"]:
		reputation = models.Reputation(
			overall_score=float(row["overallScore"] or 0.0),
			discovery_score=float(row["discoveryScore"] or 0.0),
			trending_score=float(row["trendingScore"] or 0.0),
			trust_score=float(row["trustScore"] or 0.0),
			profile_completeness=int(row["profileCompleteness"] or 0),
			total_views=int(row["totalViews"] or 0),
			total_likes=int(row["totalLikes"] or 0),
			total_messages=int(row["totalMessages"] or 0),
			total_favorites=int(row["totalFavorites"] or 0),
			last_score_update=_from_db(row["lastScoreUpdate"]),
		)
	return models.UserRecord(
		id=str(row["id"]),
		username=row["username"],
		user_type=models.UserType(str(row["userType"])),
		created_at=_from_db(row["createdAt"]),
		first_name=row["firstName"],
		last_name=row["lastName"],
		bio=row["bio"],
		phone=row["phone"],
		avatar=row["avatar"],
		website=row["website"],
		is_active=bool(row["isActive"]),
		is_banned=bool(row["isBanned"]),
		deleted_at=_from_db(row["deletedAt"]),
		profile_views=int(row["profileViews"] or 0),
		last_active_at=_from_db(row["lastActiveAt"]),
		location=location,
		detail=detail,
		settings=models.UserSettings(
			show_in_search=bool(row["show_in_search"]),
			show_in_discovery=bool(row["show_in_discovery"]),
			show_in_trending=bool(row["show_in_trending"]),
			show_phone_number=bool(row["show_phone_number"]),
		),
		reputation=reputation,
		active_posts=int(row["active_posts"] or 0),
		likes_received=int(row["likes_received"] or 0),
		favorites_received=int(row["favorites_received"] or 0),
	)


def _affected(status: str) -> int:
	"""Row count from an asyncpg command tag such as ``UPDATE 1``."""

	try:
		return int(status.rsplit(" ", 1)[-1])
	except (ValueError, AttributeError):
		return 0


class PostgresCandidateRepository(CandidateRepository):
	def __init__(self, pool: asyncpg.Pool) -> None:
		self._pool = pool

	@asynccontextmanager
	async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
		try:
			async with self._pool.acquire() as conn:
				yield conn
		except RepositoryError:
			raise
		except asyncpg.UniqueViolationError as exc:
			raise RepositoryError(RepositoryErrorKind.CONFLICT) from exc
		except asyncpg.ForeignKeyViolationError as exc:
			raise RepositoryError(RepositoryErrorKind.NOT_FOUND) from exc
		except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as exc:
			raise RepositoryError(RepositoryErrorKind.UNAVAILABLE) from exc

	async def list_active_candidates(self, query: models.CandidateQuery) -> models.CandidatePage:
		params = _Params()
		where = _build_where(query, params)
		sql = f"SELECT {_CANDIDATE_COLUMNS} {_CANDIDATE_FROM} WHERE {where} ORDER BY {SQL_ORDER_BY[query.sort]}"
		filter_values = list(params.values)
		if query.offset:
			sql += f" OFFSET {params.add(query.offset)}"
		if query.limit is not None:
			sql += f" LIMIT {params.add(query.limit)}"
		async with self._connection() as conn:
			rows = await conn.fetch(sql, *params.values)
			if query.limit is None and not query.offset:
				total = len(rows)
			else:
				total = await conn.fetchval(f"SELECT COUNT(*) {_CANDIDATE_FROM} WHERE {where}", *filter_values)
		return models.CandidatePage(users=[_row_to_user(row) for row in rows], total=int(total or 0))

	async def get_interaction_aggregates(self, target_user_id: str, since: datetime) -> models.InteractionAggregate:
		async with self._connection() as conn:
			row = await conn.fetchrow(
				"""
				SELECT COUNT(*) AS n, COALESCE(SUM(weight), 0) AS w
				FROM "UserInteraction"
				WHERE "targetUserId" = $1 AND "createdAt" >= $2
				""",
				target_user_id,
				_to_db(since),
			)
		return models.InteractionAggregate(
			target_user_id=target_user_id,
			count=int(row["n"] or 0),
			weight_sum=float(row["w"] or 0.0),
		)

	async def aggregate_interactions(self, since: datetime) -> list[models.InteractionAggregate]:
		async with self._connection() as conn:
			rows = await conn.fetch(
				"""
				SELECT "targetUserId" AS target, COUNT(*) AS n, COALESCE(SUM(weight), 0) AS w
				FROM "UserInteraction"
				WHERE "createdAt" >= $1
				GROUP BY "targetUserId"
				""",
				_to_db(since),
			)
		return [
			models.InteractionAggregate(
				target_user_id=str(row["target"]) if row["target"] is not None else None,
				count=int(row["n"] or 0),
				weight_sum=float(row["w"] or 0.0),
			)
			for row in rows
		]

	async def recent_interaction_targets(self, actor_id: str, limit: int) -> set[str]:
		async with self._connection() as conn:
			rows = await conn.fetch(
				"""
				SELECT DISTINCT recent."targetUserId" AS target
				FROM (
					SELECT "targetUserId"
					FROM "UserInteraction"
					WHERE "userId" = $1
					ORDER BY "createdAt" DESC
					LIMIT $2
				) recent
				WHERE recent."targetUserId" IS NOT NULL
				""",
				actor_id,
				limit,
			)
		return {str(row["target"]) for row in rows}

	async def read_reputation(self, user_id: str) -> models.Reputation:
		async with self._connection() as conn:
			row = await conn.fetchrow(
				"""
				SELECT "overallScore", "discoveryScore", "trendingScore", "trustScore",
					"profileCompleteness", "totalViews", "totalLikes", "totalMessages",
					"totalFavorites", "lastScoreUpdate"
				FROM "UserReputation"
				WHERE "userId" = $1
				""",
				user_id,
			)
		if row is None:
			raise RepositoryError(RepositoryErrorKind.NOT_FOUND, "reputation_not_found")
		return models.Reputation(
			overall_score=float(row["overallScore"] or 0.0),
			discovery_score=float(row["discoveryScore"] or 0.0),
			trending_score=float(row["trendingScore"] or 0.0),
			trust_score=float(row["trustScore"] or 0.0),
			profile_completeness=int(row["profileCompleteness"] or 0),
			total_views=int(row["totalViews"] or 0),
			total_likes=int(row["totalLikes"] or 0),
			total_messages=int(row["totalMessages"] or 0),
			total_favorites=int(row["totalFavorites"] or 0),
			last_score_update=_from_db(row["lastScoreUpdate"]),
		)

	async def write_reputation(self, user_id: str, update: models.ReputationUpdate) -> None:
		changes = update.changes()
		if not changes:
			return
		if "last_score_update" in changes:
			changes["last_score_update"] = _to_db(changes["last_score_update"])
		params = _Params()
		assignments = ", ".join(f"{_REPUTATION_COLUMNS[name]} = {params.add(value)}" for name, value in changes.items())
		ref = params.add(user_id)
		async with self._connection() as conn:
			status = await conn.execute(
				f'UPDATE "UserReputation" SET {assignments} WHERE "userId" = {ref}',
				*params.values,
			)
		if _affected(status) == 0:
			raise RepositoryError(RepositoryErrorKind.NOT_FOUND, "reputation_not_found")

	async def is_blocked(self, blocker_id: str, blocked_id: str) -> bool:
		async with self._connection() as conn:
			found = await conn.fetchval(
				'SELECT 1 FROM "UserBlock" WHERE "blockerId" = $1 AND "blockedId" = $2',
				blocker_id,
				blocked_id,
			)
		return found is not None

	async def blocked_ids(self, user_id: str) -> set[str]:
		async with self._connection() as conn:
			rows = await conn.fetch(
				"""
				SELECT "blockedId" AS other FROM "UserBlock" WHERE "blockerId" = $1
				UNION
				SELECT "blockerId" AS other FROM "UserBlock" WHERE "blockedId" = $1
				""",
				user_id,
			)
		return {str(row["other"]) for row in rows}

	async def read_settings(self, user_id: str) -> models.UserSettings:
		async with self._connection() as conn:
			async with conn.transaction():
				await conn.execute(
					"""
					INSERT INTO "UserSettings" (id, "userId")
					VALUES ($1, $2)
					ON CONFLICT ("userId") DO NOTHING
					""",
					str(uuid4()),
					user_id,
				)
				row = await conn.fetchrow(
					"""
					SELECT "showInSearch", "showInDiscovery", "showInTrending", "showPhoneNumber"
					FROM "UserSettings"
					WHERE "userId" = $1
					""",
					user_id,
				)
		if row is None:
			raise RepositoryError(RepositoryErrorKind.NOT_FOUND, "user_not_found")
		return models.UserSettings(
			show_in_search=bool(row["showInSearch"]),
			show_in_discovery=bool(row["showInDiscovery"]),
			show_in_trending=bool(row["showInTrending"]),
			show_phone_number=bool(row["showPhoneNumber"]),
		)

	async def record_interaction(self, interaction: models.Interaction) -> None:
		async with self._connection() as conn:
			await conn.execute(
				"""
				INSERT INTO "UserInteraction"
					(id, "userId", "targetUserId", type, weight, "createdAt", "deviceType", source)
				VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
				""",
				str(uuid4()),
				interaction.actor_id,
				interaction.target_user_id,
				interaction.type.value,
				interaction.weight,
				_to_db(interaction.created_at),
				interaction.device_type,
				interaction.source,
			)

	async def record_search(self, entry: models.SearchRecord) -> None:
		async with self._connection() as conn:
			await conn.execute(
				"""
				INSERT INTO "SearchHistory" (id, "userId", query, filters, results, "createdAt")
				VALUES ($1, $2, $3, $4::jsonb, $5, $6)
				""",
				str(uuid4()),
				entry.user_id,
				entry.query,
				json.dumps(entry.filters),
				entry.results,
				_to_db(entry.created_at),
			)

	async def increment_profile_views(self, user_id: str) -> None:
		async with self._connection() as conn:
			status = await conn.execute(
				'UPDATE "User" SET "profileViews" = "profileViews" + 1 WHERE id = $1',
				user_id,
			)
		if _affected(status) == 0:
			raise RepositoryError(RepositoryErrorKind.NOT_FOUND, "user_not_found")

	async def increment_reputation_counter(self, user_id: str, counter: models.ReputationCounter) -> None:
		column = _COUNTER_COLUMNS[counter]
		async with self._connection() as conn:
			status = await conn.execute(
				f'UPDATE "UserReputation" SET {column} = {column} + 1 WHERE "userId" = $1',
				user_id,
			)
		if _affected(status) == 0:
			raise RepositoryError(RepositoryErrorKind.NOT_FOUND, "reputation_not_found")

	async def purge_interactions(self, before: datetime) -> int:
		purged = 0
		async with self._connection() as conn:
			while True:
				rows = await conn.fetch(
					"""
					WITH doomed AS (
						SELECT id FROM "UserInteraction"
						WHERE "createdAt" < $1
						LIMIT $2
					)
					DELETE FROM "UserInteraction" t USING doomed d WHERE t.id = d.id
					RETURNING 1
					""",
					_to_db(before),
					PURGE_BATCH,
				)
				purged += len(rows)
				if len(rows) < PURGE_BATCH:
					break
		return purged


__all__ = ["PostgresCandidateRepository"]
