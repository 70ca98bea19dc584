"""Score model: discovery score, trending score and string similarity.

Everything here is pure; inputs are plain dataclasses and the result is
always clamped to the score range.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from app.domain.ranking.models import (
	InteractionStats,
	ProfileSignals,
	UserRecord,
	UserType,
	clamp_score,
)

DISCOVERY_BASE = 50.0

# (max days since last activity, bonus); first match wins
RECENCY_BUCKETS = (
	(0, 15.0),
	(1, 12.0),
	(3, 8.0),
	(7, 4.0),
	(14, 2.0),
)
INACTIVE_AFTER_DAYS = 30
INACTIVE_PENALTY = -10.0

W_COMPLETENESS = 10.0
W_VERIFIED = 8.0
W_FIRST_POST = 3.0
W_THIRD_POST = 2.0
W_LIKES = 3.0
W_FAVORITES = 2.0
W_NEW_WEEK = 5.0
W_NEW_MONTH = 3.0
W_REPUTATION = 2.0

LIKES_THRESHOLD = 10
FAVORITES_THRESHOLD = 5

TRENDING_VOLUME_CAP = 30.0
TRENDING_WEIGHT_CAP = 20.0
TRENDING_VELOCITY_CAP = 20.0
TRENDING_BURST_THRESHOLD = 5
TRENDING_BURST_BONUS = 10.0

COMPLETENESS_BASE_FIELDS = ("first_name", "last_name", "bio", "avatar", "phone")


def days_between(earlier: Optional[datetime], later: datetime) -> Optional[int]:
	"""Whole days elapsed between two instants, ``None`` when unknown."""

	if earlier is None:
		return None
	return max(0, (later - earlier).days)


def _recency_bonus(days_since_last_active: Optional[int]) -> float:
	if days_since_last_active is None or days_since_last_active > INACTIVE_AFTER_DAYS:
		return INACTIVE_PENALTY
	for max_days, bonus in RECENCY_BUCKETS:
		if days_since_last_active <= max_days:
			return bonus
	return 0.0


def _engagement_bonus(signals: ProfileSignals) -> float:
	bonus = 0.0
	if signals.active_posts >= 1:
		bonus += W_FIRST_POST
	if signals.active_posts >= 3:
		bonus += W_THIRD_POST
	if signals.likes_received > LIKES_THRESHOLD:
		bonus += W_LIKES
	if signals.favorites_received > FAVORITES_THRESHOLD:
		bonus += W_FAVORITES
	return bonus


def _novelty_bonus(days_since_created: int) -> float:
	bonus = 0.0
	if days_since_created <= 7:
		bonus += W_NEW_WEEK
	if days_since_created <= 30:
		bonus += W_NEW_MONTH
	return bonus


def discovery_score(signals: ProfileSignals) -> float:
	"""Score used by the default discover ordering.

	Base 50 adjusted by recency, completeness, verification, engagement,
	novelty and the overall reputation; clamped once at the end.
	"""

	score = DISCOVERY_BASE
	score += _recency_bonus(signals.days_since_last_active)
	score += (signals.profile_completeness / 100.0) * W_COMPLETENESS
	if signals.verified:
		score += W_VERIFIED
	score += _engagement_bonus(signals)
	score += _novelty_bonus(signals.days_since_created)
	score += (signals.overall_score / 100.0) * W_REPUTATION
	return clamp_score(score)


def trending_score(stats: InteractionStats) -> float:
	"""Short-window popularity from 7-day volume and 24-hour velocity."""

	score = 0.0
	score += min(TRENDING_VOLUME_CAP, stats.total_7d * 2)
	score += min(TRENDING_WEIGHT_CAP, stats.weight_sum_7d)
	score += min(TRENDING_VELOCITY_CAP, stats.count_24h * 5)
	if stats.count_24h > TRENDING_BURST_THRESHOLD:
		score += TRENDING_BURST_BONUS
	return clamp_score(score)


def edit_distance(a: str, b: str) -> int:
	"""Levenshtein distance over code points."""

	rows = len(a) + 1
	cols = len(b) + 1
	table = [[0] * cols for _ in range(rows)]
	for i in range(rows):
		table[i][0] = i
	for j in range(cols):
		table[0][j] = j
	for i in range(1, rows):
		for j in range(1, cols):
			cost = 0 if a[i - 1] == b[j - 1] else 1
			table[i][j] = min(
				table[i - 1][j] + 1,
				table[i][j - 1] + 1,
				table[i - 1][j - 1] + cost,
			)
	return table[rows - 1][cols - 1]


def string_similarity(a: str, b: str) -> float:
	"""Normalised similarity in ``[0, 1]``; 1.0 means identical."""

	longer, shorter = (a, b) if len(a) >= len(b) else (b, a)
	if not longer:
		return 1.0
	return 1.0 - edit_distance(longer, shorter) / len(longer)


def profile_completeness(user: UserRecord) -> int:
	"""Percentage of filled profile fields, type-specific extras weigh less."""

	completeness = 0
	for name in COMPLETENESS_BASE_FIELDS:
		if getattr(user, name):
			completeness += 20
	if user.user_type is UserType.ESCORT and user.detail is not None:
		for value in (user.detail.age, user.detail.services, user.detail.languages):
			if value:
				completeness += 10
	elif user.user_type is UserType.AGENCY and user.website:
		completeness += 10
	return min(100, completeness)


def signals_for(user: UserRecord, *, now: datetime, completeness: Optional[float] = None) -> ProfileSignals:
	"""Collect discovery inputs from a joined user record."""

	reputation = user.reputation
	if completeness is None:
		completeness = reputation.profile_completeness if reputation else 0
	return ProfileSignals(
		days_since_last_active=days_between(user.last_active_at, now),
		days_since_created=days_between(user.created_at, now) or 0,
		profile_completeness=float(completeness),
		verified=user.verified,
		active_posts=user.active_posts,
		likes_received=user.likes_received,
		favorites_received=user.favorites_received,
		overall_score=user.overall_score,
	)
