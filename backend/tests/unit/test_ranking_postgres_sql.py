import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest

from app.domain.ranking import models
from app.domain.ranking import postgres as pg
from app.domain.ranking.errors import RepositoryError, RepositoryErrorKind


class FakeConnection:
    """Records every statement and replays scripted results."""

    def __init__(self, *, fetch=None, fetchval=None, fetchrow=None, execute="UPDATE 1", error=None):
        self.calls = []
        self._fetch = list(fetch or [])
        self._fetchval = fetchval
        self._fetchrow = fetchrow
        self._execute = execute
        self._error = error

    def _record(self, kind, sql, args):
        self.calls.append((kind, sql, args))
        if self._error is not None:
            raise self._error

    async def fetch(self, sql, *args):
        self._record("fetch", sql, args)
        return self._fetch.pop(0) if self._fetch else []

    async def fetchval(self, sql, *args):
        self._record("fetchval", sql, args)
        return self._fetchval

    async def fetchrow(self, sql, *args):
        self._record("fetchrow", sql, args)
        return self._fetchrow

    async def execute(self, sql, *args):
        self._record("execute", sql, args)
        return self._execute

    @asynccontextmanager
    async def transaction(self):
        yield


class FakePool:
    def __init__(self, conn):
        self.conn = conn

    @asynccontextmanager
    async def acquire(self):
        yield self.conn


def _row(**overrides):
    row = {
        "id": "u1",
        "username": "ana",
        "firstName": "Ana",
        "lastName": None,
        "bio": None,
        "phone": "+34",
        "avatar": None,
        "website": None,
        "userType": "ESCORT",
        "isActive": True,
        "isBanned": False,
        "deletedAt": None,
        "profileViews": 4,
        "lastActiveAt": datetime(2024, 6, 1, 11, 0),
        "createdAt": datetime(2024, 1, 1, 9, 0),
        "city": "Madrid",
        "country": None,
        "verified": True,
        "has_detail": True,
        "age": 30,
        "services": ["dinner"],
        "languages": None,
        "rating": 4.5,
        "show_in_search": True,
        "show_in_discovery": False,
        "show_in_trending": True,
        "show_phone_number": True,
        "has_reputation": True,
        "overallScore": 70.0,
        "discoveryScore": 55.5,
        "trendingScore": None,
        "trustScore": None,
        "profileCompleteness": 60,
        "totalViews": 3,
        "totalLikes": None,
        "totalMessages": 0,
        "totalFavorites": 1,
        "lastScoreUpdate": datetime(2024, 6, 1, 10, 0),
        "active_posts": 2,
        "likes_received": 11,
        "favorites_received": 0,
    }
    row.update(overrides)
    return row


def test_base_predicate_has_no_parameters():
    params = pg._Params()

    where = pg._build_where(models.CandidateQuery(), params)

    assert where == 'u."isActive" AND NOT u."isBanned" AND u."deletedAt" IS NULL'
    assert params.values == []


def test_full_predicate_binds_parameters_in_clause_order():
    since = datetime(2024, 6, 1, 11, 45, tzinfo=timezone.utc)
    query = models.CandidateQuery(
        text="an_a%",
        user_types=frozenset({models.UserType.ESCORT, models.UserType.AGENCY}),
        location="madrid",
        verified=True,
        min_age=21,
        max_age=40,
        services=("dinner",),
        languages=("en", "es"),
        min_rating=4.0,
        active_since=since,
        visible_in="search",
        exclude_ids=frozenset({"me", "seen"}),
        exclude_blocked_for="me",
    )
    params = pg._Params()

    where = pg._build_where(query, params)

    assert params.values == [
        ["me", "seen"],
        "me",
        ["AGENCY", "ESCORT"],
        "%an\\_a\\%%",
        "%madrid%",
        True,
        21,
        40,
        ["dinner"],
        ["en", "es"],
        4.0,
        datetime(2024, 6, 1, 11, 45),
    ]
    assert "NOT (u.id = ANY($1::text[]))" in where
    assert '"blockerId" = $2' in where and '"blockedId" = $2' in where
    assert 'COALESCE(s."showInSearch", TRUE)' in where
    assert 'u."userType"::text = ANY($3::text[])' in where
    assert 'u."firstName" ILIKE $4' in where
    assert "l.country ILIKE $5" in where
    assert "e.age >= $7" in where and "e.age <= $8" in where
    assert "unnest(e.services)" in where and "unnest(e.languages)" in where
    assert 'u."lastActiveAt" >= $12' in where


@pytest.mark.parametrize(
    "visible_in,column",
    [("search", "showInSearch"), ("discovery", "showInDiscovery"), ("trending", "showInTrending")],
)
def test_visibility_flag_defaults_to_visible(visible_in, column):
    where = pg._build_where(models.CandidateQuery(visible_in=visible_in), pg._Params())

    assert f'COALESCE(s."{column}", TRUE)' in where


def test_like_pattern_escapes_wildcards():
    assert pg._like_pattern("50%_off\\") == "%50\\%\\_off\\\\%"


def test_timestamps_round_trip_as_naive_utc():
    aware = datetime(2024, 6, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    stored = pg._to_db(aware)

    assert stored == datetime(2024, 6, 1, 12, 0)
    assert stored.tzinfo is None
    assert pg._from_db(stored) == datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
    assert pg._from_db(None) is None


@pytest.mark.parametrize("status,count", [("UPDATE 3", 3), ("DELETE 0", 0), ("", 0), (None, 0)])
def test_affected_reads_command_tag(status, count):
    assert pg._affected(status) == count


def test_row_to_user_maps_joined_columns():
    user = pg._row_to_user(_row())

    assert user.user_type is models.UserType.ESCORT
    assert user.created_at == datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
    assert user.location == models.Location(city="Madrid", country=None)
    assert user.detail == models.TypeDetail(verified=True, age=30, services=["dinner"], languages=[], rating=4.5)
    assert user.settings.show_in_discovery is False
    assert user.settings.show_phone_number is True
    assert user.reputation.discovery_score == 55.5
    assert user.reputation.trending_score == 0.0
    assert user.reputation.total_likes == 0
    assert user.reputation.last_score_update.tzinfo is timezone.utc
    assert (user.active_posts, user.likes_received) == (2, 11)


def test_row_to_user_without_sub_records():
    user = pg._row_to_user(_row(has_detail=False, has_reputation=False, city=None, country=None))

    assert user.detail is None
    assert user.reputation is None
    assert user.location is None
    assert user.verified is False


@pytest.mark.asyncio
async def test_windowed_listing_counts_with_filter_parameters_only():
    conn = FakeConnection(fetch=[[_row()]], fetchval=7)
    repo = pg.PostgresCandidateRepository(FakePool(conn))
    query = models.CandidateQuery(visible_in="search", exclude_ids=frozenset({"me"}), offset=20, limit=10)

    page = await repo.list_active_candidates(query)

    assert page.total == 7
    assert [u.id for u in page.users] == ["u1"]
    (_, select_sql, select_args), (_, count_sql, count_args) = conn.calls
    assert select_sql.endswith("OFFSET $2 LIMIT $3")
    assert select_args == (["me"], 20, 10)
    assert count_sql.startswith("SELECT COUNT(*)")
    assert count_args == (["me"],)


@pytest.mark.asyncio
async def test_unbounded_listing_skips_the_count_query():
    conn = FakeConnection(fetch=[[_row(id="a"), _row(id="b")]])
    repo = pg.PostgresCandidateRepository(FakePool(conn))

    page = await repo.list_active_candidates(models.CandidateQuery(sort=models.SortKey.NEWEST))

    assert page.total == 2
    assert len(conn.calls) == 1
    assert 'ORDER BY u."createdAt" DESC, u.id' in conn.calls[0][1]


@pytest.mark.asyncio
async def test_write_reputation_binds_changes_then_user_id():
    conn = FakeConnection(execute="UPDATE 1")
    repo = pg.PostgresCandidateRepository(FakePool(conn))
    when = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    await repo.write_reputation("u1", models.ReputationUpdateBuilder().discovery_score(42).scored_at(when).build())

    [(_, sql, args)] = conn.calls
    assert sql == 'UPDATE "UserReputation" SET "discoveryScore" = $1, "lastScoreUpdate" = $2 WHERE "userId" = $3'
    assert args == (42.0, datetime(2024, 6, 1, 12, 0), "u1")


@pytest.mark.asyncio
async def test_write_reputation_without_row_is_not_found():
    repo = pg.PostgresCandidateRepository(FakePool(FakeConnection(execute="UPDATE 0")))

    with pytest.raises(RepositoryError) as excinfo:
        await repo.write_reputation("ghost", models.ReputationUpdateBuilder().trending_score(5).build())

    assert excinfo.value.kind is RepositoryErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_empty_reputation_update_issues_no_statement():
    conn = FakeConnection()
    repo = pg.PostgresCandidateRepository(FakePool(conn))

    await repo.write_reputation("u1", models.ReputationUpdate())

    assert conn.calls == []


@pytest.mark.asyncio
async def test_purge_deletes_in_batches(monkeypatch):
    monkeypatch.setattr(pg, "PURGE_BATCH", 2)
    conn = FakeConnection(fetch=[[1, 1], [1, 1], [1]])
    repo = pg.PostgresCandidateRepository(FakePool(conn))

    purged = await repo.purge_interactions(datetime(2023, 6, 1, tzinfo=timezone.utc))

    assert purged == 5
    assert len(conn.calls) == 3
    assert all(args == (datetime(2023, 6, 1), 2) for _, _, args in conn.calls)


@pytest.mark.asyncio
async def test_record_search_serialises_filters():
    conn = FakeConnection(execute="INSERT 0 1")
    repo = pg.PostgresCandidateRepository(FakePool(conn))
    entry = models.SearchRecord(
        user_id="u1",
        query="Madrid",
        results=3,
        created_at=datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc),
        filters={"sortBy": "relevance"},
    )

    await repo.record_search(entry)

    [(_, sql, args)] = conn.calls
    assert '"SearchHistory"' in sql
    assert args[1:] == ("u1", "Madrid", json.dumps({"sortBy": "relevance"}), 3, datetime(2024, 6, 1, 12, 0))


@pytest.mark.parametrize("error", [OSError("connection refused"), asyncio.TimeoutError()])
@pytest.mark.asyncio
async def test_driver_failures_surface_as_unavailable(error):
    repo = pg.PostgresCandidateRepository(FakePool(FakeConnection(error=error)))

    with pytest.raises(RepositoryError) as excinfo:
        await repo.is_blocked("a", "b")

    assert excinfo.value.kind is RepositoryErrorKind.UNAVAILABLE
    assert excinfo.value.status_code == 503
