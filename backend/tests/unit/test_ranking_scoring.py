from datetime import datetime, timedelta, timezone

import pytest

from app.domain.ranking import models, scoring


def _signals(**overrides) -> models.ProfileSignals:
    base = dict(days_since_last_active=None, days_since_created=365)
    base.update(overrides)
    return models.ProfileSignals(**base)


def test_discovery_score_brand_new_complete_user_is_clamped_to_100():
    signals = _signals(
        days_since_last_active=0,
        days_since_created=0,
        profile_completeness=100,
        verified=True,
        active_posts=3,
        likes_received=15,
        favorites_received=6,
        overall_score=80,
    )
    assert scoring.discovery_score(signals) == 100.0


def test_discovery_score_components_add_up_below_the_ceiling():
    signals = _signals(days_since_last_active=2, days_since_created=20, profile_completeness=50)
    # 50 + 8 (active within 3 days) + 5 (completeness) + 3 (month-old account)
    assert scoring.discovery_score(signals) == pytest.approx(66.0)


@pytest.mark.parametrize("days", [31, 45, 90, 365, 5000])
def test_inactive_users_never_exceed_the_base(days):
    assert scoring.discovery_score(_signals(days_since_last_active=days)) <= 50.0


def test_recency_penalty_is_non_increasing_past_thirty_days():
    scores = [scoring.discovery_score(_signals(days_since_last_active=d)) for d in range(31, 120)]
    assert all(later <= earlier for earlier, later in zip(scores, scores[1:]))


def test_never_active_user_gets_the_inactivity_penalty():
    assert scoring.discovery_score(_signals(days_since_last_active=None)) == pytest.approx(40.0)


def test_recency_buckets_decrease_with_age():
    values = [scoring.discovery_score(_signals(days_since_last_active=d)) for d in (0, 1, 3, 7, 14, 30)]
    assert values == sorted(values, reverse=True)
    assert values[0] - values[-1] == pytest.approx(15.0)


@pytest.mark.parametrize(
    "signals",
    [
        _signals(),
        _signals(days_since_last_active=0, days_since_created=0),
        _signals(
            days_since_last_active=0,
            days_since_created=0,
            profile_completeness=100,
            verified=True,
            active_posts=50,
            likes_received=10_000,
            favorites_received=10_000,
            overall_score=100,
        ),
    ],
)
def test_discovery_score_bounds(signals):
    assert 0.0 <= scoring.discovery_score(signals) <= 100.0


def test_trending_score_six_events_in_last_day():
    stats = models.InteractionStats(total_7d=6, weight_sum_7d=6.0, count_24h=6)
    assert scoring.trending_score(stats) == 48.0


def test_trending_score_without_activity_is_zero():
    assert scoring.trending_score(models.InteractionStats()) == 0.0


def test_trending_score_saturates_at_the_ceiling():
    stats = models.InteractionStats(total_7d=1_000, weight_sum_7d=5_000.0, count_24h=500)
    assert scoring.trending_score(stats) == 80.0


def test_trending_burst_bonus_needs_more_than_five_daily_events():
    five = scoring.trending_score(models.InteractionStats(total_7d=5, weight_sum_7d=5.0, count_24h=5))
    six = scoring.trending_score(models.InteractionStats(total_7d=6, weight_sum_7d=6.0, count_24h=6))
    assert five == 10 + 5 + 20
    assert six - five == pytest.approx(2 + 1 + 10)


@pytest.mark.parametrize("value", ["", "a", "kitten", "ñandú", "the same words"])
def test_edit_distance_identity(value):
    assert scoring.edit_distance(value, value) == 0
    assert scoring.string_similarity(value, value) == 1.0


@pytest.mark.parametrize(
    "a,b,expected",
    [
        ("kitten", "sitting", 3),
        ("flaw", "lawn", 2),
        ("", "abc", 3),
        ("gumbo", "gambol", 2),
    ],
)
def test_edit_distance_known_pairs(a, b, expected):
    assert scoring.edit_distance(a, b) == expected
    assert scoring.edit_distance(b, a) == expected


@pytest.mark.parametrize("a,b", [("kitten", "sitting"), ("", "x"), ("madrid", "Madrid"), ("abc", "xyz")])
def test_string_similarity_symmetric_and_bounded(a, b):
    forward = scoring.string_similarity(a, b)
    assert forward == scoring.string_similarity(b, a)
    assert 0.0 <= forward <= 1.0


def test_string_similarity_value():
    assert scoring.string_similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)


def test_profile_completeness_for_escort_caps_at_100(user_factory):
    user = user_factory(
        "e1",
        first_name="Ana",
        last_name="Ruiz",
        bio="hello",
        avatar="a.png",
        phone="+34",
        detail=models.TypeDetail(age=30, services=["dinner"], languages=["es"]),
    )
    assert scoring.profile_completeness(user) == 100


def test_profile_completeness_agency_website_and_partial_fields(user_factory):
    user = user_factory("a1", user_type=models.UserType.AGENCY, first_name="Acme", website="https://acme.example")
    assert scoring.profile_completeness(user) == 30


def test_profile_completeness_client_ignores_type_extras(user_factory):
    user = user_factory(
        "c1",
        user_type=models.UserType.CLIENT,
        bio="hi",
        detail=models.TypeDetail(age=40, services=["x"], languages=["en"]),
    )
    assert scoring.profile_completeness(user) == 20


def test_signals_for_reads_reputation_and_activity(user_factory, now):
    user = user_factory(
        "u1",
        created_days_ago=3,
        active_minutes_ago=60 * 24 * 2,
        verified=True,
        reputation=models.Reputation(overall_score=70, profile_completeness=40),
        active_posts=2,
    )
    signals = scoring.signals_for(user, now=now)
    assert signals.days_since_last_active == 2
    assert signals.days_since_created == 3
    assert signals.profile_completeness == 40
    assert signals.verified is True
    assert signals.active_posts == 2
    assert signals.overall_score == 70


def test_days_between_handles_unknown_and_future():
    now = datetime(2024, 1, 10, tzinfo=timezone.utc)
    assert scoring.days_between(None, now) is None
    assert scoring.days_between(now + timedelta(hours=5), now) == 0
    assert scoring.days_between(now - timedelta(days=4, hours=23), now) == 4


def test_reputation_builder_clamps_scores():
    update = (
        models.ReputationUpdateBuilder()
        .discovery_score(102.6)
        .trending_score(-3)
        .profile_completeness(140)
        .build()
    )
    assert update.discovery_score == 100.0
    assert update.trending_score == 0.0
    assert update.profile_completeness == 100
    assert update.overall_score is None
    assert set(update.changes()) == {"discovery_score", "trending_score", "profile_completeness"}
