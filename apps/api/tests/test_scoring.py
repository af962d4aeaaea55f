from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from services.scoring import RelevanceScorer, ScoringWeights


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def test_viral_metrics_reach_the_maximum_score():
    scorer = RelevanceScorer()
    metrics = {"views": 1_200_000, "likes": 60_000, "comments": 3_000, "shares": 2_000, "growth": 1_500}

    assert round(scorer.engagement_rate(metrics), 2) == 5.42
    assert scorer.score(metrics) == 100


def test_quiet_metrics_stay_at_the_base_score():
    scorer = RelevanceScorer()
    metrics = {"views": 50_000, "likes": 500, "growth": 50}

    assert scorer.engagement_rate(metrics) == 1.0
    assert scorer.score(metrics) == 50


def test_thresholds_are_strict():
    scorer = RelevanceScorer()
    # exactly on every mid threshold earns nothing
    assert scorer.score({"views": 100_000, "engagement_rate": 2.0, "growth": 100}) == 50
    assert scorer.score({"views": 100_001, "engagement_rate": 2.01, "growth": 101}) == 80
    assert scorer.score({"views": 1_000_000, "engagement_rate": 5.0, "growth": 1000}) == 80


def test_score_is_monotonic_in_each_metric():
    scorer = RelevanceScorer()
    base = {"views": 10_000, "engagement_rate": 1.0, "growth": 10}
    previous = scorer.score(base)
    for views in (50_000, 150_000, 2_000_000):
        current = scorer.score({**base, "views": views})
        assert current >= previous
        previous = current

    previous = scorer.score(base)
    for growth in (50, 500, 5_000):
        current = scorer.score({**base, "growth": growth})
        assert current >= previous
        previous = current

    previous = scorer.score(base)
    for rate in (3.0, 6.0):
        current = scorer.score({**base, "engagement_rate": rate})
        assert current >= previous
        previous = current
    assert previous == 70


def test_extreme_inputs_stay_within_bounds():
    scorer = RelevanceScorer()
    negative = scorer.score({"views": -5, "growth": -10**9, "engagement_rate": -1})
    huge = scorer.score({"views": 10**12, "likes": 10**12, "growth": 10**12})

    assert 0 <= negative <= 100
    assert negative == 50
    assert 0 <= huge <= 100
    assert huge == 100


def test_missing_or_zero_views_never_divides_by_zero():
    scorer = RelevanceScorer()
    assert scorer.engagement_rate({"views": 0, "likes": 10}) == 0.0
    assert scorer.engagement_rate(None) == 0.0
    assert scorer.score({}) == 50
    assert scorer.score(None) == 50


def test_custom_weights_are_clamped_to_bounds():
    generous = RelevanceScorer(ScoringWeights(base_score=90.0))
    stingy = RelevanceScorer(ScoringWeights(base_score=-40.0))
    metrics = {"views": 2_000_000, "engagement_rate": 9.0, "growth": 5_000}

    assert generous.score(metrics) == 100
    assert stingy.score({"views": 0}) == 0
    assert generous.clamp(150.0) == 100.0
    assert generous.clamp(-3.0) == 0.0


def test_trend_score_decays_with_age():
    scorer = RelevanceScorer()
    fresh = scorer.trend_score(created_at=NOW, engagement_rate=5.0, growth=50_000, now=NOW)
    older = scorer.trend_score(created_at=NOW - timedelta(days=3), engagement_rate=5.0, growth=50_000, now=NOW)
    ancient = scorer.trend_score(created_at=NOW - timedelta(days=30), engagement_rate=5.0, growth=50_000, now=NOW)

    # recency 100*0.3 + engagement 50*0.4 + growth 50*0.3
    assert fresh == 65.0
    assert older == 56.0
    assert ancient == 35.0
    assert fresh > older > ancient


def test_trend_score_caps_components_and_accepts_naive_timestamps():
    scorer = RelevanceScorer()
    naive_created = NOW.replace(tzinfo=None)
    score = scorer.trend_score(created_at=naive_created, engagement_rate=50.0, growth=10_000_000, now=NOW)
    assert score == 100.0


def test_trend_score_for_reads_record_attributes():
    scorer = RelevanceScorer()
    record = SimpleNamespace(created_at=NOW - timedelta(days=1), engagement_rate=2.5, growth=20_000)
    assert scorer.trend_score_for(record, now=NOW) == scorer.trend_score(
        created_at=record.created_at, engagement_rate=2.5, growth=20_000, now=NOW
    )


def test_should_update_applies_hysteresis():
    scorer = RelevanceScorer()
    assert scorer.should_update(70.0, 64.9) is True
    assert scorer.should_update(70.0, 65.0) is False
    assert scorer.should_update(70.0, 73.0) is False
    assert scorer.should_update(None, 10.0) is True
