"""Relevance and time-decayed trend scoring."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class ScoringWeights:
    """Heuristic constants for trend ranking.

    Thresholds are compared with strict ``>``; downstream sort order depends
    on them, so changing a value changes which trends surface first.
    """

    base_score: float = 50.0
    min_score: float = 0.0
    max_score: float = 100.0

    engagement_high: float = 5.0
    engagement_mid: float = 2.0
    engagement_high_points: float = 20.0
    engagement_mid_points: float = 10.0

    growth_high: float = 1000.0
    growth_mid: float = 100.0
    growth_high_points: float = 15.0
    growth_mid_points: float = 10.0

    views_high: float = 1_000_000.0
    views_mid: float = 100_000.0
    views_high_points: float = 15.0
    views_mid_points: float = 10.0

    # trend_score: recency decays linearly by decay_per_day points per day
    decay_per_day: float = 10.0
    recency_weight: float = 0.3
    engagement_weight: float = 0.4
    growth_weight: float = 0.3
    engagement_multiplier: float = 10.0
    growth_divisor: float = 1000.0

    rescore_threshold: float = 5.0


DEFAULT_WEIGHTS = ScoringWeights()


def _safe_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _tiered(value: float, high: float, mid: float, high_points: float, mid_points: float) -> float:
    if value > high:
        return high_points
    if value > mid:
        return mid_points
    return 0.0


class RelevanceScorer:
    """Maps engagement, growth and view metrics to bounded ranking scores."""

    def __init__(self, weights: ScoringWeights = DEFAULT_WEIGHTS) -> None:
        self.weights = weights

    def clamp(self, value: float) -> float:
        return max(self.weights.min_score, min(self.weights.max_score, value))

    def engagement_rate(self, metrics: Optional[Mapping[str, Any]]) -> float:
        """(likes + comments + shares) / views * 100, or 0 without views."""
        if not metrics:
            return 0.0
        views = _safe_float(metrics.get("views"))
        if views <= 0:
            return 0.0
        interactions = (
            _safe_float(metrics.get("likes"))
            + _safe_float(metrics.get("comments"))
            + _safe_float(metrics.get("shares"))
        )
        return max(interactions, 0.0) / views * 100.0

    def score(self, metrics: Optional[Mapping[str, Any]]) -> int:
        """Additive point score in [0, 100].

        ``metrics`` may carry a precomputed ``engagement_rate``; otherwise it is
        derived from likes/comments/shares over views.
        """
        metrics = metrics or {}
        w = self.weights
        if metrics.get("engagement_rate") is not None:
            rate = _safe_float(metrics.get("engagement_rate"))
        else:
            rate = self.engagement_rate(metrics)
        growth = _safe_float(metrics.get("growth"))
        views = _safe_float(metrics.get("views"))

        total = w.base_score
        total += _tiered(rate, w.engagement_high, w.engagement_mid, w.engagement_high_points, w.engagement_mid_points)
        total += _tiered(growth, w.growth_high, w.growth_mid, w.growth_high_points, w.growth_mid_points)
        total += _tiered(views, w.views_high, w.views_mid, w.views_high_points, w.views_mid_points)
        return int(round(self.clamp(total)))

    def trend_score(
        self,
        *,
        created_at: Optional[datetime],
        engagement_rate: Any,
        growth: Any,
        now: Optional[datetime] = None,
    ) -> float:
        """Age-decayed score: recency reaches 0 after 100 / decay_per_day days."""
        w = self.weights
        now_utc = _as_utc(now) or datetime.now(timezone.utc)
        created_utc = _as_utc(created_at) or now_utc
        age_hours = max((now_utc - created_utc).total_seconds() / 3600.0, 0.0)

        recency = max(0.0, 100.0 - (age_hours / 24.0) * w.decay_per_day)
        engagement = min(100.0, _safe_float(engagement_rate) * w.engagement_multiplier)
        growth_component = min(100.0, _safe_float(growth) / w.growth_divisor)

        total = (
            recency * w.recency_weight
            + engagement * w.engagement_weight
            + growth_component * w.growth_weight
        )
        return round(self.clamp(total), 2)

    def trend_score_for(self, record: Any, now: Optional[datetime] = None) -> float:
        return self.trend_score(
            created_at=getattr(record, "created_at", None),
            engagement_rate=getattr(record, "engagement_rate", 0.0),
            growth=getattr(record, "growth", 0),
            now=now,
        )

    def should_update(self, old_score: Any, new_score: Any) -> bool:
        """Hysteresis: only a change larger than the threshold is persisted."""
        return abs(_safe_float(old_score) - _safe_float(new_score)) > self.weights.rescore_threshold
