"""
Derived metrics: quality grades, period comparisons and content decay.
Pure functions over raw metric values; no I/O.
"""
import math
from dataclasses import dataclass
from typing import Optional

SIGNIFICANT_CHANGE = 30.0
NOTABLE_CHANGE = 15.0
CRITICAL_DECAY = 50.0
HIGH_DECAY = 30.0
DEFAULT_DECAY_THRESHOLD = 20.0


@dataclass(frozen=True)
class QualityScore:
    score: int
    grade: str


@dataclass(frozen=True)
class PeriodChange:
    metric: str
    current: float
    previous: float
    change: float
    percent_change: float
    direction: str
    significance: str


@dataclass(frozen=True)
class DecayResult:
    baseline: float
    recent: float
    drop_percent: float
    severity: str


def _bounce_points(bounce_rate: float) -> int:
    if bounce_rate <= 30:
        return 60
    if bounce_rate <= 50:
        return 45
    if bounce_rate <= 70:
        return 25
    return 0


def _duration_points(visit_duration: float) -> int:
    if visit_duration >= 180:
        return 40
    if visit_duration >= 60:
        return 30
    if visit_duration >= 30:
        return 15
    return 0


def grade_for_score(score: float) -> str:
    """Letter grade; each band includes its lower bound"""
    if score >= 80:
        return "A"
    if score >= 60:
        return "B"
    if score >= 40:
        return "C"
    if score >= 20:
        return "D"
    return "F"


def _missing(value) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def source_quality_score(bounce_rate: float, visit_duration: float) -> Optional[QualityScore]:
    """
    Score a traffic source from 0 to 100.

    Bounce rate contributes up to 60 points, visit duration (seconds) up to 40.
    Returns None when either value is missing (None or NaN).
    """
    if _missing(bounce_rate) or _missing(visit_duration):
        return None
    score = _bounce_points(bounce_rate) + _duration_points(visit_duration)
    return QualityScore(score=score, grade=grade_for_score(score))


def page_quality(bounce_rate: float, avg_duration: float) -> Optional[str]:
    """Both conditions of a band must hold for the page to reach it; None when a value is missing"""
    if _missing(bounce_rate) or _missing(avg_duration):
        return None
    if bounce_rate < 30 and avg_duration > 180:
        return "excellent"
    if bounce_rate < 50 and avg_duration > 60:
        return "good"
    if bounce_rate < 70 and avg_duration > 30:
        return "poor"
    return "very-poor"


def compare_values(current: float, previous: float, metric: str = "") -> PeriodChange:
    """
    Compare a metric across two periods.

    percent_change is reported as 0 when previous is 0. That is a display
    policy, not arithmetic: growth from nothing has no defined percentage,
    so check `previous` before reading meaning into a 0.
    """
    current = current or 0
    previous = previous or 0
    change = current - previous
    percent = (change * 100 / previous) if previous != 0 else 0.0

    if current > previous:
        direction = "up"
    elif current < previous:
        direction = "down"
    else:
        direction = "flat"

    magnitude = abs(percent)
    if magnitude >= SIGNIFICANT_CHANGE:
        significance = "significant"
    elif magnitude >= NOTABLE_CHANGE:
        significance = "notable"
    else:
        significance = "normal"

    return PeriodChange(
        metric=metric,
        current=current,
        previous=previous,
        change=change,
        percent_change=percent,
        direction=direction,
        significance=significance,
    )


def decay_drop_percent(baseline: float, recent: float) -> Optional[float]:
    """Percentage drop from baseline to recent; None when there is no baseline"""
    baseline = baseline or 0
    if baseline == 0:
        return None
    return (baseline - (recent or 0)) * 100 / baseline


def decay_severity(drop_percent: float) -> str:
    if drop_percent >= CRITICAL_DECAY:
        return "critical"
    if drop_percent >= HIGH_DECAY:
        return "high"
    return "medium"


def measure_decay(baseline: float, recent: float,
                  threshold: float = DEFAULT_DECAY_THRESHOLD) -> Optional[DecayResult]:
    """DecayResult when the drop reaches threshold, else None (also for a zero baseline)"""
    drop = decay_drop_percent(baseline, recent)
    if drop is None or drop < threshold:
        return None
    return DecayResult(
        baseline=baseline,
        recent=recent or 0,
        drop_percent=drop,
        severity=decay_severity(drop),
    )
