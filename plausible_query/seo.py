"""
SEO helpers built on the query executor.

Each helper runs the same executor with preset metrics and dimensions and
returns a pandas DataFrame ready for display or export.
"""
import concurrent.futures
import logging
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from .client import QueryExecutor
from .export import column_name
from .scoring import (
    DEFAULT_DECAY_THRESHOLD,
    PeriodChange,
    compare_values,
    measure_decay,
    page_quality,
    source_quality_score,
)

logger = logging.getLogger(__name__)

DateRange = Union[str, Sequence[str]]

COMPARE_METRICS = ("visitors", "visits", "pageviews", "bounce_rate", "visit_duration")


def _date_range(value: DateRange):
    return value if isinstance(value, str) else list(value)


def breakdown(executor: QueryExecutor, metrics: Sequence[str], dimensions: Sequence[str],
              date_range: DateRange = "30d", limit: int = 10, site_id: Optional[str] = None,
              order_by: Optional[List[List[str]]] = None, filters: Optional[list] = None) -> pd.DataFrame:
    """Run a dimensional query and return one row per dimension combination"""
    metrics = list(metrics)
    dimensions = list(dimensions)
    params = {
        "metrics": metrics,
        "dimensions": dimensions,
        "date_range": _date_range(date_range),
        "pagination": {"limit": limit, "offset": 0},
        "order_by": order_by or [[metrics[0], "desc"]],
    }
    if site_id:
        params["site_id"] = site_id
    if filters:
        params["filters"] = filters

    response = executor.execute(params)
    columns = [column_name(d) for d in dimensions] + metrics
    records = response.records(columns[:len(dimensions)], metrics)
    return pd.DataFrame(records, columns=columns)


def aggregate(executor: QueryExecutor, metrics: Sequence[str], date_range: DateRange,
              site_id: Optional[str] = None) -> Dict[str, float]:
    """Totals for a period as {metric: value}"""
    metrics = list(metrics)
    params = {"metrics": metrics, "date_range": _date_range(date_range)}
    if site_id:
        params["site_id"] = site_id
    response = executor.execute(params)
    values = response.results[0].metrics if response.results else []
    totals = {metric: 0 for metric in metrics}
    for metric, value in zip(metrics, values):
        totals[metric] = value if value is not None else 0
    return totals


def top_pages(executor: QueryExecutor, date_range: DateRange = "30d", limit: int = 10,
              site_id: Optional[str] = None) -> pd.DataFrame:
    """Most visited pages"""
    return breakdown(executor, ["visitors", "pageviews"], ["event:page"], date_range, limit, site_id)


def traffic_sources(executor: QueryExecutor, date_range: DateRange = "30d", limit: int = 10,
                    site_id: Optional[str] = None) -> pd.DataFrame:
    """
    Traffic sources graded by engagement.

    Adds quality_score (0-100) and grade (A-F) computed from bounce rate
    and visit duration. Rows missing either value are left ungraded.
    """
    df = breakdown(executor, ["visitors", "bounce_rate", "visit_duration"], ["visit:source"],
                   date_range, limit, site_id)
    if df.empty:
        return df.assign(quality_score=pd.Series(dtype=int), grade=pd.Series(dtype=str))
    scores = [source_quality_score(bounce, duration)
              for bounce, duration in zip(df["bounce_rate"], df["visit_duration"])]
    df["quality_score"] = [s.score if s is not None else None for s in scores]
    df["grade"] = [s.grade if s is not None else None for s in scores]
    return df


def entry_pages(executor: QueryExecutor, date_range: DateRange = "30d", limit: int = 10,
                site_id: Optional[str] = None) -> pd.DataFrame:
    """Landing pages with an engagement quality label"""
    # Session metrics need visit:entry_page; event:page would be rejected
    df = breakdown(executor, ["visitors", "bounce_rate", "visit_duration"], ["visit:entry_page"],
                   date_range, limit, site_id)
    if df.empty:
        return df.assign(quality=pd.Series(dtype=str))
    df["quality"] = df.apply(lambda row: page_quality(row["bounce_rate"], row["visit_duration"]), axis=1)
    return df


def device_breakdown(executor: QueryExecutor, date_range: DateRange = "30d", limit: int = 10,
                     site_id: Optional[str] = None) -> pd.DataFrame:
    return breakdown(executor, ["visitors", "visits", "bounce_rate"], ["visit:device"],
                     date_range, limit, site_id)


def goal_conversions(executor: QueryExecutor, date_range: DateRange = "30d", limit: int = 10,
                     site_id: Optional[str] = None) -> pd.DataFrame:
    return breakdown(executor, ["visitors", "events", "conversion_rate"], ["event:goal"],
                     date_range, limit, site_id)


def period_ranges(days: int, today: Optional[date] = None) -> Tuple[List[str], List[str]]:
    """
    Current and previous windows of `days` days each, ending yesterday.

    Returns:
        (current, previous) as [start, end] ISO date pairs
    """
    if days < 1:
        raise ValueError("days must be at least 1")
    today = today or date.today()
    current_end = today - timedelta(days=1)
    current_start = current_end - timedelta(days=days - 1)
    previous_end = current_start - timedelta(days=1)
    previous_start = previous_end - timedelta(days=days - 1)
    return (
        [current_start.isoformat(), current_end.isoformat()],
        [previous_start.isoformat(), previous_end.isoformat()],
    )


def compare_periods(executor: QueryExecutor, current_range: DateRange, previous_range: DateRange,
                    metrics: Sequence[str] = COMPARE_METRICS,
                    site_id: Optional[str] = None) -> List[PeriodChange]:
    """
    Compare totals between two periods, one PeriodChange per metric.

    The two aggregate queries are independent and run concurrently.
    """
    metrics = list(metrics)
    with concurrent.futures.ThreadPoolExecutor(max_workers=2) as pool:
        current_future = pool.submit(aggregate, executor, metrics, current_range, site_id)
        previous_future = pool.submit(aggregate, executor, metrics, previous_range, site_id)
        current = current_future.result()
        previous = previous_future.result()

    return [compare_values(current[m], previous[m], metric=m) for m in metrics]


def comparison_frame(changes: List[PeriodChange]) -> pd.DataFrame:
    return pd.DataFrame([{
        "metric": c.metric,
        "current": c.current,
        "previous": c.previous,
        "change": c.change,
        "percent_change": round(c.percent_change, 1),
        "direction": c.direction,
        "significance": c.significance,
    } for c in changes], columns=["metric", "current", "previous", "change",
                                  "percent_change", "direction", "significance"])


def content_decay(executor: QueryExecutor, baseline_range: DateRange, recent_range: DateRange,
                  threshold: float = DEFAULT_DECAY_THRESHOLD, min_visitors: int = 10,
                  limit: int = 500, site_id: Optional[str] = None) -> pd.DataFrame:
    """
    Pages whose visitors dropped by at least `threshold` percent.

    Pages below `min_visitors` in the baseline are ignored, as are pages with
    no baseline traffic at all.
    """
    with concurrent.futures.ThreadPoolExecutor(max_workers=2) as pool:
        baseline_future = pool.submit(breakdown, executor, ["visitors"], ["event:page"],
                                      baseline_range, limit, site_id)
        recent_future = pool.submit(breakdown, executor, ["visitors"], ["event:page"],
                                    recent_range, limit, site_id)
        baseline_df = baseline_future.result()
        recent_df = recent_future.result()

    recent_visitors = dict(zip(recent_df["page"], recent_df["visitors"]))
    rows = []
    for page, visitors in zip(baseline_df["page"], baseline_df["visitors"]):
        if (visitors or 0) < min_visitors:
            continue
        result = measure_decay(visitors, recent_visitors.get(page, 0), threshold)
        if result is None:
            continue
        rows.append({
            "page": page,
            "baseline_visitors": result.baseline,
            "recent_visitors": result.recent,
            "drop_percent": round(result.drop_percent, 1),
            "severity": result.severity,
        })

    logger.info(f"Content decay: {len(rows)} of {len(baseline_df)} pages dropped {threshold:g}% or more")
    df = pd.DataFrame(rows, columns=["page", "baseline_visitors", "recent_visitors",
                                     "drop_percent", "severity"])
    return df.sort_values("drop_percent", ascending=False, ignore_index=True)
