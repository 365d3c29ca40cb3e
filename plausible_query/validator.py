"""
Local validation of Plausible queries.

The Stats API answers several malformed queries with an opaque 400 (or,
worse, with silently wrong results). The checks below catch those cases
before any network call:

- session metrics (bounce_rate, visit_duration, views_per_visit) mixed
  with event dimensions (event:page, event:goal, event:hostname)
- dimensions given without an explicit pagination object
- wildcard characters inside an exact-match ``is`` filter

Structural problems are reported first, all together, followed by the
metric/dimension mix check, which only needs the two name lists. When the
query is well formed every rule check runs and all issues are reported;
the first one found decides the failure's code, message and suggestion.
"""
import json
import logging
from typing import Any, Dict, List, Union

from pydantic import ValidationError

from .errors import ValidationFailure, ValidationIssue
from .query_models import (
    EVENT_DIMENSIONS,
    SESSION_METRICS,
    Query,
    filter_to_wire,
    iter_leaf_filters,
)

logger = logging.getLogger(__name__)

WILDCARD_CHARS = ("*", "%")
DEFAULT_PAGINATION = {"limit": 100, "offset": 0}


def _shape_issues(error: ValidationError) -> List[ValidationIssue]:
    issues = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "query"
        issues.append(ValidationIssue(
            code="INVALID_QUERY_SHAPE",
            message=f"{location}: {item.get('msg')}",
            details={"field": location, "input": item.get("input")},
        ))
    return issues


def _mix_issues(all_metrics, all_dimensions) -> List[ValidationIssue]:
    metrics = [m for m in all_metrics if m in SESSION_METRICS]
    dimensions = [d for d in all_dimensions if d in EVENT_DIMENSIONS]
    if not metrics or not dimensions:
        return []

    if "event:page" in dimensions:
        suggestion = "Use 'visit:entry_page' instead of 'event:page' for session metrics"
    else:
        suggestion = ("Use a visit dimension such as 'visit:entry_page', or drop "
                      f"{', '.join(metrics)} from the metrics")
    return [ValidationIssue(
        code="INVALID_METRIC_DIMENSION_MIX",
        message=(f"Session metrics {', '.join(metrics)} cannot be combined with "
                 f"event dimensions {', '.join(dimensions)}"),
        suggestion=suggestion,
        details={"metrics": metrics, "dimensions": dimensions},
    )]


def _string_list(value) -> List[str]:
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return value
    return []


def check_metric_dimension_mix(query: Query) -> List[ValidationIssue]:
    """Session metrics cannot be grouped by event dimensions"""
    return _mix_issues(query.metrics, query.dimensions)


def check_pagination(query: Query) -> List[ValidationIssue]:
    """Dimensional queries must carry an explicit pagination object"""
    if not query.dimensions or query.pagination is not None:
        return []
    return [ValidationIssue(
        code="MISSING_PAGINATION",
        message="Queries with dimensions require a pagination object",
        suggestion=f'Add "pagination": {json.dumps(DEFAULT_PAGINATION)}',
        details={"dimensions": list(query.dimensions)},
    )]


def check_wildcard_filters(query: Query) -> List[ValidationIssue]:
    """'is' is exact match only; wildcards belong in contains/matches filters"""
    issues = []
    for leaf in iter_leaf_filters(query.filters):
        if leaf.operator != "is":
            continue
        offending = [v for v in leaf.values
                     if isinstance(v, str) and any(ch in v for ch in WILDCARD_CHARS)]
        if not offending:
            continue
        stripped = []
        for value in leaf.values:
            if isinstance(value, str):
                for ch in WILDCARD_CHARS:
                    value = value.replace(ch, "")
            stripped.append(value)
        corrected = leaf.model_copy(update={"operator": "contains", "values": stripped})
        issues.append(ValidationIssue(
            code="WILDCARD_IN_IS_FILTER",
            message=(f"Filter on {leaf.dimension} uses 'is' with wildcard value(s) "
                     f"{', '.join(offending)}; 'is' only matches exactly"),
            suggestion=f"Use {json.dumps(filter_to_wire(corrected))}",
            details={"filter": filter_to_wire(leaf), "values": offending},
        ))
    return issues


RULE_CHECKS = (check_metric_dimension_mix, check_pagination, check_wildcard_filters)


def validate_query(candidate: Union[Query, Dict[str, Any], str]) -> Query:
    """
    Validate a query and return it as a Query model.

    Args:
        candidate: Query model, payload dict, or JSON string

    Returns:
        Query: The validated query

    Raises:
        ValidationFailure: With every issue found
    """
    if isinstance(candidate, str):
        try:
            candidate = json.loads(candidate)
        except ValueError as e:
            raise ValidationFailure([ValidationIssue(
                code="INVALID_JSON",
                message=f"Query is not valid JSON: {e}",
                suggestion='Pass a JSON object such as {"metrics": ["visitors"], "date_range": "7d"}',
            )])

    if isinstance(candidate, Query):
        query = candidate
    else:
        if not isinstance(candidate, dict):
            raise ValidationFailure([ValidationIssue(
                code="INVALID_QUERY_SHAPE",
                message=f"Query must be a JSON object, got {type(candidate).__name__}",
            )])
        try:
            query = Query.model_validate(candidate)
        except ValidationError as e:
            issues = _shape_issues(e)
            logger.debug(f"Query failed structural validation with {len(issues)} issue(s)")
            # The mix rule only needs the two name lists, so it still applies
            issues.extend(_mix_issues(_string_list(candidate.get("metrics")),
                                      _string_list(candidate.get("dimensions"))))
            raise ValidationFailure(issues)

    issues: List[ValidationIssue] = []
    for check in RULE_CHECKS:
        issues.extend(check(query))

    if issues:
        logger.debug(f"Query rejected: {[issue.code for issue in issues]}")
        raise ValidationFailure(issues)
    return query
