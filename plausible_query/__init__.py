"""
Plausible Analytics query client: local validation, response caching,
an audited executor and SEO helper reports.
"""
from .audit import AuditLog
from .cache import ResponseCache, make_cache_key
from .client import QueryExecutor, classify_upstream_error
from .config import Settings, load_settings
from .errors import (
    ConfigFailure,
    NetworkFailure,
    PlausibleQueryError,
    UpstreamFailure,
    ValidationFailure,
    ValidationIssue,
)
from .query_models import Query, QueryResponse
from .validator import validate_query

__version__ = "0.1.0"

__all__ = [
    "AuditLog",
    "ConfigFailure",
    "NetworkFailure",
    "PlausibleQueryError",
    "Query",
    "QueryExecutor",
    "QueryResponse",
    "ResponseCache",
    "Settings",
    "UpstreamFailure",
    "ValidationFailure",
    "ValidationIssue",
    "classify_upstream_error",
    "load_settings",
    "make_cache_key",
    "validate_query",
]
