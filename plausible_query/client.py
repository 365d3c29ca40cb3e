"""
Query executor: the only component that talks to the Plausible API.

Every query goes through the same pipeline:
validate -> resolve config -> cache lookup -> POST -> check response -> cache store.
An invalid query never reaches the network or the cache.
"""
import json
import logging
import time
from typing import Any, Dict, Optional, Union

import requests
from pydantic import ValidationError

from .audit import AuditLog
from .cache import ResponseCache, make_cache_key
from .config import Settings
from .errors import (
    ConfigFailure,
    NetworkFailure,
    PlausibleQueryError,
    UpstreamFailure,
    ValidationFailure,
)
from .query_models import Query, QueryResponse
from .validator import validate_query

logger = logging.getLogger(__name__)

USER_AGENT = "plausible-query/0.1"
CONNECTIVITY_SUGGESTION = "Check your network connection and that the API URL is reachable"


def classify_upstream_error(status_code: int, body: str) -> UpstreamFailure:
    """
    Turn a non-2xx response into an UpstreamFailure with targeted guidance.

    The API's error bodies are free text, so classification is by substring.
    """
    text = body or ""
    details = {"status_code": status_code, "body": text[:2000]}

    if "Invalid filter" in text:
        return UpstreamFailure(
            f"Plausible rejected a filter: {text.strip()[:300]}",
            code="INVALID_FILTER",
            suggestion=('Filters use ["operator", "dimension", ["value", ...]], e.g. '
                        '["contains", "event:page", ["/blog/"]]; logical filters use '
                        '["and", [filter, ...]] or ["not", filter]'),
            details=details,
            status_code=status_code,
        )
    if "Invalid request body" in text:
        return UpstreamFailure(
            f"Plausible rejected the request body: {text.strip()[:300]}",
            code="INVALID_REQUEST_BODY",
            suggestion='Pagination must be an object: "pagination": {"limit": 100, "offset": 0}',
            details=details,
            status_code=status_code,
        )
    if status_code == 401 or "Unauthorized" in text:
        return UpstreamFailure(
            "Plausible rejected the API key",
            code="UNAUTHORIZED",
            suggestion="Check PLAUSIBLE_API_KEY is a Stats API key with access to this site",
            details=details,
            status_code=status_code,
        )
    return UpstreamFailure(
        f"Plausible API returned HTTP {status_code}",
        code="UPSTREAM_ERROR",
        suggestion="Inspect the response body in details; for HTTP 429 wait before retrying",
        details=details,
        status_code=status_code,
    )


class QueryExecutor:
    """Run validated queries against the Plausible Stats API"""

    def __init__(self, settings: Settings, cache: Optional[ResponseCache] = None,
                 audit: Optional[AuditLog] = None, session: Optional[requests.Session] = None):
        self.settings = settings
        self.cache = cache
        self.audit = audit or AuditLog.disabled()
        self.session = session or requests.Session()

    def prepare(self, params: Union[Query, Dict[str, Any], str]) -> Query:
        """Validate params and fill in the default site id"""
        try:
            query = validate_query(params)
        except ValidationFailure as failure:
            self.audit.validation_failure(failure)
            raise

        try:
            site_id = self.settings.require_site_id(query.site_id)
        except ConfigFailure as failure:
            self.audit.error(failure)
            raise
        if site_id != query.site_id:
            query = query.model_copy(update={"site_id": site_id})
        return query

    def execute_raw(self, params: Union[Query, Dict[str, Any], str], no_cache: bool = False,
                    timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Execute a query and return the response JSON exactly as received or cached.

        Args:
            params: Query model, payload dict, or JSON string
            no_cache: Skip both the cache lookup and the cache store
            timeout: Seconds to wait for the API (defaults to settings.timeout)

        Returns:
            dict: The response payload

        Raises:
            ValidationFailure, ConfigFailure, NetworkFailure, UpstreamFailure
        """
        query = self.prepare(params)
        if timeout is None:
            timeout = self.settings.timeout
        try:
            api_key = self.settings.require_api_key()
            if not timeout > 0:
                raise ConfigFailure(
                    f"Timeout must be a positive number of seconds, got {timeout!r}",
                    code="INVALID_SETTING",
                    suggestion="Pass --timeout 30 or set PLAUSIBLE_TIMEOUT=30",
                    details={"timeout": timeout},
                )
        except ConfigFailure as failure:
            self.audit.error(failure)
            raise

        payload = query.to_payload()
        query_hash = make_cache_key(payload)
        use_cache = self.cache is not None and not no_cache

        if use_cache:
            cached = self.cache.get(payload)
            if cached is not None:
                logger.debug(f"Cache hit for query {query_hash[:12]}")
                self.audit.cache_hit(query_hash, query.site_id)
                return cached

        try:
            data = self._dispatch(payload, api_key, query_hash, query.site_id, timeout)
        except PlausibleQueryError as failure:
            self.audit.error(failure)
            raise

        if use_cache:
            self.cache.set(payload, data)
        return data

    def execute(self, params: Union[Query, Dict[str, Any], str], no_cache: bool = False,
                timeout: Optional[float] = None) -> QueryResponse:
        """Execute a query and return the parsed response"""
        data = self.execute_raw(params, no_cache=no_cache, timeout=timeout)
        return QueryResponse.model_validate(data)

    def _dispatch(self, payload: Dict[str, Any], api_key: str, query_hash: str,
                  site_id: Optional[str], timeout: float) -> Dict[str, Any]:
        url = self.settings.api_url
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

        self.audit.request(query_hash, site_id, url)
        logger.info(f"POST {url} site={site_id} metrics={','.join(payload['metrics'])} "
                    f"dimensions={','.join(payload.get('dimensions', [])) or '-'}")
        start_time = time.time()

        try:
            response = self.session.post(url, data=json.dumps(payload), headers=headers, timeout=timeout)
        except requests.exceptions.Timeout as e:
            raise NetworkFailure(
                f"Request to Plausible timed out after {timeout:g} seconds",
                code="TIMEOUT",
                suggestion=f"{CONNECTIVITY_SUGGESTION}, or raise the timeout (currently {timeout:g}s)",
                details={"url": url, "timeout": timeout, "cause": str(e)},
            ) from e
        except requests.exceptions.RequestException as e:
            raise NetworkFailure(
                f"Could not reach Plausible API: {e}",
                code="NETWORK_ERROR",
                suggestion=CONNECTIVITY_SUGGESTION,
                details={"url": url, "cause": str(e), "cause_type": type(e).__name__},
            ) from e

        elapsed_ms = (time.time() - start_time) * 1000
        logger.debug(f"Plausible responded HTTP {response.status_code} in {elapsed_ms:.0f}ms")

        if not 200 <= response.status_code < 300:
            raise classify_upstream_error(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamFailure(
                "Plausible returned a response that is not JSON",
                code="BAD_UPSTREAM_RESPONSE",
                details={"status_code": response.status_code, "body": (response.text or "")[:2000]},
                status_code=response.status_code,
            ) from e

        try:
            QueryResponse.model_validate(data)
        except ValidationError as e:
            raise UpstreamFailure(
                "Plausible returned a response in an unexpected shape",
                code="BAD_UPSTREAM_RESPONSE",
                details={"status_code": response.status_code, "errors": [err["msg"] for err in e.errors()]},
                status_code=response.status_code,
            ) from e
        return data
