"""
Query and response models for the Plausible Stats API v2
"""
import json
import re
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

METRICS = (
    "visitors",
    "visits",
    "pageviews",
    "views_per_visit",
    "bounce_rate",
    "visit_duration",
    "events",
    "scroll_depth",
    "time_on_page",
    "percentage",
    "conversion_rate",
    "group_conversion_rate",
    "average_revenue",
    "total_revenue",
)

DATE_RANGE_TOKENS = ("day", "7d", "28d", "30d", "91d", "month", "6mo", "12mo", "year", "all")

# Session metrics are computed from the sessions table and cannot be
# broken down by dimensions that live on individual events.
SESSION_METRICS = ("bounce_rate", "visit_duration", "views_per_visit")
EVENT_DIMENSIONS = ("event:page", "event:goal", "event:hostname")

FILTER_OPERATORS = (
    "is",
    "is_not",
    "contains",
    "contains_not",
    "matches",
    "matches_not",
    "matches_wildcard",
    "matches_wildcard_not",
)
LOGICAL_OPERATORS = ("and", "or", "not")

Metric = Literal[METRICS]
DateRangeToken = Literal[DATE_RANGE_TOKENS]
FilterOperator = Literal[FILTER_OPERATORS]
SortDirection = Literal["asc", "desc"]

_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")


def canonical_json(payload: Any) -> str:
    """Deterministic serialization used for hashing"""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


class LeafFilter(BaseModel):
    """A single condition: (operator, dimension, values)"""
    model_config = ConfigDict(extra="forbid")

    kind: Literal["leaf"] = "leaf"
    operator: FilterOperator
    dimension: str = Field(..., min_length=1)
    values: List[Union[str, int]] = Field(..., min_length=1)
    modifiers: Optional[Dict[str, Any]] = None


class LogicalFilter(BaseModel):
    """and/or/not node wrapping nested filters"""
    model_config = ConfigDict(extra="forbid")

    kind: Literal["logical"] = "logical"
    op: Literal[LOGICAL_OPERATORS]
    children: List["Filter"] = Field(..., min_length=1)

    @field_validator("children", mode="before")
    @classmethod
    def _parse_children(cls, value):
        if isinstance(value, (list, tuple)):
            return [parse_filter(child) for child in value]
        return value

    @model_validator(mode="after")
    def _check_arity(self):
        if self.op == "not" and len(self.children) != 1:
            raise ValueError("'not' takes exactly one filter")
        return self


Filter = Annotated[Union[LeafFilter, LogicalFilter], Field(discriminator="kind")]
LogicalFilter.model_rebuild()


def _is_single_filter(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and bool(value) and isinstance(value[0], str)


def parse_filter(raw: Any):
    """
    Convert the API's list syntax into the tagged form the models accept.

    ["is", "event:page", ["/blog"]]      -> leaf
    ["and", [filter, filter, ...]]       -> logical
    ["not", filter]                      -> logical with one child

    Model instances and already-tagged dicts pass through unchanged.
    """
    if isinstance(raw, (LeafFilter, LogicalFilter)):
        return raw
    if isinstance(raw, dict):
        if "kind" in raw:
            return raw
        if "op" in raw:
            return {"kind": "logical", **raw}
        return {"kind": "leaf", **raw}
    if not isinstance(raw, (list, tuple)) or not raw:
        raise ValueError(f"filter must be a non-empty list, got {raw!r}")

    head = raw[0]
    if head in LOGICAL_OPERATORS:
        if len(raw) != 2:
            raise ValueError(f"'{head}' filter must be [\"{head}\", <filters>]")
        nested = raw[1]
        if head == "not" and _is_single_filter(nested):
            children = [nested]
        elif isinstance(nested, (list, tuple)):
            children = list(nested)
        else:
            raise ValueError(f"'{head}' filter expects a list of filters, got {nested!r}")
        return {"kind": "logical", "op": head, "children": [parse_filter(child) for child in children]}

    if len(raw) not in (3, 4):
        raise ValueError(f"filter must be [operator, dimension, values], got {list(raw)!r}")
    leaf = {"kind": "leaf", "operator": head, "dimension": raw[1], "values": raw[2]}
    if len(raw) == 4:
        leaf["modifiers"] = raw[3]
    return leaf


def filter_to_wire(node) -> list:
    """Inverse of parse_filter"""
    if isinstance(node, LeafFilter):
        wire = [node.operator, node.dimension, list(node.values)]
        if node.modifiers:
            wire.append(dict(node.modifiers))
        return wire
    if node.op == "not":
        return ["not", filter_to_wire(node.children[0])]
    return [node.op, [filter_to_wire(child) for child in node.children]]


def iter_leaf_filters(filters):
    """Depth-first walk yielding every leaf in a filter list"""
    for node in filters:
        if isinstance(node, LeafFilter):
            yield node
        else:
            yield from iter_leaf_filters(node.children)


class Pagination(BaseModel):
    model_config = ConfigDict(extra="forbid")

    limit: int = Field(..., ge=1, le=1000)
    offset: int = Field(0, ge=0)


class Include(BaseModel):
    """Optional extras the API adds to the response meta"""
    model_config = ConfigDict(extra="forbid")

    imports: Optional[bool] = None
    time_labels: Optional[bool] = None
    total_rows: Optional[bool] = None


class Query(BaseModel):
    """A Stats API v2 query"""
    model_config = ConfigDict(extra="forbid")

    site_id: Optional[str] = None
    metrics: List[Metric] = Field(..., min_length=1)
    date_range: Union[DateRangeToken, Tuple[str, str]]
    dimensions: List[Annotated[str, Field(min_length=1)]] = Field(default_factory=list)
    filters: List[Filter] = Field(default_factory=list)
    order_by: List[Tuple[str, SortDirection]] = Field(default_factory=list)
    pagination: Optional[Pagination] = None
    include: Optional[Include] = None

    @field_validator("filters", mode="before")
    @classmethod
    def _parse_filters(cls, value):
        if isinstance(value, (list, tuple)):
            return [parse_filter(item) for item in value]
        return value

    @field_validator("date_range")
    @classmethod
    def _check_dates(cls, value):
        if isinstance(value, str):
            return value
        start, end = value
        parsed = []
        for item in (start, end):
            if not _DATE_PREFIX.match(item):
                raise ValueError(f"date {item!r} must start with YYYY-MM-DD")
            try:
                parsed.append(datetime.strptime(item[:10], "%Y-%m-%d"))
            except ValueError:
                raise ValueError(f"date {item!r} is not a valid calendar date")
        if parsed[0] > parsed[1]:
            raise ValueError(f"start date {start} is after end date {end}")
        return value

    def to_payload(self) -> Dict[str, Any]:
        """Wire JSON object sent to the API"""
        payload: Dict[str, Any] = {
            "metrics": list(self.metrics),
            "date_range": self.date_range if isinstance(self.date_range, str) else list(self.date_range),
        }
        if self.site_id:
            payload["site_id"] = self.site_id
        if self.dimensions:
            payload["dimensions"] = list(self.dimensions)
        if self.filters:
            payload["filters"] = [filter_to_wire(node) for node in self.filters]
        if self.order_by:
            payload["order_by"] = [[field, direction] for field, direction in self.order_by]
        if self.pagination is not None:
            payload["pagination"] = self.pagination.model_dump()
        if self.include is not None:
            include = self.include.model_dump(exclude_none=True)
            if include:
                payload["include"] = include
        return payload

    def normalized(self) -> str:
        return canonical_json(self.to_payload())


class ResultRow(BaseModel):
    model_config = ConfigDict(extra="allow")

    dimensions: Optional[List[Any]] = None
    metrics: List[Optional[Union[int, float]]]


class ResponseMeta(BaseModel):
    model_config = ConfigDict(extra="allow")

    imports_included: Optional[bool] = None
    imports_skip_reason: Optional[str] = None
    imports_warning: Optional[str] = None
    time_labels: Optional[List[str]] = None
    total_rows: Optional[int] = None


class QueryResponse(BaseModel):
    """Parsed body of a successful query"""
    model_config = ConfigDict(extra="allow")

    results: List[ResultRow]
    meta: Optional[ResponseMeta] = None
    query: Optional[Dict[str, Any]] = None

    def records(self, dimensions: List[str], metrics: List[str]) -> List[Dict[str, Any]]:
        """Rows as dicts keyed by dimension and metric name"""
        records = []
        for row in self.results:
            record = {}
            for name, value in zip(dimensions, row.dimensions or []):
                record[name] = value
            for name, value in zip(metrics, row.metrics):
                record[name] = value
            records.append(record)
        return records
