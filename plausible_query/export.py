"""
Tabular output: turn query responses into DataFrames and save them to disk
"""
import json
import logging
import os
from datetime import datetime
from typing import Optional

import pandas as pd

from .query_models import Query, QueryResponse

logger = logging.getLogger(__name__)


def column_name(dimension: str) -> str:
    """'event:page' -> 'page', 'visit:entry_page' -> 'entry_page'"""
    prefix, _, name = dimension.partition(":")
    if prefix in ("event", "visit") and name:
        return name
    return dimension


def response_to_dataframe(response: QueryResponse, query: Query) -> pd.DataFrame:
    """One column per dimension, then one per metric"""
    dimensions = [column_name(d) for d in query.dimensions]
    metrics = list(query.metrics)
    return pd.DataFrame(response.records(dimensions, metrics), columns=dimensions + metrics)


def _params_frame(query: Optional[Query]) -> pd.DataFrame:
    params = {"generated_at": [datetime.now().strftime('%Y-%m-%d %H:%M:%S')]}
    if query is not None:
        payload = query.to_payload()
        for key in ("site_id", "metrics", "dimensions", "date_range", "filters", "order_by", "pagination"):
            if key in payload:
                value = payload[key]
                params[key] = [value if isinstance(value, str) else json.dumps(value)]
    return pd.DataFrame(params)


def save_dataframe(df: pd.DataFrame, path: str, query: Optional[Query] = None) -> str:
    """
    Save a DataFrame based on the file extension.

    .csv and .json write the data only; .xlsx writes a 'data' sheet and a
    'params' sheet describing the query.

    Returns:
        str: The path written
    """
    extension = os.path.splitext(path)[1].lower()
    if extension == ".csv":
        df.to_csv(path, index=False)
    elif extension == ".json":
        df.to_json(path, orient="records", indent=2)
    elif extension == ".xlsx":
        with pd.ExcelWriter(path) as writer:
            df.to_excel(writer, sheet_name='data', index=False)
            _params_frame(query).to_excel(writer, sheet_name='params', index=False)
    else:
        raise ValueError(f"Unsupported output format '{extension}', use .csv, .json or .xlsx")

    logger.info(f"Saved {len(df)} rows to {path}")
    return path
