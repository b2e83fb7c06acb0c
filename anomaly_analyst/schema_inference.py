"""Column type inference over raw CSV strings.

Rules are evaluated in strict precedence order and the first match wins:
numeric, datetime, boolean, id, categorical, then text as the residual bucket.
``geo`` is part of the type vocabulary but is never inferred here.
"""
import logging
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from anomaly_analyst.config import AnalysisConfig
from anomaly_analyst.models import ColumnType, Schema, SchemaColumn

log = logging.getLogger(__name__)

DATE_PATTERNS = [
    r'^\d{4}-\d{2}-\d{2}',     # YYYY-MM-DD...
    r'^\d{2}/\d{2}/\d{4}',     # DD/MM/YYYY or MM/DD/YYYY
    r'^\d{1,2}-\w{3}-\d{4}',   # D-MMM-YYYY
]
BOOLEAN_VALUES = ['true', 'false', '0', '1', 'yes', 'no']


def non_null(values: Sequence[str]) -> pd.Series:
    """Drop empty and whitespace-only entries."""
    series = pd.Series(list(values), dtype=object).fillna('').astype(str)
    return series[series.str.strip() != ''].reset_index(drop=True)


def parse_numeric(values: Sequence[str]) -> pd.Series:
    """Parse to float; anything unparseable or non-finite becomes NaN."""
    parsed = pd.to_numeric(pd.Series(list(values), dtype=object), errors='coerce').astype(float)
    return parsed.where(np.isfinite(parsed))


def infer_column_type(values: Sequence[str], config: Optional[AnalysisConfig] = None) -> ColumnType:
    """Classify a column from its raw string values (empties included)."""
    config = config or AnalysisConfig()
    sample = non_null(values)
    if sample.empty:
        return ColumnType.TEXT

    n = len(sample)

    numeric_ratio = parse_numeric(sample).notna().sum() / n
    if numeric_ratio >= config.type_match_ratio:
        return ColumnType.NUMERIC

    date_ratio = sample.str.match('|'.join(f'(?:{p})' for p in DATE_PATTERNS)).sum() / n
    if date_ratio >= config.type_match_ratio:
        return ColumnType.DATETIME

    bool_ratio = sample.str.lower().isin(BOOLEAN_VALUES).sum() / n
    if bool_ratio >= config.type_match_ratio:
        return ColumnType.BOOLEAN

    unique_ratio = sample.nunique() / n
    if unique_ratio > config.id_unique_ratio:
        return ColumnType.ID
    if unique_ratio < config.categorical_unique_ratio:
        return ColumnType.CATEGORICAL

    return ColumnType.TEXT


def infer_schema(headers: Sequence[str], rows: Sequence[Sequence[str]],
                 config: Optional[AnalysisConfig] = None) -> Schema:
    """
    Builds the Schema for a tokenized dataset.
    Each column records its inferred type, null count, distinct non-null count
    and up to ``config.sample_value_limit`` sample values in first-seen order.
    """
    config = config or AnalysisConfig()
    columns: List[SchemaColumn] = []

    for i, name in enumerate(headers):
        values = [row[i] if i < len(row) else '' for row in rows]
        present = non_null(values)
        column = SchemaColumn(
            name=name,
            type=infer_column_type(values, config),
            null_count=len(values) - len(present),
            unique_count=int(present.nunique()),
            sample_values=tuple(present.head(config.sample_value_limit).tolist()),
        )
        log.debug("Column '%s' inferred as %s", name, column.type.value)
        columns.append(column)

    return Schema(columns=tuple(columns), row_count=len(rows))
