"""Histogram and time-series summaries for visualization.

These summaries are derived from the dataset and schema only. Time-series
anomaly marks are an independent low-probability draw unless
``link_time_series_to_scores`` is enabled, in which case they follow the row
scores.
"""
import logging
from datetime import date, timedelta
from typing import List, Optional

import numpy as np

from anomaly_analyst.config import AnalysisConfig
from anomaly_analyst.exceptions import InsufficientDataError
from anomaly_analyst.models import (
    AnomalyResult, ColumnType, Dataset, DistributionBin, Schema, ScoreBin, TimeSeriesPoint,
)
from anomaly_analyst.schema_inference import parse_numeric

log = logging.getLogger(__name__)

PLACEHOLDER_BINS = 20
PLACEHOLDER_POINTS = 50
SPARSE_BIN_COUNT = 3
DENSE_BIN_SHARE = 0.3
RANDOM_ANOMALY_RATE = 0.05


def histogram(values: np.ndarray, bins: int = 10) -> List[DistributionBin]:
    """
    Equal-width histogram over [min, max].
    Bins are lower-inclusive/upper-exclusive except the last, which includes max.
    A constant input yields one bin holding every value.
    """
    if len(values) == 0:
        raise InsufficientDataError("Cannot build a histogram without valid numeric values.")

    total = len(values)
    lo, hi = float(values.min()), float(values.max())

    def flagged(count):
        return count < SPARSE_BIN_COUNT or count > total * DENSE_BIN_SHARE

    if hi == lo:
        log.info("Degenerate column (all values equal %s); using a single bin", lo)
        return [DistributionBin(name=f"{lo:.0f}-{hi:.0f}", value=total, is_anomaly=bool(flagged(total)))]

    width = (hi - lo) / bins
    # Clip so floating-point drift cannot push max past the last bin
    indices = np.clip(np.floor((values - lo) / width).astype(int), 0, bins - 1)
    counts = np.bincount(indices, minlength=bins)

    out = []
    for i, count in enumerate(counts):
        bin_min = lo + i * width
        bin_max = hi if i == bins - 1 else bin_min + width
        out.append(DistributionBin(name=f"{bin_min:.0f}-{bin_max:.0f}", value=int(count), is_anomaly=bool(flagged(count))))
    return out


def placeholder_distribution() -> List[DistributionBin]:
    # Deterministic bell shape; outer bins flagged
    centre = (PLACEHOLDER_BINS - 1) / 2
    return [
        DistributionBin(
            name=f"{i * 10}-{(i + 1) * 10}",
            value=int(round(5 + 45 * np.exp(-((i - centre) / 5) ** 2))),
            is_anomaly=i in (0, PLACEHOLDER_BINS - 1),
        )
        for i in range(PLACEHOLDER_BINS)
    ]


def build_distribution(dataset: Dataset, schema: Schema,
                       config: Optional[AnalysisConfig] = None) -> List[DistributionBin]:
    """Histogram of the first numeric column, or a placeholder when there is none."""
    config = config or AnalysisConfig()
    found = schema.first_of(ColumnType.NUMERIC)
    if found is None:
        return placeholder_distribution()

    index, _ = found
    values = parse_numeric(dataset.column(index)).dropna().to_numpy()
    return histogram(values, bins=config.histogram_bins)


def placeholder_time_series(rng: np.random.Generator, today: Optional[date] = None) -> List[TimeSeriesPoint]:
    today = today or date.today()
    return [
        TimeSeriesPoint(
            timestamp=(today - timedelta(days=PLACEHOLDER_POINTS - i)).isoformat(),
            value=float(np.sin(i * 0.2) * 50 + 100 + rng.uniform(0, 20)),
            is_anomaly=bool(rng.random() < RANDOM_ANOMALY_RATE),
        )
        for i in range(PLACEHOLDER_POINTS)
    ]


def build_time_series(dataset: Dataset, schema: Schema, rng: np.random.Generator,
                      config: Optional[AnalysisConfig] = None,
                      results: Optional[List[AnomalyResult]] = None) -> List[TimeSeriesPoint]:
    """
    Pairs the first datetime column with the first numeric column over the
    first rows of the dataset. Rows with an empty timestamp or an unparseable
    value are skipped. Falls back to a synthetic series when either column is
    missing.
    """
    config = config or AnalysisConfig()
    date_col = schema.first_of(ColumnType.DATETIME)
    numeric_col = schema.first_of(ColumnType.NUMERIC)
    if date_col is None or numeric_col is None:
        return placeholder_time_series(rng)

    linked = config.link_time_series_to_scores and results is not None
    by_row = {r.row_index: r for r in results} if linked else {}

    limit = min(dataset.row_count, config.max_time_series_points)
    values = parse_numeric([dataset.cell(i, numeric_col[0]) for i in range(limit)])

    points = []
    for i in range(limit):
        timestamp = dataset.cell(i, date_col[0])
        value = values.iloc[i]
        if not timestamp or np.isnan(value):
            continue
        if linked:
            result = by_row.get(i)
            is_anomaly = result is not None and result.is_anomalous(config.anomaly_threshold)
        else:
            is_anomaly = bool(rng.random() < RANDOM_ANOMALY_RATE)
        points.append(TimeSeriesPoint(timestamp=timestamp, value=float(value), is_anomaly=is_anomaly))
    return points


def build_score_distribution(results: List[AnomalyResult],
                             config: Optional[AnalysisConfig] = None) -> List[ScoreBin]:
    """
    Counts of scores in ten 0.1-wide bins; unscored rows are left out.
    A row counts as an anomaly by the same threshold the summary uses.
    """
    config = config or AnalysisConfig()
    counts = [0] * 10
    anomalies = [0] * 10
    for r in results:
        if not r.is_scored:
            continue
        i = min(9, int(np.floor(r.anomaly_score * 10)))
        counts[i] += 1
        if r.is_anomalous(config.anomaly_threshold):
            anomalies[i] += 1
    return [
        ScoreBin(range=f"{i / 10:.1f}-{(i + 1) / 10:.1f}", count=counts[i], anomalies=anomalies[i])
        for i in range(10)
    ]
