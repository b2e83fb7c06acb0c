import numpy as np
from sklearn.metrics import accuracy_score, precision_score, recall_score, f1_score, roc_auc_score
from typing import List, Optional, Sequence
from anomaly_analyst.config import AnalysisConfig
from anomaly_analyst.exceptions import AnalysisError, InsufficientDataError
from anomaly_analyst.models import AnomalyResult, DataQualityReport, Dataset, DispersionMetrics, EvaluationMetrics, Schema

TRUTHY_LABELS = {'true', '1', 'yes', 'y', 'anomaly', 'anomalous'}

# Ranges used when no ground truth exists; results are flagged synthetic
SYNTHETIC_RANGES = {
    'accuracy': (0.92, 0.97),
    'precision': (0.85, 0.95),
    'recall': (0.80, 0.95),
    'f1_score': (0.82, 0.92),
    'roc_auc': (0.90, 0.98),
}


def compute_dispersion(scores: Sequence[Optional[float]]) -> DispersionMetrics:
    """
    Dispersion of anomaly scores.
    Variance is the population variance. Quartiles use nearest-rank indexing
    on the sorted scores (index = floor(n * p)) without interpolation.
    Unscored entries (None) are ignored.
    """
    values = np.sort(np.array([s for s in scores if s is not None], dtype=float))
    n = len(values)
    if n == 0:
        raise InsufficientDataError("Cannot compute score dispersion: no scored rows.")

    mean = float(values.mean())
    variance = float(((values - mean) ** 2).sum() / n)
    q1, q2, q3 = (float(values[int(np.floor(n * p))]) for p in (0.25, 0.5, 0.75))

    return DispersionMetrics(
        mean=mean,
        variance=variance,
        std_dev=float(np.sqrt(variance)),
        q1=q1,
        q2=q2,
        q3=q3,
        iqr=q3 - q1,
    )


def labels_from_column(dataset: Dataset, column: str) -> List[bool]:
    """Reads ground-truth anomaly labels from a dataset column."""
    if column not in dataset.headers:
        raise AnalysisError(f"Label column '{column}' not found in dataset headers.")
    index = dataset.headers.index(column)
    return [v.strip().lower() in TRUTHY_LABELS for v in dataset.column(index)]


def synthetic_metrics(rng: np.random.Generator) -> EvaluationMetrics:
    """Plausible-looking placeholder metrics. Never present these as verified."""
    drawn = {name: float(rng.uniform(lo, hi)) for name, (lo, hi) in SYNTHETIC_RANGES.items()}
    return EvaluationMetrics(is_synthetic=True, **drawn)


def evaluate(results: List[AnomalyResult], labels: Optional[Sequence[bool]] = None,
             config: Optional[AnalysisConfig] = None,
             rng: Optional[np.random.Generator] = None) -> EvaluationMetrics:
    """
    Global evaluation metrics for a scored run.
    With labels (indexed by row), a row is predicted anomalous when its score
    exceeds the anomaly threshold; unscored rows are excluded. ROC-AUC is only
    reported when both classes are present. Without labels the metrics are
    synthesized and flagged ``is_synthetic``.
    """
    config = config or AnalysisConfig()
    if labels is None:
        return synthetic_metrics(rng if rng is not None else np.random.default_rng(config.random_seed))

    scored = [r for r in results if r.is_scored and r.row_index < len(labels)]
    if not scored:
        raise InsufficientDataError("No scored rows with labels available for evaluation.")

    y_true = [bool(labels[r.row_index]) for r in scored]
    y_score = [r.anomaly_score for r in scored]
    y_pred = [s > config.anomaly_threshold for s in y_score]

    roc_auc = None
    if len(set(y_true)) == 2:
        roc_auc = float(roc_auc_score(y_true, y_score))

    return EvaluationMetrics(
        is_synthetic=False,
        accuracy=float(accuracy_score(y_true, y_pred)),
        precision=float(precision_score(y_true, y_pred, zero_division=0)),
        recall=float(recall_score(y_true, y_pred, zero_division=0)),
        f1_score=float(f1_score(y_true, y_pred, zero_division=0)),
        roc_auc=roc_auc,
    )


def compute_data_quality(schema: Schema) -> DataQualityReport:
    """Completeness and cardinality overview of the inferred schema."""
    if schema.row_count == 0 or not schema.columns:
        raise InsufficientDataError("Cannot assess data quality of an empty dataset.")

    rows = schema.row_count
    columns = [{
        'name': col.name,
        'type': col.type.value,
        'completeness': (rows - col.null_count) / rows * 100,
        'cardinality': col.unique_count / rows * 100,
        'nullCount': col.null_count,
        'uniqueCount': col.unique_count,
    } for col in schema.columns]

    overall_completeness = float(np.mean([c['completeness'] for c in columns]))
    null_percentage = sum(c['nullCount'] for c in columns) / (rows * len(columns)) * 100
    average_cardinality = float(np.mean([c['cardinality'] for c in columns]))

    issues = []
    if null_percentage > 5:
        issues.append(f"{null_percentage:.1f}% missing values across dataset")
    low_complete = [c for c in columns if c['completeness'] < 90]
    if low_complete:
        issues.append(f"{len(low_complete)} column(s) with <90% completeness")
    high_cardinality = [c for c in columns if c['cardinality'] > 95]
    if high_cardinality:
        issues.append(f"{len(high_cardinality)} column(s) with very high cardinality")
    if not issues:
        issues.append("Excellent data quality overall")

    return DataQualityReport(
        overall_completeness=overall_completeness,
        null_percentage=null_percentage,
        average_cardinality=average_cardinality,
        columns=columns,
        issues=issues,
    )
