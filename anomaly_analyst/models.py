"""Data contracts produced by the analysis pipeline.

Every type exposes ``to_dict()`` returning the camelCase field names consumed by
the reporting layer, so ``json.dumps(result.to_dict())`` is the wire format.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ColumnType(str, Enum):
    NUMERIC = "numeric"
    CATEGORICAL = "categorical"
    DATETIME = "datetime"
    BOOLEAN = "boolean"
    ID = "id"
    TEXT = "text"
    GEO = "geo"  # reserved, never inferred


class StepAction(str, Enum):
    NORMALIZE = "normalize"
    IMPUTE = "impute"
    ENCODE = "encode"
    EXTRACT = "extract"


@dataclass(frozen=True)
class Dataset:
    """Tokenized CSV: a header row plus data rows of raw strings."""
    headers: Tuple[str, ...]
    rows: Tuple[Tuple[str, ...], ...]

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def cell(self, row_index: int, column_index: int) -> str:
        # Short rows read as empty strings for missing trailing fields
        row = self.rows[row_index]
        return row[column_index] if column_index < len(row) else ""

    def column(self, column_index: int) -> List[str]:
        return [self.cell(i, column_index) for i in range(len(self.rows))]

    def record(self, row_index: int) -> Dict[str, str]:
        return {h: self.cell(row_index, i) for i, h in enumerate(self.headers)}


@dataclass(frozen=True)
class SchemaColumn:
    name: str
    type: ColumnType
    null_count: int
    unique_count: int
    sample_values: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "nullCount": self.null_count,
            "uniqueCount": self.unique_count,
            "sampleValues": list(self.sample_values),
        }


@dataclass(frozen=True)
class Schema:
    columns: Tuple[SchemaColumn, ...]
    row_count: int

    def first_of(self, column_type: ColumnType) -> Optional[Tuple[int, SchemaColumn]]:
        """Return ``(index, column)`` of the first column of the given type."""
        for i, col in enumerate(self.columns):
            if col.type == column_type:
                return i, col
        return None

    def of_type(self, column_type: ColumnType) -> List[SchemaColumn]:
        return [c for c in self.columns if c.type == column_type]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columns": [c.to_dict() for c in self.columns],
            "rowCount": self.row_count,
        }


@dataclass(frozen=True)
class PreprocessingStep:
    column: str
    action: StepAction
    details: str

    def to_dict(self) -> Dict[str, Any]:
        return {"column": self.column, "action": self.action.value, "details": self.details}


@dataclass
class ModelResult:
    name: str
    params: Dict[str, Any] = field(default_factory=dict)
    feature_importance: Dict[str, float] = field(default_factory=dict)
    training_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "params": dict(self.params),
            "featureImportance": dict(self.feature_importance),
            "trainingTime": self.training_time,
        }


@dataclass(frozen=True)
class Explanation:
    title: str
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "description": self.description}


@dataclass(frozen=True)
class ModelVote:
    model: str
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return {"model": self.model, "score": self.score}


@dataclass
class AnomalyResult:
    row_index: int
    raw: Dict[str, str]
    # None marks an unscored row; never read it as 0
    anomaly_score: Optional[float]
    flags: List[str] = field(default_factory=list)
    explanations: List[Explanation] = field(default_factory=list)
    model_votes: List[ModelVote] = field(default_factory=list)

    @property
    def is_scored(self) -> bool:
        return self.anomaly_score is not None

    def is_anomalous(self, threshold: float) -> bool:
        return self.anomaly_score is not None and self.anomaly_score > threshold

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rowIndex": self.row_index,
            "raw": dict(self.raw),
            "anomalyScore": self.anomaly_score,
            "flags": list(self.flags),
            "explanations": [e.to_dict() for e in self.explanations],
            "modelVotes": [v.to_dict() for v in self.model_votes],
        }


@dataclass
class EvaluationMetrics:
    is_synthetic: bool
    accuracy: Optional[float] = None
    precision: Optional[float] = None
    recall: Optional[float] = None
    f1_score: Optional[float] = None
    roc_auc: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for key, value in (
            ("accuracy", self.accuracy),
            ("precision", self.precision),
            ("recall", self.recall),
            ("f1Score", self.f1_score),
            ("rocAuc", self.roc_auc),
        ):
            if value is not None:
                out[key] = value
        out["isSynthetic"] = self.is_synthetic
        return out


@dataclass(frozen=True)
class DispersionMetrics:
    mean: float
    variance: float
    std_dev: float
    q1: float
    q2: float
    q3: float
    iqr: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mean": self.mean,
            "variance": self.variance,
            "stdDev": self.std_dev,
            "q1": self.q1,
            "q2": self.q2,
            "q3": self.q3,
            "iqr": self.iqr,
        }


@dataclass
class DataQualityReport:
    overall_completeness: float
    null_percentage: float
    average_cardinality: float
    columns: List[Dict[str, Any]] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overallCompleteness": self.overall_completeness,
            "nullPercentage": self.null_percentage,
            "averageCardinality": self.average_cardinality,
            "columns": [dict(c) for c in self.columns],
            "issues": list(self.issues),
        }


@dataclass(frozen=True)
class TimeSeriesPoint:
    timestamp: str
    value: float
    is_anomaly: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "value": self.value, "isAnomaly": self.is_anomaly}


@dataclass(frozen=True)
class DistributionBin:
    name: str
    value: int
    is_anomaly: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "value": self.value, "isAnomaly": self.is_anomaly}


@dataclass(frozen=True)
class ScoreBin:
    range: str
    count: int
    anomalies: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "range": self.range,
            "count": self.count,
            "anomalies": self.anomalies,
            "normal": self.count - self.anomalies,
        }


@dataclass
class Summary:
    rows: int
    columns: List[str]
    anomaly_count: int
    unscored_count: int = 0
    top_reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rows": self.rows,
            "columns": list(self.columns),
            "anomalyCount": self.anomaly_count,
            "unscoredCount": self.unscored_count,
            "topReasons": list(self.top_reasons),
        }


@dataclass
class AnalysisResult:
    schema: Schema
    preprocessing: List[PreprocessingStep]
    models: List[ModelResult]
    evaluation: EvaluationMetrics
    summary: Summary
    results: List[AnomalyResult]
    dispersion: Optional[DispersionMetrics] = None
    data_quality: Optional[DataQualityReport] = None
    score_distribution: List[ScoreBin] = field(default_factory=list)
    time_series_data: Optional[List[TimeSeriesPoint]] = None
    distribution_data: Optional[List[DistributionBin]] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "schema": self.schema.to_dict(),
            "preprocessing": [s.to_dict() for s in self.preprocessing],
            "models": [m.to_dict() for m in self.models],
            "evaluation": self.evaluation.to_dict(),
            "summary": self.summary.to_dict(),
            "results": [r.to_dict() for r in self.results],
            "scoreDistribution": [b.to_dict() for b in self.score_distribution],
            "warnings": list(self.warnings),
        }
        if self.dispersion is not None:
            out["dispersion"] = self.dispersion.to_dict()
        if self.data_quality is not None:
            out["dataQuality"] = self.data_quality.to_dict()
        if self.time_series_data is not None:
            out["timeSeriesData"] = [p.to_dict() for p in self.time_series_data]
        if self.distribution_data is not None:
            out["distributionData"] = [b.to_dict() for b in self.distribution_data]
        return out
