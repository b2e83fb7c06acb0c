"""Ensemble anomaly scoring.

A ``ScoringBackend`` turns a dataset into per-row score fragments (a combined
score and/or named model votes plus optional explanations). The
``EnsembleScorer`` calls the configured backend under a time budget, combines
votes where the backend did not, and guarantees one ``AnomalyResult`` per
analyzed row. Rows without a usable score are marked unscored, never 0.
"""
import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Type

import numpy as np
from scipy import stats

from anomaly_analyst.config import AnalysisConfig
from anomaly_analyst.exceptions import ScoringError, ScoringTimeoutError, UnknownBackendError
from anomaly_analyst.models import (
    AnomalyResult, ColumnType, Dataset, Explanation, ModelResult, ModelVote, Schema,
)
from anomaly_analyst.schema_inference import parse_numeric
from anomaly_analyst.state import AnalysisState

log = logging.getLogger(__name__)

UNSCORED_FLAG = "unscored"


@dataclass
class ScoreFragment:
    """Backend output for one row. ``anomaly_score`` may be left None when votes are given."""
    row_index: int
    anomaly_score: Optional[float] = None
    flags: List[str] = field(default_factory=list)
    explanations: List[Explanation] = field(default_factory=list)
    model_votes: List[ModelVote] = field(default_factory=list)


class ScoringBackend(ABC):
    name: str = "base"

    def __init__(self, config: Optional[AnalysisConfig] = None, rng: Optional[np.random.Generator] = None):
        self.config = config or AnalysisConfig()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.random_seed)

    def analyzed_rows(self, dataset: Dataset) -> int:
        return min(dataset.row_count, self.config.max_scored_rows)

    @abstractmethod
    def score(self, dataset: Dataset, schema: Schema) -> List[ScoreFragment]:
        raise NotImplementedError()

    @abstractmethod
    def describe_models(self, dataset: Dataset, schema: Schema) -> List[ModelResult]:
        raise NotImplementedError()


_REGISTRY: Dict[str, Type[ScoringBackend]] = {}

def register(name: str, backend_cls: Type[ScoringBackend]) -> Type[ScoringBackend]:
    _REGISTRY[name] = backend_cls
    return backend_cls

def available_backends() -> List[str]:
    return sorted(_REGISTRY)

def get_backend(name: str, config: Optional[AnalysisConfig] = None,
                rng: Optional[np.random.Generator] = None) -> ScoringBackend:
    """Construct a fresh backend instance for one run."""
    cls = _REGISTRY.get((name or "").lower())
    if cls is None:
        raise UnknownBackendError(
            f"Unknown scoring backend '{name}'. Available: {', '.join(available_backends())}"
        )
    return cls(config=config, rng=rng)


# ---------------------------------------------------------
# Synthetic reference backend
# ---------------------------------------------------------

SYNTHETIC_MODELS = [
    # name, params, training time range (seconds)
    ("IsolationForest", {"n_estimators": 100, "contamination": 0.05, "random_state": 42}, (0.5, 2.5)),
    ("LightGBM", {"num_leaves": 31, "learning_rate": 0.05, "n_estimators": 100}, (1.0, 4.0)),
    ("LOF", {"n_neighbors": 20, "contamination": 0.05}, (0.3, 1.8)),
    ("HBOS", {"n_bins": 10, "alpha": 0.1}, (0.1, 0.6)),
]
VOTE_JITTER = 0.1


class SyntheticBackend(ScoringBackend):
    """
    Demo backend with a documented synthetic scoring contract.
    A random ``ceil(anomaly_rate * rowCount)`` subset of rows is treated as
    anomalous and scored in [0.7, 1.0); all other rows score in [0, 0.4).
    Scores carry no detection meaning.
    """
    name = "synthetic"

    def score(self, dataset: Dataset, schema: Schema) -> List[ScoreFragment]:
        n = dataset.row_count
        anomaly_count = math.ceil(n * self.config.anomaly_rate)
        anomalous = set()
        if n:
            anomalous = set(self.rng.choice(n, size=min(anomaly_count, n), replace=False).tolist())

        numeric_cols = schema.of_type(ColumnType.NUMERIC)
        fragments = []
        for index in range(self.analyzed_rows(dataset)):
            is_anomaly = index in anomalous
            score = float(self.rng.uniform(0.7, 1.0) if is_anomaly else self.rng.uniform(0.0, 0.4))

            fragment = ScoreFragment(row_index=index, anomaly_score=score)
            if is_anomaly:
                self._explain(fragment, numeric_cols)

            fragment.model_votes = [
                ModelVote(model=name, score=float(np.clip(score + self.rng.uniform(-VOTE_JITTER, VOTE_JITTER), 0.0, 1.0)))
                for name, _, _ in SYNTHETIC_MODELS
            ]
            fragments.append(fragment)
        return fragments

    def _explain(self, fragment: ScoreFragment, numeric_cols) -> None:
        if numeric_cols:
            col = numeric_cols[int(self.rng.integers(len(numeric_cols)))]
            fragment.flags.append(f"High z-score in {col.name}")
            fragment.explanations.append(Explanation(
                title=f"Unusual value in {col.name}",
                description=f"The value for {col.name} was significantly different from the typical distribution.",
            ))
        # Without a numeric column the outlier explanation is always attached
        if not numeric_cols or self.rng.random() > 0.5:
            fragment.flags.append("Statistical outlier detected")
            fragment.explanations.append(Explanation(
                title="Statistical outlier",
                description="The data point was identified as a statistical outlier by multiple models.",
            ))
        if self.rng.random() > 0.7:
            fragment.flags.append("Rare pattern combination")
            fragment.explanations.append(Explanation(
                title="Rare feature combination",
                description="A rare combination of feature values was observed for this data point.",
            ))

    def describe_models(self, dataset: Dataset, schema: Schema) -> List[ModelResult]:
        numeric_names = [c.name for c in schema.of_type(ColumnType.NUMERIC)]
        models = []
        for name, params, (lo, hi) in SYNTHETIC_MODELS:
            weights = self.rng.uniform(0.1, 0.6, size=len(numeric_names))
            importance = {}
            if numeric_names:
                importance = dict(zip(numeric_names, (weights / weights.sum()).tolist()))
            models.append(ModelResult(
                name=name,
                params=dict(params),
                feature_importance=importance,
                training_time=float(self.rng.uniform(lo, hi)),
            ))
        return models

register("synthetic", SyntheticBackend)


# ---------------------------------------------------------
# Robust z-score backend
# ---------------------------------------------------------

class ZScoreBackend(ScoringBackend):
    """
    Statistical backend over numeric columns.
    Votes: "ZScore" squashes the row's largest robust (median/MAD) z-score so
    that |z| = 3.5 maps to 0.7; "IQR" is the share of the row's numeric cells
    outside the Tukey fences. Rows with no numeric values get no votes.
    """
    name = "zscore"
    cutoff = 3.5
    tukey_k = 1.5

    def _numeric_matrix(self, dataset: Dataset, schema: Schema):
        columns = [(i, c) for i, c in enumerate(schema.columns) if c.type == ColumnType.NUMERIC]
        if not columns:
            raise ScoringError("zscore backend requires at least one numeric column")
        names = [c.name for _, c in columns]
        matrix = np.column_stack([parse_numeric(dataset.column(i)).to_numpy() for i, _ in columns])
        return names, matrix

    def _robust_z(self, matrix: np.ndarray) -> np.ndarray:
        median = np.nanmedian(matrix, axis=0)
        mad = stats.median_abs_deviation(matrix, axis=0, scale='normal', nan_policy='omit')
        std = np.nanstd(matrix, axis=0)
        scale = np.where(mad > 0, mad, std)
        with np.errstate(divide='ignore', invalid='ignore'):
            z = np.abs(matrix - median) / scale
        # Constant columns carry no signal
        z[:, scale == 0] = 0.0
        return z

    def score(self, dataset: Dataset, schema: Schema) -> List[ScoreFragment]:
        if dataset.row_count == 0:
            return []
        names, matrix = self._numeric_matrix(dataset, schema)
        z = self._robust_z(matrix)
        q1, q3 = np.nanpercentile(matrix, [25, 75], axis=0)
        iqr = q3 - q1
        lower, upper = q1 - self.tukey_k * iqr, q3 + self.tukey_k * iqr

        fragments = []
        for index in range(self.analyzed_rows(dataset)):
            present = ~np.isnan(matrix[index])
            if not present.any():
                fragments.append(ScoreFragment(row_index=index))
                continue

            row_z = np.where(present, z[index], 0.0)
            worst = int(np.argmax(row_z))
            max_z = float(row_z[worst])
            outside = (matrix[index] < lower) | (matrix[index] > upper)
            fragment = ScoreFragment(row_index=index, model_votes=[
                # 0.7 at |z| = cutoff
                ModelVote(model="ZScore", score=max_z / (max_z + self.cutoff * 0.3 / 0.7)),
                ModelVote(model="IQR", score=float(outside[present].mean())),
            ])
            if max_z > self.cutoff:
                fragment.flags.append(f"High z-score in {names[worst]}")
                fragment.explanations.append(Explanation(
                    title=f"Unusual value in {names[worst]}",
                    description=f"{names[worst]} is {max_z:.1f} robust standard deviations from the median.",
                ))
            fragments.append(fragment)
        return fragments

    def describe_models(self, dataset: Dataset, schema: Schema) -> List[ModelResult]:
        start = time.perf_counter()
        names, matrix = self._numeric_matrix(dataset, schema)
        mean_z = np.nan_to_num(np.nanmean(self._robust_z(matrix), axis=0)) if dataset.row_count else np.zeros(len(names))
        if mean_z.sum() > 0:
            weights = mean_z / mean_z.sum()
        else:
            weights = np.full(len(names), 1.0 / len(names))
        importance = dict(zip(names, weights.tolist()))
        elapsed = time.perf_counter() - start
        return [
            ModelResult("ZScore", {"cutoff": self.cutoff, "center": "median", "scale": "mad"}, dict(importance), elapsed),
            ModelResult("IQR", {"k": self.tukey_k}, dict(importance), elapsed),
        ]

register("zscore", ZScoreBackend)


# ---------------------------------------------------------
# Ensemble scorer
# ---------------------------------------------------------

class EnsembleScorer:
    """Runs a scoring backend and normalizes its output into AnomalyResults."""

    def __init__(self, backend: ScoringBackend, config: Optional[AnalysisConfig] = None,
                 state: Optional[AnalysisState] = None):
        self.backend = backend
        self.config = config or AnalysisConfig()
        self.state = state if state is not None else AnalysisState()
        self.timed_out = False

    def _call_backend(self, method, dataset: Dataset, schema: Schema):
        """
        Runs one backend call on a daemon worker under the scoring time budget.
        A call that overruns is abandoned: the worker cannot hold the process
        open at exit, and the backend is not used again by this scorer.
        """
        outcome = {}

        def run():
            try:
                outcome["value"] = method(dataset, schema)
            except Exception as e:
                outcome["error"] = e

        worker = threading.Thread(target=run, name=f"scoring-{self.backend.name}", daemon=True)
        worker.start()
        worker.join(self.config.scoring_timeout_seconds)
        if worker.is_alive():
            self.timed_out = True
            raise ScoringTimeoutError(
                f"Backend '{self.backend.name}' exceeded {self.config.scoring_timeout_seconds}s"
            )

        error = outcome.get("error")
        if isinstance(error, ScoringError):
            raise error
        if error is not None:
            raise ScoringError(f"Backend '{self.backend.name}' failed: {error}") from error
        if "value" not in outcome:
            raise ScoringError(f"Backend '{self.backend.name}' stopped without a result")
        return outcome["value"]

    @staticmethod
    def combine(fragment: ScoreFragment) -> Optional[float]:
        """Combined score for a fragment: its own score, else the mean vote."""
        if fragment.anomaly_score is not None:
            return fragment.anomaly_score
        if fragment.model_votes:
            return float(np.mean([v.score for v in fragment.model_votes]))
        return None

    def score(self, dataset: Dataset, schema: Schema) -> List[AnomalyResult]:
        analyzed = min(dataset.row_count, self.config.max_scored_rows)

        by_row: Dict[int, ScoreFragment] = {}
        try:
            for fragment in self._call_backend(self.backend.score, dataset, schema):
                by_row.setdefault(fragment.row_index, fragment)
        except ScoringError as e:
            log.warning("Scoring failed, all rows left unscored: %s", e)
            self.state.warnings.append(f"Scoring backend failure: {e}")

        results = []
        for index in range(analyzed):
            raw = dataset.record(index)
            fragment = by_row.get(index)
            score = self.combine(fragment) if fragment is not None else None
            if score is not None and not (math.isfinite(score) and 0.0 <= score <= 1.0):
                log.warning("Row %d received invalid score %r", index, score)
                score = None

            if score is None:
                self.state.unscored_rows.append(index)
                results.append(AnomalyResult(row_index=index, raw=raw, anomaly_score=None, flags=[UNSCORED_FLAG]))
                continue

            votes = [
                ModelVote(v.model, float(np.clip(v.score, 0.0, 1.0)))
                for v in fragment.model_votes if math.isfinite(v.score)
            ]
            results.append(AnomalyResult(
                row_index=index,
                raw=raw,
                anomaly_score=float(score),
                flags=list(fragment.flags),
                explanations=list(fragment.explanations),
                model_votes=votes,
            ))

        if self.state.unscored_rows:
            self.state.warnings.append(
                f"{len(self.state.unscored_rows)} of {analyzed} analyzed rows could not be scored "
                f"and are marked '{UNSCORED_FLAG}'."
            )
        return results

    def describe_models(self, dataset: Dataset, schema: Schema) -> List[ModelResult]:
        """Model metadata under the same time budget; empty when unavailable."""
        if self.timed_out:
            log.warning("Skipping model metadata: backend '%s' timed out", self.backend.name)
            self.state.warnings.append("Model metadata unavailable: scoring backend timed out.")
            return []
        try:
            return self._call_backend(self.backend.describe_models, dataset, schema)
        except ScoringError as e:
            log.warning("No model metadata available: %s", e)
            self.state.warnings.append(f"Model metadata unavailable: {e}")
            return []
