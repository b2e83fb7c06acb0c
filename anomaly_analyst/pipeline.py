"""End-to-end analysis run: CSV text in, AnalysisResult out.

Stages run synchronously in order. Any stage failure aborts the run with a
single ``PipelineStageError`` naming the stage; the only partial result that
is ever returned is a report whose unscored rows are listed in ``warnings``.
"""
import logging
import os
import time
from collections import Counter
from contextlib import contextmanager
from typing import List, Optional, Sequence

import numpy as np

from anomaly_analyst.aggregation import build_distribution, build_score_distribution, build_time_series
from anomaly_analyst.config import AnalysisConfig
from anomaly_analyst.csv_parser import load_dataset
from anomaly_analyst.evaluation import compute_data_quality, compute_dispersion, evaluate, labels_from_column
from anomaly_analyst.exceptions import AnalysisError, ParseError, PipelineStageError
from anomaly_analyst.models import AnalysisResult, AnomalyResult, EvaluationMetrics, Summary
from anomaly_analyst.preprocessing import generate_preprocessing_steps
from anomaly_analyst.schema_inference import infer_schema
from anomaly_analyst.scoring import EnsembleScorer, ScoringBackend, get_backend
from anomaly_analyst.state import AnalysisState

log = logging.getLogger(__name__)

DEFAULT_REASONS = [
    'Statistical outliers in numeric features',
    'Rare category combinations detected',
    'Time-based pattern deviation',
    'Multi-dimensional isolation',
]


@contextmanager
def _stage(name: str, state: AnalysisState):
    log.info("Stage '%s' started", name)
    start = time.perf_counter()
    try:
        yield
    except PipelineStageError:
        raise
    except Exception as e:
        state.failed_stage = name
        log.error("Stage '%s' failed: %s", name, e)
        raise PipelineStageError(name, e) from e
    elapsed = time.perf_counter() - start
    state.stage_timings[name] = elapsed
    state.stages_completed.append(name)
    log.info("Stage '%s' finished in %.3fs", name, elapsed)


def summarize(headers: Sequence[str], row_count: int, results: List[AnomalyResult],
              threshold: float, max_reasons: int = 4) -> Summary:
    """Headline numbers for the report; reasons are the most common explanation titles."""
    anomalous = [r for r in results if r.is_anomalous(threshold)]
    titles = Counter(e.title for r in anomalous for e in r.explanations)
    top_reasons = [title for title, _ in titles.most_common(max_reasons)] or list(DEFAULT_REASONS)
    return Summary(
        rows=row_count,
        columns=list(headers),
        anomaly_count=len(anomalous),
        unscored_count=sum(1 for r in results if not r.is_scored),
        top_reasons=top_reasons,
    )


def run_analysis(content: str, config: Optional[AnalysisConfig] = None,
                 backend: Optional[ScoringBackend] = None,
                 labels: Optional[Sequence[bool]] = None,
                 state: Optional[AnalysisState] = None) -> AnalysisResult:
    """
    Runs the full pipeline over CSV text.
    ``backend`` overrides the configured scoring backend; ``labels`` (one per
    row) override ``config.label_column``. Each call builds its own random
    generators, backend and state, so concurrent runs share nothing.
    """
    config = config or AnalysisConfig()
    state = state if state is not None else AnalysisState()
    scoring_seed, eval_seed, agg_seed = np.random.SeedSequence(config.random_seed).spawn(3)

    with _stage("parse", state):
        dataset = load_dataset(content)

    with _stage("schema", state):
        schema = infer_schema(dataset.headers, dataset.rows, config)

    with _stage("preprocessing", state):
        preprocessing = generate_preprocessing_steps(schema)

    with _stage("scoring", state):
        if backend is None:
            backend = get_backend(config.scoring_backend, config, np.random.default_rng(scoring_seed))
        state.scoring_backend = backend.name
        scorer = EnsembleScorer(backend, config, state)
        results = scorer.score(dataset, schema)
        models = scorer.describe_models(dataset, schema)

    with _stage("statistics", state):
        if labels is None and config.label_column:
            labels = labels_from_column(dataset, config.label_column)
        if results and not any(r.is_scored for r in results):
            # Every row unscored: report without score statistics rather than abort
            state.warnings.append("No rows were scored; score statistics were omitted.")
            dispersion = None
            evaluation = EvaluationMetrics(is_synthetic=labels is None)
        else:
            dispersion = compute_dispersion([r.anomaly_score for r in results])
            evaluation = evaluate(results, labels, config, np.random.default_rng(eval_seed))
        data_quality = compute_data_quality(schema)

    with _stage("aggregation", state):
        agg_rng = np.random.default_rng(agg_seed)
        distribution_data = build_distribution(dataset, schema, config)
        time_series_data = build_time_series(dataset, schema, agg_rng, config, results)
        score_distribution = build_score_distribution(results, config)

    if evaluation.is_synthetic and evaluation.accuracy is not None:
        state.warnings.append("Evaluation metrics are synthetic: no ground-truth labels were supplied.")

    return AnalysisResult(
        schema=schema,
        preprocessing=preprocessing,
        models=models,
        evaluation=evaluation,
        summary=summarize(dataset.headers, dataset.row_count, results, config.anomaly_threshold),
        results=results,
        dispersion=dispersion,
        data_quality=data_quality,
        score_distribution=score_distribution,
        time_series_data=time_series_data,
        distribution_data=distribution_data,
        warnings=list(state.warnings),
    )


def analyze_file(path: str, config: Optional[AnalysisConfig] = None, **kwargs) -> AnalysisResult:
    """Reads a UTF-8 CSV file, enforcing ``config.max_upload_mb``, and analyzes it."""
    config = config or AnalysisConfig()
    size_mb = os.path.getsize(path) / (1024 * 1024)
    if size_mb > config.max_upload_mb:
        raise AnalysisError(f"File size {size_mb:.1f}MB exceeds max {config.max_upload_mb}MB")
    with open(path, "rb") as f:
        raw = f.read()
    try:
        content = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(f"File is not valid UTF-8: byte 0x{e.object[e.start]:02x} at position {e.start}") from e
    return run_analysis(content, config=config, **kwargs)
