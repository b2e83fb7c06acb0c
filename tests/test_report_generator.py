import pytest
import sys
import os

# Add project root to sys.path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from anomaly_analyst.exceptions import AnalysisError
from anomaly_analyst.models import (
    AnalysisResult, AnomalyResult, ColumnType, DataQualityReport, DispersionMetrics, EvaluationMetrics,
    ModelResult, PreprocessingStep, Schema, SchemaColumn, StepAction, Summary,
)
from anomaly_analyst.report_generator import generate_markdown_report

def make_result(**overrides):
    schema = Schema(columns=(
        SchemaColumn("amount", ColumnType.NUMERIC, 0, 3, ("10", "12", "950")),
        SchemaColumn("merchant", ColumnType.CATEGORICAL, 0, 2, ("Acme", "Beta", "Acme")),
    ), row_count=3)
    fields = dict(
        schema=schema,
        preprocessing=[PreprocessingStep("amount", StepAction.NORMALIZE, "Applied RobustScaler normalization")],
        models=[ModelResult("IsolationForest", {"n_estimators": 100}, {"amount": 1.0}, 1.25)],
        evaluation=EvaluationMetrics(is_synthetic=False, accuracy=0.9, precision=0.8, recall=0.75,
                                     f1_score=0.774, roc_auc=0.88),
        summary=Summary(rows=3, columns=["amount", "merchant"], anomaly_count=1,
                        top_reasons=["Unusual value in amount"]),
        results=[
            AnomalyResult(0, {"amount": "10"}, 0.12),
            AnomalyResult(1, {"amount": "12"}, 0.2),
            AnomalyResult(2, {"amount": "950"}, 0.93, flags=["High z-score in amount"]),
        ],
        dispersion=DispersionMetrics(0.4167, 0.1417, 0.3764, 0.12, 0.2, 0.93, 0.81),
        data_quality=DataQualityReport(100.0, 0.0, 83.3, issues=["Excellent data quality overall"]),
        warnings=["Dataset is small"],
    )
    fields.update(overrides)
    return AnalysisResult(**fields)

def test_generate_markdown_report():
    report = generate_markdown_report(make_result())

    assert isinstance(report, str)
    assert "# 🔍 Anomaly Analysis Report" in report
    assert "Rows: **3** | Columns: **2**" in report
    assert "- Anomalous rows: 1" in report

    assert "## 🧬 Inferred Schema" in report
    assert "| amount | numeric | 0 | 3 | 10, 12, 950 |" in report

    assert "## ✔ Data Quality" in report
    assert "Excellent data quality overall" in report

    assert "## ⚙️ Preprocessing Plan" in report
    assert "- **amount** (normalize): Applied RobustScaler normalization" in report

    assert "## 🏆 Models" in report
    assert "| IsolationForest | 1.25 | amount (1.00) |" in report

    assert "## 🎯 Evaluation" in report
    assert "- Accuracy: 0.9000" in report
    assert "- ROC-AUC: 0.8800" in report
    assert "Synthetic metrics" not in report

    assert "## 🚨 Top Anomalies" in report
    # Highest score first
    assert report.index("| 2 | 0.930 |") < report.index("| 1 | 0.200 |")
    assert "Unusual value in amount" in report

    assert "## ⚠️ Warnings" in report
    assert "Dataset is small" in report

def test_synthetic_metrics_are_labelled():
    result = make_result(evaluation=EvaluationMetrics(is_synthetic=True, accuracy=0.95))
    report = generate_markdown_report(result)
    assert "Synthetic metrics" in report
    assert "- Precision" not in report

def test_generate_markdown_report_empty_result():
    result = make_result(
        preprocessing=[], models=[], results=[], dispersion=None, data_quality=None, warnings=[],
        summary=Summary(rows=0, columns=["amount", "merchant"], anomaly_count=0),
    )
    report = generate_markdown_report(result)

    assert "No preprocessing steps planned." in report
    assert "No model metadata available." in report
    assert "No scored rows." in report
    assert "## ✔ Data Quality" not in report
    assert "## ⚠️ Warnings" not in report

def test_unscored_rows_are_reported_but_not_ranked():
    results = [AnomalyResult(0, {}, None, flags=["unscored"]), AnomalyResult(1, {}, 0.3)]
    summary = Summary(rows=2, columns=["amount"], anomaly_count=0, unscored_count=1)
    report = generate_markdown_report(make_result(results=results, summary=summary))
    assert "- Unscored rows: 1" in report
    assert "\n| 0 |" not in report
    assert "| 1 | 0.300 |" in report

def test_missing_summary_raises():
    with pytest.raises(AnalysisError):
        generate_markdown_report(make_result(summary=None))

def test_pipes_in_table_cells_are_escaped():
    schema = Schema(columns=(SchemaColumn("route", ColumnType.TEXT, 0, 2, ("A|B", "C")),), row_count=2)
    results = [AnomalyResult(0, {"route": "A|B"}, 0.9, flags=["High z-score in a|b"])]
    report = generate_markdown_report(make_result(schema=schema, results=results))
    assert "| route | text | 0 | 2 | A\\|B, C |" in report
    assert "| 0 | 0.900 | High z-score in a\\|b |" in report

if __name__ == "__main__":
    sys.exit(pytest.main([__file__]))
