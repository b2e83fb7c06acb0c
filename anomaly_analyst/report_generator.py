from anomaly_analyst.exceptions import AnalysisError
from anomaly_analyst.models import AnalysisResult


def _cell(value) -> str:
    """Table-safe text: a bare pipe would end the Markdown cell."""
    return str(value).replace("|", "\\|")


def generate_markdown_report(result: AnalysisResult, max_rows: int = 10) -> str:
    """
    Generates a Markdown report from a finished analysis.
    Only renders values already present on the result.
    """
    if result.schema is None or result.summary is None:
        raise AnalysisError("AnalysisResult missing schema or summary")

    summary = result.summary

    # Section 1: Dataset Overview
    report = "# 🔍 Anomaly Analysis Report\n\n"
    report += "## 📈 Dataset Overview\n"
    report += f"Rows: **{summary.rows}** | Columns: **{len(summary.columns)}**\n"
    report += f"- Anomalous rows: {summary.anomaly_count}\n"
    if summary.unscored_count:
        report += f"- Unscored rows: {summary.unscored_count}\n"
    report += "\n"

    # Section 2: Schema
    report += "## 🧬 Inferred Schema\n"
    report += "| Column | Type | Nulls | Unique | Samples |\n"
    report += "|---|---|---|---|---|\n"
    for col in result.schema.columns:
        samples = _cell(", ".join(col.sample_values))
        report += f"| {_cell(col.name)} | {col.type.value} | {col.null_count} | {col.unique_count} | {samples} |\n"
    report += "\n"

    # Section 3: Data Quality
    if result.data_quality is not None:
        dq = result.data_quality
        report += "## ✔ Data Quality\n"
        report += f"Completeness: **{dq.overall_completeness:.1f}%** | Missing: **{dq.null_percentage:.2f}%**\n"
        for issue in dq.issues:
            report += f"- {issue}\n"
        report += "\n"

    # Section 4: Preprocessing Plan
    report += "## ⚙️ Preprocessing Plan\n"
    if result.preprocessing:
        for step in result.preprocessing:
            report += f"- **{step.column}** ({step.action.value}): {step.details}\n"
    else:
        report += "No preprocessing steps planned.\n"
    report += "\n"

    # Section 5: Models
    report += "## 🏆 Models\n"
    if result.models:
        report += "| Model | Training Time (s) | Top Feature |\n"
        report += "|---|---|---|\n"
        for model in result.models:
            top = max(model.feature_importance.items(), key=lambda kv: kv[1], default=None)
            top_text = f"{_cell(top[0])} ({top[1]:.2f})" if top else "-"
            report += f"| {_cell(model.name)} | {model.training_time:.2f} | {top_text} |\n"
    else:
        report += "No model metadata available.\n"
    report += "\n"

    # Section 6: Evaluation
    ev = result.evaluation
    report += "## 🎯 Evaluation\n"
    if ev.is_synthetic:
        report += "> ⚠️ Synthetic metrics: no ground-truth labels were available. These are not verified performance.\n\n"
    for label, value in (("Accuracy", ev.accuracy), ("Precision", ev.precision), ("Recall", ev.recall),
                         ("F1 Score", ev.f1_score), ("ROC-AUC", ev.roc_auc)):
        if value is not None:
            report += f"- {label}: {value:.4f}\n"
    if result.dispersion is not None:
        d = result.dispersion
        report += f"- Score mean {d.mean:.3f}, std {d.std_dev:.3f}, "
        report += f"Q1 {d.q1:.3f}, median {d.q2:.3f}, Q3 {d.q3:.3f}, IQR {d.iqr:.3f}\n"
    report += "\n"

    # Section 7: Top Anomalies
    report += "## 🚨 Top Anomalies\n"
    scored = sorted((r for r in result.results if r.is_scored), key=lambda r: r.anomaly_score, reverse=True)
    if scored:
        report += "| Row | Score | Flags |\n"
        report += "|---|---|---|\n"
        for r in scored[:max_rows]:
            report += f"| {r.row_index} | {r.anomaly_score:.3f} | {_cell('; '.join(r.flags)) or '-'} |\n"
    else:
        report += "No scored rows.\n"

    if summary.top_reasons:
        report += "\n**Top reasons**:\n"
        for reason in summary.top_reasons:
            report += f"- {reason}\n"

    # Section 8: Warnings
    if result.warnings:
        report += "\n## ⚠️ Warnings\n"
        for warning in result.warnings:
            report += f"- {warning}\n"

    return report
