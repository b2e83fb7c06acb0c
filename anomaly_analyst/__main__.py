import argparse
import dataclasses
import json
import logging
import os
import sys

from anomaly_analyst.config import AnalysisConfig
from anomaly_analyst.exceptions import AnalysisError, PipelineStageError
from anomaly_analyst.pipeline import analyze_file
from anomaly_analyst.report_generator import generate_markdown_report
from anomaly_analyst.scoring import available_backends


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="anomaly_analyst", description="Anomaly analysis report for a CSV file.")
    parser.add_argument("path", help="CSV file to analyze")
    parser.add_argument("--format", choices=["json", "markdown"], default="markdown")
    parser.add_argument("--backend", choices=available_backends(), help="scoring backend (default from SCORING_BACKEND)")
    parser.add_argument("--seed", type=int, help="random seed for reproducible runs")
    parser.add_argument("--label-column", help="column holding ground-truth anomaly labels")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides = {}
    if args.backend:
        overrides["scoring_backend"] = args.backend
    if args.seed is not None:
        overrides["random_seed"] = args.seed
    if args.label_column:
        overrides["label_column"] = args.label_column
    config = dataclasses.replace(AnalysisConfig(), **overrides)

    try:
        result = analyze_file(args.path, config=config)
    except PipelineStageError as e:
        print(json.dumps({"error": str(e.cause), "stage": e.stage}), file=sys.stderr)
        return 1
    except (AnalysisError, OSError) as e:
        print(json.dumps({"error": str(e), "stage": "input"}), file=sys.stderr)
        return 1

    if args.format == "json":
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(generate_markdown_report(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
