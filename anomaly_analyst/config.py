import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else None


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "y")


@dataclass(frozen=True)
class AnalysisConfig:
    """Configuration for a single anomaly analysis run."""
    # Schema inference
    type_match_ratio: float = float(os.getenv("TYPE_MATCH_RATIO", 0.80))
    id_unique_ratio: float = float(os.getenv("ID_UNIQUE_RATIO", 0.90))
    categorical_unique_ratio: float = float(os.getenv("CATEGORICAL_UNIQUE_RATIO", 0.30))
    sample_value_limit: int = int(os.getenv("SAMPLE_VALUE_LIMIT", 5))

    # Scoring
    scoring_backend: str = os.getenv("SCORING_BACKEND", "synthetic")
    scoring_timeout_seconds: float = float(os.getenv("SCORING_TIMEOUT_SECONDS", 30))
    max_scored_rows: int = int(os.getenv("MAX_SCORED_ROWS", 100))
    anomaly_rate: float = float(os.getenv("ANOMALY_RATE", 0.05))
    anomaly_threshold: float = float(os.getenv("ANOMALY_THRESHOLD", 0.70))
    random_seed: Optional[int] = _optional_int("RANDOM_SEED")

    # Evaluation
    label_column: Optional[str] = os.getenv("LABEL_COLUMN") or None

    # Aggregation
    histogram_bins: int = int(os.getenv("HISTOGRAM_BINS", 10))
    max_time_series_points: int = int(os.getenv("MAX_TIME_SERIES_POINTS", 50))
    link_time_series_to_scores: bool = _flag("LINK_TIME_SERIES_TO_SCORES")

    # Input acquisition (CLI only)
    max_upload_mb: float = float(os.getenv("MAX_UPLOAD_MB", 50))
