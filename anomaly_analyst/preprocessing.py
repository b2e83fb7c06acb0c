import pandas as pd
import numpy as np
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.compose import ColumnTransformer
from sklearn.pipeline import Pipeline
from sklearn.impute import SimpleImputer
from sklearn.preprocessing import RobustScaler
from typing import List, Optional
from anomaly_analyst.models import ColumnType, Dataset, PreprocessingStep, Schema, SchemaColumn, StepAction
from anomaly_analyst.schema_inference import parse_numeric


def steps_for_column(col: SchemaColumn) -> List[PreprocessingStep]:
    """Declared preprocessing steps for one column, driven only by its type."""
    if col.type == ColumnType.NUMERIC:
        steps = [PreprocessingStep(col.name, StepAction.NORMALIZE, "Applied RobustScaler normalization")]
        if col.null_count > 0:
            steps.append(PreprocessingStep(
                col.name, StepAction.IMPUTE, f"Median imputation for {col.null_count} missing values"
            ))
        return steps
    if col.type == ColumnType.CATEGORICAL:
        return [PreprocessingStep(
            col.name, StepAction.ENCODE, f"Frequency encoding ({col.unique_count} categories)"
        )]
    if col.type == ColumnType.DATETIME:
        return [PreprocessingStep(
            col.name, StepAction.EXTRACT, "Extracted: timestamp, hour, weekday, month features"
        )]
    if col.type in (ColumnType.BOOLEAN, ColumnType.ID, ColumnType.TEXT, ColumnType.GEO):
        return []
    raise ValueError(f"No preprocessing rule for column type {col.type!r}")


def generate_preprocessing_steps(schema: Schema) -> List[PreprocessingStep]:
    """
    Derives the ordered preprocessing plan for a schema.
    Steps follow column order, then action order within a column.
    The plan is descriptive only; no data is transformed here.
    """
    steps: List[PreprocessingStep] = []
    for col in schema.columns:
        steps.extend(steps_for_column(col))
    return steps


class FrequencyEncoder(BaseEstimator, TransformerMixin):
    """Replaces each category with its relative frequency in the fitted data."""

    def fit(self, X, y=None):
        frame = pd.DataFrame(X)
        self.frequencies_ = [
            frame[c].astype(str).value_counts(normalize=True).to_dict() for c in frame.columns
        ]
        return self

    def transform(self, X):
        frame = pd.DataFrame(X)
        encoded = [
            frame[c].astype(str).map(freq).fillna(0.0).to_numpy(dtype=float)
            for c, freq in zip(frame.columns, self.frequencies_)
        ]
        return np.column_stack(encoded) if encoded else np.empty((len(frame), 0))


class DatetimeFeatureExtractor(BaseEstimator, TransformerMixin):
    """Expands each datetime column into timestamp, hour, weekday and month."""

    def fit(self, X, y=None):
        return self

    def transform(self, X):
        frame = pd.DataFrame(X)
        features = []
        for c in frame.columns:
            parsed = pd.to_datetime(frame[c], errors='coerce')
            timestamp = parsed.map(lambda v: v.timestamp() if pd.notna(v) else np.nan)
            features.extend([
                timestamp.to_numpy(dtype=float),
                parsed.dt.hour.to_numpy(dtype=float),
                parsed.dt.weekday.to_numpy(dtype=float),
                parsed.dt.month.to_numpy(dtype=float),
            ])
        return np.column_stack(features) if features else np.empty((len(frame), 0))


def to_frame(dataset: Dataset, schema: Schema) -> pd.DataFrame:
    """DataFrame view of the dataset with numeric columns parsed to floats."""
    df = pd.DataFrame(
        {h: dataset.column(i) for i, h in enumerate(dataset.headers)},
        columns=list(dataset.headers),
    )
    for col in schema.of_type(ColumnType.NUMERIC):
        df[col.name] = parse_numeric(df[col.name]).to_numpy()
    return df


def build_preprocessor(schema: Schema, steps: Optional[List[PreprocessingStep]] = None) -> ColumnTransformer:
    """
    Materializes a preprocessing plan as an unfitted ColumnTransformer.
    Intended for consumers that train real models on the dataset; the pipeline
    itself never fits or applies it.
    """
    steps = steps if steps is not None else generate_preprocessing_steps(schema)

    actions = {}
    for step in steps:
        actions.setdefault(step.column, []).append(step.action)

    numeric_features = [c for c, a in actions.items() if StepAction.NORMALIZE in a]
    categorical_features = [c for c, a in actions.items() if StepAction.ENCODE in a]
    datetime_features = [c for c, a in actions.items() if StepAction.EXTRACT in a]

    # Numeric Pipeline
    numeric_transformer = Pipeline(steps=[
        ('imputer', SimpleImputer(strategy='median')),
        ('scaler', RobustScaler())
    ])

    transformers = []
    if numeric_features:
        transformers.append(('num', numeric_transformer, numeric_features))
    if categorical_features:
        transformers.append(('cat', FrequencyEncoder(), categorical_features))
    if datetime_features:
        transformers.append(('dt', DatetimeFeatureExtractor(), datetime_features))

    return ColumnTransformer(transformers=transformers, remainder='drop')
