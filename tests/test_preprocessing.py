import pytest
import numpy as np
import sys
import os

# Add project root to sys.path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from anomaly_analyst.csv_parser import load_dataset
from anomaly_analyst.models import ColumnType, Schema, SchemaColumn, StepAction
from anomaly_analyst.preprocessing import build_preprocessor, generate_preprocessing_steps, to_frame
from anomaly_analyst.schema_inference import infer_schema
from sklearn.compose import ColumnTransformer

@pytest.fixture
def schema():
    return Schema(columns=(
        SchemaColumn("amount", ColumnType.NUMERIC, null_count=2, unique_count=8),
        SchemaColumn("score", ColumnType.NUMERIC, null_count=0, unique_count=10),
        SchemaColumn("merchant", ColumnType.CATEGORICAL, null_count=0, unique_count=3),
        SchemaColumn("created", ColumnType.DATETIME, null_count=0, unique_count=10),
        SchemaColumn("active", ColumnType.BOOLEAN, null_count=0, unique_count=2),
        SchemaColumn("user_id", ColumnType.ID, null_count=0, unique_count=10),
        SchemaColumn("note", ColumnType.TEXT, null_count=1, unique_count=6),
        SchemaColumn("location", ColumnType.GEO, null_count=0, unique_count=9),
    ), row_count=10)

@pytest.fixture
def dataset():
    rows = ["amount,merchant,created,note"]
    for i in range(10):
        amount = "" if i == 3 else str(10 + i * 2.5)
        merchant = "Acme" if i % 2 else "Beta"
        rows.append(f"{amount},{merchant},2024-01-{i + 1:02d} 0{i % 10}:30:00,note {i % 6}")
    return load_dataset("\n".join(rows))

def test_steps_follow_column_then_action_order(schema):
    steps = generate_preprocessing_steps(schema)
    assert [(s.column, s.action) for s in steps] == [
        ("amount", StepAction.NORMALIZE),
        ("amount", StepAction.IMPUTE),
        ("score", StepAction.NORMALIZE),
        ("merchant", StepAction.ENCODE),
        ("created", StepAction.EXTRACT),
    ]

def test_step_details(schema):
    steps = {(s.column, s.action): s.details for s in generate_preprocessing_steps(schema)}
    assert steps[("amount", StepAction.NORMALIZE)] == "Applied RobustScaler normalization"
    assert steps[("amount", StepAction.IMPUTE)] == "Median imputation for 2 missing values"
    assert steps[("merchant", StepAction.ENCODE)] == "Frequency encoding (3 categories)"
    assert "weekday" in steps[("created", StepAction.EXTRACT)]

def test_excluded_types_produce_no_steps(schema):
    planned = {s.column for s in generate_preprocessing_steps(schema)}
    for name in ("active", "user_id", "note", "location"):
        assert name not in planned

def test_step_to_dict(schema):
    step = generate_preprocessing_steps(schema)[0]
    assert step.to_dict() == {
        "column": "amount",
        "action": "normalize",
        "details": "Applied RobustScaler normalization",
    }

def test_plan_does_not_touch_dataset(dataset):
    before = dataset.rows
    schema = infer_schema(dataset.headers, dataset.rows)
    generate_preprocessing_steps(schema)
    assert dataset.rows == before

def test_build_preprocessor_structure(dataset):
    schema = infer_schema(dataset.headers, dataset.rows)
    assert [c.type for c in schema.columns] == [
        ColumnType.NUMERIC, ColumnType.CATEGORICAL, ColumnType.DATETIME, ColumnType.TEXT,
    ]

    preprocessor = build_preprocessor(schema)
    assert isinstance(preprocessor, ColumnTransformer)
    names = [name for name, _, _ in preprocessor.transformers]
    assert names == ['num', 'cat', 'dt']

def test_preprocessor_fitting(dataset):
    schema = infer_schema(dataset.headers, dataset.rows)
    preprocessor = build_preprocessor(schema)

    X_transformed = preprocessor.fit_transform(to_frame(dataset, schema))

    # amount (1) + merchant frequency (1) + created (timestamp, hour, weekday, month)
    assert X_transformed.shape == (10, 6)
    assert not np.isnan(X_transformed).any()
    # Two merchants split evenly
    assert set(np.round(X_transformed[:, 1], 2)) == {0.5}

if __name__ == "__main__":
    sys.exit(pytest.main([__file__]))
