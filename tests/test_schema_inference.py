import pytest
import sys
import os
from collections import Counter

# Add project root to sys.path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from anomaly_analyst.config import AnalysisConfig
from anomaly_analyst.models import ColumnType
from anomaly_analyst.schema_inference import infer_column_type, infer_schema

@pytest.fixture
def config():
    return AnalysisConfig()

def test_amount_merchant_round_trip(config):
    headers = ["amount", "merchant"]
    rows = [["10.5", "Acme"], ["", "Acme"], ["99.9", "Beta"]]
    schema = infer_schema(headers, rows, config)

    amount, merchant = schema.columns
    assert schema.row_count == 3
    assert amount.type == ColumnType.NUMERIC
    assert amount.null_count == 1
    # 2 unique of 3 values is a 0.67 ratio: inside the text band
    assert merchant.type == ColumnType.TEXT
    assert merchant.unique_count == 2
    assert merchant.sample_values == ("Acme", "Acme", "Beta")

def test_high_cardinality_strings_are_ids(config):
    values = [f"user_{i}" for i in range(95)] + ["user_0"] * 5
    assert infer_column_type(values, config) == ColumnType.ID

def test_low_cardinality_strings_are_categorical(config):
    values = [f"cat_{i % 20}" for i in range(100)]
    assert infer_column_type(values, config) == ColumnType.CATEGORICAL

def test_numeric_takes_precedence_over_id(config):
    """Every value unique would satisfy the id rule, but numeric is checked first."""
    values = [str(i * 1.5) for i in range(100)]
    assert infer_column_type(values, config) == ColumnType.NUMERIC

def test_numeric_threshold_is_inclusive(config):
    assert infer_column_type(["1", "2", "3", "4", "x"], config) == ColumnType.NUMERIC
    assert infer_column_type(["1", "2", "3", "x", "y"], config) != ColumnType.NUMERIC

def test_non_finite_values_are_not_numeric(config):
    assert infer_column_type(["inf", "-inf", "nan", "1", "2"], config) != ColumnType.NUMERIC

def test_datetime_patterns(config):
    values = ["2024-01-01", "2024-01-02T10:00:00", "05/06/2024", "1-Jan-2024", "12-Feb-2023"]
    assert infer_column_type(values, config) == ColumnType.DATETIME

def test_boolean_values_case_insensitive(config):
    values = ["yes", "No", "TRUE", "false", "yes", "no"]
    assert infer_column_type(values, config) == ColumnType.BOOLEAN

def test_zero_one_column_is_numeric(config):
    assert infer_column_type(["0", "1", "1", "0"], config) == ColumnType.NUMERIC

def test_empty_column_is_text(config):
    assert infer_column_type(["", "  ", ""], config) == ColumnType.TEXT
    assert infer_column_type([], config) == ColumnType.TEXT

def test_mid_cardinality_band_is_text(config):
    values = [f"v{i % 50}" for i in range(100)]  # ratio 0.5
    assert infer_column_type(values, config) == ColumnType.TEXT

def test_inference_is_deterministic(config):
    values = ["a", "b", "a", "c", "", "b"]
    assert infer_column_type(values, config) == infer_column_type(list(values), config)

def test_geo_is_never_inferred(config):
    values = ["40.7128,-74.0060", "34.0522,-118.2437", "51.5074,-0.1278"]
    assert infer_column_type(values, config) != ColumnType.GEO

def test_null_and_occurrence_accounting(config):
    headers = ["a", "b"]
    rows = [["x", "1"], ["", "2"], ["y"], ["x", " "], ["z", "3"]]
    schema = infer_schema(headers, rows, config)

    assert schema.row_count == len(rows)
    for i, col in enumerate(schema.columns):
        values = [r[i] if i < len(r) else "" for r in rows]
        occurrences = Counter(v for v in values if v.strip())
        assert col.null_count + sum(occurrences.values()) == schema.row_count
        assert col.unique_count == len(occurrences)
        assert col.unique_count <= schema.row_count - col.null_count

def test_sample_values_limited_to_five(config):
    rows = [[str(i)] for i in range(20)]
    schema = infer_schema(["n"], rows, config)
    assert schema.columns[0].sample_values == ("0", "1", "2", "3", "4")

def test_empty_dataset_schema(config):
    schema = infer_schema(["a", "b"], [], config)
    assert schema.row_count == 0
    assert all(c.type == ColumnType.TEXT for c in schema.columns)
    assert all(c.null_count == 0 and c.unique_count == 0 for c in schema.columns)

def test_schema_to_dict_uses_wire_names(config):
    schema = infer_schema(["amount"], [["1"], [""]], config)
    data = schema.to_dict()
    assert data == {
        "columns": [{
            "name": "amount",
            "type": "numeric",
            "nullCount": 1,
            "uniqueCount": 1,
            "sampleValues": ["1"],
        }],
        "rowCount": 2,
    }

if __name__ == "__main__":
    sys.exit(pytest.main([__file__]))
