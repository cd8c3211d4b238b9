import pytest
from pydantic import ValidationError
from src.domain.aggregation import AggregationQuery, AggregationType, SampleRate


def test_defaults_and_camel_case():
    query = AggregationQuery.model_validate(
        {"aggregatedProperty": "duration", "aggregatedValueUnit": "min"}
    )

    assert query.aggregated_type == "ConditioningLog"
    assert query.aggregation_type is AggregationType.SUM
    assert query.sample_rate is SampleRate.DAY
    assert query.aggregated_value_unit == "min"


@pytest.mark.parametrize(
    "data",
    [
        {"aggregated_property": "heartbeat"},
        {"aggregated_property": "duration", "aggregated_type": "SensorLog"},
        {"aggregated_property": "duration", "aggregated_value_unit": "parsec"},
        {"aggregated_property": "duration", "sample_rate": "fortnight"},
    ],
)
def test_invalid_queries_rejected(data):
    with pytest.raises(ValidationError):
        AggregationQuery(**data)
