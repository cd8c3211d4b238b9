from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .models import UNITS, ConditioningLog

T = TypeVar("T")

AGGREGATABLE_TYPES: dict[str, type[BaseModel]] = {"ConditioningLog": ConditioningLog}


class SampleRate(str, Enum):
    MILLISECOND = "millisecond"
    SECOND = "second"
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


class AggregationType(str, Enum):
    SUM = "sum"
    AVG = "avg"
    MIN = "min"
    MAX = "max"
    COUNT = "count"


class AggregationQuery(BaseModel):
    """Parameters of a time-series aggregation over cached logs.

    `aggregated_property` must name a field of `aggregated_type`;
    `aggregated_value_unit` is the unit quantity-valued fields are converted
    to before reduction (their own unit when omitted).
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    aggregated_type: str = "ConditioningLog"
    aggregated_property: str
    aggregated_value_unit: str | None = None
    aggregation_type: AggregationType = AggregationType.SUM
    sample_rate: SampleRate = SampleRate.DAY

    @field_validator("aggregated_type")
    @classmethod
    def _supported_type(cls, value: str) -> str:
        if value not in AGGREGATABLE_TYPES:
            raise ValueError(
                f"aggregatedType must be one of: {', '.join(AGGREGATABLE_TYPES)}"
            )
        return value

    @field_validator("aggregated_value_unit")
    @classmethod
    def _known_unit(cls, value: str | None) -> str | None:
        if value is not None and value not in UNITS:
            raise ValueError(f"Unsupported unit: {value}")
        return value

    @model_validator(mode="after")
    def _property_of_type(self) -> "AggregationQuery":
        model = AGGREGATABLE_TYPES[self.aggregated_type]
        if self.aggregated_property not in model.model_fields:
            raise ValueError(
                f"aggregatedProperty must be a field of {self.aggregated_type}"
            )
        return self


class DataPoint(BaseModel, Generic[T]):
    timestamp: datetime
    value: T


class TimeSeries(BaseModel, Generic[T]):
    """Points ordered by timestamp."""

    unit: str | None = None
    data: list[DataPoint[T]] = Field(default_factory=list)


class AggregatedDataPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime  # bucket start
    value: float
    count: int


class AggregatedTimeSeries(BaseModel):
    aggregated_property: str
    aggregation_type: AggregationType
    sample_rate: SampleRate
    unit: str | None = None
    data: list[AggregatedDataPoint] = Field(default_factory=list)

    def values(self) -> list[Any]:
        return [p.value for p in self.data]


class ConditioningDataPoint(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    time_stamp: datetime
    value: float | None = None


class ConditioningDataSeries(BaseModel):
    """Durations of one activity in hours, as consumed by the legacy dashboard."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    activity_id: int
    start: datetime | None = None
    label: str
    unit: str = "hours"
    data: list[ConditioningDataPoint] = Field(default_factory=list)


class ConditioningData(BaseModel):
    dataseries: list[ConditioningDataSeries] = Field(default_factory=list)
