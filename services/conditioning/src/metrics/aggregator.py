from __future__ import annotations

from datetime import datetime
from statistics import fmean
from typing import Any, Callable, Optional

from src.core.logger import get_logger
from src.domain.aggregation import (
    AggregatedDataPoint,
    AggregatedTimeSeries,
    AggregationQuery,
    AggregationType,
    DataPoint,
    TimeSeries,
)
from src.domain.models import Quantity
from src.metrics.bucketing import bucket_start

logger = get_logger("conditioning.aggregator")

ValueExtractor = Callable[[DataPoint[Any]], Any]

_REDUCERS: dict[AggregationType, Callable[[list[float]], float]] = {
    AggregationType.SUM: lambda values: float(sum(values)),
    AggregationType.AVG: fmean,
    AggregationType.MIN: min,
    AggregationType.MAX: max,
    AggregationType.COUNT: lambda values: float(len(values)),
}


class TimeSeriesAggregator:
    """Groups a time series into sample-rate buckets and reduces each bucket.

    Pure and synchronous. Points whose extracted value is None are skipped;
    so are non-numeric values, with a warning.
    """

    def aggregate(
        self,
        series: TimeSeries[Any],
        query: AggregationQuery,
        extractor: Optional[ValueExtractor] = None,
    ) -> AggregatedTimeSeries:
        extract = extractor or self._default_extractor(query)
        buckets: dict[datetime, list[float]] = {}
        skipped = 0
        for point in series.data:
            value = extract(point)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                skipped += 1
                continue
            start = bucket_start(point.timestamp, query.sample_rate)
            buckets.setdefault(start, []).append(float(value))
        if skipped:
            logger.warning(
                "non_numeric_values_skipped",
                extra={"property": query.aggregated_property, "count": skipped},
            )

        reduce = _REDUCERS[query.aggregation_type]
        return AggregatedTimeSeries(
            aggregated_property=query.aggregated_property,
            aggregation_type=query.aggregation_type,
            sample_rate=query.sample_rate,
            unit=query.aggregated_value_unit or series.unit,
            data=[
                AggregatedDataPoint(timestamp=start, value=reduce(values), count=len(values))
                for start, values in sorted(buckets.items())
            ],
        )

    @staticmethod
    def _default_extractor(query: AggregationQuery) -> ValueExtractor:
        def extract(point: DataPoint[Any]) -> Any:
            value = getattr(point.value, query.aggregated_property, point.value)
            if isinstance(value, Quantity):
                unit = query.aggregated_value_unit or value.unit
                return value.to(unit).value
            return value

        return extract
