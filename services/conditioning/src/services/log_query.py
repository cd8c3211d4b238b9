from __future__ import annotations

from typing import Any, Optional

from src.core.config import settings
from src.core.logger import get_logger
from src.domain.aggregation import (
    AggregatedTimeSeries,
    AggregationQuery,
    ConditioningData,
    ConditioningDataPoint,
    ConditioningDataSeries,
    DataPoint,
    TimeSeries,
)
from src.domain.errors import UnauthorizedAccessError
from src.domain.models import ActivityType, ConditioningLog, Quantity, UserContext
from src.domain.query import LogQuery, SortCriterion
from src.metrics.aggregator import TimeSeriesAggregator
from src.metrics.bucketing import as_utc

from .access import AccessGate
from .cache_store import CacheStore
from .initialization import InitializationGuard

logger = get_logger("conditioning.query")

# ids expected by the dashboard feed
ACTIVITY_IDS: dict[ActivityType, int] = {
    ActivityType.MTB: 1,
    ActivityType.RUN: 2,
    ActivityType.SWIM: 3,
    ActivityType.BIKE: 4,
    ActivityType.SKI: 5,
    ActivityType.OTHER: 6,
}


class LogQueryService:
    """Read-only views over the cached logs a caller may see.

    Admins without a target see every cached log, admins with a target see
    that user's logs, everyone else sees only their own.
    """

    def __init__(
        self,
        cache: CacheStore,
        guard: InitializationGuard,
        gate: AccessGate,
        aggregator: Optional[TimeSeriesAggregator] = None,
        default_sort_key: Optional[str] = None,
    ):
        self.cache = cache
        self.guard = guard
        self.gate = gate
        self.aggregator = aggregator or TimeSeriesAggregator()
        self.default_sort_key = default_sort_key or settings.default_sort_key

    async def fetch_logs(
        self,
        ctx: UserContext,
        target_user_id: Optional[str] = None,
        query: Optional[LogQuery] = None,
        include_deleted: bool = False,
    ) -> list[ConditioningLog]:
        logs, query = await self._accessible(ctx, target_user_id, query)
        if query is None or not query.sort_criteria:
            # sort before offset and limit apply
            query = (query or LogQuery()).model_copy(
                update={"sort_criteria": [SortCriterion(key=self.default_sort_key)]}
            )
        return self._select(logs, query, include_deleted)

    async def fetch_aggregated_logs(
        self,
        ctx: UserContext,
        aggregation_query: AggregationQuery,
        target_user_id: Optional[str] = None,
        query: Optional[LogQuery] = None,
        include_deleted: bool = False,
    ) -> AggregatedTimeSeries:
        logs, query = await self._accessible(ctx, target_user_id, query)
        series = self._to_series(self._select(logs, query, include_deleted))
        prop = aggregation_query.aggregated_property
        unit = aggregation_query.aggregated_value_unit

        def extract(point: DataPoint[Any]) -> Any:
            value = getattr(point.value, prop, None)
            if isinstance(value, Quantity):
                return value.to(unit or value.unit).value
            return value

        return self.aggregator.aggregate(series, aggregation_query, extract)

    async def fetch_activity_counts(
        self,
        ctx: UserContext,
        target_user_id: Optional[str] = None,
        query: Optional[LogQuery] = None,
        include_deleted: bool = False,
    ) -> dict[str, int]:
        logs, query = await self._accessible(ctx, target_user_id, query)
        counts: dict[str, int] = {}
        for log in self._select(logs, query, include_deleted):
            counts[log.activity.value] = counts.get(log.activity.value, 0) + 1
        return counts

    async def conditioning_data(
        self, ctx: UserContext, target_user_id: Optional[str] = None
    ) -> ConditioningData:
        logs, _ = await self._accessible(ctx, target_user_id, None)
        series = self._to_series(self._select(logs, None, False))
        grouped: dict[ActivityType, list[DataPoint[Any]]] = {}
        for point in series.data:
            grouped.setdefault(point.value.activity, []).append(point)

        dataseries = []
        for activity, points in grouped.items():
            dataseries.append(
                ConditioningDataSeries(
                    activity_id=ACTIVITY_IDS.get(activity, 0),
                    start=points[0].timestamp,
                    label=activity.value,
                    unit="hours",
                    data=[
                        ConditioningDataPoint(
                            time_stamp=p.timestamp,
                            value=p.value.duration.to("hours").value
                            if p.value.duration is not None
                            else None,
                        )
                        for p in points
                    ],
                )
            )
        return ConditioningData(dataseries=dataseries)

    async def _accessible(
        self,
        ctx: UserContext,
        target_user_id: Optional[str],
        query: Optional[LogQuery],
    ) -> tuple[list[ConditioningLog], Optional[LogQuery]]:
        await self.guard.ensure_ready()
        is_admin = self.gate.is_admin(ctx)
        target = str(target_user_id) if target_user_id is not None else None
        if target is None and not is_admin:
            target = ctx.user_id
        self.gate.authorize(ctx, target)

        if query is not None:
            if not is_admin:
                for criterion in query.criteria_for("user_id"):
                    values = (
                        criterion.value
                        if isinstance(criterion.value, (list, tuple, set))
                        else [criterion.value]
                    )
                    for value in values:
                        if value is not None and str(value) != ctx.user_id:
                            logger.warning(
                                "query_names_other_user",
                                extra={"requesting_user_id": ctx.user_id, "named": str(value)},
                            )
                            raise UnauthorizedAccessError(
                                f"User {ctx.user_id} is not allowed to query logs of user {value}"
                            )
            # logs carry no user id; ownership comes from the cache entry
            query = query.without("user_id")

        if target is None:
            return self.cache.all_logs(), query
        entry = self.cache.entry_for(target)
        return (list(entry.logs) if entry is not None else []), query

    @staticmethod
    def _select(
        logs: list[ConditioningLog],
        query: Optional[LogQuery],
        include_deleted: bool,
    ) -> list[ConditioningLog]:
        visible = [log for log in logs if include_deleted or not log.is_deleted]
        return query.execute(visible) if query is not None else visible

    @staticmethod
    def _to_series(logs: list[ConditioningLog]) -> TimeSeries[Any]:
        points: list[DataPoint[Any]] = []
        for log in logs:
            if log.start is None:
                logger.warning("log_without_start_skipped", extra={"log_id": log.entity_id})
                continue
            points.append(DataPoint[Any](timestamp=log.start, value=log))
        points.sort(key=lambda p: as_utc(p.timestamp))
        return TimeSeries[Any](data=points)
