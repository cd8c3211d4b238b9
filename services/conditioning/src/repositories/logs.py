from src.domain.events import EventName
from src.domain.models import ConditioningLog

from .base import InMemoryRepository


class ConditioningLogRepository(InMemoryRepository[ConditioningLog]):
    """Stores detailed logs; `fetch_all` hands out overview copies."""

    created_event = EventName.LOG_CREATED
    updated_event = EventName.LOG_UPDATED
    deleted_event = EventName.LOG_DELETED
    undeleted_event = EventName.LOG_UNDELETED

    def _prepare(self, entity: ConditioningLog) -> ConditioningLog:
        return super()._prepare(entity).to_detailed()

    def _overview(self, entity: ConditioningLog) -> ConditioningLog:
        return entity.to_overview()
