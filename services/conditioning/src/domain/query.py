from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import ConditioningLog, Quantity, ensure_utc


_CONFIG = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class SearchOperator(str, Enum):
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    CONTAINS = "contains"
    IN = "in"


def _comparable(field_value: Any, value: Any) -> tuple[Any, Any]:
    """Bring a log field and a criterion value onto a common footing."""
    if isinstance(field_value, Quantity):
        if isinstance(value, Quantity):
            return field_value.to(value.unit).value, value.value
        if isinstance(value, dict):
            other = Quantity.model_validate(value)
            return field_value.to(other.unit).value, other.value
        return field_value.value, value
    if isinstance(field_value, datetime):
        if isinstance(value, str):
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if isinstance(value, datetime):
            return ensure_utc(field_value), ensure_utc(value)
        return field_value, value
    if isinstance(field_value, Enum):
        return field_value.value, value.value if isinstance(value, Enum) else value
    return field_value, value


class SearchCriterion(BaseModel):
    model_config = _CONFIG

    key: str
    operator: SearchOperator = SearchOperator.EQ
    value: Any = None

    def matches(self, log: ConditioningLog) -> bool:
        field_value = getattr(log, self.key, None)
        if self.operator is SearchOperator.IN:
            values = self.value if isinstance(self.value, (list, tuple, set)) else [self.value]
            return any(self._compare(field_value, SearchOperator.EQ, v) for v in values)
        return self._compare(field_value, self.operator, self.value)

    @staticmethod
    def _compare(field_value: Any, operator: SearchOperator, value: Any) -> bool:
        if field_value is None:
            return operator is SearchOperator.NE and value is not None
        left, right = _comparable(field_value, value)
        try:
            if operator is SearchOperator.EQ:
                return left == right
            if operator is SearchOperator.NE:
                return left != right
            if operator is SearchOperator.CONTAINS:
                return str(right).lower() in str(left).lower()
            if operator is SearchOperator.GT:
                return left > right
            if operator is SearchOperator.GTE:
                return left >= right
            if operator is SearchOperator.LT:
                return left < right
            if operator is SearchOperator.LTE:
                return left <= right
        except TypeError:
            return False
        return False


class SortCriterion(BaseModel):
    model_config = _CONFIG

    key: str
    descending: bool = False


def _sort_key(key: str):
    def extract(log: ConditioningLog):
        value = getattr(log, key, None)
        if isinstance(value, Quantity):
            value = value.to(value.unit).value
        elif isinstance(value, Enum):
            value = value.value
        elif isinstance(value, datetime):
            value = ensure_utc(value)
        # logs lacking the field sort first
        return (value is not None, value)

    return extract


class LogQuery(BaseModel):
    """Search, filter and sort criteria over conditioning log fields.

    A log is selected when it matches at least one search criterion (if any
    are given) and every filter criterion. Built from already-sanitized
    request input by the request layer.
    """

    model_config = _CONFIG

    search_criteria: list[SearchCriterion] = Field(default_factory=list)
    filter_criteria: list[SearchCriterion] = Field(default_factory=list)
    sort_criteria: list[SortCriterion] = Field(default_factory=list)
    offset: int = 0
    limit: int | None = None

    def criteria_for(self, key: str) -> list[SearchCriterion]:
        return [
            c for c in (*self.search_criteria, *self.filter_criteria) if c.key == key
        ]

    def without(self, key: str) -> "LogQuery":
        """Copy of the query with every criterion naming `key` removed."""
        return self.model_copy(
            update={
                "search_criteria": [c for c in self.search_criteria if c.key != key],
                "filter_criteria": [c for c in self.filter_criteria if c.key != key],
                "sort_criteria": [c for c in self.sort_criteria if c.key != key],
            }
        )

    def execute(self, logs: Iterable[ConditioningLog]) -> list[ConditioningLog]:
        selected = [
            log
            for log in logs
            if (
                not self.search_criteria
                or any(c.matches(log) for c in self.search_criteria)
            )
            and all(c.matches(log) for c in self.filter_criteria)
        ]
        # apply in reverse so the first criterion is the primary key
        for criterion in reversed(self.sort_criteria):
            selected.sort(key=_sort_key(criterion.key), reverse=criterion.descending)
        end = None if self.limit is None else self.offset + self.limit
        return selected[self.offset : end]


def sort_logs(logs: Iterable[ConditioningLog], key: str) -> list[ConditioningLog]:
    """Sort ascending by `key`, logs lacking the field first."""
    return sorted(logs, key=_sort_key(key))
