from datetime import datetime
from typing import Optional

from fastapi import Depends, Header, HTTPException, Query, Request
from src.domain.models import ActivityType, UserContext
from src.domain.query import LogQuery, SearchCriterion, SearchOperator, SortCriterion
from src.services.conditioning_logs import ConditioningLogService
from src.services.log_query import LogQueryService
from src.startup import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container  # type: ignore[return-value]


def get_log_service(
    container: ServiceContainer = Depends(get_container),
) -> ConditioningLogService:
    return container.logs


def get_query_service(
    container: ServiceContainer = Depends(get_container),
) -> LogQueryService:
    return container.queries


def get_user_context(
    x_user_id: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
    x_user_roles: str = Header(""),
) -> UserContext:
    """Caller identity from headers set by the authenticating proxy."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="missing caller identity")
    roles = [r.strip() for r in x_user_roles.split(",") if r.strip()]
    return UserContext(user_id=x_user_id, user_name=x_user_name, roles=roles)


def get_log_query(
    activity: Optional[ActivityType] = None,
    start_from: Optional[datetime] = None,
    start_to: Optional[datetime] = None,
    note: Optional[str] = None,
    sort: Optional[str] = None,
    descending: bool = False,
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
) -> Optional[LogQuery]:
    filters: list[SearchCriterion] = []
    search: list[SearchCriterion] = []
    if activity is not None:
        filters.append(SearchCriterion(key="activity", value=activity))
    if start_from is not None:
        filters.append(SearchCriterion(key="start", operator=SearchOperator.GTE, value=start_from))
    if start_to is not None:
        filters.append(SearchCriterion(key="start", operator=SearchOperator.LT, value=start_to))
    if note:
        search.append(SearchCriterion(key="note", operator=SearchOperator.CONTAINS, value=note))
    sorting = [SortCriterion(key=sort, descending=descending)] if sort else []
    if not (filters or search or sorting or limit or offset):
        return None
    return LogQuery(
        search_criteria=search,
        filter_criteria=filters,
        sort_criteria=sorting,
        limit=limit,
        offset=offset,
    )
