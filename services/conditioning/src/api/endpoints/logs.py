from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Response
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from src.api.dependencies import (
    get_log_query,
    get_log_service,
    get_query_service,
    get_user_context,
)
from src.domain.aggregation import AggregationQuery
from src.domain.models import ConditioningLog, UserContext
from src.domain.query import LogQuery
from src.services.conditioning_logs import ConditioningLogService
from src.services.log_query import LogQueryService

router = APIRouter()


class AggregateRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    aggregation: AggregationQuery
    query: Optional[LogQuery] = None
    user_id: Optional[str] = None
    include_deleted: bool = False


def _dump_logs(logs: list[ConditioningLog]) -> list[dict[str, Any]]:
    return [log.model_dump(mode="json") for log in logs]


@router.get("/users/{user_id}/logs")
async def list_user_logs(
    user_id: str,
    include_deleted: bool = False,
    query: Optional[LogQuery] = Depends(get_log_query),
    ctx: UserContext = Depends(get_user_context),
    svc: LogQueryService = Depends(get_query_service),
):
    logs = await svc.fetch_logs(ctx, user_id, query, include_deleted)
    return {"logs": _dump_logs(logs)}


@router.post("/users/{user_id}/logs", status_code=201)
async def create_log(
    user_id: str,
    log: ConditioningLog,
    ctx: UserContext = Depends(get_user_context),
    svc: ConditioningLogService = Depends(get_log_service),
):
    log_id = await svc.create_log(ctx, user_id, log.model_copy(update={"entity_id": None}))
    return {"entity_id": log_id}


@router.get("/users/{user_id}/logs/{log_id}")
async def get_log(
    user_id: str,
    log_id: str,
    include_deleted: bool = False,
    ctx: UserContext = Depends(get_user_context),
    svc: ConditioningLogService = Depends(get_log_service),
):
    log = await svc.fetch_log(ctx, user_id, log_id, include_deleted)
    return log.model_dump(mode="json")


@router.patch("/users/{user_id}/logs/{log_id}", status_code=204)
async def update_log(
    user_id: str,
    log_id: str,
    changes: dict[str, Any] = Body(...),
    ctx: UserContext = Depends(get_user_context),
    svc: ConditioningLogService = Depends(get_log_service),
):
    await svc.update_log(ctx, user_id, log_id, changes)
    return Response(status_code=204)


@router.delete("/users/{user_id}/logs/{log_id}", status_code=204)
async def delete_log(
    user_id: str,
    log_id: str,
    soft_delete: bool = True,
    ctx: UserContext = Depends(get_user_context),
    svc: ConditioningLogService = Depends(get_log_service),
):
    await svc.delete_log(ctx, user_id, log_id, soft_delete)
    return Response(status_code=204)


@router.patch("/users/{user_id}/logs/{log_id}/undelete", status_code=204)
async def undelete_log(
    user_id: str,
    log_id: str,
    ctx: UserContext = Depends(get_user_context),
    svc: ConditioningLogService = Depends(get_log_service),
):
    await svc.undelete_log(ctx, user_id, log_id)
    return Response(status_code=204)


@router.get("/logs")
async def list_logs(
    user_id: Optional[str] = None,
    include_deleted: bool = False,
    query: Optional[LogQuery] = Depends(get_log_query),
    ctx: UserContext = Depends(get_user_context),
    svc: LogQueryService = Depends(get_query_service),
):
    logs = await svc.fetch_logs(ctx, user_id, query, include_deleted)
    return {"logs": _dump_logs(logs)}


@router.post("/logs/aggregate")
async def aggregate_logs(
    request: AggregateRequest,
    ctx: UserContext = Depends(get_user_context),
    svc: LogQueryService = Depends(get_query_service),
):
    series = await svc.fetch_aggregated_logs(
        ctx,
        request.aggregation,
        request.user_id,
        request.query,
        request.include_deleted,
    )
    return series.model_dump(mode="json")


@router.get("/logs/activities")
async def activity_counts(
    user_id: Optional[str] = None,
    include_deleted: bool = False,
    ctx: UserContext = Depends(get_user_context),
    svc: LogQueryService = Depends(get_query_service),
):
    return await svc.fetch_activity_counts(ctx, user_id, None, include_deleted)


@router.get("/logs/conditioning-data")
async def conditioning_data(
    user_id: Optional[str] = None,
    ctx: UserContext = Depends(get_user_context),
    svc: LogQueryService = Depends(get_query_service),
):
    data = await svc.conditioning_data(ctx, user_id)
    return data.model_dump(mode="json", by_alias=True)
