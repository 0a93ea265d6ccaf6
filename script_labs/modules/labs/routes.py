from typing import Dict

from fastapi import APIRouter, Depends, Request

from script_labs.core.rate_limit import RateLimitedRoute, api_limit
from script_labs.core.responses import success_body
from script_labs.core.security import get_current_user
from script_labs.core.validation import validate_model
from script_labs.database.postgres import Database, get_db
from script_labs.middleware.request_logging import security_log
from script_labs.modules.labs.schemas import (
    LabCreate, LabDeleteResponse, LabDetailResponse, LabIdParam, LabListQuery,
    LabListResponse, LabMutationResponse, LabSearchQuery, LabSearchResponse, LabUpdate
)
from script_labs.modules.labs.service import LabService

router = APIRouter(
    prefix="/api/labs",
    tags=["labs"],
    route_class=RateLimitedRoute,
    dependencies=[Depends(get_current_user)],
)


def get_lab_service(db: Database = Depends(get_db)) -> LabService:
    return LabService(db)


def lab_id_param(lab_id: str) -> int:
    return validate_model(LabIdParam, {"id": lab_id}).id


def list_query(request: Request) -> LabListQuery:
    return validate_model(LabListQuery, dict(request.query_params))


def search_query(request: Request) -> LabSearchQuery:
    params = dict(request.query_params)
    params.pop("search", None)
    return validate_model(LabSearchQuery, params)


@router.get("/search", response_model=LabSearchResponse)
@api_limit
async def search_labs(
    request: Request,
    query: LabSearchQuery = Depends(search_query),
    current_user: Dict = Depends(get_current_user),
    service: LabService = Depends(get_lab_service)
):
    """Search the caller's labs by title or description (``q``)"""
    rows, pagination = await service.list_labs(current_user["id"], query)
    return success_body(rows, pagination=pagination, search_query=query.search or "")


@router.get("", response_model=LabListResponse)
@api_limit
async def list_labs(
    request: Request,
    query: LabListQuery = Depends(list_query),
    current_user: Dict = Depends(get_current_user),
    service: LabService = Depends(get_lab_service)
):
    """List the caller's labs"""
    rows, pagination = await service.list_labs(current_user["id"], query)
    return success_body(rows, pagination=pagination)


@router.get("/{lab_id}", response_model=LabDetailResponse)
@api_limit
async def get_lab(
    request: Request,
    lab_id: int = Depends(lab_id_param),
    current_user: Dict = Depends(get_current_user),
    service: LabService = Depends(get_lab_service)
):
    """Get one of the caller's labs"""
    lab = await service.get_lab(lab_id, current_user["id"])
    return success_body(lab)


@router.post(
    "",
    response_model=LabMutationResponse,
    status_code=201,
    dependencies=[Depends(security_log("CREATE_LAB"))],
)
@api_limit
async def create_lab(
    request: Request,
    lab: LabCreate,
    current_user: Dict = Depends(get_current_user),
    service: LabService = Depends(get_lab_service)
):
    """Add a lab"""
    created = await service.create_lab(lab, current_user["id"])
    return success_body(created, "Lab added successfully")


@router.put(
    "/{lab_id}",
    response_model=LabMutationResponse,
    dependencies=[Depends(security_log("UPDATE_LAB"))],
)
@api_limit
async def update_lab(
    request: Request,
    lab: LabUpdate,
    lab_id: int = Depends(lab_id_param),
    current_user: Dict = Depends(get_current_user),
    service: LabService = Depends(get_lab_service)
):
    """Update title and/or description of a lab"""
    updated = await service.update_lab(lab_id, lab, current_user["id"])
    return success_body(updated, "lab updated successfully")


@router.delete(
    "/{lab_id}",
    response_model=LabDeleteResponse,
    dependencies=[Depends(security_log("DELETE_LAB"))],
)
@api_limit
async def delete_lab(
    request: Request,
    lab_id: int = Depends(lab_id_param),
    current_user: Dict = Depends(get_current_user),
    service: LabService = Depends(get_lab_service)
):
    """Delete a lab"""
    deleted = await service.delete_lab(lab_id, current_user["id"])
    return success_body(deleted, "lab deleted successfully")
