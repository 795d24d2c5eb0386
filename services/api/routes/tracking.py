"""Endpoints that link users to books and lists."""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..dependencies import get_service
from ..models import AddBookRequest, AddListRequest, TrackingResponse
from core.tracking_service import MonitoringService
from core.types import OutcomeCode, TrackingResult


router = APIRouter()

STATUS_BY_OUTCOME = {
    OutcomeCode.CREATED: 201,
    OutcomeCode.ALREADY_LINKED: 200,
    OutcomeCode.UNLINKED: 200,
    OutcomeCode.DUPLICATE: 409,
    OutcomeCode.NOT_FOUND: 404,
    OutcomeCode.FORBIDDEN: 403,
    OutcomeCode.UPSTREAM_FETCH_FAILED: 502,
    OutcomeCode.INTERNAL_ERROR: 500,
}


def _respond(result: TrackingResult) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_BY_OUTCOME[result.code],
        content=result.to_dict(),
    )


@router.post("/books", response_model=TrackingResponse, status_code=201)
async def add_book(req: AddBookRequest, service: MonitoringService = Depends(get_service)):
    """
    Start tracking a book page for a user.

    Status codes:
        201 book linked, 200 already linked, 403 plan limit reached,
        404 unknown user, 502 book page unreadable, 500 unexpected error
    """
    result = await service.add_item_to_user(req.userId, req.bookUrl)
    return _respond(result)


@router.post("/lists", response_model=TrackingResponse, status_code=201)
async def add_list(req: AddListRequest, service: MonitoringService = Depends(get_service)):
    """
    Import a list for a user and synchronise it immediately.

    Status codes:
        201 list added, 409 already added by this user, 403 plan does not
        allow lists, 404 unknown user, 500 unexpected error
    """
    result = await service.add_list_to_user(req.userId, req.urlList)
    return _respond(result)


@router.delete("/users/{user_id}/books/{catalog_id}", response_model=TrackingResponse)
async def unlink_book(
    user_id: int, catalog_id: str, service: MonitoringService = Depends(get_service)
):
    """Stop tracking a book for a user; 404 when the book or link is missing."""
    result = await service.unlink_item(user_id, catalog_id)
    return _respond(result)
