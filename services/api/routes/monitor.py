"""Monitoring and list synchronisation triggers."""
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_service
from ..models import BatchSummaryResponse, RankedBookResponse, UnitOutcomeResponse
from core.tracking_service import MonitoringService
from utils.error_handling import NotFoundError, PersistenceFailure


router = APIRouter()


@router.get("/books/monitorBooks", response_model=BatchSummaryResponse)
async def monitor_books(service: MonitoringService = Depends(get_service)):
    """
    Reconcile every tracked book now.

    Per-book failures are reported in the summary; the request only fails
    when the tracked books cannot be listed.

    Example response:
        ```json
        {
            "operation": "monitor_items",
            "total": 10,
            "succeeded": 9,
            "failed": 1,
            "failures": [{"unit_id": "9788498381498", "error": "FetchFailure: HTTP 503", "error_kind": "fetch"}],
            "decisions": {"no_change": 7, "price_drop": 2}
        }
        ```
    """
    try:
        summary = await service.monitor_all_items()
    except PersistenceFailure as e:
        raise HTTPException(status_code=500, detail=f"Error monitoring books: {e}")
    return summary.to_dict()


@router.get("/books/processLists", response_model=BatchSummaryResponse)
async def process_lists(service: MonitoringService = Depends(get_service)):
    """Synchronise every tracked list now."""
    try:
        summary = await service.sync_all_lists()
    except PersistenceFailure as e:
        raise HTTPException(status_code=500, detail=f"Error processing lists: {e}")
    return summary.to_dict()


@router.post("/books/monitor/{catalog_id}", response_model=UnitOutcomeResponse)
async def monitor_book(catalog_id: str, service: MonitoringService = Depends(get_service)):
    """
    Reconcile a single book by ISBN.

    Raises:
        HTTPException: 404 if the book is not tracked
    """
    try:
        outcome = await service.monitor_item(catalog_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return outcome.to_dict()


@router.post("/lists/{list_id}/sync", response_model=UnitOutcomeResponse)
async def sync_list(list_id: int, service: MonitoringService = Depends(get_service)):
    """
    Synchronise a single list.

    Raises:
        HTTPException: 404 if the list does not exist
    """
    try:
        outcome = await service.sync_list(list_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return outcome.to_dict()


@router.get("/books/ranking", response_model=List[RankedBookResponse])
async def discount_ranking(service: MonitoringService = Depends(get_service)):
    """Books sorted by the discount between their two most recent prices."""
    try:
        ranked = await service.discount_ranking()
    except PersistenceFailure as e:
        raise HTTPException(status_code=500, detail=f"Error building ranking: {e}")

    return [
        {
            "isbn13": entry.item.catalog_id,
            "title": entry.item.title,
            "author": entry.item.author,
            "link": entry.item.source_url,
            "image_url": entry.item.image_url,
            "current_price": entry.current_price,
            "previous_price": entry.previous_price,
            "discount_amount": entry.discount_amount,
            "discount_percentage": entry.discount_percentage,
            "price_history": entry.price_history,
        }
        for entry in ranked
    ]
