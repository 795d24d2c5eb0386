"""FastAPI dependencies."""
from fastapi import Request

from core.tracking_service import MonitoringService
from database.manager import DatabaseManager


async def get_db(request: Request) -> DatabaseManager:
    """
    Get database manager from app state.

    The manager is created by the container during application startup and
    stored in app.state.

    Args:
        request: FastAPI request object

    Returns:
        DatabaseManager: Database connection pool manager
    """
    return request.app.state.db


async def get_service(request: Request) -> MonitoringService:
    """
    Get the monitoring service from app state.

    Example usage:
        ```python
        @router.get("/books/monitorBooks")
        async def monitor_books(service: MonitoringService = Depends(get_service)):
            return (await service.monitor_all_items()).to_dict()
        ```
    """
    return request.app.state.service
