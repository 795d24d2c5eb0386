"""Health check endpoint."""
from fastapi import APIRouter, Depends, Request

from ..dependencies import get_db
from database.manager import DatabaseManager


router = APIRouter()


@router.get("/health")
async def health_check(request: Request, db: DatabaseManager = Depends(get_db)):
    """
    Health check with dependencies.

    Verifies that the API service is running, can reach the database, and
    reports whether the pipeline scheduler is active.

    Example response (healthy):
        ```json
        {
            "status": "ok",
            "database": "ok",
            "scheduler": "running"
        }
        ```

    Example response (unhealthy):
        ```json
        {
            "status": "ok",
            "database": "error: connection refused",
            "scheduler": "disabled"
        }
        ```
    """
    try:
        await db.execute("SELECT 1")
        db_status = "ok"
    except Exception as e:
        db_status = f"error: {e}"

    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        scheduler_status = "disabled"
    else:
        scheduler_status = "running" if scheduler.is_running else "stopped"

    return {
        "status": "ok",
        "database": db_status,
        "scheduler": scheduler_status,
    }
