"""Pydantic models for API request/response schemas."""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any


class AddBookRequest(BaseModel):
    """
    Request to start tracking a single book page for a user.

    Field names follow the public API (camelCase).
    """
    userId: int = Field(..., ge=1, description="User id")
    bookUrl: str = Field(..., min_length=1, description="Product page URL")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "userId": 1,
                "bookUrl": "https://www.buscalibre.cl/libro-el-principito/9788498381498/p/1",
            }
        }
    )


class AddListRequest(BaseModel):
    """Request to import a catalog or wishlist page for a user."""
    userId: int = Field(..., ge=1, description="User id")
    urlList: str = Field(..., min_length=1, description="Catalog or wishlist URL")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "userId": 1,
                "urlList": "https://www.buscalibre.cl/v2/lista-de-deseos_123_l.html",
            }
        }
    )


class TrackingResponse(BaseModel):
    """Outcome of an add or unlink request."""
    code: str = Field(..., description="Outcome code, e.g. created or duplicate")
    message: str
    item: Optional[Dict[str, Any]] = None
    list: Optional[Dict[str, Any]] = None
    outcome: Optional[Dict[str, Any]] = None


class BatchSummaryResponse(BaseModel):
    """Counts of a monitoring or list synchronisation run."""
    operation: str
    total: int
    succeeded: int
    failed: int
    failures: List[Dict[str, Any]] = Field(default_factory=list)
    decisions: Dict[str, int] = Field(default_factory=dict)
    started_at: str
    finished_at: Optional[str] = None
    duration_seconds: float = 0.0


class UnitOutcomeResponse(BaseModel):
    """Result of monitoring one book or syncing one list on demand."""
    unit_id: str
    succeeded: bool
    decision: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    detail: Dict[str, Any] = Field(default_factory=dict)


class RankedBookResponse(BaseModel):
    """One entry of the discount ranking."""
    isbn13: str
    title: str
    author: str
    link: str
    image_url: str
    current_price: int
    previous_price: Optional[int] = None
    discount_amount: int = 0
    discount_percentage: int = 0
    price_history: List[int] = Field(default_factory=list)
