"""Read-only inventory lookups."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

router = APIRouter(prefix="/api/inventory", tags=["inventory"])


class InventoryQuery(BaseModel):
    sku: str | None = None
    category: str | None = None


def _listing(items) -> JSONResponse:
    return JSONResponse({"success": True, "count": len(items), "data": [i.as_dict() for i in items]})


@router.post("/check")
async def check_inventory(request: Request, query: InventoryQuery | None = None):
    """Items by SKU, else by category, else the whole table."""
    query = query or InventoryQuery()
    items = request.app.state.gateway.inventory.check(sku=query.sku, category=query.category)
    return _listing(items)


@router.get("/low-stock")
async def low_stock(request: Request):
    return _listing(request.app.state.gateway.inventory.low_stock())
