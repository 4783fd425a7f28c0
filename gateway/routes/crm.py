"""GoHighLevel CRM proxy: contacts, opportunities, tasks and a stats rollup.

Requests are translated onto the GHL v2 API; upstream failures are raised as
``UpstreamError`` and rendered by the central error handlers.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Path, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator

from gateway.upstream.client import UpstreamClient
from gateway.upstream.providers import GHL

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ghl", tags=["crm"])

# GHL record ids are opaque tokens interpolated into upstream paths.
RECORD_ID_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"


class ContactCreate(BaseModel):
    firstName: str | None = None
    lastName: str | None = None
    email: str | None = None
    phone: str | None = None
    tags: list[str] = Field(default_factory=list)
    source: str | None = None

    @model_validator(mode="after")
    def _needs_email_or_phone(self) -> ContactCreate:
        if not (self.email or self.phone):
            raise ValueError("Either email or phone is required")
        return self


def _crm(request: Request) -> UpstreamClient:
    return request.app.state.gateway.client(GHL)


def _location_id(request: Request) -> str:
    return request.app.state.gateway.settings.ghl_location_id


def _as_dict(data: Any) -> dict:
    return data if isinstance(data, dict) else {}


async def _search_contacts(client: UpstreamClient, location_id: str, *, search: str | None, limit: int, offset: int):
    body: dict[str, Any] = {
        "locationId": location_id,
        "pageLimit": limit,
        "page": offset // limit + 1,
    }
    if search:
        body["query"] = search
    result = await client.call("/contacts/search", "POST", body=body)
    return _as_dict(result.raise_for_error().data)


async def _search_opportunities(client: UpstreamClient, location_id: str, *, status: str | None, limit: int):
    result = await client.call(
        "/opportunities/search",
        params={"location_id": location_id, "status": status, "limit": limit},
    )
    return _as_dict(result.raise_for_error().data)


@router.get("/contacts")
async def list_contacts(
    request: Request,
    search: str | None = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    data = await _search_contacts(
        _crm(request), _location_id(request), search=search, limit=limit, offset=offset
    )
    contacts = data.get("contacts", [])
    return JSONResponse(
        {
            "success": True,
            "data": contacts,
            "total": data.get("total", len(contacts)),
            "limit": limit,
            "offset": offset,
        }
    )


@router.post("/contacts", status_code=201)
async def create_contact(request: Request, contact: ContactCreate):
    payload = {"locationId": _location_id(request), **contact.model_dump(exclude_none=True)}
    result = await _crm(request).call("/contacts/", "POST", body=payload)
    data = _as_dict(result.raise_for_error().data)
    created = data.get("contact", data)
    logger.info("Created CRM contact %s", created.get("id"))
    return JSONResponse({"success": True, "data": created}, status_code=201)


@router.get("/contacts/{contactId}")
async def get_contact(request: Request, contactId: str = Path(pattern=RECORD_ID_PATTERN)):
    result = await _crm(request).call(f"/contacts/{contactId}")
    data = _as_dict(result.raise_for_error().data)
    return JSONResponse({"success": True, "data": data.get("contact", data)})


@router.get("/opportunities")
async def list_opportunities(
    request: Request,
    status: str | None = None,
    limit: int = Query(20, ge=1, le=100),
):
    data = await _search_opportunities(_crm(request), _location_id(request), status=status, limit=limit)
    opportunities = data.get("opportunities", [])
    total = _as_dict(data.get("meta")).get("total", len(opportunities))
    return JSONResponse({"success": True, "data": opportunities, "total": total})


@router.get("/tasks")
async def list_tasks(
    request: Request,
    contactId: str | None = Query(None, pattern=RECORD_ID_PATTERN),
    status: str | None = None,
):
    """Tasks for one contact, or a location-wide task search."""
    client = _crm(request)
    if contactId:
        result = await client.call(f"/contacts/{contactId}/tasks")
        tasks = _as_dict(result.raise_for_error().data).get("tasks", [])
        if status:
            completed = status.lower() == "completed"
            tasks = [t for t in tasks if bool(t.get("completed")) == completed]
    else:
        body: dict[str, Any] = {}
        if status:
            body["completed"] = status.lower() == "completed"
        result = await client.call(f"/locations/{_location_id(request)}/tasks/search", "POST", body=body)
        tasks = _as_dict(result.raise_for_error().data).get("tasks", [])
    return JSONResponse({"success": True, "data": tasks, "total": len(tasks)})


@router.get("/stats")
async def crm_stats(request: Request):
    """Contact and open-opportunity totals, fetched concurrently."""
    client = _crm(request)
    location_id = _location_id(request)
    contacts, opportunities = await asyncio.gather(
        _search_contacts(client, location_id, search=None, limit=1, offset=0),
        _search_opportunities(client, location_id, status="open", limit=1),
    )
    return JSONResponse(
        {
            "success": True,
            "data": {
                "locationId": location_id,
                "totalContacts": contacts.get("total", 0),
                "openOpportunities": _as_dict(opportunities.get("meta")).get("total", 0),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        }
    )
