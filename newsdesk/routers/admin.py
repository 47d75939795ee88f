"""Admin routes: listing, CRUD and bulk actions for every content collection."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.responses import JSONResponse

from newsdesk.dependencies import admin_session, get_gateway, get_views
from newsdesk.errors import ValidationFailure
from newsdesk.records import DRAFTS, Record, record_type
from newsdesk.schemas import BulkRequest
from newsdesk.services.bulk import BulkFailure, BulkSelection
from newsdesk.services.content import create_record, update_record
from newsdesk.services.pagination import ListingViews
from newsdesk.storage.gateway import PersistenceGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

LISTING_PARAMS = {"nav", "view", "sort", "desc"}
TRUE_VALUES = {"1", "true", "yes", "on"}


def _field_name(model: type[Record], key: str) -> str:
    """Canonical field name for a snake_case or camelCase query key."""
    for name, field in model.model_fields.items():
        if key in (name, field.alias):
            return name
    raise ValidationFailure(f"Unknown field: {key}")


def _coerce(model: type[Record], name: str, raw: str) -> Any:
    annotation = model.model_fields[name].annotation
    if annotation is bool:
        return raw.strip().lower() in TRUE_VALUES
    if annotation is int:
        try:
            return int(raw)
        except ValueError:
            raise ValidationFailure(f"{name} must be a whole number")
    return raw


def listing_filters(collection: str, params: dict[str, str]) -> dict[str, Any]:
    """Equality filters from the query string, typed like the record fields."""
    model = record_type(collection)
    filters = {}
    for key, raw in params.items():
        if key in LISTING_PARAMS:
            continue
        name = _field_name(model, key)
        filters[name] = _coerce(model, name, raw)
    return filters


def _dump(record: Record) -> dict:
    return record.model_dump(mode="json", by_alias=True)


def _not_found(collection: str, record_id: str) -> JSONResponse:
    return JSONResponse(content={"detail": f"{collection}/{record_id} not found"}, status_code=404)


@router.get("/{collection}")
async def list_records(
    collection: str,
    request: Request,
    nav: str = Query(default="first", pattern="^(first|next|prev)$"),
    view: str = Query(default="default", min_length=1),
    sort: Optional[str] = Query(default=None),
    desc: bool = Query(default=False),
    session: str = Depends(admin_session),
    views: ListingViews = Depends(get_views),
):
    """Page through a collection.

    Paging state lives on the server per admin session and ``view`` name.
    Changing ``sort``, ``desc`` or any filter starts again at the first page.
    """
    model = record_type(collection)
    order_by = _field_name(model, sort) if sort else None
    filters = listing_filters(collection, dict(request.query_params))

    listing = views.get(session, collection, view)
    if not listing.matches(order_by, desc, filters):
        page = await listing.configure(order_by, desc, filters)
    elif nav == "next":
        page = await listing.next()
    elif nav == "prev":
        page = await listing.prev()
    else:
        page = await listing.first()
    return page.to_dict()


@router.post("/{collection}")
async def create(
    collection: str,
    payload: dict[str, Any] = Body(...),
    gateway: PersistenceGateway = Depends(get_gateway),
):
    record, created = await create_record(gateway, collection, payload)
    if created:
        logger.info("Created %s/%s", collection, record.id)
    return JSONResponse(content={"data": _dump(record)}, status_code=201 if created else 200)


@router.post("/{collection}/bulk")
async def bulk_action(
    collection: str,
    body: BulkRequest,
    gateway: PersistenceGateway = Depends(get_gateway),
):
    """Apply one action to every listed id, all or nothing.

    A rolled-back attempt answers 409 and echoes the ids so the admin can
    retry the same selection.
    """
    if collection == DRAFTS:
        raise ValidationFailure("Bulk actions are not available for drafts")
    record_type(collection)
    selection = BulkSelection(gateway, collection)
    selection.select_all(body.ids)
    outcome = await selection.perform_action(body.action, confirmed=body.confirm)
    if outcome.failure == BulkFailure.VALIDATION:
        return JSONResponse(content={"detail": outcome.message}, status_code=400)
    if outcome.failure == BulkFailure.BACKEND:
        return JSONResponse(
            content={"detail": outcome.message, "ids": selection.selected_ids},
            status_code=409,
        )
    return outcome.to_dict()


@router.get("/{collection}/{record_id}")
async def get_record(
    collection: str,
    record_id: str,
    gateway: PersistenceGateway = Depends(get_gateway),
):
    record_type(collection)
    record = await gateway.get_one(collection, record_id)
    if record is None:
        return _not_found(collection, record_id)
    return {"data": _dump(record)}


@router.put("/{collection}/{record_id}")
async def put_record(
    collection: str,
    record_id: str,
    patch: dict[str, Any] = Body(...),
    gateway: PersistenceGateway = Depends(get_gateway),
):
    record_type(collection)
    record = await update_record(gateway, collection, record_id, patch)
    if record is None:
        return _not_found(collection, record_id)
    return {"data": _dump(record)}


@router.delete("/{collection}/{record_id}")
async def delete_record(
    collection: str,
    record_id: str,
    gateway: PersistenceGateway = Depends(get_gateway),
):
    record_type(collection)
    if not await gateway.delete(collection, record_id):
        return _not_found(collection, record_id)
    return {"deleted": True}
