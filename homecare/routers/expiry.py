from datetime import timedelta

from fastapi import APIRouter, HTTPException, Query, Response, status

from homecare.config import get_settings
from homecare.database import get_db
from homecare.log import get_logger
from homecare.models import (
    ExpiryItem,
    ExpiryItemCreate,
    ExpiryItemUpdate,
    ExpiryStatus,
    apply_update,
    utcnow,
)

router = APIRouter(prefix="/api/expiry", tags=["expiry"])
logger = get_logger(__name__)


def _get_item_or_404(item_id: int) -> ExpiryItem:
    item = get_db().expiry_items.get(item_id)
    if item is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Expiry item {item_id} not found",
        )
    return item


@router.get("")
async def list_items() -> list[ExpiryItem]:
    return sorted(get_db().expiry_items.all(), key=lambda i: i.expiry_date)


@router.get("/status/{item_status}")
async def list_items_by_status(item_status: ExpiryStatus) -> list[ExpiryItem]:
    items = [i for i in get_db().expiry_items.all() if i.status == item_status]
    return sorted(items, key=lambda i: i.expiry_date)


@router.get("/nearing-expiry")
async def list_items_nearing_expiry(
    days: int | None = Query(default=None, ge=0),
) -> list[ExpiryItem]:
    """Active items expiring within ``days`` from today (inclusive)."""
    if days is None:
        days = get_settings().expiry_warning_days
    today = utcnow().date()
    cutoff = today + timedelta(days=days)
    items = [
        i
        for i in get_db().expiry_items.all()
        if i.status == ExpiryStatus.ACTIVE and i.expiry_date <= cutoff
    ]
    return sorted(items, key=lambda i: i.expiry_date)


@router.get("/{item_id}")
async def get_item(item_id: int) -> ExpiryItem:
    return _get_item_or_404(item_id)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_item(payload: ExpiryItemCreate) -> ExpiryItem:
    db = get_db()
    item = ExpiryItem(id=db.expiry_items.next_id(), **payload.model_dump())
    db.expiry_items.put(item.id, item)
    logger.info(
        "expiry_item_created",
        item_id=item.id,
        expiry_date=item.expiry_date.isoformat(),
    )
    return item


@router.patch("/{item_id}")
async def update_item(item_id: int, payload: ExpiryItemUpdate) -> ExpiryItem:
    item = apply_update(_get_item_or_404(item_id), payload)
    item.updated_at = utcnow()
    get_db().expiry_items.put(item_id, item)
    return item


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(item_id: int) -> Response:
    _get_item_or_404(item_id)
    get_db().expiry_items.delete(item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
