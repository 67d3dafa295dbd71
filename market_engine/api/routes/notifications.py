"""Price alert notification routes."""

import logging
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from market_engine.api.deps import get_alert_engine, get_notification_sink
from market_engine.db.repositories import DataAccessError, NotificationSink
from market_engine.detect.alert_engine import AlertEngine
from market_engine.detect.types import NotificationStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications/price-alerts", tags=["notifications"])

ACTION_STATUSES = {
    "mark_read": NotificationStatus.READ,
    "dismiss": NotificationStatus.DISMISSED,
}


class NotificationResponse(BaseModel):
    id: str
    subscription_id: Optional[str]
    title: str
    message: str
    alert_type: str
    crop_type: str
    location: str
    old_price: float
    new_price: float
    price_change: float
    status: str
    created_at: Optional[datetime]


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    pagination: Pagination


class NotificationActionRequest(BaseModel):
    owner_id: str
    action: Literal["mark_read", "dismiss"]
    notification_ids: list[str] = Field(..., min_length=1)


def _unavailable(e: DataAccessError) -> HTTPException:
    logger.error(f"Notification storage unavailable: {e}")
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Notification storage unavailable",
    )


@router.get("/unread-count")
async def unread_count(
    owner_id: str,
    engine: AlertEngine = Depends(get_alert_engine),
):
    """Count unread notifications for a user."""
    try:
        count = await engine.unread_notification_count(owner_id)
    except DataAccessError as e:
        raise _unavailable(e)
    return {"owner_id": owner_id, "unread": count}


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    owner_id: str,
    status_filter: Optional[NotificationStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sink: NotificationSink = Depends(get_notification_sink),
):
    """List a user's notifications, newest first."""
    try:
        notifications, total = await sink.list_for_owner(
            owner_id, status_filter, limit=limit, offset=(page - 1) * limit
        )
    except DataAccessError as e:
        raise _unavailable(e)

    return NotificationListResponse(
        notifications=[
            NotificationResponse(
                id=n.id,
                subscription_id=n.subscription_id,
                title=n.title,
                message=n.message,
                alert_type=n.alert_type.value,
                crop_type=n.crop_type,
                location=n.location,
                old_price=float(n.old_price),
                new_price=float(n.new_price),
                price_change=float(n.price_change),
                status=n.status.value,
                created_at=n.created_at,
            )
            for n in notifications
        ],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            pages=(total + limit - 1) // limit,
        ),
    )


@router.post("")
async def update_notifications(
    body: NotificationActionRequest,
    sink: NotificationSink = Depends(get_notification_sink),
):
    """Mark notifications as read or dismiss them."""
    new_status = ACTION_STATUSES[body.action]
    try:
        updated = await sink.update_status(body.owner_id, body.notification_ids, new_status)
    except DataAccessError as e:
        raise _unavailable(e)

    message = "Notifications marked as read" if body.action == "mark_read" else "Notifications dismissed"
    return {"message": message, "updated": updated}
