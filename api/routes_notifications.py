"""Notification routes for the HomeSim Management API."""

from fastapi import APIRouter, HTTPException

from .models import NotificationResponse

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationResponse])
def list_notifications(unread: bool = False):
    """Newest first. ?unread=true returns only unread ones."""
    home = router.app.state.home
    return home.notifications.list(unread_only=unread)


@router.post("/read-all")
def mark_all_read():
    home = router.app.state.home
    home.notifications.mark_all_read()
    return {"status": "ok", "unread": home.notifications.unread_count()}


@router.post("/{notification_id}/read")
def mark_read(notification_id: str):
    home = router.app.state.home
    if not home.notifications.mark_read(notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"status": "ok", "unread": home.notifications.unread_count()}


@router.delete("/{notification_id}", status_code=204)
def delete_notification(notification_id: str):
    home = router.app.state.home
    if not home.notifications.delete(notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
