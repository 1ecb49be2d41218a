"""HTTP routes for sending notifications, the inbox, delivery logs and preferences."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..dependencies import get_dispatcher, get_repository
from ..repository import NotificationRepository
from ..schemas import (
    ChannelResult,
    InboxEntryResponse,
    InboxResponse,
    MarkReadResponse,
    NotificationLogListResponse,
    NotificationLogResponse,
    NotificationSendRequest,
    NotificationSendResponse,
    PreferenceResponse,
    PreferenceUpdate,
)
from ..services import NotificationDispatcher, NotificationError, NotificationRequest, data_from_json

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _serialize_inbox_entry(entry) -> dict[str, object]:
    return {
        "id": entry.id,
        "userId": entry.user_id,
        "title": entry.title,
        "body": entry.body,
        "type": entry.type,
        "data": data_from_json(entry.data_json),
        "isRead": entry.is_read,
        "createdAt": entry.created_at,
    }


def serialize_log(log) -> dict[str, object]:
    return {
        "id": log.id,
        "userId": log.user_id,
        "channel": log.channel,
        "notificationType": log.notification_type,
        "title": log.title,
        "body": log.body,
        "status": log.status,
        "successCount": log.success_count,
        "failureCount": log.failure_count,
        "errorMessage": log.error_message,
        "details": data_from_json(log.details_json),
        "createdAt": log.created_at,
    }


def serialize_preference(user_id: str, preference) -> dict[str, object]:
    if preference is None:
        return {"userId": user_id, "pushEnabled": False, "emailEnabled": True, "updatedAt": None}
    return {
        "userId": user_id,
        "pushEnabled": preference.push_enabled,
        "emailEnabled": preference.email_enabled,
        "updatedAt": preference.updated_at,
    }


@router.post("/send", response_model=NotificationSendResponse)
async def send_notification(
    payload: NotificationSendRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> NotificationSendResponse:
    try:
        result = await dispatcher.send_notification(
            NotificationRequest(
                user_id=payload.user_id,
                title=payload.title,
                body=payload.body,
                type=payload.type,
                data=payload.data,
                email=payload.email,
                push=payload.push,
            )
        )
    except NotificationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return NotificationSendResponse(
        success=True,
        push=ChannelResult.model_validate(result.push) if result.push else None,
        email=ChannelResult.model_validate(result.email) if result.email else None,
    )


@router.get("/inbox/{user_id}", response_model=InboxResponse)
async def list_inbox(
    user_id: str,
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    repository: NotificationRepository = Depends(get_repository),
) -> InboxResponse:
    entries, total, unread = await repository.list_inbox(user_id, unread_only=unread_only, limit=limit, offset=offset)
    items = [InboxEntryResponse.model_validate(_serialize_inbox_entry(entry)) for entry in entries]
    return InboxResponse(items=items, total=total, unread=unread)


@router.post("/inbox/{entry_id}/read", response_model=InboxEntryResponse)
async def mark_read(
    entry_id: str,
    repository: NotificationRepository = Depends(get_repository),
) -> InboxEntryResponse:
    entry = await repository.get_inbox_entry(entry_id)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    entry = await repository.mark_read(entry)
    return InboxEntryResponse.model_validate(_serialize_inbox_entry(entry))


@router.post("/inbox/{user_id}/read-all", response_model=MarkReadResponse)
async def mark_all_read(
    user_id: str,
    repository: NotificationRepository = Depends(get_repository),
) -> MarkReadResponse:
    updated = await repository.mark_all_read(user_id)
    return MarkReadResponse(updated=updated)


@router.get("/logs", response_model=NotificationLogListResponse)
async def list_logs(
    user_id: str | None = Query(default=None, alias="userId"),
    channel: str | None = None,
    status_filter: str | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    repository: NotificationRepository = Depends(get_repository),
) -> NotificationLogListResponse:
    logs, total = await repository.list_logs(
        user_id=user_id,
        channel=channel,
        status=status_filter,
        limit=limit,
        offset=offset,
    )
    items = [NotificationLogResponse.model_validate(serialize_log(log)) for log in logs]
    return NotificationLogListResponse(items=items, total=total)


@router.get("/preferences/{user_id}", response_model=PreferenceResponse)
async def get_preferences(
    user_id: str,
    repository: NotificationRepository = Depends(get_repository),
) -> PreferenceResponse:
    preference = await repository.get_preference(user_id)
    return PreferenceResponse.model_validate(serialize_preference(user_id, preference))


@router.put("/preferences/{user_id}", response_model=PreferenceResponse)
async def update_preferences(
    user_id: str,
    payload: PreferenceUpdate,
    repository: NotificationRepository = Depends(get_repository),
) -> PreferenceResponse:
    updates = payload.model_dump(exclude_none=True)
    preference = await repository.save_preference(user_id, updates)
    return PreferenceResponse.model_validate(serialize_preference(user_id, preference))
