"""Device token registration and push diagnostics."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse

from ..dependencies import get_dispatcher, get_repository
from ..providers import describe_push_result
from ..repository import NotificationRepository
from ..schemas import DeviceTokenCreate, DeviceTokenResponse, NotificationLogResponse, PreferenceResponse
from ..services import NotificationDispatcher, PushDeliveryError
from .notifications import serialize_log, serialize_preference

router = APIRouter(tags=["firebase"])

MISSING_USER_ID = "Missing required parameter: userId is required"


def _missing_user_id() -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": MISSING_USER_ID})


def _mask(token: str) -> str:
    return token[:10] + "..."


@router.post("/firebase-tokens", response_model=DeviceTokenResponse, status_code=status.HTTP_201_CREATED)
async def register_token(
    payload: DeviceTokenCreate,
    repository: NotificationRepository = Depends(get_repository),
) -> DeviceTokenResponse:
    entry = await repository.save_token(payload.user_id, payload.token, device=payload.device)
    return DeviceTokenResponse(success=True, userId=entry.user_id, token=entry.token, device=entry.device)


@router.delete("/firebase-tokens/{token}")
async def delete_token(
    token: str,
    repository: NotificationRepository = Depends(get_repository),
) -> Response:
    if not await repository.delete_token(token):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Token not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/firebase-tokens/status")
async def token_status(
    user_id: str | None = Query(default=None, alias="userId"),
    repository: NotificationRepository = Depends(get_repository),
):
    if not user_id:
        return _missing_user_id()

    tokens = await repository.get_tokens(user_id)
    preference = await repository.get_preference(user_id)
    logs, _ = await repository.list_logs(user_id=user_id, channel="push", status=None, limit=10, offset=0)
    preferences = PreferenceResponse.model_validate(serialize_preference(user_id, preference))
    return {
        "success": True,
        "data": {
            "tokensCount": len(tokens),
            "tokens": [_mask(token) for token in tokens],
            "pushEnabled": preferences.push_enabled,
            "preferences": preferences.model_dump(mode="json", by_alias=True) if preference is not None else None,
            "recentLogs": [
                NotificationLogResponse.model_validate(serialize_log(log)).model_dump(mode="json", by_alias=True)
                for log in logs
            ],
        },
    }


@router.get("/api/test-firebase-push")
async def test_firebase_push(
    user_id: str | None = Query(default=None, alias="userId"),
    title: str | None = None,
    body: str | None = None,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    if not user_id:
        return _missing_user_id()

    now = datetime.now(timezone.utc)
    title = title or "Test Firebase Push Notification"
    body = body or f"This is a test Firebase push notification sent at {now.strftime('%H:%M:%S')}."
    data = {"test": "true", "timestamp": now.isoformat(), "url": "/account"}

    try:
        result = await dispatcher.send_test_push(user_id, title=title, body=body, data=data)
    except PushDeliveryError as exc:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Firebase messaging error",
                "details": exc.message,
                "firebaseStatus": "error",
                "databaseLogged": exc.recorded,
            },
        )
    if result is None:
        return {
            "success": False,
            "message": "No FCM tokens found for this user",
            "databaseOnly": True,
            "tokensFound": 0,
        }
    return {
        "success": True,
        "message": "Firebase push notification test completed",
        "result": describe_push_result(result),
    }
