"""CRUD routes for email and push notification templates."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ..dependencies import get_repository
from ..models import EmailTemplate, NotificationTemplate
from ..repository import NotificationRepository
from ..schemas import (
    EmailTemplateCreate,
    EmailTemplateListResponse,
    EmailTemplateResponse,
    EmailTemplateUpdate,
    NotificationTemplateCreate,
    NotificationTemplateListResponse,
    NotificationTemplateResponse,
    NotificationTemplateUpdate,
)

email_router = APIRouter(prefix="/email-templates", tags=["templates"])
notification_router = APIRouter(prefix="/notification-templates", tags=["templates"])


def _serialize_email_template(template: EmailTemplate) -> dict[str, object]:
    return {
        "id": template.id,
        "name": template.name,
        "type": template.type,
        "subject": template.subject,
        "body": template.body,
        "isActive": template.is_active,
        "createdAt": template.created_at,
        "updatedAt": template.updated_at,
    }


def _serialize_notification_template(template: NotificationTemplate) -> dict[str, object]:
    return {
        "id": template.id,
        "name": template.name,
        "type": template.type,
        "title": template.title,
        "body": template.body,
        "isActive": template.is_active,
        "createdAt": template.created_at,
        "updatedAt": template.updated_at,
    }


# Email templates --------------------------------------------------------------------------


@email_router.post("", response_model=EmailTemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_email_template(
    payload: EmailTemplateCreate,
    repository: NotificationRepository = Depends(get_repository),
) -> EmailTemplateResponse:
    template = await repository.create_template(EmailTemplate, **payload.model_dump())
    return EmailTemplateResponse.model_validate(_serialize_email_template(template))


@email_router.get("", response_model=EmailTemplateListResponse)
async def list_email_templates(
    notification_type: str | None = Query(default=None, alias="type"),
    active: bool | None = None,
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    repository: NotificationRepository = Depends(get_repository),
) -> EmailTemplateListResponse:
    templates, total = await repository.list_templates(
        EmailTemplate, notification_type=notification_type, active=active, limit=limit, offset=offset
    )
    items = [EmailTemplateResponse.model_validate(_serialize_email_template(template)) for template in templates]
    return EmailTemplateListResponse(items=items, total=total)


@email_router.get("/{template_id}", response_model=EmailTemplateResponse)
async def get_email_template(
    template_id: str,
    repository: NotificationRepository = Depends(get_repository),
) -> EmailTemplateResponse:
    template = await repository.get_template(EmailTemplate, template_id)
    if template is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
    return EmailTemplateResponse.model_validate(_serialize_email_template(template))


@email_router.put("/{template_id}", response_model=EmailTemplateResponse)
async def update_email_template(
    template_id: str,
    payload: EmailTemplateUpdate,
    repository: NotificationRepository = Depends(get_repository),
) -> EmailTemplateResponse:
    template = await repository.get_template(EmailTemplate, template_id)
    if template is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
    updated = await repository.update_template(template, payload.model_dump(exclude_unset=True, exclude_none=True))
    return EmailTemplateResponse.model_validate(_serialize_email_template(updated))


@email_router.delete("/{template_id}")
async def delete_email_template(
    template_id: str,
    repository: NotificationRepository = Depends(get_repository),
) -> Response:
    template = await repository.get_template(EmailTemplate, template_id)
    if template is not None:
        await repository.delete_template(template)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Notification templates -------------------------------------------------------------------


@notification_router.post("", response_model=NotificationTemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_notification_template(
    payload: NotificationTemplateCreate,
    repository: NotificationRepository = Depends(get_repository),
) -> NotificationTemplateResponse:
    template = await repository.create_template(NotificationTemplate, **payload.model_dump())
    return NotificationTemplateResponse.model_validate(_serialize_notification_template(template))


@notification_router.get("", response_model=NotificationTemplateListResponse)
async def list_notification_templates(
    notification_type: str | None = Query(default=None, alias="type"),
    active: bool | None = None,
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    repository: NotificationRepository = Depends(get_repository),
) -> NotificationTemplateListResponse:
    templates, total = await repository.list_templates(
        NotificationTemplate, notification_type=notification_type, active=active, limit=limit, offset=offset
    )
    items = [
        NotificationTemplateResponse.model_validate(_serialize_notification_template(template))
        for template in templates
    ]
    return NotificationTemplateListResponse(items=items, total=total)


@notification_router.get("/{template_id}", response_model=NotificationTemplateResponse)
async def get_notification_template(
    template_id: str,
    repository: NotificationRepository = Depends(get_repository),
) -> NotificationTemplateResponse:
    template = await repository.get_template(NotificationTemplate, template_id)
    if template is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
    return NotificationTemplateResponse.model_validate(_serialize_notification_template(template))


@notification_router.put("/{template_id}", response_model=NotificationTemplateResponse)
async def update_notification_template(
    template_id: str,
    payload: NotificationTemplateUpdate,
    repository: NotificationRepository = Depends(get_repository),
) -> NotificationTemplateResponse:
    template = await repository.get_template(NotificationTemplate, template_id)
    if template is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
    updated = await repository.update_template(template, payload.model_dump(exclude_unset=True, exclude_none=True))
    return NotificationTemplateResponse.model_validate(_serialize_notification_template(updated))


@notification_router.delete("/{template_id}")
async def delete_notification_template(
    template_id: str,
    repository: NotificationRepository = Depends(get_repository),
) -> Response:
    template = await repository.get_template(NotificationTemplate, template_id)
    if template is not None:
        await repository.delete_template(template)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
