"""Pydantic schemas for the notification service."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

NotificationType = Literal["order_placed", "registration", "order_status", "stock_alert", "custom", "test"]


def _strip_required(value: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        msg = "value must be non-empty"
        raise ValueError(msg)
    return cleaned


class NotificationSendRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64, alias="userId")
    title: str = Field(min_length=1, max_length=255)
    body: str = Field(min_length=1)
    type: NotificationType = "custom"
    data: dict[str, Any] = Field(default_factory=dict)
    email: bool = True
    push: bool = True

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("user_id", "title")
    @classmethod
    def _strip(cls, value: str) -> str:
        return _strip_required(value)

    @field_validator("data")
    @classmethod
    def _stringify(cls, value: dict[str, Any]) -> dict[str, str]:
        # FCM data payloads only carry string values.
        return {str(key): item if isinstance(item, str) else str(item) for key, item in value.items()}


class ChannelResult(BaseModel):
    success: bool
    method: str | None = None
    error: str | None = None
    success_count: int = Field(default=0, alias="successCount")
    failure_count: int = Field(default=0, alias="failureCount")
    message_id: str | None = Field(default=None, alias="messageId")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class NotificationSendResponse(BaseModel):
    success: bool
    push: ChannelResult | None = None
    email: ChannelResult | None = None


class InboxEntryResponse(BaseModel):
    id: str
    user_id: str = Field(alias="userId")
    title: str
    body: str
    type: str
    data: dict[str, Any] | None
    is_read: bool = Field(alias="isRead")
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class InboxResponse(BaseModel):
    items: list[InboxEntryResponse]
    total: int
    unread: int


class MarkReadResponse(BaseModel):
    updated: int


class NotificationLogResponse(BaseModel):
    id: int
    user_id: str = Field(alias="userId")
    channel: str
    notification_type: str = Field(alias="notificationType")
    title: str | None
    body: str | None
    status: str
    success_count: int = Field(alias="successCount")
    failure_count: int = Field(alias="failureCount")
    error_message: str | None = Field(default=None, alias="errorMessage")
    details: dict[str, Any] | None = None
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class NotificationLogListResponse(BaseModel):
    items: list[NotificationLogResponse]
    total: int


class PreferenceUpdate(BaseModel):
    push_enabled: bool | None = Field(default=None, alias="pushEnabled")
    email_enabled: bool | None = Field(default=None, alias="emailEnabled")

    model_config = ConfigDict(populate_by_name=True)


class PreferenceResponse(BaseModel):
    user_id: str = Field(alias="userId")
    push_enabled: bool = Field(alias="pushEnabled")
    email_enabled: bool = Field(alias="emailEnabled")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)


class DeviceTokenCreate(BaseModel):
    user_id: str = Field(min_length=1, max_length=64, alias="userId")
    token: str = Field(min_length=1, max_length=512)
    device: str | None = Field(default=None, max_length=255)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("user_id", "token")
    @classmethod
    def _strip(cls, value: str) -> str:
        return _strip_required(value)


class DeviceTokenResponse(BaseModel):
    success: bool
    user_id: str = Field(alias="userId")
    token: str
    device: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class ProfileUpdate(BaseModel):
    email: str | None = Field(default=None, max_length=255)
    first_name: str | None = Field(default=None, max_length=128, alias="firstName")
    last_name: str | None = Field(default=None, max_length=128, alias="lastName")
    role: Literal["customer", "admin"] | None = None

    model_config = ConfigDict(populate_by_name=True)


class ProfileResponse(BaseModel):
    id: str
    email: str | None
    first_name: str | None = Field(alias="firstName")
    last_name: str | None = Field(alias="lastName")
    role: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)


# Templates --------------------------------------------------------------------------------


class EmailTemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    type: NotificationType
    subject: str = Field(min_length=1, max_length=255)
    body: str = Field(min_length=1)
    is_active: bool = Field(default=True, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return _strip_required(value)


class EmailTemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=128)
    type: NotificationType | None = None
    subject: str | None = Field(default=None, min_length=1, max_length=255)
    body: str | None = Field(default=None, min_length=1)
    is_active: bool | None = Field(default=None, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)


class EmailTemplateResponse(BaseModel):
    id: str
    name: str
    type: str
    subject: str
    body: str
    is_active: bool = Field(alias="isActive")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)


class EmailTemplateListResponse(BaseModel):
    items: list[EmailTemplateResponse]
    total: int


class NotificationTemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    type: NotificationType
    title: str = Field(min_length=1, max_length=255)
    body: str = Field(min_length=1)
    is_active: bool = Field(default=True, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return _strip_required(value)


class NotificationTemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=128)
    type: NotificationType | None = None
    title: str | None = Field(default=None, min_length=1, max_length=255)
    body: str | None = Field(default=None, min_length=1)
    is_active: bool | None = Field(default=None, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)


class NotificationTemplateResponse(BaseModel):
    id: str
    name: str
    type: str
    title: str
    body: str
    is_active: bool = Field(alias="isActive")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)


class NotificationTemplateListResponse(BaseModel):
    items: list[NotificationTemplateResponse]
    total: int
