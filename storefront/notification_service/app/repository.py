"""Persistence helpers for the notification service."""

from __future__ import annotations

from typing import Any, TypeVar

from sqlalchemy import Select, and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    DeviceToken,
    EmailTemplate,
    NotificationLog,
    NotificationPreference,
    NotificationTemplate,
    Profile,
    UserNotification,
)

TemplateModel = TypeVar("TemplateModel", EmailTemplate, NotificationTemplate)


class NotificationRepository:
    """Database access helpers for notifications."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # Profiles ---------------------------------------------------------------------------

    async def get_profile(self, user_id: str) -> Profile | None:
        return await self.session.get(Profile, user_id)

    async def save_profile(self, user_id: str, fields: dict[str, Any]) -> Profile:
        profile = await self.session.get(Profile, user_id)
        if profile is None:
            profile = Profile(id=user_id, **fields)
            self.session.add(profile)
        else:
            for key, value in fields.items():
                setattr(profile, key, value)
        await self.session.flush()
        await self.session.refresh(profile)
        return profile

    async def list_admins(self) -> list[Profile]:
        result = await self.session.execute(select(Profile).where(Profile.role == "admin").order_by(Profile.id))
        return list(result.scalars())

    # Device tokens ----------------------------------------------------------------------

    async def get_tokens(self, user_id: str) -> list[str]:
        result = await self.session.execute(
            select(DeviceToken.token).where(DeviceToken.user_id == user_id).order_by(DeviceToken.id)
        )
        return list(result.scalars())

    async def save_token(self, user_id: str, token: str, *, device: str | None) -> DeviceToken:
        """Register ``token`` for ``user_id``; a token re-registered by another user moves to them."""

        result = await self.session.execute(select(DeviceToken).where(DeviceToken.token == token))
        entry = result.scalar_one_or_none()
        if entry is None:
            entry = DeviceToken(user_id=user_id, token=token, device=device)
            self.session.add(entry)
        else:
            entry.user_id = user_id
            if device is not None:
                entry.device = device
        await self.session.flush()
        await self.session.refresh(entry)
        return entry

    async def delete_token(self, token: str) -> bool:
        result = await self.session.execute(delete(DeviceToken).where(DeviceToken.token == token))
        await self.session.flush()
        return bool(result.rowcount)

    async def delete_tokens(self, tokens: list[str]) -> int:
        if not tokens:
            return 0
        result = await self.session.execute(delete(DeviceToken).where(DeviceToken.token.in_(tokens)))
        await self.session.flush()
        return int(result.rowcount or 0)

    # Preferences ------------------------------------------------------------------------

    async def get_preference(self, user_id: str) -> NotificationPreference | None:
        return await self.session.get(NotificationPreference, user_id)

    async def save_preference(self, user_id: str, updates: dict[str, bool]) -> NotificationPreference:
        preference = await self.session.get(NotificationPreference, user_id)
        if preference is None:
            preference = NotificationPreference(user_id=user_id, **updates)
            self.session.add(preference)
        else:
            for key, value in updates.items():
                setattr(preference, key, value)
        await self.session.flush()
        await self.session.refresh(preference)
        return preference

    # Inbox ------------------------------------------------------------------------------

    async def add_inbox_entry(
        self,
        *,
        user_id: str,
        title: str,
        body: str,
        notification_type: str,
        data_json: str | None,
    ) -> UserNotification:
        entry = UserNotification(
            user_id=user_id,
            title=title,
            body=body,
            type=notification_type,
            data_json=data_json,
        )
        self.session.add(entry)
        await self.session.flush()
        await self.session.refresh(entry, attribute_names=["created_at"])
        return entry

    async def get_inbox_entry(self, entry_id: str) -> UserNotification | None:
        return await self.session.get(UserNotification, entry_id)

    async def list_inbox(
        self,
        user_id: str,
        *,
        unread_only: bool,
        limit: int,
        offset: int,
    ) -> tuple[list[UserNotification], int, int]:
        filters = [UserNotification.user_id == user_id]
        if unread_only:
            filters.append(UserNotification.is_read.is_(False))

        base: Select[tuple[UserNotification]] = (
            select(UserNotification)
            .where(and_(*filters))
            .order_by(UserNotification.created_at.desc(), UserNotification.id)
        )
        count = select(func.count(UserNotification.id)).where(and_(*filters))
        unread = select(func.count(UserNotification.id)).where(
            UserNotification.user_id == user_id, UserNotification.is_read.is_(False)
        )

        total = (await self.session.execute(count)).scalar_one()
        unread_total = (await self.session.execute(unread)).scalar_one()
        result = await self.session.execute(base.offset(offset).limit(limit))
        return list(result.scalars()), total, unread_total

    async def mark_read(self, entry: UserNotification) -> UserNotification:
        entry.is_read = True
        await self.session.flush()
        return entry

    async def mark_all_read(self, user_id: str) -> int:
        result = await self.session.execute(
            update(UserNotification)
            .where(UserNotification.user_id == user_id, UserNotification.is_read.is_(False))
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        await self.session.flush()
        return int(result.rowcount or 0)

    # Delivery logs ----------------------------------------------------------------------

    async def add_log(
        self,
        *,
        user_id: str,
        channel: str,
        notification_type: str,
        title: str | None,
        body: str | None,
        status: str,
        success_count: int = 0,
        failure_count: int = 0,
        error_message: str | None = None,
        details_json: str | None = None,
    ) -> NotificationLog:
        log = NotificationLog(
            user_id=user_id,
            channel=channel,
            notification_type=notification_type,
            title=title,
            body=body,
            status=status,
            success_count=success_count,
            failure_count=failure_count,
            error_message=error_message[:512] if error_message else None,
            details_json=details_json,
        )
        self.session.add(log)
        await self.session.flush()
        await self.session.refresh(log, attribute_names=["created_at"])
        return log

    async def list_logs(
        self,
        *,
        user_id: str | None,
        channel: str | None,
        status: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[NotificationLog], int]:
        filters = []
        if user_id is not None:
            filters.append(NotificationLog.user_id == user_id)
        if channel is not None:
            filters.append(NotificationLog.channel == channel)
        if status is not None:
            filters.append(NotificationLog.status == status)

        base: Select[tuple[NotificationLog]] = select(NotificationLog).order_by(
            NotificationLog.created_at.desc(), NotificationLog.id.desc()
        )
        count: Select[tuple[int]] = select(func.count(NotificationLog.id))
        if filters:
            base = base.where(and_(*filters))
            count = count.where(and_(*filters))

        total = (await self.session.execute(count)).scalar_one()
        result = await self.session.execute(base.offset(offset).limit(limit))
        return list(result.scalars()), total

    # Templates --------------------------------------------------------------------------

    async def get_active_template(self, model: type[TemplateModel], notification_type: str) -> TemplateModel | None:
        result = await self.session.execute(
            select(model)
            .where(model.type == notification_type, model.is_active.is_(True))
            .order_by(model.updated_at.desc(), model.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create_template(self, model: type[TemplateModel], **fields: Any) -> TemplateModel:
        template = model(**fields)
        self.session.add(template)
        await self.session.flush()
        await self.session.refresh(template, attribute_names=["created_at", "updated_at"])
        return template

    async def get_template(self, model: type[TemplateModel], template_id: str) -> TemplateModel | None:
        return await self.session.get(model, template_id)

    async def list_templates(
        self,
        model: type[TemplateModel],
        *,
        notification_type: str | None,
        active: bool | None,
        limit: int,
        offset: int,
    ) -> tuple[list[TemplateModel], int]:
        filters = []
        if notification_type is not None:
            filters.append(model.type == notification_type)
        if active is not None:
            filters.append(model.is_active.is_(active))

        base = select(model).order_by(model.type, model.name)
        count = select(func.count(model.id))
        if filters:
            base = base.where(and_(*filters))
            count = count.where(and_(*filters))

        total = (await self.session.execute(count)).scalar_one()
        result = await self.session.execute(base.offset(offset).limit(limit))
        return list(result.scalars()), total

    async def update_template(self, template: TemplateModel, updates: dict[str, Any]) -> TemplateModel:
        for key, value in updates.items():
            setattr(template, key, value)
        await self.session.flush()
        await self.session.refresh(template, attribute_names=["updated_at"])
        return template

    async def delete_template(self, template: EmailTemplate | NotificationTemplate) -> None:
        await self.session.delete(template)
        await self.session.flush()
