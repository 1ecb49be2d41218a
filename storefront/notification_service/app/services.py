"""Notification fan-out across push, inbox and email."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from time import monotonic
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.common import lifespan_session

from .metrics import (
    NOTIFICATION_CHANNEL_TOTAL,
    NOTIFICATION_SEND_LATENCY_SECONDS,
    NOTIFICATION_STALE_TOKENS_TOTAL,
)
from .models import EmailTemplate
from .providers import EmailDeliveryError, EmailProvider, MulticastResult, PushProvider
from .rendering import render_template
from .repository import NotificationRepository

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = ("order_placed", "registration", "order_status", "stock_alert", "custom", "test")


class NotificationError(Exception):
    """Raised for notification requests that cannot be attempted at all."""


class PushDeliveryError(Exception):
    """Raised when the push provider fails outright; the attempt is already logged."""

    def __init__(self, message: str, *, recorded: bool) -> None:
        super().__init__(message)
        self.message = message
        self.recorded = recorded


def data_to_json(data: dict[str, Any] | None) -> str | None:
    if not data:
        return None
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def data_from_json(data_json: str | None) -> dict[str, Any] | None:
    if data_json is None:
        return None
    return json.loads(data_json)


@dataclass
class NotificationRequest:
    user_id: str
    title: str
    body: str
    type: str
    data: dict[str, str] = field(default_factory=dict)
    email: bool = True
    push: bool = True


@dataclass
class ChannelOutcome:
    success: bool
    method: str | None = None
    error: str | None = None
    success_count: int = 0
    failure_count: int = 0
    message_id: str | None = None


@dataclass
class DispatchResult:
    push: ChannelOutcome | None = None
    email: ChannelOutcome | None = None


class NotificationDispatcher:
    """Sends a notification on every requested channel.

    Each channel runs in its own transaction and failures are recorded in
    ``notification_logs`` rather than raised; callers only ever see the
    per-channel outcome.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        push_provider: PushProvider,
        email_provider: EmailProvider,
    ) -> None:
        self._session_factory = session_factory
        self.push_provider = push_provider
        self.email_provider = email_provider

    async def send_notification(self, request: NotificationRequest) -> DispatchResult:
        if request.type not in NOTIFICATION_TYPES:
            raise NotificationError(f"Unsupported notification type: {request.type}")

        result = DispatchResult()
        if request.push:
            result.push = await self._run_channel("push", self._send_push, request)
        if request.email:
            result.email = await self._run_channel("email", self._send_email, request)
        return result

    async def send_test_push(
        self, user_id: str, *, title: str, body: str, data: dict[str, str]
    ) -> MulticastResult | None:
        """Push straight to the user's devices, bypassing preferences; None when no devices exist.

        A provider failure is logged and kept in the inbox, then raised as ``PushDeliveryError``.
        """

        async with lifespan_session(self._session_factory) as session:
            repository = NotificationRepository(session)
            tokens = await repository.get_tokens(user_id)
            if not tokens:
                await repository.add_inbox_entry(
                    user_id=user_id, title=title, body=body, notification_type="test", data_json=data_to_json(data)
                )
                NOTIFICATION_CHANNEL_TOTAL.labels(channel="push", outcome="database_only").inc()
                return None

        try:
            result = await self.push_provider.send_multicast(tokens=tokens, title=title, body=body, data=data)
        except Exception as exc:
            logger.exception("Test push for user %s failed", user_id)
            NOTIFICATION_CHANNEL_TOTAL.labels(channel="push", outcome="failed").inc()
            recorded = await self._record_test_push_failure(user_id, title, body, data, str(exc))
            raise PushDeliveryError(str(exc), recorded=recorded) from exc

        async with lifespan_session(self._session_factory) as session:
            repository = NotificationRepository(session)
            await self._record_push(repository, user_id, title, body, "test", data, result)
            await repository.add_inbox_entry(
                user_id=user_id, title=title, body=body, notification_type="test", data_json=data_to_json(data)
            )
        return result

    async def _record_test_push_failure(
        self, user_id: str, title: str, body: str, data: dict[str, str], reason: str
    ) -> bool:
        try:
            async with lifespan_session(self._session_factory) as session:
                repository = NotificationRepository(session)
                await repository.add_log(
                    user_id=user_id,
                    channel="push",
                    notification_type="test",
                    title=title,
                    body=body,
                    status="failed",
                    error_message=reason,
                )
                await repository.add_inbox_entry(
                    user_id=user_id,
                    title=title,
                    body=body,
                    notification_type="test",
                    data_json=data_to_json(
                        {**data, "error": "Failed to send push notification", "error_message": reason}
                    ),
                )
        except Exception:
            logger.exception("Could not record test push failure for user %s", user_id)
            return False
        return True

    async def _run_channel(self, channel: str, sender, request: NotificationRequest) -> ChannelOutcome:
        start = monotonic()
        try:
            outcome = await sender(request)
        except Exception as exc:
            logger.exception("%s notification for user %s failed", channel, request.user_id)
            outcome = await self._record_failure(channel, request, str(exc))
        NOTIFICATION_SEND_LATENCY_SECONDS.labels(channel=channel).observe(monotonic() - start)
        if outcome.method == "database_only":
            label = "database_only"
        elif outcome.method == "skipped":
            label = "skipped"
        else:
            label = "sent" if outcome.success else "failed"
        NOTIFICATION_CHANNEL_TOTAL.labels(channel=channel, outcome=label).inc()
        return outcome

    async def _send_push(self, request: NotificationRequest) -> ChannelOutcome:
        async with lifespan_session(self._session_factory) as session:
            repository = NotificationRepository(session)
            preference = await repository.get_preference(request.user_id)
            tokens = await repository.get_tokens(request.user_id) if preference and preference.push_enabled else []
            if not tokens:
                await self._store_inbox(repository, request)
                return ChannelOutcome(success=True, method="database_only")

        result = await self.push_provider.send_multicast(
            tokens=tokens, title=request.title, body=request.body, data=request.data
        )

        async with lifespan_session(self._session_factory) as session:
            repository = NotificationRepository(session)
            await self._record_push(
                repository, request.user_id, request.title, request.body, request.type, request.data, result
            )
            await self._store_inbox(repository, request)

        return ChannelOutcome(
            success=True,
            method="fcm_and_database",
            success_count=result.success_count,
            failure_count=result.failure_count,
        )

    async def _send_email(self, request: NotificationRequest) -> ChannelOutcome:
        async with lifespan_session(self._session_factory) as session:
            repository = NotificationRepository(session)
            profile = await repository.get_profile(request.user_id)
            preference = await repository.get_preference(request.user_id)
            if preference is not None and not preference.email_enabled:
                return ChannelOutcome(success=False, method="skipped", error="Email notifications disabled")
            if profile is None or not profile.email:
                return await self._log_email_failure(repository, request, "No email address on file")

            template = await repository.get_active_template(EmailTemplate, request.type)
            if template is None:
                return await self._log_email_failure(repository, request, f"Template not found for type {request.type}")

            variables: dict[str, object] = {
                "first_name": profile.first_name or "",
                "last_name": profile.last_name or "",
                **request.data,
            }
            subject = render_template(template.subject, variables) or request.title
            html = render_template(template.body, variables)
            recipient = profile.email

            try:
                message_id = await self.email_provider.send_email(to=recipient, subject=subject, html=html)
            except EmailDeliveryError as exc:
                logger.warning("Email to user %s failed: %s", request.user_id, exc)
                return await self._log_email_failure(repository, request, str(exc))

            await repository.add_log(
                user_id=request.user_id,
                channel="email",
                notification_type=request.type,
                title=subject,
                body=None,
                status="sent",
                success_count=1,
                details_json=data_to_json({"messageId": message_id, "templateId": template.id}),
            )
            return ChannelOutcome(success=True, method="smtp", message_id=message_id)

    async def _log_email_failure(
        self,
        repository: NotificationRepository,
        request: NotificationRequest,
        reason: str,
    ) -> ChannelOutcome:
        await repository.add_log(
            user_id=request.user_id,
            channel="email",
            notification_type=request.type,
            title=request.title,
            body=None,
            status="failed",
            failure_count=1,
            error_message=reason,
        )
        return ChannelOutcome(success=False, error=reason)

    async def _record_push(
        self,
        repository: NotificationRepository,
        user_id: str,
        title: str,
        body: str,
        notification_type: str,
        data: dict[str, str],
        result: MulticastResult,
    ) -> None:
        failures = [
            {"token": response.token[:10] + "...", "error": response.error}
            for response in result.responses
            if not response.success
        ]
        await repository.add_log(
            user_id=user_id,
            channel="push",
            notification_type=notification_type,
            title=title,
            body=body,
            status="sent" if result.success_count > 0 else "failed",
            success_count=result.success_count,
            failure_count=result.failure_count,
            details_json=data_to_json({"data": data, "failures": failures} if failures else {"data": data}),
        )
        stale = result.stale_tokens
        if stale:
            removed = await repository.delete_tokens(stale)
            NOTIFICATION_STALE_TOKENS_TOTAL.inc(removed)

    async def _store_inbox(self, repository: NotificationRepository, request: NotificationRequest) -> None:
        await repository.add_inbox_entry(
            user_id=request.user_id,
            title=request.title,
            body=request.body,
            notification_type=request.type,
            data_json=data_to_json(request.data),
        )

    async def _record_failure(self, channel: str, request: NotificationRequest, reason: str) -> ChannelOutcome:
        """Best effort: keep the message in the inbox and log why delivery failed."""

        try:
            async with lifespan_session(self._session_factory) as session:
                repository = NotificationRepository(session)
                await repository.add_log(
                    user_id=request.user_id,
                    channel=channel,
                    notification_type=request.type,
                    title=request.title,
                    body=request.body,
                    status="failed",
                    error_message=reason,
                )
                if channel == "push":
                    await self._store_inbox(repository, request)
        except Exception:
            logger.exception("Could not record %s failure for user %s", channel, request.user_id)
        if channel == "push":
            return ChannelOutcome(success=True, method="database_only", error=reason)
        return ChannelOutcome(success=False, error=reason)
