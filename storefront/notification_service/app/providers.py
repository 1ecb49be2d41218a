"""Push and email delivery providers."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Any, List, Protocol

import httpx
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

_STALE_TOKEN_ERRORS = frozenset({"UNREGISTERED", "NOT_FOUND"})
FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


class EmailDeliveryError(Exception):
    """Raised when the mail relay refuses or cannot take a message."""


@dataclass(slots=True)
class PushResponse:
    token: str
    success: bool
    message_id: str | None = None
    error: str | None = None


@dataclass
class MulticastResult:
    responses: list[PushResponse] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for response in self.responses if response.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for response in self.responses if not response.success)

    @property
    def stale_tokens(self) -> list[str]:
        return [response.token for response in self.responses if response.error in _STALE_TOKEN_ERRORS]


class PushProvider(Protocol):
    async def send_multicast(
        self,
        *,
        tokens: list[str],
        title: str,
        body: str,
        data: dict[str, str],
    ) -> MulticastResult: ...


class EmailProvider(Protocol):
    async def send_email(self, *, to: str, subject: str, html: str) -> str: ...


def load_fcm_credentials(
    *,
    project_id: str,
    client_email: str | None = None,
    private_key: str | None = None,
    credentials_file: str | None = None,
) -> service_account.Credentials:
    """Service-account credentials scoped for FCM, from a key file or its email/key pair.

    Private keys passed through environment variables usually carry escaped
    newlines; those are restored before the key is parsed.
    """

    if credentials_file:
        return service_account.Credentials.from_service_account_file(credentials_file, scopes=[FCM_SCOPE])
    if not client_email or not private_key:
        msg = "FCM needs a credentials file or a client email and private key"
        raise ValueError(msg)
    info = {
        "type": "service_account",
        "project_id": project_id,
        "client_email": client_email,
        "private_key": private_key.replace("\\n", "\n"),
        "token_uri": GOOGLE_TOKEN_URI,
    }
    return service_account.Credentials.from_service_account_info(info, scopes=[FCM_SCOPE])


class FirebasePushProvider:
    """Sends one FCM HTTP v1 request per device token.

    The OAuth access token comes from ``credentials`` and is refreshed on a
    worker thread whenever it is missing or expired. Concurrent sends share a
    single refresh.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        project_id: str,
        credentials: Any,
        api_url: str,
        auth_request: Any | None = None,
    ) -> None:
        self._client = client
        self._endpoint = f"{api_url.rstrip('/')}/projects/{project_id}/messages:send"
        self._credentials = credentials
        self._auth_request = auth_request or GoogleAuthRequest()
        self._refresh_lock = asyncio.Lock()

    async def access_token(self) -> str:
        async with self._refresh_lock:
            if not self._credentials.valid:
                logger.info("Refreshing FCM access token")
                await asyncio.to_thread(self._credentials.refresh, self._auth_request)
            return str(self._credentials.token)

    async def send_multicast(
        self,
        *,
        tokens: list[str],
        title: str,
        body: str,
        data: dict[str, str],
    ) -> MulticastResult:
        access_token = await self.access_token()
        responses = await asyncio.gather(
            *(self._send_one(token, access_token, title=title, body=body, data=data) for token in tokens)
        )
        return MulticastResult(responses=list(responses))

    async def _send_one(
        self, token: str, access_token: str, *, title: str, body: str, data: dict[str, str]
    ) -> PushResponse:
        message = {
            "message": {
                "token": token,
                "notification": {"title": title, "body": body},
                "data": data,
            }
        }
        try:
            response = await self._client.post(
                self._endpoint,
                json=message,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as exc:
            logger.warning("FCM request failed for token %s...: %s", token[:10], exc)
            return PushResponse(token=token, success=False, error=type(exc).__name__)

        if response.is_success:
            return PushResponse(token=token, success=True, message_id=response.json().get("name"))
        return PushResponse(token=token, success=False, error=_fcm_error_code(response))


def _fcm_error_code(response: httpx.Response) -> str:
    try:
        error = response.json().get("error", {})
    except ValueError:
        return f"HTTP_{response.status_code}"
    for detail in error.get("details", []):
        code = detail.get("errorCode")
        if code:
            return str(code)
    return str(error.get("status") or f"HTTP_{response.status_code}")


class SmtpEmailProvider:
    """Delivers HTML mail through an SMTP relay on a worker thread."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str | None,
        password: str | None,
        use_tls: bool,
        sender: str,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self.timeout = timeout

    async def send_email(self, *, to: str, subject: str, html: str) -> str:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid()
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html, subtype="html")
        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(str(exc)) from exc
        return str(message["Message-ID"])

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username and self.password:
                smtp.login(self.username, self.password)
            smtp.send_message(message)


@dataclass(slots=True)
class SentPush:
    tokens: list[str]
    title: str
    body: str
    data: dict[str, str]


@dataclass(slots=True)
class SentEmail:
    to: str
    subject: str
    html: str


class InMemoryPushProvider:
    """Push provider recording sends for inspection during tests and local runs."""

    def __init__(self, *, failing_tokens: set[str] | None = None) -> None:
        self.failing_tokens = set(failing_tokens or ())
        self.sent: List[SentPush] = []

    async def send_multicast(
        self,
        *,
        tokens: list[str],
        title: str,
        body: str,
        data: dict[str, str],
    ) -> MulticastResult:
        self.sent.append(SentPush(tokens=list(tokens), title=title, body=body, data=dict(data)))
        return MulticastResult(
            responses=[
                PushResponse(token=token, success=False, error="UNREGISTERED")
                if token in self.failing_tokens
                else PushResponse(token=token, success=True, message_id=f"local-{index}")
                for index, token in enumerate(tokens)
            ]
        )


class InMemoryEmailProvider:
    """Email provider recording messages instead of delivering them."""

    def __init__(self, *, fail_with: str | None = None) -> None:
        self.fail_with = fail_with
        self.sent: List[SentEmail] = []

    async def send_email(self, *, to: str, subject: str, html: str) -> str:
        if self.fail_with is not None:
            raise EmailDeliveryError(self.fail_with)
        self.sent.append(SentEmail(to=to, subject=subject, html=html))
        return f"<local-{len(self.sent)}@storefront>"


def describe_push_result(result: MulticastResult) -> dict[str, Any]:
    summary: dict[str, Any] = {
        "successCount": result.success_count,
        "failureCount": result.failure_count,
        "tokensTotal": len(result.responses),
    }
    failures = [
        {"token": response.token[:10] + "...", "error": response.error}
        for response in result.responses
        if not response.success
    ]
    if failures:
        summary["failureDetails"] = failures
    return summary
