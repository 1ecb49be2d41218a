import json

import httpx
import pytest

from storefront.notification_service.app.providers import FirebasePushProvider, load_fcm_credentials

AUTH_REQUEST = object()


class _ExpiringCredentials:
    """Stands in for google-auth service-account credentials."""

    def __init__(self) -> None:
        self.token: str | None = None
        self.valid = False
        self.refresh_requests: list[object] = []

    def refresh(self, request: object) -> None:
        self.refresh_requests.append(request)
        self.token = f"access-{len(self.refresh_requests)}"
        self.valid = True

    def expire(self) -> None:
        self.valid = False


def _fcm_client(seen: list[tuple[str, dict]]) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        seen.append((request.headers["Authorization"], payload))
        token = payload["message"]["token"]
        if token == "gone-device":
            return httpx.Response(
                404,
                json={"error": {"status": "NOT_FOUND", "details": [{"errorCode": "UNREGISTERED"}]}},
            )
        return httpx.Response(200, json={"name": f"projects/shop/messages/{token}"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _provider(client: httpx.AsyncClient, credentials: _ExpiringCredentials) -> FirebasePushProvider:
    return FirebasePushProvider(
        client=client,
        project_id="shop",
        credentials=credentials,
        api_url="https://fcm.googleapis.com/v1",
        auth_request=AUTH_REQUEST,
    )


@pytest.mark.asyncio
async def test_expired_access_token_is_refreshed_before_sending() -> None:
    credentials = _ExpiringCredentials()
    seen: list[tuple[str, dict]] = []

    async with _fcm_client(seen) as client:
        provider = _provider(client, credentials)

        await provider.send_multicast(tokens=["device-a", "device-b"], title="Hi", body="One", data={})
        await provider.send_multicast(tokens=["device-a"], title="Hi", body="Two", data={})
        credentials.expire()
        await provider.send_multicast(tokens=["device-a"], title="Hi", body="Three", data={})

    assert credentials.refresh_requests == [AUTH_REQUEST, AUTH_REQUEST]
    assert [auth for auth, _ in seen] == [
        "Bearer access-1",
        "Bearer access-1",
        "Bearer access-1",
        "Bearer access-2",
    ]


@pytest.mark.asyncio
async def test_multicast_reports_stale_tokens_from_fcm_errors() -> None:
    seen: list[tuple[str, dict]] = []

    async with _fcm_client(seen) as client:
        result = await _provider(client, _ExpiringCredentials()).send_multicast(
            tokens=["device-a", "gone-device"], title="Sale", body="Now on", data={"url": "/flash"}
        )

    assert (result.success_count, result.failure_count) == (1, 1)
    assert result.stale_tokens == ["gone-device"]
    assert seen[0][1]["message"]["data"] == {"url": "/flash"}
    assert result.responses[0].message_id == "projects/shop/messages/device-a"


def test_credentials_need_a_key() -> None:
    with pytest.raises(ValueError):
        load_fcm_credentials(project_id="shop", client_email="push@shop.iam.gserviceaccount.com")
