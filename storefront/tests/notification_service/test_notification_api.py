import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from storefront.common import ServiceSettings, dispose_engines
from storefront.notification_service.app.main import create_app
from storefront.notification_service.app.providers import InMemoryEmailProvider, InMemoryPushProvider


def _run(coro):
    return asyncio.run(coro)


def _prepare_app(tmp_path) -> FastAPI:
    settings = ServiceSettings(
        app_name="Notification Service Test",
        enable_metrics=False,
        enable_tracing=False,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'notification.db'}",
        auto_create_schema=True,
    )
    return create_app(settings)


async def _register_token(client: AsyncClient, user_id: str, token: str) -> None:
    response = await client.post("/firebase-tokens", json={"userId": user_id, "token": token, "device": "pixel"})
    assert response.status_code == 201, response.text


def test_unconfigured_providers_record_in_memory(tmp_path) -> None:
    app = _prepare_app(tmp_path)

    async def body() -> None:
        async with lifespan(app):
            assert isinstance(app.state.dispatcher.push_provider, InMemoryPushProvider)
            assert isinstance(app.state.dispatcher.email_provider, InMemoryEmailProvider)

    _run(_with_cleanup(body()))


def test_send_notification_reports_each_channel(tmp_path) -> None:
    app = _prepare_app(tmp_path)

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                prefs = await client.put("/notifications/preferences/user-1", json={"pushEnabled": True})
                assert prefs.status_code == 200
                await _register_token(client, "user-1", "device-token-123456")

                response = await client.post(
                    "/notifications/send",
                    json={
                        "userId": "user-1",
                        "title": "Hello",
                        "body": "Welcome aboard",
                        "type": "registration",
                        "data": {"step": 2},
                    },
                )
                assert response.status_code == 200, response.text
                payload = response.json()
                assert payload["success"] is True
                assert payload["push"]["method"] == "fcm_and_database"
                assert payload["push"]["successCount"] == 1
                assert payload["email"]["success"] is False
                assert payload["email"]["error"] == "No email address on file"

                sent = app.state.dispatcher.push_provider.sent
                assert sent[0].tokens == ["device-token-123456"]
                assert sent[0].data == {"step": "2"}

                unknown = await client.post(
                    "/notifications/send",
                    json={"userId": "user-1", "title": "Hi", "body": "x", "type": "fax"},
                )
                assert unknown.status_code == 400

                missing = await client.post("/notifications/send", json={"title": "Hi"})
                assert missing.status_code == 400
                assert missing.json()["error"] == "Missing required fields"

    _run(_with_cleanup(body()))


def test_inbox_listing_and_read_markers(tmp_path) -> None:
    app = _prepare_app(tmp_path)

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                for title in ("First", "Second", "Third"):
                    response = await client.post(
                        "/notifications/send",
                        json={"userId": "user-2", "title": title, "body": f"{title} body", "email": False},
                    )
                    assert response.status_code == 200
                    assert response.json()["push"]["method"] == "database_only"
                    assert response.json()["email"] is None

                inbox = await client.get("/notifications/inbox/user-2")
                assert inbox.status_code == 200
                listing = inbox.json()
                assert listing["total"] == 3
                assert listing["unread"] == 3
                assert {item["title"] for item in listing["items"]} == {"First", "Second", "Third"}
                assert all(item["type"] == "custom" for item in listing["items"])

                entry_id = listing["items"][0]["id"]
                read = await client.post(f"/notifications/inbox/{entry_id}/read")
                assert read.status_code == 200
                assert read.json()["isRead"] is True

                unread = await client.get("/notifications/inbox/user-2", params={"unreadOnly": "true"})
                assert unread.json()["total"] == 2
                assert unread.json()["unread"] == 2

                read_all = await client.post("/notifications/inbox/user-2/read-all")
                assert read_all.json() == {"updated": 2}

                after = await client.get("/notifications/inbox/user-2")
                assert after.json()["unread"] == 0

                missing = await client.post("/notifications/inbox/nope/read")
                assert missing.status_code == 404

    _run(_with_cleanup(body()))


def test_preferences_default_and_update(tmp_path) -> None:
    app = _prepare_app(tmp_path)

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                default = await client.get("/notifications/preferences/user-3")
                assert default.status_code == 200
                assert default.json() == {
                    "userId": "user-3",
                    "pushEnabled": False,
                    "emailEnabled": True,
                    "updatedAt": None,
                }

                updated = await client.put(
                    "/notifications/preferences/user-3", json={"pushEnabled": True, "emailEnabled": False}
                )
                assert updated.status_code == 200
                assert updated.json()["pushEnabled"] is True
                assert updated.json()["emailEnabled"] is False

                partial = await client.put("/notifications/preferences/user-3", json={"emailEnabled": True})
                assert partial.json()["pushEnabled"] is True
                assert partial.json()["emailEnabled"] is True

    _run(_with_cleanup(body()))


def test_token_registration_and_status(tmp_path) -> None:
    app = _prepare_app(tmp_path)

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                missing = await client.get("/firebase-tokens/status")
                assert missing.status_code == 400
                assert missing.json() == {"error": "Missing required parameter: userId is required"}

                await _register_token(client, "user-4", "abcdefghijklmnopqrstuvwxyz")
                # Re-registering the same device is idempotent.
                await _register_token(client, "user-4", "abcdefghijklmnopqrstuvwxyz")

                status_response = await client.get("/firebase-tokens/status", params={"userId": "user-4"})
                assert status_response.status_code == 200
                data = status_response.json()["data"]
                assert data["tokensCount"] == 1
                assert data["tokens"] == ["abcdefghij..."]
                assert data["pushEnabled"] is False
                assert data["preferences"] is None
                assert data["recentLogs"] == []

                deleted = await client.delete("/firebase-tokens/abcdefghijklmnopqrstuvwxyz")
                assert deleted.status_code == 204
                again = await client.delete("/firebase-tokens/abcdefghijklmnopqrstuvwxyz")
                assert again.status_code == 404

    _run(_with_cleanup(body()))


def test_test_push_endpoint(tmp_path) -> None:
    app = _prepare_app(tmp_path)

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                missing = await client.get("/api/test-firebase-push")
                assert missing.status_code == 400

                no_devices = await client.get("/api/test-firebase-push", params={"userId": "user-5"})
                assert no_devices.status_code == 200
                assert no_devices.json() == {
                    "success": False,
                    "message": "No FCM tokens found for this user",
                    "databaseOnly": True,
                    "tokensFound": 0,
                }

                await _register_token(client, "user-5", "push-device-token-5")
                app.state.dispatcher.push_provider.failing_tokens.add("push-device-token-5")
                failed = await client.get("/api/test-firebase-push", params={"userId": "user-5", "title": "Ping"})
                assert failed.json()["success"] is True
                assert failed.json()["result"] == {
                    "successCount": 0,
                    "failureCount": 1,
                    "tokensTotal": 1,
                    "failureDetails": [{"token": "push-devic...", "error": "UNREGISTERED"}],
                }
                sent = app.state.dispatcher.push_provider.sent[-1]
                assert sent.title == "Ping"
                assert sent.data["test"] == "true"
                assert sent.data["url"] == "/account"

                # The unregistered token was pruned by the failed send.
                status_response = await client.get("/firebase-tokens/status", params={"userId": "user-5"})
                data = status_response.json()["data"]
                assert data["tokensCount"] == 0
                assert data["recentLogs"][0]["status"] == "failed"
                assert data["recentLogs"][0]["notificationType"] == "test"

                inbox = await client.get("/notifications/inbox/user-5")
                assert [item["type"] for item in inbox.json()["items"]] == ["test", "test"]

    _run(_with_cleanup(body()))


class _UnreachablePushProvider:
    async def send_multicast(self, **_: object):
        raise RuntimeError("messaging/server-unavailable")


def test_test_push_endpoint_reports_provider_crash(tmp_path) -> None:
    app = _prepare_app(tmp_path)

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                await _register_token(client, "user-6", "push-device-token-6")
                app.state.dispatcher.push_provider = _UnreachablePushProvider()

                crashed = await client.get("/api/test-firebase-push", params={"userId": "user-6"})
                assert crashed.status_code == 500
                assert crashed.json() == {
                    "error": "Firebase messaging error",
                    "details": "messaging/server-unavailable",
                    "firebaseStatus": "error",
                    "databaseLogged": True,
                }

                status_response = await client.get("/firebase-tokens/status", params={"userId": "user-6"})
                data = status_response.json()["data"]
                assert data["tokensCount"] == 1
                assert data["recentLogs"][0]["status"] == "failed"
                assert data["recentLogs"][0]["errorMessage"] == "messaging/server-unavailable"

                inbox = (await client.get("/notifications/inbox/user-6")).json()
                assert inbox["items"][0]["type"] == "test"
                assert inbox["items"][0]["data"]["error"] == "Failed to send push notification"

    _run(_with_cleanup(body()))


def test_delivery_log_filters(tmp_path) -> None:
    app = _prepare_app(tmp_path)

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                await client.put("/profiles/user-6", json={"email": "six@example.com"})
                for user_id in ("user-6", "user-7"):
                    response = await client.post(
                        "/notifications/send",
                        json={"userId": user_id, "title": "Hi", "body": "Body", "push": False},
                    )
                    assert response.status_code == 200

                all_logs = await client.get("/notifications/logs", params={"channel": "email"})
                assert all_logs.json()["total"] == 2

                scoped = await client.get("/notifications/logs", params={"userId": "user-6", "status": "failed"})
                items = scoped.json()["items"]
                assert len(items) == 1
                assert items[0]["errorMessage"] == "Template not found for type custom"

                none_sent = await client.get("/notifications/logs", params={"status": "sent"})
                assert none_sent.json() == {"items": [], "total": 0}

    _run(_with_cleanup(body()))


def test_template_crud(tmp_path) -> None:
    app = _prepare_app(tmp_path)

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                created = await client.post(
                    "/email-templates",
                    json={
                        "name": "Welcome",
                        "type": "registration",
                        "subject": "Welcome {{first_name}}",
                        "body": "<p>Hello</p>",
                    },
                )
                assert created.status_code == 201, created.text
                template = created.json()
                assert template["isActive"] is True

                invalid = await client.post(
                    "/email-templates", json={"name": "Bad", "type": "fax", "subject": "x", "body": "y"}
                )
                assert invalid.status_code == 400

                updated = await client.put(f"/email-templates/{template['id']}", json={"isActive": False})
                assert updated.status_code == 200
                assert updated.json()["isActive"] is False
                assert updated.json()["subject"] == "Welcome {{first_name}}"

                active = await client.get("/email-templates", params={"active": "true"})
                assert active.json()["total"] == 0
                by_type = await client.get("/email-templates", params={"type": "registration"})
                assert by_type.json()["total"] == 1

                deleted = await client.delete(f"/email-templates/{template['id']}")
                assert deleted.status_code == 204
                missing = await client.get(f"/email-templates/{template['id']}")
                assert missing.status_code == 404

                push_template = await client.post(
                    "/notification-templates",
                    json={"name": "Shipped", "type": "order_status", "title": "Shipped", "body": "On its way"},
                )
                assert push_template.status_code == 201
                fetched = await client.get(f"/notification-templates/{push_template.json()['id']}")
                assert fetched.json()["title"] == "Shipped"
                missing_update = await client.put("/notification-templates/nope", json={"title": "x"})
                assert missing_update.status_code == 404

    _run(_with_cleanup(body()))


def test_profile_upsert(tmp_path) -> None:
    app = _prepare_app(tmp_path)

    async def body() -> None:
        async with lifespan(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                missing = await client.get("/profiles/admin-1")
                assert missing.status_code == 404

                created = await client.put(
                    "/profiles/admin-1",
                    json={"email": "ops@example.com", "firstName": "Ravi", "role": "admin"},
                )
                assert created.status_code == 200
                assert created.json()["role"] == "admin"

                updated = await client.put("/profiles/admin-1", json={"lastName": "Kumar"})
                profile = updated.json()
                assert (profile["firstName"], profile["lastName"], profile["email"]) == (
                    "Ravi",
                    "Kumar",
                    "ops@example.com",
                )

                bad_role = await client.put("/profiles/admin-1", json={"role": "overlord"})
                assert bad_role.status_code == 400

    _run(_with_cleanup(body()))


async def _with_cleanup(coro) -> None:
    try:
        await coro
    finally:
        await dispose_engines()


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with app.router.lifespan_context(app):
        yield
