"""Platform notifier tests."""

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer as HookServer

from presence_guard.config.models import NotifierConfig
from presence_guard.exceptions import NotificationDeliveryFailure
from presence_guard.models.presence import AlertLevel
from presence_guard.notifiers import LogNotifier, WebhookNotifier, create_notifier


def test_factory_picks_log_without_webhook():
    assert isinstance(create_notifier(NotifierConfig()), LogNotifier)
    assert create_notifier().name == "log"


def test_factory_picks_webhook_with_url():
    notifier = create_notifier(NotifierConfig(webhook_url="https://push.example.org/hook"))
    assert isinstance(notifier, WebhookNotifier)
    assert notifier.url == "https://push.example.org/hook"


@pytest.mark.asyncio
async def test_log_notifier_always_delivers():
    notifier = LogNotifier()
    assert await notifier.send(
        "observer-1", "Check on Mom", "body", AlertLevel.WARNING, {"level": "warning"}
    )
    await notifier.close()


@pytest.mark.asyncio
async def test_webhook_posts_json():
    received = []

    async def handler(request):
        received.append(await request.json())
        return web.json_response({"ok": True})

    app = web.Application()
    app.router.add_post("/hook", handler)
    server = HookServer(app)
    await server.start_server()
    notifier = WebhookNotifier(str(server.make_url("/hook")), timeout_seconds=5)
    try:
        assert await notifier.send(
            "observer-1",
            "Mom may need help",
            "No activity for 2 days",
            AlertLevel.DANGER,
            {"observed_person_id": "user-1"},
        )
    finally:
        await notifier.close()
        await server.close()

    assert received[0]["target_user_id"] == "observer-1"
    assert received[0]["level"] == "danger"
    assert received[0]["severity"] == 3
    assert received[0]["metadata"] == {"observed_person_id": "user-1"}


@pytest.mark.asyncio
async def test_webhook_error_status_raises():
    async def handler(request):
        return web.Response(status=503, text="unavailable")

    app = web.Application()
    app.router.add_post("/hook", handler)
    server = HookServer(app)
    await server.start_server()
    notifier = WebhookNotifier(str(server.make_url("/hook")), timeout_seconds=5)
    try:
        with pytest.raises(NotificationDeliveryFailure):
            await notifier.send("observer-1", "t", "b", AlertLevel.WARNING)
    finally:
        await notifier.close()
        await server.close()


@pytest.mark.asyncio
async def test_webhook_connection_error_raises():
    notifier = WebhookNotifier("http://127.0.0.1:9/hook", timeout_seconds=2)
    try:
        with pytest.raises(NotificationDeliveryFailure):
            await notifier.send("observer-1", "t", "b", AlertLevel.WARNING)
    finally:
        await notifier.close()
