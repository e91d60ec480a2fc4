"""Webhook notification tests."""

import httpx
import pytest

from rebalancer.notifications import Notifier


def test_notifier_disabled():
    n = Notifier(webhook_url="", enabled=True)
    assert not n._enabled


def test_notifier_event_filter():
    n = Notifier(webhook_url="http://example.com", events=["suggestion"])
    assert "suggestion" in n._events
    assert "run_failed" not in n._events


def test_default_events():
    n = Notifier(webhook_url="http://example.com")
    assert n._events == {"suggestion", "run_failed", "executed", "execution_failed"}


@pytest.mark.asyncio
async def test_notify_skips_disabled():
    n = Notifier(webhook_url="", enabled=False)
    await n.notify("suggestion", {"amount": "6.0"})  # should not raise


@pytest.mark.asyncio
async def test_notify_posts_payload(monkeypatch):
    sent = {}

    async def mock_post(self, url, **kw):
        sent["url"] = url
        sent["json"] = kw["json"]
        return httpx.Response(200, request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx.AsyncClient, "post", mock_post)
    await Notifier("http://hook.example").notify("executed", {"action_id": "a1"})
    assert sent == {"url": "http://hook.example", "json": {"event": "executed", "action_id": "a1"}}


@pytest.mark.asyncio
async def test_notify_failure_is_swallowed(monkeypatch):
    async def mock_post(self, url, **kw):
        raise httpx.ConnectError("down")

    monkeypatch.setattr(httpx.AsyncClient, "post", mock_post)
    await Notifier("http://hook.example").notify("run_failed", {"error": "x"})
