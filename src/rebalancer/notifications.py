"""Webhook notifications for suggestions, failed runs and executions."""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_EVENTS = ["suggestion", "run_failed", "executed", "execution_failed"]


class Notifier:
    def __init__(self, webhook_url: str = "", enabled: bool = True, events: list[str] | None = None):
        self._url = webhook_url
        self._enabled = enabled and bool(webhook_url)
        self._events = set(events or DEFAULT_EVENTS)

    async def notify(self, event: str, data: dict[str, Any]) -> None:
        """Post to the webhook. Delivery failures are logged, never raised."""
        if not self._enabled or event not in self._events:
            return
        try:
            async with httpx.AsyncClient(timeout=5) as client:
                r = await client.post(self._url, json={"event": event, **data})
                r.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Notification %s failed: %s", event, e)
