"""
Notification sink.

Stores every notification in the ``notifications`` table (the inbox the
frontend polls) and, when NOTIFY_WEBHOOK_URL is configured, relays it to the
realtime gateway. Both steps are best-effort: delivery failures are logged,
never raised to the caller.
"""

import asyncio
import logging

import httpx
from supabase import Client

logger = logging.getLogger(__name__)


class NotificationSink:
    """Takes {recipient_id, event, payload} and delivers it best-effort."""

    def __init__(
        self,
        db: Client,
        http: httpx.AsyncClient | None = None,
        webhook_url: str = "",
        timeout: float = 10,
    ):
        self.db = db
        self.http = http
        self.webhook_url = webhook_url
        self.timeout = timeout

    async def notify(self, recipient_id: str, event: str, payload: dict) -> bool:
        """Deliver one notification.

        Returns:
            True if it was stored (and relayed, when a relay is configured).
        """
        record = {
            "recipient_id": recipient_id,
            "event": event,
            "payload": payload,
        }

        try:
            await asyncio.to_thread(
                lambda: self.db.table("notifications").insert(record).execute()
            )
        except Exception as e:
            logger.error(f"❌ Failed to store notification '{event}' for {recipient_id}: {e}")
            return False

        if not self.webhook_url or self.http is None:
            return True

        try:
            response = await self.http.post(
                self.webhook_url, json=record, timeout=self.timeout
            )
            if response.status_code >= 400:
                logger.warning(f"⚠️ Notification relay returned {response.status_code} for '{event}'")
                return False
            logger.info(f"✅ Notification '{event}' relayed to {recipient_id}")
            return True
        except httpx.HTTPError as e:
            logger.warning(f"⚠️ Notification relay failed for '{event}': {e}")
            return False

    async def notify_many(self, recipient_ids: list[str], event: str, payload: dict) -> int:
        """Fan out the same event to several recipients. Returns delivered count."""
        results = await asyncio.gather(
            *(self.notify(rid, event, payload) for rid in recipient_ids)
        )
        return sum(1 for ok in results if ok)
