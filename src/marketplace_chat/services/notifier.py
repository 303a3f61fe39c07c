"""Best-effort delivery of domain events to live subscribers and push endpoints.

Events are only handed to the notifier after the write that produced them has
committed. Nothing here retries or raises back into the request.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from marketplace_chat.core.settings import settings
from marketplace_chat.services.broadcast import BroadcastClient, BroadcastError, get_broadcast_client
from marketplace_chat.services.fanout import DomainEvent, Publication, PushNotice, dispatch, push_notice
from marketplace_chat.services.push import PushService, get_push_service

logger = logging.getLogger(__name__)


class Notifier:
    """Publishes dispatched events and fires push notifications."""

    def __init__(
        self,
        broadcast: BroadcastClient,
        push: PushService | None = None,
        *,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.broadcast = broadcast
        self.push = push
        self.timeout_seconds = timeout_seconds

    async def notify(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            for publication in dispatch(event):
                await self._publish(publication)
            notice = push_notice(event)
            if notice is not None and self.push is not None:
                await self._push(notice)

    async def _publish(self, publication: Publication) -> None:
        if not self.broadcast.enabled:
            return
        try:
            await asyncio.wait_for(
                self.broadcast.trigger(
                    publication.channel,
                    publication.event_name,
                    publication.payload,
                ),
                timeout=self.timeout_seconds,
            )
        except (BroadcastError, TimeoutError) as exc:
            logger.warning(
                "Broadcast of %s to %s failed: %s",
                publication.event_name,
                publication.channel,
                exc,
            )

    async def _push(self, notice: PushNotice) -> None:
        push = self.push
        if push is None or not push.is_configured():
            return
        try:
            counts = await asyncio.wait_for(
                asyncio.to_thread(push.send_notice, notice),
                timeout=self.timeout_seconds,
            )
        except TimeoutError:
            logger.warning("Push delivery to %s timed out", ", ".join(notice.user_ids))
            return
        except Exception as exc:  # pragma: no cover - depends on remote push services
            logger.warning("Push delivery failed: %s", exc, exc_info=True)
            return
        logger.debug("Push delivery result %s", counts)


def get_notifier() -> Notifier:
    """Return a notifier wired to the shared broadcast client and push service."""
    return Notifier(
        get_broadcast_client(),
        get_push_service(),
        timeout_seconds=float(settings.broadcast_http_timeout_seconds),
    )
