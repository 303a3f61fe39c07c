"""Web push delivery and subscription management."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable

from pywebpush import WebPushException, webpush
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from marketplace_chat.core.settings import settings
from marketplace_chat.db.session import SessionLocal
from marketplace_chat.models import PushSubscription
from marketplace_chat.services.errors import InvalidRequestError
from marketplace_chat.services.fanout import PushNotice

logger = logging.getLogger(__name__)

EXPIRED_STATUS_CODES = (404, 410)


def subscribe(
    db: Session,
    user_id: str,
    endpoint: str,
    p256dh: str | None,
    auth: str | None,
) -> PushSubscription:
    """Store a browser subscription for ``user_id``; re-subscribing updates it."""
    endpoint = (endpoint or "").strip()
    if not endpoint:
        raise InvalidRequestError("Subscription endpoint is required")

    existing = db.execute(
        select(PushSubscription).where(PushSubscription.endpoint == endpoint)
    ).scalar_one_or_none()
    if existing is None:
        existing = PushSubscription(user_id=user_id, endpoint=endpoint)
        db.add(existing)
    existing.user_id = user_id
    existing.p256dh = p256dh
    existing.auth = auth
    db.commit()
    db.refresh(existing)
    return existing


def unsubscribe(db: Session, user_id: str, endpoint: str) -> bool:
    """Remove a subscription owned by ``user_id``. Returns True if one was deleted."""
    result = db.execute(
        delete(PushSubscription).where(
            PushSubscription.user_id == user_id,
            PushSubscription.endpoint == endpoint,
        )
    )
    db.commit()
    return bool(result.rowcount)


class PushService:
    """Sends push notifications to every subscription of the target users.

    Runs synchronously; callers on the event loop should use a worker thread.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory

    @staticmethod
    def is_configured() -> bool:
        return settings.push_configured

    def send_notice(self, notice: PushNotice) -> dict[str, int]:
        """Deliver ``notice`` and return ``sent``/``failed``/``expired`` counts."""
        counts = {"sent": 0, "failed": 0, "expired": 0}
        if not self.is_configured():
            logger.debug("Push notifications not configured; skipping send")
            return counts
        if not notice.user_ids:
            return counts

        payload = json.dumps(
            {"title": notice.title, "body": notice.body, "url": notice.url, "icon": "/favicon.ico"}
        )

        with self._session_factory() as db:
            subscriptions = db.execute(
                select(PushSubscription).where(PushSubscription.user_id.in_(notice.user_ids))
            ).scalars().all()

            for subscription in subscriptions:
                outcome = self._send_to_subscription(subscription, payload)
                counts[outcome] += 1
                if outcome == "expired":
                    db.delete(subscription)
            db.commit()

        return counts

    def _send_to_subscription(self, subscription: PushSubscription, payload: str) -> str:
        try:
            webpush(
                subscription_info={
                    "endpoint": subscription.endpoint,
                    "keys": {"p256dh": subscription.p256dh, "auth": subscription.auth},
                },
                data=payload,
                vapid_private_key=(settings.vapid_private_key or "").strip(),
                vapid_claims={"sub": settings.vapid_claims_email},
                timeout=settings.push_timeout_seconds,
            )
            return "sent"
        except WebPushException as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            if status_code in EXPIRED_STATUS_CODES:
                logger.info(
                    "Push subscription expired; deleting endpoint=%s user_id=%s",
                    subscription.endpoint,
                    subscription.user_id,
                )
                return "expired"
            logger.warning("Push send failed: %s", exc)
            return "failed"


def get_push_service() -> PushService:
    """Return a push service bound to the application session factory."""
    return PushService()
