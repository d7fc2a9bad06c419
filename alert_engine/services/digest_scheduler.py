"""Periodic flush of deferred ``email_digest`` notifications."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

import structlog
from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from alert_engine.core.config import Settings, get_settings
from alert_engine.models.alert import (
    Notification,
    NotificationChannel,
    NotificationPreference,
    NotificationStatus,
    NotificationType,
)
from alert_engine.models.user import User
from alert_engine.services.delivery import send_with_retry
from alert_engine.services.email import EmailService, email_service
from alert_engine.services.notification_dispatcher import load_preferences

logger = structlog.get_logger()


@dataclass
class DigestReport:
    users_checked: int = 0
    digests_sent: int = 0
    failed: int = 0
    skipped: int = 0


def digest_due(preferences: NotificationPreference, now: datetime) -> bool:
    if not preferences.email_digest_enabled:
        return False
    if preferences.last_digest_sent_at is None:
        return True
    return now - preferences.last_digest_sent_at >= timedelta(hours=preferences.digest_frequency_hours)


class DigestScheduler:
    """Sends one summary email per user per digest period."""

    def __init__(
        self,
        db: AsyncSession,
        email_sender: Optional[EmailService] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.email_sender = email_sender or email_service
        self.settings = settings or get_settings()

    async def run(self, now: datetime) -> DigestReport:
        """Flush every user whose digest period has elapsed.

        Only rows created at or before ``now`` are included; anything newer
        waits for the next flush.
        """
        report = DigestReport()

        result = await self.db.execute(
            select(Notification.user_id)
            .where(self._pending_filter(now))
            .distinct()
            .order_by(Notification.user_id)
        )
        user_ids = list(result.scalars().all())

        for user_id in user_ids:
            report.users_checked += 1
            preferences = await self._get_or_create_preferences(user_id)
            if not digest_due(preferences, now):
                report.skipped += 1
                continue

            sent = await self.flush_user(preferences, now)
            if sent is None:
                report.skipped += 1
            elif sent:
                report.digests_sent += 1
            else:
                report.failed += 1

        logger.info(
            "Digest run finished",
            users_checked=report.users_checked,
            digests_sent=report.digests_sent,
            failed=report.failed,
            skipped=report.skipped,
        )
        return report

    async def flush_user(self, preferences: NotificationPreference, now: datetime) -> Optional[bool]:
        """Send the digest for one user.

        Returns ``None`` when there was nothing to send, otherwise whether the
        email went out. On failure nothing is marked, so the next run retries.
        """
        user_id = preferences.user_id
        result = await self.db.execute(
            select(Notification)
            .where(and_(Notification.user_id == user_id, self._pending_filter(now)))
            .order_by(Notification.created_at.asc(), Notification.id.asc())
        )
        pending: List[Notification] = list(result.scalars().all())
        if not pending:
            return None

        user = await self.db.get(User, user_id)
        if user is None or not user.is_active:
            logger.info("Skipping digest for inactive user", user_id=user_id)
            return None

        items = [
            {
                "title": n.title,
                "message": n.message,
                "severity": n.severity.value,
                "created_at": n.created_at,
            }
            for n in pending
        ]
        to_email = user.email
        user_name = user.first_name or user.username
        period_hours = preferences.digest_frequency_hours

        delivery = await send_with_retry(
            lambda: self.email_sender.send_digest_email(
                to_email=to_email,
                user_name=user_name,
                items=items,
                period_hours=period_hours,
            ),
            settings=self.settings,
            user_id=user_id,
            channel=NotificationChannel.EMAIL_DIGEST.value,
        )
        if not delivery.delivered:
            return False

        await self.db.execute(
            update(Notification)
            .where(Notification.id.in_([n.id for n in pending]))
            .values(
                delivered_at=now,
                delivery_attempts=Notification.delivery_attempts + delivery.attempts,
                last_error=None,
            )
            .execution_options(synchronize_session=False)
        )
        preferences.last_digest_sent_at = now

        top_severity = max((n.severity for n in pending), key=lambda s: s.rank)
        self.db.add(
            Notification(
                user_id=user_id,
                trigger_id=None,
                title="Alert digest",
                message=f"{len(pending)} alert(s) sent in your email digest",
                severity=top_severity,
                notification_type=NotificationType.DIGEST.value,
                channel=NotificationChannel.IN_APP,
                status=NotificationStatus.UNREAD,
                created_at=now,
                delivered_at=now,
                delivery_attempts=delivery.attempts,
            )
        )
        await self.db.commit()

        logger.info("Digest sent", user_id=user_id, items=len(pending))
        return True

    async def _get_or_create_preferences(self, user_id: int) -> NotificationPreference:
        preferences = await load_preferences(self.db, user_id)
        if preferences is None:
            preferences = NotificationPreference(user_id=user_id)
            self.db.add(preferences)
            await self.db.commit()
            await self.db.refresh(preferences)
        return preferences

    @staticmethod
    def _pending_filter(now: datetime):
        return and_(
            Notification.channel == NotificationChannel.EMAIL_DIGEST,
            Notification.notification_type == NotificationType.ALERT.value,
            Notification.delivered_at.is_(None),
            Notification.created_at <= now,
        )
