"""Turn a newly opened trigger into per-channel notifications."""

import asyncio
from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from alert_engine.core.clock import utcnow
from alert_engine.core.config import Settings, get_settings
from alert_engine.core.principal import Principal
from alert_engine.models.alert import (
    AlertRule,
    AlertTrigger,
    Notification,
    NotificationChannel,
    NotificationPreference,
    NotificationStatus,
    NotificationType,
)
from alert_engine.services.delivery import DeliveryResult, send_with_retry
from alert_engine.services.email import EmailService, email_service
from alert_engine.services.preference_resolver import DeliveryDecision, should_deliver_now

logger = structlog.get_logger()


async def load_preferences(db: AsyncSession, user_id: int) -> Optional[NotificationPreference]:
    result = await db.execute(
        select(NotificationPreference).where(NotificationPreference.user_id == user_id)
    )
    return result.scalar_one_or_none()


class NotificationDispatcher:
    """Creates notification rows for a trigger and delivers immediate email.

    All rows are committed before any email is attempted, so an outage of
    the email provider never loses the in-app notification.
    """

    def __init__(
        self,
        db: AsyncSession,
        email_sender: Optional[EmailService] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.email_sender = email_sender or email_service
        self.settings = settings or get_settings()

    async def dispatch(
        self,
        trigger: AlertTrigger,
        rule: AlertRule,
        recipient: Principal,
        now: datetime,
    ) -> List[Notification]:
        """Create and deliver notifications for ``trigger``. Never raises."""
        try:
            notifications = await self._create_notifications(trigger, rule, recipient, now)
        except Exception as e:
            logger.error(
                "Notification dispatch failed",
                trigger_id=trigger.id,
                user_id=recipient.user_id,
                error=str(e),
                exc_info=True,
            )
            return []

        emails = [
            n for n in notifications
            if n.channel == NotificationChannel.EMAIL and n.delivered_at is None
        ]
        if emails:
            try:
                await self._deliver_emails(emails, recipient)
            except Exception as e:
                logger.error(
                    "Email delivery bookkeeping failed",
                    trigger_id=trigger.id,
                    error=str(e),
                    exc_info=True,
                )
        return notifications

    async def _create_notifications(
        self,
        trigger: AlertTrigger,
        rule: AlertRule,
        recipient: Principal,
        now: datetime,
    ) -> List[Notification]:
        preferences = await load_preferences(self.db, recipient.user_id)

        existing = await self.db.execute(
            select(Notification.channel).where(
                and_(
                    Notification.trigger_id == trigger.id,
                    Notification.user_id == recipient.user_id,
                )
            )
        )
        already_sent = set(existing.scalars().all())

        notifications = []
        for channel in rule.channel_set:
            if channel in already_sent:
                continue

            decision = should_deliver_now(preferences, trigger.severity, channel, now)
            if decision == DeliveryDecision.SUPPRESS:
                logger.info(
                    "Notification suppressed by preferences",
                    trigger_id=trigger.id,
                    user_id=recipient.user_id,
                    channel=channel.value,
                )
                continue

            notification = Notification(
                user_id=recipient.user_id,
                trigger_id=trigger.id,
                title=rule.name,
                message=trigger.message,
                severity=trigger.severity,
                notification_type=NotificationType.ALERT.value,
                entity_type="windfarm",
                entity_id=trigger.windfarm_id,
                channel=channel,
                status=NotificationStatus.UNREAD,
                created_at=now,
            )
            if channel == NotificationChannel.IN_APP:
                # The row itself is the in-app delivery
                notification.delivered_at = now
            notifications.append(notification)

        if not notifications:
            return []

        self.db.add_all(notifications)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info("Notifications already dispatched", trigger_id=trigger.id)
            return []

        logger.info(
            "Notifications created",
            trigger_id=trigger.id,
            user_id=recipient.user_id,
            channels=[n.channel.value for n in notifications],
        )
        return notifications

    async def _deliver_emails(self, notifications: List[Notification], recipient: Principal) -> None:
        async def deliver(notification: Notification) -> DeliveryResult:
            title, message, severity = notification.title, notification.message, notification.severity.value
            return await send_with_retry(
                lambda: self.email_sender.send_alert_email(
                    to_email=recipient.email,
                    user_name=recipient.username,
                    title=title,
                    message=message,
                    severity=severity,
                ),
                settings=self.settings,
                notification_id=notification.id,
                channel=NotificationChannel.EMAIL.value,
            )

        results = await asyncio.gather(*(deliver(n) for n in notifications))

        for notification, result in zip(notifications, results):
            notification.delivery_attempts = (notification.delivery_attempts or 0) + result.attempts
            if result.delivered:
                notification.delivered_at = utcnow()
                notification.last_error = None
            else:
                notification.last_error = result.last_error
        await self.db.commit()
