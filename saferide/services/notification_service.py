"""
Notification Service - Push notifications via FCM and in-app
notification center.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional

from saferide.config import settings
from saferide.database import NOTIFICATIONS, USERS, DocumentStore
from saferide.models.notification import Notification, NotificationType
from saferide.services import notification_content as content
from saferide.utils.timezone_utils import Clock, SystemClock

logger = logging.getLogger(__name__)


# =============================================================================
# FCM Configuration
# =============================================================================
# Firebase Cloud Messaging is configured through the Firebase Admin SDK.
# The same service account used for auth verification is used for FCM.
# Without an initialized Firebase app, pushes fail and only the in-app
# record is kept.
# =============================================================================


class Notifier(ABC):
    """Fire-and-forget notification sender. Implementations never raise."""

    @abstractmethod
    async def notify(
        self,
        user_ids: Iterable[str],
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
        notification_type: NotificationType = NotificationType.SYSTEM,
    ) -> None:
        """Deliver one notification to every user in ``user_ids``."""


class NotificationService(Notifier):
    """
    Notification service for push and in-app notifications.

    Supports:
    - FCM push notifications (requires Firebase Admin SDK)
    - In-app notification center stored in the document store

    Every failure is logged and swallowed so that the operation that
    triggered the notification is never affected.
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Optional[Clock] = None,
        push_enabled: Optional[bool] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.push_enabled = (
            settings.push_notifications_enabled if push_enabled is None else push_enabled
        )
        self.timeout_seconds = timeout_seconds or settings.notification_timeout_seconds

    async def notify(
        self,
        user_ids: Iterable[str],
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
        notification_type: NotificationType = NotificationType.SYSTEM,
    ) -> None:
        for user_id in dict.fromkeys(user_ids):
            try:
                await self.send_notification(user_id, notification_type, title, body, data)
            except Exception as e:
                logger.error(f"Notification to {user_id} failed: {e}")

    async def send_notification(
        self,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        """
        Send a notification to a user.

        Creates an in-app notification and, when enabled, sends an FCM push.
        """
        notification = Notification(
            id=str(uuid.uuid4()),
            user_id=user_id,
            type=notification_type,
            title=title,
            body=body,
            data=data,
            is_read=False,
            created_at=self.clock.now(),
        )
        await self.store.create(NOTIFICATIONS, notification.model_dump())

        if self.push_enabled:
            await self._send_fcm_push(user_id, title, body, data)

        return notification

    async def _send_fcm_push(
        self,
        user_id: str,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Send FCM push notification.

        SECURITY: FCM credentials are loaded from Firebase Admin SDK.
        """
        from firebase_admin import messaging

        try:
            user = await self.store.get(USERS, user_id)
            if not user:
                logger.debug(f"[FCM] User {user_id} not found")
                return False
            if not user.get("fcm_token"):
                logger.debug(f"[FCM] User {user_id} has no FCM token registered")
                return False

            message = messaging.Message(
                notification=messaging.Notification(title=title, body=body),
                data={str(k): str(v) for k, v in (data or {}).items()},
                token=user["fcm_token"],
            )

            # messaging.send is blocking; keep it off the event loop
            result = await asyncio.wait_for(
                asyncio.to_thread(messaging.send, message),
                timeout=self.timeout_seconds,
            )
            logger.info(f"[FCM] Push sent to {user_id}: {title} (message_id: {result})")
            return True

        except asyncio.TimeoutError:
            logger.warning(f"[FCM] Push to {user_id} timed out")
            return False
        except Exception as e:
            logger.warning(f"[FCM] Push failed for {user_id}: {e}")
            return False


# =============================================================================
# Notification Templates
# =============================================================================


class MatchNotifications:
    """Match lifecycle messages built on top of any Notifier."""

    def __init__(self, notifier: Notifier):
        self.notifier = notifier

    async def match_found(self, user_ids, match_id: str, meeting_point: str, cost: float):
        await self.notifier.notify(
            user_ids,
            content.pick(content.MATCH_FOUND_TITLES),
            content.MATCH_FOUND_BODY.format(
                meeting_point=meeting_point, cost=content.format_cost(cost)
            ),
            {"match_id": match_id, "action": "view_match"},
            NotificationType.MATCH_FOUND,
        )

    async def match_confirmed(self, user_ids, match_id: str, final_cost: float):
        await self.notifier.notify(
            user_ids,
            content.pick(content.MATCH_CONFIRMED_TITLES),
            content.MATCH_CONFIRMED_BODY.format(cost=content.format_cost(final_cost)),
            {"match_id": match_id, "action": "view_match"},
            NotificationType.MATCH_CONFIRMED,
        )

    async def confirmation_reminder(self, user_ids, match_id: str, minutes_left: int):
        await self.notifier.notify(
            user_ids,
            content.pick(content.CONFIRMATION_REMINDER_TITLES),
            content.CONFIRMATION_REMINDER_BODY.format(minutes=minutes_left),
            {"match_id": match_id, "action": "confirm_match"},
            NotificationType.CONFIRMATION_REMINDER,
        )

    async def match_expired(self, user_ids, match_id: str):
        await self.notifier.notify(
            user_ids,
            content.MATCH_EXPIRED_TITLE,
            content.MATCH_EXPIRED_BODY,
            {"match_id": match_id},
            NotificationType.MATCH_EXPIRED,
        )

    async def confirmation_timeout(self, user_ids, match_id: str, confirmed: int, total: int):
        await self.notifier.notify(
            user_ids,
            content.CONFIRMATION_TIMEOUT_TITLE,
            content.CONFIRMATION_TIMEOUT_BODY.format(confirmed=confirmed, total=total),
            {"match_id": match_id, "confirmed": confirmed, "total": total},
            NotificationType.CONFIRMATION_TIMEOUT,
        )

    async def not_enough_participants(self, user_ids, match_id: str, leaver_name: str):
        await self.notifier.notify(
            user_ids,
            content.MATCH_CANCELLED_TITLE,
            content.NOT_ENOUGH_PARTICIPANTS_BODY.format(name=leaver_name),
            {"match_id": match_id},
            NotificationType.MATCH_CANCELLED,
        )

    async def participant_left(self, user_ids, match_id: str, leaver_name: str, new_cost: float):
        await self.notifier.notify(
            user_ids,
            content.PARTICIPANT_LEFT_TITLE,
            content.PARTICIPANT_LEFT_BODY.format(
                name=leaver_name, cost=content.format_cost(new_cost)
            ),
            {"match_id": match_id, "cost_per_person": new_cost},
            NotificationType.PARTICIPANT_LEFT,
        )

    async def ride_started(self, user_ids, match_id: str):
        await self.notifier.notify(
            user_ids,
            content.RIDE_STARTED_TITLE,
            content.RIDE_STARTED_BODY,
            {"match_id": match_id},
            NotificationType.RIDE_STARTED,
        )

    async def ride_completed(self, user_ids, match_id: str):
        await self.notifier.notify(
            user_ids,
            content.RIDE_COMPLETED_TITLE,
            content.RIDE_COMPLETED_BODY,
            {"match_id": match_id},
            NotificationType.RIDE_COMPLETED,
        )
