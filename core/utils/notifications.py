# core/utils/notifications.py

import logging

from channels.layers import get_channel_layer
from asgiref.sync import async_to_sync
from django.contrib.auth import get_user_model
from django.utils import timezone

logger = logging.getLogger(__name__)

PAYOUT_OPS_GROUP = 'payout_ops'


def _group_send(group: str, message: str, notification_type: str) -> None:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    try:
        async_to_sync(channel_layer.group_send)(
            group,
            {
                'type': 'send_notification',
                'message': {
                    'type': notification_type,
                    'text': message,
                    'timestamp': timezone.now().isoformat(),
                },
            },
        )
    except Exception as e:
        # Nobody listening on the socket is normal; the DB row is the record
        logger.warning(f"Websocket push to {group} failed: {e}")


def send_websocket_notification(user, message, notification_type='info'):
    """
    Send real-time notification via WebSocket + save to DB.
    """
    from core.models import Notification

    Notification.objects.create(user=user, message=message, read=False)
    _group_send(f'notifications_{user.id}', message, notification_type)


def notify_payout_operators(message: str, notification_type: str = 'payout_escalation') -> int:
    """
    Surface a payout problem that needs a human: one Notification per active staff
    user plus a push to the ops group. Returns the number of staff notified.
    """
    from core.models import Notification

    staff = list(get_user_model().objects.filter(is_staff=True, is_active=True))
    Notification.objects.bulk_create(
        [Notification(user=u, message=message) for u in staff]
    )
    _group_send(PAYOUT_OPS_GROUP, message, notification_type)
    logger.warning(f"Payout escalation: {message}")
    return len(staff)
