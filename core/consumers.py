# core/consumers.py

import json
import logging

from channels.generic.websocket import AsyncWebsocketConsumer

from .utils.notifications import PAYOUT_OPS_GROUP

logger = logging.getLogger(__name__)


class NotificationConsumer(AsyncWebsocketConsumer):

    async def connect(self):
        self.user_id = self.scope['url_route']['kwargs']['user_id']
        user = self.scope.get('user')

        if not user or not user.is_authenticated or str(user.id) != str(self.user_id):
            await self.close()
            return

        self.room_group_name = f'notifications_{self.user_id}'

        # Join the notification group
        await self.channel_layer.group_add(
            self.room_group_name,
            self.channel_name
        )
        await self.accept()
        logger.debug(f"Websocket connected for user {self.user_id}")

        await self.send(text_data=json.dumps({
            'message': f'Connected to WebSocket for user {self.user_id}'
        }))

    async def disconnect(self, close_code):
        if hasattr(self, 'room_group_name'):
            await self.channel_layer.group_discard(
                self.room_group_name,
                self.channel_name
            )

    async def send_notification(self, event):
        await self.send(text_data=json.dumps({
            'message': event['message']
        }))


class PayoutOpsConsumer(NotificationConsumer):
    """Staff-only feed of payout escalations."""

    async def connect(self):
        user = self.scope.get('user')
        if not user or not user.is_authenticated or not user.is_staff:
            await self.close()
            return

        self.room_group_name = PAYOUT_OPS_GROUP
        await self.channel_layer.group_add(self.room_group_name, self.channel_name)
        await self.accept()
