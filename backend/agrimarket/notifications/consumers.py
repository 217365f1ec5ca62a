import logging
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from channels.db import database_sync_to_async
from .models import Notification
from .serializers import NotificationSerializer
from .sink import user_group

log = logging.getLogger(__name__)


class NotificationConsumer(AsyncJsonWebsocketConsumer):
    """Live notification feed for the connected user."""

    async def connect(self):
        user = self.scope.get("user")
        if not user or not user.is_authenticated:
            log.info("NotificationConsumer: closing 4001 (unauth)")
            await self.close(code=4001)
            return

        self.user = user
        self.group = user_group(user.id)
        await self.channel_layer.group_add(self.group, self.channel_name)
        await self.accept()
        await self.send_json({
            "type": "snapshot",
            "unread": await self._unread_snapshot(),
        })

    async def disconnect(self, code):
        try:
            if hasattr(self, "group"):
                await self.channel_layer.group_discard(self.group, self.channel_name)
        except Exception:
            log.exception("NotificationConsumer.disconnect error")

    async def notification_new(self, event):
        await self.send_json({"type": "notification", "notification": event["notification"]})

    @database_sync_to_async
    def _unread_snapshot(self, limit=20):
        qs = Notification.objects.filter(user=self.user, is_read=False)[:limit]
        return NotificationSerializer(qs, many=True).data
