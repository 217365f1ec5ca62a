"""
Notification side channel for order state transitions.

Services describe what happened as :class:`NotificationEvent` values and
hand them to :func:`publish`, which delivers them through a
:class:`NotificationSink` once the surrounding transaction commits.
Delivery failures are logged and dropped; they never reach the caller.
"""
import json
import logging
from dataclasses import dataclass, field

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    user_id: int
    role: str
    type: str
    title: str
    message: str
    data: dict = field(default_factory=dict)


class NotificationSink:
    def notify(self, user_id, role, type, title, message, data=None):
        raise NotImplementedError


class ChannelsNotificationSink(NotificationSink):
    """Stores the notification and pushes it to the user's live group."""

    def notify(self, user_id, role, type, title, message, data=None):
        from .models import Notification
        from .serializers import NotificationSerializer

        # round-trip so Decimal/date values are plain JSON everywhere
        payload = json.loads(json.dumps(data or {}, cls=DjangoJSONEncoder))
        notification = Notification.objects.create(
            user_id=user_id, role=role, type=type,
            title=title, message=message, data=payload,
            priority=Notification.priority_for(type),
        )

        channel_layer = get_channel_layer()
        if channel_layer is not None:
            async_to_sync(channel_layer.group_send)(
                user_group(user_id),
                {
                    "type": "notification.new",
                    "notification": NotificationSerializer(notification).data,
                },
            )
        return notification


def user_group(user_id):
    return f"notifications_user_{user_id}"


def default_sink():
    return ChannelsNotificationSink()


def deliver(sink, events):
    for event in events:
        try:
            sink.notify(event.user_id, event.role, event.type,
                        event.title, event.message, dict(event.data))
        except Exception:
            log.exception("Notification %s for user %s could not be delivered",
                          event.type, event.user_id)


def publish(sink, events):
    """Deliver ``events`` after the current transaction commits."""
    events = list(events)
    if not events:
        return
    transaction.on_commit(lambda: deliver(sink, events))
