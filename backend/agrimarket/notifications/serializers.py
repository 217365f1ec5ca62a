from rest_framework import serializers
from .models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ["id", "role", "type", "title", "message", "data",
                  "priority", "is_read", "created_at", "read_at"]
        read_only_fields = fields
