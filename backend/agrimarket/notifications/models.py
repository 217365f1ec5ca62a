from django.db import models
from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.utils import timezone


class Notification(models.Model):
    class Role(models.TextChoices):
        BUYER = "buyer", "Buyer"
        SELLER = "seller", "Seller"

    class Priority(models.TextChoices):
        LOW = "low", "Low"
        MEDIUM = "medium", "Medium"
        HIGH = "high", "High"
        URGENT = "urgent", "Urgent"

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE,
                             related_name="notifications")
    role = models.CharField(max_length=10, choices=Role.choices)
    type = models.CharField(max_length=40)
    title = models.CharField(max_length=120)
    message = models.TextField()
    data = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    priority = models.CharField(max_length=10, choices=Priority.choices, default=Priority.MEDIUM)
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    read_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "is_read", "created_at"]),
        ]

    @classmethod
    def priority_for(cls, type):
        return EVENT_PRIORITIES.get(type, cls.Priority.MEDIUM)

    def __str__(self):
        return f"{self.type} -> {self.user_id}"

    def mark_as_read(self):
        if self.is_read:
            return False
        self.is_read = True
        self.read_at = timezone.now()
        self.save(update_fields=["is_read", "read_at"])
        return True


EVENT_PRIORITIES = {
    "payment_refund_required": Notification.Priority.URGENT,
    "payment_failed": Notification.Priority.HIGH,
    "request_received": Notification.Priority.HIGH,
    "request_rejected": Notification.Priority.HIGH,
    "order_cancelled": Notification.Priority.HIGH,
    "request_cancelled": Notification.Priority.HIGH,
    "review_submitted": Notification.Priority.LOW,
    "request_updated": Notification.Priority.LOW,
}
