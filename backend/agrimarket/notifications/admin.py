from django.contrib import admin
from .models import Notification


class NotificationAdmin(admin.ModelAdmin):
    list_display = ("type", "user", "role", "is_read", "created_at")
    list_filter = ("type", "is_read")


admin.site.register(Notification, NotificationAdmin)
