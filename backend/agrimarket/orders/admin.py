from django.contrib import admin
from .models import Order, Request


class RequestInline(admin.StackedInline):
    model = Request
    extra = 0
    readonly_fields = ("status", "decided_at")


class OrderAdmin(admin.ModelAdmin):
    list_display = ("reference", "buyer", "seller", "request_status",
                    "paid_status", "delivery_status", "created_at")
    list_filter = ("request_status", "paid_status", "delivery_status", "refund_due")
    search_fields = ("reference", "product_name")
    readonly_fields = ("request_status", "paid_status", "delivery_status",
                       "can_review", "delivered_at", "refund_due")
    inlines = [RequestInline]


admin.site.register(Order, OrderAdmin)
