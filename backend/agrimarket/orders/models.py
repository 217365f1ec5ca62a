from django.db import models
from django.db.models import Q
from django.conf import settings
from django.utils import timezone
from django.utils.crypto import get_random_string


class RequestStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    ACCEPTED = 'accepted', 'Accepted'
    REJECTED = 'rejected', 'Rejected'


class PaidStatus(models.TextChoices):
    PENDING = 'Pending', 'Pending'
    PAID = 'Paid', 'Paid'
    REJECTED = 'Rejected', 'Rejected'


class DeliveryStatus(models.TextChoices):
    PENDING = 'Pending', 'Pending'
    SHIPPED = 'Shipped', 'Shipped'
    DELIVERED = 'Delivered', 'Delivered'
    CANCELLED = 'Cancelled', 'Cancelled'


def generate_reference():
    millis = int(timezone.now().timestamp() * 1000)
    suffix = get_random_string(9, allowed_chars='abcdefghijklmnopqrstuvwxyz0123456789')
    return f"ORD-{millis}-{suffix}"


class Order(models.Model):
    reference = models.CharField(max_length=40, unique=True, default=generate_reference, editable=False)
    buyer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE,
                              related_name='orders')
    seller = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE,
                               related_name='sold_orders')
    product = models.ForeignKey('catalog.Product', on_delete=models.SET_NULL,
                                null=True, related_name='orders')

    # snapshot of the listing at purchase time
    product_name = models.CharField(max_length=120)
    product_image = models.CharField(max_length=255, blank=True)
    unit = models.CharField(max_length=16)
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    quantity = models.PositiveIntegerField()
    total_price = models.DecimalField(max_digits=12, decimal_places=2)
    delivery_date = models.DateField()

    request_status = models.CharField(max_length=10, choices=RequestStatus.choices,
                                      default=RequestStatus.PENDING)
    paid_status = models.CharField(max_length=10, choices=PaidStatus.choices,
                                   default=PaidStatus.PENDING)
    delivery_status = models.CharField(max_length=10, choices=DeliveryStatus.choices,
                                       default=DeliveryStatus.PENDING)
    can_review = models.BooleanField(default=False)
    delivered_at = models.DateTimeField(null=True, blank=True)
    refund_due = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.CheckConstraint(
                condition=~Q(delivery_status=DeliveryStatus.DELIVERED) | Q(paid_status=PaidStatus.PAID),
                name='order_delivered_implies_paid',
            ),
        ]
        indexes = [
            models.Index(fields=['buyer', 'created_at']),
            models.Index(fields=['seller', 'created_at']),
        ]

    def __str__(self):
        return f"Order {self.reference} by {self.buyer}"

    @property
    def is_completed(self):
        return (self.paid_status == PaidStatus.PAID
                and self.delivery_status == DeliveryStatus.DELIVERED)

    @property
    def in_fulfillment(self):
        return (self.paid_status == PaidStatus.PAID
                and self.delivery_status != DeliveryStatus.PENDING)


class Request(models.Model):
    """Seller-facing approval ticket gating one Order."""
    seller = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE,
                               related_name='incoming_requests')
    buyer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE,
                              related_name='outgoing_requests')
    product = models.ForeignKey('catalog.Product', on_delete=models.SET_NULL,
                                null=True, related_name='requests')
    order = models.OneToOneField(Order, on_delete=models.SET_NULL, null=True,
                                 related_name='request')
    status = models.CharField(max_length=10, choices=RequestStatus.choices,
                              default=RequestStatus.PENDING)
    created_at = models.DateTimeField(auto_now_add=True)
    decided_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Request #{self.id} ({self.status})"
