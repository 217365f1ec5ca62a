from django.db import models
from django.conf import settings
from django.utils import timezone


class TimeStamped(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Product(TimeStamped):
    """
    Catalog listing as seen by the order core. Listing management lives
    elsewhere; orders only read availability and price from here.
    """
    class Availability(models.TextChoices):
        AVAILABLE = "Available", "Available"
        UNAVAILABLE = "Unavailable", "Unavailable"

    name = models.CharField(max_length=120)
    description = models.TextField(blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    promo_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    is_on_promotion = models.BooleanField(default=False)
    promotion_end_date = models.DateTimeField(null=True, blank=True)
    unit = models.CharField(max_length=16, default="kg")
    image = models.CharField(max_length=255, blank=True)
    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="products")
    stock = models.PositiveIntegerField(default=0)
    availability = models.CharField(
        max_length=12, choices=Availability.choices, default=Availability.AVAILABLE)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.name

    @property
    def promotion_running(self):
        if not self.is_on_promotion or self.promo_price is None:
            return False
        return self.promotion_end_date is None or self.promotion_end_date > timezone.now()

    @property
    def current_price(self):
        return self.promo_price if self.promotion_running else self.price

    @property
    def is_orderable(self):
        return self.is_active and self.availability == self.Availability.AVAILABLE
