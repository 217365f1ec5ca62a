from django.db import models
from django.db.models import Q
from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator


class Review(models.Model):
    """
    Buyer's rating of a delivered, paid order.

    One review per (buyer, order). Product-only reviews leave ``order``
    empty and are not handled by the order core.
    """
    class Experience(models.TextChoices):
        POOR = 'poor', 'Poor'
        AVERAGE = 'average', 'Average'
        GOOD = 'good', 'Good'
        VERY_GOOD = 'very-good', 'Very good'
        EXCELLENT = 'excellent', 'Excellent'

    buyer = models.ForeignKey(settings.AUTH_USER_MODEL,
                              on_delete=models.CASCADE, related_name='written_reviews')
    seller = models.ForeignKey(settings.AUTH_USER_MODEL,
                               on_delete=models.CASCADE, related_name='received_reviews')
    order = models.ForeignKey('orders.Order', on_delete=models.SET_NULL,
                              null=True, blank=True, related_name='reviews')
    product = models.ForeignKey('catalog.Product', on_delete=models.SET_NULL,
                                null=True, blank=True, related_name='reviews')
    rating = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(5)])
    title = models.CharField(max_length=100, blank=True, default='')
    comment = models.TextField(max_length=500)
    experience = models.CharField(max_length=12, choices=Experience.choices)
    is_verified = models.BooleanField(default=True)
    is_visible = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['buyer', 'order'], condition=Q(order__isnull=False),
                                    name='uniq_review_per_buyer_order'),
            models.CheckConstraint(condition=Q(rating__gte=1) & Q(rating__lte=5),
                                   name='review_rating_1_to_5'),
        ]
        indexes = [
            models.Index(fields=['seller', 'created_at']),
            models.Index(fields=['is_visible', 'seller']),
        ]

    def __str__(self):
        return f"{self.buyer} → {self.seller} ({self.rating})"
