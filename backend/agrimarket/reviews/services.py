import logging
from decimal import Decimal, ROUND_HALF_UP

from django.db import IntegrityError, transaction
from django.db.models import Avg, Count

from accounts.models import Profile
from notifications.sink import NotificationEvent, default_sink, publish
from orders.exceptions import (InvalidInput, Forbidden, NotFound,
                               AlreadyReviewed, NotEligible)
from orders.models import Order, PaidStatus, DeliveryStatus
from orders.services import lock_order
from .models import Review

log = logging.getLogger(__name__)

EDITABLE_FIELDS = ('rating', 'comment', 'experience', 'title')


def _validate_rating(rating):
    if isinstance(rating, bool):
        raise InvalidInput("Rating must be between 1 and 5.")
    try:
        value = int(rating)
    except (TypeError, ValueError):
        raise InvalidInput("Rating must be between 1 and 5.")
    if value != rating and str(value) != str(rating).strip():
        raise InvalidInput("Rating must be a whole number.")
    if not 1 <= value <= 5:
        raise InvalidInput("Rating must be between 1 and 5.")
    return value


def _validate_text(comment=None, experience=None, title=None, partial=False):
    cleaned = {}
    if comment is not None or not partial:
        if not comment or not str(comment).strip():
            raise InvalidInput("Comment is required.")
        if len(comment) > 500:
            raise InvalidInput("Comment cannot exceed 500 characters.")
        cleaned['comment'] = comment
    if experience is not None or not partial:
        if experience not in Review.Experience.values:
            raise InvalidInput(
                f"Experience must be one of: {', '.join(Review.Experience.values)}.")
        cleaned['experience'] = experience
    if title is not None:
        if len(title) > 100:
            raise InvalidInput("Title cannot exceed 100 characters.")
        cleaned['title'] = title
    return cleaned


class ReviewService:
    """Review eligibility, submission and seller rating aggregates."""

    def __init__(self, notifier=None):
        self.notifier = notifier or default_sink()

    @staticmethod
    def eligibility(order, buyer):
        reasons = {
            'order_delivered': order.delivery_status == DeliveryStatus.DELIVERED,
            'order_paid': order.paid_status == PaidStatus.PAID,
            'review_allowed': order.can_review,
            'already_reviewed': Review.objects.filter(buyer=buyer, order=order).exists(),
        }
        eligible = (reasons['order_delivered'] and reasons['order_paid']
                    and reasons['review_allowed'] and not reasons['already_reviewed'])
        return eligible, reasons

    def can_review(self, order_id, buyer):
        order = Order.objects.filter(pk=order_id).first()
        if order is None:
            raise NotFound("Order not found.")
        if order.buyer_id != buyer.id:
            raise Forbidden("You can only check your own orders.")
        eligible, reasons = self.eligibility(order, buyer)
        return {'eligible': eligible, 'reasons': reasons}

    def submit(self, order_id, buyer, rating, comment, experience, title=''):
        rating = _validate_rating(rating)
        fields = _validate_text(comment=comment, experience=experience, title=title or '')

        with transaction.atomic():
            order = lock_order(order_id)
            if order.buyer_id != buyer.id:
                raise Forbidden("You can only review your own orders.")

            eligible, reasons = self.eligibility(order, buyer)
            if reasons['already_reviewed']:
                raise AlreadyReviewed()
            if not eligible:
                raise NotEligible(reasons, "You can only review delivered and paid orders.")

            try:
                with transaction.atomic():
                    review = Review.objects.create(
                        buyer=buyer,
                        seller_id=order.seller_id,
                        order=order,
                        product_id=order.product_id,
                        rating=rating,
                        **fields,
                    )
            except IntegrityError:
                raise AlreadyReviewed()

            order.can_review = False
            order.save(update_fields=['can_review', 'updated_at'])
            self.recompute_seller_rating(order.seller_id)

            publish(self.notifier, [
                NotificationEvent(
                    order.seller_id, 'seller', 'seller_rated', 'New Review Received',
                    f'You received a {rating}-star review from {buyer.username} '
                    f'for "{order.product_name}".',
                    {'orderId': order.reference, 'reviewId': review.id, 'rating': rating},
                ),
                NotificationEvent(
                    buyer.id, 'buyer', 'review_submitted', 'Review Submitted',
                    f'Thank you! Your {rating}-star review for "{order.product_name}" '
                    f'has been submitted successfully.',
                    {'orderId': order.reference, 'reviewId': review.id, 'rating': rating},
                ),
            ])

        log.info("Review %s submitted for order %s by buyer %s",
                 review.id, order.reference, buyer.id)
        return review

    def update(self, review_id, buyer, **changes):
        changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None}
        if 'rating' in changes:
            changes['rating'] = _validate_rating(changes['rating'])
        changes.update(_validate_text(
            comment=changes.get('comment'), experience=changes.get('experience'),
            title=changes.get('title'), partial=True))

        with transaction.atomic():
            review = Review.objects.select_for_update().filter(pk=review_id).first()
            if review is None:
                raise NotFound("Review not found.")
            if review.buyer_id != buyer.id:
                raise Forbidden("You can only update your own reviews.")

            for name, value in changes.items():
                setattr(review, name, value)
            review.save()
            if 'rating' in changes:
                self.recompute_seller_rating(review.seller_id)

        log.info("Review %s updated by buyer %s", review.id, buyer.id)
        return review

    def delete(self, review_id, buyer):
        with transaction.atomic():
            review = Review.objects.filter(pk=review_id).first()
            if review is None:
                raise NotFound("Review not found.")
            if review.buyer_id != buyer.id:
                raise Forbidden("You can only delete your own reviews.")

            order = lock_order(review.order_id) if review.order_id else None
            seller_id = review.seller_id
            review.delete()

            # allow the buyer to review again
            if order is not None:
                order.can_review = True
                order.save(update_fields=['can_review', 'updated_at'])
            self.recompute_seller_rating(seller_id)

        log.info("Review %s deleted by buyer %s", review_id, buyer.id)

    @staticmethod
    def recompute_seller_rating(seller_id):
        """Re-aggregate the seller's visible reviews onto their profile."""
        stats = Review.objects.filter(seller_id=seller_id, is_visible=True).aggregate(
            average=Avg('rating'), total=Count('id'))
        average = Decimal(str(stats['average'] or 0)).quantize(
            Decimal('0.1'), rounding=ROUND_HALF_UP)
        total = stats['total']
        Profile.objects.filter(user_id=seller_id).update(
            average_rating=average, total_reviews=total)
        log.debug("Seller %s rating recomputed: %s over %s reviews", seller_id, average, total)
        return average, total

    @staticmethod
    def seller_stats(seller_id):
        visible = Review.objects.filter(seller_id=seller_id, is_visible=True)
        distribution = {rating: 0 for rating in range(1, 6)}
        for row in visible.values('rating').annotate(n=Count('id')):
            distribution[row['rating']] = row['n']
        total = sum(distribution.values())
        average = (Decimal(sum(r * n for r, n in distribution.items())) / total) if total else Decimal(0)
        return {
            'total_reviews': total,
            'average_rating': average.quantize(Decimal('0.1'), rounding=ROUND_HALF_UP),
            'rating_distribution': distribution,
        }

    @staticmethod
    def reviewable_orders(buyer):
        return (Order.objects
                .filter(buyer=buyer, delivery_status=DeliveryStatus.DELIVERED,
                        paid_status=PaidStatus.PAID, can_review=True)
                .exclude(reviews__buyer=buyer)
                .order_by('-delivered_at'))
