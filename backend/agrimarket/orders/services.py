"""
Order lifecycle and seller approval.

OrderService owns creation, cancellation, deletion and delivery
confirmation; RequestApprovalService applies the seller's decision. Both
lock the Order row before its Request row and re-check preconditions
against the locked copies, so concurrent calls on one order serialize.
"""
import datetime
import logging
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from catalog.models import Product
from notifications.sink import NotificationEvent, default_sink, publish
from . import transitions
from .exceptions import InvalidInput, InvalidState, Forbidden, NotFound
from .models import Order, Request, RequestStatus, DeliveryStatus

log = logging.getLogger(__name__)


def _coerce_date(value):
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str) and value:
        parsed = parse_date(value)
        if parsed is None:
            moment = parse_datetime(value)
            parsed = moment.date() if moment else None
        if parsed is not None:
            return parsed
    raise InvalidInput("Delivery date is required and must be a valid date.")


def _coerce_quantity(value):
    if isinstance(value, bool):
        raise InvalidInput("Quantity must be a positive whole number.")
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        raise InvalidInput("Quantity must be a positive whole number.")
    if quantity <= 0 or quantity != Decimal(str(value)):
        raise InvalidInput("Quantity must be a positive whole number.")
    return quantity


def _coerce_amount(value):
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        raise InvalidInput("Total price must be a number.")


def refund_events(order):
    data = {"orderId": order.reference, "amount": order.total_price}
    return [
        NotificationEvent(
            order.buyer_id, "buyer", "payment_refund_required", "Refund Pending",
            f"Order {order.reference} was paid but will not be fulfilled. "
            f"Your payment of K{order.total_price} is due for a refund.",
            data,
        ),
        NotificationEvent(
            order.seller_id, "seller", "payment_refund_required", "Refund Required",
            f"Order {order.reference} was paid but will not be fulfilled. "
            f"K{order.total_price} must be refunded to the buyer.",
            data,
        ),
    ]


def lock_order(order_id):
    order = Order.objects.select_for_update().filter(pk=order_id).first()
    if order is None:
        raise NotFound("Order not found.")
    return order


def lock_request_of(order):
    return Request.objects.select_for_update().filter(order=order).first()


class OrderService:

    def __init__(self, notifier=None):
        self.notifier = notifier or default_sink()

    def create(self, buyer, product_id, quantity, delivery_date, total_price=None):
        if not product_id:
            raise InvalidInput("Product is required.")
        quantity = _coerce_quantity(quantity)
        delivery_date = _coerce_date(delivery_date)
        if delivery_date < timezone.localdate():
            raise InvalidInput("Delivery date cannot be in the past.")

        with transaction.atomic():
            product = Product.objects.filter(pk=product_id).first()
            if product is None:
                raise NotFound("Product not found.")
            if not product.is_active:
                raise InvalidState("This product is no longer active.")
            if not product.is_orderable:
                raise InvalidState("This product is currently unavailable.")
            if product.seller_id == buyer.id:
                raise InvalidInput("You cannot order your own product.")

            unit_price = product.current_price
            total = (unit_price * quantity).quantize(Decimal("0.01"))
            if total_price not in (None, "") and _coerce_amount(total_price) != total:
                raise InvalidInput(
                    f"Total price {total_price} does not match {quantity} x {unit_price}.")

            order = Order.objects.create(
                buyer=buyer,
                seller_id=product.seller_id,
                product=product,
                product_name=product.name,
                product_image=product.image,
                unit=product.unit,
                unit_price=unit_price,
                quantity=quantity,
                total_price=total,
                delivery_date=delivery_date,
            )
            order_request = Request.objects.create(
                seller_id=product.seller_id,
                buyer=buyer,
                product=product,
                order=order,
            )

            publish(self.notifier, [
                NotificationEvent(
                    buyer.id, "buyer", "order_created", "Order Confirmed",
                    f"Your order for {product.name} has been confirmed and is being processed.",
                    {"orderId": order.reference, "productId": product.id,
                     "amount": total, "deliveryDate": delivery_date},
                ),
                NotificationEvent(
                    product.seller_id, "seller", "request_received", "New Order Request",
                    f"You have received a new order request for {product.name} from {buyer.username}.",
                    {"orderId": order.reference, "requestId": order_request.id,
                     "productId": product.id, "buyerName": buyer.username},
                ),
            ])

        log.info("Order %s created by buyer %s (request %s)",
                 order.reference, buyer.id, order_request.id)
        return order

    def cancel(self, order_id, buyer):
        with transaction.atomic():
            order = lock_order(order_id)
            if order.buyer_id != buyer.id:
                raise Forbidden("Only the buyer can cancel their own orders.")
            order_request = lock_request_of(order)

            changed = transitions.cancel(order, order_request)
            if not changed:
                log.info("Order %s already cancelled, nothing to do", order.reference)
                return order

            order.save(update_fields=changed)
            if order_request is not None:
                order_request.save(update_fields=["status"])

            events = [
                NotificationEvent(
                    order.seller_id, "seller", "order_cancelled", "Order Cancelled",
                    f"Order {order.reference} has been cancelled by the buyer.",
                    {"orderId": order.reference},
                ),
            ]
            if "refund_due" in changed:
                log.warning("Paid order %s cancelled, refund due", order.reference)
                events.extend(refund_events(order))
            publish(self.notifier, events)

        log.info("Order %s cancelled by buyer %s", order.reference, buyer.id)
        return order

    def delete(self, order_id, buyer):
        with transaction.atomic():
            order = lock_order(order_id)
            if order.buyer_id != buyer.id:
                raise Forbidden("Only the buyer can delete their own orders.")
            transitions.ensure_deletable(order)

            reference = order.reference
            order_request = lock_request_of(order)
            if order_request is not None:
                order_request.delete()
            order.delete()

        log.info("Order %s deleted by buyer %s", reference, buyer.id)

    def confirm_delivery(self, order_id, buyer):
        with transaction.atomic():
            order = lock_order(order_id)
            if order.buyer_id != buyer.id:
                raise Forbidden("You can only confirm delivery for your own orders.")

            changed = transitions.confirm_delivery(order, timezone.now())
            order.save(update_fields=changed)

            data = {"orderId": order.reference, "productName": order.product_name,
                    "amount": order.total_price}
            publish(self.notifier, [
                NotificationEvent(
                    order.seller_id, "seller", "delivery_confirmed", "Delivery Confirmed!",
                    f'Your delivery for "{order.product_name}" has been confirmed by the buyer.',
                    {**data, "buyerName": buyer.username},
                ),
                NotificationEvent(
                    order.buyer_id, "buyer", "delivery_completed", "Delivery Completed!",
                    f'Your order "{order.product_name}" has been delivered. '
                    f'You can now rate the seller!',
                    {**data, "canReview": True},
                ),
            ])

        log.info("Delivery of order %s confirmed by buyer %s", order.reference, buyer.id)
        return order

    @staticmethod
    def statistics(user, as_seller=False):
        qs = Order.objects.filter(seller=user) if as_seller else Order.objects.filter(buyer=user)
        stats = qs.aggregate(
            total_orders=Count("id"),
            total_value=Sum("total_price"),
            pending_orders=Count("id", filter=Q(delivery_status=DeliveryStatus.PENDING)),
            shipped_orders=Count("id", filter=Q(delivery_status=DeliveryStatus.SHIPPED)),
            delivered_orders=Count("id", filter=Q(delivery_status=DeliveryStatus.DELIVERED)),
            cancelled_orders=Count("id", filter=Q(delivery_status=DeliveryStatus.CANCELLED)),
        )
        stats["total_value"] = stats["total_value"] or Decimal("0")
        return stats


class RequestApprovalService:

    DECISIONS = (RequestStatus.ACCEPTED, RequestStatus.REJECTED)

    def __init__(self, notifier=None):
        self.notifier = notifier or default_sink()

    def decide(self, request_id, seller, decision):
        if decision not in self.DECISIONS:
            raise InvalidInput("Invalid status. Must be accepted or rejected.")
        decision = RequestStatus(decision)

        with transaction.atomic():
            peek = Request.objects.filter(pk=request_id).values("order_id").first()
            if peek is None:
                raise NotFound("Request not found.")
            order = None
            if peek["order_id"] is not None:
                order = Order.objects.select_for_update().filter(pk=peek["order_id"]).first()

            order_request = Request.objects.select_for_update().filter(pk=request_id).first()
            if order_request is None:
                raise NotFound("Request not found.")
            if order_request.seller_id != seller.id:
                raise Forbidden("Unauthorized access to this request.")

            old_status = order_request.status
            changed = transitions.decide(order, order_request, decision)
            order_request.decided_at = timezone.now()
            order_request.save(update_fields=["status", "decided_at"])
            if order is None:
                log.warning("Request %s has no associated order, skipping order update",
                            order_request.id)
            else:
                order.save(update_fields=changed)

            events = self._decision_events(order_request, order, seller, old_status)
            if "refund_due" in changed:
                log.warning("Paid order %s rejected by seller, refund due", order.reference)
                events.extend(refund_events(order))
            publish(self.notifier, events)

        log.info("Request %s %s by seller %s", order_request.id, decision, seller.id)
        return order_request

    @staticmethod
    def _decision_events(order_request, order, seller, old_status):
        reference = order.reference if order else None
        events = []
        if order_request.status == RequestStatus.ACCEPTED:
            events.append(NotificationEvent(
                order_request.buyer_id, "buyer", "request_accepted", "Request Accepted",
                "Your request has been accepted by the seller. You can now proceed with payment.",
                {"requestId": order_request.id, "orderId": reference},
            ))
            if order is not None:
                events.append(NotificationEvent(
                    order_request.buyer_id, "buyer", "delivery_scheduled", "Delivery Scheduled",
                    f"Your order {order.reference} is scheduled for delivery on "
                    f"{order.delivery_date:%Y-%m-%d}.",
                    {"orderId": order.reference, "deliveryDate": order.delivery_date,
                     "productName": order.product_name},
                ))
        else:
            events.append(NotificationEvent(
                order_request.buyer_id, "buyer", "request_rejected", "Request Rejected",
                "Your request has been rejected by the seller.",
                {"requestId": order_request.id, "orderId": reference},
            ))
        events.append(NotificationEvent(
            seller.id, "seller", "request_updated", "Request Updated",
            f"You have {order_request.status} a request from "
            f"{order_request.buyer.username if order_request.buyer_id else 'a buyer'}.",
            {"requestId": order_request.id, "status": order_request.status,
             "oldStatus": old_status, "orderId": reference},
        ))
        return events

    def withdraw(self, request_id, buyer):
        """Buyer pulls back a request the seller has not accepted."""
        order_request = Request.objects.filter(pk=request_id).first()
        if order_request is None:
            raise NotFound("Request not found.")
        if order_request.buyer_id != buyer.id:
            raise Forbidden("You can only cancel your own requests.")
        if order_request.status == RequestStatus.ACCEPTED:
            raise InvalidState("Cannot cancel an accepted request.")

        if order_request.order_id is not None:
            OrderService(notifier=self.notifier).cancel(order_request.order_id, buyer)
        else:
            with transaction.atomic():
                order_request = Request.objects.select_for_update().get(pk=request_id)
                if order_request.status == RequestStatus.PENDING:
                    order_request.status = RequestStatus.REJECTED
                    order_request.save(update_fields=["status"])
                    publish(self.notifier, [
                        NotificationEvent(
                            order_request.seller_id, "seller", "request_cancelled",
                            "Request Cancelled",
                            "A buyer has cancelled their request for your product.",
                            {"requestId": order_request.id,
                             "productId": order_request.product_id},
                        ),
                    ])
            log.info("Request %s withdrawn by buyer %s", order_request.id, buyer.id)
        order_request.refresh_from_db()
        return order_request

    @staticmethod
    def pending_count(seller):
        return Request.objects.filter(seller=seller, status=RequestStatus.PENDING).count()

    @staticmethod
    def statistics(user, as_buyer=False):
        qs = Request.objects.filter(buyer=user) if as_buyer else Request.objects.filter(seller=user)
        return qs.aggregate(
            total_requests=Count("id"),
            pending_requests=Count("id", filter=Q(status=RequestStatus.PENDING)),
            accepted_requests=Count("id", filter=Q(status=RequestStatus.ACCEPTED)),
            rejected_requests=Count("id", filter=Q(status=RequestStatus.REJECTED)),
        )
