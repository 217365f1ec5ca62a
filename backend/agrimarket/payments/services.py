"""
Payment reconciliation.

``initiate`` only talks to the gateway; the order's ``paid_status`` is
changed exclusively by ``apply_callback`` when the gateway reports back.
Callbacks may arrive late, twice, or for orders that have moved on, so
each one is checked against the locked order before anything is written.
"""
import enum
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from django.db import transaction

from notifications.sink import NotificationEvent, default_sink, publish
from orders import transitions
from orders.exceptions import InvalidInput, Forbidden, NotFound
from orders.models import Order, PaidStatus
from orders.services import refund_events
from .gateway import PaymentGateway

log = logging.getLogger(__name__)


class PaymentOutcome(str, enum.Enum):
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"


PAID_DESCRIPTIONS = {"successful", "success", "completed", "paid"}
CANCELLED_DESCRIPTIONS = {"cancelled", "canceled"}


def classify(description):
    text = (description or "").strip().lower()
    if text in PAID_DESCRIPTIONS:
        return PaymentOutcome.PAID
    if text in CANCELLED_DESCRIPTIONS:
        return PaymentOutcome.CANCELLED
    return PaymentOutcome.FAILED


@dataclass
class CallbackResult:
    order: Order
    outcome: PaymentOutcome
    applied: bool


class PaymentService:

    def __init__(self, gateway=None, notifier=None):
        self.gateway = gateway or PaymentGateway()
        self.notifier = notifier or default_sink()

    def initiate(self, order_id, buyer, amount, payer_phone):
        if not order_id:
            raise InvalidInput("orderId is required.")
        if not payer_phone:
            raise InvalidInput("Phone number is required.")
        try:
            amount = Decimal(str(amount)).quantize(Decimal("0.01"))
        except (InvalidOperation, ValueError):
            raise InvalidInput("Amount must be a number.")
        if amount <= 0:
            raise InvalidInput("Amount must be greater than zero.")

        order = Order.objects.filter(pk=order_id).first()
        if order is None:
            raise NotFound("Order not found.")
        if order.buyer_id != buyer.id:
            raise Forbidden("You can only pay for your own orders.")
        transitions.ensure_payable(order)
        if amount != order.total_price:
            raise InvalidInput(f"Amount must equal the order total of {order.total_price}.")

        gateway_response = self.gateway.run_bill_payment(order.reference, amount, payer_phone)
        log.info("Payment initiated for order %s (amount %s)", order.reference, amount)
        return order, gateway_response

    def apply_callback(self, reference_no, description):
        if not reference_no:
            raise InvalidInput("Reference number is required.")
        outcome = classify(description)

        with transaction.atomic():
            order = Order.objects.select_for_update().filter(reference=reference_no).first()
            if order is None:
                raise NotFound(f"Order not found for reference: {reference_no}")

            if outcome is PaymentOutcome.FAILED:
                log.info("Payment for order %s failed (%r); order stays payable",
                         order.reference, description)
                return CallbackResult(order, outcome, applied=False)

            target = PaidStatus.PAID if outcome is PaymentOutcome.PAID else PaidStatus.REJECTED
            if not transitions.settle_payment(order, target):
                if outcome is PaymentOutcome.PAID and transitions.flag_late_capture(order):
                    order.save(update_fields=["refund_due", "updated_at"])
                    log.warning("Payment captured for %s order %s, refund due",
                                order.delivery_status, reference_no)
                    publish(self.notifier, refund_events(order))
                elif order.paid_status == target:
                    log.info("Duplicate %s callback for order %s ignored", outcome.value, reference_no)
                else:
                    log.warning("Ignoring %s callback for order %s already %s",
                                outcome.value, reference_no, order.paid_status)
                return CallbackResult(order, outcome, applied=False)

            order.save(update_fields=["paid_status", "updated_at"])
            publish(self.notifier, self._callback_events(order, outcome, description))

        log.info("Order %s payment settled as %s", order.reference, order.paid_status)
        return CallbackResult(order, outcome, applied=True)

    @staticmethod
    def _callback_events(order, outcome, description):
        if outcome is PaymentOutcome.PAID:
            return [
                NotificationEvent(
                    order.buyer_id, "buyer", "payment_success", "Payment Successful",
                    f"Your payment for order {order.reference} has been processed successfully.",
                    {"orderId": order.reference, "amount": order.total_price},
                ),
                NotificationEvent(
                    order.seller_id, "seller", "payment_received", "Payment Received",
                    f"You have received payment for order {order.reference}. "
                    f"Amount: K{order.total_price}",
                    {"orderId": order.reference, "amount": order.total_price,
                     "productName": order.product_name},
                ),
            ]
        return [
            NotificationEvent(
                order.buyer_id, "buyer", "payment_failed", "Payment Failed",
                f"Your payment for order {order.reference} has failed. {description}",
                {"orderId": order.reference, "reason": description},
            ),
        ]

    @staticmethod
    def status(reference, user):
        order = Order.objects.filter(reference=reference).first()
        if order is None:
            raise NotFound("Order not found.")
        if user.id not in (order.buyer_id, order.seller_id):
            raise Forbidden("Unauthorized access to this order.")
        return {
            "orderId": order.reference,
            "paidStatus": order.paid_status,
            "deliveryStatus": order.delivery_status,
            "totalPrice": order.total_price,
            "refundDue": order.refund_due,
            "createdAt": order.created_at,
        }

    @staticmethod
    def history(user, as_seller=False):
        """Orders whose payment has settled, newest first."""
        qs = Order.objects.filter(seller=user) if as_seller else Order.objects.filter(buyer=user)
        return qs.filter(
            paid_status__in=[PaidStatus.PAID, PaidStatus.REJECTED],
        ).select_related("buyer", "seller", "request")
