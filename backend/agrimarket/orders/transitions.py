"""
Transition table for the Order/Request aggregate.

These functions are the only writers of the status fields. They mutate
instances in memory and return the names of the fields they touched; the
caller saves them inside the same ``transaction.atomic()`` block that
locked the rows.
"""
from .models import RequestStatus, PaidStatus, DeliveryStatus
from .exceptions import InvalidState, AlreadyDelivered


# (request_status, paid_status, delivery_status) that each decision lands on
DECISION_TARGETS = {
    RequestStatus.ACCEPTED: (RequestStatus.ACCEPTED, PaidStatus.PENDING, DeliveryStatus.SHIPPED),
    RequestStatus.REJECTED: (RequestStatus.REJECTED, PaidStatus.REJECTED, DeliveryStatus.CANCELLED),
}

CANCELLED_TARGET = (RequestStatus.REJECTED, PaidStatus.REJECTED, DeliveryStatus.CANCELLED)

ORDER_STATUS_FIELDS = ['request_status', 'paid_status', 'delivery_status', 'updated_at']


def _apply(order, request, target):
    request_status, paid_status, delivery_status = target
    changed = list(ORDER_STATUS_FIELDS)
    if order.paid_status == PaidStatus.PAID and paid_status == PaidStatus.REJECTED:
        # captured money stays recorded on the order until it is refunded
        order.refund_due = True
        changed.append("refund_due")
    order.request_status = request_status
    order.paid_status = paid_status
    order.delivery_status = delivery_status
    if request is not None:
        request.status = request_status
    return changed


def decide(order, request, decision):
    """Seller decision. Only a pending request may be decided."""
    if request.status != RequestStatus.PENDING:
        raise InvalidState(f"Request has already been {request.status}.")
    target = DECISION_TARGETS[decision]
    if order is None:
        request.status = target[0]
        return []
    if order.delivery_status == DeliveryStatus.DELIVERED:
        raise InvalidState("Cannot decide on an order that has already been delivered.")
    if decision == RequestStatus.ACCEPTED and order.paid_status == PaidStatus.PAID:
        # payment callback arrived before the decision
        target = (target[0], PaidStatus.PAID, target[2])
    return _apply(order, request, target)


def cancel(order, request):
    """
    Buyer withdrawal. Returns an empty list when the order is already
    cancelled so repeated calls are harmless.
    """
    if order.delivery_status == DeliveryStatus.CANCELLED:
        return []
    if order.delivery_status == DeliveryStatus.DELIVERED:
        raise InvalidState("Cannot cancel an order that has been delivered.")
    if order.in_fulfillment:
        raise InvalidState("Cannot cancel order that has already been processed.")
    return _apply(order, request, CANCELLED_TARGET)


def ensure_deletable(order):
    if order.is_completed:
        raise InvalidState("Cannot delete order that has been delivered and paid.")


def confirm_delivery(order, now):
    if order.delivery_status == DeliveryStatus.DELIVERED:
        raise AlreadyDelivered()
    if order.paid_status != PaidStatus.PAID:
        raise InvalidState("Order must be paid before confirming delivery.")
    order.delivery_status = DeliveryStatus.DELIVERED
    if order.delivered_at is None:
        order.delivered_at = now
    order.can_review = True
    return ['delivery_status', 'delivered_at', 'can_review', 'updated_at']


def ensure_payable(order):
    if order.paid_status == PaidStatus.REJECTED:
        raise InvalidState("This order has been rejected and cannot be paid for.")
    if order.paid_status == PaidStatus.PAID:
        raise InvalidState("This order has already been paid for.")


def settle_payment(order, paid_status):
    """
    Move ``paid_status`` out of Pending. Returns False when nothing changed:
    the outcome already holds, or the order already settled the other way.
    """
    if order.paid_status != PaidStatus.PENDING:
        return False
    order.paid_status = paid_status
    return True


def flag_late_capture(order):
    """
    A successful payment reported for an order that was already rejected
    or cancelled. Marks the order for refund; returns False if it already was.
    """
    if order.paid_status != PaidStatus.REJECTED or order.refund_due:
        return False
    order.refund_due = True
    return True


def invariant_violations(order, request=None):
    """List the aggregate invariants ``order`` currently breaks."""
    problems = []
    if order.delivery_status == DeliveryStatus.DELIVERED and order.paid_status != PaidStatus.PAID:
        problems.append("delivered order is not paid")
    if order.can_review and order.delivery_status != DeliveryStatus.DELIVERED:
        problems.append("reviewable order is not delivered")
    if request is not None and request.status != order.request_status:
        problems.append(
            f"request status {request.status!r} != order request_status {order.request_status!r}")
    return problems
