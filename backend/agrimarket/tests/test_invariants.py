import threading
import time

import pytest
from django.db import IntegrityError, OperationalError, connection, transaction

from orders.exceptions import InvalidState
from orders.models import Order, Request, PaidStatus, DeliveryStatus
from orders.services import RequestApprovalService
from orders.transitions import invariant_violations


def check(order):
    order.refresh_from_db()
    ticket = Request.objects.filter(order=order).first()
    assert invariant_violations(order, ticket) == []


def attempt(fn, *args):
    try:
        fn(*args)
    except InvalidState:
        pass


STEPS = {
    "accept": lambda ctx, o: attempt(ctx["approval"].decide, o.request.id, ctx["seller"], "accepted"),
    "reject": lambda ctx, o: attempt(ctx["approval"].decide, o.request.id, ctx["seller"], "rejected"),
    "cancel": lambda ctx, o: attempt(ctx["orders"].cancel, o.id, ctx["buyer"]),
    "pay": lambda ctx, o: ctx["payments"].apply_callback(o.reference, "SUCCESSFUL"),
    "void": lambda ctx, o: ctx["payments"].apply_callback(o.reference, "CANCELLED"),
    "deliver": lambda ctx, o: attempt(ctx["orders"].confirm_delivery, o.id, ctx["buyer"]),
}


@pytest.mark.django_db
@pytest.mark.parametrize("sequence", [
    ["accept", "pay", "deliver"],
    ["pay", "accept", "deliver"],
    ["accept", "cancel", "pay", "deliver"],
    ["reject", "pay", "deliver", "cancel"],
    ["accept", "void", "pay", "deliver"],
    ["cancel", "accept", "reject", "deliver"],
    ["accept", "pay", "cancel", "void", "deliver", "deliver"],
    ["deliver", "pay", "deliver", "cancel"],
    ["pay", "deliver", "accept"],
    ["pay", "deliver", "reject"],
    ["pay", "reject", "pay", "deliver"],
    ["pay", "cancel", "pay", "accept"],
])
def test_invariants_hold_after_every_step(make_order, approval_service, order_service,
                                          payment_service, buyer, seller, sequence):
    ctx = {"approval": approval_service, "orders": order_service,
           "payments": payment_service, "buyer": buyer, "seller": seller}
    order = make_order()
    check(order)
    for step in sequence:
        STEPS[step](ctx, order)
        check(order)


@pytest.mark.django_db
def test_delivered_requires_paid_at_database_level(make_order):
    order = make_order()
    with pytest.raises(IntegrityError):
        with transaction.atomic():
            Order.objects.filter(pk=order.pk).update(delivery_status=DeliveryStatus.DELIVERED)
    order.refresh_from_db()
    assert order.paid_status == PaidStatus.PENDING


def test_violations_are_reported():
    order = Order(delivery_status=DeliveryStatus.DELIVERED, paid_status=PaidStatus.PENDING,
                  request_status="accepted", can_review=True)
    assert invariant_violations(order) == ["delivered order is not paid"]

    order = Order(delivery_status=DeliveryStatus.SHIPPED, paid_status=PaidStatus.PAID,
                  request_status="accepted", can_review=True)
    ticket = Request(status="pending")
    assert invariant_violations(order, ticket) == [
        "reviewable order is not delivered",
        "request status 'pending' != order request_status 'accepted'",
    ]


@pytest.mark.django_db(transaction=True)
def test_concurrent_decisions_have_one_winner(make_order, seller, sink):
    order = make_order()
    request_id = order.request.id
    barrier = threading.Barrier(2)
    outcomes = {}

    def run(decision):
        service = RequestApprovalService(notifier=sink)
        barrier.wait()
        try:
            for _ in range(50):
                try:
                    service.decide(request_id, seller, decision)
                    outcomes[decision] = "won"
                    return
                except OperationalError:
                    # sqlite reports lock contention instead of blocking
                    time.sleep(0.02)
                except InvalidState:
                    outcomes[decision] = "refused"
                    return
            outcomes[decision] = "gave up"
        finally:
            connection.close()

    threads = [threading.Thread(target=run, args=(d,)) for d in ("accepted", "rejected")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes.values()) == ["refused", "won"]
    winner = next(d for d, result in outcomes.items() if result == "won")
    order.refresh_from_db()
    ticket = Request.objects.get(pk=request_id)
    assert ticket.status == winner
    assert order.request_status == winner
    assert invariant_violations(order, ticket) == []
