import datetime
from decimal import Decimal

import pytest
from django.utils import timezone

from catalog.models import Product
from orders.exceptions import InvalidInput, InvalidState, NotFound, Forbidden, AlreadyDelivered
from orders.models import Order, Request, RequestStatus, PaidStatus, DeliveryStatus


@pytest.mark.django_db
def test_create_builds_linked_order_and_request(make_order, buyer, seller, product):
    order = make_order(quantity=2)

    assert order.total_price == Decimal("20.00")
    assert order.unit_price == Decimal("10.00")
    assert order.reference.startswith("ORD-")
    assert order.buyer_id == buyer.id
    assert order.seller_id == seller.id
    assert order.product_name == "White Maize"
    assert order.unit == "bag"
    assert (order.request_status, order.paid_status, order.delivery_status) == (
        RequestStatus.PENDING, PaidStatus.PENDING, DeliveryStatus.PENDING)
    assert order.can_review is False

    ticket = Request.objects.get(order=order)
    assert ticket.status == RequestStatus.PENDING
    assert ticket.seller_id == seller.id
    assert ticket.buyer_id == buyer.id
    assert ticket.product_id == product.id


@pytest.mark.django_db
def test_create_notifies_buyer_and_seller_after_commit(
        order_service, sink, buyer, seller, product, tomorrow,
        django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        order_service.create(buyer, product.id, 1, tomorrow)

    assert sink.types_for(buyer.id) == ["order_created"]
    assert sink.types_for(seller.id) == ["request_received"]


@pytest.mark.django_db
def test_create_accepts_today_and_matching_total(make_order):
    order = make_order(quantity=3, total_price="30.00")
    assert order.total_price == Decimal("30.00")


@pytest.mark.django_db
def test_create_allows_delivery_today(order_service, buyer, product):
    order = order_service.create(buyer, product.id, 1, timezone.localdate())
    assert order.delivery_date == timezone.localdate()


@pytest.mark.django_db
def test_create_uses_running_promotion_price(order_service, buyer, product, tomorrow):
    product.is_on_promotion = True
    product.promo_price = Decimal("8.50")
    product.save()

    order = order_service.create(buyer, product.id, 2, tomorrow)
    assert order.unit_price == Decimal("8.50")
    assert order.total_price == Decimal("17.00")


@pytest.mark.django_db
def test_create_rejects_past_delivery_date(order_service, buyer, product):
    yesterday = timezone.localdate() - datetime.timedelta(days=1)
    with pytest.raises(InvalidInput):
        order_service.create(buyer, product.id, 1, yesterday)
    assert Order.objects.count() == 0


@pytest.mark.django_db
@pytest.mark.parametrize("quantity", [0, -1, "two", None, 1.5])
def test_create_rejects_bad_quantity(order_service, buyer, product, tomorrow, quantity):
    with pytest.raises(InvalidInput):
        order_service.create(buyer, product.id, quantity, tomorrow)


@pytest.mark.django_db
def test_create_rejects_missing_fields(order_service, buyer, product, tomorrow):
    with pytest.raises(InvalidInput):
        order_service.create(buyer, None, 1, tomorrow)
    with pytest.raises(InvalidInput):
        order_service.create(buyer, product.id, 1, None)


@pytest.mark.django_db
def test_create_rejects_mismatched_total(make_order):
    with pytest.raises(InvalidInput):
        make_order(quantity=2, total_price="5.00")
    assert Order.objects.count() == 0
    assert Request.objects.count() == 0


@pytest.mark.django_db
def test_create_unknown_product(order_service, buyer, tomorrow):
    with pytest.raises(NotFound):
        order_service.create(buyer, 9999, 1, tomorrow)


@pytest.mark.django_db
@pytest.mark.parametrize("changes", [
    {"availability": Product.Availability.UNAVAILABLE},
    {"is_active": False},
])
def test_create_unorderable_product(order_service, buyer, product, tomorrow, changes):
    Product.objects.filter(pk=product.pk).update(**changes)
    with pytest.raises(InvalidState):
        order_service.create(buyer, product.id, 1, tomorrow)
    assert Order.objects.count() == 0


@pytest.mark.django_db
def test_create_own_product_rejected(order_service, seller, product, tomorrow):
    with pytest.raises(InvalidInput):
        order_service.create(seller, product.id, 1, tomorrow)


@pytest.mark.django_db
def test_stock_is_not_decremented(make_order, product):
    make_order(quantity=5)
    product.refresh_from_db()
    assert product.stock == 100


# cancel

@pytest.mark.django_db
def test_cancel_pending_order_mirrors_request(make_order, order_service, buyer, seller, sink,
                                             django_capture_on_commit_callbacks):
    order = make_order()
    with django_capture_on_commit_callbacks(execute=True):
        order_service.cancel(order.id, buyer)

    order.refresh_from_db()
    assert order.delivery_status == DeliveryStatus.CANCELLED
    assert order.paid_status == PaidStatus.REJECTED
    assert order.request_status == RequestStatus.REJECTED
    assert Request.objects.get(order=order).status == RequestStatus.REJECTED
    assert sink.types_for(seller.id) == ["order_cancelled"]


@pytest.mark.django_db
def test_cancel_twice_is_a_noop(make_order, order_service, buyer, seller, sink,
                                django_capture_on_commit_callbacks):
    order = make_order()
    order_service.cancel(order.id, buyer)
    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        again = order_service.cancel(order.id, buyer)

    assert again.delivery_status == DeliveryStatus.CANCELLED
    assert callbacks == []


@pytest.mark.django_db
def test_cancel_by_other_user_forbidden(make_order, order_service, stranger):
    order = make_order()
    with pytest.raises(Forbidden):
        order_service.cancel(order.id, stranger)
    order.refresh_from_db()
    assert order.delivery_status == DeliveryStatus.PENDING


@pytest.mark.django_db
def test_cancel_unknown_order(order_service, buyer):
    with pytest.raises(NotFound):
        order_service.cancel(424242, buyer)


@pytest.mark.django_db
def test_cancel_paid_and_shipped_order_fails(paid_order, order_service, buyer):
    assert paid_order.paid_status == PaidStatus.PAID
    assert paid_order.delivery_status == DeliveryStatus.SHIPPED

    with pytest.raises(InvalidState):
        order_service.cancel(paid_order.id, buyer)

    paid_order.refresh_from_db()
    assert paid_order.paid_status == PaidStatus.PAID
    assert paid_order.request.status == RequestStatus.ACCEPTED


@pytest.mark.django_db
def test_cancel_delivered_order_fails(delivered_order, order_service, buyer):
    with pytest.raises(InvalidState):
        order_service.cancel(delivered_order.id, buyer)


@pytest.mark.django_db
def test_cancel_accepted_unpaid_order(accepted_order, order_service, buyer):
    order_service.cancel(accepted_order.id, buyer)
    accepted_order.refresh_from_db()
    assert accepted_order.delivery_status == DeliveryStatus.CANCELLED
    assert accepted_order.request.status == RequestStatus.REJECTED
    assert accepted_order.refund_due is False


@pytest.mark.django_db
def test_cancel_paid_order_awaiting_decision_flags_refund(make_order, payment_service,
                                                         order_service, buyer, seller, sink,
                                                         django_capture_on_commit_callbacks):
    order = make_order()
    payment_service.apply_callback(order.reference, "SUCCESSFUL")

    with django_capture_on_commit_callbacks(execute=True):
        order_service.cancel(order.id, buyer)

    order.refresh_from_db()
    assert (order.paid_status, order.delivery_status, order.refund_due) == (
        PaidStatus.REJECTED, DeliveryStatus.CANCELLED, True)
    assert sink.types_for(seller.id) == ["order_cancelled", "payment_refund_required"]
    assert sink.types_for(buyer.id) == ["payment_refund_required"]


# delete

@pytest.mark.django_db
def test_delete_rejected_order_removes_both_records(make_order, approval_service,
                                                   order_service, buyer, seller):
    order = make_order()
    approval_service.decide(order.request.id, seller, "rejected")

    order_service.delete(order.id, buyer)

    assert not Order.objects.filter(pk=order.pk).exists()
    assert not Request.objects.filter(order_id=order.pk).exists()
    assert Request.objects.count() == 0


@pytest.mark.django_db
def test_delete_pending_order_allowed(make_order, order_service, buyer):
    order = make_order()
    order_service.delete(order.id, buyer)
    assert Order.objects.count() == 0


@pytest.mark.django_db
def test_delete_completed_order_fails(delivered_order, order_service, buyer):
    with pytest.raises(InvalidState):
        order_service.delete(delivered_order.id, buyer)
    assert Order.objects.filter(pk=delivered_order.pk).exists()
    assert Request.objects.filter(order=delivered_order).exists()


@pytest.mark.django_db
def test_delete_by_seller_forbidden(make_order, order_service, seller):
    order = make_order()
    with pytest.raises(Forbidden):
        order_service.delete(order.id, seller)


# confirm delivery

@pytest.mark.django_db
def test_confirm_delivery_sets_review_flag(paid_order, order_service, buyer, seller, sink,
                                          django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        order = order_service.confirm_delivery(paid_order.id, buyer)

    order.refresh_from_db()
    assert order.delivery_status == DeliveryStatus.DELIVERED
    assert order.delivered_at is not None
    assert order.can_review is True
    assert sink.types_for(seller.id) == ["delivery_confirmed"]
    assert sink.types_for(buyer.id) == ["delivery_completed"]


@pytest.mark.django_db
def test_confirm_delivery_twice_fails(delivered_order, order_service, buyer):
    first_delivered_at = delivered_order.delivered_at
    with pytest.raises(AlreadyDelivered):
        order_service.confirm_delivery(delivered_order.id, buyer)
    delivered_order.refresh_from_db()
    assert delivered_order.delivered_at == first_delivered_at


@pytest.mark.django_db
def test_confirm_delivery_requires_payment(accepted_order, order_service, buyer):
    with pytest.raises(InvalidState):
        order_service.confirm_delivery(accepted_order.id, buyer)
    accepted_order.refresh_from_db()
    assert accepted_order.delivery_status == DeliveryStatus.SHIPPED
    assert accepted_order.can_review is False


@pytest.mark.django_db
def test_confirm_delivery_by_seller_forbidden(paid_order, order_service, seller):
    with pytest.raises(Forbidden):
        order_service.confirm_delivery(paid_order.id, seller)


@pytest.mark.django_db
def test_statistics_per_party(make_order, order_service, approval_service, buyer, seller):
    first = make_order()
    make_order()
    approval_service.decide(first.request.id, seller, "rejected")

    buyer_stats = order_service.statistics(buyer)
    assert buyer_stats["total_orders"] == 2
    assert buyer_stats["pending_orders"] == 1
    assert buyer_stats["cancelled_orders"] == 1
    assert buyer_stats["total_value"] == Decimal("40.00")

    seller_stats = order_service.statistics(seller, as_seller=True)
    assert seller_stats["total_orders"] == 2
    assert order_service.statistics(seller)["total_orders"] == 0
