import datetime
import io
from decimal import Decimal

import pytest
from django.contrib.auth.models import User
from django.core.cache import cache
from django.core.files.uploadedfile import SimpleUploadedFile
from django.utils import timezone
from PIL import Image
from rest_framework.test import APIClient

from accounts.models import Profile
from catalog.models import Product
from notifications.sink import NotificationSink
from orders.services import OrderService, RequestApprovalService
from payments.services import PaymentService
from reviews.services import ReviewService


class RecordingSink(NotificationSink):
    def __init__(self):
        self.sent = []

    def notify(self, user_id, role, type, title, message, data=None):
        self.sent.append({"user_id": user_id, "role": role, "type": type,
                          "title": title, "message": message, "data": data or {}})

    def types_for(self, user_id):
        return [n["type"] for n in self.sent if n["user_id"] == user_id]


class FakeGateway:
    def __init__(self):
        self.calls = []

    def run_bill_payment(self, reference_no, amount, payer_phone):
        self.calls.append((reference_no, amount, payer_phone))
        return {"response_code": "120", "response_description": "Transaction pending"}


@pytest.fixture(autouse=True)
def _clear_throttle_cache():
    cache.clear()
    yield


@pytest.fixture(autouse=True)
def _media_root(settings, tmp_path):
    settings.MEDIA_ROOT = tmp_path / "media"


@pytest.fixture
def buyer(db):
    return User.objects.create_user(username="alice", password="pass123")


@pytest.fixture
def seller(db):
    user = User.objects.create_user(username="bob", password="pass123")
    Profile.objects.filter(user=user).update(role=Profile.Role.SELLER)
    return user


@pytest.fixture
def stranger(db):
    return User.objects.create_user(username="carl", password="pass123")


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def buyer_client(buyer):
    c = APIClient()
    c.force_authenticate(user=buyer)
    return c


@pytest.fixture
def seller_client(seller):
    c = APIClient()
    c.force_authenticate(user=seller)
    return c


@pytest.fixture
def stranger_client(stranger):
    c = APIClient()
    c.force_authenticate(user=stranger)
    return c


@pytest.fixture
def product(seller):
    # Bob sells maize at 10 per bag
    return Product.objects.create(
        name="White Maize",
        description="Grade A",
        price=Decimal("10.00"),
        unit="bag",
        image="products/maize.jpg",
        seller=seller,
        stock=100,
    )


@pytest.fixture
def tomorrow():
    return timezone.localdate() + datetime.timedelta(days=1)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def order_service(sink):
    return OrderService(notifier=sink)


@pytest.fixture
def approval_service(sink):
    return RequestApprovalService(notifier=sink)


@pytest.fixture
def payment_service(sink, gateway):
    return PaymentService(gateway=gateway, notifier=sink)


@pytest.fixture
def review_service(sink):
    return ReviewService(notifier=sink)


@pytest.fixture
def make_order(order_service, buyer, product, tomorrow):
    def _factory(quantity=2, **kwargs):
        return order_service.create(buyer, product.id, quantity, tomorrow, **kwargs)
    return _factory


@pytest.fixture
def accepted_order(make_order, approval_service, seller):
    order = make_order()
    approval_service.decide(order.request.id, seller, "accepted")
    order.refresh_from_db()
    return order


@pytest.fixture
def paid_order(accepted_order, payment_service):
    payment_service.apply_callback(accepted_order.reference, "SUCCESSFUL")
    accepted_order.refresh_from_db()
    return accepted_order


@pytest.fixture
def delivered_order(paid_order, order_service, buyer):
    order_service.confirm_delivery(paid_order.id, buyer)
    paid_order.refresh_from_db()
    return paid_order


@pytest.fixture
def make_png_file():
    def _factory(name="avatar.png", size=(20, 20), color=(0, 128, 0, 255)):
        buf = io.BytesIO()
        Image.new("RGBA", size, color).save(buf, format="PNG")
        buf.seek(0)
        return SimpleUploadedFile(name, buf.read(), content_type="image/png")
    return _factory
