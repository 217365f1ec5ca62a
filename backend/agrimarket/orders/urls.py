from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import OrderViewSet, RequestViewSet

router = DefaultRouter()
router.register(r'orders', OrderViewSet, basename='order')
router.register(r'requests', RequestViewSet, basename='request')

urlpatterns = [
    path('', include(router.urls)),
]
