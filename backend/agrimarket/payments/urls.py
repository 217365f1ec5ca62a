from django.urls import path
from .views import (PaymentInitiateView, PaymentCallbackView, PaymentStatusView,
                    PaymentHistoryView)

urlpatterns = [
    path('payments/', PaymentInitiateView.as_view(), name='payment_initiate'),
    path('payments/callback/', PaymentCallbackView.as_view(), name='payment_callback'),
    path('payments/history/', PaymentHistoryView.as_view(), name='payment_history'),
    path('payments/status/<str:reference>/', PaymentStatusView.as_view(), name='payment_status'),
]
