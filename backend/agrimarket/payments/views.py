import logging
from rest_framework import status
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from orders.serializers import OrderSerializer
from .serializers import PaymentInitiateSerializer, PaymentCallbackSerializer
from .services import PaymentService
from .throttles import PerOrderPaymentThrottle

log = logging.getLogger(__name__)


class PaymentInitiateView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_classes = [PerOrderPaymentThrottle]

    def post(self, request):
        serializer = PaymentInitiateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order, gateway_response = PaymentService().initiate(
            buyer=request.user, **serializer.validated_data)
        return Response({
            "message": "Payment initiated",
            "orderId": order.reference,
            "data": gateway_response,
        })


class PaymentCallbackView(APIView):
    """Gateway webhook. Unauthenticated, called at least once per outcome."""
    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        serializer = PaymentCallbackSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        log.info("Payment callback received for %s", serializer.validated_data["reference_no"])
        result = PaymentService().apply_callback(
            serializer.validated_data["reference_no"],
            serializer.validated_data["response_description"],
        )
        return Response({
            "message": "Payment callback processed",
            "orderId": result.order.reference,
            "outcome": result.outcome.value,
            "status": result.order.paid_status,
            "applied": result.applied,
        }, status=status.HTTP_200_OK)


class PaymentStatusView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, reference):
        return Response(PaymentService.status(reference, request.user))


class PaymentHistoryView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        as_seller = bool(request.query_params.get("as_seller"))
        orders = PaymentService.history(request.user, as_seller=as_seller)
        return Response(OrderSerializer(orders, many=True).data)
