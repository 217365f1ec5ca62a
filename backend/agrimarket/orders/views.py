from django.db.models import Q
from rest_framework import viewsets, mixins, status
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from reviews.services import ReviewService
from .models import Order, Request
from .serializers import (OrderSerializer, OrderCreateSerializer,
                          RequestSerializer, DecisionSerializer)
from .services import OrderService, RequestApprovalService


class OrderViewSet(mixins.ListModelMixin,
                   mixins.RetrieveModelMixin,
                   viewsets.GenericViewSet):
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ['request_status', 'paid_status', 'delivery_status']
    lookup_value_regex = r'\d+'
    order_service_class = OrderService

    def get_queryset(self):
        # Buyers see their orders, sellers see their sold orders
        user = self.request.user
        qs = Order.objects.select_related('buyer', 'seller', 'request')
        if self.action == 'list':
            if self.request.query_params.get('as_seller'):
                return qs.filter(seller=user)
            return qs.filter(buyer=user)
        return qs.filter(Q(buyer=user) | Q(seller=user))

    def get_order_service(self):
        return self.order_service_class()

    def create(self, request):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = self.get_order_service().create(request.user, **serializer.validated_data)
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    def destroy(self, request, pk=None):
        order = self.get_order_service().cancel(pk, request.user)
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=['delete'], url_path='delete')
    def delete_permanently(self, request, pk=None):
        self.get_order_service().delete(pk, request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['put'], url_path='confirm-delivery')
    def confirm_delivery(self, request, pk=None):
        order = self.get_order_service().confirm_delivery(pk, request.user)
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=['get'], url_path='can-review')
    def can_review(self, request, pk=None):
        return Response(ReviewService().can_review(pk, request.user))

    @action(detail=False, methods=['get'])
    def stats(self, request):
        as_seller = bool(request.query_params.get('as_seller'))
        return Response(OrderService.statistics(request.user, as_seller=as_seller))


class RequestViewSet(mixins.ListModelMixin,
                     mixins.RetrieveModelMixin,
                     viewsets.GenericViewSet):
    serializer_class = RequestSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ['status']
    lookup_value_regex = r'\d+'

    def get_queryset(self):
        user = self.request.user
        qs = Request.objects.select_related('buyer', 'order')
        if self.action == 'list':
            if self.request.query_params.get('as_buyer'):
                return qs.filter(buyer=user)
            return qs.filter(seller=user)
        return qs.filter(Q(buyer=user) | Q(seller=user))

    @action(detail=True, methods=['put'], url_path='status')
    def decide(self, request, pk=None):
        serializer = DecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order_request = RequestApprovalService().decide(
            pk, request.user, serializer.validated_data['status'])
        return Response(RequestSerializer(order_request).data)

    def destroy(self, request, pk=None):
        order_request = RequestApprovalService().withdraw(pk, request.user)
        return Response(RequestSerializer(order_request).data)

    @action(detail=False, methods=['get'], url_path='pending-count')
    def pending_count(self, request):
        return Response({"count": RequestApprovalService.pending_count(request.user)})

    @action(detail=False, methods=['get'])
    def stats(self, request):
        as_buyer = bool(request.query_params.get('as_buyer'))
        return Response(RequestApprovalService.statistics(request.user, as_buyer=as_buyer))
