from rest_framework import viewsets, mixins, permissions, filters, status
from rest_framework.decorators import action
from rest_framework.response import Response

from orders.serializers import OrderSerializer
from .models import Review
from .serializers import ReviewSerializer, ReviewSubmitSerializer, ReviewUpdateSerializer
from .services import ReviewService


class ReviewViewSet(mixins.ListModelMixin,
                    mixins.RetrieveModelMixin,
                    viewsets.GenericViewSet):
    queryset = Review.objects.filter(is_visible=True).select_related('buyer', 'seller', 'order')
    serializer_class = ReviewSerializer
    permission_classes = [permissions.IsAuthenticatedOrReadOnly]
    filter_backends = [filters.OrderingFilter]
    ordering_fields = ['created_at', 'rating']
    lookup_value_regex = r'\d+'

    def get_queryset(self):
        queryset = super().get_queryset()
        seller = self.request.query_params.get("seller")
        if seller:
            queryset = queryset.filter(seller_id=seller)
        seller_username = self.request.query_params.get("seller__username")
        if seller_username:
            queryset = queryset.filter(seller__username=seller_username)
        product = self.request.query_params.get("product")
        if product:
            queryset = queryset.filter(product_id=product)
        return queryset

    def create(self, request):
        serializer = ReviewSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        review = ReviewService().submit(buyer=request.user, **serializer.validated_data)
        return Response(ReviewSerializer(review).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        serializer = ReviewUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        review = ReviewService().update(pk, request.user, **serializer.validated_data)
        return Response(ReviewSerializer(review).data)

    def destroy(self, request, pk=None):
        ReviewService().delete(pk, request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=['get'], permission_classes=[permissions.IsAuthenticated])
    def mine(self, request):
        reviews = Review.objects.filter(buyer=request.user).select_related('seller', 'order')
        return Response(ReviewSerializer(reviews, many=True).data)

    @action(detail=False, methods=['get'], permission_classes=[permissions.IsAuthenticated])
    def reviewable(self, request):
        orders = ReviewService.reviewable_orders(request.user)
        return Response(OrderSerializer(orders, many=True).data)

    @action(detail=False, methods=['get'], url_path=r'sellers/(?P<seller_id>\d+)/stats',
            permission_classes=[permissions.AllowAny])
    def seller_stats(self, request, seller_id=None):
        return Response(ReviewService.seller_stats(seller_id))

    @action(detail=False, methods=['get'], url_path=r'product/(?P<product_id>\d+)',
            permission_classes=[permissions.AllowAny])
    def product(self, request, product_id=None):
        reviews = self.filter_queryset(self.get_queryset().filter(product_id=product_id))
        return Response(ReviewSerializer(reviews, many=True).data)
