from rest_framework import serializers
from .models import Order, Request


class RequestSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Request
        fields = ['id', 'status', 'created_at', 'decided_at']


class OrderSerializer(serializers.ModelSerializer):
    buyer_username = serializers.CharField(source='buyer.username', read_only=True)
    seller_username = serializers.CharField(source='seller.username', read_only=True)
    request = RequestSummarySerializer(read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'reference', 'buyer', 'buyer_username', 'seller', 'seller_username',
            'product', 'product_name', 'product_image', 'unit', 'unit_price', 'quantity',
            'total_price', 'delivery_date', 'request_status', 'paid_status',
            'delivery_status', 'can_review', 'delivered_at', 'refund_due', 'request',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class OrderCreateSerializer(serializers.Serializer):
    productId = serializers.IntegerField(source='product_id')
    quantity = serializers.IntegerField(min_value=1)
    deliveryDate = serializers.DateField(source='delivery_date')
    totalPrice = serializers.DecimalField(source='total_price', max_digits=12,
                                          decimal_places=2, required=False)


class RequestSerializer(serializers.ModelSerializer):
    buyer_username = serializers.CharField(source='buyer.username', read_only=True)
    order = OrderSerializer(read_only=True)

    class Meta:
        model = Request
        fields = ['id', 'seller', 'buyer', 'buyer_username', 'product', 'order',
                  'status', 'created_at', 'decided_at']
        read_only_fields = fields


class DecisionSerializer(serializers.Serializer):
    status = serializers.CharField()
