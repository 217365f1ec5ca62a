from rest_framework import serializers
from .models import Review


class ReviewSerializer(serializers.ModelSerializer):
    buyer_username = serializers.CharField(source='buyer.username', read_only=True)
    seller_username = serializers.CharField(source='seller.username', read_only=True)
    order_reference = serializers.CharField(source='order.reference', read_only=True, default=None)

    class Meta:
        model = Review
        fields = [
            'id', 'order', 'order_reference', 'product', 'seller', 'buyer', 'rating',
            'title', 'comment', 'experience', 'is_verified', 'created_at', 'updated_at',
            'buyer_username', 'seller_username',
        ]
        read_only_fields = fields


class ReviewSubmitSerializer(serializers.Serializer):
    orderId = serializers.IntegerField(source='order_id')
    rating = serializers.IntegerField()
    comment = serializers.CharField(max_length=500)
    experience = serializers.CharField()
    title = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')


class ReviewUpdateSerializer(serializers.Serializer):
    rating = serializers.IntegerField(required=False)
    comment = serializers.CharField(max_length=500, required=False)
    experience = serializers.CharField(required=False)
    title = serializers.CharField(max_length=100, required=False, allow_blank=True)
