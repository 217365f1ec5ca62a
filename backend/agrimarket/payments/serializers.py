from rest_framework import serializers


class PaymentInitiateSerializer(serializers.Serializer):
    orderId = serializers.IntegerField(source='order_id')
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    phone = serializers.CharField(source='payer_phone', max_length=20)


class PaymentCallbackSerializer(serializers.Serializer):
    reference_no = serializers.CharField(max_length=40)
    response_description = serializers.CharField(required=False, allow_blank=True, default='')
