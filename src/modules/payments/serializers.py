from rest_framework import serializers


class InitiatePaymentSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()


class PaymentLinkSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    payment_url = serializers.URLField()
