"""Payment URL configuration."""

from django.urls import path

from modules.payments.views import InitiatePaymentView, PaymentCallbackView

urlpatterns = [
    path("payment/initiate/", InitiatePaymentView.as_view(), name="payment-initiate"),
    path("payment/callback/", PaymentCallbackView.as_view(), name="payment-callback"),
]
