from django.urls import path

from .api import wallet_detail
from .stripe_api import stripe_webhook

app_name = "payments"

urlpatterns = [
    path("stripe/webhook/", stripe_webhook, name="stripe_webhook"),
    path("wallet/", wallet_detail, name="wallet_detail"),
]
