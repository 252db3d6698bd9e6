"""
URL configuration for the payments app.

Only the processor talks to these routes; payments are made through the
booking endpoints and refunds and payouts are driven by the services.

Routes:
    - POST /api/v1/payments/webhooks/stripe/ - Stripe webhook intake
"""

from django.urls import path

from payments.webhooks import stripe_webhook

app_name = "payments"

urlpatterns = [
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
]
