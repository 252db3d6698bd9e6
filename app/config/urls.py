"""
URL configuration for the booking platform.

The `urlpatterns` list routes URLs to views. This is the root URL configuration
that includes all app-specific routes.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface (ledger, settlements, disputes)
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/bookings/              - Booking endpoints
        {id}/                      - Booking detail
        {id}/transitions/          - Apply a lifecycle action (POST)
        {id}/payment/              - Pay for a booking (POST)
        {id}/ledger/               - Ledger entries of the booking
        {id}/history/              - Transition history
    /api/v1/disputes/              - Dispute endpoints
        {id}/                      - Dispute detail
        {id}/responses/            - Add a response (POST)
        {id}/assign/               - Assign to staff (POST, staff)
        {id}/workflow/             - Advance the review workflow (POST, staff)
        {id}/resolve/              - Resolve (POST, staff)
        {id}/close/                - Withdraw or close (POST)
        stats/                     - Dispute statistics (staff)
    /api/v1/payments/              - Payment endpoints
        webhooks/stripe/           - Stripe webhook endpoint (POST)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Bookings
    path("", include("bookings.urls")),
    # Disputes
    path("", include("disputes.urls")),
    # Payments
    path("payments/", include("payments.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Booking Platform Admin"
admin.site.site_title = "Booking Platform"
admin.site.index_title = "Bookings, ledger and settlement"
