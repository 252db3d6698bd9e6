"""
URL configuration for the bookings API.

URL Structure:
    /bookings/                        GET, POST
    /bookings/{id}/                   GET
    /bookings/{id}/transitions/       POST
    /bookings/{id}/payment/           POST
    /bookings/{id}/ledger/            GET
    /bookings/{id}/history/           GET

All URLs are prefixed with /api/v1/ in the main URL configuration.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from bookings.views import BookingViewSet

router = DefaultRouter()
router.register(r"bookings", BookingViewSet, basename="booking")

app_name = "bookings"

urlpatterns = [
    path("", include(router.urls)),
]
