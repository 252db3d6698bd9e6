"""
URL configuration for the disputes API.

URL Structure:
    /disputes/                        GET, POST
    /disputes/stats/                  GET   (staff)
    /disputes/{id}/                   GET
    /disputes/{id}/responses/         POST
    /disputes/{id}/assign/            POST  (staff)
    /disputes/{id}/workflow/          POST  (staff)
    /disputes/{id}/resolve/           POST  (staff)
    /disputes/{id}/close/             POST

All URLs are prefixed with /api/v1/ in the main URL configuration.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from disputes.views import DisputeViewSet

router = DefaultRouter()
router.register(r"disputes", DisputeViewSet, basename="dispute")

app_name = "disputes"

urlpatterns = [
    path("", include(router.urls)),
]
