from django.conf import settings
from django.contrib import admin
from django.urls import include, path

from core.pricing import pricing_summary

urlpatterns = [
    path("api/platform/pricing/", pricing_summary, name="pricing_summary"),
    path("api/users/", include("users.urls")),
    path("api/bookings/", include(("bookings.urls", "bookings"), namespace="bookings")),
    path("api/payments/", include("payments.urls")),
]

if settings.ENABLE_DJANGO_ADMIN:
    urlpatterns.insert(0, path("admin/", admin.site.urls))
