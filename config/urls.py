from django.contrib import admin
from django.urls import include, path

from apps.core.views import health_check, liveness_check

urlpatterns = [
    # Health check endpoints for container orchestration
    path("health/", health_check, name="health_check"),
    path("live/", liveness_check, name="liveness_check"),
    # Django admin
    path("django-admin/", admin.site.urls),
    path("resident/", include("apps.cards.urls_resident")),
    path("admin-portal/", include("apps.cards.urls_admin")),
    path("payments/", include("apps.cards.urls_gateway")),
]
