from django.contrib import admin
from django.urls import include, path

from voting import views_health

urlpatterns = [
    path("healthz", views_health.healthz, name="healthz"),
    path("readyz", views_health.readyz, name="readyz"),
    path("admin/", admin.site.urls),
    path("api/v1/", include("voting.urls")),
]
