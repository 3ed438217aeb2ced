from django.conf import settings
from django.contrib import admin
from django.http import JsonResponse
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView
from rest_framework.routers import DefaultRouter

from accounts.views import MeView
from jobs.views import ChangeOrderViewSet, JobAuditLogViewSet, JobViewSet, PurchaseOrderViewSet
from vendors.views import VendorViewSet

router = DefaultRouter()
router.register(r"vendors", VendorViewSet, basename="vendor")
router.register(r"jobs", JobViewSet, basename="job")
router.register(r"purchase-orders", PurchaseOrderViewSet, basename="purchase-order")
router.register(r"change-orders", ChangeOrderViewSet, basename="change-order")
router.register(r"audit-logs", JobAuditLogViewSet, basename="audit-log")


def health_check(request):
    return JsonResponse({"status": "ok"})


schema_view = (
    SpectacularAPIView.as_view(throttle_classes=[])
    if settings.DEBUG
    else SpectacularAPIView.as_view()
)

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/auth/me/", MeView.as_view(), name="me"),
    path("api/health/", health_check, name="health-check"),
    path("api/", include(router.urls)),
    path("api/schema/", schema_view, name="schema"),
    path("api/docs/", SpectacularSwaggerView.as_view(url_name="schema"), name="docs"),
]
