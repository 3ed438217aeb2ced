from rest_framework import status, viewsets
from rest_framework.response import Response

from accounts.permissions import IsBrokerAdmin, IsStaffRole
from config.pagination import OptionalPaginationListMixin

from .models import Vendor
from .serializers import VendorSerializer


class VendorViewSet(OptionalPaginationListMixin, viewsets.ModelViewSet):
    serializer_class = VendorSerializer
    queryset = Vendor.objects.all()
    filterset_fields = ["is_active", "is_mailing_fulfiller", "vendor_code"]

    def get_permissions(self):
        if self.action in ["create", "update", "partial_update", "destroy"]:
            return [IsBrokerAdmin()]
        return [IsStaffRole()]

    def destroy(self, request, *args, **kwargs):
        vendor = self.get_object()
        if vendor.purchase_orders.exists():
            return Response(
                {"detail": "Vendor has purchase orders; deactivate it instead."},
                status=status.HTTP_409_CONFLICT,
            )
        return super().destroy(request, *args, **kwargs)
