from rest_framework import serializers

from .models import Vendor, normalize_vendor_code, vendor_code_validator


class VendorSerializer(serializers.ModelSerializer):
    vendor_code = serializers.CharField(
        max_length=20,
        required=False,
        allow_blank=True,
        allow_null=True,
    )

    class Meta:
        model = Vendor
        fields = [
            "id",
            "name",
            "vendor_code",
            "email",
            "contact_name",
            "phone",
            "is_mailing_fulfiller",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["created_at", "updated_at"]

    def validate_vendor_code(self, value):
        normalized = normalize_vendor_code(value)
        if (
            self.instance is not None
            and self.instance.vendor_code
            and normalized != self.instance.vendor_code
            and self.instance.purchase_orders.filter(execution_id__isnull=False).exists()
        ):
            raise serializers.ValidationError(
                "Vendor code is referenced by finalized execution ids and cannot change."
            )
        if normalized is None:
            return None
        vendor_code_validator(normalized)
        queryset = Vendor.objects.filter(vendor_code=normalized)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError("Vendor code is already in use.")
        return normalized
