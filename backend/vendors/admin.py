from django.contrib import admin

from .models import Vendor


@admin.register(Vendor)
class VendorAdmin(admin.ModelAdmin):
    list_display = ("name", "vendor_code", "email", "is_mailing_fulfiller", "is_active")
    list_filter = ("is_mailing_fulfiller", "is_active")
    search_fields = ("name", "vendor_code", "email")
