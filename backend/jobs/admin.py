from django.contrib import admin
from simple_history.admin import SimpleHistoryAdmin

from .models import ChangeOrder, Job, JobAuditLog, JobComponent, ProfitSplit, PurchaseOrder


class JobComponentInline(admin.TabularInline):
    model = JobComponent
    extra = 0


@admin.register(Job)
class JobAdmin(admin.ModelAdmin):
    list_display = (
        "job_number",
        "base_job_id",
        "title",
        "routing_type",
        "pathway",
        "vendor_count",
        "readiness_status",
    )
    list_filter = ("pathway", "routing_type", "readiness_status", "job_meta_type")
    search_fields = ("job_number", "base_job_id", "title", "customer_name")
    readonly_fields = (
        "job_number",
        "base_job_id",
        "pathway",
        "vendor_count",
        "readiness_status",
        "readiness_calculated_at",
    )
    inlines = [JobComponentInline]


@admin.register(PurchaseOrder)
class PurchaseOrderAdmin(SimpleHistoryAdmin):
    list_display = (
        "po_number",
        "execution_id",
        "job",
        "origin_company",
        "target_company",
        "target_vendor",
        "buy_cost",
        "status",
    )
    list_filter = ("status", "origin_company", "target_company")
    search_fields = ("po_number", "execution_id", "job__job_number", "job__base_job_id")
    readonly_fields = ("po_number", "execution_id", "execution_id_assigned_at")


@admin.register(ProfitSplit)
class ProfitSplitAdmin(admin.ModelAdmin):
    list_display = (
        "job",
        "routing_type",
        "sell_price",
        "total_cost",
        "gross_margin",
        "intermediary_share",
        "buyer_share",
        "is_overridden",
    )
    list_filter = ("routing_type", "is_overridden")


@admin.register(ChangeOrder)
class ChangeOrderAdmin(admin.ModelAdmin):
    list_display = ("change_order_no", "job", "version", "status", "approved_at")
    list_filter = ("status", "requires_new_po", "requires_reprice")
    search_fields = ("change_order_no", "summary", "job__job_number", "job__base_job_id")
    readonly_fields = ("change_order_no", "version", "approved_at", "approved_by")


@admin.register(JobAuditLog)
class JobAuditLogAdmin(admin.ModelAdmin):
    list_display = ("action", "job", "purchase_order", "actor", "created_at")
    list_filter = ("action",)
    search_fields = ("action", "message")
    readonly_fields = (
        "action",
        "message",
        "metadata",
        "actor",
        "job",
        "purchase_order",
        "created_at",
    )

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
