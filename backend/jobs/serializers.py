from rest_framework import serializers

from vendors.models import Vendor

from .constants import (
    QC_CONCERNS,
    ComponentArtworkStatus,
    ComponentMaterialStatus,
    PurchaseOrderKind,
    PurchaseOrderStatus,
)
from .models import ChangeOrder, Job, JobAuditLog, JobComponent, ProfitSplit, PurchaseOrder


class JobComponentSerializer(serializers.ModelSerializer):
    class Meta:
        model = JobComponent
        fields = [
            "id",
            "name",
            "description",
            "sort_order",
            "artwork_status",
            "material_status",
            "vendor",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["sort_order", "created_at", "updated_at"]


class ComponentStatusSerializer(serializers.Serializer):
    artwork_status = serializers.ChoiceField(
        choices=ComponentArtworkStatus.choices, required=False
    )
    material_status = serializers.ChoiceField(
        choices=ComponentMaterialStatus.choices, required=False
    )

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Provide artwork_status or material_status.")
        return attrs


class ProfitSplitSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProfitSplit
        fields = [
            "routing_type",
            "sell_price",
            "total_cost",
            "paper_cost",
            "paper_markup",
            "gross_margin",
            "intermediary_share",
            "buyer_share",
            "margin_percent",
            "po_count",
            "warnings",
            "calculated_at",
            "is_overridden",
            "override_reason",
            "overridden_by",
            "overridden_at",
        ]
        read_only_fields = fields


class JobSerializer(serializers.ModelSerializer):
    components = JobComponentSerializer(many=True, read_only=True)
    is_financially_locked = serializers.BooleanField(read_only=True)

    class Meta:
        model = Job
        fields = [
            "id",
            "job_number",
            "base_job_id",
            "title",
            "customer_name",
            "notes",
            "specs",
            "job_meta_type",
            "mail_format",
            "envelope_components",
            "job_type",
            "routing_type",
            "pathway",
            "vendor_count",
            "sell_price",
            "quantity",
            "size_name",
            "paper_source",
            "mailing_vendor",
            "match_type",
            "mail_date",
            "in_homes_date",
            "qc_artwork",
            "qc_artwork_note",
            "qc_data_files",
            "qc_data_files_note",
            "qc_mailing",
            "qc_mailing_note",
            "qc_supplied_materials",
            "qc_supplied_materials_note",
            "qc_versions",
            "qc_versions_note",
            "readiness_status",
            "readiness_calculated_at",
            "invoice_generated_at",
            "effective_change_order_version",
            "is_financially_locked",
            "components",
            "created_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class JobWriteSerializer(serializers.ModelSerializer):
    allow_negative_margin = serializers.BooleanField(
        required=False, default=False, write_only=True
    )

    class Meta:
        model = Job
        fields = [
            "title",
            "customer_name",
            "notes",
            "specs",
            "job_meta_type",
            "mail_format",
            "envelope_components",
            "job_type",
            "routing_type",
            "sell_price",
            "quantity",
            "size_name",
            "paper_source",
            "mailing_vendor",
            "match_type",
            "mail_date",
            "in_homes_date",
            "allow_negative_margin",
        ]
        extra_kwargs = {"job_meta_type": {"required": False}}

    def validate_envelope_components(self, value):
        if value is not None and value < 1:
            raise serializers.ValidationError("An envelope has at least one component.")
        return value

    def validate_mailing_vendor(self, value):
        if value is not None and not value.is_mailing_fulfiller:
            raise serializers.ValidationError("Vendor is not a mailing fulfiller.")
        return value


class JobBatchCreateSerializer(serializers.Serializer):
    jobs = JobWriteSerializer(many=True)

    def validate_jobs(self, value):
        if not value:
            raise serializers.ValidationError("At least one job is required.")
        return value


class PurchaseOrderSerializer(serializers.ModelSerializer):
    vendor_name = serializers.CharField(source="target_vendor.name", read_only=True, default=None)
    vendor_code = serializers.CharField(
        source="target_vendor.vendor_code", read_only=True, default=None
    )
    is_cost_bearing = serializers.BooleanField(read_only=True)
    is_vendor_facing = serializers.BooleanField(read_only=True)

    class Meta:
        model = PurchaseOrder
        fields = [
            "id",
            "po_number",
            "job",
            "origin_company",
            "target_company",
            "target_vendor",
            "vendor_name",
            "vendor_code",
            "execution_id",
            "execution_id_assigned_at",
            "description",
            "buy_cost",
            "paper_cost",
            "paper_markup",
            "mfg_cost",
            "print_cpm",
            "paper_cpm",
            "vendor_ref",
            "status",
            "issued_at",
            "paid_at",
            "is_cost_bearing",
            "is_vendor_facing",
            "created_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class _PurchaseOrderCostFields(serializers.Serializer):
    target_vendor = serializers.PrimaryKeyRelatedField(
        queryset=Vendor.objects.all(), required=False, allow_null=True
    )
    buy_cost = serializers.DecimalField(
        max_digits=12, decimal_places=2, required=False, allow_null=True, min_value=0
    )
    paper_cost = serializers.DecimalField(
        max_digits=12, decimal_places=2, required=False, allow_null=True, min_value=0
    )
    paper_markup = serializers.DecimalField(
        max_digits=12, decimal_places=2, required=False, allow_null=True, min_value=0
    )
    mfg_cost = serializers.DecimalField(
        max_digits=12, decimal_places=2, required=False, allow_null=True, min_value=0
    )
    description = serializers.CharField(required=False, allow_blank=True)
    vendor_ref = serializers.CharField(required=False, allow_blank=True, max_length=100)
    status = serializers.ChoiceField(choices=PurchaseOrderStatus.choices, required=False)
    allow_negative_margin = serializers.BooleanField(required=False, default=False)


class PurchaseOrderCreateSerializer(_PurchaseOrderCostFields):
    job = serializers.PrimaryKeyRelatedField(queryset=Job.objects.active())
    kind = serializers.ChoiceField(choices=PurchaseOrderKind.choices)

    def validate(self, attrs):
        kind = attrs["kind"]
        vendor = attrs.get("target_vendor")
        if kind == PurchaseOrderKind.VENDOR and vendor is None:
            raise serializers.ValidationError(
                {"target_vendor": "Vendor purchase orders need a target vendor."}
            )
        if kind != PurchaseOrderKind.VENDOR and vendor is not None:
            raise serializers.ValidationError(
                {"target_vendor": "Only vendor purchase orders target a vendor."}
            )
        return attrs


class PurchaseOrderUpdateSerializer(_PurchaseOrderCostFields):
    pass


class QcFlagSerializer(serializers.Serializer):
    concern = serializers.ChoiceField(choices=sorted(QC_CONCERNS))
    value = serializers.CharField()
    note = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class AllowNegativeMarginSerializer(serializers.Serializer):
    allow_negative_margin = serializers.BooleanField(required=False, default=False)


class ProfitSplitOverrideSerializer(serializers.Serializer):
    intermediary_share = serializers.DecimalField(max_digits=12, decimal_places=2)
    buyer_share = serializers.DecimalField(max_digits=12, decimal_places=2)
    reason = serializers.CharField()


class ReadinessSerializer(serializers.Serializer):
    status = serializers.CharField()
    blockers = serializers.ListField(child=serializers.CharField())
    warnings = serializers.ListField(child=serializers.CharField())
    is_mailing = serializers.BooleanField()


class ClassificationSerializer(serializers.Serializer):
    job_id = serializers.IntegerField()
    pathway = serializers.CharField()
    vendor_count = serializers.IntegerField()
    previous_pathway = serializers.CharField()
    previous_vendor_count = serializers.IntegerField()
    inconsistency = serializers.CharField(allow_null=True)
    changed = serializers.BooleanField()


class FinalizeResultSerializer(serializers.Serializer):
    purchase_order = PurchaseOrderSerializer()
    execution_id = serializers.CharField()
    created = serializers.BooleanField()


class JobAuditLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = JobAuditLog
        fields = [
            "id",
            "action",
            "message",
            "metadata",
            "actor",
            "job",
            "purchase_order",
            "created_at",
        ]
        read_only_fields = fields


class ChangeOrderSerializer(serializers.ModelSerializer):
    class Meta:
        model = ChangeOrder
        fields = [
            "id",
            "job",
            "change_order_no",
            "version",
            "summary",
            "changes",
            "status",
            "affects_vendors",
            "requires_new_po",
            "requires_reprice",
            "approved_at",
            "approved_by",
            "rejection_reason",
            "created_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ChangeOrderWriteSerializer(serializers.Serializer):
    summary = serializers.CharField()
    changes = serializers.DictField(required=False)
    affects_vendors = serializers.ListField(
        child=serializers.IntegerField(min_value=1), required=False
    )
    requires_new_po = serializers.BooleanField(required=False)
    requires_reprice = serializers.BooleanField(required=False)

    def validate_affects_vendors(self, value):
        known = set(Vendor.objects.filter(id__in=value).values_list("id", flat=True))
        unknown = sorted(set(value) - known)
        if unknown:
            raise serializers.ValidationError(f"Unknown vendor id(s): {unknown}.")
        return sorted(set(value))


class ChangeOrderRejectSerializer(serializers.Serializer):
    rejection_reason = serializers.CharField(required=False, allow_blank=True, default="")


class ChangeOrderSummarySerializer(serializers.Serializer):
    id = serializers.IntegerField()
    change_order_no = serializers.CharField()
    version = serializers.IntegerField()
    summary = serializers.CharField()
    approved_at = serializers.DateTimeField()


class EffectiveJobStateSerializer(serializers.Serializer):
    job_id = serializers.IntegerField(source="job.id")
    job_number = serializers.CharField(source="job.job_number")
    base_job_id = serializers.CharField(source="job.base_job_id")
    effective_change_order_version = serializers.IntegerField(
        source="job.effective_change_order_version", allow_null=True
    )
    latest_approved = ChangeOrderSummarySerializer(allow_null=True)
    base_specs = serializers.DictField()
    effective_specs = serializers.DictField()
    applied_count = serializers.IntegerField()
