from decimal import Decimal
from uuid import uuid4

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from simple_history.models import HistoricalRecords

from vendors.models import Vendor

from .constants import (
    INACTIVE_PO_STATUSES,
    ArtworkStatus,
    ChangeOrderStatus,
    CompanyId,
    ComponentArtworkStatus,
    ComponentMaterialStatus,
    DataFilesStatus,
    JobMetaType,
    JobType,
    MailFormat,
    MailingStatus,
    MatchType,
    PaperSource,
    Pathway,
    PurchaseOrderKind,
    PurchaseOrderStatus,
    ReadinessStatus,
    RoutingType,
    SuppliedMaterialsStatus,
    VersionsStatus,
)

ZERO = Decimal("0.00")

PO_NUMBER_PREFIXES = {
    PurchaseOrderKind.VENDOR: "VN",
    PurchaseOrderKind.PARTNER: "BP",
    PurchaseOrderKind.INTERNAL: "PP",
}


def generate_po_number(kind: str = PurchaseOrderKind.VENDOR) -> str:
    prefix = PO_NUMBER_PREFIXES.get(kind, "VN")
    return f"PO-{prefix}-{uuid4().hex[:10].upper()}"


def money_field(**kwargs):
    kwargs.setdefault("max_digits", 12)
    kwargs.setdefault("decimal_places", 2)
    return models.DecimalField(**kwargs)


class SequenceCounter(models.Model):
    class Name(models.TextChoices):
        JOB_NUMBER = "job_number", "Job number"
        BASE_JOB_ID = "base_job_id", "Base job id"

    name = models.CharField(max_length=32, choices=Name.choices, unique=True)
    next_value = models.PositiveBigIntegerField(default=1)  # type: ignore[call-arg]
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} -> {self.next_value}"


class JobQuerySet(models.QuerySet):
    def active(self):
        return self.filter(deleted_at__isnull=True)


class Job(models.Model):
    job_number = models.CharField(
        max_length=20, unique=True, null=True, blank=True, editable=False
    )
    base_job_id = models.CharField(
        max_length=32, unique=True, null=True, blank=True, editable=False
    )
    title = models.CharField(max_length=255)
    customer_name = models.CharField(max_length=255, blank=True)
    notes = models.TextField(blank=True)
    specs = models.JSONField(default=dict, blank=True)

    job_meta_type = models.CharField(
        max_length=20, choices=JobMetaType.choices, default=JobMetaType.PRINT
    )
    mail_format = models.CharField(
        max_length=20, choices=MailFormat.choices, null=True, blank=True
    )
    envelope_components = models.PositiveSmallIntegerField(null=True, blank=True)
    job_type = models.CharField(
        max_length=30, choices=JobType.choices, null=True, blank=True
    )

    routing_type = models.CharField(
        max_length=30, choices=RoutingType.choices, default=RoutingType.DIRECT
    )
    # Written only by the pathway classifier.
    pathway = models.CharField(max_length=2, choices=Pathway.choices, default=Pathway.P2)
    vendor_count = models.PositiveIntegerField(default=0)  # pyright: ignore[reportArgumentType]

    sell_price = money_field(
        default=ZERO, validators=[MinValueValidator(Decimal("0.00"))]
    )
    quantity = models.PositiveIntegerField(default=0)  # pyright: ignore[reportArgumentType]
    size_name = models.CharField(max_length=64, blank=True)
    paper_source = models.CharField(
        max_length=20, choices=PaperSource.choices, default=PaperSource.VENDOR
    )

    mailing_vendor = models.ForeignKey(
        Vendor,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="mailing_jobs",
        limit_choices_to={"is_mailing_fulfiller": True},
    )
    match_type = models.CharField(
        max_length=10, choices=MatchType.choices, null=True, blank=True
    )
    mail_date = models.DateField(null=True, blank=True)
    in_homes_date = models.DateField(null=True, blank=True)

    qc_artwork = models.CharField(
        max_length=20, choices=ArtworkStatus.choices, default=ArtworkStatus.PENDING
    )
    qc_artwork_note = models.TextField(blank=True)
    qc_data_files = models.CharField(
        max_length=20, choices=DataFilesStatus.choices, default=DataFilesStatus.NA
    )
    qc_data_files_note = models.TextField(blank=True)
    qc_mailing = models.CharField(
        max_length=20, choices=MailingStatus.choices, default=MailingStatus.NA
    )
    qc_mailing_note = models.TextField(blank=True)
    qc_supplied_materials = models.CharField(
        max_length=20,
        choices=SuppliedMaterialsStatus.choices,
        default=SuppliedMaterialsStatus.NA,
    )
    qc_supplied_materials_note = models.TextField(blank=True)
    qc_versions = models.CharField(
        max_length=20, choices=VersionsStatus.choices, default=VersionsStatus.NA
    )
    qc_versions_note = models.TextField(blank=True)
    readiness_status = models.CharField(
        max_length=20,
        choices=ReadinessStatus.choices,
        default=ReadinessStatus.INCOMPLETE,
    )
    readiness_calculated_at = models.DateTimeField(null=True, blank=True)

    invoice_generated_at = models.DateTimeField(null=True, blank=True)
    # Highest approved change order version; job specs themselves are never rewritten.
    effective_change_order_version = models.PositiveIntegerField(null=True, blank=True)
    deleted_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="jobs_created",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = JobQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["deleted_at", "-created_at"], name="job_deleted_created_idx"),
            models.Index(fields=["pathway", "routing_type"], name="job_pathway_routing_idx"),
            models.Index(fields=["readiness_status"], name="job_readiness_idx"),
        ]

    def save(self, *args, **kwargs):
        if self.pk:
            existing_base_job_id = (
                Job.objects.filter(pk=self.pk).values_list("base_job_id", flat=True).first()
            )
            if existing_base_job_id and existing_base_job_id != self.base_job_id:
                raise ValidationError("Base job id is immutable once assigned.")
        super().save(*args, **kwargs)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_financially_locked(self) -> bool:
        return self.invoice_generated_at is not None

    def __str__(self):
        return f"{self.job_number or self.pk} - {self.title}"


class JobComponent(models.Model):
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name="components")
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    sort_order = models.PositiveIntegerField(default=0)  # pyright: ignore[reportArgumentType]
    artwork_status = models.CharField(
        max_length=20,
        choices=ComponentArtworkStatus.choices,
        default=ComponentArtworkStatus.PENDING,
    )
    material_status = models.CharField(
        max_length=20,
        choices=ComponentMaterialStatus.choices,
        default=ComponentMaterialStatus.NA,
    )
    vendor = models.ForeignKey(
        Vendor,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="job_components",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["sort_order", "id"]

    def __str__(self):
        return f"{self.job_id}: {self.name}"


class PurchaseOrder(models.Model):
    po_number = models.CharField(
        max_length=32, unique=True, default=generate_po_number, editable=False
    )
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name="purchase_orders")
    origin_company = models.CharField(max_length=20, choices=CompanyId.choices)
    target_company = models.CharField(
        max_length=20, choices=CompanyId.choices, null=True, blank=True
    )
    target_vendor = models.ForeignKey(
        Vendor,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="purchase_orders",
    )
    # Written once by the execution identity assigner.
    execution_id = models.CharField(
        max_length=64, unique=True, null=True, blank=True, editable=False
    )
    execution_id_assigned_at = models.DateTimeField(null=True, blank=True, editable=False)
    description = models.TextField(blank=True)
    buy_cost = money_field(null=True, blank=True)
    paper_cost = money_field(null=True, blank=True)
    paper_markup = money_field(null=True, blank=True)
    mfg_cost = money_field(null=True, blank=True)
    print_cpm = models.DecimalField(max_digits=12, decimal_places=4, null=True, blank=True)
    paper_cpm = models.DecimalField(max_digits=12, decimal_places=4, null=True, blank=True)
    vendor_ref = models.CharField(max_length=100, blank=True)
    status = models.CharField(
        max_length=20,
        choices=PurchaseOrderStatus.choices,
        default=PurchaseOrderStatus.PENDING,
    )
    issued_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="purchase_orders_created",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    history = HistoricalRecords()

    class Meta:
        ordering = ["created_at", "id"]
        constraints = [
            models.CheckConstraint(
                name="po_single_target",
                condition=(
                    models.Q(target_company__isnull=False, target_vendor__isnull=True)
                    | models.Q(target_company__isnull=True, target_vendor__isnull=False)
                ),
            ),
        ]
        indexes = [
            models.Index(fields=["job", "status"], name="po_job_status_idx"),
            models.Index(fields=["origin_company", "target_vendor"], name="po_origin_vendor_idx"),
        ]

    def save(self, *args, **kwargs):
        if self.pk:
            existing = (
                PurchaseOrder.objects.filter(pk=self.pk)
                .values("execution_id", "target_vendor_id")
                .first()
            )
            if existing and existing["execution_id"]:
                if (
                    existing["execution_id"] != self.execution_id
                    or existing["target_vendor_id"] != self.target_vendor_id
                ):
                    raise ValidationError(
                        "Execution id and target vendor are immutable once finalized."
                    )
        super().save(*args, **kwargs)

    @property
    def is_vendor_facing(self) -> bool:
        return self.target_vendor_id is not None

    @property
    def is_cost_bearing(self) -> bool:
        return self.origin_company == CompanyId.BUYER and (
            self.target_vendor_id is not None or bool(self.target_company)
        )

    @property
    def is_active(self) -> bool:
        return self.status not in INACTIVE_PO_STATUSES

    def __str__(self):
        return self.execution_id or self.po_number


class ProfitSplit(models.Model):
    job = models.OneToOneField(Job, on_delete=models.CASCADE, related_name="profit_split")
    routing_type = models.CharField(max_length=30, choices=RoutingType.choices)
    sell_price = money_field(default=ZERO)
    total_cost = money_field(default=ZERO)
    paper_cost = money_field(default=ZERO)
    paper_markup = money_field(default=ZERO)
    gross_margin = money_field(default=ZERO)
    intermediary_share = money_field(default=ZERO)
    buyer_share = money_field(default=ZERO)
    margin_percent = models.DecimalField(max_digits=7, decimal_places=2, default=ZERO)
    po_count = models.PositiveIntegerField(default=0)  # pyright: ignore[reportArgumentType]
    warnings = models.JSONField(default=list, blank=True)
    calculated_at = models.DateTimeField(null=True, blank=True)
    is_overridden = models.BooleanField(default=False)  # pyright: ignore[reportArgumentType]
    override_reason = models.TextField(blank=True)
    overridden_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="profit_split_overrides",
    )
    overridden_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Split for job {self.job_id}"


class ChangeOrder(models.Model):
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name="change_orders")
    change_order_no = models.CharField(max_length=40, unique=True, editable=False)
    version = models.PositiveIntegerField(editable=False)
    summary = models.TextField()
    # Spec deltas merged over ``Job.specs`` once approved.
    changes = models.JSONField(default=dict, blank=True)
    status = models.CharField(
        max_length=20,
        choices=ChangeOrderStatus.choices,
        default=ChangeOrderStatus.DRAFT,
    )
    affects_vendors = models.JSONField(default=list, blank=True)
    requires_new_po = models.BooleanField(default=False)  # pyright: ignore[reportArgumentType]
    requires_reprice = models.BooleanField(default=False)  # pyright: ignore[reportArgumentType]
    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="change_orders_approved",
    )
    rejection_reason = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="change_orders_created",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["job", "-version"]
        constraints = [
            models.UniqueConstraint(
                fields=["job", "version"], name="change_order_job_version_unique"
            ),
        ]

    def __str__(self):
        return self.change_order_no


class JobAuditLog(models.Model):
    action = models.CharField(max_length=100)
    message = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="job_audit_logs",
    )
    job = models.ForeignKey(
        Job, on_delete=models.SET_NULL, null=True, blank=True, related_name="audit_logs"
    )
    purchase_order = models.ForeignKey(
        PurchaseOrder,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["-created_at"], name="joblog_created_idx"),
            models.Index(fields=["action", "-created_at"], name="joblog_action_created_idx"),
        ]

    def __str__(self):
        return f"{self.action} - {self.created_at:%Y-%m-%d}"
