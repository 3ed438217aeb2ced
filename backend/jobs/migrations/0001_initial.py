import decimal

import django.core.validators
import django.db.models.deletion
import simple_history.models
from django.conf import settings
from django.db import migrations, models

import jobs.models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("vendors", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="SequenceCounter",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(choices=[("job_number", "Job number"), ("base_job_id", "Base job id")], max_length=32, unique=True)),
                ("next_value", models.PositiveBigIntegerField(default=1)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="Job",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("job_number", models.CharField(blank=True, editable=False, max_length=20, null=True, unique=True)),
                ("base_job_id", models.CharField(blank=True, editable=False, max_length=32, null=True, unique=True)),
                ("title", models.CharField(max_length=255)),
                ("customer_name", models.CharField(blank=True, max_length=255)),
                ("notes", models.TextField(blank=True)),
                ("specs", models.JSONField(blank=True, default=dict)),
                ("job_meta_type", models.CharField(choices=[("print", "Print"), ("mailing", "Mailing")], default="print", max_length=20)),
                ("mail_format", models.CharField(blank=True, choices=[("self_mailer", "Self-Mailer"), ("postcard", "Postcard"), ("envelope", "Envelope")], max_length=20, null=True)),
                ("envelope_components", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("job_type", models.CharField(blank=True, choices=[("flat", "Flat"), ("folded", "Folded"), ("booklet_self_cover", "Booklet (self cover)"), ("booklet_plus_cover", "Booklet (plus cover)")], max_length=30, null=True)),
                ("routing_type", models.CharField(choices=[("partner_mediated", "Partner Mediated"), ("direct", "Direct"), ("third_party_vendor", "Third Party Vendor")], default="direct", max_length=30)),
                ("pathway", models.CharField(choices=[("P1", "P1 - Partner mediated"), ("P2", "P2 - Single vendor"), ("P3", "P3 - Multiple vendors")], default="P2", max_length=2)),
                ("vendor_count", models.PositiveIntegerField(default=0)),
                ("sell_price", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), max_digits=12, validators=[django.core.validators.MinValueValidator(decimal.Decimal("0.00"))])),
                ("quantity", models.PositiveIntegerField(default=0)),
                ("size_name", models.CharField(blank=True, max_length=64)),
                ("paper_source", models.CharField(choices=[("partner", "Partner"), ("vendor", "Vendor"), ("customer", "Customer")], default="vendor", max_length=20)),
                ("match_type", models.CharField(blank=True, choices=[("2-way", "2-Way"), ("3-way", "3-Way")], max_length=10, null=True)),
                ("mail_date", models.DateField(blank=True, null=True)),
                ("in_homes_date", models.DateField(blank=True, null=True)),
                ("qc_artwork", models.CharField(choices=[("pending", "Pending"), ("received", "Received")], default="pending", max_length=20)),
                ("qc_artwork_note", models.TextField(blank=True)),
                ("qc_data_files", models.CharField(choices=[("pending", "Pending"), ("in_artwork", "Included in artwork"), ("separate_file", "Separate file"), ("na", "Not applicable")], default="na", max_length=20)),
                ("qc_data_files_note", models.TextField(blank=True)),
                ("qc_mailing", models.CharField(choices=[("incomplete", "Incomplete"), ("complete", "Complete"), ("na", "Not applicable")], default="na", max_length=20)),
                ("qc_mailing_note", models.TextField(blank=True)),
                ("qc_supplied_materials", models.CharField(choices=[("pending", "Pending"), ("received", "Received"), ("na", "Not applicable")], default="na", max_length=20)),
                ("qc_supplied_materials_note", models.TextField(blank=True)),
                ("qc_versions", models.CharField(choices=[("incomplete", "Incomplete"), ("complete", "Complete"), ("na", "Not applicable")], default="na", max_length=20)),
                ("qc_versions_note", models.TextField(blank=True)),
                ("readiness_status", models.CharField(choices=[("incomplete", "Incomplete"), ("ready", "Ready"), ("sent", "Sent")], default="incomplete", max_length=20)),
                ("readiness_calculated_at", models.DateTimeField(blank=True, null=True)),
                ("invoice_generated_at", models.DateTimeField(blank=True, null=True)),
                ("deleted_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="jobs_created", to=settings.AUTH_USER_MODEL)),
                ("mailing_vendor", models.ForeignKey(blank=True, limit_choices_to={"is_mailing_fulfiller": True}, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="mailing_jobs", to="vendors.vendor")),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["deleted_at", "-created_at"], name="job_deleted_created_idx"),
                    models.Index(fields=["pathway", "routing_type"], name="job_pathway_routing_idx"),
                    models.Index(fields=["readiness_status"], name="job_readiness_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="JobComponent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True)),
                ("sort_order", models.PositiveIntegerField(default=0)),
                ("artwork_status", models.CharField(choices=[("pending", "Pending"), ("received", "Received"), ("na", "Not applicable")], default="pending", max_length=20)),
                ("material_status", models.CharField(choices=[("pending", "Pending"), ("in_transit", "In transit"), ("arrived", "Arrived"), ("na", "Not applicable")], default="na", max_length=20)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("job", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="components", to="jobs.job")),
                ("vendor", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="job_components", to="vendors.vendor")),
            ],
            options={
                "ordering": ["sort_order", "id"],
            },
        ),
        migrations.CreateModel(
            name="PurchaseOrder",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("po_number", models.CharField(default=jobs.models.generate_po_number, editable=False, max_length=32, unique=True)),
                ("origin_company", models.CharField(choices=[("buyer", "Buyer"), ("partner", "Routing Partner"), ("producer", "Partner Producer")], max_length=20)),
                ("target_company", models.CharField(blank=True, choices=[("buyer", "Buyer"), ("partner", "Routing Partner"), ("producer", "Partner Producer")], max_length=20, null=True)),
                ("execution_id", models.CharField(blank=True, editable=False, max_length=64, null=True, unique=True)),
                ("execution_id_assigned_at", models.DateTimeField(blank=True, editable=False, null=True)),
                ("description", models.TextField(blank=True)),
                ("buy_cost", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("paper_cost", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("paper_markup", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("mfg_cost", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("print_cpm", models.DecimalField(blank=True, decimal_places=4, max_digits=12, null=True)),
                ("paper_cpm", models.DecimalField(blank=True, decimal_places=4, max_digits=12, null=True)),
                ("vendor_ref", models.CharField(blank=True, max_length=100)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("issued", "Issued"), ("paid", "Paid"), ("cancelled", "Cancelled"), ("rejected", "Rejected")], default="pending", max_length=20)),
                ("issued_at", models.DateTimeField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="purchase_orders_created", to=settings.AUTH_USER_MODEL)),
                ("job", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="purchase_orders", to="jobs.job")),
                ("target_vendor", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="purchase_orders", to="vendors.vendor")),
            ],
            options={
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(fields=["job", "status"], name="po_job_status_idx"),
                    models.Index(fields=["origin_company", "target_vendor"], name="po_origin_vendor_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=(
                            models.Q(target_company__isnull=False, target_vendor__isnull=True)
                            | models.Q(target_company__isnull=True, target_vendor__isnull=False)
                        ),
                        name="po_single_target",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="HistoricalPurchaseOrder",
            fields=[
                ("id", models.BigIntegerField(auto_created=True, blank=True, db_index=True, verbose_name="ID")),
                ("po_number", models.CharField(db_index=True, default=jobs.models.generate_po_number, editable=False, max_length=32)),
                ("origin_company", models.CharField(choices=[("buyer", "Buyer"), ("partner", "Routing Partner"), ("producer", "Partner Producer")], max_length=20)),
                ("target_company", models.CharField(blank=True, choices=[("buyer", "Buyer"), ("partner", "Routing Partner"), ("producer", "Partner Producer")], max_length=20, null=True)),
                ("execution_id", models.CharField(blank=True, db_index=True, editable=False, max_length=64, null=True)),
                ("execution_id_assigned_at", models.DateTimeField(blank=True, editable=False, null=True)),
                ("description", models.TextField(blank=True)),
                ("buy_cost", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("paper_cost", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("paper_markup", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("mfg_cost", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("print_cpm", models.DecimalField(blank=True, decimal_places=4, max_digits=12, null=True)),
                ("paper_cpm", models.DecimalField(blank=True, decimal_places=4, max_digits=12, null=True)),
                ("vendor_ref", models.CharField(blank=True, max_length=100)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("issued", "Issued"), ("paid", "Paid"), ("cancelled", "Cancelled"), ("rejected", "Rejected")], default="pending", max_length=20)),
                ("issued_at", models.DateTimeField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(blank=True, editable=False)),
                ("updated_at", models.DateTimeField(blank=True, editable=False)),
                ("history_id", models.AutoField(primary_key=True, serialize=False)),
                ("history_date", models.DateTimeField(db_index=True)),
                ("history_change_reason", models.CharField(max_length=100, null=True)),
                ("history_type", models.CharField(choices=[("+", "Created"), ("~", "Changed"), ("-", "Deleted")], max_length=1)),
                ("created_by", models.ForeignKey(blank=True, db_constraint=False, null=True, on_delete=django.db.models.deletion.DO_NOTHING, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("history_user", models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("job", models.ForeignKey(blank=True, db_constraint=False, null=True, on_delete=django.db.models.deletion.DO_NOTHING, related_name="+", to="jobs.job")),
                ("target_vendor", models.ForeignKey(blank=True, db_constraint=False, null=True, on_delete=django.db.models.deletion.DO_NOTHING, related_name="+", to="vendors.vendor")),
            ],
            options={
                "verbose_name": "historical purchase order",
                "verbose_name_plural": "historical purchase orders",
                "ordering": ("-history_date", "-history_id"),
                "get_latest_by": ("history_date", "history_id"),
            },
            bases=(simple_history.models.HistoricalChanges, models.Model),
        ),
        migrations.CreateModel(
            name="ProfitSplit",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("routing_type", models.CharField(choices=[("partner_mediated", "Partner Mediated"), ("direct", "Direct"), ("third_party_vendor", "Third Party Vendor")], max_length=30)),
                ("sell_price", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), max_digits=12)),
                ("total_cost", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), max_digits=12)),
                ("paper_cost", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), max_digits=12)),
                ("paper_markup", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), max_digits=12)),
                ("gross_margin", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), max_digits=12)),
                ("intermediary_share", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), max_digits=12)),
                ("buyer_share", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), max_digits=12)),
                ("margin_percent", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), max_digits=7)),
                ("po_count", models.PositiveIntegerField(default=0)),
                ("warnings", models.JSONField(blank=True, default=list)),
                ("calculated_at", models.DateTimeField(blank=True, null=True)),
                ("is_overridden", models.BooleanField(default=False)),
                ("override_reason", models.TextField(blank=True)),
                ("overridden_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("job", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="profit_split", to="jobs.job")),
                ("overridden_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="profit_split_overrides", to=settings.AUTH_USER_MODEL)),
            ],
        ),
        migrations.CreateModel(
            name="JobAuditLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("action", models.CharField(max_length=100)),
                ("message", models.TextField(blank=True)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("actor", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="job_audit_logs", to=settings.AUTH_USER_MODEL)),
                ("job", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="audit_logs", to="jobs.job")),
                ("purchase_order", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="audit_logs", to="jobs.purchaseorder")),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["-created_at"], name="joblog_created_idx"),
                    models.Index(fields=["action", "-created_at"], name="joblog_action_created_idx"),
                ],
            },
        ),
    ]
