from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from accounts.models import User
from vendors.models import Vendor

from .constants import Pathway, PurchaseOrderKind, PurchaseOrderStatus, RoutingType
from .exceptions import (
    BrokerValidationError,
    ExecutionIdLockedError,
    FinancialLockError,
    JobNotFoundError,
    NegativeMarginError,
)
from .models import Job, JobAuditLog, ProfitSplit, PurchaseOrder
from .pathway import reclassify_pathway
from .services import (
    clear_profit_split_override,
    create_job,
    create_jobs,
    create_purchase_order,
    delete_purchase_order,
    mark_invoice_generated,
    override_profit_split,
    recompute_profit_split,
    soft_delete_job,
    update_job,
    update_purchase_order,
)


class PathwayTransitionTests(TestCase):
    def setUp(self):
        self.vendor_a = Vendor.objects.create(name="Alpha Print", vendor_code="4198")
        self.vendor_b = Vendor.objects.create(name="Bravo Press", vendor_code="ACME")

    def _vendor_po(self, job, vendor):
        return create_purchase_order(
            job.id,
            kind=PurchaseOrderKind.VENDOR,
            target_vendor=vendor,
            buy_cost=Decimal("100.00"),
        )

    def test_partner_mediated_job_stays_p1(self):
        job = create_job(
            title="Brochure run",
            routing_type=RoutingType.PARTNER_MEDIATED,
            sell_price=Decimal("1000.00"),
        )
        self.assertEqual(job.pathway, Pathway.P1)
        self.assertEqual(reclassify_pathway(job.id).pathway, Pathway.P1)

        self._vendor_po(job, self.vendor_a)
        job.refresh_from_db()
        self.assertEqual((job.pathway, job.vendor_count), (Pathway.P1, 1))

        self._vendor_po(job, self.vendor_b)
        job.refresh_from_db()
        self.assertEqual((job.pathway, job.vendor_count), (Pathway.P1, 2))

    def test_second_vendor_moves_to_p3_and_cancel_moves_back(self):
        job = create_job(title="Brochure run", sell_price=Decimal("1000.00"))
        self.assertEqual(job.pathway, Pathway.P2)

        self._vendor_po(job, self.vendor_a)
        second = self._vendor_po(job, self.vendor_b)
        job.refresh_from_db()
        self.assertEqual((job.pathway, job.vendor_count), (Pathway.P3, 2))
        self.assertTrue(
            JobAuditLog.objects.filter(
                action="job.pathway_changed", job=job, metadata__pathway="P3"
            ).exists()
        )

        update_purchase_order(second.id, {"status": PurchaseOrderStatus.CANCELLED})
        job.refresh_from_db()
        self.assertEqual((job.pathway, job.vendor_count), (Pathway.P2, 1))

        update_purchase_order(second.id, {"status": PurchaseOrderStatus.PENDING})
        job.refresh_from_db()
        self.assertEqual(job.pathway, Pathway.P3)

    def test_same_vendor_twice_counts_once(self):
        job = create_job(title="Brochure run", sell_price=Decimal("1000.00"))
        self._vendor_po(job, self.vendor_a)
        self._vendor_po(job, self.vendor_a)
        job.refresh_from_db()
        self.assertEqual((job.pathway, job.vendor_count), (Pathway.P2, 1))

    def test_internal_orders_do_not_count_as_vendors(self):
        job = create_job(title="Brochure run", sell_price=Decimal("1000.00"))
        create_purchase_order(job.id, kind=PurchaseOrderKind.INTERNAL, buy_cost=Decimal("80.00"))
        result = reclassify_pathway(job.id)
        self.assertEqual((result.pathway, result.vendor_count), (Pathway.P2, 0))

    def test_p1_without_partner_routing_is_reported(self):
        job = create_job(title="Brochure run", sell_price=Decimal("1000.00"))
        Job.objects.filter(id=job.id).update(pathway=Pathway.P1)
        self._vendor_po(job, self.vendor_a)

        result = reclassify_pathway(job.id)

        self.assertEqual(result.pathway, Pathway.P1)
        self.assertEqual(result.vendor_count, 1)
        self.assertIsNotNone(result.inconsistency)
        self.assertTrue(
            JobAuditLog.objects.filter(action="job.pathway_inconsistent", job=job).exists()
        )

    def test_routing_change_reclassifies(self):
        job = create_job(title="Brochure run", sell_price=Decimal("1000.00"))
        update_job(job.id, {"routing_type": RoutingType.PARTNER_MEDIATED})
        job.refresh_from_db()
        self.assertEqual(job.pathway, Pathway.P1)


class ProfitSplitServiceTests(TestCase):
    def setUp(self):
        self.vendor = Vendor.objects.create(name="Alpha Print", vendor_code="4198")
        self.finance = User.objects.create_user(
            username="finance", password="pass12345", role=User.Roles.FINANCE
        )

    def test_internal_orders_are_excluded_from_cost(self):
        job = create_job(title="Brochure run", sell_price=Decimal("1000.00"))
        create_purchase_order(
            job.id,
            kind=PurchaseOrderKind.VENDOR,
            target_vendor=self.vendor,
            buy_cost=Decimal("500.00"),
        )
        create_purchase_order(job.id, kind=PurchaseOrderKind.INTERNAL, buy_cost=Decimal("300.00"))

        split = ProfitSplit.objects.get(job=job)
        self.assertEqual(split.total_cost, Decimal("500.00"))
        self.assertEqual(split.po_count, 1)

    def test_partner_split_is_cached(self):
        job = create_job(
            title="Brochure run",
            routing_type=RoutingType.PARTNER_MEDIATED,
            sell_price=Decimal("1000.00"),
        )
        create_purchase_order(
            job.id,
            kind=PurchaseOrderKind.PARTNER,
            buy_cost=Decimal("600.00"),
            paper_markup=Decimal("50.00"),
        )

        split = ProfitSplit.objects.get(job=job)
        self.assertEqual(split.gross_margin, Decimal("400.00"))
        self.assertEqual(split.intermediary_share, Decimal("250.00"))
        self.assertEqual(split.buyer_share, Decimal("200.00"))

    def test_partner_paper_markup_defaults_from_paper_cost(self):
        job = create_job(title="Brochure run", routing_type=RoutingType.PARTNER_MEDIATED)
        purchase_order = create_purchase_order(
            job.id,
            kind=PurchaseOrderKind.PARTNER,
            buy_cost=Decimal("600.00"),
            paper_cost=Decimal("200.00"),
        )
        self.assertEqual(purchase_order.paper_markup, Decimal("36.00"))

    def test_direct_split(self):
        job = create_job(title="Brochure run", sell_price=Decimal("1000.00"))
        create_purchase_order(
            job.id,
            kind=PurchaseOrderKind.VENDOR,
            target_vendor=self.vendor,
            buy_cost=Decimal("600.00"),
        )
        split = ProfitSplit.objects.get(job=job)
        self.assertEqual(split.intermediary_share, Decimal("140.00"))
        self.assertEqual(split.buyer_share, Decimal("260.00"))

    def test_price_change_recomputes_split(self):
        job = create_job(title="Brochure run", sell_price=Decimal("1000.00"))
        create_purchase_order(
            job.id,
            kind=PurchaseOrderKind.VENDOR,
            target_vendor=self.vendor,
            buy_cost=Decimal("600.00"),
        )
        update_job(job.id, {"sell_price": Decimal("1200.00")})
        split = ProfitSplit.objects.get(job=job)
        self.assertEqual(split.gross_margin, Decimal("600.00"))

    def test_negative_margin_requires_explicit_override(self):
        job = create_job(title="Brochure run", sell_price=Decimal("400.00"))

        with self.assertRaises(NegativeMarginError):
            create_purchase_order(
                job.id,
                kind=PurchaseOrderKind.VENDOR,
                target_vendor=self.vendor,
                buy_cost=Decimal("600.00"),
            )
        self.assertFalse(PurchaseOrder.objects.filter(job=job).exists())
        self.assertFalse(ProfitSplit.objects.filter(job=job).exists())

        create_purchase_order(
            job.id,
            kind=PurchaseOrderKind.VENDOR,
            target_vendor=self.vendor,
            buy_cost=Decimal("600.00"),
            allow_negative_margin=True,
        )
        split = ProfitSplit.objects.get(job=job)
        self.assertEqual(split.gross_margin, Decimal("-200.00"))
        self.assertTrue(
            JobAuditLog.objects.filter(action="split.negative_margin_accepted", job=job).exists()
        )

    def test_unpriced_job_has_no_split(self):
        job = create_job(title="Brochure run")
        create_purchase_order(
            job.id,
            kind=PurchaseOrderKind.VENDOR,
            target_vendor=self.vendor,
            buy_cost=Decimal("600.00"),
        )
        outcome = recompute_profit_split(job.id)
        self.assertEqual(outcome.skipped_reason, "unpriced")
        self.assertFalse(ProfitSplit.objects.filter(job=job).exists())

    def test_overridden_split_is_not_recomputed(self):
        job = create_job(title="Brochure run", sell_price=Decimal("1000.00"))
        purchase_order = create_purchase_order(
            job.id,
            kind=PurchaseOrderKind.VENDOR,
            target_vendor=self.vendor,
            buy_cost=Decimal("600.00"),
        )
        override_profit_split(
            job.id,
            intermediary_share=Decimal("100.00"),
            buyer_share=Decimal("300.00"),
            reason="Negotiated with customer",
            actor=self.finance,
        )
        before = ProfitSplit.objects.get(job=job)

        update_purchase_order(purchase_order.id, {"buy_cost": Decimal("700.00")})
        outcome = recompute_profit_split(job.id)

        after = ProfitSplit.objects.get(job=job)
        self.assertEqual(outcome.skipped_reason, "overridden")
        self.assertEqual(after.intermediary_share, Decimal("100.00"))
        self.assertEqual(after.updated_at, before.updated_at)
        self.assertEqual(after.overridden_by, self.finance)

        outcome = clear_profit_split_override(job.id)
        self.assertFalse(outcome.skipped)
        after = ProfitSplit.objects.get(job=job)
        self.assertFalse(after.is_overridden)
        self.assertEqual(after.total_cost, Decimal("700.00"))
        self.assertEqual(after.intermediary_share, Decimal("105.00"))

    def test_override_needs_reason(self):
        job = create_job(title="Brochure run", sell_price=Decimal("1000.00"))
        with self.assertRaises(BrokerValidationError):
            override_profit_split(
                job.id, intermediary_share="1", buyer_share="1", reason="  "
            )

    def test_override_refreshes_margin_figures(self):
        job = create_job(title="Brochure run", sell_price=Decimal("1000.00"))
        split = override_profit_split(
            job.id,
            intermediary_share=Decimal("300.00"),
            buyer_share=Decimal("700.00"),
            reason="No vendor cost yet",
        )
        self.assertEqual(split.margin_percent, Decimal("100.00"))
        self.assertEqual(split.warnings, [])

        clear_profit_split_override(job.id)
        create_purchase_order(
            job.id,
            kind=PurchaseOrderKind.VENDOR,
            target_vendor=self.vendor,
            buy_cost=Decimal("950.00"),
        )
        override_profit_split(
            job.id,
            intermediary_share=Decimal("-10.00"),
            buyer_share=Decimal("60.00"),
            reason="Broker absorbs the rush fee",
        )

        stored = ProfitSplit.objects.get(job=job)
        self.assertEqual(stored.gross_margin, Decimal("50.00"))
        self.assertEqual(stored.margin_percent, Decimal("5.00"))
        self.assertEqual(stored.paper_markup, Decimal("0.00"))
        self.assertEqual(stored.intermediary_share, Decimal("-10.00"))
        self.assertTrue(stored.warnings[0].startswith("Low margin"))
        self.assertEqual(stored.warnings[-1], "Intermediary share is negative.")


class JobLifecycleTests(TestCase):
    def setUp(self):
        self.vendor = Vendor.objects.create(name="Alpha Print", vendor_code="4198")

    def test_create_jobs_is_all_or_nothing(self):
        with self.assertRaises(BrokerValidationError):
            create_jobs([{"title": "First"}, {"title": "Second", "pathway": "P3"}])
        self.assertFalse(Job.objects.exists())

        jobs = create_jobs([{"title": "First"}, {"title": "Second"}])
        self.assertEqual([job.job_number for job in jobs], ["J-1001", "J-1002"])

    def test_financial_lock_after_invoice(self):
        job = create_job(title="Brochure run", sell_price=Decimal("1000.00"), quantity=5000)
        mark_invoice_generated(job.id)

        with self.assertRaises(FinancialLockError):
            update_job(job.id, {"sell_price": Decimal("900.00")})
        with self.assertRaises(FinancialLockError):
            update_job(job.id, {"specs": {"paper": "100# gloss"}})

        update_job(job.id, {"title": "Brochure run v2", "quantity": 5000})
        self.assertEqual(Job.objects.get(id=job.id).title, "Brochure run v2")

    def test_purchase_orders_cannot_be_deleted_after_invoice(self):
        job = create_job(title="Brochure run", sell_price=Decimal("1000.00"))
        purchase_order = create_purchase_order(
            job.id,
            kind=PurchaseOrderKind.VENDOR,
            target_vendor=self.vendor,
            buy_cost=Decimal("600.00"),
        )
        mark_invoice_generated(job.id)
        with self.assertRaises(FinancialLockError):
            delete_purchase_order(purchase_order.id)

    def test_deleting_purchase_order_reclassifies_and_recomputes(self):
        job = create_job(title="Brochure run", sell_price=Decimal("1000.00"))
        purchase_order = create_purchase_order(
            job.id,
            kind=PurchaseOrderKind.VENDOR,
            target_vendor=self.vendor,
            buy_cost=Decimal("600.00"),
        )
        delete_purchase_order(purchase_order.id)

        job.refresh_from_db()
        self.assertEqual(job.vendor_count, 0)
        self.assertEqual(ProfitSplit.objects.get(job=job).total_cost, Decimal("0.00"))
        self.assertTrue(JobAuditLog.objects.filter(action="po.deleted", job=job).exists())

    def test_finalized_purchase_order_cannot_be_deleted(self):
        from .identifiers import finalize_execution_id

        job = create_job(title="Brochure run", sell_price=Decimal("1000.00"))
        purchase_order = create_purchase_order(
            job.id,
            kind=PurchaseOrderKind.VENDOR,
            target_vendor=self.vendor,
            buy_cost=Decimal("600.00"),
        )
        finalize_execution_id(purchase_order.id)
        with self.assertRaises(ExecutionIdLockedError):
            delete_purchase_order(purchase_order.id)

    def test_cost_per_thousand_rates(self):
        job = create_job(title="Brochure run", sell_price=Decimal("1000.00"), quantity=5000)
        purchase_order = create_purchase_order(
            job.id,
            kind=PurchaseOrderKind.VENDOR,
            target_vendor=self.vendor,
            buy_cost=Decimal("600.00"),
            paper_cost=Decimal("100.00"),
        )
        self.assertEqual(purchase_order.print_cpm, Decimal("100.0000"))
        self.assertEqual(purchase_order.paper_cpm, Decimal("20.0000"))

    def test_soft_deleted_job_is_invisible(self):
        job = create_job(title="Brochure run")
        soft_delete_job(job.id)
        with self.assertRaises(JobNotFoundError):
            recompute_profit_split(job.id)
        with self.assertRaises(JobNotFoundError):
            reclassify_pathway(job.id)

    def test_inactive_vendor_is_rejected(self):
        job = create_job(title="Brochure run")
        self.vendor.is_active = False
        self.vendor.save()
        with self.assertRaises(BrokerValidationError):
            create_purchase_order(
                job.id, kind=PurchaseOrderKind.VENDOR, target_vendor=self.vendor
            )


class JobApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.production = User.objects.create_user(username="prod", password="pass12345")
        self.finance = User.objects.create_user(
            username="finance", password="pass12345", role=User.Roles.FINANCE
        )
        self.vendor = Vendor.objects.create(
            name="Alpha Print", vendor_code="4198", email="orders@alpha.test"
        )
        self.client.force_authenticate(user=self.production)

    def _create_job(self, **payload):
        data = {
            "title": "Catalog",
            "routing_type": "direct",
            "sell_price": "1000.00",
            "quantity": 5000,
        }
        data.update(payload)
        response = self.client.post("/api/jobs/", data, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        return response.data

    def test_anonymous_requests_are_rejected(self):
        self.client.force_authenticate(user=None)
        response = self.client.get("/api/jobs/")
        self.assertIn(
            response.status_code, [status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN]
        )

    def test_job_to_execution_id_flow(self):
        job = self._create_job()
        self.assertEqual(job["job_number"], "J-1001")
        self.assertEqual(job["base_job_id"], "FJ-3001")
        self.assertEqual(job["pathway"], "P2")

        response = self.client.post(
            "/api/purchase-orders/",
            {
                "job": job["id"],
                "kind": "vendor",
                "target_vendor": self.vendor.id,
                "buy_cost": "600.00",
            },
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["print_cpm"], "120.0000")
        po_id = response.data["id"]

        response = self.client.post(f"/api/purchase-orders/{po_id}/finalize/")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["execution_id"], "FJ-3001-4198.1")

        response = self.client.post(f"/api/purchase-orders/{po_id}/finalize/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data["created"])

        response = self.client.get(f"/api/jobs/{job['id']}/profit-split/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["intermediary_share"], "140.00")
        self.assertEqual(response.data["buyer_share"], "260.00")

    def test_structured_error_payload(self):
        vendor = Vendor.objects.create(name="No Code Inc")
        job = self._create_job()
        response = self.client.post(
            "/api/purchase-orders/",
            {"job": job["id"], "kind": "vendor", "target_vendor": vendor.id, "buy_cost": "10.00"},
            format="json",
        )
        po_id = response.data["id"]

        response = self.client.post(f"/api/purchase-orders/{po_id}/finalize/")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "missing_vendor_code")
        self.assertEqual(response.data["vendor_id"], vendor.id)

    def test_negative_margin_via_api(self):
        job = self._create_job(sell_price="400.00")
        payload = {
            "job": job["id"],
            "kind": "vendor",
            "target_vendor": self.vendor.id,
            "buy_cost": "600.00",
        }
        response = self.client.post("/api/purchase-orders/", payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "negative_margin")

        payload["allow_negative_margin"] = True
        response = self.client.post("/api/purchase-orders/", payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.get(f"/api/jobs/{job['id']}/profit-split/")
        self.assertEqual(response.data["gross_margin"], "-200.00")

    def test_finance_actions_need_finance_role(self):
        job = self._create_job()
        response = self.client.post(
            f"/api/jobs/{job['id']}/override-profit-split/",
            {"intermediary_share": "1.00", "buyer_share": "1.00", "reason": "test"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.finance)
        response = self.client.post(f"/api/jobs/{job['id']}/mark-invoiced/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["is_financially_locked"])

        response = self.client.patch(
            f"/api/jobs/{job['id']}/", {"sell_price": "900.00"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "financial_lock")

    def test_qc_and_readiness_actions(self):
        job = self._create_job()
        response = self.client.get(f"/api/jobs/{job['id']}/readiness/")
        self.assertEqual(response.data["status"], "incomplete")
        self.assertEqual(response.data["blockers"], ["Artwork not received"])

        response = self.client.post(
            f"/api/jobs/{job['id']}/qc/", {"concern": "artwork", "value": "received"}
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "ready")

        response = self.client.post(
            f"/api/jobs/{job['id']}/qc/", {"concern": "artwork", "value": "lost"}
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_qc_flag")

        response = self.client.post(f"/api/jobs/{job['id']}/mark-sent/")
        self.assertEqual(response.data["status"], "sent")

    def test_components_actions(self):
        job = self._create_job()
        response = self.client.post(
            f"/api/jobs/{job['id']}/components/",
            {"name": "Reply card", "material_status": "pending"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        component_id = response.data["id"]

        response = self.client.patch(
            f"/api/jobs/{job['id']}/components/{component_id}/",
            {"material_status": "arrived", "artwork_status": "received"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertNotIn("Reply card: Material pending", response.data["blockers"])

        response = self.client.get(f"/api/jobs/{job['id']}/components/")
        self.assertEqual(response.data[0]["material_status"], "arrived")

    def test_reclassify_and_finalize_all(self):
        job = self._create_job()
        for code in ("4198", "ACME"):
            vendor = Vendor.objects.get_or_create(vendor_code=code, defaults={"name": code})[0]
            self.client.post(
                "/api/purchase-orders/",
                {"job": job["id"], "kind": "vendor", "target_vendor": vendor.id, "buy_cost": "100.00"},
                format="json",
            )
        response = self.client.post(f"/api/jobs/{job['id']}/reclassify/")
        self.assertEqual(response.data["pathway"], "P3")
        self.assertFalse(response.data["changed"])

        response = self.client.post(f"/api/jobs/{job['id']}/finalize-all/")
        self.assertEqual(
            sorted(item["execution_id"] for item in response.data),
            ["FJ-3001-4198.2", "FJ-3001-ACME.2"],
        )

    def test_delete_is_soft(self):
        admin = User.objects.create_user(
            username="admin", password="pass12345", role=User.Roles.BROKER_ADMIN
        )
        job = self._create_job()
        response = self.client.delete(f"/api/jobs/{job['id']}/")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=admin)
        response = self.client.delete(f"/api/jobs/{job['id']}/")
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertTrue(Job.objects.filter(id=job["id"], deleted_at__isnull=False).exists())
        response = self.client.get(f"/api/jobs/{job['id']}/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_audit_logs_are_finance_only(self):
        self._create_job()
        response = self.client.get("/api/audit-logs/")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.finance)
        response = self.client.get("/api/audit-logs/", {"action": "job.created"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

    def test_batch_create(self):
        response = self.client.post(
            "/api/jobs/batch/",
            {"jobs": [{"title": "First"}, {"title": "Second", "job_type": "folded"}]},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(
            [job["base_job_id"] for job in response.data], ["FJ-3001", "HJ-3002"]
        )


class ManagementCommandTests(TestCase):
    def setUp(self):
        self.vendor = Vendor.objects.create(name="Alpha Print", vendor_code="4198")

    def _job_with_cost(self, sell_price, buy_cost):
        job = create_job(title="Brochure run", sell_price=Decimal(sell_price))
        purchase_order = create_purchase_order(
            job.id,
            kind=PurchaseOrderKind.VENDOR,
            target_vendor=self.vendor,
            buy_cost=Decimal(buy_cost),
        )
        return job, purchase_order

    def test_recalculate_profit_splits(self):
        job, purchase_order = self._job_with_cost("1000.00", "600.00")
        losing_job, losing_po = self._job_with_cost("400.00", "300.00")
        PurchaseOrder.objects.filter(id=purchase_order.id).update(buy_cost=Decimal("700.00"))
        PurchaseOrder.objects.filter(id=losing_po.id).update(buy_cost=Decimal("600.00"))

        out = StringIO()
        call_command("recalculate_profit_splits", "--dry-run", stdout=out)
        self.assertIn("Dry run complete", out.getvalue())
        self.assertEqual(ProfitSplit.objects.get(job=job).total_cost, Decimal("600.00"))

        out = StringIO()
        call_command("recalculate_profit_splits", stdout=out)
        self.assertEqual(ProfitSplit.objects.get(job=job).total_cost, Decimal("700.00"))
        self.assertEqual(ProfitSplit.objects.get(job=losing_job).total_cost, Decimal("300.00"))
        self.assertIn(f"Negative margin on: {losing_job.job_number}", out.getvalue())

    def test_dry_run_skips_unpriced_jobs_like_a_real_run(self):
        job, _ = self._job_with_cost("0.00", "600.00")

        dry_out = StringIO()
        call_command("recalculate_profit_splits", "--dry-run", stdout=dry_out)
        real_out = StringIO()
        call_command("recalculate_profit_splits", stdout=real_out)

        skip_line = f"skip job={job.job_number} reason=unpriced"
        self.assertIn(skip_line, dry_out.getvalue())
        self.assertIn(skip_line, real_out.getvalue())
        self.assertNotIn("[dry-run]", dry_out.getvalue())
        self.assertNotIn("Negative margin on", dry_out.getvalue())
        self.assertFalse(ProfitSplit.objects.filter(job=job).exists())

    def test_recalculate_rejects_unknown_job(self):
        with self.assertRaises(CommandError):
            call_command("recalculate_profit_splits", "--job", "999999", stdout=StringIO())

    def test_audit_job_routing(self):
        job, purchase_order = self._job_with_cost("1000.00", "600.00")
        Job.objects.filter(id=job.id).update(pathway=Pathway.P1, vendor_count=0)

        out = StringIO()
        call_command("audit_job_routing", stdout=out)
        output = out.getvalue()
        self.assertIn(f"inconsistent job={job.job_number}", output)
        self.assertIn(f"stale-count job={job.job_number} stored=0 actual=1", output)
        self.assertIn(f"unfinalized po={purchase_order.po_number}", output)

        with self.assertRaises(CommandError):
            call_command("audit_job_routing", "--fail-on-issues", stdout=StringIO())
