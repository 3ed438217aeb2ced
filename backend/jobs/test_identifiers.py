from datetime import date
from decimal import Decimal
from unittest.mock import patch

from django.core.exceptions import ValidationError
from django.test import TestCase, TransactionTestCase

from accounts.models import User
from vendors.models import Vendor

from .constants import JobMetaType, JobType, MailFormat, PurchaseOrderKind, PurchaseOrderStatus
from .exceptions import (
    ExecutionIdConflictError,
    ExecutionIdLockedError,
    InactivePurchaseOrderError,
    MissingBaseJobIdError,
    MissingVendorCodeError,
    NotVendorFacingError,
)
from .identifiers import (
    finalize_all_execution_ids,
    finalize_execution_id,
    format_change_order_id,
    get_type_code,
    parse_base_job_id,
    parse_change_order_id,
    parse_execution_id,
)
from .models import Job, JobAuditLog, PurchaseOrder
from .services import create_job, create_purchase_order, update_purchase_order


class TypeCodeTests(TestCase):
    def test_mailing_type_codes(self):
        self.assertEqual(get_type_code(job_meta_type=JobMetaType.MAILING), "MS")
        self.assertEqual(
            get_type_code(job_meta_type=JobMetaType.MAILING, mail_format=MailFormat.POSTCARD),
            "MP",
        )
        self.assertEqual(
            get_type_code(
                job_meta_type=JobMetaType.MAILING,
                mail_format=MailFormat.ENVELOPE,
                envelope_components=3,
            ),
            "ME3",
        )
        self.assertEqual(
            get_type_code(job_meta_type=JobMetaType.MAILING, mail_format=MailFormat.ENVELOPE),
            "ME1",
        )

    def test_print_type_codes(self):
        self.assertEqual(get_type_code(job_meta_type=JobMetaType.PRINT), "FJ")
        self.assertEqual(get_type_code(job_type=JobType.FOLDED), "HJ")
        self.assertEqual(get_type_code(job_type=JobType.BOOKLET_SELF_COVER), "BJ")
        self.assertEqual(get_type_code(job_type=JobType.BOOKLET_PLUS_COVER), "BJ")

    def test_parsers(self):
        self.assertEqual(parse_base_job_id("ME2-3001").type_code, "ME2")
        self.assertEqual(parse_base_job_id("ME2-3001").master_sequence, 3001)
        parsed = parse_execution_id("ME2-3001-4198.2")
        self.assertEqual(parsed.base_job_id, "ME2-3001")
        self.assertEqual(parsed.vendor_code, "4198")
        self.assertEqual(parsed.vendor_count, 2)
        self.assertEqual(format_change_order_id("FJ-3005", 2), "FJ-3005-CO2")
        self.assertEqual(parse_change_order_id("FJ-3005-CO2").version, 2)
        self.assertIsNone(parse_execution_id("J-1001"))
        self.assertIsNone(parse_base_job_id(""))


class JobIdentityTests(TestCase):
    def test_job_numbers_and_base_ids_share_sequences(self):
        flat = create_job(title="Brochure run")
        postcard = create_job(
            title="Spring postcard",
            job_meta_type=JobMetaType.MAILING,
            mail_format=MailFormat.POSTCARD,
        )
        self.assertEqual(flat.job_number, "J-1001")
        self.assertEqual(flat.base_job_id, "FJ-3001")
        self.assertEqual(postcard.job_number, "J-1002")
        self.assertEqual(postcard.base_job_id, "MP-3002")

    def test_base_job_id_is_immutable(self):
        job = create_job(title="Brochure run")
        job.base_job_id = "FJ-9999"
        with self.assertRaises(ValidationError):
            job.save()

    def test_detected_envelope_mailing_gets_component_count(self):
        job = create_job(
            title="Donor appeal",
            mail_date=date(2026, 11, 2),
            specs={"components": [{"name": "Outer envelope"}, {"name": "Letter insert"}]},
        )
        self.assertEqual(job.job_meta_type, JobMetaType.MAILING)
        self.assertEqual(job.mail_format, MailFormat.ENVELOPE)
        self.assertEqual(job.envelope_components, 2)
        self.assertTrue(job.base_job_id.startswith("ME2-"))


class FinalizeExecutionIdTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(
            username="broker", password="pass12345", role=User.Roles.BROKER_ADMIN
        )
        self.vendor_a = Vendor.objects.create(
            name="Alpha Print", vendor_code="4198", email="orders@alpha.test"
        )
        self.vendor_b = Vendor.objects.create(name="Bravo Press", vendor_code="acme")
        self.job = create_job(title="Brochure run", sell_price=Decimal("1000.00"))

    def _vendor_po(self, vendor, buy_cost="300.00", **kwargs):
        return create_purchase_order(
            self.job.id,
            kind=PurchaseOrderKind.VENDOR,
            target_vendor=vendor,
            buy_cost=Decimal(buy_cost),
            **kwargs,
        )

    def test_single_vendor_suffix(self):
        purchase_order = self._vendor_po(self.vendor_a)
        result = finalize_execution_id(purchase_order.id, actor=self.user)
        self.assertTrue(result.created)
        self.assertEqual(result.execution_id, "FJ-3001-4198.1")

    def test_finalize_is_idempotent(self):
        purchase_order = self._vendor_po(self.vendor_a)
        first = finalize_execution_id(purchase_order.id)
        assigned_at = PurchaseOrder.objects.get(id=purchase_order.id).execution_id_assigned_at

        self._vendor_po(self.vendor_b)
        second = finalize_execution_id(purchase_order.id)

        self.assertFalse(second.created)
        self.assertEqual(second.execution_id, first.execution_id)
        refreshed = PurchaseOrder.objects.get(id=purchase_order.id)
        self.assertEqual(refreshed.execution_id, "FJ-3001-4198.1")
        self.assertEqual(refreshed.execution_id_assigned_at, assigned_at)
        self.assertEqual(JobAuditLog.objects.filter(action="po.finalized").count(), 1)

    def test_siblings_finalized_together_share_vendor_count(self):
        first = self._vendor_po(self.vendor_a)
        second = self._vendor_po(self.vendor_b)

        results = finalize_all_execution_ids(self.job.id)

        self.assertEqual(
            [result.execution_id for result in results],
            ["FJ-3001-4198.2", "FJ-3001-ACME.2"],
        )
        self.assertEqual(PurchaseOrder.objects.get(id=first.id).execution_id, "FJ-3001-4198.2")
        self.assertEqual(PurchaseOrder.objects.get(id=second.id).execution_id, "FJ-3001-ACME.2")

    def test_cancelled_sibling_does_not_count(self):
        self._vendor_po(self.vendor_a)
        sibling = self._vendor_po(self.vendor_b)
        update_purchase_order(sibling.id, {"status": PurchaseOrderStatus.CANCELLED})

        results = finalize_all_execution_ids(self.job.id)

        self.assertEqual([result.execution_id for result in results], ["FJ-3001-4198.1"])

    def test_missing_vendor_code_fails_and_writes_nothing(self):
        vendor = Vendor.objects.create(name="No Code Inc")
        purchase_order = self._vendor_po(vendor)
        with self.assertRaises(MissingVendorCodeError):
            finalize_execution_id(purchase_order.id)
        self.assertIsNone(PurchaseOrder.objects.get(id=purchase_order.id).execution_id)

    def test_missing_base_job_id_fails(self):
        purchase_order = self._vendor_po(self.vendor_a)
        Job.objects.filter(id=self.job.id).update(base_job_id=None)
        with self.assertRaises(MissingBaseJobIdError):
            finalize_execution_id(purchase_order.id)

    def test_partner_order_is_not_vendor_facing(self):
        purchase_order = create_purchase_order(
            self.job.id, kind=PurchaseOrderKind.PARTNER, buy_cost=Decimal("100.00")
        )
        with self.assertRaises(NotVendorFacingError):
            finalize_execution_id(purchase_order.id)

    def test_cancelled_order_cannot_be_finalized(self):
        purchase_order = self._vendor_po(self.vendor_a, status=PurchaseOrderStatus.CANCELLED)
        with self.assertRaises(InactivePurchaseOrderError):
            finalize_execution_id(purchase_order.id)

    def test_duplicate_vendor_order_conflicts(self):
        first = self._vendor_po(self.vendor_a)
        second = self._vendor_po(self.vendor_a)
        finalize_execution_id(first.id)
        with self.assertRaises(ExecutionIdConflictError):
            finalize_execution_id(second.id)

    def test_finalize_all_is_all_or_nothing(self):
        first = self._vendor_po(self.vendor_a)
        self._vendor_po(Vendor.objects.create(name="No Code Inc"))
        with self.assertRaises(MissingVendorCodeError):
            finalize_all_execution_ids(self.job.id)
        self.assertIsNone(PurchaseOrder.objects.get(id=first.id).execution_id)

    def test_vendor_cannot_change_after_finalize(self):
        purchase_order = self._vendor_po(self.vendor_a)
        finalize_execution_id(purchase_order.id)

        with self.assertRaises(ExecutionIdLockedError):
            update_purchase_order(purchase_order.id, {"target_vendor": self.vendor_b})

        locked = PurchaseOrder.objects.get(id=purchase_order.id)
        locked.target_vendor = self.vendor_b
        with self.assertRaises(ValidationError):
            locked.save()

    def test_finalize_notifies_vendor_after_commit(self):
        purchase_order = self._vendor_po(self.vendor_a)
        with patch("jobs.tasks.send_resend_email", return_value=(True, None)) as send_mock:
            with self.captureOnCommitCallbacks(execute=True):
                finalize_execution_id(purchase_order.id)

        send_mock.assert_called_once()
        self.assertEqual(send_mock.call_args.args[0], "orders@alpha.test")
        self.assertIn("FJ-3001-4198.1", send_mock.call_args.args[1])
        self.assertTrue(
            JobAuditLog.objects.filter(
                action="po.notification_sent", purchase_order=purchase_order
            ).exists()
        )

    def test_notification_without_vendor_email_is_audited(self):
        purchase_order = self._vendor_po(self.vendor_b)
        with patch("jobs.tasks.send_resend_email") as send_mock:
            with self.captureOnCommitCallbacks(execute=True):
                finalize_execution_id(purchase_order.id)

        send_mock.assert_not_called()
        log = JobAuditLog.objects.get(action="po.notification_skipped")
        self.assertEqual(log.metadata["reason"], "no_recipients")

    def test_provider_failure_is_audited_not_raised(self):
        purchase_order = self._vendor_po(self.vendor_a)
        with patch("jobs.tasks.send_resend_email", return_value=(False, "rate limited")):
            with self.captureOnCommitCallbacks(execute=True):
                result = finalize_execution_id(purchase_order.id)

        self.assertTrue(result.created)
        log = JobAuditLog.objects.get(action="po.notification_failed")
        self.assertEqual(log.metadata["reason"], "rate limited")


class FinalizeNotificationDispatchTests(TransactionTestCase):
    """Commit hooks fire for real in these tests."""

    def setUp(self):
        self.vendor_a = Vendor.objects.create(name="Alpha Print", vendor_code="4198")
        self.vendor_b = Vendor.objects.create(name="Bravo Press", vendor_code="ACME")
        self.job = create_job(title="Brochure run", sell_price=Decimal("1000.00"))

    def _vendor_po(self, vendor):
        return create_purchase_order(
            self.job.id,
            kind=PurchaseOrderKind.VENDOR,
            target_vendor=vendor,
            buy_cost=Decimal("300.00"),
        )

    def test_broker_outage_does_not_undo_or_fail_finalize(self):
        purchase_order = self._vendor_po(self.vendor_a)

        with patch(
            "jobs.identifiers.notify_vendor_po_finalized.delay",
            side_effect=ConnectionError("broker down"),
        ) as delay_mock:
            with self.assertLogs("django.db.backends.base", level="ERROR"):
                result = finalize_execution_id(purchase_order.id)

        delay_mock.assert_called_once_with(purchase_order.id)
        self.assertTrue(result.created)
        self.assertEqual(
            PurchaseOrder.objects.get(id=purchase_order.id).execution_id, "FJ-3001-4198.1"
        )

    def test_one_failed_dispatch_does_not_skip_the_other_vendors(self):
        first = self._vendor_po(self.vendor_a)
        second = self._vendor_po(self.vendor_b)

        with patch(
            "jobs.identifiers.notify_vendor_po_finalized.delay",
            side_effect=[ConnectionError("broker down"), None],
        ) as delay_mock:
            with self.assertLogs("django.db.backends.base", level="ERROR"):
                results = finalize_all_execution_ids(self.job.id)

        self.assertEqual(len(results), 2)
        self.assertEqual(
            [call.args[0] for call in delay_mock.call_args_list], [first.id, second.id]
        )
