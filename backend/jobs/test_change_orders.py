from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from accounts.models import User
from vendors.models import Vendor

from .change_orders import (
    approve_change_order,
    create_change_order,
    delete_change_order,
    effective_job_state,
    reject_change_order,
    submit_change_order,
    update_change_order,
)
from .constants import ChangeOrderStatus
from .exceptions import (
    BrokerValidationError,
    ChangeOrderNotFoundError,
    ChangeOrderStateError,
    FinancialLockError,
    MissingBaseJobIdError,
)
from .identifiers import parse_change_order_id
from .models import ChangeOrder, Job, JobAuditLog
from .services import create_job, mark_invoice_generated, update_job


class ChangeOrderServiceTests(TestCase):
    def setUp(self):
        self.finance = User.objects.create_user(
            username="finance", password="pass12345", role=User.Roles.FINANCE
        )
        self.job = create_job(
            title="Brochure run",
            specs={"paper": "80# gloss", "colors": "4/4"},
        )

    def _approved(self, summary, changes):
        change_order = create_change_order(self.job.id, summary=summary, changes=changes)
        submit_change_order(change_order.id)
        return approve_change_order(change_order.id, actor=self.finance)

    def test_numbers_follow_base_job_id_and_version(self):
        first = create_change_order(self.job.id, summary="Heavier paper")
        second = create_change_order(self.job.id, summary="Drop back side color")

        self.assertEqual(first.change_order_no, "FJ-3001-CO1")
        self.assertEqual(second.change_order_no, "FJ-3001-CO2")
        self.assertEqual(parse_change_order_id(second.change_order_no).version, 2)
        self.assertEqual(first.status, ChangeOrderStatus.DRAFT)
        self.assertEqual(
            JobAuditLog.objects.filter(action="change_order.created", job=self.job).count(), 2
        )

    def test_job_without_base_job_id_cannot_get_change_orders(self):
        Job.objects.filter(id=self.job.id).update(base_job_id=None)
        with self.assertRaises(MissingBaseJobIdError):
            create_change_order(self.job.id, summary="Heavier paper")
        self.assertFalse(ChangeOrder.objects.exists())

    def test_summary_is_required(self):
        with self.assertRaises(BrokerValidationError):
            create_change_order(self.job.id, summary="   ")

    def test_only_drafts_can_be_edited_or_deleted(self):
        change_order = create_change_order(self.job.id, summary="Heavier paper")
        update_change_order(change_order.id, {"changes": {"paper": "100# gloss"}})
        self.assertEqual(
            ChangeOrder.objects.get(id=change_order.id).changes, {"paper": "100# gloss"}
        )

        submit_change_order(change_order.id)
        with self.assertRaises(ChangeOrderStateError):
            update_change_order(change_order.id, {"summary": "Too late"})
        with self.assertRaises(ChangeOrderStateError):
            delete_change_order(change_order.id)
        with self.assertRaises(ChangeOrderStateError):
            submit_change_order(change_order.id)

    def test_draft_delete(self):
        change_order = create_change_order(self.job.id, summary="Heavier paper")
        delete_change_order(change_order.id)
        self.assertFalse(ChangeOrder.objects.filter(id=change_order.id).exists())
        with self.assertRaises(ChangeOrderNotFoundError):
            submit_change_order(change_order.id)

    def test_unknown_fields_are_rejected(self):
        change_order = create_change_order(self.job.id, summary="Heavier paper")
        with self.assertRaises(BrokerValidationError):
            update_change_order(change_order.id, {"version": 9})

    def test_approval_must_follow_submission(self):
        change_order = create_change_order(self.job.id, summary="Heavier paper")
        with self.assertRaises(ChangeOrderStateError):
            approve_change_order(change_order.id)
        with self.assertRaises(ChangeOrderStateError):
            reject_change_order(change_order.id)

    def test_approved_deltas_merge_in_version_order(self):
        first = create_change_order(
            self.job.id, summary="Heavier paper", changes={"paper": "100# gloss"}
        )
        second = create_change_order(
            self.job.id,
            summary="Single-sided",
            changes={"colors": "4/0", "finish": "matte"},
        )
        submit_change_order(first.id)
        submit_change_order(second.id)
        approve_change_order(second.id, actor=self.finance)
        approve_change_order(first.id, actor=self.finance)

        job = Job.objects.get(id=self.job.id)
        self.assertEqual(job.effective_change_order_version, 2)
        self.assertEqual(job.specs, {"paper": "80# gloss", "colors": "4/4"})

        state = effective_job_state(self.job.id)
        self.assertEqual(
            state.effective_specs,
            {"paper": "100# gloss", "colors": "4/0", "finish": "matte"},
        )
        self.assertEqual(state.base_specs, {"paper": "80# gloss", "colors": "4/4"})
        self.assertEqual(state.latest_approved.id, second.id)
        self.assertEqual(state.applied_count, 2)
        self.assertEqual(ChangeOrder.objects.get(id=first.id).approved_by, self.finance)

    def test_rejected_orders_do_not_apply(self):
        change_order = create_change_order(
            self.job.id, summary="Heavier paper", changes={"paper": "100# gloss"}
        )
        submit_change_order(change_order.id)
        reject_change_order(change_order.id, reason="Customer withdrew the request")

        rejected = ChangeOrder.objects.get(id=change_order.id)
        self.assertEqual(rejected.status, ChangeOrderStatus.REJECTED)
        self.assertEqual(rejected.rejection_reason, "Customer withdrew the request")
        state = effective_job_state(self.job.id)
        self.assertEqual(state.effective_specs["paper"], "80# gloss")
        self.assertIsNone(state.latest_approved)
        self.assertIsNone(Job.objects.get(id=self.job.id).effective_change_order_version)

    def test_invoiced_job_is_amended_through_change_orders(self):
        mark_invoice_generated(self.job.id)
        with self.assertRaises(FinancialLockError):
            update_job(self.job.id, {"specs": {"paper": "100# gloss"}})

        self._approved("Heavier paper", {"paper": "100# gloss"})

        self.assertEqual(effective_job_state(self.job.id).effective_specs["paper"], "100# gloss")
        self.assertEqual(Job.objects.get(id=self.job.id).specs["paper"], "80# gloss")


class ChangeOrderApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.production = User.objects.create_user(username="prod", password="pass12345")
        self.finance = User.objects.create_user(
            username="finance", password="pass12345", role=User.Roles.FINANCE
        )
        self.vendor = Vendor.objects.create(name="Alpha Print", vendor_code="4198")
        self.job = create_job(title="Brochure run", specs={"paper": "80# gloss"})

    def test_change_order_workflow(self):
        self.client.force_authenticate(user=self.production)
        response = self.client.post(
            f"/api/jobs/{self.job.id}/change-orders/",
            {
                "summary": "Heavier paper",
                "changes": {"paper": "100# gloss"},
                "affects_vendors": [self.vendor.id],
                "requires_reprice": True,
            },
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["change_order_no"], "FJ-3001-CO1")
        change_order_id = response.data["id"]

        response = self.client.get(f"/api/jobs/{self.job.id}/change-orders/")
        self.assertEqual([item["id"] for item in response.data], [change_order_id])

        response = self.client.patch(
            f"/api/change-orders/{change_order_id}/",
            {"summary": "Heavier paper, 100# gloss"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["summary"], "Heavier paper, 100# gloss")

        response = self.client.post(f"/api/change-orders/{change_order_id}/submit/")
        self.assertEqual(response.data["status"], ChangeOrderStatus.PENDING_APPROVAL)

        response = self.client.post(f"/api/change-orders/{change_order_id}/approve/")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.finance)
        response = self.client.post(f"/api/change-orders/{change_order_id}/approve/")
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], ChangeOrderStatus.APPROVED)

        response = self.client.get(f"/api/jobs/{self.job.id}/effective-state/")
        self.assertEqual(response.data["effective_change_order_version"], 1)
        self.assertEqual(response.data["effective_specs"], {"paper": "100# gloss"})
        self.assertEqual(response.data["latest_approved"]["change_order_no"], "FJ-3001-CO1")

        response = self.client.patch(
            f"/api/change-orders/{change_order_id}/", {"summary": "Late edit"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "change_order_state")

        response = self.client.delete(f"/api/change-orders/{change_order_id}/")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_vendor_is_rejected(self):
        self.client.force_authenticate(user=self.production)
        response = self.client.post(
            f"/api/jobs/{self.job.id}/change-orders/",
            {"summary": "Move to another shop", "affects_vendors": [999999]},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("affects_vendors", response.data)
        self.assertFalse(ChangeOrder.objects.exists())

    def test_reject_with_reason(self):
        change_order = create_change_order(self.job.id, summary="Heavier paper")
        submit_change_order(change_order.id)
        self.client.force_authenticate(user=self.finance)

        response = self.client.post(
            f"/api/change-orders/{change_order.id}/reject/",
            {"rejection_reason": "Over budget"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], ChangeOrderStatus.REJECTED)
        self.assertEqual(response.data["rejection_reason"], "Over budget")
