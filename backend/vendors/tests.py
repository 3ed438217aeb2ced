from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from accounts.models import User
from jobs.constants import PurchaseOrderKind
from jobs.identifiers import finalize_execution_id
from jobs.services import create_job, create_purchase_order

from .models import Vendor, normalize_vendor_code


class VendorModelTests(TestCase):
    def test_vendor_code_is_normalized(self):
        vendor = Vendor.objects.create(name="Alpha Print", vendor_code="  ab12 ")
        self.assertEqual(vendor.vendor_code, "AB12")
        self.assertIsNone(normalize_vendor_code("   "))

    def test_blank_codes_do_not_collide(self):
        Vendor.objects.create(name="First", vendor_code="")
        second = Vendor.objects.create(name="Second", vendor_code=None)
        self.assertIsNone(second.vendor_code)
        self.assertEqual(Vendor.objects.filter(vendor_code__isnull=True).count(), 2)

    def test_vendor_code_rejects_punctuation(self):
        vendor = Vendor(name="Dash Print", vendor_code="AB-12")
        with self.assertRaises(ValidationError):
            vendor.full_clean()


class VendorApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(
            username="admin", password="pass12345", role=User.Roles.BROKER_ADMIN
        )
        self.production = User.objects.create_user(username="prod", password="pass12345")

    def test_admin_can_create_vendor(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post(
            "/api/vendors/",
            {"name": "Alpha Print", "vendor_code": "4198", "is_mailing_fulfiller": True},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["vendor_code"], "4198")

    def test_production_can_read_but_not_write(self):
        Vendor.objects.create(name="Alpha Print", vendor_code="4198")
        self.client.force_authenticate(user=self.production)
        response = self.client.get("/api/vendors/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

        response = self.client.post("/api/vendors/", {"name": "Bravo"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_pages_only_on_request(self):
        for index in range(3):
            Vendor.objects.create(name=f"Vendor {index}")
        self.client.force_authenticate(user=self.production)

        response = self.client.get("/api/vendors/", {"page_size": 2})

        self.assertEqual(response.data["count"], 3)
        self.assertEqual(len(response.data["results"]), 2)
        self.assertIsNotNone(response.data["next"])

    def test_duplicate_code_is_rejected(self):
        Vendor.objects.create(name="Alpha Print", vendor_code="4198")
        self.client.force_authenticate(user=self.admin)
        response = self.client.post(
            "/api/vendors/", {"name": "Copycat", "vendor_code": " 4198 "}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("vendor_code", response.data)

    def test_code_is_frozen_once_used_in_an_execution_id(self):
        vendor = Vendor.objects.create(name="Alpha Print", vendor_code="4198")
        job = create_job(title="Brochure run", sell_price=Decimal("1000.00"))
        purchase_order = create_purchase_order(
            job.id,
            kind=PurchaseOrderKind.VENDOR,
            target_vendor=vendor,
            buy_cost=Decimal("100.00"),
        )
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(
            f"/api/vendors/{vendor.id}/", {"vendor_code": "5000"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        finalize_execution_id(purchase_order.id)
        for new_code in ("6000", ""):
            response = self.client.patch(
                f"/api/vendors/{vendor.id}/", {"vendor_code": new_code}, format="json"
            )
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        vendor.refresh_from_db()
        self.assertEqual(vendor.vendor_code, "5000")

    def test_vendor_with_orders_cannot_be_deleted(self):
        vendor = Vendor.objects.create(name="Alpha Print", vendor_code="4198")
        job = create_job(title="Brochure run")
        create_purchase_order(job.id, kind=PurchaseOrderKind.VENDOR, target_vendor=vendor)
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(f"/api/vendors/{vendor.id}/")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertTrue(Vendor.objects.filter(id=vendor.id).exists())
