from unittest.mock import patch

from django.test import TestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient, APIRequestFactory

from .email_utils import send_resend_email
from .models import User
from .permissions import IsFinanceOrBrokerAdmin, IsStaffRole


class UserModelTests(TestCase):
    def test_default_role_is_production(self):
        user = User.objects.create_user(username="testuser", password="pass12345")
        self.assertEqual(user.role, User.Roles.PRODUCTION)
        self.assertFalse(user.can_manage_finances)

    def test_finance_and_admin_can_manage_finances(self):
        finance = User.objects.create_user(
            username="finance", password="pass12345", role=User.Roles.FINANCE
        )
        admin = User.objects.create_user(
            username="admin", password="pass12345", role=User.Roles.BROKER_ADMIN
        )
        self.assertTrue(finance.can_manage_finances)
        self.assertTrue(admin.can_manage_finances)


class PermissionTests(TestCase):
    def setUp(self):
        self.factory = APIRequestFactory()

    def _request_for(self, user):
        request = self.factory.get("/")
        request.user = user
        return request

    def test_finance_permission_rejects_production(self):
        production = User.objects.create_user(username="prod", password="pass12345")
        finance = User.objects.create_user(
            username="fin", password="pass12345", role=User.Roles.FINANCE
        )
        permission = IsFinanceOrBrokerAdmin()
        self.assertFalse(permission.has_permission(self._request_for(production), None))
        self.assertTrue(permission.has_permission(self._request_for(finance), None))

    def test_staff_role_accepts_every_role(self):
        permission = IsStaffRole()
        for role in User.Roles.values:
            user = User.objects.create_user(username=f"user-{role}", password="pass12345", role=role)
            self.assertTrue(permission.has_permission(self._request_for(user), None))


class MeApiTests(TestCase):
    def test_me_returns_current_user(self):
        user = User.objects.create_user(
            username="me", password="pass12345", role=User.Roles.FINANCE
        )
        client = APIClient()
        client.force_authenticate(user=user)
        response = client.get("/api/auth/me/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["role"], "finance")

    def test_me_requires_authentication(self):
        response = APIClient().get("/api/auth/me/")
        self.assertIn(
            response.status_code,
            {status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN},
        )


class ResendEmailTests(TestCase):
    def test_missing_api_key_is_reported(self):
        ok, reason = send_resend_email("vendor@example.com", "Subject", "<p>x</p>", "x")
        self.assertFalse(ok)
        self.assertEqual(reason, "missing_resend_api_key")

    @override_settings(RESEND_API_KEY="re_test")
    @patch("accounts.email_utils.resend.Emails.send")
    def test_sends_deduplicated_recipients(self, send_mock):
        ok, reason = send_resend_email(
            ["a@example.com", "a@example.com", ""], "Subject", "<p>x</p>", "x"
        )
        self.assertTrue(ok)
        self.assertEqual(reason, "")
        payload = send_mock.call_args.args[0]
        self.assertEqual(payload["to"], ["a@example.com"])

    @override_settings(RESEND_API_KEY="re_test")
    @patch("accounts.email_utils.resend.Emails.send", side_effect=RuntimeError("boom"))
    def test_provider_error_is_returned_not_raised(self, _send_mock):
        ok, reason = send_resend_email("a@example.com", "Subject", "<p>x</p>", "x")
        self.assertFalse(ok)
        self.assertEqual(reason, "boom")
