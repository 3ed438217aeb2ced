# pyright: reportIncompatibleMethodOverride=false
from rest_framework.permissions import BasePermission


class IsBrokerAdmin(BasePermission):
    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.role == "broker_admin"


class IsFinanceOrBrokerAdmin(BasePermission):
    def has_permission(self, request, view) -> bool:  # type: ignore
        return request.user.is_authenticated and request.user.role in ["finance", "broker_admin"]


class IsStaffRole(BasePermission):
    def has_permission(self, request, view) -> bool:  # type: ignore
        return request.user.is_authenticated and request.user.role in [
            "broker_admin",
            "finance",
            "production",
        ]
