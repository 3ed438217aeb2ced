from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils.translation import gettext_lazy as _


class User(AbstractUser):
    class Roles(models.TextChoices):
        BROKER_ADMIN = "broker_admin", _("Broker Admin")
        FINANCE = "finance", _("Finance")
        PRODUCTION = "production", _("Production")

    role = models.CharField(
        max_length=20,
        choices=Roles.choices,
        default=Roles.PRODUCTION,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def can_manage_finances(self) -> bool:
        return self.role in {self.Roles.BROKER_ADMIN, self.Roles.FINANCE}
