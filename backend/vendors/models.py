from django.core.exceptions import ValidationError
from django.core.validators import RegexValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

vendor_code_validator = RegexValidator(
    regex=r"^[A-Z0-9]+$",
    message=_("Vendor code may only contain letters and digits."),
)


def normalize_vendor_code(value) -> str | None:
    normalized = str(value or "").strip().upper()
    return normalized or None


class Vendor(models.Model):
    name = models.CharField(max_length=255)
    # Required before any execution id can reference this vendor.
    vendor_code = models.CharField(
        max_length=20,
        unique=True,
        null=True,
        blank=True,
        validators=[vendor_code_validator],
    )
    email = models.EmailField(blank=True)
    contact_name = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=50, blank=True)
    is_mailing_fulfiller = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["is_active", "name"], name="vendor_active_name_idx"),
        ]

    def __str__(self):
        if self.vendor_code:
            return f"{self.name} ({self.vendor_code})"
        return self.name

    def clean(self):
        self.vendor_code = normalize_vendor_code(self.vendor_code)
        if self.vendor_code:
            vendor_code_validator(self.vendor_code)
            clash = Vendor.objects.filter(vendor_code=self.vendor_code).exclude(pk=self.pk)
            if clash.exists():
                raise ValidationError({"vendor_code": _("Vendor code is already in use.")})

    def save(self, *args, **kwargs):
        self.vendor_code = normalize_vendor_code(self.vendor_code)
        super().save(*args, **kwargs)
