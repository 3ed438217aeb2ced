from django.db import models
from django.utils.translation import gettext_lazy as _


class CompanyId(models.TextChoices):
    """Fixed parties of the brokerage. Vendors are rows in ``vendors.Vendor``."""

    BUYER = "buyer", _("Buyer")
    PARTNER = "partner", _("Routing Partner")
    PRODUCER = "producer", _("Partner Producer")


class RoutingType(models.TextChoices):
    PARTNER_MEDIATED = "partner_mediated", _("Partner Mediated")
    DIRECT = "direct", _("Direct")
    THIRD_PARTY_VENDOR = "third_party_vendor", _("Third Party Vendor")


class Pathway(models.TextChoices):
    P1 = "P1", _("P1 - Partner mediated")
    P2 = "P2", _("P2 - Single vendor")
    P3 = "P3", _("P3 - Multiple vendors")


class PaperSource(models.TextChoices):
    PARTNER = "partner", _("Partner")
    VENDOR = "vendor", _("Vendor")
    CUSTOMER = "customer", _("Customer")


class JobMetaType(models.TextChoices):
    PRINT = "print", _("Print")
    MAILING = "mailing", _("Mailing")


class MailFormat(models.TextChoices):
    SELF_MAILER = "self_mailer", _("Self-Mailer")
    POSTCARD = "postcard", _("Postcard")
    ENVELOPE = "envelope", _("Envelope")


class JobType(models.TextChoices):
    FLAT = "flat", _("Flat")
    FOLDED = "folded", _("Folded")
    BOOKLET_SELF_COVER = "booklet_self_cover", _("Booklet (self cover)")
    BOOKLET_PLUS_COVER = "booklet_plus_cover", _("Booklet (plus cover)")


class MatchType(models.TextChoices):
    TWO_WAY = "2-way", _("2-Way")
    THREE_WAY = "3-way", _("3-Way")


class ArtworkStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    RECEIVED = "received", _("Received")


class DataFilesStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    IN_ARTWORK = "in_artwork", _("Included in artwork")
    SEPARATE_FILE = "separate_file", _("Separate file")
    NA = "na", _("Not applicable")


class MailingStatus(models.TextChoices):
    INCOMPLETE = "incomplete", _("Incomplete")
    COMPLETE = "complete", _("Complete")
    NA = "na", _("Not applicable")


class SuppliedMaterialsStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    RECEIVED = "received", _("Received")
    NA = "na", _("Not applicable")


class VersionsStatus(models.TextChoices):
    INCOMPLETE = "incomplete", _("Incomplete")
    COMPLETE = "complete", _("Complete")
    NA = "na", _("Not applicable")


class ComponentArtworkStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    RECEIVED = "received", _("Received")
    NA = "na", _("Not applicable")


class ComponentMaterialStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    IN_TRANSIT = "in_transit", _("In transit")
    ARRIVED = "arrived", _("Arrived")
    NA = "na", _("Not applicable")


class ReadinessStatus(models.TextChoices):
    INCOMPLETE = "incomplete", _("Incomplete")
    READY = "ready", _("Ready")
    SENT = "sent", _("Sent")


class PurchaseOrderStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    ISSUED = "issued", _("Issued")
    PAID = "paid", _("Paid")
    CANCELLED = "cancelled", _("Cancelled")
    REJECTED = "rejected", _("Rejected")


class PurchaseOrderKind(models.TextChoices):
    VENDOR = "vendor", _("Buyer to vendor")
    PARTNER = "partner", _("Buyer to routing partner")
    INTERNAL = "internal", _("Partner to producer")


INACTIVE_PO_STATUSES = frozenset(
    {PurchaseOrderStatus.CANCELLED, PurchaseOrderStatus.REJECTED}
)

# Concern name -> (job field, allowed values, note field).
QC_CONCERNS = {
    "artwork": ("qc_artwork", ArtworkStatus, "qc_artwork_note"),
    "data_files": ("qc_data_files", DataFilesStatus, "qc_data_files_note"),
    "mailing": ("qc_mailing", MailingStatus, "qc_mailing_note"),
    "supplied_materials": (
        "qc_supplied_materials",
        SuppliedMaterialsStatus,
        "qc_supplied_materials_note",
    ),
    "versions": ("qc_versions", VersionsStatus, "qc_versions_note"),
}

# Fields that reject writes once an invoice has been generated.
FINANCIALLY_LOCKED_FIELDS = ("sell_price", "quantity", "specs")


class ChangeOrderStatus(models.TextChoices):
    DRAFT = "draft", _("Draft")
    PENDING_APPROVAL = "pending_approval", _("Pending approval")
    APPROVED = "approved", _("Approved")
    REJECTED = "rejected", _("Rejected")
