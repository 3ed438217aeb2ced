from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Iterable

from django.db import transaction
from django.utils import timezone

from .audit import record_job_event
from .constants import (
    QC_CONCERNS,
    ArtworkStatus,
    ComponentArtworkStatus,
    ComponentMaterialStatus,
    DataFilesStatus,
    MailingStatus,
    ReadinessStatus,
    SuppliedMaterialsStatus,
    VersionsStatus,
)
from .exceptions import ComponentNotFoundError, InvalidQcFlagError
from .locks import lock_job
from .mailing import is_mailing_job
from .models import Job, JobComponent

logger = logging.getLogger("printbroker.readiness")


@dataclass
class ReadinessResult:
    status: str
    blockers: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    is_mailing: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "blockers": list(self.blockers),
            "warnings": list(self.warnings),
            "is_mailing": self.is_mailing,
        }


def calculate_readiness(job, components: Iterable[Any] = ()) -> ReadinessResult:
    """Classify every QC concern as a blocker or a warning.

    SENT is terminal: once there, flags are no longer looked at.
    """
    if job.readiness_status == ReadinessStatus.SENT:
        return ReadinessResult(status=ReadinessStatus.SENT)

    blockers: list[str] = []
    warnings: list[str] = []

    if job.qc_artwork == ArtworkStatus.PENDING:
        blockers.append("Artwork not received")

    mailing = is_mailing_job(job)
    if mailing:
        if not job.mail_date:
            blockers.append("Mail date not set")
        if not job.match_type:
            warnings.append("Match type not specified (2-way/3-way)")
        if job.qc_data_files == DataFilesStatus.PENDING:
            blockers.append("Data files not received")
        if job.qc_mailing == MailingStatus.INCOMPLETE:
            blockers.append("Mailing information incomplete")

    if job.qc_supplied_materials == SuppliedMaterialsStatus.PENDING:
        blockers.append("Supplied materials not received")

    if job.qc_versions == VersionsStatus.INCOMPLETE:
        warnings.append("Version details incomplete")

    for component in components:
        if component.artwork_status == ComponentArtworkStatus.PENDING:
            blockers.append(f"{component.name}: Artwork pending")
        if component.material_status == ComponentMaterialStatus.PENDING:
            blockers.append(f"{component.name}: Material pending")
        elif component.material_status == ComponentMaterialStatus.IN_TRANSIT:
            warnings.append(f"{component.name}: Material in transit")

    status = ReadinessStatus.INCOMPLETE if blockers else ReadinessStatus.READY
    return ReadinessResult(status=status, blockers=blockers, warnings=warnings, is_mailing=mailing)


def has_multiple_versions(specs: Any) -> bool:
    versions = (specs or {}).get("versions") if isinstance(specs, dict) else None
    return isinstance(versions, list) and len(versions) > 1


def determine_initial_qc_flags(job) -> dict[str, str]:
    """Starting QC flags for a new job, derived from what came with it."""
    specs = job.specs if isinstance(job.specs, dict) else {}

    qc_artwork = ArtworkStatus.PENDING
    if specs.get("artwork_url") or specs.get("additional_links"):
        qc_artwork = ArtworkStatus.RECEIVED

    mailing = is_mailing_job(job)
    qc_data_files = DataFilesStatus.NA
    qc_mailing = MailingStatus.NA
    if mailing:
        data_override = str(specs.get("data_override") or "").lower()
        if specs.get("data_included_with_artwork"):
            qc_data_files = DataFilesStatus.IN_ARTWORK
        elif data_override == "sent":
            qc_data_files = DataFilesStatus.SEPARATE_FILE
        elif data_override == "na":
            qc_data_files = DataFilesStatus.NA
        else:
            qc_data_files = DataFilesStatus.PENDING
        if job.mail_date and job.match_type:
            qc_mailing = MailingStatus.COMPLETE
        else:
            qc_mailing = MailingStatus.INCOMPLETE

    qc_supplied_materials = SuppliedMaterialsStatus.NA
    if isinstance(specs.get("components"), list) and specs["components"]:
        qc_supplied_materials = SuppliedMaterialsStatus.PENDING

    qc_versions = VersionsStatus.NA
    if has_multiple_versions(specs):
        complete = all(
            isinstance(version, dict) and version.get("name") and version.get("quantity")
            for version in specs["versions"]
        )
        qc_versions = VersionsStatus.COMPLETE if complete else VersionsStatus.INCOMPLETE

    return {
        "qc_artwork": qc_artwork,
        "qc_data_files": qc_data_files,
        "qc_mailing": qc_mailing,
        "qc_supplied_materials": qc_supplied_materials,
        "qc_versions": qc_versions,
    }


def refresh_readiness(job: Job) -> ReadinessResult:
    """Evaluate and store readiness for a job row the caller has locked."""
    result = calculate_readiness(job, job.components.all())
    if result.status == ReadinessStatus.SENT:
        return result
    job.readiness_status = result.status
    job.readiness_calculated_at = timezone.now()
    job.save(update_fields=["readiness_status", "readiness_calculated_at", "updated_at"])
    return result


def evaluate_readiness(job_id: int) -> ReadinessResult:
    with transaction.atomic():
        job = lock_job(job_id)
        return refresh_readiness(job)


def set_qc_flag(
    job_id: int,
    concern: str,
    value: str,
    *,
    note: str | None = None,
    actor=None,
) -> ReadinessResult:
    if concern not in QC_CONCERNS:
        raise InvalidQcFlagError(
            f"Unknown QC concern '{concern}'.",
            extra={"allowed": sorted(QC_CONCERNS)},
        )
    field_name, choices, note_field = QC_CONCERNS[concern]
    if value not in choices.values:
        raise InvalidQcFlagError(
            f"'{value}' is not a valid value for {concern}.",
            extra={"allowed": list(choices.values)},
        )

    with transaction.atomic():
        job = lock_job(job_id)
        previous = getattr(job, field_name)
        setattr(job, field_name, value)
        update_fields = [field_name, "updated_at"]
        if note is not None:
            setattr(job, note_field, note)
            update_fields.append(note_field)
        job.save(update_fields=update_fields)
        record_job_event(
            action="job.qc_flag_set",
            message=f"QC {concern}: {previous} -> {value}.",
            job=job,
            actor=actor,
            metadata={"concern": concern, "previous": previous, "value": value},
        )
        return refresh_readiness(job)


def add_component(
    job_id: int,
    *,
    name: str,
    description: str = "",
    artwork_status: str = ComponentArtworkStatus.PENDING,
    material_status: str = ComponentMaterialStatus.NA,
    vendor=None,
    actor=None,
) -> JobComponent:
    with transaction.atomic():
        job = lock_job(job_id)
        component = JobComponent.objects.create(
            job=job,
            name=name,
            description=description,
            sort_order=job.components.count(),
            artwork_status=artwork_status,
            material_status=material_status,
            vendor=vendor,
        )
        record_job_event(
            action="job.component_added",
            message=f"Component '{name}' added.",
            job=job,
            actor=actor,
            metadata={"component_id": component.id},
        )
        refresh_readiness(job)
    return component


def update_component_status(
    component_id: int,
    *,
    artwork_status: str | None = None,
    material_status: str | None = None,
    actor=None,
) -> ReadinessResult:
    if artwork_status is not None and artwork_status not in ComponentArtworkStatus.values:
        raise InvalidQcFlagError(f"'{artwork_status}' is not a valid artwork status.")
    if material_status is not None and material_status not in ComponentMaterialStatus.values:
        raise InvalidQcFlagError(f"'{material_status}' is not a valid material status.")

    job_id = (
        JobComponent.objects.filter(id=component_id).values_list("job_id", flat=True).first()
    )
    if job_id is None:
        raise ComponentNotFoundError(extra={"component_id": component_id})

    with transaction.atomic():
        job = lock_job(job_id)
        component = JobComponent.objects.select_for_update().get(id=component_id)
        update_fields = ["updated_at"]
        if artwork_status is not None:
            component.artwork_status = artwork_status
            update_fields.append("artwork_status")
        if material_status is not None:
            component.material_status = material_status
            update_fields.append("material_status")
        component.save(update_fields=update_fields)
        record_job_event(
            action="job.component_updated",
            message=f"Component '{component.name}' status updated.",
            job=job,
            actor=actor,
            metadata={
                "component_id": component.id,
                "artwork_status": component.artwork_status,
                "material_status": component.material_status,
            },
        )
        return refresh_readiness(job)


def mark_job_sent(job_id: int, *, actor=None) -> ReadinessResult:
    """The only way into SENT; there is no way back out."""
    with transaction.atomic():
        job = lock_job(job_id)
        if job.readiness_status != ReadinessStatus.SENT:
            previous = job.readiness_status
            job.readiness_status = ReadinessStatus.SENT
            job.readiness_calculated_at = timezone.now()
            job.save(update_fields=["readiness_status", "readiness_calculated_at", "updated_at"])
            record_job_event(
                action="job.sent",
                message="Job marked as sent to vendor.",
                job=job,
                actor=actor,
                metadata={"previous_status": previous},
            )
            logger.info(f"Job {job.id} marked sent (was {previous})")
    return ReadinessResult(status=ReadinessStatus.SENT)
