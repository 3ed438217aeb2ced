from datetime import date
from types import SimpleNamespace

from django.test import SimpleTestCase, TestCase

from .constants import (
    ArtworkStatus,
    ComponentMaterialStatus,
    DataFilesStatus,
    MailFormat,
    MailingStatus,
    ReadinessStatus,
    SuppliedMaterialsStatus,
    VersionsStatus,
)
from .exceptions import ComponentNotFoundError, InvalidQcFlagError
from .mailing import detect_mailing_type, is_mailing_job
from .models import Job, JobAuditLog
from .readiness import (
    add_component,
    calculate_readiness,
    determine_initial_qc_flags,
    evaluate_readiness,
    mark_job_sent,
    set_qc_flag,
    update_component_status,
)
from .services import create_job


def _job(**overrides):
    values = {
        "readiness_status": ReadinessStatus.INCOMPLETE,
        "qc_artwork": ArtworkStatus.RECEIVED,
        "qc_data_files": DataFilesStatus.NA,
        "qc_mailing": MailingStatus.NA,
        "qc_supplied_materials": SuppliedMaterialsStatus.NA,
        "qc_versions": VersionsStatus.NA,
        "mailing_vendor_id": None,
        "match_type": None,
        "mail_date": None,
        "in_homes_date": None,
        "specs": {},
        "notes": "",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class CalculateReadinessTests(SimpleTestCase):
    def test_print_job_with_artwork_is_ready(self):
        result = calculate_readiness(_job())
        self.assertEqual(result.status, ReadinessStatus.READY)
        self.assertFalse(result.is_mailing)

    def test_pending_artwork_blocks(self):
        result = calculate_readiness(_job(qc_artwork=ArtworkStatus.PENDING))
        self.assertEqual(result.status, ReadinessStatus.INCOMPLETE)
        self.assertEqual(result.blockers, ["Artwork not received"])

    def test_mailing_concerns_only_apply_to_mailing_jobs(self):
        print_job = _job(qc_data_files=DataFilesStatus.PENDING, qc_mailing=MailingStatus.INCOMPLETE)
        self.assertEqual(calculate_readiness(print_job).status, ReadinessStatus.READY)

        mailing_job = _job(
            notes="USPS presort, drop date TBD",
            qc_data_files=DataFilesStatus.PENDING,
            qc_mailing=MailingStatus.INCOMPLETE,
        )
        result = calculate_readiness(mailing_job)
        self.assertTrue(result.is_mailing)
        self.assertEqual(
            result.blockers,
            ["Mail date not set", "Data files not received", "Mailing information incomplete"],
        )
        self.assertEqual(result.warnings, ["Match type not specified (2-way/3-way)"])

    def test_versions_incomplete_is_only_a_warning(self):
        result = calculate_readiness(_job(qc_versions=VersionsStatus.INCOMPLETE))
        self.assertEqual(result.status, ReadinessStatus.READY)
        self.assertEqual(result.warnings, ["Version details incomplete"])

    def test_component_statuses(self):
        components = [
            SimpleNamespace(name="Reply card", artwork_status="pending", material_status="na"),
            SimpleNamespace(name="Envelope", artwork_status="received", material_status="in_transit"),
            SimpleNamespace(name="Insert", artwork_status="na", material_status="pending"),
        ]
        result = calculate_readiness(_job(), components)
        self.assertEqual(
            result.blockers, ["Reply card: Artwork pending", "Insert: Material pending"]
        )
        self.assertEqual(result.warnings, ["Envelope: Material in transit"])

    def test_sent_is_terminal(self):
        result = calculate_readiness(
            _job(readiness_status=ReadinessStatus.SENT, qc_artwork=ArtworkStatus.PENDING)
        )
        self.assertEqual(result.status, ReadinessStatus.SENT)
        self.assertEqual(result.blockers, [])


class InitialQcFlagTests(SimpleTestCase):
    def test_flags_follow_what_came_with_the_job(self):
        flags = determine_initial_qc_flags(
            _job(
                mail_date=date(2026, 11, 2),
                match_type="2-way",
                specs={
                    "artwork_url": "https://files.example.test/art.pdf",
                    "data_included_with_artwork": True,
                    "components": [{"name": "Reply card"}],
                    "versions": [{"name": "A", "quantity": 500}, {"name": "B"}],
                },
            )
        )
        self.assertEqual(
            flags,
            {
                "qc_artwork": ArtworkStatus.RECEIVED,
                "qc_data_files": DataFilesStatus.IN_ARTWORK,
                "qc_mailing": MailingStatus.COMPLETE,
                "qc_supplied_materials": SuppliedMaterialsStatus.PENDING,
                "qc_versions": VersionsStatus.INCOMPLETE,
            },
        )

    def test_print_job_defaults(self):
        flags = determine_initial_qc_flags(_job())
        self.assertEqual(flags["qc_artwork"], ArtworkStatus.PENDING)
        self.assertEqual(flags["qc_data_files"], DataFilesStatus.NA)
        self.assertEqual(flags["qc_mailing"], MailingStatus.NA)

    def test_data_override_sent(self):
        flags = determine_initial_qc_flags(
            _job(in_homes_date=date(2026, 11, 9), specs={"data_override": "SENT"})
        )
        self.assertEqual(flags["qc_data_files"], DataFilesStatus.SEPARATE_FILE)
        self.assertEqual(flags["qc_mailing"], MailingStatus.INCOMPLETE)


class MailingDetectionTests(SimpleTestCase):
    def test_any_single_signal_makes_a_mailing(self):
        self.assertTrue(is_mailing_job(_job(match_type="3-way")))
        self.assertTrue(is_mailing_job(_job(mailing_vendor_id=7)))
        self.assertTrue(is_mailing_job(_job(specs={"timeline": {"in_homes_date": "2026-11-09"}})))
        self.assertTrue(is_mailing_job(_job(specs={"mailing": {"is_direct_mail": True}})))
        self.assertFalse(is_mailing_job(_job(notes="Rush job, matte finish")))

    def test_postcard_detection(self):
        detection = detect_mailing_type(
            {"title": "6x11 postcard", "mail_date": "2026-11-02", "match_type": "2-way"}
        )
        self.assertTrue(detection.is_mailing)
        self.assertEqual(detection.confidence, "high")
        self.assertEqual(detection.suggested_format, MailFormat.POSTCARD)

    def test_keywords_alone_give_medium_confidence(self):
        detection = detect_mailing_type({"notes": "Bulk mail with postage paid indicia"})
        self.assertTrue(detection.is_mailing)
        self.assertEqual(detection.confidence, "medium")
        self.assertEqual(detection.suggested_format, MailFormat.SELF_MAILER)

    def test_plain_print_job(self):
        detection = detect_mailing_type({"title": "Trade show banner"})
        self.assertFalse(detection.is_mailing)
        self.assertIsNone(detection.suggested_format)
        self.assertEqual(detection.confidence, "low")


class ReadinessServiceTests(TestCase):
    def setUp(self):
        self.job = create_job(title="Catalog")

    def test_new_job_without_artwork_is_incomplete(self):
        self.assertEqual(self.job.readiness_status, ReadinessStatus.INCOMPLETE)
        self.assertIsNotNone(self.job.readiness_calculated_at)

    def test_qc_flag_moves_job_to_ready(self):
        result = set_qc_flag(self.job.id, "artwork", ArtworkStatus.RECEIVED, note="Proof approved")
        self.assertEqual(result.status, ReadinessStatus.READY)
        job = Job.objects.get(id=self.job.id)
        self.assertEqual(job.readiness_status, ReadinessStatus.READY)
        self.assertEqual(job.qc_artwork_note, "Proof approved")
        self.assertTrue(JobAuditLog.objects.filter(action="job.qc_flag_set", job=job).exists())

    def test_invalid_flags_are_rejected(self):
        with self.assertRaises(InvalidQcFlagError):
            set_qc_flag(self.job.id, "binding", "done")
        with self.assertRaises(InvalidQcFlagError):
            set_qc_flag(self.job.id, "artwork", "approved")

    def test_sent_cannot_be_left(self):
        set_qc_flag(self.job.id, "artwork", ArtworkStatus.RECEIVED)
        mark_job_sent(self.job.id)

        result = set_qc_flag(self.job.id, "artwork", ArtworkStatus.PENDING)

        self.assertEqual(result.status, ReadinessStatus.SENT)
        self.assertEqual(evaluate_readiness(self.job.id).status, ReadinessStatus.SENT)
        self.assertEqual(Job.objects.get(id=self.job.id).readiness_status, ReadinessStatus.SENT)
        self.assertEqual(JobAuditLog.objects.filter(action="job.sent").count(), 1)

    def test_components_feed_readiness(self):
        set_qc_flag(self.job.id, "artwork", ArtworkStatus.RECEIVED)
        component = add_component(
            self.job.id,
            name="Reply envelope",
            artwork_status="received",
            material_status=ComponentMaterialStatus.PENDING,
        )
        self.assertEqual(
            Job.objects.get(id=self.job.id).readiness_status, ReadinessStatus.INCOMPLETE
        )

        result = update_component_status(
            component.id, material_status=ComponentMaterialStatus.IN_TRANSIT
        )
        self.assertEqual(result.status, ReadinessStatus.READY)
        self.assertEqual(result.warnings, ["Reply envelope: Material in transit"])

    def test_unknown_component(self):
        with self.assertRaises(ComponentNotFoundError):
            update_component_status(999999, artwork_status="received")
