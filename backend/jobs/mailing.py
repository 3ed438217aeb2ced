"""Mailing detection.

A job's mailing-ness is derived from its signals rather than stored. Specs
use snake_case keys: ``mailing`` (``is_direct_mail``, ``mail_date``,
``in_homes_date``, ``drop_location``, ``mail_class``, ``presort_type``),
``timeline`` (``mail_date``, ``in_homes_date``), ``match_type``,
``components`` and ``versions``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import re
from typing import Any

from .constants import MailFormat

NOTE_KEYWORDS_RE = re.compile(
    r"mail date|in-homes|in homes|usps|presort|drop date|mailing date|standard mail|first class mail",
    re.IGNORECASE,
)

MAILING_KEYWORDS = (
    "mail date",
    "in-homes",
    "in homes",
    "inhomes",
    "usps",
    "presort",
    "drop date",
    "mailing date",
    "standard mail",
    "first class mail",
    "first-class mail",
    "bulk mail",
    "direct mail",
    "saturation mail",
    "carrier route",
    "eddm",
    "postage",
)

SELF_MAILER_KEYWORDS = (
    "self-mailer",
    "self mailer",
    "selfmailer",
    "tri-fold",
    "trifold",
    "bi-fold",
    "bifold",
    "folded mailer",
    "saddle stitch mailer",
)

POSTCARD_KEYWORDS = (
    "postcard",
    "post card",
    "post-card",
    "4x6",
    "5x7",
    "6x9 postcard",
    "6x11",
    "8.5x11 postcard",
)

ENVELOPE_KEYWORDS = (
    "envelope",
    "#10 env",
    "window envelope",
    "insert",
    "letter",
    "business reply",
    "brc",
    "bre",
    "buck slip",
    "lift note",
)


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def specs_indicate_mailing(specs: Any) -> bool:
    specs = _as_dict(specs)
    if not specs:
        return False
    mailing = specs.get("mailing")
    if isinstance(mailing, dict):
        if mailing.get("is_direct_mail"):
            return True
        if mailing.get("mail_date") or mailing.get("in_homes_date"):
            return True
        if mailing.get("drop_location") or mailing.get("mail_class"):
            return True
    timeline = specs.get("timeline")
    if isinstance(timeline, dict) and (timeline.get("mail_date") or timeline.get("in_homes_date")):
        return True
    return bool(specs.get("match_type"))


def is_mailing_job(job) -> bool:
    """Any single signal is enough."""
    if getattr(job, "mailing_vendor_id", None):
        return True
    if getattr(job, "match_type", None):
        return True
    if getattr(job, "mail_date", None) or getattr(job, "in_homes_date", None):
        return True
    if specs_indicate_mailing(getattr(job, "specs", None)):
        return True
    notes = getattr(job, "notes", "") or ""
    return bool(NOTE_KEYWORDS_RE.search(notes))


@dataclass
class MailingDetection:
    is_mailing: bool
    suggested_format: str | None
    confidence: str
    signals: list[str] = field(default_factory=list)
    envelope_components: int | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "is_mailing": self.is_mailing,
            "suggested_format": self.suggested_format,
            "confidence": self.confidence,
            "signals": list(self.signals),
            "envelope_components": self.envelope_components,
        }


def _raise_confidence(current: str, floor: str) -> str:
    return floor if current == "low" else current


def detect_mailing_type(data: dict[str, Any]) -> MailingDetection:
    """Guess whether raw job input describes a mailing and which format.

    Used at creation to default ``job_meta_type`` and ``mail_format`` when
    the caller did not choose them.
    """
    specs = _as_dict(data.get("specs"))
    mailing = _as_dict(data.get("mailing") or specs.get("mailing"))
    timeline = _as_dict(data.get("timeline") or specs.get("timeline"))
    components = data.get("components") or specs.get("components") or []
    if not isinstance(components, list):
        components = []

    signals: list[str] = []
    confidence = "low"

    if mailing.get("is_direct_mail") is True:
        signals.append("Explicit direct mail flag set")
        confidence = "high"
    if data.get("mail_date") or mailing.get("mail_date") or timeline.get("mail_date"):
        signals.append("Mail date present")
        confidence = _raise_confidence(confidence, "high")
    if data.get("in_homes_date") or mailing.get("in_homes_date") or timeline.get("in_homes_date"):
        signals.append("In-homes date present")
        confidence = _raise_confidence(confidence, "high")
    match_type = data.get("match_type") or specs.get("match_type")
    if match_type:
        signals.append(f"Match type: {match_type}")
        confidence = _raise_confidence(confidence, "high")
    for key, label in (
        ("drop_location", "Drop location specified"),
        ("mail_class", "Mail class"),
        ("presort_type", "Presort type"),
    ):
        if mailing.get(key):
            signals.append(label if key == "drop_location" else f"{label}: {mailing[key]}")
            confidence = "high"

    text_to_search = " ".join(
        [
            str(data.get("notes") or ""),
            str(data.get("title") or ""),
            json.dumps(specs, default=str),
            json.dumps(components, default=str),
        ]
    ).lower()
    found_keywords = [keyword for keyword in MAILING_KEYWORDS if keyword in text_to_search]
    if found_keywords:
        shown = ", ".join(found_keywords[:3])
        signals.append(f"Keywords: {shown}{'...' if len(found_keywords) > 3 else ''}")
        if confidence == "low" and len(found_keywords) >= 2:
            confidence = "medium"

    def _component_text(component) -> tuple[str, str]:
        component = component if isinstance(component, dict) else {}
        return (
            str(component.get("name") or "").lower(),
            str(component.get("description") or "").lower(),
        )

    if any(
        "envelope" in name or "envelope" in description or "insert" in name or "letter" in name
        for name, description in map(_component_text, components)
    ):
        signals.append("Components include envelope/insert")
        confidence = _raise_confidence(confidence, "medium")

    is_mailing = bool(signals)
    suggested_format = None
    envelope_components = None
    if is_mailing:
        insert_count = sum(
            1
            for name, description in map(_component_text, components)
            if any(token in name for token in ("insert", "letter", "buck slip", "lift note"))
            or "insert" in description
            or "enclosure" in description
        )
        if insert_count or any(keyword in text_to_search for keyword in ENVELOPE_KEYWORDS):
            suggested_format = MailFormat.ENVELOPE
            # Outer envelope plus its inserts.
            envelope_components = max(1, insert_count + 1)
            signals.append(f"Suggested format: Envelope ({envelope_components} components)")
        elif any(keyword in text_to_search for keyword in POSTCARD_KEYWORDS):
            suggested_format = MailFormat.POSTCARD
            signals.append("Suggested format: Postcard")
        elif any(keyword in text_to_search for keyword in SELF_MAILER_KEYWORDS):
            suggested_format = MailFormat.SELF_MAILER
            signals.append("Suggested format: Self-Mailer")
        else:
            suggested_format = MailFormat.SELF_MAILER
            signals.append("Suggested format: Self-Mailer (default)")

    return MailingDetection(
        is_mailing=is_mailing,
        suggested_format=suggested_format,
        confidence=confidence if is_mailing else "low",
        signals=signals,
        envelope_components=envelope_components,
    )
