"""Complaint intake: validation, AI enrichment, identifiers, evidence, and persistence.

The steps run in a fixed order. Validation never touches the network or the
evidence store, enrichment is best-effort, and only the final insert can fail
the submission.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Tuple

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import db
from models import COMPLAINT_TYPES, REPORTER_FIELDS, Complaint
from utils import ai_analysis
from utils.ai_analysis import AIAnalysis, AIAnalysisError, AIRateLimitedError
from utils.evidence import EvidenceFile, EvidenceStoreError, evidence_path, get_evidence_store
from utils.priority import derive_priority
from utils.rewards import credit_submission
from utils.tracking_ids import generate_tracking_id, is_anonymous_type

AI_BUSY_WARNING = "AI service busy, try again"
PERSISTENCE_MESSAGE = "Unable to save complaint. Please retry."


class ValidationError(Exception):
    """Draft rejected before any side effect."""


class PersistenceFailure(Exception):
    """The complaint row could not be written."""


@dataclass
class ComplaintDraft:
    type: str
    category: str | None
    title: str | None
    description: str | None
    latitude: float | None
    longitude: float | None
    address: str | None
    ward: str | None = None
    reporter_name: str | None = None
    reporter_email: str | None = None
    reporter_phone: str | None = None
    evidence: List[EvidenceFile] = field(default_factory=list)
    reporter_id: str | None = None


@dataclass
class IntakeResult:
    tracking_id: str
    analysis: AIAnalysis | None
    complaint: Complaint
    warnings: List[str] = field(default_factory=list)
    evidence_failures: int = 0

    def to_dict(self) -> dict:
        return {
            "success": True,
            "complaint_id": self.tracking_id,
            "ai_analysis": self.analysis.to_payload() if self.analysis else None,
            "warnings": list(self.warnings),
            "priority": self.complaint.priority,
            "status": self.complaint.status,
        }


def _blank(value) -> bool:
    return value is None or not str(value).strip()


def _valid_coordinate(value, bound: float) -> bool:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(number) and -bound <= number <= bound


def validate_draft(draft: ComplaintDraft) -> None:
    if draft.type not in COMPLAINT_TYPES:
        raise ValidationError("invalid complaint type")
    if _blank(draft.category):
        raise ValidationError("category required")
    if draft.latitude is None or draft.longitude is None or _blank(draft.address):
        raise ValidationError("location required")
    if not _valid_coordinate(draft.latitude, 90) or not _valid_coordinate(draft.longitude, 180):
        raise ValidationError("location required")
    if _blank(draft.title):
        raise ValidationError("title required")
    if _blank(draft.description):
        raise ValidationError("description required")


def request_enrichment(draft: ComplaintDraft) -> Tuple[AIAnalysis | None, List[str]]:
    """One analysis attempt; any failure degrades to no enrichment."""
    warnings: List[str] = []
    try:
        analysis = ai_analysis.analyze_complaint(
            draft.title.strip(),
            draft.description.strip(),
            draft.category.strip(),
            draft.type,
        )
    except AIRateLimitedError:
        current_app.logger.warning("AI analysis rate limited", extra={"category": draft.category})
        warnings.append(AI_BUSY_WARNING)
        return None, warnings
    except AIAnalysisError as exc:
        current_app.logger.warning(
            "AI analysis unavailable",
            extra={"category": draft.category, "error": str(exc)},
        )
        return None, warnings
    return analysis, warnings


def tracking_id_taken(tracking_id: str) -> bool:
    return db.session.query(Complaint.id).filter(Complaint.complaint_id == tracking_id).first() is not None


def allocate_tracking_id(complaint_type: str) -> str:
    attempts = max(1, int(current_app.config.get("TRACKING_ID_MAX_ATTEMPTS", 5)))
    candidate = generate_tracking_id(complaint_type)
    for _ in range(attempts - 1):
        if not tracking_id_taken(candidate):
            return candidate
        current_app.logger.info("Tracking id collision, regenerating", extra={"tracking_id": candidate})
        candidate = generate_tracking_id(complaint_type)
    # The unique constraint is the final arbiter for the last candidate.
    return candidate


def upload_evidence(tracking_id: str, files: List[EvidenceFile], store) -> Tuple[List[str], List[str], int]:
    """Upload sequentially; a failed file is logged and left out of the result."""
    urls: List[str] = []
    paths: List[str] = []
    failures = 0
    for item in files:
        path = evidence_path(tracking_id, item)
        try:
            url = store.upload(path, item.data, item.content_type)
        except EvidenceStoreError as exc:
            failures += 1
            current_app.logger.warning(
                "Evidence upload failed",
                extra={"tracking_id": tracking_id, "evidence_name": item.filename, "error": str(exc)},
            )
            continue
        urls.append(url)
        paths.append(path)
    return urls, paths, failures


def _discard_evidence(store, paths: List[str]) -> None:
    for path in paths:
        try:
            store.delete(path)
        except EvidenceStoreError:
            current_app.logger.warning("Orphaned evidence could not be removed", extra={"path": path})


def build_complaint_record(
    draft: ComplaintDraft,
    tracking_id: str,
    analysis: AIAnalysis | None,
    priority: str,
    evidence_urls: List[str],
) -> Complaint:
    is_civic = draft.type == "civic"
    complaint = Complaint(
        complaint_id=tracking_id,
        type=draft.type,
        category=draft.category.strip(),
        title=draft.title.strip(),
        description=draft.description.strip(),
        location_lat=float(draft.latitude),
        location_lng=float(draft.longitude),
        location_address=draft.address.strip(),
        location_ward=(draft.ward or "").strip() or None,
        status="pending",
        priority=priority,
        credibility_score=int(current_app.config.get("DEFAULT_CREDIBILITY_SCORE", 70)),
        evidence=evidence_urls or None,
        reporter_id=draft.reporter_id if is_civic else None,
        anonymous_id=tracking_id if is_anonymous_type(draft.type) else None,
    )
    # Reporter identity only ever lands on civic rows.
    for name in REPORTER_FIELDS:
        value = getattr(draft, name) if is_civic else None
        setattr(complaint, name, (value or "").strip() or None)
    if analysis is not None:
        complaint.credibility_score = int(round(analysis.credibility_score))
        complaint.ai_sentiment = analysis.sentiment
        complaint.ai_fake_probability = analysis.fake_probability
        complaint.ai_urgency_score = analysis.urgency_score
        complaint.ai_suggested_department = analysis.suggested_department
        complaint.ai_keywords = list(analysis.keywords)
        complaint.ai_summary = analysis.summary
    return complaint


def submit_complaint(draft: ComplaintDraft, store=None) -> IntakeResult:
    validate_draft(draft)

    analysis, warnings = request_enrichment(draft)
    tracking_id = allocate_tracking_id(draft.type)
    priority = derive_priority(analysis.urgency_score if analysis else None)

    store = store or get_evidence_store()
    evidence_urls, stored_paths, failures = upload_evidence(tracking_id, draft.evidence, store)

    complaint = build_complaint_record(draft, tracking_id, analysis, priority, evidence_urls)
    try:
        db.session.add(complaint)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        _discard_evidence(store, stored_paths)
        current_app.logger.error(
            "Complaint insert rejected by constraint",
            extra={"tracking_id": tracking_id, "error": str(exc.orig)},
        )
        raise PersistenceFailure(PERSISTENCE_MESSAGE) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        _discard_evidence(store, stored_paths)
        current_app.logger.exception("Database error while saving complaint")
        raise PersistenceFailure(PERSISTENCE_MESSAGE) from exc

    current_app.logger.info(
        "Complaint submitted",
        extra={
            "tracking_id": tracking_id,
            "type": complaint.type,
            "priority": priority,
            "ai_enriched": analysis is not None,
            "evidence_count": len(evidence_urls),
        },
    )

    if complaint.reporter_id and complaint.type == "civic":
        try:
            credit_submission(complaint.reporter_id)
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.warning(
                "Submission reward could not be credited",
                extra={"tracking_id": tracking_id, "user_id": complaint.reporter_id},
            )

    return IntakeResult(
        tracking_id=tracking_id,
        analysis=analysis,
        complaint=complaint,
        warnings=warnings,
        evidence_failures=failures,
    )
