"""Administrative transitions: status changes, worker assignment, deletion."""
from __future__ import annotations

from flask import current_app, has_request_context, request
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import COMPLAINT_STATUSES, AuditLog, Complaint, ComplaintStatusHistory
from utils.evidence import EvidenceStoreError, get_evidence_store
from utils.notifications import EmailDeliveryError, send_status_notification
from utils.rewards import RESOLUTION_POINTS, credit_resolution


class ComplaintUpdateError(Exception):
    """Raised when an administrative update is rejected or cannot be saved."""


def _audit(actor, action_type: str, complaint: Complaint) -> AuditLog:
    return AuditLog(
        user_id=getattr(actor, "id", None),
        action_type=action_type,
        ip_address=request.remote_addr if has_request_context() else None,
        user_agent=request.headers.get("User-Agent", "unknown") if has_request_context() else None,
        context_entity=complaint.complaint_id,
    )


def _commit(message: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception(message)
        raise ComplaintUpdateError("Unable to update complaint. Please retry.") from exc


def change_status(
    complaint: Complaint,
    new_status: str,
    resolution: str | None = None,
    actor=None,
    remarks: str | None = None,
) -> Complaint:
    """Move a complaint to any status; resolution text is kept only for ``resolved``."""
    if new_status not in COMPLAINT_STATUSES:
        raise ComplaintUpdateError(f"Invalid status: {new_status}")

    previous_status = complaint.status
    complaint.status = new_status
    resolution_text = (resolution or "").strip()
    if new_status == "resolved" and resolution_text:
        complaint.resolution = resolution_text

    db.session.add(
        ComplaintStatusHistory(
            complaint=complaint,
            previous_status=previous_status,
            new_status=new_status,
            remarks=(remarks or "").strip() or None,
            changed_by=getattr(actor, "id", None),
        )
    )
    db.session.add(_audit(actor, "COMPLAINT_STATUS_CHANGED", complaint))
    _commit("Database error while updating complaint status")

    current_app.logger.info(
        "Complaint status changed",
        extra={
            "tracking_id": complaint.complaint_id,
            "previous_status": previous_status,
            "new_status": new_status,
            "actor": getattr(actor, "id", None),
        },
    )

    points_awarded = None
    if new_status == "resolved" and previous_status != "resolved" and complaint.reporter_id:
        try:
            credit_resolution(complaint.reporter_id)
            points_awarded = RESOLUTION_POINTS
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.warning(
                "Resolution reward could not be credited",
                extra={"tracking_id": complaint.complaint_id, "user_id": complaint.reporter_id},
            )

    try:
        send_status_notification(complaint, previous_status, points_awarded)
    except EmailDeliveryError as exc:
        current_app.logger.warning(
            "Status notification failed",
            extra={"tracking_id": complaint.complaint_id, "error": str(exc)},
        )

    return complaint


def assign_worker(complaint: Complaint, worker_name: str | None, department: str | None = None, actor=None) -> Complaint:
    name = (worker_name or "").strip()
    if not name:
        raise ComplaintUpdateError("Worker name is required")
    complaint.assigned_to = name
    if department is not None:
        complaint.department = department.strip() or None
    db.session.add(_audit(actor, "COMPLAINT_ASSIGNED", complaint))
    _commit("Database error while assigning complaint")
    current_app.logger.info(
        "Complaint assigned",
        extra={"tracking_id": complaint.complaint_id, "assigned_to": name},
    )
    return complaint


def delete_complaint(complaint: Complaint, actor=None) -> None:
    tracking_id = complaint.complaint_id
    evidence_urls = list(complaint.evidence or [])
    db.session.add(_audit(actor, "COMPLAINT_DELETED", complaint))
    db.session.delete(complaint)
    _commit("Database error while deleting complaint")
    current_app.logger.info("Complaint deleted", extra={"tracking_id": tracking_id, "actor": getattr(actor, "id", None)})

    store = get_evidence_store()
    for url in evidence_urls:
        path = url[len(store.base_url) + 1 :] if url.startswith(store.base_url + "/") else None
        if not path:
            continue
        try:
            store.delete(path)
        except EvidenceStoreError:
            current_app.logger.warning("Evidence file left behind", extra={"tracking_id": tracking_id, "path": path})
