"""Complaint intake, AI analysis, tracking, and evidence blueprint."""
from flask import Blueprint, abort, current_app, jsonify, request, send_file
from flask_login import current_user
from flask_wtf import FlaskForm
from werkzeug.utils import secure_filename
from wtforms import SelectField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, Optional

from models import COMPLAINT_TYPES, ComplaintCategory
from utils.ai_analysis import AIAnalysisError, analyze_complaint
from utils.complaint_queries import complaint_query, find_by_tracking_id, map_points, parse_filters
from utils.decorators import permission_required
from utils.evidence import build_selection, evidence_from_upload, get_evidence_store
from utils.intake import ComplaintDraft, PersistenceFailure, ValidationError, submit_complaint, validate_draft

complaints_bp = Blueprint("complaints", __name__, url_prefix="/complaints")


class ComplaintSubmissionForm(FlaskForm):
    # Required fields are checked by the intake gate so its messages reach the client.
    complaint_type = SelectField(
        "Complaint Type",
        choices=[(c, c) for c in COMPLAINT_TYPES],
        validators=[DataRequired()],
        default="civic",
    )
    category = StringField("Category", validators=[Optional(), Length(max=100)])
    title = StringField("Title", validators=[Optional(), Length(max=255)])
    description = TextAreaField("Description", validators=[Optional(), Length(max=5000)])
    latitude = StringField("Latitude", validators=[Optional(), Length(max=32)])
    longitude = StringField("Longitude", validators=[Optional(), Length(max=32)])
    address = StringField("Address", validators=[Optional(), Length(max=500)])
    ward = StringField("Ward", validators=[Optional(), Length(max=120)])
    reporter_name = StringField("Name", validators=[Optional(), Length(max=150)])
    reporter_email = StringField("Email", validators=[Optional(), Length(max=255)])
    reporter_phone = StringField("Phone", validators=[Optional(), Length(max=32)])


class AnalysisRequestForm(FlaskForm):
    title = StringField("Title", validators=[DataRequired(), Length(max=255)])
    description = TextAreaField("Description", validators=[DataRequired(), Length(max=5000)])
    category = StringField("Category", validators=[DataRequired(), Length(max=100)])
    type = SelectField("Type", choices=[(c, c) for c in COMPLAINT_TYPES], validators=[DataRequired()])


def _coerce_coordinate(value):
    if value is None or str(value).strip() == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _draft_from_form(form: ComplaintSubmissionForm) -> ComplaintDraft:
    complaint_type = form.complaint_type.data
    reporter_id = None
    if complaint_type == "civic" and current_user.is_authenticated:
        reporter_id = current_user.id
    return ComplaintDraft(
        type=complaint_type,
        category=form.category.data,
        title=form.title.data,
        description=form.description.data,
        latitude=_coerce_coordinate(form.latitude.data),
        longitude=_coerce_coordinate(form.longitude.data),
        address=form.address.data,
        ward=form.ward.data,
        reporter_name=form.reporter_name.data,
        reporter_email=form.reporter_email.data,
        reporter_phone=form.reporter_phone.data,
        reporter_id=reporter_id,
    )


def _form_errors(form: FlaskForm) -> dict:
    return {name: list(errors) for name, errors in form.errors.items()}


@complaints_bp.route("/", methods=["POST"])
def create_complaint():
    form = ComplaintSubmissionForm()
    if not form.validate_on_submit():
        return jsonify({"error": "Invalid complaint submission.", "fields": _form_errors(form)}), 400

    draft = _draft_from_form(form)
    try:
        validate_draft(draft)
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400

    selection = build_selection()
    uploads = [f for f in request.files.getlist("evidence") if f and f.filename]
    rejections = selection.add(evidence_from_upload(upload) for upload in uploads)
    if rejections:
        current_app.logger.info("Evidence rejected at intake", extra={"count": len(rejections)})
        return jsonify({"error": "Some evidence files were rejected.", "evidence_errors": [r.to_dict() for r in rejections]}), 400
    draft.evidence = list(selection.accepted)

    try:
        result = submit_complaint(draft)
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except PersistenceFailure as exc:
        return jsonify({"success": False, "error": str(exc)}), 500

    return jsonify(result.to_dict()), 201


@complaints_bp.route("/evidence/validate", methods=["POST"])
def validate_evidence():
    """Pre-check a batch against what the client has already attached."""
    try:
        already_attached = int(request.form.get("attached", 0))
    except (TypeError, ValueError):
        already_attached = 0
    selection = build_selection()
    selection.previously_attached = max(0, already_attached)
    uploads = [f for f in request.files.getlist("evidence") if f and f.filename]
    rejections = selection.add(evidence_from_upload(upload) for upload in uploads)
    return jsonify(
        {
            "accepted": [item.filename for item in selection.accepted],
            "rejected": [r.to_dict() for r in rejections],
            "remaining_slots": selection.remaining_slots,
        }
    )


@complaints_bp.route("/analyze", methods=["POST"])
def analyze():
    form = AnalysisRequestForm()
    if not form.validate_on_submit():
        return jsonify({"error": "title, description, category and type are required", "fields": _form_errors(form)}), 400
    try:
        analysis = analyze_complaint(form.title.data, form.description.data, form.category.data, form.type.data)
    except AIAnalysisError as exc:
        current_app.logger.warning("Complaint analysis failed", extra={"error": str(exc)})
        return jsonify({"error": str(exc)}), exc.status_code
    return jsonify(analysis.to_payload())


@complaints_bp.route("/track/<string:tracking_id>", methods=["GET"])
def track(tracking_id):
    complaint = find_by_tracking_id(tracking_id)
    if not complaint:
        abort(404)
    return jsonify(complaint.public_payload())


@complaints_bp.route("/", methods=["GET"])
@permission_required("complaint.view_all")
def list_complaints():
    try:
        page = int(request.args.get("page", 1))
    except (TypeError, ValueError):
        page = 1
    page = 1 if page < 1 else page
    per_page = max(1, int(current_app.config.get("COMPLAINTS_PER_PAGE", 50)))

    filters = parse_filters(request.args)
    pagination = complaint_query(filters).paginate(page=page, per_page=per_page, error_out=False)
    return jsonify(
        {
            "complaints": [c.to_dict() for c in pagination.items],
            "page": page,
            "pages": pagination.pages,
            "total": pagination.total,
        }
    )


@complaints_bp.route("/map", methods=["GET"])
def complaint_map():
    return jsonify({"points": map_points(parse_filters(request.args))})


@complaints_bp.route("/categories", methods=["GET"])
def categories():
    query = ComplaintCategory.query.filter_by(is_active=True)
    category_type = request.args.get("type")
    if category_type:
        if category_type not in COMPLAINT_TYPES:
            return jsonify({"error": "Invalid category type."}), 400
        query = query.filter_by(type=category_type)
    rows = query.order_by(ComplaintCategory.display_order.asc(), ComplaintCategory.name.asc()).all()
    return jsonify({"categories": [c.to_dict() for c in rows]})


@complaints_bp.route("/evidence/<string:tracking_id>/<string:filename>", methods=["GET"])
def evidence_file(tracking_id, filename):
    safe_name = secure_filename(filename)
    if not safe_name or safe_name != filename:
        abort(404)
    try:
        path = get_evidence_store().resolve(f"{secure_filename(tracking_id)}/{safe_name}")
    except FileNotFoundError:
        abort(404)
    return send_file(path, as_attachment=False, download_name=safe_name)
