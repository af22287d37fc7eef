"""Administrative blueprint: triage transitions, categories, and user roles."""
import re

from flask import Blueprint, abort, current_app, jsonify, request
from flask_login import current_user
from flask_wtf import FlaskForm
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from wtforms import BooleanField, IntegerField, SelectField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, NumberRange, Optional

from extensions import db
from models import COMPLAINT_STATUSES, COMPLAINT_TYPES, USER_ROLES, AuditLog, Complaint, ComplaintCategory, User
from routes.auth import RegistrationForm, create_account
from utils.complaint_queries import users_with_roles
from utils.decorators import permission_required
from utils.status_workflow import ComplaintUpdateError, assign_worker, change_status, delete_complaint

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


class StatusUpdateForm(FlaskForm):
    status = SelectField("Status", choices=[(s, s) for s in COMPLAINT_STATUSES], validators=[DataRequired()])
    resolution = TextAreaField("Resolution", validators=[Optional(), Length(max=5000)])
    remarks = StringField("Remarks", validators=[Optional(), Length(max=500)])


class AssignmentForm(FlaskForm):
    assigned_to = StringField("Worker", validators=[Optional(), Length(max=150)])
    department = StringField("Department", validators=[Optional(), Length(max=150)])


class CategoryForm(FlaskForm):
    name = StringField("Name", validators=[DataRequired(), Length(max=100)])
    icon = StringField("Icon", validators=[DataRequired(), Length(max=16)])
    type = SelectField("Type", choices=[(t, t) for t in COMPLAINT_TYPES], validators=[DataRequired()])
    slug = StringField("Slug", validators=[DataRequired(), Length(max=100)])
    description = TextAreaField("Description", validators=[Optional(), Length(max=500)])
    is_active = BooleanField("Active")
    display_order = IntegerField("Display order", validators=[Optional(), NumberRange(min=0)])


class RoleForm(FlaskForm):
    role = SelectField("Role", choices=[(r, r) for r in USER_ROLES], validators=[DataRequired()])


class UserCreationForm(RegistrationForm):
    role = SelectField("Role", choices=[(r, r) for r in USER_ROLES], validators=[DataRequired()], default="citizen")


def normalize_slug(value: str) -> str:
    return re.sub(r"\s+", "-", (value or "").strip().lower())


def _form_errors(form: FlaskForm) -> dict:
    return {name: list(errors) for name, errors in form.errors.items()}


def _complaint_or_404(complaint_id: str) -> Complaint:
    complaint = Complaint.query.filter(
        (Complaint.id == complaint_id) | (Complaint.complaint_id == complaint_id.upper())
    ).first()
    if not complaint:
        abort(404)
    return complaint


def _audit(action: str, context: str | None = None) -> None:
    db.session.add(
        AuditLog(
            user_id=current_user.id,
            action_type=action,
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent", "unknown"),
            context_entity=context,
        )
    )


@admin_bp.route("/complaints/<string:complaint_id>/status", methods=["POST"])
@permission_required("complaint.update_status")
def update_status(complaint_id):
    complaint = _complaint_or_404(complaint_id)
    form = StatusUpdateForm()
    if not form.validate_on_submit():
        return jsonify({"error": "Invalid status.", "fields": _form_errors(form)}), 400
    try:
        change_status(
            complaint,
            form.status.data,
            resolution=form.resolution.data,
            actor=current_user,
            remarks=form.remarks.data,
        )
    except ComplaintUpdateError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify({"complaint": complaint.to_dict()})


@admin_bp.route("/complaints/<string:complaint_id>/assign", methods=["POST"])
@permission_required("complaint.assign")
def assign(complaint_id):
    complaint = _complaint_or_404(complaint_id)
    form = AssignmentForm()
    if not form.validate_on_submit():
        return jsonify({"error": "Invalid assignment.", "fields": _form_errors(form)}), 400
    try:
        assign_worker(complaint, form.assigned_to.data, department=form.department.data, actor=current_user)
    except ComplaintUpdateError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify({"complaint": complaint.to_dict()})


@admin_bp.route("/complaints/<string:complaint_id>", methods=["DELETE"])
@permission_required("complaint.delete")
def remove_complaint(complaint_id):
    complaint = _complaint_or_404(complaint_id)
    tracking_id = complaint.complaint_id
    try:
        delete_complaint(complaint, actor=current_user)
    except ComplaintUpdateError as exc:
        return jsonify({"error": str(exc)}), 500
    return jsonify({"deleted": tracking_id})


@admin_bp.route("/categories", methods=["GET"])
@permission_required("category.manage")
def list_categories():
    rows = ComplaintCategory.query.order_by(
        ComplaintCategory.type.asc(), ComplaintCategory.display_order.asc()
    ).all()
    return jsonify({"categories": [c.to_dict() for c in rows]})


def _submitted(name: str) -> bool:
    payload = request.get_json(silent=True) if request.is_json else request.form
    return name in (payload or {})


def _save_category(category: ComplaintCategory, form: CategoryForm, action: str, status_code: int):
    slug = normalize_slug(form.slug.data)
    if not slug:
        return jsonify({"error": "Slug is required."}), 400
    category.name = form.name.data.strip()
    category.icon = form.icon.data.strip()
    category.type = form.type.data
    category.slug = slug
    category.description = (form.description.data or "").strip() or None
    # Omitted flags keep their current value (active for new categories).
    if _submitted("is_active"):
        category.is_active = bool(form.is_active.data)
    elif category.is_active is None:
        category.is_active = True
    if form.display_order.data is not None:
        category.display_order = form.display_order.data
    elif category.display_order is None:
        category.display_order = 0
    try:
        db.session.add(category)
        _audit(action, slug)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"error": "A category with this slug already exists."}), 409
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database error while saving category")
        return jsonify({"error": "Unable to save category. Please retry."}), 500
    current_app.logger.info("Category saved", extra={"slug": slug, "action": action})
    return jsonify({"category": category.to_dict()}), status_code


@admin_bp.route("/categories", methods=["POST"])
@permission_required("category.manage")
def create_category():
    form = CategoryForm()
    if not form.validate_on_submit():
        return jsonify({"error": "Name, icon, type and slug are required.", "fields": _form_errors(form)}), 400
    return _save_category(ComplaintCategory(), form, "CATEGORY_CREATED", 201)


@admin_bp.route("/categories/<string:category_id>", methods=["PUT", "POST"])
@permission_required("category.manage")
def update_category(category_id):
    category = db.session.get(ComplaintCategory, category_id) or abort(404)
    form = CategoryForm()
    if not form.validate_on_submit():
        return jsonify({"error": "Name, icon, type and slug are required.", "fields": _form_errors(form)}), 400
    return _save_category(category, form, "CATEGORY_UPDATED", 200)


@admin_bp.route("/categories/<string:category_id>", methods=["DELETE"])
@permission_required("category.manage")
def delete_category(category_id):
    category = db.session.get(ComplaintCategory, category_id) or abort(404)
    slug = category.slug
    # Complaints keep their category slug; nothing cascades.
    try:
        db.session.delete(category)
        _audit("CATEGORY_DELETED", slug)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"error": "Category could not be deleted."}), 409
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database error while deleting category")
        return jsonify({"error": "Unable to delete category. Please retry."}), 500
    current_app.logger.info("Category deleted", extra={"slug": slug})
    return jsonify({"deleted": slug})


@admin_bp.route("/users", methods=["GET"])
@permission_required("user.manage_roles")
def list_users():
    return jsonify({"users": users_with_roles()})


@admin_bp.route("/users", methods=["POST"])
@permission_required("user.manage_roles")
def create_user():
    form = UserCreationForm()
    if not form.validate_on_submit():
        return jsonify({"error": "Invalid user details.", "fields": _form_errors(form)}), 400
    user, error = create_account(form, form.role.data, "USER_CREATED", actor=current_user)
    if error:
        return error
    current_app.logger.info("User created by admin", extra={"user_id": user.id, "role": user.role})
    return jsonify({"user": user.to_dict()}), 201


@admin_bp.route("/users/<string:user_id>/role", methods=["POST"])
@permission_required("user.manage_roles")
def update_role(user_id):
    user = db.session.get(User, user_id) or abort(404)
    form = RoleForm()
    if not form.validate_on_submit():
        return jsonify({"error": "Invalid role.", "fields": _form_errors(form)}), 400
    if user.id == current_user.id and form.role.data != "admin":
        return jsonify({"error": "Administrators cannot remove their own admin role."}), 400
    previous = user.role
    user.role = form.role.data
    _audit("ROLE_CHANGED", f"{user.id}:{previous}->{user.role}")
    db.session.commit()
    current_app.logger.info("User role changed", extra={"user_id": user.id, "role": user.role})
    return jsonify({"user": user.to_dict()})
