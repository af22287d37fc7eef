"""Authentication blueprint: JSON register, login, logout, and session lookup."""
import hmac
from datetime import datetime, timedelta

from flask import Blueprint, current_app, jsonify, request, session
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf import FlaskForm
from sqlalchemy.exc import IntegrityError
from wtforms import BooleanField, PasswordField, StringField
from wtforms.validators import DataRequired, Email, EqualTo, Length, Optional, ValidationError

from extensions import db
from models import AuditLog, User
from utils.rewards import reward_snapshot
from utils.security import password_meets_policy, track_attempt

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


class RegistrationForm(FlaskForm):
    full_name = StringField("Full Name", validators=[DataRequired(), Length(max=150)])
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    phone = StringField("Phone", validators=[Optional(), Length(max=32)])
    password = PasswordField("Password", validators=[DataRequired(), Length(min=12)])
    confirm_password = PasswordField(
        "Confirm Password", validators=[DataRequired(), EqualTo("password", message="Passwords must match.")]
    )

    def validate_email(self, field):
        if User.query.filter_by(email=field.data.lower().strip()).first():
            raise ValidationError("An account with this email already exists.")


class AdminRegistrationForm(RegistrationForm):
    registration_key = PasswordField("Registration Key", validators=[DataRequired(), Length(max=255)])


class LoginForm(FlaskForm):
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired()])
    remember_me = BooleanField("Remember me")


def _form_errors(form: FlaskForm) -> dict:
    return {name: list(errors) for name, errors in form.errors.items()}


@auth_bp.route("/register", methods=["POST"])
def register():
    if current_user.is_authenticated:
        return jsonify({"error": "Already signed in."}), 400

    form = RegistrationForm()
    if not form.validate_on_submit():
        return jsonify({"error": "Invalid registration details.", "fields": _form_errors(form)}), 400

    # Self-registration always yields a citizen; elevated roles are granted by an admin.
    user, error = create_account(form, "citizen", "REGISTER")
    if error:
        return error

    current_app.logger.info("User registered", extra={"user_id": user.id})
    login_user(user, remember=True)
    return jsonify({"user": user.to_dict()}), 201


@auth_bp.route("/register-admin", methods=["POST"])
def register_admin():
    """Create an admin account with the deployment's registration key."""
    form = AdminRegistrationForm()
    if not form.validate_on_submit():
        return jsonify({"error": "Invalid registration details.", "fields": _form_errors(form)}), 400

    expected = current_app.config.get("ADMIN_REGISTRATION_KEY") or ""
    supplied = form.registration_key.data or ""
    if not expected or not hmac.compare_digest(supplied.encode(), expected.encode()):
        current_app.logger.warning("Admin registration refused", extra={"email": form.email.data})
        log_action("ADMIN_REGISTRATION_DENIED", None, (form.email.data or "").lower().strip())
        db.session.commit()
        return jsonify({"error": "Invalid registration key."}), 403

    user, error = create_account(form, "admin", "ADMIN_REGISTERED")
    if error:
        return error

    current_app.logger.info("Admin registered", extra={"user_id": user.id})
    return jsonify({"user": user.to_dict()}), 201


def create_account(form: RegistrationForm, role: str, action: str, actor: User | None = None):
    """Persist a validated registration form; returns (user, error_response)."""
    password_ok, reason = password_meets_policy(form.password.data)
    if not password_ok:
        return None, (jsonify({"error": reason, "fields": {"password": [reason]}}), 400)

    try:
        user = User(
            full_name=form.full_name.data.strip(),
            email=form.email.data.lower().strip(),
            phone=(form.phone.data or "").strip() or None,
            role=role,
            is_active=True,
        )
        user.set_password(form.password.data)
        db.session.add(user)
        db.session.flush()
        log_action(action, actor or user, f"{user.id}:{role}")
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return None, (jsonify({"error": "Unable to register with the provided details. Please try again."}), 400)
    return user, None


@auth_bp.route("/login", methods=["POST"])
def login():
    if current_user.is_authenticated:
        return jsonify({"user": current_user.to_dict()})

    form = LoginForm()
    if not form.validate_on_submit():
        return jsonify({"error": "Email and password are required.", "fields": _form_errors(form)}), 400

    email = form.email.data.lower().strip()
    if not track_attempt(f"login:{request.remote_addr}:{email}"):
        current_app.logger.warning("Login throttled", extra={"email": email})
        return jsonify({"error": "Too many login attempts. Please wait and try again."}), 429

    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(form.password.data):
        log_action("LOGIN_FAILED", user)
        db.session.commit()
        return jsonify({"error": "Invalid credentials provided."}), 401

    if not user.is_active:
        return jsonify({"error": "Your account is inactive. Please contact support."}), 403

    login_user(user, remember=bool(form.remember_me.data), duration=timedelta(days=30))
    session.permanent = True
    user.last_login_at = datetime.utcnow()
    log_action("LOGIN", user)
    db.session.commit()
    return jsonify({"user": user.to_dict()})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    user = current_user._get_current_object()
    logout_user()
    session.clear()
    log_action("LOGOUT", user)
    db.session.commit()
    return jsonify({"message": "You have been logged out."})


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({"user": current_user.to_dict(), "reward": reward_snapshot(current_user.id)})


def log_action(action: str, user: User | None, context: str | None = None):
    entry = AuditLog(
        user_id=user.id if user else None,
        action_type=action,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent", "unknown"),
        context_entity=context,
    )
    db.session.add(entry)
