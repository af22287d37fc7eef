"""Flask application factory for the civic complaint service."""
import os
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_wtf.csrf import CSRFError
from sqlalchemy import create_engine, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import OperationalError

from extensions import csrf, db, login_manager, migrate
from utils.evidence import LocalEvidenceStore
from utils.logger import init_logging
from utils.security import apply_security_headers

DEFAULT_CATEGORIES: tuple[tuple[str, str, str, str, str], ...] = (
    ("pothole", "Pothole", "🕳️", "civic", "Road damage or potholes"),
    ("garbage", "Garbage Overflow", "🗑️", "civic", "Overflowing garbage bins"),
    ("water", "Water Leakage", "💧", "civic", "Water pipe leaks or flooding"),
    ("streetlight", "Streetlight", "💡", "civic", "Non-functional street lights"),
    ("traffic", "Traffic Signal", "🚦", "civic", "Traffic signal issues"),
    ("drainage", "Drainage", "🌊", "civic", "Blocked or broken drains"),
    ("road", "Road Damage", "🛣️", "civic", "Road surface damage"),
    ("other-civic", "Other", "📋", "civic", "Other civic issues"),
    ("corruption", "Corruption", "💰", "anonymous", "Report corrupt practices"),
    ("harassment", "Harassment", "⚠️", "anonymous", "Report harassment incidents"),
    ("threat", "Threats/Violence", "🚨", "anonymous", "Report threats or violence"),
    ("fraud", "Fraud", "📄", "anonymous", "Report fraudulent activities"),
    ("misconduct", "Misconduct", "👤", "anonymous", "Report official misconduct"),
    ("unsafe", "Unsafe Area", "🔴", "anonymous", "Report unsafe public areas"),
    ("other-anon", "Other", "🔒", "anonymous", "Other sensitive issues"),
)


def _error_response(message: str, status: int):
    return jsonify({"error": message}), status


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(CSRFError)
    def csrf_error(error):
        app.logger.warning("CSRF validation failed", extra={"path": request.path, "method": request.method})
        return _error_response(error.description or "CSRF token missing or invalid.", 400)

    @app.errorhandler(400)
    def bad_request(error):
        app.logger.warning("400 Bad Request", extra={"path": request.path, "method": request.method})
        return _error_response("Bad request.", 400)

    @app.errorhandler(403)
    def forbidden(error):
        app.logger.warning("403 Forbidden", extra={"path": request.path, "method": request.method})
        return _error_response("You do not have permission to perform this action.", 403)

    @app.errorhandler(404)
    def not_found_error(error):
        app.logger.warning("404 Not Found", extra={"path": request.path, "method": request.method})
        return _error_response("Not found.", 404)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return _error_response("Method not allowed.", 405)

    @app.errorhandler(413)
    def too_large(error):
        app.logger.warning("413 Payload Too Large", extra={"path": request.path, "method": request.method})
        return _error_response("Upload too large.", 413)

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.exception("500 Internal Server Error")
        db.session.rollback()
        return _error_response("Internal server error. Please retry.", 500)


def ensure_default_admin(app: Flask) -> None:
    """Create or repair the bootstrap admin when credentials are configured."""
    from models import User  # Local import to avoid circular dependency

    admin_email = (app.config.get("DEFAULT_ADMIN_EMAIL") or "").lower().strip()
    admin_password = app.config.get("DEFAULT_ADMIN_PASSWORD") or ""
    if not admin_email or not admin_password:
        return

    admin_user = User.query.filter_by(email=admin_email).first()
    if admin_user:
        updates = False
        if admin_user.role != "admin":
            admin_user.role = "admin"
            updates = True
        if not admin_user.is_active:
            admin_user.is_active = True
            updates = True
        if updates:
            db.session.add(admin_user)
            db.session.commit()
        return

    admin_user = User(full_name="System Administrator", email=admin_email, role="admin", is_active=True)
    admin_user.set_password(admin_password)
    db.session.add(admin_user)
    db.session.commit()
    app.logger.info("Default admin created", extra={"email": admin_email})


def seed_default_categories() -> int:
    from models import ComplaintCategory  # Local import to avoid circular dependency

    existing = {slug for (slug,) in db.session.query(ComplaintCategory.slug).all()}
    created = 0
    for order, (slug, name, icon, category_type, description) in enumerate(DEFAULT_CATEGORIES):
        if slug in existing:
            continue
        db.session.add(
            ComplaintCategory(
                slug=slug,
                name=name,
                icon=icon,
                type=category_type,
                description=description,
                is_active=True,
                display_order=order,
            )
        )
        created += 1
    if created:
        db.session.commit()
    return created


def ensure_database_exists(database_uri: str) -> None:
    """Create the target database if it does not exist (PostgreSQL + SQLite support)."""
    url = make_url(database_uri)

    if url.drivername.startswith("sqlite"):
        # For SQLite just make sure the parent directory exists.
        if url.database:
            os.makedirs(os.path.dirname(url.database) or ".", exist_ok=True)
        return

    if url.drivername.startswith("postgres"):
        db_name = url.database
        admin_url = url.set(database=os.getenv("POSTGRES_DB_ADMIN", "postgres"))
        engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")
        try:
            with engine.connect() as conn:
                exists = conn.execute(
                    text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": db_name}
                ).scalar()
                if not exists:
                    conn.execute(text(f'CREATE DATABASE "{db_name}"'))
        except OperationalError:
            # If we cannot connect/create, let the normal app startup fail loudly later.
            pass
        finally:
            engine.dispose()


def create_app(config_name: Optional[str] = None) -> Flask:
    """Application factory with environment-aware configuration."""
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)

    from config import DevelopmentConfig, ProductionConfig, TestingConfig

    config_key = (config_name or os.getenv("FLASK_CONFIG") or os.getenv("FLASK_ENV") or "production").lower()
    config_map = {
        "development": DevelopmentConfig,
        "dev": DevelopmentConfig,
        "production": ProductionConfig,
        "prod": ProductionConfig,
        "testing": TestingConfig,
        "test": TestingConfig,
    }
    config_class = config_map.get(config_key, ProductionConfig)
    app.config.from_object(config_class())

    ensure_database_exists(app.config["SQLALCHEMY_DATABASE_URI"])

    # Optional instance-specific overrides
    if not app.config.get("TESTING"):
        app.config.from_pyfile("config.py", silent=True)
    os.makedirs(app.instance_path, exist_ok=True)
    os.makedirs(app.config["COMPLAINT_UPLOAD_FOLDER"], exist_ok=True)

    # Initialize logging early
    logger = init_logging(app)
    app.logger = logger

    csrf.init_app(app)
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    login_manager.session_protection = "strong"
    app.extensions["evidence_store"] = LocalEvidenceStore(app.config["COMPLAINT_UPLOAD_FOLDER"])

    @login_manager.user_loader
    def load_user(user_id):
        from models import User  # Local import to avoid circular dependency

        if not user_id:
            return None
        user = db.session.get(User, str(user_id))
        return user if user and user.is_active else None

    @login_manager.unauthorized_handler
    def unauthorized():
        return _error_response("Authentication required.", 401)

    from routes import admin_bp, auth_bp, complaints_bp, main_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(complaints_bp)
    app.register_blueprint(admin_bp)

    @app.cli.command("seed-categories")
    def seed_categories_command():
        """Insert the default civic and anonymous categories that are missing."""
        created = seed_default_categories()
        app.logger.info("Default categories seeded", extra={"created": created})

    register_error_handlers(app)

    @app.after_request
    def _after_request(response):
        return apply_security_headers(response, force_https=app.config.get("PREFERRED_URL_SCHEME") == "https")

    # Ensure tables exist so first run creates the database structure automatically.
    with app.app_context():
        db.create_all()
        ensure_default_admin(app)
        if app.config.get("SEED_DEFAULT_CATEGORIES"):
            seed_default_categories()

    return app
