"""Environment-aware configuration for the complaint service."""
import os
import tempfile
from datetime import timedelta


class BaseConfig:
    def __init__(self) -> None:
        # Defaults for local dev: SQLite db and a non-empty secret. Override via env for production.
        self.SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-me")
        db_url = os.getenv("DATABASE_URL")
        # A placeholder host (e.g., db_host) or a missing DATABASE_URL falls back to SQLite.
        if db_url and "db_host" not in db_url:
            self.SQLALCHEMY_DATABASE_URI = db_url
        else:
            self.SQLALCHEMY_DATABASE_URI = os.getenv(
                "SQLITE_URL",
                f"sqlite:///{os.path.join(os.getcwd(), 'instance', 'civic_eye.db')}",
            )
        self.SQLALCHEMY_TRACK_MODIFICATIONS = False
        self.SQLALCHEMY_ENGINE_OPTIONS = {
            "pool_pre_ping": True,
            "pool_recycle": int(os.getenv("DB_POOL_RECYCLE", 1800)),
        }
        self.SESSION_COOKIE_HTTPONLY = True
        self.REMEMBER_COOKIE_HTTPONLY = True
        self.SESSION_COOKIE_SAMESITE = "Lax"
        self.PERMANENT_SESSION_LIFETIME = timedelta(days=30)
        self.REMEMBER_COOKIE_DURATION = timedelta(days=30)
        self.PREFERRED_URL_SCHEME = os.getenv("PREFERRED_URL_SCHEME", "https")
        self.WTF_CSRF_TIME_LIMIT = 3600
        self.WTF_CSRF_ENABLED = True
        self.MAIL_SERVER = os.getenv("MAIL_SERVER", "")
        self.MAIL_PORT = int(os.getenv("MAIL_PORT", 25))
        self.MAIL_USERNAME = os.getenv("MAIL_USERNAME", "")
        self.MAIL_PASSWORD = os.getenv("MAIL_PASSWORD", "")
        self.MAIL_USE_TLS = os.getenv("MAIL_USE_TLS", "true").lower() == "true"
        self.MAIL_USE_SSL = os.getenv("MAIL_USE_SSL", "false").lower() == "true"
        self.MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "Civic-Eye <no-reply@civic-eye.org>")
        self.STATUS_NOTIFICATIONS_ENABLED = os.getenv("STATUS_NOTIFICATIONS_ENABLED", "true").lower() == "true"
        self.GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
        self.GEMINI_TEXT_MODEL = os.getenv("GEMINI_TEXT_MODEL", "gemini-2.5-flash")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_DIR = os.getenv("LOG_DIR", os.path.join(os.getcwd(), "logs"))
        self.DEFAULT_ADMIN_EMAIL = os.getenv("DEFAULT_ADMIN_EMAIL", "admin@civic-eye.org")
        self.DEFAULT_ADMIN_PASSWORD = os.getenv("DEFAULT_ADMIN_PASSWORD", "")
        # Empty disables key-based admin registration.
        self.ADMIN_REGISTRATION_KEY = os.getenv("ADMIN_REGISTRATION_KEY", "")
        self.COMPLAINT_UPLOAD_FOLDER = os.getenv(
            "COMPLAINT_UPLOAD_FOLDER",
            os.path.join(os.getcwd(), "instance", "evidence"),
        )
        self.MAX_EVIDENCE_FILES = int(os.getenv("MAX_EVIDENCE_FILES", 5))
        self.MAX_EVIDENCE_BYTES = int(os.getenv("MAX_EVIDENCE_BYTES", 10 * 1024 * 1024))
        # Five full-size files plus form fields.
        self.MAX_CONTENT_LENGTH = int(os.getenv("MAX_REQUEST_BYTES", 52 * 1024 * 1024))
        self.DEFAULT_CREDIBILITY_SCORE = int(os.getenv("DEFAULT_CREDIBILITY_SCORE", 70))
        self.TRACKING_ID_MAX_ATTEMPTS = int(os.getenv("TRACKING_ID_MAX_ATTEMPTS", 5))
        self.COMPLAINTS_PER_PAGE = int(os.getenv("COMPLAINTS_PER_PAGE", 50))
        self.SEED_DEFAULT_CATEGORIES = os.getenv("SEED_DEFAULT_CATEGORIES", "true").lower() == "true"


class DevelopmentConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.DEBUG = True
        self.ENV = "development"
        self.SESSION_COOKIE_SECURE = False
        self.REMEMBER_COOKIE_SECURE = False


class ProductionConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.DEBUG = False
        self.ENV = "production"
        self.SESSION_COOKIE_SECURE = True
        self.REMEMBER_COOKIE_SECURE = True
        self.SEND_FILE_MAX_AGE_DEFAULT = 31536000


class TestingConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.TESTING = True
        self.DEBUG = False
        self.ENV = "testing"
        self.SQLALCHEMY_DATABASE_URI = "sqlite://"
        self.SQLALCHEMY_ENGINE_OPTIONS = {}
        self.WTF_CSRF_ENABLED = False
        self.SESSION_COOKIE_SECURE = False
        self.REMEMBER_COOKIE_SECURE = False
        self.PREFERRED_URL_SCHEME = "http"
        self.GEMINI_API_KEY = "test-key"
        self.MAIL_SERVER = ""
        self.DEFAULT_ADMIN_PASSWORD = ""
        self.ADMIN_REGISTRATION_KEY = ""
        self.SEED_DEFAULT_CATEGORIES = False
        scratch = tempfile.mkdtemp(prefix="civic-eye-")
        self.COMPLAINT_UPLOAD_FOLDER = os.path.join(scratch, "evidence")
        self.LOG_DIR = os.path.join(scratch, "logs")
