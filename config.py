# ==========================================================================================================
# -------------- Configuration file for the Stockpass Flask application ------------------------------------
# ==========================================================================================================
import os
from decimal import Decimal
from dotenv import load_dotenv


if os.environ.get("FLASK_ENV") != "production":
    load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))


def _decimal_env(name, default):
    return Decimal(os.getenv(name, default))


def _database_url():
    url = os.getenv("DATABASE_URL")
    if url and url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+pg8000://", 1)
    return url


class Config:
    """Base configuration class (used in all environments)."""

    FLASK_ENV = os.getenv("FLASK_ENV", "production")
    DEBUG = os.getenv("DEBUG", "False").lower() in ("true", "1", "t")
    TESTING = False

    SECRET_KEY = os.getenv("SECRET_KEY")
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_EXPIRES_DAYS = int(os.getenv("JWT_EXPIRES_DAYS", "7"))
    AUTH_COOKIE_NAME = "token"

    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # Google OAuth
    GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
    GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
    GOOGLE_CALLBACK_URL = os.getenv("GOOGLE_CALLBACK_URL")
    GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
    GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
    GOOGLE_SCOPES = ["profile", "email"]
    REQUEST_TIMEOUT_SECONDS = int(os.getenv("REQUEST_TIMEOUT_SECONDS", "30"))

    FRONTEND_URL = os.getenv("FRONTEND_URL", "")
    ADMIN_EMAILS = [e.strip().lower() for e in os.getenv("ADMIN_EMAILS", "").split(",") if e.strip()]

    # Uploads (payment proofs and withdrawal receipts)
    UPLOAD_FOLDER = os.getenv("UPLOAD_FOLDER", os.path.join(basedir, "uploads"))
    MAX_CONTENT_LENGTH = 5 * 1024 * 1024
    PROOF_EXTENSIONS = {"jpeg", "jpg", "png", "gif", "pdf"}
    RECEIPT_EXTENSIONS = {"jpeg", "jpg", "png", "gif", "webp", "pdf"}

    # Business constants
    SUBSCRIPTION_MONTHLY_FEE = _decimal_env("SUBSCRIPTION_MONTHLY_FEE", "10.00")
    ACTIVE_PERIOD_DAYS = int(os.getenv("ACTIVE_PERIOD_DAYS", "30"))
    ACTIVE_PAYING_GRACE_DAYS = int(os.getenv("ACTIVE_PAYING_GRACE_DAYS", "30"))
    REFERRAL_PROFIT_PER_MONTH = _decimal_env("REFERRAL_PROFIT_PER_MONTH", "2.50")
    WITHDRAW_FEE = _decimal_env("WITHDRAW_FEE", "1.00")
    MIN_WITHDRAWAL = _decimal_env("MIN_WITHDRAWAL", "1.00")
    STOCK_ID_MAX_ATTEMPTS = int(os.getenv("STOCK_ID_MAX_ATTEMPTS", "10"))

    LOG_DIR = os.getenv("LOG_DIR", "logs")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def is_production(cls):
        return cls.FLASK_ENV == "production"

    @classmethod
    def validate(cls):
        """Refuse to start with missing secrets instead of falling back to defaults."""
        missing = [name for name in ("SECRET_KEY", "JWT_SECRET_KEY") if not getattr(cls, name)]
        if not cls.SQLALCHEMY_DATABASE_URI:
            missing.append("DATABASE_URL")
        if cls.is_production():
            missing.extend(
                name for name in ("GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "FRONTEND_URL")
                if not getattr(cls, name)
            )
        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")


class DevelopmentConfig(Config):
    FLASK_ENV = "development"
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url() or f"sqlite:///{os.path.join(basedir, 'instance', 'stockpass.db')}"
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")


class TestingConfig(Config):
    FLASK_ENV = "testing"
    TESTING = True
    SECRET_KEY = "test-secret-key"
    JWT_SECRET_KEY = "test-jwt-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    GOOGLE_CLIENT_ID = "test-client-id"
    GOOGLE_CLIENT_SECRET = "test-client-secret"
    GOOGLE_CALLBACK_URL = "http://localhost:5000/api/auth/google/callback"
    FRONTEND_URL = "http://localhost:3000"
    ADMIN_EMAILS = ["boss@example.com"]


class ProductionConfig(Config):
    FLASK_ENV = "production"
    DEBUG = False


CONFIGS = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config(name=None):
    name = name or os.getenv("FLASK_ENV", "production")
    return CONFIGS.get(name, ProductionConfig)
