import os
from dotenv import load_dotenv


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


# Load the main .env first (to get ENV_FILE)
load_dotenv()

# If ENV_FILE exists, load that specific file too
env_file = os.getenv("ENV_FILE")
if env_file:
    load_dotenv(env_file)


class Config:
    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv("SECRET_KEY", "fallback-secret")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URI", "sqlite:///:memory:")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    AUTO_CREATE_SCHEMA = _env_flag("AUTO_CREATE_SCHEMA", False)
    DATA_DIR = os.getenv("DATA_DIR", os.path.join(os.path.expanduser("~"), "keyhub_data"))

    LOG_FILE = os.getenv("LOG_FILE")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Pagination
    DEFAULT_PAGE_SIZE = _env_int("DEFAULT_PAGE_SIZE", 20)
    MAX_PAGE_SIZE = _env_int("MAX_PAGE_SIZE", 100)

    # Object storage (MinIO)
    MINIO_ENDPOINT = os.getenv("MINIO_ENDPOINT", "localhost")
    MINIO_PORT = _env_int("MINIO_PORT", 9000)
    MINIO_USE_SSL = _env_flag("MINIO_USE_SSL", False)
    MINIO_ACCESS_KEY = os.getenv("MINIO_ACCESS_KEY", "minioadmin")
    MINIO_SECRET_KEY = os.getenv("MINIO_SECRET_KEY", "minioadmin")
    MINIO_BUCKET = os.getenv("MINIO_BUCKET", "onecore-documents")
    MINIO_INIT_BUCKET = _env_flag("MINIO_INIT_BUCKET", False)

    # Receipts
    RECEIPT_MAX_UPLOAD_BYTES = _env_int("RECEIPT_MAX_UPLOAD_BYTES", 10 * 1024 * 1024)
    RECEIPT_URL_EXPIRY_SECONDS = _env_int("RECEIPT_URL_EXPIRY_SECONDS", 7 * 24 * 60 * 60)
    ORGANISATION_NAME = os.getenv("ORGANISATION_NAME", "Property Management")
    ORGANISATION_FOOTER = os.getenv("ORGANISATION_FOOTER", "")

    # Digital signing (SimpleSign)
    SIMPLESIGN_API_URL = os.getenv("SIMPLESIGN_API_URL", "https://api.simplesign.io/v2")
    SIMPLESIGN_ACCESS_TOKEN = os.getenv("SIMPLESIGN_ACCESS_TOKEN", "")
    SIMPLESIGN_WEBHOOK_SECRET = os.getenv("SIMPLESIGN_WEBHOOK_SECRET", "")
    SIMPLESIGN_TIMEOUT = _env_int("SIMPLESIGN_TIMEOUT", 30)

    # Core orchestration service
    KEYS_SERVICE_URL = os.getenv("KEYS_SERVICE_URL", "http://localhost:5090")
    KEYS_SERVICE_TIMEOUT = _env_int("KEYS_SERVICE_TIMEOUT", 10)


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URI", "postgresql://keyhub@localhost/keyhub")
    MINIO_INIT_BUCKET = _env_flag("MINIO_INIT_BUCKET", True)


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URI", "sqlite:///development.db")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URI", "sqlite://")
    MINIO_INIT_BUCKET = False


def get_config(env=None):
    env = env or os.getenv("ENV", "development").lower()

    if env == "production":
        return ProductionConfig
    elif env == "testing":
        return TestingConfig
    else:
        return DevelopmentConfig
