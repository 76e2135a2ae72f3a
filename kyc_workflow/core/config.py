import os
from dotenv import load_dotenv

load_dotenv()


def _as_bool(value: str, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    PROJECT_NAME: str = "KYC Verification Workflow"
    MONGODB_URI: str = os.getenv("MONGODB_URI")
    MONGODB_DB_NAME: str = os.getenv("MONGODB_DB_NAME")
    MONGODB_TLS: bool = _as_bool(os.getenv("MONGODB_TLS"), default=False)
    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "change-me-in-production")
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
    CLIENT_URL: str = os.getenv("CLIENT_URL", "http://localhost:3000")

    # Storage collaborator
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "local")
    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "./uploads")
    TEMP_DIR: str = os.getenv("TEMP_DIR", "./temp")
    MAX_UPLOAD_SIZE: int = int(os.getenv("MAX_UPLOAD_SIZE", str(10 * 1024 * 1024)))
    SUPABASE_URL: str = os.getenv("SUPABASE_URL")
    SUPABASE_SERVICE_ROLE: str = os.getenv("SUPABASE_SERVICE_ROLE")
    SUPABASE_BUCKET: str = os.getenv("SUPABASE_BUCKET", "kyc-documents")

    # Email collaborator
    EMAIL_PROVIDER: str = os.getenv("EMAIL_PROVIDER", "mock")
    SMTP_HOST: str = os.getenv("SMTP_HOST", "localhost")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USER: str = os.getenv("SMTP_USER")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD")
    SMTP_USE_TLS: bool = _as_bool(os.getenv("SMTP_USE_TLS"), default=True)
    EMAIL_FROM_ADDRESS: str = os.getenv("EMAIL_FROM_ADDRESS", "KYC Platform <noreply@kyc.local>")
    ADMIN_EMAIL: str = os.getenv("ADMIN_EMAIL", "admin@kyc.local")

    # Background housekeeping
    TEMP_FILE_MAX_AGE_SECONDS: int = int(os.getenv("TEMP_FILE_MAX_AGE_SECONDS", "3600"))
    TEMP_SWEEP_INTERVAL_SECONDS: int = int(os.getenv("TEMP_SWEEP_INTERVAL_SECONDS", "3600"))

    # Timezone used to decide which day a document number belongs to
    DOCUMENT_TIMEZONE: str = os.getenv("DOCUMENT_TIMEZONE", "Asia/Kolkata")



settings = Settings()
