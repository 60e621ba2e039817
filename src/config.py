import os
from datetime import timedelta

DATABASE_URL = os.getenv(
    "SIGNFLOW_DATABASE_URL", "postgresql://postgres:root@db:5432/signflow"
)

# Auth
SECRET_KEY = os.getenv("SIGNFLOW_SECRET_KEY", "change-me-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("SIGNFLOW_ACCESS_TOKEN_EXPIRE_MINUTES", "30"))
ADMIN_EMAIL = os.getenv("SIGNFLOW_ADMIN_EMAIL", "admin@signflow.local")
ADMIN_PASSWORD = os.getenv("SIGNFLOW_ADMIN_PASSWORD", "admin123")

# Files
UPLOAD_DIR = os.getenv("SIGNFLOW_UPLOAD_DIR", "uploads")
MAX_FILE_SIZE = int(os.getenv("SIGNFLOW_MAX_FILE_SIZE", str(10 * 1024 * 1024)))  # 10 MB

# Signing links
SIGNING_BASE_URL = os.getenv("SIGNFLOW_SIGNING_BASE_URL", "http://localhost:3000")
SIGNING_TOKEN_TTL = timedelta(hours=int(os.getenv("SIGNFLOW_SIGNING_TOKEN_TTL_HOURS", "168")))

# Maintenance jobs
TOKEN_SWEEP_INTERVAL_MINUTES = int(os.getenv("SIGNFLOW_TOKEN_SWEEP_INTERVAL_MINUTES", "60"))
AUDIT_RETENTION_DAYS = int(os.getenv("SIGNFLOW_AUDIT_RETENTION_DAYS", "90"))

LOG_LEVEL = os.getenv("SIGNFLOW_LOG_LEVEL", "INFO")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "SIGNFLOW_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
    ).split(",")
    if origin.strip()
]
