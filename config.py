"""
Runtime configuration for the LinkUp API.

Everything is read from the environment once at import time.
"""
import os

# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "linkup")
DB_TIMEOUT_MS = int(os.getenv("DB_TIMEOUT_MS", "10000"))

# Auth
SECRET_KEY = os.getenv("JWT_SECRET", "supersecretkey")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24)))

# HTTP
CORS_ORIGINS = [o.strip() for o in os.getenv("CLIENT_URL", "*").split(",") if o.strip()]
PORT = int(os.getenv("PORT", "8000"))

# Uploads
UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join(os.path.dirname(os.path.abspath(__file__)), "uploads"))
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_MB", "50")) * 1024 * 1024

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
