from pathlib import Path
import os

from dotenv import load_dotenv

# Load environment variables from repo root and nowly/.env (if present).
REPO_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(REPO_ROOT / ".env")
load_dotenv(Path(__file__).resolve().parent / ".env")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./nowly.db")
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

_cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000")
CORS_ORIGINS = [origin.strip() for origin in _cors_origins.split(",") if origin.strip()]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE") or None

# Per-frequency overrides for the generation-ahead table,
# e.g. GENERATION_LIMIT_DAILY=10.
_FREQUENCIES = ("daily", "weekdays", "weekends", "weekly", "monthly", "yearly")
GENERATION_LIMIT_OVERRIDES = {
    frequency: int(os.environ[f"GENERATION_LIMIT_{frequency.upper()}"])
    for frequency in _FREQUENCIES
    if os.getenv(f"GENERATION_LIMIT_{frequency.upper()}")
}
