import os
from dotenv import load_dotenv

load_dotenv()

SHOPIFY_API_KEY = os.getenv("SHOPIFY_API_KEY", "")
SHOPIFY_API_SECRET = os.getenv("SHOPIFY_API_SECRET", "")
SHOPIFY_APP_URL = os.getenv("SHOPIFY_APP_URL", "").rstrip("/")
SCOPES = os.getenv("SCOPES", "read_products,write_pixels,read_customer_events")
SHOPIFY_API_VERSION = os.getenv("SHOPIFY_API_VERSION", "2025-10")
REDIRECT_URI = os.getenv("REDIRECT_URI") or f"{SHOPIFY_APP_URL}/auth/callback"

BACKEND_API_URL = os.getenv("BACKEND_API_URL", "http://localhost:8000")
BACKEND_TIMEOUT_SECONDS = float(os.getenv("BACKEND_TIMEOUT_SECONDS", "30"))

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./sessions.db")

DEBUG = os.getenv("DEBUG", "false").lower() in ("1", "true", "yes")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def backend_base_url() -> str:
    # BACKEND_API_URL is sometimes configured as a bare host
    base = BACKEND_API_URL.strip().rstrip("/")
    if not base.startswith("http"):
        base = f"https://{base}"
    return base
