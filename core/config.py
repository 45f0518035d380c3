from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # -------------------------------------------------
    # General
    # -------------------------------------------------
    PROJECT_NAME: str = "Stazama API"
    ENV: str = "development"

    # -------------------------------------------------
    # Frontend Domains
    # -------------------------------------------------
    FRONTEND_DOMAIN: Optional[str] = None

    STAZAMA_DOMAINS: List[str] = [
        "https://stazama.com",
        "https://www.stazama.com",
    ]

    # -------------------------------------------------
    # CORS (auto-built below)
    # -------------------------------------------------
    BACKEND_CORS_ORIGINS: List[str] = []

    # Where denied visitors are sent back to
    PUBLIC_LANDING_PATH: str = "/"

    # -------------------------------------------------
    # Supabase (Primary DB & Auth)
    # -------------------------------------------------
    SUPABASE_URL: Optional[str] = None
    SUPABASE_ANON_KEY: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None

    # -------------------------------------------------
    # SMTP Email (receipts)
    # -------------------------------------------------
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: Optional[int] = None
    SMTP_USER: Optional[str] = None
    SMTP_PASS: Optional[str] = None

    RECEIPT_SUPPORT_EMAIL: str = "support@stazama.com"

    # -------------------------------------------------
    # Receipts & Payments
    # -------------------------------------------------
    CURRENCY: str = "MWK"
    VERIFICATION_CODE_LENGTH: int = Field(8, ge=4, le=32)

    # -------------------------------------------------
    # Auth rate limiting (sign-in attempts per email)
    # -------------------------------------------------
    AUTH_RATE_LIMIT_MAX_ATTEMPTS: int = Field(5, description="Sign-in attempts allowed per window (default: 5)")
    AUTH_RATE_LIMIT_WINDOW_SECONDS: int = Field(15 * 60, description="Sign-in rate limit window (default: 15 minutes)")

    # -------------------------------------------------
    # Request listing
    # -------------------------------------------------
    REQUEST_PAGE_SIZE_MAX: int = 200

    # -------------------------------------------------
    # Model Config
    # -------------------------------------------------
    # Real environment variables only, no .env file
    model_config = SettingsConfigDict(case_sensitive=True)


# Instantiate settings
settings = Settings()

# -------------------------------------------------
# Build CORS list dynamically after loading settings
# -------------------------------------------------
cors_origins = []

# 1) add custom frontend domain
if settings.FRONTEND_DOMAIN:
    domain = settings.FRONTEND_DOMAIN
    if not domain.startswith("http"):
        domain = f"https://{domain}"
    cors_origins.append(domain.rstrip("/"))

# 2) add Stazama domains
cors_origins.extend([d.rstrip("/") for d in settings.STAZAMA_DOMAINS])

# 3) remove duplicates
settings.BACKEND_CORS_ORIGINS = sorted(list(set(cors_origins)))
