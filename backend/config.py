"""
Module: config.py
Description: Environment configuration for the Finance Dashboard API.

All settings are read once from the process environment (and a local .env
file when present) into module-level constants.

Author: Finance Dashboard Team
"""

import os
from dotenv import load_dotenv

load_dotenv()


# =============================================================================
# Application
# =============================================================================

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
APP_URL = os.getenv("APP_URL", "http://localhost:3000")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
    ).split(",")
    if origin.strip()
]


# =============================================================================
# Database
# =============================================================================

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./finance_dashboard.db")


# =============================================================================
# Clerk
# =============================================================================

CLERK_SECRET_KEY = os.getenv("CLERK_SECRET_KEY", "")
CLERK_PUBLISHABLE_KEY = os.getenv("CLERK_PUBLISHABLE_KEY", "")
CLERK_FRONTEND_API = os.getenv("CLERK_FRONTEND_API", "")

# For development/demo, we can bypass auth
AUTH_BYPASS = os.getenv("AUTH_BYPASS", "false").lower() == "true"
AUTH_BYPASS_USER_ID = os.getenv("AUTH_BYPASS_USER_ID", "demo_user_123")


# =============================================================================
# Plaid
# =============================================================================

PLAID_CLIENT_ID = os.getenv("PLAID_CLIENT_ID", "")
PLAID_SECRET = os.getenv("PLAID_SECRET", "")
PLAID_ENV = os.getenv("PLAID_ENV", "sandbox")

PLAID_CLIENT_NAME = "Finance Tracker App"
PLAID_PRODUCTS = ["transactions"]
PLAID_COUNTRY_CODES = ["US"]
PLAID_LANGUAGE = "en"


# =============================================================================
# Lemon Squeezy (billing)
# =============================================================================

LEMONSQUEEZY_API_URL = os.getenv("LEMONSQUEEZY_API_URL", "https://api.lemonsqueezy.com/v1")
LEMONSQUEEZY_API_KEY = os.getenv("LEMONSQUEEZY_API_KEY", "")
LEMONSQUEEZY_STORE_ID = os.getenv("LEMONSQUEEZY_STORE_ID", "")
LEMONSQUEEZY_VARIANT_ID = os.getenv("LEMONSQUEEZY_VARIANT_ID", "")
LEMONSQUEEZY_WEBHOOK_SECRET = os.getenv("LEMONSQUEEZY_WEBHOOK_SECRET", "")
