import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL")

# Firebase Configuration
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")

# Dodo Payments Configuration
DODO_PAYMENTS_API_KEY = os.getenv("DODO_PAYMENTS_API_KEY")
DODO_PAYMENTS_WEBHOOK_SECRET = os.getenv("DODO_PAYMENTS_WEBHOOK_SECRET")
# "test_mode" or "live_mode" - default to test for safety
DODO_PAYMENTS_ENVIRONMENT = os.getenv("DODO_PAYMENTS_ENVIRONMENT", "test_mode")
# Adhoc "pay what you want" product; every order is charged through it with a dynamic amount
DODO_ADHOC_PRODUCT_ID = os.getenv("DODO_ADHOC_PRODUCT_ID")

# Frontend base URL for redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Checkout
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "PLN")
RESERVATION_MINUTES = int(os.getenv("RESERVATION_MINUTES", "10"))
PAYMENT_DEADLINE_HOURS = int(os.getenv("PAYMENT_DEADLINE_HOURS", "24"))
SERVICE_FEE_PERCENTAGE = float(os.getenv("SERVICE_FEE_PERCENTAGE", "0.015"))

# Background sweep that expires stale reservations (ARQ cron)
RESERVATION_SWEEP_ENABLED = os.getenv("RESERVATION_SWEEP_ENABLED", "true").lower() == "true"
