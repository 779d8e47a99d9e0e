import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./repaircoin.db")

ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()

# JWT Configuration - CRITICAL: No default secret in production
JWT_SECRET = os.getenv("JWT_SECRET")
if not JWT_SECRET:
    import warnings

    warnings.warn(
        "JWT_SECRET not set! Using insecure default - DO NOT USE IN PRODUCTION",
        RuntimeWarning,
        stacklevel=2,
    )
    JWT_SECRET = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))

# Comma separated wallet addresses that are always treated as super admins
ADMIN_ADDRESSES = [
    a.strip().lower() for a in os.getenv("ADMIN_ADDRESSES", "").split(",") if a.strip()
]

# Frontend base URL for Stripe redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3001")

ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:3000,http://localhost:3001",
).split(",")

# Stripe Configuration
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
# Recurring price for the shop subscription (monthly)
STRIPE_MONTHLY_PRICE_ID = os.getenv("STRIPE_MONTHLY_PRICE_ID")
SUBSCRIPTION_MONTHLY_AMOUNT = float(os.getenv("SUBSCRIPTION_MONTHLY_AMOUNT", "500"))
SUBSCRIPTION_GRACE_PERIOD_DAYS = int(os.getenv("SUBSCRIPTION_GRACE_PERIOD_DAYS", "7"))

# Token issuing API (thirdweb Engine compatible)
ENABLE_BLOCKCHAIN_MINTING = os.getenv("ENABLE_BLOCKCHAIN_MINTING", "false").lower() == "true"
TOKEN_API_URL = os.getenv("TOKEN_API_URL")
TOKEN_API_ACCESS_TOKEN = os.getenv("TOKEN_API_ACCESS_TOKEN")
TOKEN_API_BACKEND_WALLET = os.getenv("TOKEN_API_BACKEND_WALLET")
TOKEN_CHAIN = os.getenv("TOKEN_CHAIN", "base-sepolia")
RCN_CONTRACT_ADDRESS = os.getenv("RCN_CONTRACT_ADDRESS")

# Business rules
RCN_USD_VALUE = float(os.getenv("RCN_USD_VALUE", "0.10"))
RCG_MINIMUM_FOR_QUALIFICATION = float(os.getenv("RCG_MINIMUM_FOR_QUALIFICATION", "10000"))
LARGE_REDEMPTION_ALERT_THRESHOLD = float(os.getenv("LARGE_REDEMPTION_ALERT_THRESHOLD", "500"))
ORDER_PAYMENT_WINDOW_MINUTES = int(os.getenv("ORDER_PAYMENT_WINDOW_MINUTES", "30"))
ORDER_CANCELLATION_WINDOW_HOURS = int(os.getenv("ORDER_CANCELLATION_WINDOW_HOURS", "24"))
