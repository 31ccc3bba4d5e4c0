import os
from dotenv import load_dotenv

# Load .env from the project root
load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./tablepos.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_TEST = ENV_NORMALIZED == "test"
IS_PROD = ENV_NORMALIZED in {"prod", "production"}

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Pricing
CURRENCY = os.getenv("CURRENCY", "USD").strip().upper() or "USD"
DEFAULT_TAX_RATE = os.getenv("DEFAULT_TAX_RATE", "0").strip() or "0"

# Built-in SAVE10 / OFF5 coupons, only used when no coupon.* setting exists
COUPON_BUILTIN_FALLBACK = _env_flag("COUPON_BUILTIN_FALLBACK", "1" if (IS_DEV or IS_TEST) else "0")

# Table consolidation
CONSOLIDATION_MAX_ATTEMPTS = max(1, int(os.getenv("CONSOLIDATION_MAX_ATTEMPTS", "3")))

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
