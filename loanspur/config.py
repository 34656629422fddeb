import os
from dotenv import load_dotenv

load_dotenv()

_TRUTHY = ("1", "true", "yes", "on")


def env_flag(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


def env_list(name, default):
    raw = os.environ.get(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")
    APP_NAME = os.environ.get("APP_NAME", "LoanSpur CBS")

    SUPABASE_URL = os.environ.get("SUPABASE_URL")
    SUPABASE_KEY = os.environ.get("SUPABASE_KEY") or os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
    SUPABASE_ANON_KEY = os.environ.get("SUPABASE_ANON_KEY")
    SUPABASE_JWT_SECRET = os.environ.get("SUPABASE_JWT_SECRET", "dev-jwt-secret")

    RESEND_API_KEY = os.environ.get("RESEND_API_KEY")
    RESEND_EMAIL_FROM = os.environ.get("RESEND_EMAIL_FROM")
    RESEND_API_URL = os.environ.get("RESEND_API_URL", "https://api.resend.com/emails")

    PRODUCTION_DOMAIN = os.environ.get("PRODUCTION_DOMAIN", "loanspurcbs.com")
    DEVELOPMENT_DOMAIN = os.environ.get("DEVELOPMENT_DOMAIN", "loanspur.online")
    BASE_DOMAINS = env_list("BASE_DOMAINS", ["loanspurcbs.com", "loanspur.online"])

    OTP_TTL_MINUTES = int(os.environ.get("OTP_TTL_MINUTES", "10"))
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "KES")
    HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "10"))
    FUNCTIONS_BASE_URL = os.environ.get("FUNCTIONS_BASE_URL", "http://localhost:5000/functions/v1")
    DIAGNOSTIC_URLS = env_list("DIAGNOSTIC_URLS", [
        "https://loanspurcbs.com",
        "https://loanspurcbs.com/auth",
        "https://loanspur.online",
        "https://loanspur.online/auth",
    ])

    # Feature flags
    ENABLE_SAVINGS = env_flag("ENABLE_SAVINGS", True)
    ENABLE_GROUPS = env_flag("ENABLE_GROUPS", True)
    ENABLE_ADVANCED_REPORTING = env_flag("ENABLE_ADVANCED_REPORTING", False)
    ENABLE_MIFOS_INTEGRATION = env_flag("ENABLE_MIFOS_INTEGRATION", False)
    ENABLE_DEBUG_LOGGING = env_flag("ENABLE_DEBUG_LOGGING", False)
    ENABLE_PERFORMANCE_MONITORING = env_flag("ENABLE_PERFORMANCE_MONITORING", False)


FEATURE_FLAGS = {
    "savings": "ENABLE_SAVINGS",
    "groups": "ENABLE_GROUPS",
    "advanced_reporting": "ENABLE_ADVANCED_REPORTING",
    "mifos_integration": "ENABLE_MIFOS_INTEGRATION",
    "debug_logging": "ENABLE_DEBUG_LOGGING",
    "performance_monitoring": "ENABLE_PERFORMANCE_MONITORING",
}


def get_feature_flags(config):
    """Return the feature flags of a Flask config (or any mapping) as a dict."""
    return {name: bool(config.get(key, False)) for name, key in FEATURE_FLAGS.items()}


def feature_enabled(config, name):
    return bool(config.get(FEATURE_FLAGS[name], False))
