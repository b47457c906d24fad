import os

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG = LOG_LEVEL == "DEBUG"

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL must be set in the environment")

SCHEMA = "tree_orders"

ALLOWED_ORIGINS: list[str] = [
    origin.strip() for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",")
]

# Secrets (ENCRYPTION_KEY is read lazily by security.encryption)
WEBHOOK_SECRET = os.getenv("WEBHOOK_SECRET") or None
CRON_SECRET = os.getenv("CRON_SECRET") or None

# Mews connector API
MEWS_API_URL = os.getenv("MEWS_API_URL", "https://api.mews.com/api/connector/v1").rstrip("/")
MEWS_CLIENT_NAME = os.getenv("MEWS_CLIENT_NAME", "Click A Tree Integration 1.0.0")

# Catalog target
TREE_CATALOG_ITEM_ID = os.getenv("TREE_CATALOG_ITEM_ID") or None
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "EUR")

# Resilience
RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE", "90"))
CIRCUIT_FAILURE_THRESHOLD = int(os.getenv("CIRCUIT_FAILURE_THRESHOLD", "5"))
CIRCUIT_SUCCESS_THRESHOLD = int(os.getenv("CIRCUIT_SUCCESS_THRESHOLD", "2"))
CIRCUIT_TIMEOUT_SECONDS = float(os.getenv("CIRCUIT_TIMEOUT_SECONDS", "60"))
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))
HTTP_MAX_RETRIES = int(os.getenv("HTTP_MAX_RETRIES", "3"))
HTTP_RETRY_BASE_SECONDS = float(os.getenv("HTTP_RETRY_BASE_SECONDS", "1"))

# Sync window
SYNC_LOOKBACK_DAYS = int(os.getenv("SYNC_LOOKBACK_DAYS", "30"))
SYNC_WINDOW_HOURS = int(os.getenv("SYNC_WINDOW_HOURS", "96"))
SYNC_LOOKAHEAD_HOURS = int(os.getenv("SYNC_LOOKAHEAD_HOURS", "24"))
SYNC_MAX_PAGES = int(os.getenv("SYNC_MAX_PAGES", "100"))
SYNC_MAX_WORKERS = int(os.getenv("SYNC_MAX_WORKERS", "4"))

# Webhook retries
WEBHOOK_MAX_RETRIES = int(os.getenv("WEBHOOK_MAX_RETRIES", "3"))
WEBHOOK_RETRY_BATCH_SIZE = int(os.getenv("WEBHOOK_RETRY_BATCH_SIZE", "50"))
WEBHOOK_ALERT_THRESHOLD = int(os.getenv("WEBHOOK_ALERT_THRESHOLD", "5"))
WEBHOOK_ALERT_WINDOW_MINUTES = int(os.getenv("WEBHOOK_ALERT_WINDOW_MINUTES", "60"))

# Per-account advisory lock
ACCOUNT_LOCK_ENABLED = os.getenv("ACCOUNT_LOCK_ENABLED", "false").lower() == "true"
ACCOUNT_LOCK_TTL_SECONDS = int(os.getenv("ACCOUNT_LOCK_TTL_SECONDS", "900"))

# Catalog discovery
DISCOVERY_LOOKBACK_DAYS = int(os.getenv("DISCOVERY_LOOKBACK_DAYS", "90"))
DISCOVERY_MAX_PAGES = int(os.getenv("DISCOVERY_MAX_PAGES", "5"))
DISCOVERY_SEARCH_TERMS: list[str] = [
    term.strip().lower()
    for term in os.getenv(
        "DISCOVERY_SEARCH_TERMS",
        "click a tree,click-a-tree,clickatree,baum pflanzen,plant a tree,tree planting",
    ).split(",")
    if term.strip()
]
