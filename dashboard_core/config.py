"""
Centralised configuration constants and environment helpers.
"""

import logging
import os
import sys

from dotenv import load_dotenv

load_dotenv()

# ── Action keys ──────────────────────────────────────────────────────
ACTION_NAMESPACE = "dashboard-core"

# ── Catalog ──────────────────────────────────────────────────────────
SYSTEM_OWNER_ID = "system"
TEMPLATE_REGISTRY_PATH = os.getenv(
    "DASHBOARD_TEMPLATES_PATH",
    os.path.join(".hit", "generated", "dashboard-templates.json"),
)
# 0 disables caching; the registry can change between deploys.
CATALOG_CACHE_TTL_SECONDS = float(os.getenv("CATALOG_CACHE_TTL_SECONDS", "0"))

DEFAULT_LAYOUT = {"grid": {"cols": 12, "rowHeight": 36, "gap": 14}}
DEFAULT_TIME = {"mode": "picker", "default": "last_30_days"}

# ── Report blocks ────────────────────────────────────────────────────
PIE_DEFAULT_TITLE = "Pie"
PIE_DEFAULT_GROUP_BY_KEY = "region"
PIE_DEFAULT_OTHER_LABEL = "Other"
PIE_TOP_N_DEFAULT = 5
PIE_TOP_N_MIN = 1
PIE_TOP_N_MAX = 25

# ── Upstream collaborators ───────────────────────────────────────────
UPSTREAM_TIMEOUT_SECONDS = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "5"))
UPSTREAM_MAX_WORKERS = int(os.getenv("UPSTREAM_MAX_WORKERS", "8"))
DB_POOL_TIMEOUT_SECONDS = float(os.getenv("DB_POOL_TIMEOUT_SECONDS", "10"))

# ── API server ───────────────────────────────────────────────────────
TOKEN_COOKIE_NAME = "hit_token"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s:%(lineno)d] %(message)s"


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Attach a single stream handler to the root logger."""
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)
