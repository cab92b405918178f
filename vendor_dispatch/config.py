# ----------------------------------------------------------------
# Import configuration variables to be used throughout the project
# ----------------------------------------------------------------
import os
import json as _json
from dotenv import load_dotenv

# Load .env (allow container env to override file values)
load_dotenv(override=True)


def _rstrip_slash(s: str) -> str:
    return (s or "").rstrip("/")


def _get_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "on", "y"}


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw) if raw.strip() else default
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    try:
        return float(raw) if raw.strip() else default
    except ValueError:
        return default


def _get_json_map(name: str, default: dict | None = None) -> dict:
    raw = os.getenv(name, "")
    if not raw:
        return default or {}
    try:
        return _json.loads(raw)
    except Exception:
        return default or {}


def _get_list(name: str, default: str) -> list[str]:
    return [p.strip() for p in os.getenv(name, default).split(",") if p.strip()]


# Per-vendor sliding window: {"vendor": {"limit": N, "window": seconds}}
DEFAULT_RATE_LIMITS = {
    "sync": {"limit": 30, "window": 60.0},
    "async": {"limit": 20, "window": 60.0},
}

DEFAULT_SENSITIVE_FIELDS = "ssn,social_security_number,credit_card,password,secret"


class Settings:
    # ── Storage / Queue ──────────────────────────────────────────────────────
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./data/vendor_service.db")
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    # "redis" for the shared list, "memory" for a single-process asyncio.Queue
    QUEUE_BACKEND: str = os.getenv("QUEUE_BACKEND", "redis").strip().lower()
    QUEUE_NAME: str = os.getenv("QUEUE_NAME", "job_queue")
    QUEUE_POP_TIMEOUT: int = _get_int("QUEUE_POP_TIMEOUT", 5)

    # ── Worker ───────────────────────────────────────────────────────────────
    WORKER_ERROR_BACKOFF: float = _get_float("WORKER_ERROR_BACKOFF", 5.0)
    MAX_RETRIES: int = _get_int("MAX_RETRIES", 3)
    RETRY_BASE_DELAY: float = _get_float("RETRY_BASE_DELAY", 1.0)
    RATE_LIMIT_POLL_INTERVAL: float = _get_float("RATE_LIMIT_POLL_INTERVAL", 1.0)
    # "random" picks a vendor per attempt, "sticky" keeps the first assignment
    VENDOR_SELECTION: str = os.getenv("VENDOR_SELECTION", "random").strip().lower()
    RUN_WORKER_IN_APP: bool = _get_bool("RUN_WORKER_IN_APP", False)
    # pending jobs idle longer than this are re-enqueued when a worker starts
    STALE_PENDING_SECONDS: float = _get_float("STALE_PENDING_SECONDS", 600.0)

    # ── Vendors ──────────────────────────────────────────────────────────────
    MOCK_VENDOR_SYNC_URL: str = _rstrip_slash(os.getenv("MOCK_VENDOR_SYNC_URL", "http://localhost:3001"))
    MOCK_VENDOR_ASYNC_URL: str = _rstrip_slash(os.getenv("MOCK_VENDOR_ASYNC_URL", "http://localhost:3002"))
    VENDOR_SYNC_TIMEOUT: float = _get_float("VENDOR_SYNC_TIMEOUT", 30.0)
    VENDOR_ASYNC_TIMEOUT: float = _get_float("VENDOR_ASYNC_TIMEOUT", 10.0)
    VENDOR_RATE_LIMITS: dict = _get_json_map("VENDOR_RATE_LIMITS", DEFAULT_RATE_LIMITS)

    # Field names stripped from vendor results at any depth
    SENSITIVE_FIELDS: list[str] = _get_list("SENSITIVE_FIELDS", DEFAULT_SENSITIVE_FIELDS)

    # ── Housekeeping ─────────────────────────────────────────────────────────
    JOB_RETENTION_DAYS: int = _get_int("JOB_RETENTION_DAYS", 30)
    HOUSEKEEPING_INTERVAL: float = _get_float("HOUSEKEEPING_INTERVAL", 3600.0)

    # ── HTTP ─────────────────────────────────────────────────────────────────
    # Comma-separated list in .env, e.g. "https://example.com, https://foo.bar"
    CORS_ORIGINS: list[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    PORT: int = _get_int("PORT", 3000)

    # ── Mock vendor (vendor_dispatch.vendors.mock_vendor) ────────────────────
    VENDOR_TYPE: str = os.getenv("VENDOR_TYPE", "sync").strip().lower()
    API_SERVER_URL: str = _rstrip_slash(os.getenv("API_SERVER_URL", "http://localhost:3000"))


settings = Settings()
