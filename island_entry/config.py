import os


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_first(*names: str) -> str:
    for name in names:
        value = (os.getenv(name) or "").strip()
        if value:
            return value
    return ""


class Settings:
    def __init__(self) -> None:
        self.port = _env_int("PORT", 5000)

        # Tourism backend. The front ends configure the same base URL through
        # NEXT_PUBLIC_API_URL (web) and EXPO_PUBLIC_API_URL (mobile), e.g.
        #   https://api.example.org/api/v1/
        self.backend_base_url = _env_first("ISLAND_ENTRY_API_URL", "NEXT_PUBLIC_API_URL", "EXPO_PUBLIC_API_URL")
        self.backend_timeout_seconds = _env_int("BACKEND_TIMEOUT_SECONDS", 15)
        self.backend_auth_bearer_token = os.getenv("BACKEND_AUTH_BEARER_TOKEN", "").strip()

        # Entry fee is loaded once and shared; re-fetched after this many seconds.
        self.fee_refresh_seconds = _env_int("FEE_REFRESH_SECONDS", 5 * 60)

        # How long an Idempotency-Key keeps pointing at its first registration.
        self.submission_ttl_seconds = _env_int("SUBMISSION_TTL_SECONDS", 24 * 60 * 60)

        # Optional: Redis for de-duplicating submissions across workers.
        # Example: redis://localhost:6379/0
        self.redis_url = os.getenv("REDIS_URL", "").strip()
        self.redis_key_prefix = os.getenv("REDIS_KEY_PREFIX", "island_entry").strip() or "island_entry"
        self.redis_required = _env_bool("REDIS_REQUIRED", False)

        # Error tracking via Sentry.  Set SENTRY_DSN to enable.
        # Example: https://<key>@o<org>.ingest.sentry.io/<project>
        self.sentry_dsn = os.getenv("SENTRY_DSN", "").strip()
        self.sentry_environment = os.getenv("SENTRY_ENVIRONMENT", "production").strip() or "production"
        self.sentry_traces_sample_rate = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1") or "0.1")


SETTINGS = Settings()
