import logging
import os
from typing import Any

from dotenv import load_dotenv, find_dotenv
from flask import Flask, request
import sentry_sdk
from sentry_sdk.integrations.flask import FlaskIntegration

load_dotenv(find_dotenv())

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from .backend.client import ErrorKind
from .backend.http_client import HttpBackendConfig, HttpIslandEntryClient
from .config import SETTINGS
from .registration.controller import IslandEntryController
from .registration.fee import FeeConfig
from .registration.lookup import ResultLookup
from .storage.redis_submission_store import RedisSubmissionStore, create_redis_client
from .storage.submission_store import SubmissionStore

if SETTINGS.sentry_dsn:
    sentry_sdk.init(
        dsn=SETTINGS.sentry_dsn,
        environment=SETTINGS.sentry_environment,
        traces_sample_rate=SETTINGS.sentry_traces_sample_rate,
        integrations=[FlaskIntegration()],
    )

app = Flask(__name__)

_REDIS = None


def _init_redis() -> None:
    global _REDIS
    if _REDIS is not None or not SETTINGS.redis_url:
        return
    try:
        client = create_redis_client(SETTINGS.redis_url)
        if client is None:
            return
        # Validate connectivity early in production if requested.
        if SETTINGS.redis_required:
            client.ping()
        _REDIS = client
        logger.info("Redis enabled for submission de-dupe")
    except Exception:  # noqa: BLE001
        logger.exception("Failed to initialize Redis")
        if SETTINGS.redis_required:
            raise


_init_redis()


if _REDIS is not None:
    SUBMISSIONS = RedisSubmissionStore(
        redis_client=_REDIS,
        ttl_seconds=SETTINGS.submission_ttl_seconds,
        key_prefix=SETTINGS.redis_key_prefix,
    )
else:
    SUBMISSIONS = SubmissionStore(ttl_seconds=SETTINGS.submission_ttl_seconds)
BACKEND = HttpIslandEntryClient(
    HttpBackendConfig(
        base_url=SETTINGS.backend_base_url,
        timeout_seconds=SETTINGS.backend_timeout_seconds,
        auth_bearer_token=SETTINGS.backend_auth_bearer_token,
    )
)
FEE_CONFIG = FeeConfig(BACKEND, refresh_interval_seconds=SETTINGS.fee_refresh_seconds)

# Load the entry fee once at start-up; screens share it from here on and a
# background thread keeps it current.
if BACKEND.is_configured():
    _initial_fee = FEE_CONFIG.refresh()
    if not _initial_fee.ok:
        logger.warning("Entry fee not loaded at start-up: %s", _initial_fee.error)
    FEE_CONFIG.start_background_refresh()
else:
    logger.warning("ISLAND_ENTRY_API_URL is not configured; backend calls will fail")


_HTTP_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.BUSINESS_RULE: 409,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFIGURATION: 503,
    ErrorKind.NETWORK: 502,
}


def _controller() -> IslandEntryController:
    return IslandEntryController(BACKEND, FEE_CONFIG, submissions=SUBMISSIONS)


def _error(kind: ErrorKind | None, message: str | None) -> tuple[dict[str, object], int]:
    k = kind or ErrorKind.NETWORK
    return {"error": message or "Request failed.", "kind": k.value}, _HTTP_STATUS[k]


def _json_body() -> dict[str, Any]:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


@app.get("/health")
def health() -> tuple[str, int]:
    return "ok", 200


@app.get("/fee")
def fee() -> tuple[dict[str, object], int]:
    result = FEE_CONFIG.get()
    if not result.ok or result.fee is None:
        return _error(ErrorKind.CONFIGURATION, result.error)
    return {"amount": result.fee.amount, "is_enabled": result.fee.is_enabled}, 200


@app.post("/registrations")
@app.post("/registrations/")
def create_registration() -> tuple[dict[str, object], int]:
    idempotency_key = (request.headers.get("Idempotency-Key") or "").strip() or None
    result = _controller().register(_json_body(), idempotency_key=idempotency_key)
    if not result.ok or result.registration is None:
        return _error(result.error_kind, result.error)
    return result.registration.to_dict(), 201


@app.get("/registrations/result")
@app.get("/registrations/result/")
def registration_result() -> tuple[dict[str, object], int]:
    # Always 200: the page renders every state, including no_code and error.
    view = ResultLookup(BACKEND).load(request.args.get("code"))
    return view.to_dict(), 200


@app.get("/island-entry/status/<code>")
def entry_status(code: str) -> tuple[dict[str, object], int]:
    result = _controller().check_payment_status(code)
    if not result.ok or result.entry is None:
        return _error(result.error_kind, result.error)
    entry = result.entry
    return (
        {
            "unique_code": entry.unique_code,
            "status": entry.status,
            "qr_code_url": entry.qr_code_url,
            "payment_link": entry.payment_link,
        },
        200,
    )


@app.get("/island-entry")
@app.get("/island-entry/")
def list_entries() -> tuple[dict[str, object], int]:
    result = _controller().get_all_island_entries()
    if not result.ok:
        return _error(result.error_kind, result.error)
    return {"count": len(result.entries), "entries": [e.to_dict() for e in result.entries]}, 200


@app.get("/island-entry/members/<code>")
def entry_members(code: str) -> tuple[dict[str, object], int]:
    result = _controller().lookup_entry(code)
    if not result.ok or result.registration is None:
        return _error(result.error_kind, result.error)
    return (
        {
            "registration": result.registration.to_dict(),
            "members": [
                {
                    "name": m.name,
                    "age": m.age,
                    "sex": m.sex,
                    "is_foreign": m.is_foreign,
                    "municipality": m.municipality,
                    "province": m.province,
                    "country": m.country,
                }
                for m in result.members
            ],
        },
        200,
    )


@app.post("/island-entry/check-in")
def check_in() -> tuple[dict[str, object], int]:
    code = str(_json_body().get("unique_code") or "").strip()
    if not code:
        return _error(ErrorKind.VALIDATION, "Unique code is required.")
    result = _controller().check_in(code)
    if not result.ok:
        return _error(result.error_kind, result.error)
    return {"message": result.message or "Check-in successful!"}, 200


@app.post("/island-entry/mark-paid")
def mark_paid() -> tuple[dict[str, object], int]:
    code = str(_json_body().get("unique_code") or "").strip()
    if not code:
        return _error(ErrorKind.VALIDATION, "Unique code is required.")
    result = _controller().mark_paid(code)
    if not result.ok:
        return _error(result.error_kind, result.error)
    return {"message": result.message or "Payment marked as received!"}, 200


@app.post("/island-entry/walk-in")
def walk_in() -> tuple[dict[str, object], int]:
    members = _json_body().get("groupMembers")
    result = _controller().register_walk_in(members if isinstance(members, list) else [])
    if not result.ok or result.registration is None:
        return _error(result.error_kind, result.error)
    return result.registration.to_dict(), 201


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", str(SETTINGS.port))), debug=False)
