import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app import config
from app.errors import RelayError, ShapeDetectionFailure
from app.repos.firestore_repo import JobRepo
from app.repos.local_backup import LocalBackup
from app.routes import router
from app.services.brightdata_client import BrightDataClient
from app.services.webhook_receiver import WebhookReceiver

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_brightdata_client() -> BrightDataClient:
    return BrightDataClient(
        api_key=config.BRIGHTDATA_API_KEY,
        dataset_id=config.BRIGHTDATA_DATASET_ID,
        company_dataset_id=config.BRIGHTDATA_COMPANY_DATASET_ID,
        indeed_dataset_id=config.INDEED_DATASET_ID,
        indeed_api_key=config.INDEED_API_KEY,
        webhook_url=config.WEBHOOK_URL,
        webhook_secret=config.WEBHOOK_SECRET,
        base_url=config.BRIGHTDATA_BASE_URL,
        limit_per_input=config.LIMIT_PER_INPUT,
        timeout=config.TRIGGER_TIMEOUT_SECONDS,
    )


async def relay_error_handler(request: Request, exc: RelayError):
    body = {
        "success": False,
        "error": type(exc).__name__,
        "details": str(exc),
    }
    if isinstance(exc, ShapeDetectionFailure):
        body["receivedKeys"] = exc.receivedKeys
        body["hint"] = "Expected snapshot_id, snapshot, id, or snapshotId field"

    return JSONResponse(status_code=exc.status_code, content=body)


def create_app(
    *,
    repo: Optional[JobRepo] = None,
    backup: Optional[LocalBackup] = None,
    brightdata: Optional[BrightDataClient] = None,
    webhook_secret: Optional[str] = None,
) -> FastAPI:
    """
    Builds the app and owns its clients; tests pass their own.
    """
    app = FastAPI(
        title=config.APP_NAME,
        version="1.0.0"
    )

    app.state.repo = repo or JobRepo(project=config.FIRESTORE_PROJECT)
    app.state.backup = backup or LocalBackup(config.OUTPUT_DIR)
    app.state.brightdata = brightdata or build_brightdata_client()
    app.state.receiver = WebhookReceiver(
        app.state.repo,
        app.state.backup,
        config.WEBHOOK_SECRET if webhook_secret is None else webhook_secret,
    )

    if not app.state.repo.enabled():
        logger.warning("Firestore disabled: webhook deliveries are kept on disk only")

    app.add_exception_handler(RelayError, relay_error_handler)

    # ---------------------------
    # Routes
    # ---------------------------
    app.include_router(router)

    # ---------------------------
    # Health check
    # ---------------------------
    @app.get("/", tags=["health"])
    def health():
        return {
            "status": "ok",
            "service": config.APP_NAME,
            "store": "enabled" if app.state.repo.enabled() else "disabled",
        }

    return app


app = create_app()
