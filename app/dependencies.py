"""FastAPI dependencies: shared clients built by create_app and kept on app.state."""

from fastapi import Request

from app.repos.firestore_repo import JobRepo
from app.repos.local_backup import LocalBackup
from app.services.brightdata_client import BrightDataClient
from app.services.webhook_receiver import WebhookReceiver


def get_repo(request: Request) -> JobRepo:
    return request.app.state.repo


def get_backup(request: Request) -> LocalBackup:
    return request.app.state.backup


def get_brightdata(request: Request) -> BrightDataClient:
    return request.app.state.brightdata


def get_receiver(request: Request) -> WebhookReceiver:
    return request.app.state.receiver
