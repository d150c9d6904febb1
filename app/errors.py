"""Error taxonomy shared by the trigger, webhook and persistence layers."""

from typing import Optional


class RelayError(Exception):
    """Base class for every error this service raises on purpose."""

    status_code = 500


class ShapeDetectionFailure(RelayError):
    """No known payload shape matched, so no batch id could be recovered."""

    status_code = 400

    def __init__(self, message: str, receivedKeys: Optional[list] = None):
        super().__init__(message)
        self.receivedKeys = receivedKeys or []


class UnauthorizedWebhook(RelayError):
    status_code = 401


class InvalidTriggerResponse(RelayError):
    """The collection API answered without any recognizable identifier."""

    status_code = 502


class TriggerRequestFailed(RelayError):
    """The outbound trigger call itself failed (network, HTTP status)."""

    status_code = 502

    def __init__(self, platform: str, message: str):
        super().__init__(f"[{platform}] {message}")
        self.platform = platform


class PersistenceFailure(RelayError):
    status_code = 500


class UnknownCategory(RelayError):
    status_code = 500

    def __init__(self, category: str):
        super().__init__(f"Unknown category: {category!r}")
        self.category = category
