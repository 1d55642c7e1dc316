# catalog_sync/errors.py
from typing import Optional


class SyncError(Exception):
    pass


class SignatureInvalid(SyncError):
    pass


class ConfigurationMissing(SyncError):
    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__("Missing configuration: " + ", ".join(self.missing))


class MappingNotFound(SyncError):
    pass


class PersistenceError(SyncError):
    pass


class TargetPlatformError(SyncError):
    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TransientPlatformError(TargetPlatformError):
    """5xx, 409 and connection failures; safe to retry."""


class TargetPlatformRateLimited(TransientPlatformError):
    def __init__(self, message: str, retry_after: Optional[float] = None, body: str = ""):
        super().__init__(message, status_code=429, body=body)
        self.retry_after = retry_after
