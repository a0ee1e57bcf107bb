"""
Error taxonomy for the kfbridge service.

Every failure the core raises derives from KfBridgeError so callers at the
edges (webhook controller, sync engine, CLI) can tell expected platform and
I/O failures apart from programming errors.
"""


class KfBridgeError(Exception):
    """Base class for all kfbridge errors."""


class ConfigError(KfBridgeError):
    """Malformed or missing configuration (credentials, AES key)."""


class CryptoError(KfBridgeError):
    """Callback payload failed decryption, padding or length validation."""


class TransportError(KfBridgeError):
    """HTTP-level failure talking to the platform (non-2xx, timeout, network)."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(message)


class PlatformError(KfBridgeError):
    """The platform answered with a non-zero errcode."""

    def __init__(self, operation: str, errcode: int, errmsg: str = ""):
        self.operation = operation
        self.errcode = errcode
        self.errmsg = errmsg
        super().__init__(f"{operation} failed: {errcode} {errmsg}".rstrip())


class TokenExpiredError(PlatformError):
    """errcode signals a stale or invalid access token."""


class PersistenceError(KfBridgeError):
    """Disk I/O failure while writing cursor or registry state."""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)
