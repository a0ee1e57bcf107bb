"""
Settings for the kfbridge service.

Simple, reliable environment variable configuration focused on the WeChat KF
callback, token and sync pipeline.
"""

import os
import tomllib
from pathlib import Path

from dotenv import load_dotenv

from kfbridge.core.exceptions import ConfigError
from kfbridge.domain.models.credentials import CallbackCredential, EnterpriseCredential

# Load .env file for local development - look in current working directory
load_dotenv(".env")


def _get_version_from_pyproject() -> str:
    """
    Read version from pyproject.toml file.

    Returns:
        Version string from pyproject.toml, or fallback version
    """
    current_path = Path(__file__)
    for parent in [current_path.parent, *current_path.parents]:
        pyproject_path = parent / "pyproject.toml"
        if pyproject_path.exists():
            try:
                with open(pyproject_path, "rb") as f:
                    pyproject_data = tomllib.load(f)
                    version = pyproject_data.get("project", {}).get("version")
                    if version:
                        return version
            except (OSError, tomllib.TOMLDecodeError):
                continue

    return "0.1.0"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


class Settings:
    """Application settings with environment-based configuration."""

    def __init__(self):
        # ================================================================
        # Version & General Configuration
        # ================================================================
        self.version: str = _get_version_from_pyproject()
        self.port: int = _int_env("PORT", 8000)
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")
        self.log_dir: str = os.getenv("LOG_DIR", "./logs")
        self.environment: str = os.getenv("ENVIRONMENT", "DEV")

        # ================================================================
        # WeChat KF Credentials
        # ================================================================
        self.corp_id: str | None = os.getenv("KF_CORP_ID")
        self.app_secret: str | None = os.getenv("KF_APP_SECRET")
        self.callback_token: str | None = os.getenv("KF_CALLBACK_TOKEN")
        self.encoding_aes_key: str | None = os.getenv("KF_ENCODING_AES_KEY")

        # ================================================================
        # Webhook & API Configuration
        # ================================================================
        self.webhook_path: str = os.getenv("KF_WEBHOOK_PATH", "/wechat-kf")
        self.api_base_url: str = os.getenv(
            "KF_API_BASE_URL", "https://qyapi.weixin.qq.com/cgi-bin"
        )
        self.max_body_bytes: int = _int_env("KF_MAX_BODY_BYTES", 64 * 1024)

        # ================================================================
        # Sync Configuration
        # ================================================================
        self.state_dir: str = os.getenv(
            "KF_STATE_DIR", str(Path.home() / ".kfbridge" / "state")
        )
        self.poll_interval: int = _int_env("KF_POLL_INTERVAL", 30)
        self.max_message_age: int = _int_env("KF_MAX_MESSAGE_AGE", 48 * 3600)
        self.sync_page_limit: int = _int_env("KF_SYNC_PAGE_LIMIT", 1000)
        self.cold_start_max_pages: int = _int_env("KF_COLD_START_MAX_PAGES", 0)

        # Optional downstream forwarder
        self.forward_url: str | None = os.getenv("KF_FORWARD_URL") or None

        # Sender admission: open | allowlist | disabled
        self.dm_policy: str = os.getenv("KF_DM_POLICY", "open")
        self.allow_from: list[str] = [
            sender.strip()
            for sender in os.getenv("KF_ALLOW_FROM", "").split(",")
            if sender.strip()
        ]

        self._validate_settings()

    def _validate_settings(self):
        """Validate settings values."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
        if self.log_level.upper() not in valid_levels:
            raise ConfigError(f"LOG_LEVEL must be one of {valid_levels}")
        self.log_level = self.log_level.upper()

        valid_environments = ["DEV", "PROD"]
        if self.environment.upper() not in valid_environments:
            self.environment = "DEV"  # Default fallback
        self.environment = self.environment.upper()

        if not self.webhook_path.startswith("/"):
            self.webhook_path = "/" + self.webhook_path

        if self.poll_interval < 0:
            raise ConfigError("KF_POLL_INTERVAL must be >= 0")
        if self.sync_page_limit < 1 or self.sync_page_limit > 1000:
            raise ConfigError("KF_SYNC_PAGE_LIMIT must be between 1 and 1000")
        if self.max_body_bytes < 1:
            raise ConfigError("KF_MAX_BODY_BYTES must be positive")

        self.dm_policy = self.dm_policy.lower()
        if self.dm_policy not in ("open", "allowlist", "disabled"):
            raise ConfigError("KF_DM_POLICY must be one of open, allowlist, disabled")

    def validate_credentials(self) -> None:
        """
        Validate the credentials required to run the server.

        Only called from server startup so that CLI commands like
        `kfbridge accounts list` work without credentials.

        Raises:
            ConfigError: If any credential is missing
        """
        missing = [
            name
            for name, value in (
                ("KF_CORP_ID", self.corp_id),
                ("KF_APP_SECRET", self.app_secret),
                ("KF_CALLBACK_TOKEN", self.callback_token),
                ("KF_ENCODING_AES_KEY", self.encoding_aes_key),
            )
            if not value
        ]
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")

    @property
    def enterprise_credential(self) -> EnterpriseCredential:
        """Enterprise credential shared by every account of this deployment."""
        self.validate_credentials()
        return EnterpriseCredential(corp_id=self.corp_id, app_secret=self.app_secret)

    @property
    def callback_credential(self) -> CallbackCredential:
        """Callback signing token plus AES key material."""
        self.validate_credentials()
        return CallbackCredential(
            token=self.callback_token, encoding_aes_key=self.encoding_aes_key
        )

    @property
    def polling_enabled(self) -> bool:
        return self.poll_interval > 0

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "DEV"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "PROD"


# Global settings instance
settings = Settings()
