"""
Credential models for the WeChat KF platform.

Credentials are supplied by configuration and read-only to the core.
"""

import hashlib

from pydantic import BaseModel, ConfigDict, Field


class EnterpriseCredential(BaseModel):
    """Enterprise id + secret, shared by all accounts of one deployment."""

    model_config = ConfigDict(frozen=True)

    corp_id: str = Field(..., min_length=1, description="WeCom enterprise id")
    app_secret: str = Field(
        ..., min_length=1, repr=False, description="Customer-service app secret"
    )

    @property
    def cache_key(self) -> str:
        """
        Key under which the access token for this credential is cached.

        The secret is hashed so it never shows up as a visible map key.
        """
        digest = hashlib.sha256(self.app_secret.encode("utf-8")).hexdigest()[:16]
        return f"{self.corp_id}:{digest}"


class CallbackCredential(BaseModel):
    """Callback signing token plus the 43-character EncodingAESKey."""

    model_config = ConfigDict(frozen=True)

    token: str = Field(..., min_length=1, repr=False)
    encoding_aes_key: str = Field(..., min_length=1, repr=False)
