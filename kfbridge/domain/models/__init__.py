"""Domain models for kfbridge."""

from .account import Account, AccountStatus
from .credentials import CallbackCredential, EnterpriseCredential

__all__ = [
    "Account",
    "AccountStatus",
    "CallbackCredential",
    "EnterpriseCredential",
]
