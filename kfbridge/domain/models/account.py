"""
Account model.

One record per discovered open_kfid carrying a single status, instead of
separate discovered/disabled/deleted collections.
"""

from enum import Enum

from pydantic import BaseModel, Field


class AccountStatus(str, Enum):
    """Lifecycle status of a customer-service account."""

    ACTIVE = "active"
    DISABLED = "disabled"
    DELETED = "deleted"


class Account(BaseModel):
    """A customer-service account (open_kfid) discovered from callbacks or polling."""

    account_id: str = Field(..., min_length=1, description="Platform open_kfid")
    status: AccountStatus = AccountStatus.ACTIVE

    @property
    def enabled(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    @property
    def deleted(self) -> bool:
        return self.status == AccountStatus.DELETED
