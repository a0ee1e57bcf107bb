"""
Sync context management using contextvars for automatic propagation.

The sync engine sets the account once per run and every log line emitted
while that run is in progress (client calls, persistence, dispatch) picks it
up without passing it around.
"""

from contextvars import ContextVar, Token

_account_context: ContextVar[str | None] = ContextVar("account_id", default=None)
_sender_context: ContextVar[str | None] = ContextVar("sender_id", default=None)


def set_sync_context(
    account_id: str | None = None, sender_id: str | None = None
) -> Token | None:
    """
    Set the account (and optionally sender) for the current async context.

    Args:
        account_id: open_kfid being synced
        sender_id: external_userid of the message being processed

    Returns:
        Token for the account variable, usable with reset_sync_context()
    """
    token = None
    if account_id is not None:
        token = _account_context.set(account_id)
    if sender_id is not None:
        _sender_context.set(sender_id)
    return token


def reset_sync_context(token: Token | None) -> None:
    """Restore the account context captured by set_sync_context()."""
    if token is not None:
        _account_context.reset(token)
    _sender_context.set(None)


def get_current_account_context() -> str | None:
    """
    Get the current account id from context variables.

    Returns:
        Current open_kfid, or None if not set
    """
    return _account_context.get()


def get_current_sender_context() -> str | None:
    """
    Get the current sender id from context variables.

    Returns:
        Current external_userid, or None if not set
    """
    return _sender_context.get()


def clear_sync_context() -> None:
    """
    Clear the sync context.

    Context is isolated per task already; this is mostly useful in tests.
    """
    _account_context.set(None)
    _sender_context.set(None)


def get_context_info() -> dict[str, str | None]:
    """
    Get current context information for debugging.

    Returns:
        Dictionary with current account_id and sender_id
    """
    return {
        "account_id": get_current_account_context(),
        "sender_id": get_current_sender_context(),
    }


def clear_sender_context() -> None:
    """Drop the sender set for the message just processed."""
    _sender_context.set(None)
