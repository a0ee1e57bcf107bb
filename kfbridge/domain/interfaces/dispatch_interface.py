"""
Downstream dispatch interface.

Defines the contract between the sync engine and whatever consumes admitted
customer messages (an agent runtime, a queue, an HTTP endpoint).
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field


class InboundEnvelope(BaseModel):
    """One admitted, deduplicated customer message ready for delivery."""

    account_id: str = Field(..., description="open_kfid that received the message")
    sender_id: str = Field(..., description="external_userid of the customer")
    message_id: str
    send_time: int = Field(..., description="Platform send time, epoch seconds")
    msgtype: str
    display_text: str
    media_refs: list[str] = Field(default_factory=list)


class IMessageDispatcher(ABC):
    """
    Receives admitted inbound messages.

    Implementations may raise; the sync engine logs the error and moves on to
    the next message, so one bad delivery never stalls a page.
    """

    @abstractmethod
    async def dispatch(self, envelope: InboundEnvelope) -> None:
        """Deliver one message downstream."""
        pass

    async def close(self) -> None:
        """Release resources held by the dispatcher."""
        return None
