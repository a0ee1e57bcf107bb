"""Default dispatcher: logs each admitted message."""

from kfbridge.core.logging.logger import get_logger

from ..interfaces.dispatch_interface import IMessageDispatcher, InboundEnvelope


class LoggingDispatcher(IMessageDispatcher):
    """Writes every envelope to the log. Used when no forward URL is set."""

    def __init__(self):
        self.logger = get_logger(__name__)
        self.dispatched = 0

    async def dispatch(self, envelope: InboundEnvelope) -> None:
        self.dispatched += 1
        preview = envelope.display_text.replace("\n", " ")[:120]
        self.logger.info(
            f"📨 [{envelope.account_id}] {envelope.sender_id} "
            f"({envelope.msgtype}, {envelope.message_id}): {preview}"
        )
