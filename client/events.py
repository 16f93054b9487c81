"""
Message event hub for the chat client.

Plugins hook the send path with pre-send listeners and observe inbound
traffic with message-create listeners.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List

logger = logging.getLogger(__name__)


@dataclass
class Message:
    """A chat message as relayed by the server"""
    id: str
    channel_id: str
    author: str
    content: str
    timestamp: str = ""
    state: str = "SENT"

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        return cls(
            id=str(data["id"]),
            channel_id=str(data["channel_id"]),
            author=data.get("author", ""),
            content=data.get("content", ""),
            timestamp=data.get("timestamp", ""),
        )


@dataclass
class OutgoingMessage:
    """Mutable outgoing message handed to pre-send listeners"""
    content: str


@dataclass
class MessageCreate:
    """Event fired once per newly created message"""
    message: Message
    optimistic: bool = False


PreSendListener = Callable[[str, OutgoingMessage], Awaitable[bool]]
MessageCreateListener = Callable[[MessageCreate], Awaitable[None]]


class MessageEvents:
    """Registry of send/receive listeners"""

    def __init__(self):
        self.pre_send_listeners: List[PreSendListener] = []
        self.message_create_listeners: List[MessageCreateListener] = []

    def add_pre_send_listener(self, listener: PreSendListener):
        self.pre_send_listeners.append(listener)

    def remove_pre_send_listener(self, listener: PreSendListener):
        if listener in self.pre_send_listeners:
            self.pre_send_listeners.remove(listener)

    def add_message_create_listener(self, listener: MessageCreateListener):
        self.message_create_listeners.append(listener)

    def remove_message_create_listener(self, listener: MessageCreateListener):
        if listener in self.message_create_listeners:
            self.message_create_listeners.remove(listener)

    async def dispatch_pre_send(self, channel_id: str, message: OutgoingMessage) -> bool:
        """
        Run pre-send listeners in order.

        Returns:
            False as soon as one listener cancels the send
        """
        for listener in list(self.pre_send_listeners):
            if not await listener(channel_id, message):
                return False
        return True

    async def dispatch_message_create(self, event: MessageCreate):
        for listener in list(self.message_create_listeners):
            try:
                await listener(event)
            except Exception:
                logger.exception("Message listener failed for %s", event.message.id)
