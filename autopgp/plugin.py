"""
AutoPGP plugin: wires the pipelines into a host chat client.

The host provides an event hub with pre-send and message-create listeners, a
directory of channels and users, a key-value store and a notification sink.
"""

import logging
from typing import Optional

from .bridge import CryptoBridge
from .engine import CryptoEngine, load_engine
from .host import Directory, Notifier
from .keystore import KeyStore, KeyValueStore
from .pipeline import DecryptionPipeline, EncryptionPipeline
from .presentation import DecryptionRegistry

logger = logging.getLogger(__name__)

DECRYPT_FAILED_NOTICE = "Could not decrypt the message. Check your key and passphrase."
SENDING = "SENDING"


class AutoPGP:
    """
    Encrypt outgoing and decrypt incoming messages with PGP.

    Args:
        store: Persistent key-value store
        directory: Channel and user lookups
        notify: Failure notification sink
        engine: Crypto engine; resolved with load_engine() on start() if None
    """

    name = "AutoPGP"

    def __init__(
        self,
        store: KeyValueStore,
        directory: Directory,
        notify: Notifier,
        engine: Optional[CryptoEngine] = None,
    ):
        self.keystore = KeyStore(store)
        self.directory = directory
        self.notify = notify
        self.engine = engine
        self.registry = DecryptionRegistry()
        self.encryption: Optional[EncryptionPipeline] = None
        self.decryption: Optional[DecryptionPipeline] = None
        self._events = None

    def start(self, events) -> None:
        """Resolve the engine and register listeners on the host's event hub."""
        if self.engine is None:
            self.engine = load_engine(on_unavailable=self.notify)

        bridge = CryptoBridge(self.engine)
        self.encryption = EncryptionPipeline(bridge, self.keystore, self.directory, self.notify)
        self.decryption = DecryptionPipeline(bridge, self.keystore)

        events.add_pre_send_listener(self.on_pre_send)
        events.add_message_create_listener(self.on_message_create)
        self._events = events
        logger.info("%s started", self.name)

    def stop(self) -> None:
        if self._events is not None:
            self._events.remove_pre_send_listener(self.on_pre_send)
            self._events.remove_message_create_listener(self.on_message_create)
            self._events = None
            logger.info("%s stopped", self.name)

    async def on_pre_send(self, channel_id: str, message) -> bool:
        return await self.encryption.intercept(channel_id, message)

    async def on_message_create(self, event) -> None:
        """Auto-decrypt newly created messages when the setting allows it."""
        message = event.message
        if event.optimistic or getattr(message, "state", None) == SENDING:
            return
        if not self.decryption.is_eligible(message.content):
            return
        if not await self.keystore.get_decrypt_messages():
            return

        text = await self.decryption.decrypt(message.content)
        if text:
            self.registry.deliver(message.id, text)

    def can_decrypt(self, message) -> bool:
        """Whether the "Decrypt Message" action applies to this message."""
        return DecryptionPipeline.is_eligible(getattr(message, "content", None))

    async def decrypt_message(self, message) -> bool:
        """
        On-demand decryption of a displayed message.

        Returns:
            True if the message was decrypted and handed to its display
        """
        if not self.can_decrypt(message):
            return False

        text = await self.decryption.decrypt(message.content)
        if not text:
            self.notify(DECRYPT_FAILED_NOTICE)
            return False

        self.registry.deliver(message.id, text)
        return True

    async def setup_identity(self, public_key: str, private_key: str, passphrase: str = "") -> None:
        await self.keystore.set_identity(public_key.strip(), private_key.strip(), passphrase)

    async def set_user_key(self, user_id: str, armored: str) -> None:
        await self.keystore.set_recipient_key(user_id, armored.strip())

    async def toggle_channel(self, channel_id: str) -> bool:
        return await self.keystore.toggle_channel(channel_id)

    async def set_auto_decrypt(self, enabled: bool) -> None:
        await self.keystore.set_decrypt_messages(enabled)
