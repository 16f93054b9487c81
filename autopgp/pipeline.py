"""
Encryption and decryption pipelines.

The encryption pipeline sits on the outbound send path and fails closed: if
anything prevents a message from being encrypted, the send is blocked and the
plaintext is dropped. The decryption pipeline turns an inbound armored message
into plaintext or None, without ever telling the user why it failed.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from .armor import is_encrypted_message
from .bridge import CryptoBridge
from .errors import FailureKind
from .host import Directory, Notifier
from .keystore import KeyStore

logger = logging.getLogger(__name__)

NOT_SENT = "Message not sent."


@dataclass
class ContinueSend:
    """Send the message with this content."""
    content: str


@dataclass
class Blocked:
    """Do not send; the outgoing content must be cleared."""
    kind: FailureKind
    reason: str
    missing_recipients: List[str] = field(default_factory=list)
    content: str = ""


SendResult = Union[ContinueSend, Blocked]


class EncryptionPipeline:
    """
    Turns outgoing plaintext into ciphertext for the channel's recipients.

    The local user's own public key is always added to the recipients so a
    sent message stays readable by its author.
    """

    def __init__(self, bridge: CryptoBridge, keystore: KeyStore, directory: Directory, notify: Notifier):
        self.bridge = bridge
        self.keystore = keystore
        self.directory = directory
        self.notify = notify

    def _block(self, kind: FailureKind, reason: str, missing: Optional[List[str]] = None) -> Blocked:
        self.notify(reason)
        return Blocked(kind=kind, reason=reason, missing_recipients=list(missing or []))

    def _display_names(self, user_ids: List[str]) -> str:
        names = (self.directory.get_display_name(user_id) for user_id in user_ids)
        return ", ".join(name for name in names if name)

    async def process(self, channel_id: str, content: str) -> SendResult:
        """
        Decide what to send for an outgoing message.

        Args:
            channel_id: Destination channel
            content: Plaintext the user typed

        Returns:
            ContinueSend with the content to transmit, or Blocked
        """
        enabled = await self.keystore.is_channel_enabled(channel_id)
        channel = self.directory.get_channel(channel_id)

        if not enabled or channel is None or not channel.is_private or not (content or "").strip():
            return ContinueSend(content)

        # Fail closed before any cryptographic work
        recipient_keys = await self.keystore.get_recipient_keys()
        missing = [user_id for user_id in channel.recipients if not recipient_keys.get(user_id)]
        if missing:
            return self._block(
                FailureKind.KEY_UNAVAILABLE,
                f"PGP key not found for: {self._display_names(missing)}. {NOT_SENT}",
                missing,
            )

        identity = await self.keystore.get_identity()
        if not identity.is_complete:
            return self._block(
                FailureKind.CONFIGURATION,
                f"PGP error: your public or private key is not set. {NOT_SENT}",
            )

        try:
            signing_key = await self.bridge.unlock_private_key(identity.private_key, identity.passphrase)
            if signing_key is None:
                return self._block(
                    FailureKind.UNLOCK_FAILURE,
                    f"PGP error: could not unlock your private key. Check your key and passphrase. {NOT_SENT}",
                )

            armored_keys = [recipient_keys[user_id] for user_id in channel.recipients]
            armored_keys.append(identity.public_key)
            encryption_keys = await self.bridge.parse_keys(armored_keys)

            ciphertext = await self.bridge.encrypt_for_recipients(content, encryption_keys, signing_key)
        except Exception as e:
            logger.error("PGP encryption failed: %s", e)
            return self._block(
                FailureKind.CRYPTO_FAILURE,
                "PGP error: could not encrypt the message. It will not be sent.",
            )

        return ContinueSend(ciphertext)

    async def intercept(self, channel_id: str, message) -> bool:
        """
        Pre-send hook for the host client.

        Rewrites message.content with what may be sent ("" when blocked).

        Returns:
            True to let the host send the message, False to cancel it
        """
        result = await self.process(channel_id, message.content)
        message.content = result.content
        return isinstance(result, ContinueSend)


class DecryptionPipeline:
    """Recovers plaintext from inbound PGP messages with the local private key."""

    def __init__(self, bridge: CryptoBridge, keystore: KeyStore):
        self.bridge = bridge
        self.keystore = keystore

    @staticmethod
    def is_eligible(content) -> bool:
        return is_encrypted_message(content)

    async def decrypt(self, content: str) -> Optional[str]:
        """
        Decrypt an armored PGP message.

        Args:
            content: Message content containing the PGP MESSAGE marker

        Returns:
            Plaintext, or None if the message could not be decrypted
        """
        try:
            identity = await self.keystore.get_identity()
            if not identity.private_key:
                logger.error("Private key not set for decryption")
                return None

            private_key = await self.bridge.unlock_private_key(identity.private_key, identity.passphrase)
            if private_key is None:
                return None

            return await self.bridge.decrypt_with_key(content, private_key)
        except Exception as e:
            logger.error("PGP decryption failed: %s", e)
            return None
