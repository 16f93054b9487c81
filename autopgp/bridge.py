"""
Asynchronous call surface over the crypto engine.

Every input is normalized before it reaches the engine, and every engine call
runs in a worker thread so the event loop keeps serving the chat while RSA
operations are in progress.
"""

import asyncio
import logging
from typing import Any, List, Optional, Sequence

from .armor import normalize
from .engine import CryptoEngine
from .errors import CryptoFailure, EngineUnavailable

logger = logging.getLogger(__name__)


class CryptoBridge:
    """
    Thin async wrapper around a CryptoEngine.

    Unlock and decrypt failures are logged and reported as None; parse and
    encrypt failures propagate to the calling pipeline.
    """

    def __init__(self, engine: CryptoEngine):
        self.engine = engine

    async def parse_key(self, armored: str) -> Optional[Any]:
        """
        Parse an armored public or private key.

        Returns:
            The engine key, or None if the input is empty
        """
        cleaned = normalize(armored)
        if not cleaned:
            return None
        return await asyncio.to_thread(self.engine.parse_key, cleaned)

    async def parse_keys(self, armored_keys: Sequence[str]) -> List[Any]:
        """Parse several keys; an empty entry is an error here."""
        keys = await asyncio.gather(*(self.parse_key(armored) for armored in armored_keys))
        if any(key is None for key in keys):
            raise CryptoFailure("Empty key in recipient list")
        return list(keys)

    async def unlock_private_key(self, armored: str, passphrase: str) -> Optional[Any]:
        """
        Parse a private key and unlock it with its passphrase.

        Args:
            armored: Armored private key
            passphrase: Passphrase, or "" for an unprotected key

        Returns:
            A key usable for signing and decryption, or None if the key could
            not be parsed or the passphrase was rejected

        Raises:
            EngineUnavailable: The crypto engine never loaded
        """
        try:
            key = await self.parse_key(armored)
            if key is None:
                return None
            if not passphrase:
                return key
            return await asyncio.to_thread(self.engine.decrypt_private_key, key, passphrase)
        except EngineUnavailable:
            raise
        except Exception as e:
            logger.error("Could not unlock private key: %s", e)
            return None

    async def encrypt_for_recipients(self, plaintext: str, recipient_keys: List[Any], signing_key: Any) -> str:
        """
        Sign with signing_key and encrypt for every key in recipient_keys.

        Returns:
            Armored PGP message
        """
        message = await asyncio.to_thread(self.engine.create_message, plaintext)
        return await asyncio.to_thread(self.engine.encrypt, message, recipient_keys, signing_key)

    async def decrypt_with_key(self, armored: str, private_key: Any) -> Optional[str]:
        """
        Decrypt an armored message.

        Returns:
            Plaintext, or None on any failure
        """
        try:
            message = await asyncio.to_thread(self.engine.parse_message, normalize(armored))
            data = await asyncio.to_thread(self.engine.decrypt, message, private_key)
        except Exception as e:
            logger.error("PGP decryption failed: %s", e)
            return None

        if isinstance(data, (bytes, bytearray)):
            try:
                return bytes(data).decode("utf-8")
            except UnicodeDecodeError as e:
                logger.error("Decrypted payload is not UTF-8 text: %s", e)
                return None
        return data
