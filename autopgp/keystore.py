"""
Key store adapter.

Maps the plugin's persistent state onto a plain key-value store:

    identityKeys    -> {"public_key", "private_key", "passphrase"}
    recipientKeys   -> {user_id: armored public key}
    channelToggles  -> {channel_id: bool}
    decryptMessages -> bool
"""

from typing import Any, Dict, Optional, Protocol

from pydantic import BaseModel

from .armor import normalize

IDENTITY_KEYS = "identityKeys"
RECIPIENT_KEYS = "recipientKeys"
CHANNEL_TOGGLES = "channelToggles"
DECRYPT_MESSAGES = "decryptMessages"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...


class IdentityKeys(BaseModel):
    """The local user's key pair and passphrase"""
    public_key: str = ""
    private_key: str = ""
    passphrase: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.public_key and self.private_key)


class KeyStore:
    """
    Async accessors for identity keys, recipient keys and channel toggles.

    Writes replace the whole stored mapping, so the store only needs
    read-after-write consistency within one process.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    def _get_mapping(self, key: str) -> Dict[str, Any]:
        value = self.store.get(key)
        return dict(value) if isinstance(value, dict) else {}

    async def get_identity(self) -> IdentityKeys:
        data = self.store.get(IDENTITY_KEYS)
        if not data:
            return IdentityKeys()
        return IdentityKeys.model_validate(data)

    async def set_identity(self, public_key: str, private_key: str, passphrase: str = "") -> IdentityKeys:
        """
        Save the local key pair.

        Args:
            public_key: Armored public key
            private_key: Armored private key
            passphrase: Passphrase protecting the private key, if any

        Returns:
            The stored identity
        """
        identity = IdentityKeys(
            public_key=normalize(public_key),
            private_key=normalize(private_key),
            passphrase=passphrase or "",
        )
        self.store.set(IDENTITY_KEYS, identity.model_dump())
        return identity

    async def get_recipient_keys(self) -> Dict[str, str]:
        return self._get_mapping(RECIPIENT_KEYS)

    async def get_recipient_key(self, user_id: str) -> str:
        return (await self.get_recipient_keys()).get(user_id, "")

    async def set_recipient_key(self, user_id: str, armored: str) -> str:
        keys = self._get_mapping(RECIPIENT_KEYS)
        keys[user_id] = normalize(armored)
        self.store.set(RECIPIENT_KEYS, keys)
        return keys[user_id]

    async def is_channel_enabled(self, channel_id: str) -> bool:
        return bool(self._get_mapping(CHANNEL_TOGGLES).get(channel_id, False))

    async def set_channel_enabled(self, channel_id: str, enabled: bool) -> None:
        toggles = self._get_mapping(CHANNEL_TOGGLES)
        toggles[channel_id] = bool(enabled)
        self.store.set(CHANNEL_TOGGLES, toggles)

    async def toggle_channel(self, channel_id: str) -> bool:
        """Flip the channel's encryption flag and return the new value."""
        enabled = not await self.is_channel_enabled(channel_id)
        await self.set_channel_enabled(channel_id, enabled)
        return enabled

    async def get_decrypt_messages(self) -> bool:
        value = self.store.get(DECRYPT_MESSAGES)
        return True if value is None else bool(value)

    async def set_decrypt_messages(self, enabled: bool) -> None:
        self.store.set(DECRYPT_MESSAGES, bool(enabled))
