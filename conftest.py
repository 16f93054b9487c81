"""
Shared fixtures: real PGPy key pairs, an in-memory key-value store and a
static directory for driving the pipelines without a server.
"""

from dataclasses import dataclass
from typing import Dict, Optional

import pgpy
import pytest
from pgpy.constants import (
    CompressionAlgorithm,
    HashAlgorithm,
    KeyFlags,
    PubKeyAlgorithm,
    SymmetricKeyAlgorithm,
)

from autopgp.host import Channel, ChannelKind
from autopgp.pgpy_engine import PGPyEngine


@dataclass
class KeyPair:
    public: str
    private: str
    passphrase: str


def generate_key_pair(name: str, passphrase: str = "") -> KeyPair:
    key = pgpy.PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, 2048)
    uid = pgpy.PGPUID.new(name, email=f"{name}@example.org")
    key.add_uid(
        uid,
        usage={KeyFlags.Sign, KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage},
        hashes=[HashAlgorithm.SHA256],
        ciphers=[SymmetricKeyAlgorithm.AES256],
        compression=[CompressionAlgorithm.ZLIB, CompressionAlgorithm.Uncompressed],
    )
    if passphrase:
        key.protect(passphrase, SymmetricKeyAlgorithm.AES256, HashAlgorithm.SHA256)
    return KeyPair(public=str(key.pubkey), private=str(key), passphrase=passphrase)


class MemoryStore:
    """Dict-backed key-value store"""

    def __init__(self):
        self.data: Dict[str, object] = {}
        self.writes = 0

    def get(self, key: str) -> Optional[object]:
        return self.data.get(key)

    def set(self, key: str, value: object) -> None:
        self.writes += 1
        self.data[key] = value


class StaticDirectory:
    """Directory over fixed channels and display names"""

    def __init__(self, channels=(), names=None):
        self.channels = {channel.id: channel for channel in channels}
        self.names = dict(names or {})

    def get_channel(self, channel_id: str) -> Optional[Channel]:
        return self.channels.get(channel_id)

    def get_display_name(self, user_id: str) -> Optional[str]:
        return self.names.get(user_id)


class Notifications(list):
    """Notification sink recording every message"""

    def __call__(self, message: str) -> None:
        self.append(message)


@pytest.fixture(scope="session")
def sender_keys() -> KeyPair:
    return generate_key_pair("sender", passphrase="sender-passphrase")


@pytest.fixture(scope="session")
def alice_keys() -> KeyPair:
    return generate_key_pair("alice", passphrase="alice-passphrase")


@pytest.fixture(scope="session")
def bob_keys() -> KeyPair:
    return generate_key_pair("bob")


@pytest.fixture
def engine() -> PGPyEngine:
    return PGPyEngine()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def notifications() -> Notifications:
    return Notifications()


@pytest.fixture
def directory() -> StaticDirectory:
    return StaticDirectory(
        channels=[
            Channel(id="dm-alice", kind=ChannelKind.DM, recipients=["alice"]),
            Channel(id="group", kind=ChannelKind.GROUP_DM, recipients=["alice", "bob"], name="friends"),
            Channel(id="pair", kind=ChannelKind.GROUP_DM, recipients=["u1", "u2"]),
            Channel(id="text", kind=ChannelKind.TEXT, recipients=["alice"]),
        ],
        names={"alice": "Alice", "bob": "Bob", "u1": "User One", "u2": "User Two"},
    )
