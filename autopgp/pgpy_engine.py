"""
OpenPGP engine backed by PGPy.

PGPy only keeps a protected private key unlocked inside its unlock() context,
so an unlocked key is carried around as an UnlockedKey handle and re-entered
for each signing or decryption operation.
"""

import contextlib
from dataclasses import dataclass
from typing import Iterator, List, Union

import pgpy
from pgpy.constants import SymmetricKeyAlgorithm

from .errors import CryptoFailure

MESSAGE_CIPHER = SymmetricKeyAlgorithm.AES256


@dataclass
class UnlockedKey:
    """A private key together with the passphrase that opened it."""
    key: pgpy.PGPKey
    passphrase: str


@contextlib.contextmanager
def _unlocked(handle) -> Iterator[pgpy.PGPKey]:
    if isinstance(handle, UnlockedKey):
        if handle.key.is_protected:
            with handle.key.unlock(handle.passphrase):
                yield handle.key
        else:
            yield handle.key
    else:
        yield handle


def _public(key: pgpy.PGPKey) -> pgpy.PGPKey:
    return key if key.is_public else key.pubkey


class PGPyEngine:
    """CryptoEngine implementation over pgpy.PGPKey / pgpy.PGPMessage."""

    def parse_key(self, armored: str) -> pgpy.PGPKey:
        key, _ = pgpy.PGPKey.from_blob(armored)
        return key

    def decrypt_private_key(self, key: pgpy.PGPKey, passphrase: str) -> UnlockedKey:
        if key.is_public:
            raise CryptoFailure("Cannot unlock a public key")
        if key.is_protected:
            # Raises PGPDecryptionError when the passphrase is wrong
            with key.unlock(passphrase):
                pass
        return UnlockedKey(key=key, passphrase=passphrase)

    def create_message(self, text: str) -> pgpy.PGPMessage:
        return pgpy.PGPMessage.new(text)

    def parse_message(self, armored: str) -> pgpy.PGPMessage:
        return pgpy.PGPMessage.from_blob(armored)

    def encrypt(self, message: pgpy.PGPMessage, recipient_keys: List[pgpy.PGPKey], signing_key) -> str:
        if not recipient_keys:
            raise CryptoFailure("No recipient keys to encrypt for")

        with _unlocked(signing_key) as signer:
            message |= signer.sign(message)

        # One session key, wrapped once per recipient
        session_key = MESSAGE_CIPHER.gen_key()
        for key in recipient_keys:
            message = _public(key).encrypt(message, cipher=MESSAGE_CIPHER, sessionkey=session_key)
        del session_key

        return str(message)

    def decrypt(self, message: pgpy.PGPMessage, decryption_key) -> Union[str, bytes]:
        if not message.is_encrypted:
            raise CryptoFailure("Message is not encrypted")
        with _unlocked(decryption_key) as key:
            decrypted = key.decrypt(message)
        data = decrypted.message
        if isinstance(data, bytearray):
            return bytes(data)
        return data


def create_engine() -> PGPyEngine:
    return PGPyEngine()
