"""
PGP encryption for chat messages.

Implements:
- Fail-closed encryption of outgoing messages for every channel recipient
- Decryption of inbound PGP messages with the local private key
- Per-message presentation state for asynchronous decryption results
"""

from .armor import normalize, is_encrypted_message, MESSAGE_MARKER
from .bridge import CryptoBridge
from .engine import CryptoEngine, UnavailableEngine, load_engine
from .errors import PGPError, CryptoFailure, EngineUnavailable, FailureKind
from .keystore import KeyStore, IdentityKeys
from .pipeline import EncryptionPipeline, DecryptionPipeline, ContinueSend, Blocked
from .plugin import AutoPGP
from .presentation import DecryptionRegistry, DecryptionAccessory

__all__ = [
    'normalize',
    'is_encrypted_message',
    'MESSAGE_MARKER',
    'CryptoBridge',
    'CryptoEngine',
    'UnavailableEngine',
    'load_engine',
    'PGPError',
    'CryptoFailure',
    'EngineUnavailable',
    'FailureKind',
    'KeyStore',
    'IdentityKeys',
    'EncryptionPipeline',
    'DecryptionPipeline',
    'ContinueSend',
    'Blocked',
    'AutoPGP',
    'DecryptionRegistry',
    'DecryptionAccessory',
]
