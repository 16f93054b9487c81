"""
Error taxonomy for the PGP message pipelines.

Exceptions never cross the pipeline boundary: the pipelines catch them and
report a FailureKind together with a user-visible notification instead.
"""

from enum import Enum


class PGPError(Exception):
    """Base exception for PGP pipeline errors"""
    pass


class CryptoFailure(PGPError):
    """Engine-level parse, encrypt or decrypt failure"""
    pass


class EngineUnavailable(CryptoFailure):
    """The external crypto engine could not be loaded"""
    pass


class FailureKind(str, Enum):
    """Why an outgoing message was blocked."""

    CONFIGURATION = "configuration"
    KEY_UNAVAILABLE = "key_unavailable"
    UNLOCK_FAILURE = "unlock_failure"
    CRYPTO_FAILURE = "crypto_failure"
    ENGINE_UNAVAILABLE = "engine_unavailable"
