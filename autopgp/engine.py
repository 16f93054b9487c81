"""
Crypto engine contract and startup resolution.

The pipelines only ever see the CryptoEngine call surface. The concrete engine
is resolved once at startup by load_engine() and injected, so tests can hand
the pipelines any object with the same methods.
"""

import importlib
import logging
from typing import Any, Callable, List, Optional, Protocol, Union, runtime_checkable

from .errors import EngineUnavailable

logger = logging.getLogger(__name__)

DEFAULT_ENGINE = "autopgp.pgpy_engine"
ENGINE_UNAVAILABLE_NOTICE = "Failed to load the PGP engine. Encryption and decryption will not work."


@runtime_checkable
class CryptoEngine(Protocol):
    """Synchronous OpenPGP operations; callers run them off the event loop."""

    def parse_key(self, armored: str) -> Any:
        ...

    def decrypt_private_key(self, key: Any, passphrase: str) -> Any:
        """Return a handle usable for signing/decryption. Raises on a wrong passphrase."""
        ...

    def create_message(self, text: str) -> Any:
        ...

    def parse_message(self, armored: str) -> Any:
        ...

    def encrypt(self, message: Any, recipient_keys: List[Any], signing_key: Any) -> str:
        """Sign with signing_key, encrypt for every recipient key, return armored text."""
        ...

    def decrypt(self, message: Any, decryption_key: Any) -> Union[str, bytes]:
        ...


class UnavailableEngine:
    """Stand-in used when the real engine failed to load; every call fails."""

    def __init__(self, reason: str = "crypto engine is not available"):
        self.reason = reason

    def _fail(self, *args, **kwargs):
        raise EngineUnavailable(self.reason)

    parse_key = _fail
    decrypt_private_key = _fail
    create_message = _fail
    parse_message = _fail
    encrypt = _fail
    decrypt = _fail


def load_engine(
    module_name: str = DEFAULT_ENGINE,
    on_unavailable: Optional[Callable[[str], None]] = None,
) -> CryptoEngine:
    """
    Import and instantiate the crypto engine.

    Args:
        module_name: Module exposing a create_engine() factory
        on_unavailable: Notification sink called once if loading fails

    Returns:
        The engine, or an UnavailableEngine if it could not be loaded
    """
    try:
        module = importlib.import_module(module_name)
        engine = module.create_engine()
    except Exception as e:
        logger.error("Failed to load crypto engine %s: %s", module_name, e)
        if on_unavailable is not None:
            on_unavailable(ENGINE_UNAVAILABLE_NOTICE)
        return UnavailableEngine(f"{module_name} could not be loaded: {e}")

    logger.info("Loaded crypto engine %s", module_name)
    return engine
