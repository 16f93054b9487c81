"""
Decryption presentation state.

Decryption finishes some time after a message was shown, and the message may
have scrolled away by then. Each displayed message owns a DecryptionAccessory
that registers a callback while it is visible; the pipelines only know message
ids and deliver results through the registry.
"""

import logging
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

DecryptedCallback = Callable[[str], None]


class DecryptionRegistry:
    """
    message_id -> callback table for currently displayed messages.

    At most one callback per message id. Delivering to an id with no
    registration is a no-op, whatever order calls arrive in.
    """

    def __init__(self):
        self._callbacks: Dict[str, DecryptedCallback] = {}

    def register(self, message_id: str, callback: DecryptedCallback) -> None:
        self._callbacks[message_id] = callback

    def unregister(self, message_id: str, callback: Optional[DecryptedCallback] = None) -> None:
        """
        Remove the registration for message_id.

        Args:
            message_id: Message whose element went away
            callback: If given, only remove the registration when it is still
                this callback
        """
        if callback is not None and self._callbacks.get(message_id) is not callback:
            return
        self._callbacks.pop(message_id, None)

    def deliver(self, message_id: str, text: str) -> bool:
        """
        Hand decrypted text to the element displaying message_id.

        Returns:
            True if a registered callback received the text
        """
        callback = self._callbacks.get(message_id)
        if callback is None:
            logger.debug("No display registered for message %s; dropping result", message_id)
            return False
        callback(text)
        return True

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._callbacks

    def __len__(self) -> int:
        return len(self._callbacks)


class DecryptionAccessory:
    """
    The "Decrypted:" block attached below a displayed message.

    mount() when the message becomes visible, unmount() when it stops being
    visible.
    """

    def __init__(
        self,
        message_id: str,
        registry: DecryptionRegistry,
        on_change: Optional[Callable[["DecryptionAccessory"], None]] = None,
    ):
        self.message_id = message_id
        self.registry = registry
        self.on_change = on_change
        self.decrypted_text: Optional[str] = None
        self.mounted = False
        # Bound once so unmount can tell its own registration apart
        self._callback = self._on_decrypted

    def _set_text(self, text: Optional[str]) -> None:
        self.decrypted_text = text
        if self.on_change is not None:
            self.on_change(self)

    def _on_decrypted(self, text: str) -> None:
        self._set_text(text)

    def mount(self) -> None:
        self.registry.register(self.message_id, self._callback)
        self.mounted = True

    def unmount(self) -> None:
        self.registry.unregister(self.message_id, self._callback)
        self.mounted = False

    def dismiss(self) -> None:
        self._set_text(None)

    @property
    def visible(self) -> bool:
        return self.mounted and bool(self.decrypted_text)
