"""
Collaborator interfaces the pipelines consume from the host chat client.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, List, Optional, Protocol


class ChannelKind(IntEnum):
    """Channel kinds, numbered as the chat service numbers them."""
    TEXT = 0
    DM = 1
    GROUP_DM = 3


PRIVATE_CHANNEL_KINDS = (ChannelKind.DM, ChannelKind.GROUP_DM)


@dataclass
class Channel:
    """
    A conversation as seen by the local user.

    Attributes:
        id: Channel identifier
        kind: ChannelKind value
        recipients: User identifiers of the other members (never the local user)
        name: Optional display name for group channels
    """
    id: str
    kind: int
    recipients: List[str] = field(default_factory=list)
    name: Optional[str] = None

    @property
    def is_private(self) -> bool:
        return self.kind in PRIVATE_CHANNEL_KINDS


class Directory(Protocol):
    """Read-only channel and user lookups."""

    def get_channel(self, channel_id: str) -> Optional[Channel]:
        ...

    def get_display_name(self, user_id: str) -> Optional[str]:
        ...


# notify_failure(message); fire-and-forget
Notifier = Callable[[str], None]
