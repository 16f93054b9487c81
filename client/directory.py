"""
Channel and user directory backed by the chat server's REST API.

Lookups used on the send path are synchronous and served from a local cache;
refresh_* coroutines fill the cache from the server.
"""

from typing import Dict, List, Optional

import httpx

from autopgp.host import Channel


class Directory:
    """
    Cached view of the channels and users the local user can see.

    Channel recipients exclude the local user.
    """

    def __init__(self, http_client: httpx.AsyncClient, server_url: str, username: str):
        self.http_client = http_client
        self.server_url = server_url
        self.username = username
        self.token: Optional[str] = None
        self.channels: Dict[str, Channel] = {}
        self.display_names: Dict[str, str] = {}

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def remember_channel(self, data: dict) -> Channel:
        """Cache a channel from its API representation"""
        members = data.get("members", [])
        channel = Channel(
            id=str(data["id"]),
            kind=int(data["kind"]),
            recipients=[member for member in members if member != self.username],
            name=data.get("name"),
        )
        self.channels[channel.id] = channel
        for member in data.get("member_profiles", []):
            self.display_names[member["username"]] = member.get("display_name") or member["username"]
        return channel

    def get_channel(self, channel_id: str) -> Optional[Channel]:
        return self.channels.get(channel_id)

    def get_display_name(self, user_id: str) -> Optional[str]:
        return self.display_names.get(user_id)

    async def refresh_channels(self) -> List[Channel]:
        response = await self.http_client.get(
            f"{self.server_url}/api/channels",
            headers=self._headers()
        )
        response.raise_for_status()
        return [self.remember_channel(data) for data in response.json()["channels"]]

    async def fetch_channel(self, channel_id: str) -> Optional[Channel]:
        response = await self.http_client.get(
            f"{self.server_url}/api/channels/{channel_id}",
            headers=self._headers()
        )
        if response.status_code != 200:
            return None
        return self.remember_channel(response.json())

    async def create_channel(self, kind: int, members: List[str], name: Optional[str] = None) -> Channel:
        response = await self.http_client.post(
            f"{self.server_url}/api/channels",
            json={"kind": kind, "members": members, "name": name},
            headers=self._headers()
        )
        response.raise_for_status()
        return self.remember_channel(response.json())

    async def fetch_user(self, username: str) -> Optional[str]:
        """Look up a user's display name and cache it"""
        response = await self.http_client.get(f"{self.server_url}/api/users/{username}")
        if response.status_code != 200:
            return None
        data = response.json()
        self.display_names[username] = data.get("display_name") or username
        return self.display_names[username]
