#!/usr/bin/env python3
"""
CLI Client for PGP Encrypted Chat

Provides a command-line interface for:
- User registration and login
- Direct and group conversations relayed by the server
- Automatic PGP encryption of outgoing messages per channel
- Automatic or on-demand decryption of incoming PGP messages
"""

import asyncio
import json
import logging
import os
import sys
import getpass
from collections import OrderedDict
from pathlib import Path
from typing import Optional, Set
from datetime import datetime
import websockets
import httpx
from prompt_toolkit import PromptSession
from prompt_toolkit.patch_stdout import patch_stdout

from autopgp import AutoPGP, DecryptionAccessory
from autopgp.host import ChannelKind
from client.directory import Directory
from client.events import Message, MessageCreate, MessageEvents, OutgoingMessage
from client.storage import EncryptedStorage

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "http://localhost:8000"
VISIBLE_MESSAGES = 50

HELP_TEXT = """Commands:
  /channels - List your channels
  /dm <username> - Open a direct message channel
  /group <name> <user> [user...] - Create a group channel
  /join <channel_id> - Switch to a channel
  /exit - Leave current channel
  /users - List all users
  /online - List online users
  /pgp - Toggle PGP encryption for the current channel
  /setup <public key file> <private key file> - Set your PGP key pair
  /setkey <username> <public key file> - Set a user's PGP public key
  /autodecrypt on|off - Decrypt incoming PGP messages automatically
  /decrypt <message_id> - Decrypt a PGP message
  /dismiss <message_id> - Hide a decrypted message
  /quit - Quit application"""


class VisibleMessage:
    """A message on screen together with its decryption accessory"""

    def __init__(self, message: Message, accessory: DecryptionAccessory):
        self.message = message
        self.accessory = accessory


class ChatClient:
    """
    PGP encrypted chat client.
    """

    def __init__(self, server_url: str = DEFAULT_SERVER_URL, storage_dir: str = "client_data"):
        """
        Initialize chat client.

        Args:
            server_url: Base URL of the chat server
            storage_dir: Directory for the encrypted local store
        """
        self.server_url = server_url
        self.ws_url = server_url.replace("http", "ws") + "/ws"
        self.storage_dir = storage_dir
        self.username: Optional[str] = None
        self.token: Optional[str] = None
        self.storage: Optional[EncryptedStorage] = None
        self.directory: Optional[Directory] = None
        self.events = MessageEvents()
        self.plugin: Optional[AutoPGP] = None
        self.websocket = None
        self.http_client = httpx.AsyncClient()
        self.running = False
        self.current_channel: Optional[str] = None
        self.visible: "OrderedDict[str, VisibleMessage]" = OrderedDict()
        self.session: Optional[PromptSession] = None
        self._tasks: Set[asyncio.Task] = set()

    def notify_failure(self, message: str):
        """Notification sink for the PGP plugin"""
        print(f"\n[!] {message}")

    async def _authenticate(self, endpoint: str, payload: dict, password: str) -> bool:
        try:
            response = await self.http_client.post(f"{self.server_url}{endpoint}", json=payload)
        except httpx.HTTPError as e:
            print(f"Connection error: {e}")
            return False

        if response.status_code != 200:
            error = response.json()
            print(f"Request failed: {error.get('detail', 'Unknown error')}")
            return False

        data = response.json()
        self.token = data["access_token"]
        self.username = data["username"]

        self.storage = EncryptedStorage(self.username, self.storage_dir)
        if not self.storage.unlock(password):
            print("Failed to unlock storage with this password")
            return False

        self._start_plugin()
        return True

    def _start_plugin(self):
        self.directory = Directory(self.http_client, self.server_url, self.username)
        self.directory.token = self.token
        self.plugin = AutoPGP(self.storage, self.directory, self.notify_failure)
        self.plugin.start(self.events)

    async def register(self, username: str, password: str, display_name: str = "") -> bool:
        """
        Register a new user account.

        Args:
            username: Desired username
            password: Password
            display_name: Name shown to other users

        Returns:
            True if successful
        """
        payload = {
            "username": username,
            "password": password,
            "display_name": display_name or username
        }
        if await self._authenticate("/api/register", payload, password):
            print(f"Registration successful! Welcome, {username}")
            print("Use /setup to configure your PGP keys.")
            return True
        return False

    async def login(self, username: str, password: str) -> bool:
        """
        Login with existing account.

        Args:
            username: Username
            password: Password

        Returns:
            True if successful
        """
        payload = {"username": username, "password": password}
        if await self._authenticate("/api/login", payload, password):
            print(f"Login successful! Welcome back, {username}")
            return True
        return False

    async def connect_websocket(self):
        """Connect to WebSocket server"""
        try:
            self.websocket = await websockets.connect(self.ws_url)

            # Authenticate
            await self.websocket.send(json.dumps({
                "type": "auth",
                "token": self.token
            }))

            response = await self.websocket.recv()
            data = json.loads(response)

            if data.get("type") == "auth_success":
                print("Connected to server")
                print(f"Online users: {', '.join(data.get('online_users', []))}")
                await self.directory.refresh_channels()
                return True
            else:
                print("Authentication failed")
                return False

        except Exception as e:
            print(f"WebSocket connection error: {e}")
            return False

    def _describe_channel(self, channel_id: str) -> str:
        channel = self.directory.get_channel(channel_id)
        if not channel:
            return channel_id
        if channel.name:
            return channel.name
        names = [self.directory.get_display_name(r) or r for r in channel.recipients]
        return ", ".join(names) or channel_id

    def _clear_visible(self):
        for item in self.visible.values():
            item.accessory.unmount()
        self.visible.clear()

    async def join_channel(self, channel_id: str):
        """
        Switch the prompt to a channel.

        Args:
            channel_id: Channel to join
        """
        channel = self.directory.get_channel(channel_id) or await self.directory.fetch_channel(channel_id)
        if not channel:
            print(f"Unknown channel {channel_id}")
            return

        self._clear_visible()
        self.current_channel = channel.id

        enabled = await self.plugin.keystore.is_channel_enabled(channel.id)
        state = "on" if enabled else "off"
        print(f"Chatting in {self._describe_channel(channel.id)} (PGP {state}). Type '/help' for commands.")

    async def send_message(self, channel_id: str, text: str):
        """
        Send a message through the pre-send hooks.

        Args:
            channel_id: Destination channel
            text: Message to send
        """
        message = OutgoingMessage(content=text)
        if not await self.events.dispatch_pre_send(channel_id, message):
            return

        try:
            await self.websocket.send(json.dumps({
                "type": "message",
                "channel_id": channel_id,
                "content": message.content
            }))
        except Exception as e:
            print(f"Failed to send message: {e}")

    def _show_accessory(self, accessory: DecryptionAccessory):
        if accessory.decrypted_text:
            print(f"\n  [{accessory.message_id}] Decrypted: {accessory.decrypted_text}")

    def _display(self, message: Message):
        timestamp = datetime.now().strftime("%H:%M")
        if message.timestamp:
            try:
                timestamp = datetime.fromisoformat(message.timestamp).strftime("%H:%M")
            except ValueError:
                pass

        author = self.directory.get_display_name(message.author) or message.author
        content = message.content
        if self.plugin.can_decrypt(message):
            content = "<PGP message>"
        print(f"\n[{timestamp}] ({message.id}) {author}: {content}")

        accessory = DecryptionAccessory(message.id, self.plugin.registry, self._show_accessory)
        accessory.mount()
        self.visible[message.id] = VisibleMessage(message, accessory)

        while len(self.visible) > VISIBLE_MESSAGES:
            _, oldest = self.visible.popitem(last=False)
            oldest.accessory.unmount()

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _handle_message_create(self, data: dict):
        message = Message.from_dict(data["message"])

        if message.channel_id == self.current_channel:
            self._display(message)
        else:
            if not self.directory.get_channel(message.channel_id):
                await self.directory.fetch_channel(message.channel_id)
            print(f"\n[New message in {self._describe_channel(message.channel_id)}]")

        self._spawn(self.events.dispatch_message_create(MessageCreate(message=message)))

    async def receive_messages(self):
        """Background task to receive messages"""
        try:
            while self.running:
                raw = await self.websocket.recv()
                data = json.loads(raw)

                if data.get("type") == "message_create":
                    await self._handle_message_create(data)
                elif data.get("type") == "user_online":
                    print(f"\n[{data['username']} is now online]")
                elif data.get("type") == "user_offline":
                    print(f"\n[{data['username']} is now offline]")
                elif data.get("type") == "error":
                    print(f"\n[Error: {data.get('message')}]")

        except websockets.exceptions.ConnectionClosed:
            print("\nConnection closed")
            self.running = False
        except Exception as e:
            logger.exception("Receive loop failed")
            print(f"\nReceive error: {e}")
            self.running = False

    async def list_channels(self):
        channels = await self.directory.refresh_channels()
        print("Channels:")
        for channel in channels:
            kind = "group" if channel.kind == ChannelKind.GROUP_DM else "dm"
            enabled = await self.plugin.keystore.is_channel_enabled(channel.id)
            lock = " [PGP]" if enabled else ""
            print(f"  {channel.id} ({kind}) {self._describe_channel(channel.id)}{lock}")

    async def list_users(self):
        """List all registered users"""
        try:
            response = await self.http_client.get(f"{self.server_url}/api/users")
            if response.status_code == 200:
                users = response.json()["users"]
                print("Registered users:")
                for user in users:
                    print(f"  - {user}")
        except Exception as e:
            print(f"Failed to list users: {e}")

    async def list_online_users(self):
        """List currently online users"""
        try:
            response = await self.http_client.get(f"{self.server_url}/api/users/online")
            if response.status_code == 200:
                users = response.json()["users"]
                print("Online users:")
                for user in users:
                    if user != self.username:
                        print(f"  - {user}")
        except Exception as e:
            print(f"Failed to list online users: {e}")

    async def setup_keys(self, public_path: str, private_path: str):
        """Store the local key pair read from two files"""
        try:
            public_key = Path(public_path).read_text()
            private_key = Path(private_path).read_text()
        except OSError as e:
            print(f"Could not read key file: {e}")
            return

        passphrase = await self.session.prompt_async("Passphrase (empty if none): ", is_password=True)
        await self.plugin.setup_identity(public_key, private_key, passphrase)
        print("PGP keys saved")

    async def set_user_key(self, username: str, key_path: str):
        """Store a user's public key read from a file"""
        try:
            key = Path(key_path).read_text()
        except OSError as e:
            print(f"Could not read key file: {e}")
            return

        await self.plugin.set_user_key(username, key)
        display_name = await self.directory.fetch_user(username)
        print(f"PGP key saved for {display_name or username}")

    async def run_interactive(self):
        """Run interactive chat session"""
        self.running = True

        receive_task = asyncio.create_task(self.receive_messages())

        self.session = PromptSession()

        print()
        print(HELP_TEXT)
        print()

        try:
            while self.running:
                try:
                    if self.current_channel:
                        prompt_text = f"[{self._describe_channel(self.current_channel)}] > "
                    else:
                        prompt_text = "> "

                    with patch_stdout():
                        user_input = await self.session.prompt_async(prompt_text)

                    if not user_input:
                        continue

                    if user_input.startswith("/"):
                        try:
                            await self._handle_command(user_input)
                        except httpx.HTTPError as e:
                            print(f"Request failed: {e}")
                    elif self.current_channel:
                        await self.send_message(self.current_channel, user_input)
                    else:
                        print("No active channel. Use /dm <username> or /join <channel_id>.")

                except KeyboardInterrupt:
                    break
                except EOFError:
                    break

        finally:
            self.running = False
            receive_task.cancel()
            self._clear_visible()
            if self.plugin:
                self.plugin.stop()
            if self.websocket:
                await self.websocket.close()
            await self.http_client.aclose()
            if self.storage:
                self.storage.close()

    async def _handle_command(self, command: str):
        """Handle slash commands"""
        parts = command.split()
        cmd = parts[0].lower()
        args = parts[1:]

        if cmd == "/channels":
            await self.list_channels()
        elif cmd == "/dm" and len(args) == 1:
            channel = await self.directory.create_channel(ChannelKind.DM, args)
            await self.join_channel(channel.id)
        elif cmd == "/group" and len(args) >= 2:
            channel = await self.directory.create_channel(ChannelKind.GROUP_DM, args[1:], name=args[0])
            await self.join_channel(channel.id)
        elif cmd == "/join" and len(args) == 1:
            await self.join_channel(args[0])
        elif cmd == "/exit":
            self._clear_visible()
            self.current_channel = None
            print("Exited channel")
        elif cmd == "/users":
            await self.list_users()
        elif cmd == "/online":
            await self.list_online_users()
        elif cmd == "/pgp":
            if not self.current_channel:
                print("No active channel")
                return
            enabled = await self.plugin.toggle_channel(self.current_channel)
            print(f"PGP encryption {'enabled' if enabled else 'disabled'} for this channel")
        elif cmd == "/setup" and len(args) == 2:
            await self.setup_keys(args[0], args[1])
        elif cmd == "/setkey" and len(args) == 2:
            await self.set_user_key(args[0], args[1])
        elif cmd == "/autodecrypt" and len(args) == 1 and args[0] in ("on", "off"):
            await self.plugin.set_auto_decrypt(args[0] == "on")
            print(f"Automatic decryption {args[0]}")
        elif cmd == "/decrypt" and len(args) == 1:
            item = self.visible.get(args[0])
            if not item:
                print("No such message on screen")
            elif not self.plugin.can_decrypt(item.message):
                print("That message is not PGP encrypted")
            else:
                await self.plugin.decrypt_message(item.message)
        elif cmd == "/dismiss" and len(args) == 1:
            item = self.visible.get(args[0])
            if item:
                item.accessory.dismiss()
        elif cmd == "/quit":
            self.running = False
        elif cmd == "/help":
            print(HELP_TEXT)
        else:
            print("Unknown command. Type /help for help.")


async def main():
    """Main entry point"""
    logging.basicConfig(
        level=os.environ.get("AUTOPGP_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(name)s %(levelname)s: %(message)s"
    )

    client = ChatClient(
        server_url=os.environ.get("AUTOPGP_SERVER_URL", DEFAULT_SERVER_URL),
        storage_dir=os.environ.get("AUTOPGP_DATA_DIR", "client_data")
    )

    print("=" * 50)
    print("PGP Encrypted Chat Client")
    print("=" * 50)
    print()

    while True:
        print("1. Register")
        print("2. Login")
        print("3. Quit")
        choice = input("Choose an option: ").strip()

        if choice == "1":
            username = input("Username: ").strip()
            display_name = input("Display name (optional): ").strip()
            password = getpass.getpass("Password: ")
            if await client.register(username, password, display_name):
                break
        elif choice == "2":
            username = input("Username: ").strip()
            password = getpass.getpass("Password: ")
            if await client.login(username, password):
                break
        elif choice == "3":
            return
        else:
            print("Invalid choice")

    if await client.connect_websocket():
        await client.run_interactive()

    print("\nGoodbye!")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(0)
