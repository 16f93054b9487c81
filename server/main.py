"""
FastAPI server for the PGP encrypted chat application.

This server:
- Handles user registration and authentication
- Keeps the user and channel directory clients look recipients up in
- Relays messages to channel members via WebSocket (does NOT store messages)

Encryption happens entirely on the clients; the server only ever sees the
content they chose to send.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from fastapi import FastAPI, WebSocket, WebSocketDisconnect, HTTPException, Depends
from pydantic import BaseModel
from contextlib import asynccontextmanager

from .database import Database, CHANNEL_DM, CHANNEL_GROUP_DM
from .auth import create_access_token, current_user, verify_token, Token, ACCESS_TOKEN_EXPIRE_MINUTES

logger = logging.getLogger(__name__)


# Pydantic models for API
class UserRegister(BaseModel):
    username: str
    password: str
    display_name: str = ""


class UserLogin(BaseModel):
    username: str
    password: str


class ChannelCreate(BaseModel):
    kind: int
    members: List[str]
    name: Optional[str] = None


# WebSocket connection manager
class ConnectionManager:
    """Manages active WebSocket connections"""

    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}

    def connect(self, username: str, websocket: WebSocket):
        """Store an accepted WebSocket connection"""
        self.active_connections[username] = websocket

    def disconnect(self, username: str):
        """Remove a WebSocket connection"""
        self.active_connections.pop(username, None)

    async def send_message(self, username: str, message: dict):
        """Send a message to a specific user"""
        if username in self.active_connections:
            await self.active_connections[username].send_json(message)

    async def broadcast(self, message: dict, exclude: Optional[str] = None):
        for other_user in list(self.active_connections):
            if other_user != exclude:
                await self.send_message(other_user, message)

    def is_online(self, username: str) -> bool:
        """Check if a user is online"""
        return username in self.active_connections

    def get_online_users(self) -> list[str]:
        """Get list of online users"""
        return list(self.active_connections.keys())


# Initialize database and connection manager
db = Database()
manager = ConnectionManager()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    await db.create_tables()
    logger.info("Database initialized")
    yield
    logger.info("Server shutting down")


app = FastAPI(
    title="PGP Chat Server",
    description="Relay and directory for PGP encrypted chat clients",
    version="1.0.0",
    lifespan=lifespan
)


def _issue_token(username: str) -> Token:
    access_token = create_access_token(
        data={"sub": username},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return Token(access_token=access_token, token_type="bearer", username=username)


@app.post("/api/register", response_model=Token)
async def register(user_data: UserRegister):
    """Register a new user account."""
    if not user_data.username or not user_data.password:
        raise HTTPException(status_code=400, detail="Username and password are required")

    user = await db.create_user(
        username=user_data.username,
        password=user_data.password,
        display_name=user_data.display_name
    )

    if not user:
        raise HTTPException(status_code=400, detail="Username already exists")

    return _issue_token(user.username)


@app.post("/api/login", response_model=Token)
async def login(user_data: UserLogin):
    """Authenticate a user and return JWT token"""
    user = await db.authenticate_user(user_data.username, user_data.password)

    if not user:
        raise HTTPException(status_code=401, detail="Invalid username or password")

    return _issue_token(user.username)


@app.get("/api/users")
async def list_users():
    """List all registered users"""
    users = await db.list_users()
    return {"users": users}


@app.get("/api/users/online")
async def list_online_users():
    """List currently online users"""
    return {"users": manager.get_online_users()}


@app.get("/api/users/{username}")
async def get_user(username: str):
    """Public profile used to resolve display names"""
    user = await db.get_user(username)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {"username": user.username, "display_name": user.display_name}


@app.post("/api/channels")
async def create_channel(data: ChannelCreate, username: str = Depends(current_user)):
    """
    Create a DM or group channel.

    The caller is always a member. A DM between two users is reused if it
    already exists.
    """
    members = sorted(set(data.members) | {username})

    if data.kind == CHANNEL_DM and len(members) != 2:
        raise HTTPException(status_code=400, detail="A DM needs exactly one other user")
    if data.kind == CHANNEL_GROUP_DM and len(members) < 2:
        raise HTTPException(status_code=400, detail="A group needs at least one other user")
    if data.kind not in (CHANNEL_DM, CHANNEL_GROUP_DM):
        raise HTTPException(status_code=400, detail="Unsupported channel kind")

    for member in members:
        if not await db.get_user(member):
            raise HTTPException(status_code=404, detail=f"User {member} not found")

    return await db.create_channel(data.kind, members, data.name)


@app.get("/api/channels")
async def list_channels(username: str = Depends(current_user)):
    """List the caller's channels"""
    return {"channels": await db.list_channels(username)}


@app.get("/api/channels/{channel_id}")
async def get_channel(channel_id: str, username: str = Depends(current_user)):
    """Channel kind and members, for channels the caller belongs to"""
    channel = await db.get_channel(channel_id)
    if not channel or username not in channel["members"]:
        raise HTTPException(status_code=404, detail="Channel not found")
    return channel


async def relay_message(username: str, channel_id: str, content: str) -> Optional[dict]:
    """
    Relay a message to every online member of a channel, author included.

    Returns:
        The relayed message, or None if the author is not a member
    """
    members = await db.get_channel_members(channel_id)
    if username not in members:
        return None

    message = {
        "id": uuid.uuid4().hex[:12],
        "channel_id": channel_id,
        "author": username,
        "content": content,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
    for member in members:
        await manager.send_message(member, {"type": "message_create", "message": message})
    return message


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time messaging.

    Protocol:
    1. Client sends: {"type": "auth", "token": "jwt_token"}
    2. Server verifies and responds: {"type": "auth_success", "username": "..."}
    3. Client sends messages: {"type": "message", "channel_id": "...", "content": "..."}
    4. Server relays to members: {"type": "message_create", "message": {...}}
    """
    username = None

    try:
        await websocket.accept()

        auth_data = await websocket.receive_json()

        if auth_data.get("type") != "auth":
            await websocket.send_json({"type": "error", "message": "Authentication required"})
            await websocket.close()
            return

        username = verify_token(auth_data.get("token"))

        if not username:
            await websocket.send_json({"type": "error", "message": "Invalid token"})
            await websocket.close()
            return

        manager.connect(username, websocket)
        await websocket.send_json({
            "type": "auth_success",
            "username": username,
            "online_users": manager.get_online_users()
        })

        await manager.broadcast({"type": "user_online", "username": username}, exclude=username)

        # Message handling loop
        while True:
            data = await websocket.receive_json()

            if data.get("type") == "message":
                channel_id = data.get("channel_id")
                content = data.get("content")

                if not channel_id or not content:
                    await websocket.send_json({
                        "type": "error",
                        "message": "Invalid message format"
                    })
                    continue

                if await relay_message(username, channel_id, content) is None:
                    await websocket.send_json({
                        "type": "error",
                        "message": f"Not a member of channel {channel_id}"
                    })

            elif data.get("type") == "ping":
                await websocket.send_json({"type": "pong"})

    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WebSocket error")
    finally:
        if username:
            manager.disconnect(username)
            await manager.broadcast({"type": "user_offline", "username": username})


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
