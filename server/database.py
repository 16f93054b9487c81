"""
Database models and operations for the chat server.

Uses SQLAlchemy with SQLite for storing user accounts and channel membership.
Note: Messages are NOT stored on the server - only relayed.
"""

import os
import uuid
from datetime import datetime
from typing import Optional, List
from sqlalchemy import Column, Integer, String, DateTime, Boolean, select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from passlib.context import CryptContext

DATABASE_URL = os.environ.get("AUTOPGP_DATABASE_URL", "sqlite+aiosqlite:///./chat.db")

# Channel kinds understood by clients
CHANNEL_DM = 1
CHANNEL_GROUP_DM = 3

Base = declarative_base()
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class User(Base):
    """User account model"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    display_name = Column(String(100), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    is_active = Column(Boolean, default=True)

    def verify_password(self, password: str) -> bool:
        """Verify password against hash"""
        return pwd_context.verify(password, self.hashed_password)

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash a password"""
        return pwd_context.hash(password)


class Channel(Base):
    """Direct or group conversation"""
    __tablename__ = "channels"

    id = Column(String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    kind = Column(Integer, nullable=False)
    name = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class ChannelMember(Base):
    """Membership of a user in a channel"""
    __tablename__ = "channel_members"

    id = Column(Integer, primary_key=True, index=True)
    channel_id = Column(String(32), index=True, nullable=False)
    username = Column(String(50), index=True, nullable=False)


class Database:
    """Database manager for async operations"""

    def __init__(self, database_url: str = DATABASE_URL):
        """
        Initialize database connection.

        Args:
            database_url: SQLAlchemy database URL
        """
        self.engine = create_async_engine(database_url, echo=False)
        self.async_session = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def create_tables(self):
        """Create all tables"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def create_user(self, username: str, password: str, display_name: str = "") -> Optional[User]:
        """
        Create a new user account.

        Args:
            username: Unique username
            password: Plain text password (will be hashed)
            display_name: Name shown to other users

        Returns:
            Created User object or None if username exists
        """
        async with self.async_session() as session:
            result = await session.execute(select(User).where(User.username == username))
            if result.scalar_one_or_none():
                return None

            user = User(
                username=username,
                display_name=display_name or username,
                hashed_password=User.hash_password(password)
            )
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    async def get_user(self, username: str) -> Optional[User]:
        """
        Get user by username.

        Args:
            username: Username to look up

        Returns:
            User object or None if not found
        """
        async with self.async_session() as session:
            result = await session.execute(select(User).where(User.username == username))
            return result.scalar_one_or_none()

    async def authenticate_user(self, username: str, password: str) -> Optional[User]:
        """
        Authenticate a user.

        Args:
            username: Username
            password: Password to verify

        Returns:
            User object if authenticated, None otherwise
        """
        user = await self.get_user(username)
        if not user or not user.verify_password(password):
            return None
        return user

    async def list_users(self) -> List[str]:
        """
        List all registered usernames.

        Returns:
            List of usernames
        """
        async with self.async_session() as session:
            result = await session.execute(select(User.username).where(User.is_active == True))
            return [row[0] for row in result.all()]

    async def _find_dm(self, session: AsyncSession, members: List[str]) -> Optional[Channel]:
        result = await session.execute(
            select(ChannelMember.channel_id)
            .join(Channel, Channel.id == ChannelMember.channel_id)
            .where(Channel.kind == CHANNEL_DM, ChannelMember.username.in_(members))
        )
        counts = {}
        for (channel_id,) in result.all():
            counts[channel_id] = counts.get(channel_id, 0) + 1
        for channel_id, count in counts.items():
            if count == len(members):
                return await session.get(Channel, channel_id)
        return None

    async def create_channel(self, kind: int, members: List[str], name: Optional[str] = None) -> dict:
        """
        Create a channel, reusing an existing DM between the same two users.

        Args:
            kind: CHANNEL_DM or CHANNEL_GROUP_DM
            members: Usernames, creator included
            name: Group name

        Returns:
            Channel dictionary
        """
        members = sorted(set(members))
        async with self.async_session() as session:
            channel = None
            if kind == CHANNEL_DM:
                channel = await self._find_dm(session, members)

            if channel is None:
                channel = Channel(id=uuid.uuid4().hex, kind=kind, name=name)
                session.add(channel)
                for username in members:
                    session.add(ChannelMember(channel_id=channel.id, username=username))
                await session.commit()

        return await self.get_channel(channel.id)

    async def get_channel(self, channel_id: str) -> Optional[dict]:
        """
        Get a channel with its members.

        Args:
            channel_id: Channel to look up

        Returns:
            Dictionary with id, kind, name, members and member_profiles
        """
        async with self.async_session() as session:
            channel = await session.get(Channel, channel_id)
            if not channel:
                return None

            result = await session.execute(
                select(User.username, User.display_name)
                .join(ChannelMember, ChannelMember.username == User.username)
                .where(ChannelMember.channel_id == channel_id)
                .order_by(User.username)
            )
            profiles = [
                {"username": username, "display_name": display_name}
                for username, display_name in result.all()
            ]

            return {
                'id': channel.id,
                'kind': channel.kind,
                'name': channel.name,
                'members': [p["username"] for p in profiles],
                'member_profiles': profiles
            }

    async def get_channel_members(self, channel_id: str) -> List[str]:
        async with self.async_session() as session:
            result = await session.execute(
                select(ChannelMember.username).where(ChannelMember.channel_id == channel_id)
            )
            return [row[0] for row in result.all()]

    async def list_channels(self, username: str) -> List[dict]:
        """
        List the channels a user belongs to.

        Args:
            username: Member to list channels for

        Returns:
            List of channel dictionaries
        """
        async with self.async_session() as session:
            result = await session.execute(
                select(ChannelMember.channel_id).where(ChannelMember.username == username)
            )
            channel_ids = [row[0] for row in result.all()]

        channels = []
        for channel_id in channel_ids:
            channel = await self.get_channel(channel_id)
            if channel:
                channels.append(channel)
        return channels
