"""
Database Schemas

MongoDB collection schemas for InfluencerConnect, as Pydantic models.
Model name is converted to lowercase for the collection name:
- User -> "user" collection
- Chat -> "chat" collection
- Message -> "message" collection
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import datetime

Role = Literal["influencer", "brand", "admin"]

DEFAULT_AVATAR = "https://via.placeholder.com/150"


class SocialLinks(BaseModel):
    instagram: str = ""
    twitter: str = ""
    youtube: str = ""
    tiktok: str = ""


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user" (lowercase of class name)
    """
    username: str = Field(..., description="Unique username, case preserved")
    email: str = Field(..., description="Unique email, stored case-folded")
    password_hash: str = Field(..., description="bcrypt password hash")
    bio: str = Field("", description="Short profile bio")
    avatar: str = Field(DEFAULT_AVATAR, description="Avatar image URL")
    role: Role = Field("influencer", description="Account role")
    social_links: SocialLinks = Field(default_factory=SocialLinks)
    interests: List[str] = Field(default_factory=list)
    location: str = ""
    followers: int = 0
    following: int = 0


class Chat(BaseModel):
    """
    Chats collection schema
    Collection name: "chat"; the document _id is the derived chat id
    """
    participants: List[str] = Field(..., min_length=2, max_length=2, description="Sorted pair of user ids")
    last_message: Optional[str] = Field(None, description="Preview of the latest message")
    last_message_at: Optional[datetime] = None
    last_sender_id: Optional[str] = None


class Message(BaseModel):
    """
    Messages collection schema
    Collection name: "message"
    """
    chat_id: str = Field(..., description="ID of the chat this message belongs to")
    sender_id: str = Field(..., description="User ID of the sender")
    receiver_id: str = Field(..., description="User ID of the other participant")
    content: str = Field(..., description="Plain text content")
    read: bool = Field(False, description="Whether the receiver has read the message")
