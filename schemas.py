"""
Database Schemas for KeepUp

Each Pydantic model represents a MongoDB collection. The collection name is the
lowercased class name. Example: class User -> "user" collection.

The *Out models are the public read shapes returned by the API.
"""

from pydantic import BaseModel, Field
from typing import Optional, Literal, List
from datetime import datetime

Theme = Literal["dark", "light", "system"]
ProfileVisibility = Literal["public", "friends", "private"]
GroupPrivacy = Literal["public", "private", "secret"]


class NotificationSettings(BaseModel):
    new_comments: bool = True
    friend_requests: bool = True
    group_invites: bool = True
    daily_reminder: bool = True


class PrivacySettings(BaseModel):
    profile_visibility: ProfileVisibility = "public"
    allow_friend_requests: bool = True


class UserSettings(BaseModel):
    theme: Theme = Field("system", description="UI theme preference")
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    privacy: PrivacySettings = Field(default_factory=PrivacySettings)


# Core user; password holds a hash and is never part of a read shape
class User(BaseModel):
    username: str = Field(..., min_length=2, max_length=32, description="Unique handle")
    email: str = Field(..., description="Unique email address, stored lowercased")
    password: Optional[str] = Field(None, description="Hashed password")
    name: Optional[str] = Field(None, description="Display name")
    bio: Optional[str] = Field(None, max_length=500)
    profile_picture: Optional[str] = Field(None, description="Profile image URL")
    friends: List[str] = Field(default_factory=list, description="User IDs")
    groups: List[str] = Field(default_factory=list, description="Group IDs")
    settings: UserSettings = Field(default_factory=UserSettings)
    has_posted_today: bool = False


class Group(BaseModel):
    name: str = Field(..., min_length=1, description="Group name")
    description: Optional[str] = Field(None, description="What this group is about")
    admin_id: str = Field(..., description="User ID of creator/admin")
    members: List[str] = Field(default_factory=list, description="User IDs")
    privacy: GroupPrivacy = "public"
    allow_member_posts: bool = True
    allow_member_invites: bool = False
    avatar: Optional[str] = Field(None, description="Group image URL")


class Post(BaseModel):
    author_id: str = Field(..., description="User ID of author")
    content: str = Field(..., min_length=1, description="Post text content")
    media_url: Optional[str] = Field(None, description="Optional media URL")
    group_id: Optional[str] = Field(None, description="Target group ID")
    likes: List[str] = Field(default_factory=list, description="User IDs who liked the post")
    comments: List[str] = Field(default_factory=list, description="Comment IDs, oldest first")
    saved_by: List[str] = Field(default_factory=list, description="User IDs who saved the post")


class Comment(BaseModel):
    post_id: str = Field(..., description="Post ID being commented on")
    author_id: str = Field(..., description="User ID of commenter")
    content: str = Field(..., min_length=1, description="Comment text")
    likes: List[str] = Field(default_factory=list)


# ----------------- Read shapes -----------------

class UserSummary(BaseModel):
    id: str
    username: str
    name: Optional[str] = None
    profile_picture: Optional[str] = None


class UserOut(BaseModel):
    id: str
    username: str
    email: str
    name: Optional[str] = None
    bio: Optional[str] = None
    profile_picture: Optional[str] = None
    friends: List[str] = []
    groups: List[str] = []
    settings: UserSettings = UserSettings()
    has_posted_today: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class GroupSummary(BaseModel):
    id: str
    name: str


class GroupOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    admin_id: str
    members: List[str] = []
    privacy: GroupPrivacy = "public"
    allow_member_posts: bool = True
    allow_member_invites: bool = False
    avatar: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PostOut(BaseModel):
    id: str
    author_id: str
    author: Optional[UserSummary] = None
    content: str
    media_url: Optional[str] = None
    group_id: Optional[str] = None
    group: Optional[GroupSummary] = None
    likes: List[str] = []
    comments: List[str] = []
    saved_by: List[str] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CommentOut(BaseModel):
    id: str
    post_id: str
    author_id: str
    author: Optional[UserSummary] = None
    content: str
    likes: List[str] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut
