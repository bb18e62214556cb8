import logging
import os
from contextlib import asynccontextmanager
from datetime import timezone
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field, field_validator
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import database
from auth import create_access_token, current_user, get_password_hash, optional_user, verify_password
from database import (
    create_document,
    ensure_indexes,
    get_db,
    get_document,
    get_documents,
    now_utc,
    to_object_id,
    to_public,
    toggle_membership,
    update_link,
)
from schemas import (
    Comment,
    CommentOut,
    Group,
    GroupOut,
    GroupPrivacy,
    GroupSummary,
    Post,
    PostOut,
    ProfileVisibility,
    Theme,
    Token,
    User,
    UserOut,
    UserSettings,
    UserSummary,
)

load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

NEWEST_FIRST = [("created_at", -1), ("_id", -1)]
OLDEST_FIRST = [("created_at", 1), ("_id", 1)]

router = APIRouter()
api_router = APIRouter(prefix="/api")


# ----------------- Request bodies -----------------
def strip_text(value):
    return value.strip() if isinstance(value, str) else value

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=2, max_length=32)
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: Optional[str] = None
    profile_picture: Optional[str] = None

    # Stripped before the length check, so "   " is rejected like ""
    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value):
        return strip_text(value)

class LoginRequest(BaseModel):
    email: Optional[str] = None
    username: Optional[str] = None
    password: str

class UserCreate(BaseModel):
    username: str = Field(..., min_length=2, max_length=32)
    email: EmailStr
    name: Optional[str] = None
    bio: Optional[str] = None
    profile_picture: Optional[str] = None

    # Stripped before the length check, so "   " is rejected like ""
    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value):
        return strip_text(value)

class NotificationSettingsUpdate(BaseModel):
    new_comments: Optional[bool] = None
    friend_requests: Optional[bool] = None
    group_invites: Optional[bool] = None
    daily_reminder: Optional[bool] = None

class PrivacySettingsUpdate(BaseModel):
    profile_visibility: Optional[ProfileVisibility] = None
    allow_friend_requests: Optional[bool] = None

class SettingsUpdate(BaseModel):
    theme: Optional[Theme] = None
    notifications: Optional[NotificationSettingsUpdate] = None
    privacy: Optional[PrivacySettingsUpdate] = None

class UserUpdate(BaseModel):
    name: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=500)
    profile_picture: Optional[str] = None
    settings: Optional[SettingsUpdate] = None

class PostCreate(BaseModel):
    author_id: Optional[str] = None
    content: Optional[str] = None
    media_url: Optional[str] = None
    group_id: Optional[str] = None

class PostUpdate(BaseModel):
    content: Optional[str] = None
    media_url: Optional[str] = None

class ToggleRequest(BaseModel):
    user_id: Optional[str] = None

class CommentCreate(BaseModel):
    author_id: Optional[str] = None
    content: Optional[str] = None

class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    admin_id: str
    privacy: GroupPrivacy = "public"
    allow_member_posts: bool = True
    allow_member_invites: bool = False
    avatar: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return strip_text(value)

class JoinGroupRequest(BaseModel):
    user_id: Optional[str] = None
    invited_by: Optional[str] = None


# ----------------- Lookups -----------------
def find_user_or_404(db: Database, user_id: str) -> dict:
    user = get_document(db, "user", user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user

def find_post_or_404(db: Database, post_id: str) -> dict:
    post = get_document(db, "post", post_id)
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    return post

def find_group_or_404(db: Database, group_id: str) -> dict:
    group = get_document(db, "group", group_id)
    if not group:
        raise HTTPException(status_code=404, detail="Group not found")
    return group

def require_user_id_format(user_id: str) -> str:
    if to_object_id(user_id) is None:
        raise HTTPException(status_code=400, detail="Invalid user ID format")
    return user_id

def acting_user_id(explicit_id: Optional[str], caller: Optional[dict]) -> str:
    # An id in the body wins over the token's user
    if explicit_id:
        return require_user_id_format(explicit_id)
    if caller is not None:
        return str(caller["_id"])
    raise HTTPException(status_code=400, detail="User ID is required")


# ----------------- Serialization -----------------
def posted_today(db: Database, user_id: str) -> bool:
    for post in get_documents(db, "post", {"author_id": user_id}, limit=1, sort=NEWEST_FIRST):
        created = post.get("created_at")
        if created is None:
            return False
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return created.date() == now_utc().date()
    return False

def user_out(db: Database, user: dict) -> UserOut:
    data = to_public(user)
    data["has_posted_today"] = posted_today(db, data["id"])
    return UserOut(**data)

def user_summaries(db: Database, user_ids) -> dict:
    oids = [oid for oid in (to_object_id(uid) for uid in set(user_ids)) if oid is not None]
    if not oids:
        return {}
    return {
        str(u["_id"]): UserSummary(
            id=str(u["_id"]),
            username=u["username"],
            name=u.get("name"),
            profile_picture=u.get("profile_picture"),
        )
        for u in db["user"].find({"_id": {"$in": oids}})
    }

def group_summaries(db: Database, group_ids) -> dict:
    oids = [oid for oid in (to_object_id(gid) for gid in set(group_ids)) if oid is not None]
    if not oids:
        return {}
    return {
        str(g["_id"]): GroupSummary(id=str(g["_id"]), name=g["name"])
        for g in db["group"].find({"_id": {"$in": oids}})
    }

def populate_posts(db: Database, posts: List[dict]) -> List[PostOut]:
    """Resolve author and group references into display-safe summaries"""
    authors = user_summaries(db, [p["author_id"] for p in posts])
    groups = group_summaries(db, [p["group_id"] for p in posts if p.get("group_id")])
    out = []
    for p in posts:
        data = to_public(p)
        data["author"] = authors.get(data["author_id"])
        data["group"] = groups.get(data.get("group_id") or "")
        out.append(PostOut(**data))
    return out

def populate_comments(db: Database, comments: List[dict]) -> List[CommentOut]:
    authors = user_summaries(db, [c["author_id"] for c in comments])
    return [CommentOut(**to_public(c), author=authors.get(c["author_id"])) for c in comments]

def post_out(db: Database, post_oid) -> PostOut:
    return populate_posts(db, [db["post"].find_one({"_id": post_oid})])[0]

def group_out(db: Database, group_oid) -> GroupOut:
    return GroupOut(**to_public(db["group"].find_one({"_id": group_oid})))

def merge_settings(current: dict, patch: dict) -> dict:
    merged = dict(current)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_settings(merged[key], value)
        else:
            merged[key] = value
    return merged


# ----------------- Root & health -----------------
@router.get("/")
def read_root():
    return {
        "message": "KeepUp API server is running",
        "endpoints": ["/health", "/api/posts", "/api/users", "/api/groups", "/api/auth"],
    }

@router.get("/health")
def health(request: Request):
    db = getattr(request.app.state, "db", None)
    return {
        "status": "ok",
        "timestamp": now_utc().isoformat(),
        "database": "connected" if database.is_connected(db) else "disconnected",
        "environment": ENVIRONMENT,
    }


# ----------------- Auth -----------------
def insert_user(db: Database, user: User) -> str:
    existing = db["user"].find_one({"$or": [{"username": user.username}, {"email": user.email}]})
    if existing:
        raise HTTPException(status_code=400, detail="User already exists")
    try:
        return create_document(db, "user", user)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="User already exists")

@api_router.post("/users/register", response_model=Token, status_code=201)
@api_router.post("/auth/register", response_model=Token, status_code=201)
def register(payload: RegisterRequest, db: Database = Depends(get_db)):
    user = User(
        username=payload.username.strip(),
        email=payload.email.strip().lower(),
        password=get_password_hash(payload.password),
        name=payload.name,
        profile_picture=payload.profile_picture,
    )
    user_id = insert_user(db, user)
    logger.info("Registered user %s (%s)", user.username, user_id)
    return Token(access_token=create_access_token(user_id), user=user_out(db, get_document(db, "user", user_id)))

@api_router.post("/users/login", response_model=Token)
@api_router.post("/auth/login", response_model=Token)
def login(payload: LoginRequest, db: Database = Depends(get_db)):
    if payload.email:
        user = db["user"].find_one({"email": payload.email.strip().lower()})
    elif payload.username:
        user = db["user"].find_one({"username": payload.username.strip()})
    else:
        raise HTTPException(status_code=400, detail="Email or username is required")
    if not user or not verify_password(payload.password, user.get("password")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return Token(access_token=create_access_token(str(user["_id"])), user=user_out(db, user))

@api_router.get("/auth/me", response_model=UserOut)
def me(user: dict = Depends(current_user), db: Database = Depends(get_db)):
    return user_out(db, user)

@api_router.post("/auth/logout")
def logout(user: dict = Depends(current_user)):
    # Tokens are stateless; the client drops its copy
    return {"message": "Logged out successfully"}


# ----------------- Users -----------------
@api_router.post("/users", response_model=UserOut, status_code=201)
def create_user(payload: UserCreate, db: Database = Depends(get_db)):
    user = User(
        username=payload.username.strip(),
        email=payload.email.strip().lower(),
        name=payload.name,
        bio=payload.bio,
        profile_picture=payload.profile_picture,
    )
    user_id = insert_user(db, user)
    return user_out(db, get_document(db, "user", user_id))

@api_router.get("/users", response_model=List[UserOut])
def list_users(limit: int = 50, db: Database = Depends(get_db)):
    users = get_documents(db, "user", {}, limit)
    return [user_out(db, u) for u in users]

@api_router.get("/users/{user_id}", response_model=UserOut)
def get_user(user_id: str, db: Database = Depends(get_db)):
    return user_out(db, find_user_or_404(db, user_id))

@api_router.put("/users/{user_id}", response_model=UserOut)
def update_user(user_id: str, payload: UserUpdate, db: Database = Depends(get_db)):
    user = find_user_or_404(db, user_id)
    updates = payload.model_dump(exclude_unset=True, exclude={"settings"})
    if payload.settings is not None:
        current = UserSettings(**(user.get("settings") or {})).model_dump()
        patch = payload.settings.model_dump(exclude_unset=True, exclude_none=True)
        updates["settings"] = UserSettings(**merge_settings(current, patch)).model_dump()
    if updates:
        updates["updated_at"] = now_utc()
        db["user"].update_one({"_id": user["_id"]}, {"$set": updates})
    return user_out(db, db["user"].find_one({"_id": user["_id"]}))

@api_router.get("/users/{user_id}/posts", response_model=List[PostOut])
def list_user_posts(user_id: str, limit: int = Query(50, ge=1, le=100), db: Database = Depends(get_db)):
    find_user_or_404(db, user_id)
    posts = get_documents(db, "post", {"author_id": user_id}, limit, sort=NEWEST_FIRST)
    return populate_posts(db, posts)

@api_router.get("/users/{user_id}/saved", response_model=List[PostOut])
def list_saved_posts(user_id: str, limit: int = Query(50, ge=1, le=100), db: Database = Depends(get_db)):
    find_user_or_404(db, user_id)
    posts = get_documents(db, "post", {"saved_by": user_id}, limit, sort=NEWEST_FIRST)
    return populate_posts(db, posts)


# ----------------- Friends -----------------
@api_router.get("/users/{user_id}/friends", response_model=List[UserSummary])
def list_friends(user_id: str, db: Database = Depends(get_db)):
    user = find_user_or_404(db, user_id)
    friends = user_summaries(db, user.get("friends", []))
    return [friends[fid] for fid in user.get("friends", []) if fid in friends]

@api_router.post("/users/{user_id}/friends/{friend_id}", response_model=UserOut)
def add_friend(user_id: str, friend_id: str, db: Database = Depends(get_db)):
    if user_id == friend_id:
        raise HTTPException(status_code=400, detail="Cannot add yourself as a friend")
    user = find_user_or_404(db, user_id)
    friend = find_user_or_404(db, friend_id)
    if friend_id not in user.get("friends", []):
        privacy = UserSettings(**(friend.get("settings") or {})).privacy
        if not privacy.allow_friend_requests:
            raise HTTPException(status_code=403, detail="User is not accepting friend requests")
        update_link(db, "$addToSet",
                    ("user", user["_id"], "friends", friend_id),
                    ("user", friend["_id"], "friends", user_id))
    return user_out(db, db["user"].find_one({"_id": user["_id"]}))

@api_router.delete("/users/{user_id}/friends/{friend_id}", response_model=UserOut)
def remove_friend(user_id: str, friend_id: str, db: Database = Depends(get_db)):
    user = find_user_or_404(db, user_id)
    friend = find_user_or_404(db, friend_id)
    update_link(db, "$pull",
                ("user", user["_id"], "friends", friend_id),
                ("user", friend["_id"], "friends", user_id))
    return user_out(db, db["user"].find_one({"_id": user["_id"]}))


# ----------------- Posts -----------------
def check_can_post(group: dict, author_id: str):
    if author_id not in group.get("members", []):
        raise HTTPException(status_code=403, detail="Only group members can post in this group")
    if not group.get("allow_member_posts", True) and author_id != group["admin_id"]:
        raise HTTPException(status_code=403, detail="Only the group admin can post in this group")

@api_router.get("/posts", response_model=List[PostOut])
def list_posts(
    user_id: Optional[str] = None,
    group_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=100),
    skip: int = Query(0, ge=0),
    db: Database = Depends(get_db),
):
    query: dict = {}
    if user_id:
        # Friends feed: own posts, friends' posts and posts in the user's groups
        user = find_user_or_404(db, user_id)
        query["$or"] = [
            {"author_id": {"$in": [user_id, *user.get("friends", [])]}},
            {"group_id": {"$in": user.get("groups", [])}},
        ]
    if group_id:
        query["group_id"] = group_id
    posts = get_documents(db, "post", query, limit, skip=skip, sort=NEWEST_FIRST)
    logger.debug("Retrieved %d posts", len(posts))
    return populate_posts(db, posts)

@api_router.post("/posts", response_model=PostOut, status_code=201)
def create_post(payload: PostCreate, db: Database = Depends(get_db), caller: Optional[dict] = Depends(optional_user)):
    content = (payload.content or "").strip()
    author_id = payload.author_id or (str(caller["_id"]) if caller else None)
    if not content:
        raise HTTPException(status_code=400, detail="Content is required")
    if not author_id:
        raise HTTPException(status_code=400, detail="Author ID is required")
    if to_object_id(author_id) is None:
        raise HTTPException(status_code=400, detail="Invalid author ID format")
    author = find_user_or_404(db, author_id)

    if payload.group_id:
        check_can_post(find_group_or_404(db, payload.group_id), author_id)

    post = Post(author_id=author_id, content=content, media_url=payload.media_url, group_id=payload.group_id)
    post_id = create_document(db, "post", post)
    db["user"].update_one({"_id": author["_id"]}, {"$set": {"has_posted_today": True}})
    logger.info("Post %s created by %s", post_id, author_id)
    return post_out(db, to_object_id(post_id))

@api_router.put("/posts", response_model=PostOut)
def update_post_action(
    payload: ToggleRequest,
    post_id: str = Query(..., alias="id"),
    action: str = Query(...),
    db: Database = Depends(get_db),
    caller: Optional[dict] = Depends(optional_user),
):
    fields = {"like": "likes", "save": "saved_by"}
    if action not in fields:
        raise HTTPException(status_code=400, detail="Invalid update action")
    return toggle_post(db, post_id, fields[action], acting_user_id(payload.user_id, caller))

@api_router.get("/posts/{post_id}", response_model=PostOut)
def get_post(post_id: str, db: Database = Depends(get_db)):
    post = find_post_or_404(db, post_id)
    return populate_posts(db, [post])[0]

@api_router.put("/posts/{post_id}", response_model=PostOut)
def update_post(post_id: str, payload: PostUpdate, db: Database = Depends(get_db)):
    post = find_post_or_404(db, post_id)
    updates = payload.model_dump(exclude_unset=True)
    if "content" in updates:
        updates["content"] = (updates["content"] or "").strip()
        if not updates["content"]:
            raise HTTPException(status_code=400, detail="Content is required")
    if updates:
        updates["updated_at"] = now_utc()
        db["post"].update_one({"_id": post["_id"]}, {"$set": updates})
    return post_out(db, post["_id"])

@api_router.delete("/posts/{post_id}")
def delete_post(post_id: str, db: Database = Depends(get_db)):
    post = find_post_or_404(db, post_id)
    db["post"].delete_one({"_id": post["_id"]})
    removed = db["comment"].delete_many({"post_id": post_id}).deleted_count
    logger.info("Post %s deleted with %d comments", post_id, removed)
    return {"success": True}


# ----------------- Likes & saves -----------------
def toggle_post(db: Database, post_id: str, field: str, user_id: str) -> PostOut:
    post = find_post_or_404(db, post_id)
    find_user_or_404(db, user_id)
    toggle_membership(db, "post", post["_id"], field, user_id)
    return post_out(db, post["_id"])

@api_router.post("/posts/{post_id}/like", response_model=PostOut)
def like_post(
    post_id: str,
    payload: Optional[ToggleRequest] = None,
    db: Database = Depends(get_db),
    caller: Optional[dict] = Depends(optional_user),
):
    return toggle_post(db, post_id, "likes", acting_user_id(payload.user_id if payload else None, caller))

@api_router.post("/posts/{post_id}/save", response_model=PostOut)
def save_post(
    post_id: str,
    payload: Optional[ToggleRequest] = None,
    db: Database = Depends(get_db),
    caller: Optional[dict] = Depends(optional_user),
):
    return toggle_post(db, post_id, "saved_by", acting_user_id(payload.user_id if payload else None, caller))


# ----------------- Comments -----------------
@api_router.get("/posts/{post_id}/comments", response_model=List[CommentOut])
def list_comments(post_id: str, limit: int = Query(100, ge=1, le=500), db: Database = Depends(get_db)):
    find_post_or_404(db, post_id)
    comments = get_documents(db, "comment", {"post_id": post_id}, limit, sort=OLDEST_FIRST)
    return populate_comments(db, comments)

@api_router.post("/posts/{post_id}/comments", response_model=CommentOut, status_code=201)
def create_comment(
    post_id: str,
    payload: CommentCreate,
    db: Database = Depends(get_db),
    caller: Optional[dict] = Depends(optional_user),
):
    post = find_post_or_404(db, post_id)
    content = (payload.content or "").strip()
    if not content:
        raise HTTPException(status_code=400, detail="Comment content is required")
    author_id = acting_user_id(payload.author_id, caller)
    find_user_or_404(db, author_id)

    comment_id = create_document(db, "comment", Comment(post_id=post_id, author_id=author_id, content=content))
    db["post"].update_one({"_id": post["_id"]}, {"$push": {"comments": comment_id}, "$set": {"updated_at": now_utc()}})
    return populate_comments(db, [get_document(db, "comment", comment_id)])[0]

def find_comment_or_404(db: Database, post_id: str, comment_id: str) -> dict:
    comment = get_document(db, "comment", comment_id)
    if not comment or comment["post_id"] != post_id:
        raise HTTPException(status_code=404, detail="Comment not found")
    return comment

@api_router.delete("/posts/{post_id}/comments/{comment_id}")
def delete_comment(post_id: str, comment_id: str, db: Database = Depends(get_db)):
    post = find_post_or_404(db, post_id)
    comment = find_comment_or_404(db, post_id, comment_id)
    db["comment"].delete_one({"_id": comment["_id"]})
    db["post"].update_one({"_id": post["_id"]}, {"$pull": {"comments": comment_id}, "$set": {"updated_at": now_utc()}})
    return {"success": True}

@api_router.post("/posts/{post_id}/comments/{comment_id}/like", response_model=CommentOut)
def like_comment(
    post_id: str,
    comment_id: str,
    payload: Optional[ToggleRequest] = None,
    db: Database = Depends(get_db),
    caller: Optional[dict] = Depends(optional_user),
):
    find_post_or_404(db, post_id)
    comment = find_comment_or_404(db, post_id, comment_id)
    user_id = acting_user_id(payload.user_id if payload else None, caller)
    find_user_or_404(db, user_id)
    toggle_membership(db, "comment", comment["_id"], "likes", user_id)
    return populate_comments(db, [db["comment"].find_one({"_id": comment["_id"]})])[0]


# ----------------- Groups -----------------
@api_router.post("/groups", response_model=GroupOut, status_code=201)
def create_group(payload: GroupCreate, db: Database = Depends(get_db)):
    admin = find_user_or_404(db, require_user_id_format(payload.admin_id))
    group = Group(**payload.model_dump(), members=[payload.admin_id])
    group_id = create_document(db, "group", group)
    db["user"].update_one({"_id": admin["_id"]}, {"$addToSet": {"groups": group_id}})
    logger.info("Group %s created by %s", group_id, payload.admin_id)
    return group_out(db, to_object_id(group_id))

@api_router.get("/groups", response_model=List[GroupOut])
def list_groups(limit: int = 50, db: Database = Depends(get_db)):
    groups = get_documents(db, "group", {"privacy": {"$ne": "secret"}}, limit, sort=NEWEST_FIRST)
    return [GroupOut(**to_public(g)) for g in groups]

@api_router.get("/groups/{group_id}", response_model=GroupOut)
def get_group(group_id: str, db: Database = Depends(get_db)):
    return GroupOut(**to_public(find_group_or_404(db, group_id)))

@api_router.post("/groups/{group_id}/members", response_model=GroupOut)
def join_group(
    group_id: str,
    payload: JoinGroupRequest,
    db: Database = Depends(get_db),
    caller: Optional[dict] = Depends(optional_user),
):
    group = find_group_or_404(db, group_id)
    if payload.invited_by:
        require_user_id_format(payload.invited_by)
    user_id = acting_user_id(payload.user_id, caller)
    user = find_user_or_404(db, user_id)
    members = group.get("members", [])
    if user_id in members:
        return GroupOut(**to_public(group))

    if group.get("privacy", "public") != "public":
        inviter = payload.invited_by
        allowed = inviter == group["admin_id"] or (
            group.get("allow_member_invites", False) and inviter in members
        )
        if not inviter or not allowed:
            raise HTTPException(status_code=403, detail="An invitation is required to join this group")

    update_link(db, "$addToSet",
                ("group", group["_id"], "members", user_id),
                ("user", user["_id"], "groups", group_id))
    return group_out(db, group["_id"])

@api_router.delete("/groups/{group_id}/members/{user_id}", response_model=GroupOut)
def leave_group(group_id: str, user_id: str, db: Database = Depends(get_db)):
    group = find_group_or_404(db, group_id)
    if user_id == group["admin_id"]:
        raise HTTPException(status_code=400, detail="The group admin cannot leave the group")
    user = find_user_or_404(db, user_id)
    update_link(db, "$pull",
                ("group", group["_id"], "members", user_id),
                ("user", user["_id"], "groups", group_id))
    return group_out(db, group["_id"])

@api_router.get("/groups/{group_id}/posts", response_model=List[PostOut])
def list_group_posts(group_id: str, limit: int = Query(50, ge=1, le=100), db: Database = Depends(get_db)):
    find_group_or_404(db, group_id)
    posts = get_documents(db, "post", {"group_id": group_id}, limit, sort=NEWEST_FIRST)
    return populate_posts(db, posts)


# ----------------- App -----------------
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})

async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(db: Optional[Database] = None) -> FastAPI:
    """Build the API around an explicitly supplied database.

    Without one, the app connects from DATABASE_URL / DATABASE_NAME on
    startup and closes that connection on shutdown.
    """
    owns_connection = db is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.db is None:
            app.state.db = database.connect()
            if app.state.db is not None:
                ensure_indexes(app.state.db)
        yield
        if owns_connection and app.state.db is not None:
            app.state.db.client.close()

    app = FastAPI(title="KeepUp API", lifespan=lifespan)
    app.state.db = db
    if db is not None:
        ensure_indexes(db)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        response = await call_next(request)
        logger.info("%s %s -> %s", request.method, request.url.path, response.status_code)
        return response

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(router)
    app.include_router(api_router)
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
