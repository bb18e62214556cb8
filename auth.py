"""
Password hashing and bearer tokens.

Tokens are HS256 JWTs whose `sub` is the user id. They are accepted from
`Authorization: Bearer <token>` or from the `x-auth-token` header.
"""

import logging
import os
from datetime import timedelta
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

from database import get_db, get_document, now_utc

load_dotenv()

logger = logging.getLogger(__name__)

# JWT Config
SECRET_KEY = os.getenv("JWT_SECRET", "dev-secret-change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7))  # 7 days

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

security = HTTPBearer(auto_error=False)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = now_utc() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    return jwt.encode({"sub": user_id, "exp": expire}, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> str:
    """Return the user id carried by the token or raise 401"""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return user_id


def get_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_auth_token: Optional[str] = Header(None),
) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return x_auth_token or None


def optional_user(token: Optional[str] = Depends(get_token), db: Database = Depends(get_db)) -> Optional[dict]:
    """Resolve the caller if a token was sent; a bad token is still a 401"""
    if not token:
        return None
    user_id = decode_access_token(token)
    user = get_document(db, "user", user_id)
    if not user:
        logger.info("Token for unknown user %s rejected", user_id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def current_user(user: Optional[dict] = Depends(optional_user)) -> dict:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user
