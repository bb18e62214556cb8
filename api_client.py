"""
Client for the KeepUp API.

KeepUpClient wraps each route in a method, attaches the bearer token it
holds and turns non-2xx responses into ApiError. AuthSession keeps the
signed-in user alongside the token.
"""

import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


class KeepUpClient:
    def __init__(self, base_url: str = "http://localhost:8000", http: Optional[httpx.Client] = None,
                 token: Optional[str] = None, timeout: float = 10.0):
        self.http = http or httpx.Client(base_url=base_url, timeout=timeout)
        self.token = token

    def close(self):
        self.http.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        response = self.http.request(method, path, headers=headers, **kwargs)
        if response.is_success:
            return response.json()

        if response.status_code == 401 and self.token:
            logger.info("Session expired, clearing token")
            self.token = None
        try:
            detail = response.json().get("detail", response.text)
        except ValueError:
            detail = response.text
        if not isinstance(detail, str):
            detail = str(detail)
        raise ApiError(response.status_code, detail)

    @staticmethod
    def _body(**fields) -> dict:
        return {k: v for k, v in fields.items() if v is not None}

    # Auth
    def register(self, username: str, email: str, password: str, **profile) -> dict:
        return self._request("POST", "/api/users/register",
                             json=self._body(username=username, email=email, password=password, **profile))

    def login(self, password: str, email: Optional[str] = None, username: Optional[str] = None) -> dict:
        return self._request("POST", "/api/users/login",
                             json=self._body(email=email, username=username, password=password))

    def logout(self) -> dict:
        return self._request("POST", "/api/auth/logout")

    def me(self) -> dict:
        return self._request("GET", "/api/auth/me")

    def health(self) -> dict:
        return self._request("GET", "/health")

    # Users
    def list_users(self, limit: int = 50) -> list:
        return self._request("GET", "/api/users", params={"limit": limit})

    def get_user(self, user_id: str) -> dict:
        return self._request("GET", f"/api/users/{user_id}")

    def update_user(self, user_id: str, **changes) -> dict:
        return self._request("PUT", f"/api/users/{user_id}", json=changes)

    def list_friends(self, user_id: str) -> list:
        return self._request("GET", f"/api/users/{user_id}/friends")

    def add_friend(self, user_id: str, friend_id: str) -> dict:
        return self._request("POST", f"/api/users/{user_id}/friends/{friend_id}")

    def remove_friend(self, user_id: str, friend_id: str) -> dict:
        return self._request("DELETE", f"/api/users/{user_id}/friends/{friend_id}")

    def user_posts(self, user_id: str) -> list:
        return self._request("GET", f"/api/users/{user_id}/posts")

    def saved_posts(self, user_id: str) -> list:
        return self._request("GET", f"/api/users/{user_id}/saved")

    # Posts
    def list_posts(self, user_id: Optional[str] = None, group_id: Optional[str] = None,
                   limit: int = 50, skip: int = 0) -> list:
        params = self._body(user_id=user_id, group_id=group_id, limit=limit, skip=skip)
        return self._request("GET", "/api/posts", params=params)

    def get_post(self, post_id: str) -> dict:
        return self._request("GET", f"/api/posts/{post_id}")

    def create_post(self, content: str, author_id: Optional[str] = None,
                    media_url: Optional[str] = None, group_id: Optional[str] = None) -> dict:
        return self._request("POST", "/api/posts",
                             json=self._body(content=content, author_id=author_id,
                                             media_url=media_url, group_id=group_id))

    def update_post(self, post_id: str, **changes) -> dict:
        return self._request("PUT", f"/api/posts/{post_id}", json=changes)

    def delete_post(self, post_id: str) -> dict:
        return self._request("DELETE", f"/api/posts/{post_id}")

    def toggle_like(self, post_id: str, user_id: Optional[str] = None) -> dict:
        return self._request("POST", f"/api/posts/{post_id}/like", json=self._body(user_id=user_id))

    def toggle_save(self, post_id: str, user_id: Optional[str] = None) -> dict:
        return self._request("POST", f"/api/posts/{post_id}/save", json=self._body(user_id=user_id))

    # Comments
    def list_comments(self, post_id: str) -> list:
        return self._request("GET", f"/api/posts/{post_id}/comments")

    def add_comment(self, post_id: str, content: str, author_id: Optional[str] = None) -> dict:
        return self._request("POST", f"/api/posts/{post_id}/comments",
                             json=self._body(content=content, author_id=author_id))

    def delete_comment(self, post_id: str, comment_id: str) -> dict:
        return self._request("DELETE", f"/api/posts/{post_id}/comments/{comment_id}")

    # Groups
    def create_group(self, name: str, admin_id: str, **options) -> dict:
        return self._request("POST", "/api/groups", json=self._body(name=name, admin_id=admin_id, **options))

    def list_groups(self) -> list:
        return self._request("GET", "/api/groups")

    def join_group(self, group_id: str, user_id: Optional[str] = None, invited_by: Optional[str] = None) -> dict:
        return self._request("POST", f"/api/groups/{group_id}/members",
                             json=self._body(user_id=user_id, invited_by=invited_by))

    def leave_group(self, group_id: str, user_id: str) -> dict:
        return self._request("DELETE", f"/api/groups/{group_id}/members/{user_id}")


class AuthSession:
    """Signed-in state on top of a KeepUpClient"""

    def __init__(self, client: KeepUpClient):
        self.client = client
        self.user: Optional[dict] = None

    @property
    def token(self) -> Optional[str]:
        return self.client.token

    def is_authenticated(self) -> bool:
        return self.user is not None and self.client.token is not None

    def _start(self, data: dict) -> dict:
        self.client.token = data["access_token"]
        self.user = data["user"]
        return data

    def register(self, username: str, email: str, password: str, **profile) -> dict:
        return self._start(self.client.register(username, email, password, **profile))

    def login(self, password: str, email: Optional[str] = None, username: Optional[str] = None) -> dict:
        return self._start(self.client.login(password, email=email, username=username))

    def refresh(self) -> Optional[dict]:
        if not self.client.token:
            self.user = None
            return None
        try:
            self.user = self.client.me()
        except ApiError as e:
            if e.status_code == 401:
                self.user = None
                return None
            raise
        return self.user

    def logout(self):
        # Local state goes even when the server call fails
        try:
            if self.client.token:
                self.client.logout()
        except (ApiError, httpx.HTTPError) as e:
            logger.warning("Logout request failed: %s", e)
        finally:
            self.client.token = None
            self.user = None
