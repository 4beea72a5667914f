"""
In-process reference host.

Role and capability names follow the usual CMS conventions (administrator,
editor, author, contributor, subscriber). Meta capabilities such as
``edit_post`` are mapped to primitive ones against the target's author and
status before the role table is consulted.
"""

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from gateway.common.security import hash_secret, verify_secret
from gateway.core.config import settings
from gateway.models.entities import ResourceOwner

logger = logging.getLogger(__name__)

ROLE_CAPABILITIES: Dict[str, set[str]] = {
    "administrator": {
        "read",
        "edit_posts",
        "edit_others_posts",
        "edit_published_posts",
        "publish_posts",
        "delete_posts",
        "delete_others_posts",
        "delete_published_posts",
        "list_users",
        "manage_options",
    },
    "editor": {
        "read",
        "edit_posts",
        "edit_others_posts",
        "edit_published_posts",
        "publish_posts",
        "delete_posts",
        "delete_others_posts",
        "delete_published_posts",
    },
    "author": {
        "read",
        "edit_posts",
        "edit_published_posts",
        "publish_posts",
        "delete_posts",
        "delete_published_posts",
    },
    "contributor": {"read", "edit_posts", "delete_posts"},
    "subscriber": {"read"},
}

POST_STATUSES = ("publish", "draft", "pending", "private", "trash")


def _now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


class InMemoryHost:
    def __init__(self, site_name: Optional[str] = None, base_url: Optional[str] = None):
        self.site_name = site_name or settings.HOST_SITE_NAME
        self.base_url = base_url or settings.BASE_URL
        self._users: Dict[int, Dict[str, Any]] = {}
        self._posts: Dict[int, Dict[str, Any]] = {}
        self._next_user_id = 1
        self._next_post_id = 1
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def add_user(
        self,
        login: str,
        role: str = "subscriber",
        *,
        password: Optional[str] = None,
        display_name: str = "",
        email: str = "",
    ) -> ResourceOwner:
        if role not in ROLE_CAPABILITIES:
            raise ValueError(f"Unknown role: {role}")

        with self._lock:
            user_id = self._next_user_id
            self._next_user_id += 1
            self._users[user_id] = {
                "id": user_id,
                "login": login,
                "role": role,
                "display_name": display_name or login,
                "email": email,
                "password_hash": hash_secret(password) if password else None,
            }
        return self._owner(self._users[user_id])

    def remove_user(self, user_id: int) -> None:
        with self._lock:
            self._users.pop(user_id, None)

    def add_post(
        self,
        author_id: int,
        title: str,
        content: str = "",
        status: str = "publish",
        excerpt: str = "",
    ) -> Dict[str, Any]:
        return self.create_post(author_id, title=title, content=content, status=status, excerpt=excerpt)

    @classmethod
    def from_seed_file(cls, path: str) -> "InMemoryHost":
        """
        Build a host from a JSON file shaped like::

            {"site_name": "...",
             "users": [{"login": "...", "role": "...", "password": "..."}],
             "posts": [{"author": "<login>", "title": "...", "content": "..."}]}
        """
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        host = cls(site_name=data.get("site_name"))

        by_login: Dict[str, int] = {}
        for user in data.get("users", []):
            owner = host.add_user(
                user["login"],
                user.get("role", "subscriber"),
                password=user.get("password"),
                display_name=user.get("display_name", ""),
                email=user.get("email", ""),
            )
            by_login[owner.login] = owner.id

        for post in data.get("posts", []):
            host.add_post(
                by_login[post["author"]],
                post["title"],
                content=post.get("content", ""),
                status=post.get("status", "publish"),
                excerpt=post.get("excerpt", ""),
            )

        logger.info("Seeded host with %d users and %d posts", len(host._users), len(host._posts))
        return host

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @staticmethod
    def _owner(user: Dict[str, Any]) -> ResourceOwner:
        return ResourceOwner(
            id=user["id"],
            login=user["login"],
            display_name=user["display_name"],
            email=user["email"],
        )

    def get_user(self, user_id: int) -> Optional[ResourceOwner]:
        user = self._users.get(user_id)
        return self._owner(user) if user else None

    def authenticate(self, login: str, password: str) -> Optional[ResourceOwner]:
        for user in self._users.values():
            if user["login"] == login and verify_secret(password, user["password_hash"]):
                return self._owner(user)
        return None

    def login_url(self, redirect_to: str) -> str:
        return f"{settings.HOST_LOGIN_URL}?{urlencode({'redirect_to': redirect_to})}"

    def site_info(self) -> Dict[str, Any]:
        return {
            "name": self.site_name,
            "url": self.base_url,
            "post_count": len(self._posts),
            "user_count": len(self._users),
        }

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    def _has_cap(self, user: Dict[str, Any], capability: str) -> bool:
        return capability in ROLE_CAPABILITIES.get(user["role"], set())

    def _map_meta_cap(self, user_id: int, action: str, post: Dict[str, Any]) -> List[str]:
        own = post["author"] == user_id
        published = post["status"] == "publish"

        if action == "read_post":
            if published:
                return ["read"]
            return ["edit_posts"] if own else ["edit_others_posts"]

        if action == "edit_post":
            caps = ["edit_posts"] if own else ["edit_others_posts"]
            if published:
                caps.append("edit_published_posts")
            return caps

        if action == "delete_post":
            caps = ["delete_posts"] if own else ["delete_others_posts"]
            if published:
                caps.append("delete_published_posts")
            return caps

        return [action]

    def can(self, user_id: int, action: str, target: Any = None) -> bool:
        user = self._users.get(user_id)
        if user is None:
            return False

        if action in ("read_post", "edit_post", "delete_post"):
            post = self._posts.get(int(target)) if target is not None else None
            if post is None:
                # no object to map against; fall back to the primitive capability
                fallback = {
                    "read_post": "read",
                    "edit_post": "edit_posts",
                    "delete_post": "delete_posts",
                }[action]
                return self._has_cap(user, fallback)
            return all(self._has_cap(user, cap) for cap in self._map_meta_cap(user_id, action, post))

        if action == "create_posts":
            return self._has_cap(user, "edit_posts")

        return self._has_cap(user, action)

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def find_posts(
        self,
        *,
        search: str = "",
        status: Optional[str] = None,
        order: str = "desc",
        orderby: str = "date",
        page: int = 1,
        per_page: int = 10,
    ) -> tuple[List[Dict[str, Any]], int]:
        posts = [p for p in self._posts.values() if p["status"] != "trash"]
        if status:
            posts = [p for p in self._posts.values() if p["status"] == status]
        if search:
            needle = search.lower()
            posts = [
                p for p in posts
                if needle in p["title"].lower() or needle in p["content"].lower()
            ]

        sort_key = {"date": "date", "modified": "modified", "title": "title", "id": "id"}[orderby]
        posts.sort(key=lambda p: (p[sort_key], p["id"]), reverse=(order == "desc"))

        total = len(posts)
        start = (page - 1) * per_page
        return [dict(p) for p in posts[start:start + per_page]], total

    def get_post(self, post_id: int) -> Optional[Dict[str, Any]]:
        post = self._posts.get(post_id)
        return dict(post) if post else None

    def create_post(self, author_id: int, **fields: Any) -> Dict[str, Any]:
        with self._lock:
            post_id = self._next_post_id
            self._next_post_id += 1
            now = _now()
            self._posts[post_id] = {
                "id": post_id,
                "title": fields.get("title", ""),
                "content": fields.get("content", ""),
                "excerpt": fields.get("excerpt", ""),
                "status": fields.get("status", "draft"),
                "author": author_id,
                "date": now,
                "modified": now,
                "permalink": f"{self.base_url}/?p={post_id}",
            }
        return dict(self._posts[post_id])

    def update_post(self, post_id: int, **fields: Any) -> Optional[Dict[str, Any]]:
        with self._lock:
            post = self._posts.get(post_id)
            if post is None:
                return None
            for key in ("title", "content", "excerpt", "status"):
                if fields.get(key) is not None:
                    post[key] = fields[key]
            post["modified"] = _now()
        return dict(post)

    def delete_post(self, post_id: int, force: bool = False) -> Optional[Dict[str, Any]]:
        with self._lock:
            post = self._posts.get(post_id)
            if post is None:
                return None
            if force:
                del self._posts[post_id]
            else:
                post["status"] = "trash"
        return dict(post)


_host: Optional[InMemoryHost] = None


def get_host() -> InMemoryHost:
    """FastAPI dependency returning the process-wide host."""
    global _host
    if _host is None:
        if settings.HOST_SEED_FILE:
            _host = InMemoryHost.from_seed_file(settings.HOST_SEED_FILE)
        else:
            _host = InMemoryHost()
    return _host
