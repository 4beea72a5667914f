"""
Seams between the gateway and the content-management host.

The gateway never decides what a user may do to content. Every permission
predicate funnels into ``HostAdapter.can``, so a client can never exercise
more authority than the human who approved the connection.
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from gateway.models.entities import ResourceOwner


@runtime_checkable
class HostAdapter(Protocol):
    """Identity and capability model of the host."""

    def get_user(self, user_id: int) -> Optional[ResourceOwner]:
        ...

    def can(self, user_id: int, action: str, target: Any = None) -> bool:
        """Host authorization check, e.g. ``can(7, "delete_post", 42)``."""
        ...

    def authenticate(self, login: str, password: str) -> Optional[ResourceOwner]:
        ...

    def login_url(self, redirect_to: str) -> str:
        ...

    def site_info(self) -> Dict[str, Any]:
        ...


@runtime_checkable
class ContentHost(HostAdapter, Protocol):
    """Content operations the bundled ability catalog calls into."""

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
        ...

    def get_post(self, post_id: int) -> Optional[Dict[str, Any]]:
        ...

    def create_post(self, author_id: int, **fields: Any) -> Dict[str, Any]:
        ...

    def update_post(self, post_id: int, **fields: Any) -> Optional[Dict[str, Any]]:
        ...

    def delete_post(self, post_id: int, force: bool = False) -> Optional[Dict[str, Any]]:
        ...
