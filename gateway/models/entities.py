"""
Value objects shared by the OAuth server, the token validator and the
ability dispatcher.

Repositories hydrate these from persistence rows; nothing outside
``gateway.repositories`` touches ORM objects directly.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from gateway.common.clock import is_expired

WILDCARD_REDIRECT = "*"


class Scope(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str = "default"


class ResourceOwner(BaseModel):
    """A host user. Owned by the host, referenced here by id only."""

    model_config = ConfigDict(frozen=True)

    id: int
    login: str
    display_name: str = ""
    email: str = ""


class Client(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str
    name: str
    redirect_uris: List[str] = Field(default_factory=list)
    is_confidential: bool = True
    secret_hash: Optional[str] = None
    user_id: Optional[int] = None
    created_at: Optional[datetime] = None

    @property
    def is_wildcard(self) -> bool:
        return WILDCARD_REDIRECT in self.redirect_uris

    def allows_redirect(self, redirect_uri: str) -> bool:
        """Exact string match, unless the client is wildcard-enabled."""
        if self.is_wildcard:
            return True
        return redirect_uri in self.redirect_uris


class AuthorizationCode(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str
    client_id: str
    user_id: int
    scopes: List[Scope]
    redirect_uri: str
    code_challenge: str
    code_challenge_method: str
    expires_at: datetime
    revoked: bool = False

    @property
    def is_expired(self) -> bool:
        return is_expired(self.expires_at)


class AccessToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str
    client_id: str
    user_id: int
    scopes: List[Scope]
    expires_at: datetime
    revoked: bool = False
    created_at: Optional[datetime] = None

    @property
    def is_expired(self) -> bool:
        return is_expired(self.expires_at)


class RefreshToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str
    access_token_id: str
    client_id: str
    user_id: int
    scopes: List[Scope]
    expires_at: datetime
    revoked: bool = False

    @property
    def is_expired(self) -> bool:
        return is_expired(self.expires_at)
