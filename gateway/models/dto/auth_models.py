from pydantic import BaseModel, ConfigDict
from typing import List, Optional


# ----- Health -----
class HealthResponse(BaseModel):
    status: str
    app: str
    env: str


# ----- Well-known -----
class ProtectedResourceMetadata(BaseModel):
    resource: str
    authorization_servers: List[str]
    scopes_supported: List[str]
    bearer_methods_supported: List[str] = ["header"]
    resource_name: Optional[str] = None


class AuthorizationServerMetadata(BaseModel):
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    registration_endpoint: str
    scopes_supported: List[str]
    response_types_supported: List[str]
    grant_types_supported: List[str]
    code_challenge_methods_supported: List[str]
    token_endpoint_auth_methods_supported: List[str]


# ----- Client Registration -----
class ClientRegistrationRequest(BaseModel):
    client_name: Optional[str] = None
    redirect_uris: Optional[List[str]] = None

    # grant_types, scope, logo_uri and friends are accepted and ignored
    model_config = ConfigDict(extra="allow")


class ClientRegistrationResponse(BaseModel):
    client_id: str
    client_secret: str
    client_id_issued_at: int
    client_name: str
    token_endpoint_auth_method: str
    redirect_uris: Optional[List[str]] = None


# ----- Token -----
class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    refresh_token: str
    scope: str


# ----- Admin -----
class ClientProvisionRequest(BaseModel):
    client_name: Optional[str] = None
    redirect_uris: Optional[List[str]] = None
    confidential: bool = True


class ClientSecretResponse(BaseModel):
    client_id: str
    client_secret: str


class ConnectionResponse(BaseModel):
    token_id: str
    client_id: str
    client_name: Optional[str] = None
    user_id: int
    scopes: List[str]
    created_at: Optional[str] = None
    expires_at: str
    revoked: bool
    expired: bool
