from mcp.server import FastMCP
from mcp.server.auth.settings import AuthSettings
from mcp.server.transport_security import TransportSecuritySettings
from pydantic import AnyHttpUrl

from gateway.ability_mcp.utils.token_verifier import GatewayTokenVerifier
from gateway.core.config import settings

mcp = FastMCP(
    name=settings.APP_NAME,
    json_response=True,
    token_verifier=GatewayTokenVerifier(),
    auth=AuthSettings(
        issuer_url=AnyHttpUrl(settings.JWT_ISSUER),
        resource_server_url=AnyHttpUrl(settings.RESOURCE_URL),
        required_scopes=settings.SUPPORTED_SCOPES,
    ),
    transport_security=TransportSecuritySettings(
        enable_dns_rebinding_protection=bool(settings.ALLOWED_ORIGINS_LIST),
        allowed_hosts=settings.ALLOWED_HOSTS_LIST,
        allowed_origins=settings.ALLOWED_ORIGINS_LIST,
    ),
)
