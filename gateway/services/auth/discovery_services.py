from fastapi.responses import JSONResponse

from gateway.core.config import settings
from gateway.models.dto.auth_models import (
    AuthorizationServerMetadata,
    ProtectedResourceMetadata,
)

# ---------------------------------------------------------------------------
# Metadata / utility
# ---------------------------------------------------------------------------

def _cacheable(payload: dict) -> JSONResponse:
    return JSONResponse(
        content=payload,
        headers={"Cache-Control": f"public, max-age={settings.METADATA_CACHE_SECONDS}"},
    )


def health():
    return {
        "status": "ok",
        "app": settings.APP_NAME,
        "env": settings.ENV,
    }


def authorization_server_metadata() -> JSONResponse:
    metadata = AuthorizationServerMetadata(
        issuer=settings.JWT_ISSUER,
        authorization_endpoint=f"{settings.BASE_URL}/authorize",
        token_endpoint=f"{settings.BASE_URL}/token",
        registration_endpoint=f"{settings.BASE_URL}/register",
        scopes_supported=settings.SUPPORTED_SCOPES,
        response_types_supported=settings.RESPONSE_TYPES_SUPPORTED,
        grant_types_supported=settings.GRANT_TYPES_SUPPORTED,
        code_challenge_methods_supported=settings.CODE_CHALLENGE_METHODS_SUPPORTED,
        token_endpoint_auth_methods_supported=settings.TOKEN_ENDPOINT_AUTH_METHODS_SUPPORTED,
    )
    return _cacheable(metadata.model_dump())


def protected_resource_metadata() -> JSONResponse:
    metadata = ProtectedResourceMetadata(
        resource=settings.RESOURCE_URL,
        authorization_servers=[settings.JWT_ISSUER],
        scopes_supported=settings.SUPPORTED_SCOPES,
        resource_name=settings.APP_NAME,
    )
    return _cacheable(metadata.model_dump(exclude_none=True))
