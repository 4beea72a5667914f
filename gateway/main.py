import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware

from gateway.abilities.catalog import get_registry
from gateway.ability_mcp.server import mcp
from gateway.ability_mcp.tools import ability_tools  # noqa: F401  registers the MCP tools
from gateway.common.exceptions import attach_exception_handlers
from gateway.core.config import settings
from gateway.core.db import close_db, init_db
from gateway.core.logging import configure_logging
from gateway.host.memory import get_host
from gateway.routes.abilities.ability_routes import router as ability_router
from gateway.routes.admin.admin_routes import router as admin_router
from gateway.routes.auth.auth_routes import router as auth_router
from gateway.routes.host.host_routes import router as host_router

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


# Lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    # ---- Startup ----
    await init_db()
    get_registry()
    get_host()
    logger.info("%s listening as %s", settings.APP_NAME, settings.BASE_URL)
    yield
    # ---- Shutdown ----
    await close_db()

# app
app = FastAPI(
    title=settings.APP_NAME,
    debug=settings.DEBUG,
    openapi_url="/openapi.json" if settings.DEBUG else None,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
    lifespan=lifespan
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)

# Allowed hosts
app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=settings.ALLOWED_HOSTS_LIST,
)

# Routers
app.include_router(auth_router)
app.include_router(host_router)
app.include_router(ability_router)
app.include_router(admin_router)

# Exception handlers
attach_exception_handlers(app)

# Mount MCP Server
mcp_app = mcp.sse_app()

mcp_app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=settings.ALLOWED_HOSTS_LIST,
)

app.mount("/mcp", mcp_app)
