from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------
    APP_NAME: str = "Ability Gateway"
    DEBUG: bool = False
    ENV: str = "development"
    PROTOCOL: str = "http"
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # Public URL when the gateway sits behind a tunnel or proxy
    EXTERNAL_URL: Optional[str] = None

    @property
    def BASE_URL(self) -> str:
        if self.EXTERNAL_URL:
            return self.EXTERNAL_URL.rstrip("/")
        return f"{self.PROTOCOL}://{self.HOST}:{self.PORT}"

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------
    DATABASE_URL: str = "sqlite+aiosqlite:///./gateway.db"
    DB_ECHO: bool = False

    # ------------------------------------------------------------------
    # OAuth server
    # ------------------------------------------------------------------
    SUPPORTED_SCOPES: List[str] = ["default"]
    DEFAULT_SCOPE: str = "default"

    RESPONSE_TYPES_SUPPORTED: List[str] = ["code"]
    GRANT_TYPES_SUPPORTED: List[str] = ["authorization_code", "refresh_token"]
    CODE_CHALLENGE_METHODS_SUPPORTED: List[str] = ["S256"]
    TOKEN_ENDPOINT_AUTH_METHODS_SUPPORTED: List[str] = [
        "client_secret_post",
        "client_secret_basic",
        "none",
    ]
    REGISTRATION_AUTH_METHOD: str = "client_secret_post"
    DEFAULT_CLIENT_NAME: str = "MCP Client"

    CLIENT_ID_PREFIX: str = "gw_"
    CLIENT_ID_BYTES: int = 16
    CLIENT_SECRET_BYTES: int = 32
    AUTH_CODE_BYTES: int = 32

    AUTH_CODE_TTL: int = 600  # 10 minutes
    CONSENT_TTL: int = 600  # 10 minutes
    ACCESS_TOKEN_TTL: int = 3600  # 1 hour
    REFRESH_TOKEN_TTL: int = 2592000  # 30 days

    METADATA_CACHE_SECONDS: int = 3600

    # jwt
    JWT_SECRET: str

    @property
    def JWT_ISSUER(self) -> str:
        return str(self.BASE_URL)

    JWT_ALGORITHM: str = "HS256"

    # ------------------------------------------------------------------
    # Host integration
    # ------------------------------------------------------------------
    SESSION_COOKIE_NAME: str = "host_session"
    SESSION_TTL: int = 86400
    HOST_LOGIN_URL: str = "/login"
    HOST_SEED_FILE: Optional[str] = None
    HOST_SITE_NAME: str = "Content Host"

    # ------------------------------------------------------------------
    # Ability surface
    # ------------------------------------------------------------------
    ABILITY_REALM: str = "abilities"

    @property
    def RESOURCE_URL(self) -> str:
        return f"{self.BASE_URL}/mcp"

    # ------------------------------------------------------------------
    # CORS / hosts
    # ------------------------------------------------------------------
    CORS_ALLOW_ORIGINS: List[str] = ["*"]
    CORS_ALLOW_METHODS: List[str] = ["*"]
    CORS_ALLOW_HEADERS: List[str] = ["*"]

    ALLOWED_HOSTS: str = "*"
    ALLOWED_ORIGINS: str = ""

    @property
    def ALLOWED_HOSTS_LIST(self) -> List[str]:
        return [host for host in self.ALLOWED_HOSTS.split(",") if host]

    @property
    def ALLOWED_ORIGINS_LIST(self) -> List[str]:
        return [origin for origin in self.ALLOWED_ORIGINS.split(",") if origin]

    # ------------------------------------------------------------------
    # Meta
    # ------------------------------------------------------------------
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Singleton settings object (import this everywhere)
settings = Settings()
