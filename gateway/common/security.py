import base64
import hashlib
import hmac
import secrets

from passlib.context import CryptContext

from gateway.core.config import settings

# Client secrets are random and high-entropy; pbkdf2 keeps the dependency pure-python
secret_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


# ---------------------------------------------------------------------------
# PKCE
# ---------------------------------------------------------------------------

def pkce_challenge(code_verifier: str) -> str:
    """S256 transform: BASE64URL(SHA256(ascii(verifier))) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def verify_pkce(code_verifier: str, code_challenge: str) -> bool:
    try:
        expected = pkce_challenge(code_verifier)
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(expected, code_challenge)


# ---------------------------------------------------------------------------
# Identifiers and client secrets
# ---------------------------------------------------------------------------

def generate_client_id() -> str:
    return settings.CLIENT_ID_PREFIX + secrets.token_hex(settings.CLIENT_ID_BYTES)


def generate_client_secret() -> str:
    return secrets.token_hex(settings.CLIENT_SECRET_BYTES)


def generate_code() -> str:
    return secrets.token_urlsafe(settings.AUTH_CODE_BYTES)


def generate_token_id() -> str:
    return secrets.token_hex(40)


def hash_secret(plain: str) -> str:
    return secret_context.hash(plain)


def verify_secret(plain: str, hashed: str | None) -> bool:
    if not plain or not hashed:
        return False
    try:
        return secret_context.verify(plain, hashed)
    except ValueError:
        # unrecognised or corrupt hash
        return False
