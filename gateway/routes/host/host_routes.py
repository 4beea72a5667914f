import logging
from urllib.parse import urlsplit

from fastapi import APIRouter, Depends, Form
from fastapi.responses import RedirectResponse

from gateway.core.config import settings
from gateway.host.memory import get_host
from gateway.host.ports import HostAdapter
from gateway.host.session import issue_session
from gateway.services.auth import pages

logger = logging.getLogger(__name__)

router = APIRouter(include_in_schema=False)


def _safe_redirect(redirect_to: str) -> str:
    """Only follow redirects back into this site."""
    if not redirect_to:
        return "/"

    parts = urlsplit(redirect_to)
    if not parts.scheme and not parts.netloc:
        path = parts.path
        if path.startswith("/") and not path.startswith(("//", "/\\")):
            return redirect_to
        return "/"

    site = urlsplit(settings.BASE_URL)
    if (parts.scheme, parts.netloc) == (site.scheme, site.netloc) and "\\" not in redirect_to:
        return redirect_to
    return "/"


@router.get("/login")
def login_form(redirect_to: str = "/", host: HostAdapter = Depends(get_host)):
    return pages.login_page(redirect_to, host.site_info().get("name", settings.APP_NAME))


@router.post("/login")
def login(
    login: str = Form(""),
    password: str = Form(""),
    redirect_to: str = Form("/"),
    host: HostAdapter = Depends(get_host),
):
    owner = host.authenticate(login, password)
    if owner is None:
        logger.warning("Failed host login for %r", login)
        return pages.login_page(
            redirect_to,
            host.site_info().get("name", settings.APP_NAME),
            message="Unknown username or incorrect password.",
            status_code=401,
        )

    response = RedirectResponse(_safe_redirect(redirect_to), status_code=303)
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        issue_session(owner),
        max_age=settings.SESSION_TTL,
        httponly=True,
        samesite="lax",
        secure=settings.PROTOCOL == "https",
    )
    return response


@router.post("/logout")
def logout():
    response = RedirectResponse("/login", status_code=303)
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return response
