"""
Server-rendered pages of the authorization endpoint.

Everything interpolated into markup goes through ``html.escape``.
"""

from html import escape

from fastapi.responses import HTMLResponse

NO_STORE = {"Cache-Control": "no-store", "Pragma": "no-cache"}

_STYLE = """
* { box-sizing: border-box; margin: 0; padding: 0; }
body { font-family: -apple-system, "Segoe UI", Roboto, sans-serif; background: #f0f0f1;
       min-height: 100vh; display: flex; align-items: center; justify-content: center; padding: 20px; }
.card { background: #fff; border-radius: 8px; box-shadow: 0 1px 3px rgba(0,0,0,.13);
        max-width: 420px; width: 100%; padding: 40px; }
h1 { font-size: 22px; color: #1d2327; margin-bottom: 12px; text-align: center; }
p { color: #50575e; font-size: 14px; line-height: 1.5; margin-bottom: 16px; }
.client { background: #f6f7f7; border-radius: 4px; padding: 16px; margin-bottom: 16px; }
.client strong { display: block; font-size: 18px; color: #1d2327; margin-bottom: 6px; }
.who { font-size: 13px; background: #fff8e5; border-radius: 4px; padding: 10px; margin-bottom: 20px; }
.buttons { display: flex; gap: 10px; }
button { flex: 1; padding: 12px 20px; border: none; border-radius: 4px; font-size: 14px; cursor: pointer; }
.primary { background: #2271b1; color: #fff; }
.secondary { background: #f0f0f1; color: #50575e; }
"""


def _render(title: str, site_name: str, body: str, status_code: int) -> HTMLResponse:
    document = (
        "<!DOCTYPE html><html lang=\"en\"><head><meta charset=\"utf-8\">"
        "<meta name=\"viewport\" content=\"width=device-width, initial-scale=1.0\">"
        f"<title>{escape(title)} - {escape(site_name)}</title><style>{_STYLE}</style></head>"
        f"<body><div class=\"card\">{body}</div></body></html>"
    )
    return HTMLResponse(content=document, status_code=status_code, headers=NO_STORE)


def error_page(title: str, message: str, site_name: str, status_code: int = 400) -> HTMLResponse:
    body = f"<h1>{escape(title)}</h1><p>{escape(message)}</p>"
    return _render(title, site_name, body, status_code)


def access_denied_page(display_name: str, site_name: str) -> HTMLResponse:
    body = (
        "<h1>Access Not Permitted</h1>"
        f"<p>Your account (<strong>{escape(display_name)}</strong>) is not allowed to connect "
        "AI assistants to this site.</p>"
        "<p>Ask a site administrator to grant you access.</p>"
    )
    return _render("Access Not Permitted", site_name, body, 403)


def consent_page(
    *,
    client_name: str,
    display_name: str,
    site_name: str,
    handle: str,
    action: str,
) -> HTMLResponse:
    body = (
        "<h1>Authorize Application</h1>"
        f"<p style=\"text-align:center\">{escape(site_name)}</p>"
        f"<div class=\"client\"><strong>{escape(client_name)}</strong>"
        "This application wants to access your site on your behalf.</div>"
        f"<div class=\"who\">Logged in as <strong>{escape(display_name)}</strong></div>"
        f"<form method=\"post\" action=\"{escape(action)}\">"
        f"<input type=\"hidden\" name=\"handle\" value=\"{escape(handle)}\">"
        "<div class=\"buttons\">"
        "<button type=\"submit\" name=\"approve\" value=\"no\" class=\"secondary\">Deny</button>"
        "<button type=\"submit\" name=\"approve\" value=\"yes\" class=\"primary\">Authorize</button>"
        "</div></form>"
    )
    return _render("Authorize Application", site_name, body, 200)


def login_page(redirect_to: str, site_name: str, message: str = "", status_code: int = 200) -> HTMLResponse:
    notice = f"<p>{escape(message)}</p>" if message else ""
    body = (
        "<h1>Log In</h1>"
        f"{notice}"
        "<form method=\"post\">"
        f"<input type=\"hidden\" name=\"redirect_to\" value=\"{escape(redirect_to)}\">"
        "<p><input name=\"login\" placeholder=\"Username\" autocomplete=\"username\"></p>"
        "<p><input name=\"password\" type=\"password\" placeholder=\"Password\" "
        "autocomplete=\"current-password\"></p>"
        "<div class=\"buttons\"><button type=\"submit\" class=\"primary\">Log In</button></div>"
        "</form>"
    )
    return _render("Log In", site_name, body, status_code)
