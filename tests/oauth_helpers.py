import base64
import hashlib
import re
import secrets
from urllib.parse import parse_qs, urlsplit

REDIRECT_URI = "https://client.example/callback"


def make_pkce_pair():
    verifier = secrets.token_urlsafe(48)
    challenge = (
        base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest())
        .rstrip(b"=")
        .decode()
    )
    return verifier, challenge


def query_of(location: str) -> dict:
    return {key: values[0] for key, values in parse_qs(urlsplit(location).query).items()}


def extract_handle(html: str) -> str:
    match = re.search(r'name="handle" value="([^"]+)"', html)
    assert match, "consent page carries no handle"
    return match.group(1)


async def register(client, redirect_uris=None, name="Test Assistant"):
    payload = {"client_name": name}
    if redirect_uris is not None:
        payload["redirect_uris"] = redirect_uris
    resp = await client.post("/register", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def authorize_params(client_id, challenge, redirect_uri=REDIRECT_URI, state="state-123"):
    return {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "state": state,
        "code_challenge": challenge,
        "code_challenge_method": "S256",
    }


async def obtain_code(client, client_id, challenge, redirect_uri=REDIRECT_URI, state="state-123"):
    resp = await client.get("/authorize", params=authorize_params(client_id, challenge, redirect_uri, state))
    assert resp.status_code == 200, resp.text
    resp = await client.post("/authorize", data={"handle": extract_handle(resp.text), "approve": "yes"})
    assert resp.status_code == 302, resp.text
    params = query_of(resp.headers["location"])
    assert params["state"] == state
    return params["code"]


async def exchange_code(client, registered, code, verifier, redirect_uri=REDIRECT_URI):
    return await client.post(
        "/token",
        data={
            "grant_type": "authorization_code",
            "client_id": registered["client_id"],
            "client_secret": registered["client_secret"],
            "code": code,
            "redirect_uri": redirect_uri,
            "code_verifier": verifier,
        },
    )


async def refresh(client, registered, refresh_token):
    return await client.post(
        "/token",
        data={
            "grant_type": "refresh_token",
            "client_id": registered["client_id"],
            "client_secret": registered["client_secret"],
            "refresh_token": refresh_token,
        },
    )


async def obtain_tokens(client, redirect_uri=REDIRECT_URI):
    """Register a client and run the whole code flow as the logged-in owner."""
    registered = await register(client, [redirect_uri])
    verifier, challenge = make_pkce_pair()
    code = await obtain_code(client, registered["client_id"], challenge, redirect_uri)
    resp = await exchange_code(client, registered, code, verifier, redirect_uri)
    assert resp.status_code == 200, resp.text
    return registered, resp.json()


def bearer(tokens) -> dict:
    return {"Authorization": f"Bearer {tokens['access_token']}"}
