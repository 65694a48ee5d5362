# shopmate/auth.py
import base64
import hashlib
import hmac
import json
import time
from typing import Optional

from fastapi import HTTPException, Request, Response, status

from shopmate.config import AUTH_SECRET, COOKIE_NAME, SESSION_TTL_SECONDS


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _sign(data: str, secret: str) -> str:
    return _b64url(hmac.new(secret.encode(), data.encode(), hashlib.sha256).digest())


def sign_token(email: str, ttl_seconds: int = SESSION_TTL_SECONDS, secret: str = AUTH_SECRET) -> str:
    header = _b64url(json.dumps({"alg": "HS256", "typ": "JWT"}).encode())
    payload = _b64url(json.dumps({"email": email, "exp": int(time.time()) + ttl_seconds}).encode())
    data = f"{header}.{payload}"
    return f"{data}.{_sign(data, secret)}"


def verify_token(token: str, secret: str = AUTH_SECRET) -> Optional[str]:
    """Return the email inside a valid, unexpired token, else None."""
    parts = token.split(".")
    if len(parts) != 3:
        return None
    header, payload, sig = parts
    if not hmac.compare_digest(_sign(f"{header}.{payload}", secret), sig):
        return None
    try:
        claims = json.loads(_b64url_decode(payload))
    except ValueError:
        return None
    if not isinstance(claims, dict) or int(claims.get("exp", 0)) < int(time.time()):
        return None
    return claims.get("email") or None


def set_session_cookie(response: Response, email: str) -> None:
    response.set_cookie(
        COOKIE_NAME,
        sign_token(email),
        max_age=SESSION_TTL_SECONDS,
        httponly=True,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(COOKIE_NAME, path="/", httponly=True)


def get_current_user(request: Request) -> Optional[str]:
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        return None
    return verify_token(token)


def require_user(request: Request) -> str:
    email = get_current_user(request)
    if not email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return email
