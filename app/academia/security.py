import hmac
import secrets

from flask import Request, session


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def validate_csrf(req: Request) -> bool:
    """Validate the CSRF token sent as form field or X-CSRF-Token header."""
    expected = session.get("csrf_token")
    token = req.headers.get("X-CSRF-Token") or req.form.get("csrf_token")
    if not token and req.is_json:
        token = (req.get_json(silent=True) or {}).get("csrf_token")
    if not token or not expected:
        return False
    return hmac.compare_digest(str(token), str(expected))


def is_safe_next(nxt: str) -> bool:
    """Only local absolute paths are accepted as post-login redirects."""
    return nxt.startswith("/") and not nxt.startswith("//") and "\\" not in nxt
