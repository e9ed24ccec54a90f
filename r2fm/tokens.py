"""Stateless session tokens.

A token is three base64url segments joined by dots: a JSON header, a JSON
payload carrying the absolute expiry (``exp``, seconds since epoch) and an
HMAC-SHA256 over the first two segments. Nothing is stored server-side, so a
token stays valid until it expires; logging out only clears the cookie.
"""

import json
import time

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

from .codec import b64url_decode, b64url_encode

COOKIE_NAME = "r2fm_session"
SESSION_LIFETIME = 24 * 60 * 60
HEADER = {"alg": "HS256", "typ": "JWT"}


def _dump(obj):
    return json.dumps(obj, separators=(",", ":")).encode("utf-8")


def _mac(secret):
    return hmac.HMAC(secret.encode("utf-8"), hashes.SHA256())


def issue_token(secret, lifetime=SESSION_LIFETIME, now=None):
    """Return a signed token that expires ``lifetime`` seconds from ``now``."""
    if now is None:
        now = int(time.time())
    signing_input = b64url_encode(_dump(HEADER)) + "." + b64url_encode(_dump({"exp": now + lifetime}))
    mac = _mac(secret)
    mac.update(signing_input.encode("ascii"))
    return signing_input + "." + b64url_encode(mac.finalize())


def verify_token(secret, token, now=None):
    """Return True only for a well-formed, correctly signed, unexpired token.

    Every failure (wrong shape, bad encoding, bad signature, bad payload,
    expiry) returns False instead of raising.
    """
    if not token:
        return False
    parts = token.split(".")
    if len(parts) != 3:
        return False
    header_b64, payload_b64, signature_b64 = parts
    try:
        mac = _mac(secret)
        mac.update((header_b64 + "." + payload_b64).encode("ascii"))
        mac.verify(b64url_decode(signature_b64))
        payload = json.loads(b64url_decode(payload_b64))
    except (InvalidSignature, ValueError):
        return False
    if not isinstance(payload, dict):
        return False
    expires_at = payload.get("exp")
    if isinstance(expires_at, bool) or not isinstance(expires_at, int):
        return False
    if now is None:
        now = int(time.time())
    return expires_at > now


# ---------- COOKIES ----------
def session_cookie(token, max_age=SESSION_LIFETIME):
    return f"{COOKIE_NAME}={token}; HttpOnly; Secure; Path=/; SameSite=Strict; Max-Age={max_age}"


def expired_cookie():
    return session_cookie("", max_age=0)


def parse_cookies(cookie_header):
    cookies = {}
    if not cookie_header:
        return cookies
    for part in cookie_header.split(";"):
        if "=" in part:
            k, v = part.split("=", 1)
            cookies[k.strip()] = v.strip()
    return cookies


def read_session_token(cookie_header):
    return parse_cookies(cookie_header).get(COOKIE_NAME, "")
